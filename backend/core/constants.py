"""
Shared constants for the FSP Portal.

Collection names, roles, statuses and the department/section catalogs used
by registration, batch creation and reporting.
"""

from enum import Enum
from typing import Dict, List


class UserRole(str, Enum):
    """User roles in the system."""
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"
    HOST = "host"


class ApprovalStatus(str, Enum):
    """Approval state of teacher, admin and host accounts."""
    PENDING = "pending_approval"
    ACTIVE = "active"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class StudentStatus(str, Enum):
    ACTIVE = "active"
    PASSED_OUT = "passed_out"


class BatchStatus(str, Enum):
    SCHEDULED = "Scheduled"
    ONGOING = "Ongoing"
    COMPLETED = "Completed"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"


class SessionHalf(str, Enum):
    FIRST = "first"
    SECOND = "second"


# Firestore collections
STUDENTS_COLLECTION = "students"
TEACHERS_COLLECTION = "teachers"
ADMINS_COLLECTION = "admins"
HOSTS_COLLECTION = "hosts"
BATCHES_COLLECTION = "batches"
ATTENDANCE_COLLECTION = "attendanceRecords"
ANNOUNCEMENTS_COLLECTION = "announcements"
ACTIVITY_COLLECTION = "activityLogs"
PASSWORD_RESETS_COLLECTION = "passwordResets"

# Order matters: a uid is resolved to the first collection holding it
ROLE_COLLECTIONS: Dict[UserRole, str] = {
    UserRole.STUDENT: STUDENTS_COLLECTION,
    UserRole.TEACHER: TEACHERS_COLLECTION,
    UserRole.ADMIN: ADMINS_COLLECTION,
    UserRole.HOST: HOSTS_COLLECTION,
}

DEPARTMENTS: Dict[str, str] = {
    "cse": "Computer Science & Engineering (CSE)",
    "it": "Information Technology (IT)",
    "ece": "Electronics & Communication Engineering (ECE)",
    "ee": "Electrical Engineering (EE)",
    "me": "Mechanical Engineering (ME)",
    "ce": "Civil Engineering (CE)",
    "bca": "Bachelor of Computer Application (BCA)",
    "mca": "Master of Computer Application (MCA)",
    "cse_ai_ml": "Computer Science & Engineering (AI & ML)",
    "cse_iot_cs": "Computer Science & Engineering (IoT & Cyber Security)",
    "cst": "Computer Science & Technology (CST)",
    "csbs": "Computer Science & Business Systems (CSBS)",
    "bba": "Bachelor of Business Administration (BBA)",
    "bba_hm": "BBA in Hospital Management",
    "ecs": "Electronics & Computer Science (ECS)",
    "bsc_ds": "B.Sc in Data Science",
}

SECTIONS: List[str] = ["A", "B", "C", "D", "E", "F", "G"]

DAYS_OF_WEEK: List[str] = [
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"
]

# Students can be promoted into these academic years
PROMOTION_YEARS = (2, 3, 4)

# Firestore write batches are limited to 500 operations
FIRESTORE_BATCH_LIMIT = 500
# Firebase Auth delete_users accepts at most 1000 uids per call
AUTH_DELETE_LIMIT = 1000

ANNOUNCEMENT_SENDER = "Management"
ANNOUNCEMENTS_LIMIT = 10

ACTIVITY_WINDOW_DAYS = 30
ACTIVITY_LIMIT = 200

MIN_PASSWORD_LENGTH = 6

# Student IDs look like AEC/2021/0042
STUDENT_ID_PATTERN = r"^AEC/\d{4}/\d{4}$"
PHONE_PATTERN = r"^\d{10}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]{3,30}$"
