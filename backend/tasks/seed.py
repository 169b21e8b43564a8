"""
Portal Seed Script

Creates a default management account, an admin, sample teachers and
students, and a few batches so a fresh Firebase project can be used
right away. All seeded accounts share DEFAULT_STUDENT_PASSWORD.

Usage:
    python -m tasks.seed            # Seed, skipping records that already exist
    python -m tasks.seed --force    # Delete and re-create existing seed records
"""

import argparse
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from firebase_admin import auth

from core.config import DEFAULT_STUDENT_PASSWORD, get_firestore_client, initialize_firebase
from core.constants import UserRole, BATCHES_COLLECTION, ROLE_COLLECTIONS
from services.activity import get_activity_service
from services.batches import BatchService
from services.students import StudentService
from services.users import UserService


HOST = {"name": "FSP Management", "email": "host@fsp-portal.dev"}
ADMIN = {"name": "Portal Admin", "email": "admin@fsp-portal.dev", "username": "admin"}

TEACHERS = [
    {"name": "Ananya Sen", "email": "ananya.sen@fsp-portal.dev", "department": "cse", "username": "ananya"},
    {"name": "Rahul Das", "email": "rahul.das@fsp-portal.dev", "department": "ece", "username": "rahul"},
]

STUDENTS = [
    {
        "studentId": "AEC/2022/0001", "name": "Arjun Roy", "email": "arjun.roy@fsp-portal.dev",
        "rollNumber": "22CSE001", "registrationNumber": "REG22001", "department": "cse",
        "section": "A", "admissionYear": 2022, "currentYear": 3, "phoneNumber": "9000000001",
    },
    {
        "studentId": "AEC/2022/0002", "name": "Priya Ghosh", "email": "priya.ghosh@fsp-portal.dev",
        "rollNumber": "22CSE002", "registrationNumber": "REG22002", "department": "cse",
        "section": "A", "admissionYear": 2022, "currentYear": 3, "phoneNumber": "9000000002",
    },
    {
        "studentId": "AEC/2022/0003", "name": "Sourav Paul", "email": "sourav.paul@fsp-portal.dev",
        "rollNumber": "22ECE001", "registrationNumber": "REG22003", "department": "ece",
        "section": "B", "admissionYear": 2022, "currentYear": 3, "phoneNumber": "9000000003",
    },
]


def sample_batches(today: date):
    """Batches around today's date: one running, one upcoming."""
    return [
        {
            "name": "Aptitude Foundations",
            "topic": "Quantitative Aptitude",
            "departments": ["cse", "ece"],
            "startDate": (today - timedelta(days=14)).isoformat(),
            "endDate": (today + timedelta(days=30)).isoformat(),
            "daysOfWeek": ["Monday", "Wednesday", "Friday"],
            "startTime": "10:00",
            "endTime": "12:00",
            "startTimeSecondHalf": "13:00",
            "endTimeSecondHalf": "14:30",
            "roomNumber": "A-101",
            "teacher_emails": ["ananya.sen@fsp-portal.dev"],
            "student_ids": ["AEC/2022/0001", "AEC/2022/0002", "AEC/2022/0003"],
        },
        {
            "name": "Interview Readiness",
            "topic": "Soft Skills",
            "departments": ["cse"],
            "startDate": (today + timedelta(days=7)).isoformat(),
            "endDate": (today + timedelta(days=60)).isoformat(),
            "daysOfWeek": ["Tuesday", "Thursday"],
            "startTime": "14:00",
            "endTime": "16:00",
            "roomNumber": "B-204",
            "teacher_emails": ["rahul.das@fsp-portal.dev"],
            "student_ids": ["AEC/2022/0001"],
        },
    ]


class PortalSeeder:
    """Seeds accounts and batches through the regular services."""

    def __init__(self, force: bool = False):
        self.force = force
        self.db = get_firestore_client()
        activity = get_activity_service()
        self.users = UserService(use_cache=False, activity=activity)
        self.students = StudentService(use_cache=False, activity=activity)
        self.batches = BatchService(use_cache=False, activity=activity)
        self.stats = {"created": 0, "skipped": 0, "replaced": 0}

    def _existing_uid(self, email: str) -> Optional[str]:
        try:
            return auth.get_user_by_email(email).uid
        except auth.UserNotFoundError:
            return None

    def _claim(self, role: UserRole, email: str) -> bool:
        """
        Decide whether an account should be (re)created.

        With --force, an existing auth user and its profile are deleted first.
        """
        uid = self._existing_uid(email)
        if uid is None:
            return True
        if not self.force:
            print(f"  [SKIP] {role.value} {email} already exists")
            self.stats["skipped"] += 1
            return False

        self.db.collection(ROLE_COLLECTIONS[role]).document(uid).delete()
        auth.delete_user(uid)
        print(f"  [FORCE] Replaced {role.value} {email}")
        self.stats["replaced"] += 1
        return True

    def _profile_id(self, role: UserRole, email: str) -> Optional[str]:
        docs = self.db.collection(ROLE_COLLECTIONS[role]).where("email", "==", email).limit(1).stream()
        for doc in docs:
            return doc.id
        return None

    def seed_host(self):
        if self._claim(UserRole.HOST, HOST["email"]):
            self.users.create_host(HOST["name"], HOST["email"], DEFAULT_STUDENT_PASSWORD)
            self.stats["created"] += 1

    def seed_staff(self, role: UserRole, entry: Dict[str, Any]):
        if not self._claim(role, entry["email"]):
            return
        profile = self.users.register_staff(
            name=entry["name"],
            email=entry["email"],
            role=role,
            password=DEFAULT_STUDENT_PASSWORD,
            department=entry.get("department"),
        )
        self.users.approve(role, profile["id"], entry["username"])
        self.stats["created"] += 1

    def seed_student(self, entry: Dict[str, Any]):
        if not self._claim(UserRole.STUDENT, entry["email"]):
            return
        self.students.register_student(dict(entry), DEFAULT_STUDENT_PASSWORD)
        self.stats["created"] += 1

    def seed_batch(self, entry: Dict[str, Any]):
        existing = list(
            self.db.collection(BATCHES_COLLECTION).where("name", "==", entry["name"]).limit(1).stream()
        )
        if existing:
            if not self.force:
                print(f"  [SKIP] batch {entry['name']} already exists")
                self.stats["skipped"] += 1
                return
            self.batches.delete_batch(existing[0].id)
            self.stats["replaced"] += 1

        data = {k: v for k, v in entry.items() if k not in ("teacher_emails", "student_ids")}
        data["teacherIds"] = [
            tid for tid in (self._profile_id(UserRole.TEACHER, e) for e in entry["teacher_emails"]) if tid
        ]
        data["studentIds"] = []
        students = self.db.collection(ROLE_COLLECTIONS[UserRole.STUDENT])
        for student_id in entry["student_ids"]:
            for doc in students.where("studentId", "==", student_id).limit(1).stream():
                data["studentIds"].append(doc.id)

        result = self.batches.create_batch(data)
        for skipped in result["skipped"]:
            print(f"  [WARNING] {skipped['studentId']} not added: {skipped['reason']}")
        self.stats["created"] += 1

    def run(self):
        print("\n[1/4] Seeding management account...")
        self.seed_host()

        print("\n[2/4] Seeding admin and teachers...")
        self.seed_staff(UserRole.ADMIN, ADMIN)
        for teacher in TEACHERS:
            self.seed_staff(UserRole.TEACHER, teacher)

        print("\n[3/4] Seeding students...")
        for student in STUDENTS:
            self.seed_student(student)

        print("\n[4/4] Seeding batches...")
        for batch in sample_batches(date.today()):
            self.seed_batch(batch)

        return self.stats


def seed_database(force: bool = False):
    print("=" * 60)
    print("FSP Portal Seed Script")
    print("=" * 60)
    print(f"Force: {force}")
    print(f"Started: {datetime.now()}")
    print("=" * 60)

    try:
        initialize_firebase()
    except Exception as e:
        print(f"ERROR: Failed to initialize Firebase: {e}")
        print("\nMake sure you have:")
        print("1. Downloaded your service account key from Firebase Console")
        print("2. Saved it as 'serviceAccountKey.json' in the backend folder")
        return None

    stats = PortalSeeder(force=force).run()

    print("\n" + "=" * 60)
    print("SEED COMPLETE")
    print("=" * 60)
    print(f"Created: {stats['created']}")
    print(f"Replaced: {stats['replaced']}")
    print(f"Skipped: {stats['skipped']}")
    print(f"Finished: {datetime.now()}")
    return stats


def main():
    parser = argparse.ArgumentParser(
        description="Seed the FSP Portal with default accounts and sample batches"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Delete and re-create seed records that already exist"
    )

    args = parser.parse_args()
    seed_database(force=args.force)


if __name__ == "__main__":
    main()
