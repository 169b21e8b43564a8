from .config import get_firestore_client, initialize_firebase, FIREBASE_CONFIG
from .constants import (
    UserRole,
    ApprovalStatus,
    StudentStatus,
    BatchStatus,
    AttendanceStatus,
    SessionHalf,
    DEPARTMENTS,
)
from .schedule import BatchScheduleManager, build_timetable, batches_conflict
from .parsers import find_value, parse_student_row
from .exceptions import (
    PortalError,
    NotFoundError,
    ConflictError,
    InvalidRequestError,
    PermissionDeniedError,
)
from .auth import (
    AuthenticatedUser,
    get_current_user,
    get_current_student,
    get_current_staff,
    get_current_admin,
    get_current_host,
    require_roles,
    verify_user_access,
)
