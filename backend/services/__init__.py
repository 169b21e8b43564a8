from .activity import ActivityService, get_activity_service
from .announcements import AnnouncementService, get_announcement_service
from .students import StudentService, get_student_service
from .users import UserService, get_user_service
from .batches import BatchService, get_batch_service
from .attendance import AttendanceService, get_attendance_service
from .reports import ReportService, get_report_service
