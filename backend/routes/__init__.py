from .auth import router as auth_router
from .students import router as students_router
from .teachers import router as teachers_router
from .admins import router as admins_router
from .hosts import router as hosts_router
from .users import router as users_router
from .batches import router as batches_router
from .attendance import router as attendance_router
from .reports import router as reports_router
from .announcements import router as announcements_router
from .activity import router as activity_router

ROUTERS = [
    auth_router,
    students_router,
    teachers_router,
    admins_router,
    hosts_router,
    users_router,
    batches_router,
    attendance_router,
    reports_router,
    announcements_router,
    activity_router,
]
