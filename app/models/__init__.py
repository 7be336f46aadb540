# app/models/__init__.py

from .user import User, UserRole
from .patient import Patient, PatientAccess, AccessLevel
from .attendance import Attendance
from .medication import Medication
from .dose_record import DoseRecord, DoseStatus
from .notification import Notification, NotificationSeverity
from .audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "Patient",
    "PatientAccess",
    "AccessLevel",
    "Attendance",
    "Medication",
    "DoseRecord",
    "DoseStatus",
    "Notification",
    "NotificationSeverity",
    "AuditLog"
]
