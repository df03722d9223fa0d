from registry.models.trainer import Trainer, TrainerStatus
from registry.models.email_log import EmailLog, NotificationType, DeliveryStatus
from registry.models.admin_user import AdminUser

__all__ = [
    "Trainer", "TrainerStatus",
    "EmailLog", "NotificationType", "DeliveryStatus",
    "AdminUser",
]
