"""
In-app notifications for feedback authors.
Records are written here; pushing them to devices is handled outside this service.
"""
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import Feedback, Notification, PushSubscription
from .access import Identity


log = structlog.get_logger(__name__)

STATUS_LABELS = {
    "PENDING": "Pending",
    "IN_PROGRESS": "In Progress",
    "RESOLVED": "Resolved",
    "REJECTED": "Rejected",
}


def notify_status_change(
    db: Session,
    feedback: Feedback,
    previous_status: str,
    actor: Optional[Identity] = None,
) -> Optional[Notification]:
    """
    Queue a notification for the feedback author about a status change.
    Authors changing their own record are not notified.
    """
    if actor is not None and actor.id == feedback.user_id:
        return None
    label = STATUS_LABELS.get(feedback.status, feedback.status)
    notification = Notification(
        user_id=feedback.user_id,
        title="Feedback status updated",
        body=f"Your report is now {label}",
        data={
            "feedbackId": str(feedback.id),
            "previousStatus": previous_status,
            "status": feedback.status,
        },
    )
    db.add(notification)
    has_device = db.query(PushSubscription).filter(PushSubscription.user_id == feedback.user_id).first() is not None
    log.info(
        "notification_queued",
        user_id=str(feedback.user_id),
        feedback_id=str(feedback.id),
        push_registered=has_device,
    )
    return notification
