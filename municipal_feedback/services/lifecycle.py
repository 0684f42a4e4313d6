"""
Feedback status transitions.

Any transition between PENDING, IN_PROGRESS, RESOLVED and REJECTED is allowed.
``resolved_at`` is set on entering RESOLVED and cleared on leaving it.
"""
from datetime import datetime
from typing import Optional, Union

from ..models.models import Feedback, FeedbackStatus, utcnow


def apply_status(
    feedback: Feedback,
    new_status: Union[FeedbackStatus, str],
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Set ``feedback.status`` and keep ``resolved_at`` in step.

    Returns the previous status, or None when nothing changed.
    """
    target = FeedbackStatus(new_status).value
    previous = feedback.status
    if previous == target:
        return None
    feedback.status = target
    if target == FeedbackStatus.RESOLVED.value:
        feedback.resolved_at = now or utcnow()
    else:
        feedback.resolved_at = None
    return previous
