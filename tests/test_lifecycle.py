from datetime import datetime, timezone

import pytest

from municipal_feedback.models.models import Feedback, FeedbackStatus
from municipal_feedback.services.lifecycle import apply_status


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def report(status: FeedbackStatus = FeedbackStatus.PENDING) -> Feedback:
    return Feedback(status=status.value, resolved_at=None)


def test_resolving_sets_resolved_at():
    f = report(FeedbackStatus.IN_PROGRESS)
    assert apply_status(f, FeedbackStatus.RESOLVED, now=NOW) == "IN_PROGRESS"
    assert f.status == "RESOLVED"
    assert f.resolved_at == NOW


@pytest.mark.parametrize("target", [FeedbackStatus.PENDING, FeedbackStatus.IN_PROGRESS, FeedbackStatus.REJECTED])
def test_leaving_resolved_clears_resolved_at(target):
    f = report()
    apply_status(f, FeedbackStatus.RESOLVED, now=NOW)
    apply_status(f, target, now=NOW)
    assert f.status == target.value
    assert f.resolved_at is None


def test_same_status_is_a_no_op():
    f = report(FeedbackStatus.RESOLVED)
    f.resolved_at = NOW
    assert apply_status(f, "RESOLVED") is None
    assert f.resolved_at == NOW


def test_rejected_can_be_reopened():
    f = report(FeedbackStatus.REJECTED)
    assert apply_status(f, FeedbackStatus.PENDING) == "REJECTED"
    assert f.status == "PENDING"


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        apply_status(report(), "CLOSED")
