from datetime import datetime, timedelta, timezone

import pytest

from municipal_feedback.models.models import Feedback, FeedbackCategory, FeedbackStatus
from municipal_feedback.services.statistics import (
    average_resolution_days,
    feedback_statistics,
    feedback_summary,
)


NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
DAY = timedelta(days=1)


class TestAverageResolutionDays:
    def test_empty_is_zero(self):
        assert average_resolution_days([], now=NOW) == 0

    def test_mean_in_days_rounded_to_two_places(self):
        pairs = [
            (NOW - 10 * DAY, NOW - 8 * DAY),
            (NOW - 10 * DAY, NOW - 9 * DAY),
            (NOW - 3 * DAY, NOW - 3 * DAY + timedelta(hours=8)),
        ]
        # (2 + 1 + 1/3) / 3
        assert average_resolution_days(pairs, now=NOW) == 1.11

    def test_future_and_negative_durations_are_skipped(self):
        pairs = [
            (NOW - 4 * DAY, NOW - 2 * DAY),
            (NOW - 1 * DAY, NOW + 1 * DAY),
            (NOW - 1 * DAY, NOW - 2 * DAY),
            (None, NOW),
        ]
        assert average_resolution_days(pairs, now=NOW) == 2

    def test_naive_timestamps_are_treated_as_utc(self):
        created = datetime(2024, 5, 1)
        resolved = datetime(2024, 5, 4)
        assert average_resolution_days([(created, resolved)], now=NOW) == 3


@pytest.fixture
def seeded(db, town_a, town_b, citizen_a, citizen_b):
    def add(town, author, category, status, created, resolved=None, lat=45.0, lng=-73.0):
        db.add(
            Feedback(
                description="report",
                category=category.value,
                status=status.value,
                latitude=lat,
                longitude=lng,
                user_id=author.id,
                municipality_id=town.id,
                created_at=created,
                resolved_at=resolved,
            )
        )

    add(town_a, citizen_a, FeedbackCategory.SAFETY, FeedbackStatus.PENDING, NOW - 5 * DAY)
    add(town_a, citizen_a, FeedbackCategory.SAFETY, FeedbackStatus.IN_PROGRESS, NOW - 4 * DAY)
    add(town_a, citizen_a, FeedbackCategory.CLEANLINESS, FeedbackStatus.RESOLVED, NOW - 6 * DAY, NOW - 4 * DAY)
    add(town_a, citizen_a, FeedbackCategory.OTHER, FeedbackStatus.RESOLVED, NOW - 20 * DAY, NOW - 16 * DAY, lat=45.1)
    add(town_a, citizen_a, FeedbackCategory.OTHER, FeedbackStatus.REJECTED, NOW - 2 * DAY, lat=45.1)
    add(town_b, citizen_b, FeedbackCategory.SAFETY, FeedbackStatus.RESOLVED, NOW - 3 * DAY, NOW - 1 * DAY)
    db.commit()


class TestFeedbackStatistics:
    def test_counts_and_histograms(self, db, seeded, town_a):
        stats = feedback_statistics(db, town_a.id, now=NOW)
        assert stats["totalFeedback"] == 5
        assert stats["openIssues"] == 2
        assert stats["resolvedIssues"] == 2
        assert stats["statusDistribution"] == {"PENDING": 1, "IN_PROGRESS": 1, "RESOLVED": 2, "REJECTED": 1}
        assert stats["feedbackByCategory"] == {"SAFETY": 2, "CLEANLINESS": 1, "OTHER": 2}
        assert stats["averageResolutionTime"] == 3

    def test_date_window_filters_on_created_at(self, db, seeded, town_a):
        stats = feedback_statistics(db, town_a.id, start=NOW - 10 * DAY, end=NOW, now=NOW)
        assert stats["totalFeedback"] == 4
        assert stats["resolvedIssues"] == 1
        assert stats["averageResolutionTime"] == 2
        assert stats["dateRange"]["startDate"] == (NOW - 10 * DAY).isoformat()

    def test_municipality_without_feedback(self, db, make_municipality):
        empty = make_municipality("Empty", "Nowhere")
        stats = feedback_statistics(db, empty.id, now=NOW)
        assert stats["totalFeedback"] == 0
        assert stats["statusDistribution"] == {}
        assert stats["averageResolutionTime"] == 0


class TestFeedbackSummary:
    def test_hotspots_and_trend(self, db, seeded, town_a):
        result = feedback_summary(db, town_a.id)
        summary = result["summary"]
        areas = summary["mostActiveAreas"]
        assert list(areas) == ["45.0000,-73.0000", "45.1000,-73.0000"]
        assert areas["45.0000,-73.0000"]["count"] == 3
        assert areas["45.1000,-73.0000"]["categories"] == {"OTHER": 2}
        trend = summary["responseTimeTrend"]
        assert [t["responseTime"] for t in trend] == [48.0, 96.0]
