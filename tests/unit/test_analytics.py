"""Unit tests for analytics helpers."""

from datetime import UTC, date, datetime, timedelta

import pytest

from wahub.models import DailyAnalytics, Message
from wahub.models.messaging import MessageDirection
from wahub.services.analytics import (
    analytics_day,
    as_utc,
    day_bounds,
    response_seconds,
    summarize_messages,
)

T0 = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


def msg(external_id: str, contact: str, direction: MessageDirection, minutes: int) -> Message:
    return Message(
        external_id=external_id,
        contact_id=contact,
        direction=direction.value,
        sent_at=T0 + timedelta(minutes=minutes),
    )


class TestDays:
    """Tests for calendar day assignment."""

    def test_naive_values_are_utc(self):
        assert as_utc(datetime(2026, 3, 10, 9, 0)) == T0

    def test_day_in_configured_timezone(self):
        late = datetime(2026, 3, 10, 23, 30, tzinfo=UTC)

        assert analytics_day(late, "UTC") == date(2026, 3, 10)
        assert analytics_day(late, "Europe/Berlin") == date(2026, 3, 11)

    def test_day_bounds(self):
        start, end = day_bounds(date(2026, 3, 10), "Europe/Berlin")

        assert start == datetime(2026, 3, 9, 23, 0, tzinfo=UTC)
        assert end == datetime(2026, 3, 10, 23, 0, tzinfo=UTC)

    def test_response_seconds_never_negative(self):
        assert response_seconds(T0, T0 + timedelta(seconds=90)) == 90
        assert response_seconds(T0, T0 - timedelta(seconds=5)) == 0


class TestSummarizeMessages:
    """Tests for recomputing a day's counters from its messages."""

    def test_counts_by_direction_and_contact(self):
        summary = summarize_messages(
            [
                msg("m1", "c1", MessageDirection.INCOMING, 0),
                msg("m2", "c1", MessageDirection.INCOMING, 1),
                msg("m3", "c2", MessageDirection.INCOMING, 2),
                msg("m4", "c1", MessageDirection.OUTGOING, 5),
            ]
        )

        assert summary["total_messages"] == 4
        assert summary["messages_received"] == 3
        assert summary["messages_sent"] == 1
        assert summary["unique_contacts"] == 2

    def test_reply_pairs_with_oldest_unanswered_message(self):
        summary = summarize_messages(
            [
                msg("m4", "c1", MessageDirection.OUTGOING, 10),
                msg("m1", "c1", MessageDirection.INCOMING, 0),
                msg("m2", "c1", MessageDirection.INCOMING, 4),
                msg("m5", "c1", MessageDirection.OUTGOING, 12),
            ]
        )

        # Only the first reply answers anything; the second has nothing waiting
        assert summary["response_count"] == 1
        assert summary["response_time_total_seconds"] == 600

    def test_outgoing_without_incoming_is_not_a_response(self):
        summary = summarize_messages([msg("m1", "c1", MessageDirection.OUTGOING, 0)])

        assert summary["response_count"] == 0
        assert summary["messages_sent"] == 1

    def test_empty_day(self):
        summary = summarize_messages([])

        assert summary == {
            "total_messages": 0,
            "messages_sent": 0,
            "messages_received": 0,
            "unique_contacts": 0,
            "response_count": 0,
            "response_time_total_seconds": 0,
        }


@pytest.mark.parametrize(
    "count, total, expected",
    [(0, 0, None), (2, 300, 150.0)],
)
def test_average_response_time(count, total, expected):
    row = DailyAnalytics(response_count=count, response_time_total_seconds=total)

    assert row.avg_response_seconds == expected
