"""Tests for event post-processing."""

from calendar_proxy.events import (
    EventProcessor,
    group_by_calendar,
    is_declined,
    merge_consecutive,
    redact_private,
)
from calendar_proxy.models import BUSY_TITLE, CalendarEvent


def _event(**fields) -> CalendarEvent:
    return CalendarEvent.from_record(fields)


def _fragment(*lines: str) -> str:
    return "\r\n".join(("BEGIN:VEVENT",) + lines + ("END:VEVENT",))


class TestIsDeclined:
    """Tests for declined and cancelled detection."""

    def test_css_class(self):
        """Test exact css class tokens, case-insensitively."""
        assert is_declined(_event(**{"css-classes": ["event", "STATUS-DECLINED"]}))
        assert is_declined(_event(**{"css-classes": "event partstat-declined"}))
        assert not is_declined(_event(**{"css-classes": ["status-declined-maybe"]}))

    def test_status_field(self):
        """Test type/status fields equal to CANCELLED or DECLINED."""
        assert is_declined(_event(status="CANCELLED"))
        assert is_declined(_event(type="declined"))
        assert not is_declined(_event(status="CONFIRMED", type="event"))

    def test_fragment_status_line(self):
        """Test a top-level STATUS line in the raw fragment."""
        assert is_declined(_event(ical=_fragment("SUMMARY:x", "STATUS:CANCELLED")))
        assert is_declined(_event(ical=_fragment("STATUS:DECLINED")))
        assert not is_declined(_event(ical=_fragment("STATUS:CONFIRMED")))

    def test_nested_status_line_ignored(self):
        """Test a STATUS line inside a nested component does not count."""
        fragment = _fragment("BEGIN:VALARM", "STATUS:CANCELLED", "END:VALARM")
        assert not is_declined(_event(ical=fragment))

    def test_status_inside_calendar_wrapper(self):
        """Test a full VCALENDAR wrapper is handled."""
        fragment = "BEGIN:VCALENDAR\nVERSION:2.0\n" + _fragment("STATUS:CANCELLED") + "\nEND:VCALENDAR"
        assert is_declined(_event(ical=fragment))

    def test_owner_declined(self):
        """Test the configured owner's PARTSTAT=DECLINED hides the event."""
        fragment = _fragment("ATTENDEE;PARTSTAT=DECLINED;CN=Alice:mailto:alice@example.com")
        assert is_declined(_event(ical=fragment), ["alice@example.com"])

    def test_owner_declined_case_insensitive(self):
        """Test address matching ignores case."""
        fragment = _fragment("ATTENDEE;PARTSTAT=DECLINED:mailto:Alice@Example.com")
        assert is_declined(_event(ical=fragment), ["ALICE@example.COM"])

    def test_other_attendee_declined(self):
        """Test another attendee declining does not hide the event."""
        fragment = _fragment(
            "ATTENDEE;PARTSTAT=ACCEPTED:mailto:alice@example.com",
            "ATTENDEE;PARTSTAT=DECLINED:mailto:bob@example.com",
        )
        assert not is_declined(_event(ical=fragment), ["alice@example.com"])

    def test_owner_not_configured(self):
        """Test the attendee rule needs the address in the configured set."""
        fragment = _fragment("ATTENDEE;PARTSTAT=DECLINED:mailto:alice@example.com")
        assert not is_declined(_event(ical=fragment), [])
        assert not is_declined(_event(ical=fragment), ["carol@example.com"])

    def test_folded_attendee_line(self):
        """Test folded continuation lines are joined before matching."""
        fragment = _fragment("ATTENDEE;CN=Alice;PARTSTAT=DECLINED:mailto:alice@exa", " mple.com")
        assert is_declined(_event(ical=fragment), ["alice@example.com"])


class TestRedaction:
    """Tests for visibility redaction."""

    def test_event_without_visibility(self):
        """Test an event with no visibility field becomes BUSY with times intact."""
        event = _event(title="Secret", description="Details", start="2024-01-01T10:00:00Z", end="2024-01-01T11:00:00Z")
        [redacted] = redact_private([event])
        assert redacted.title == BUSY_TITLE
        assert redacted.description == ""
        assert redacted.start == "2024-01-01T10:00:00Z"
        assert redacted.end == "2024-01-01T11:00:00Z"
        assert redacted.redacted is True

    def test_public_unchanged(self, public_event):
        """Test public events pass through unchanged."""
        event = CalendarEvent.from_record(public_event)
        assert redact_private([event]) == [event]


class TestGrouping:
    """Tests for partitioning by calendar."""

    def test_groups_in_first_seen_order(self):
        events = [_event(calendarId="b"), _event(calendarId="a"), _event(calendarId="b"), _event()]
        groups = group_by_calendar(events)
        assert list(groups) == ["b", "a", None]
        assert len(groups["b"]) == 2


class TestMerge:
    """Tests for merging back-to-back events."""

    def test_touching_events_merge(self):
        """Test A{end:T} and B{start:T} merge into one block A.start..B.end."""
        a = _event(title="A", description="a", start="2024-01-01T09:00:00Z", end="2024-01-01T10:00:00Z", calendarId="1", **{"class": "PUBLIC"})
        b = _event(title="B", description="b", start="2024-01-01T10:00:00Z", end="2024-01-01T11:30:00Z", calendarId="1", **{"class": "PUBLIC"})
        [merged] = merge_consecutive([b, a])
        assert merged.start == "2024-01-01T09:00:00Z"
        assert merged.end == "2024-01-01T11:30:00Z"
        assert merged.title == "A + B"
        assert merged.description == "a\n\nb"

    def test_equivalent_timestamps_merge(self):
        """Test ends and starts are compared after normalization."""
        a = _event(start="2024-01-01T09:00:00Z", end="2024-01-01T10:00:00Z")
        b = _event(start="2024-01-01T11:00:00+01:00", end="2024-01-01T12:00:00+01:00")
        assert len(merge_consecutive([a, b])) == 1

    def test_gap_not_merged(self):
        """Test events with a gap stay separate."""
        a = _event(start="2024-01-01T09:00:00Z", end="2024-01-01T10:00:00Z")
        b = _event(start="2024-01-01T10:01:00Z", end="2024-01-01T11:00:00Z")
        assert len(merge_consecutive([a, b])) == 2

    def test_run_of_three(self):
        """Test a chain of touching events becomes one block."""
        events = [
            _event(start=f"2024-01-01T{h:02d}:00:00Z", end=f"2024-01-01T{h + 1:02d}:00:00Z")
            for h in (9, 10, 11)
        ]
        [merged] = merge_consecutive(events)
        assert merged.end == "2024-01-01T12:00:00Z"

    def test_redacted_side_redacts_merge(self):
        """Test merging with a redacted event yields a fully redacted block."""
        public = _event(title="Standup", description="notes", start="2024-01-01T09:00:00Z", end="2024-01-01T10:00:00Z", location="Room", **{"class": "PUBLIC"})
        private = _event(title="Doctor", start="2024-01-01T10:00:00Z", end="2024-01-01T11:00:00Z").redact()
        [merged] = merge_consecutive([public, private])
        assert merged.redacted
        assert merged.title == BUSY_TITLE
        record = merged.to_record()
        assert record["title"] == BUSY_TITLE
        assert record["description"] == ""
        assert record["location"] == ""
        assert record["end"] == "2024-01-01T11:00:00Z"

    def test_end_aliases_updated(self):
        """Test the merged end is written into every end alias of the record."""
        a = _event(start="2024-01-01T09:00:00Z", end="2024-01-01T10:00:00Z", endDate="2024-01-01T10:00:00Z")
        b = _event(start="2024-01-01T10:00:00Z", end="2024-01-01T11:00:00Z")
        record = merge_consecutive([a, b])[0].to_record()
        assert record["end"] == record["endDate"] == "2024-01-01T11:00:00Z"


class TestEventProcessor:
    """Tests for the full pipeline over raw records."""

    def test_different_calendars_not_merged(self):
        """Test A{calendar:1} and C{calendar:2, start:A.end} stay separate."""
        records = [
            {"title": "A", "calendar": 1, "start": "2024-01-01T09:00:00Z", "end": "2024-01-01T10:00:00Z", "class": "PUBLIC"},
            {"title": "C", "calendar": 2, "start": "2024-01-01T10:00:00Z", "end": "2024-01-01T11:00:00Z", "class": "PUBLIC"},
        ]
        result = EventProcessor().process(records)
        assert [r["title"] for r in result] == ["A", "C"]

    def test_pipeline(self, public_event, private_event):
        """Test declined events are dropped before redaction and merging."""
        declined = dict(public_event, name="Declined", status="CANCELLED")
        result = EventProcessor(user_emails=["alice@example.com"]).process(
            [private_event, declined, public_event]
        )
        assert [r["name"] for r in result] == ["Team sync", BUSY_TITLE]
        assert result[1]["location"] == ""
        assert result[1]["redacted"] is True

    def test_input_not_modified(self, private_event):
        """Test processing returns new records."""
        original = dict(private_event)
        EventProcessor().process([private_event])
        assert private_event == original

    def test_non_object_elements_kept(self):
        """Test non-object array elements are passed through."""
        assert EventProcessor().process(["x", 1]) == ["x", 1]

    def test_unparseable_timestamp_kept(self):
        """Test an odd upstream timestamp does not break the whole listing."""
        records = [
            {"title": "A", "start": "²", "end": "2024-01-01T10:00:00Z", "class": "PUBLIC"},
            {"title": "B", "start": "2024-01-01T09:00:00Z", "end": "2024-01-01T09:30:00Z", "class": "PUBLIC"},
        ]
        result = EventProcessor().process(records)
        assert [r["title"] for r in result] == ["B", "A"]
