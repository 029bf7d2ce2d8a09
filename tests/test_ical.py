"""
Tests for the schema-less VEVENT parser.

Some fixtures are serialized with the icalendar library, to make sure we
cope with real-world folding and escaping.
"""
from datetime import datetime
from datetime import timedelta
from datetime import timezone

from icalendar import Alarm
from icalendar import Calendar
from icalendar import Event

from davsync.ical import DEFAULT_SUMMARY
from davsync.ical import parse_event
from davsync.ical import parse_events
from davsync.ical import split_events
from davsync.ical import unfold

utc = timezone.utc

standup = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//Example Corp.//CalDAV Client//EN
BEGIN:VEVENT
UID:abc
DTSTAMP:20260101T000000Z
DTSTART:20260114T090000Z
DTEND:20260114T100000Z
SUMMARY:Standup
END:VEVENT
END:VCALENDAR
"""

allday_no_end = """BEGIN:VCALENDAR
VERSION:2.0
BEGIN:VEVENT
UID:holiday
DTSTART;VALUE=DATE:20260201
SUMMARY:Holiday
END:VEVENT
END:VCALENDAR
"""


def _serialized_calendar(summary, alarm=False):
    cal = Calendar()
    cal.add("prodid", "-//davsync tests//EN")
    cal.add("version", "2.0")
    event = Event()
    event.add("uid", "folded-1@example.com")
    event.add("summary", summary)
    event.add("dtstart", datetime(2026, 3, 2, 14, 0, tzinfo=utc))
    event.add("dtend", datetime(2026, 3, 2, 15, 30, tzinfo=utc))
    if alarm:
        valarm = Alarm()
        valarm.add("action", "DISPLAY")
        valarm.add("summary", "Reminder")
        valarm.add("trigger", timedelta(minutes=-15))
        valarm.add("duration", timedelta(minutes=5))
        valarm.add("repeat", 2)
        event.add_component(valarm)
    cal.add_component(event)
    return cal.to_ical().decode("utf-8")


class TestUnfold:
    def test_space_and_tab_continuations(self):
        assert unfold("SUMMARY:Long\r\n  line\r\n\t continued\r\nUID:1") == (
            "SUMMARY:Long line continued\nUID:1"
        )

    def test_bare_cr(self):
        assert unfold("A:1\rB:2") == "A:1\nB:2"


class TestSplitEvents:
    def test_two_events(self):
        text = "BEGIN:VEVENT\nUID:1\nEND:VEVENT\nBEGIN:VEVENT\nUID:2\nEND:VEVENT\n"
        assert split_events(text) == ["UID:1", "UID:2"]

    def test_no_events(self):
        assert split_events("BEGIN:VCALENDAR\nBEGIN:VTODO\nUID:1\nEND:VTODO\nEND:VCALENDAR") == []

    def test_trailing_fragment_dropped(self):
        text = "BEGIN:VEVENT\nUID:1\nEND:VEVENT\nBEGIN:VEVENT\nUID:2\n"
        assert split_events(text) == ["UID:1"]

    def test_unterminated_event_followed_by_another(self):
        text = "BEGIN:VEVENT\nUID:1\nBEGIN:VEVENT\nUID:2\nEND:VEVENT\n"
        assert split_events(text) == ["UID:2"]

    def test_nested_components_left_out(self):
        text = (
            "BEGIN:VEVENT\nUID:1\nBEGIN:VALARM\nSUMMARY:Ding\n"
            "END:VALARM\nSUMMARY:Meeting\nEND:VEVENT\n"
        )
        assert split_events(text) == ["UID:1\nSUMMARY:Meeting"]


class TestParseEvent:
    def test_standup(self):
        events = parse_events(standup)
        assert len(events) == 1
        event = events[0]
        assert event.uid == "abc"
        assert event.summary == "Standup"
        assert event.start == datetime(2026, 1, 14, 9, 0, tzinfo=utc)
        assert event.end == datetime(2026, 1, 14, 10, 0, tzinfo=utc)
        assert not event.is_all_day

    def test_all_day_without_end(self):
        (event,) = parse_events(allday_no_end)
        assert event.is_all_day
        assert event.start == datetime(2026, 2, 1).astimezone()
        assert event.end == event.start + timedelta(days=1)
        assert event.end.date() == datetime(2026, 2, 2).date()

    def test_timed_without_end_gets_one_hour(self):
        event = parse_event("UID:x\nDTSTART:20260114T090000Z")
        assert event.end == event.start + timedelta(hours=1)

    def test_duration(self):
        event = parse_event("UID:x\nDTSTART:20260114T090000Z\nDURATION:PT2H30M")
        assert event.end == datetime(2026, 1, 14, 11, 30, tzinfo=utc)

    def test_dtend_wins_over_duration(self):
        event = parse_event(
            "UID:x\nDURATION:PT2H\nDTSTART:20260114T090000Z\nDTEND:20260114T093000Z"
        )
        assert event.end == datetime(2026, 1, 14, 9, 30, tzinfo=utc)

    def test_duration_before_dtstart(self):
        event = parse_event("UID:x\nDURATION:PT2H\nDTSTART:20260114T090000Z")
        assert event.end == datetime(2026, 1, 14, 11, 0, tzinfo=utc)

    def test_end_before_start_is_replaced(self):
        event = parse_event(
            "UID:x\nDTSTART:20260114T090000Z\nDTEND:20260114T080000Z"
        )
        assert event.end == event.start + timedelta(hours=1)

    def test_end_equal_to_start_is_replaced(self):
        event = parse_event(
            "UID:x\nDTSTART;VALUE=DATE:20260114\nDTEND;VALUE=DATE:20260114"
        )
        assert event.end == event.start + timedelta(days=1)

    def test_all_day_is_sticky(self):
        event = parse_event(
            "UID:x\nDTSTART;VALUE=DATE:20260114\nDTEND:20260116T000000"
        )
        assert event.is_all_day

    def test_no_start(self):
        assert parse_event("UID:x\nSUMMARY:No start\nDTEND:20260114T090000Z") is None

    def test_unparseable_start(self):
        assert parse_event("UID:x\nDTSTART:someday") is None

    def test_no_uid(self):
        event = parse_event("DTSTART:20260114T090000Z\nSUMMARY:Anonymous")
        assert event.uid == "nouid-20260114T090000Z"

    def test_no_summary(self):
        event = parse_event("UID:x\nDTSTART:20260114T090000Z")
        assert event.summary == DEFAULT_SUMMARY

    def test_summary_trimmed_and_unescaped(self):
        event = parse_event(
            "UID:x\nDTSTART:20260114T090000Z\nSUMMARY:  Lunch\\, drinks\\; more\\nstuff  "
        )
        assert event.summary == "Lunch, drinks; more\nstuff"

    def test_quoted_colon_in_parameter(self):
        event = parse_event(
            'UID:x\nDTSTART:20260114T090000Z\nSUMMARY;ALTREP="http://example.com/x":Lunch'
        )
        assert event.summary == "Lunch"

    def test_tzid(self):
        event = parse_event("UID:x\nDTSTART;TZID=Europe/Oslo:20260114T090000")
        assert event.start == datetime(2026, 1, 14, 8, 0, tzinfo=utc)

    def test_lowercase_names(self):
        event = parse_event("uid:x\ndtstart;value=date:20260114\nsummary:Quiet")
        assert event.uid == "x"
        assert event.summary == "Quiet"
        assert event.is_all_day

    def test_quoted_tzid(self):
        event = parse_event('UID:x\nDTSTART;TZID="Europe/Oslo":20260114T090000')
        assert event.start == datetime(2026, 1, 14, 8, 0, tzinfo=utc)

    def test_escaped_backslash(self):
        event = parse_event("UID:x\nDTSTART:20260114T090000Z\nSUMMARY:C:\\\\temp")
        assert event.summary == "C:\\temp"

    def test_malformed_lines_skipped(self):
        event = parse_event(
            "UID:x\n"
            ";:no name\n"
            'X-ODD;P="a:b"\n'
            "BAD NAME:value\n"
            "DTSTART:20260114T090000Z\n"
            "SUMMARY:Still here"
        )
        assert event.summary == "Still here"
        assert event.start == datetime(2026, 1, 14, 9, 0, tzinfo=utc)

    def test_unknown_properties_ignored(self):
        event = parse_event(
            "UID:x\nX-WEIRD;FOO=bar:baz\nLOCATION:Room 1\nDTSTART:20260114T090000Z\nnonsense"
        )
        assert event.uid == "x"

    def test_key(self):
        event = parse_event("UID:x\nDTSTART:20260114T090000Z")
        assert event.key == ("x", datetime(2026, 1, 14, 9, 0, tzinfo=utc))


class TestParseEventsFromLibraryOutput:
    def test_folded_long_summary(self):
        summary = "Quarterly planning, budget review and " + "a very long tail " * 8
        text = _serialized_calendar(summary)
        ## make sure the fixture really is folded
        assert "\r\n " in text
        (event,) = parse_events(text)
        assert event.summary == summary.strip()
        assert event.uid == "folded-1@example.com"
        assert event.start == datetime(2026, 3, 2, 14, 0, tzinfo=utc)
        assert event.end == datetime(2026, 3, 2, 15, 30, tzinfo=utc)

    def test_alarm_does_not_leak(self):
        (event,) = parse_events(_serialized_calendar("Dentist", alarm=True))
        assert event.summary == "Dentist"
        assert event.end == datetime(2026, 3, 2, 15, 30, tzinfo=utc)

    def test_several_blocks_in_document_order(self):
        text = standup + allday_no_end + "BEGIN:VEVENT\nUID:broken\n"
        assert [e.uid for e in parse_events(text)] == ["abc", "holiday"]

    def test_empty(self):
        assert parse_events("") == []
