# tests/test_slots_router.py
from datetime import date, datetime

from fastapi.testclient import TestClient

from factories import (
    FrozenClock,
    add_weekday_hours,
    make_busy_block,
    make_event,
    make_holiday,
    make_host,
    make_slot,
    make_booking,
    reset_db,
    session,
)

from app.core.clock import get_now
from app.core.errors import CalendarError
from app.main import app
from app.models.event import MeetingType
from app.services.calendar_client import get_calendar_client
from app.services.intervals import Interval

client = TestClient(app)


class FakeCalendarClient:
    def __init__(self):
        self.busy = []
        self.fail_free_busy = False
        self.created = []

    def free_busy(self, host, start, end):
        if self.fail_free_busy:
            raise CalendarError("503 from calendar")
        return list(self.busy)

    def create_event(self, host, *, summary, description, start, end, attendee_emails=None):
        self.created.append({"host_id": host.id, "summary": summary, "attendees": attendee_emails})
        return f"gcal-{len(self.created)}"

    def add_attendee(self, host, event_id, email):
        pass


fake_calendar = FakeCalendarClient()
clock = FrozenClock()


def setup_module(module):
    reset_db()
    app.dependency_overrides[get_calendar_client] = lambda: fake_calendar
    app.dependency_overrides[get_now] = clock


def teardown_module(module):
    app.dependency_overrides.clear()


def _clean_db():
    reset_db()
    fake_calendar.busy = []
    fake_calendar.fail_free_busy = False
    fake_calendar.created = []


def _setup_host(db, with_calendar=False, **event_kwargs):
    tokens = {"google_access_token": "at", "google_refresh_token": "rt"} if with_calendar else {}
    host = make_host(db, "Dana", **tokens)
    add_weekday_hours(db, host)
    event = make_event(db, host, **event_kwargs)
    return host, event


def _post_slot(event_id, start, end, **extra):
    payload = {
        "event_id": event_id,
        "start_time": start,
        "end_time": end,
    }
    payload.update(extra)
    return client.post("/api/slots", json=payload)


def test_create_slot_creates_calendar_event():
    _clean_db()
    db = session()
    try:
        host, event = _setup_host(db, with_calendar=True)
        event_id = event.id
    finally:
        db.close()

    resp = _post_slot(event_id, "2025-06-10T10:00:00", "2025-06-10T10:30:00")
    assert resp.status_code == 201, resp.text

    slot = resp.json()["slot"]
    assert slot["start_time"].startswith("2025-06-10T10:00")
    assert slot["calendar_event_id"] == "gcal-1"
    assert fake_calendar.created[0]["summary"] == "Team sync"


def test_create_slot_rejects_buffer_conflict():
    _clean_db()
    db = session()
    try:
        host, event = _setup_host(db, buffer_after=15)
        make_busy_block(db, host, datetime(2025, 6, 10, 10, 40), datetime(2025, 6, 10, 11, 0))
        event_id = event.id
    finally:
        db.close()

    resp = _post_slot(event_id, "2025-06-10T10:00:00", "2025-06-10T10:30:00")
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["reason"] == "CONFLICT"
    assert "15m after" in detail["error"]

    # 10:25 + 15m buffer ends exactly at the busy block: allowed
    ok = _post_slot(event_id, "2025-06-10T09:55:00", "2025-06-10T10:25:00")
    assert ok.status_code == 201, ok.text


def test_existing_slot_keeps_its_own_buffer():
    _clean_db()
    db = session()
    try:
        host, padded = _setup_host(db, buffer_after=30)
        make_slot(db, padded, datetime(2025, 6, 10, 10, 0), minutes=60)
        plain_id = make_event(db, host, name="Quick chat").id
    finally:
        db.close()

    resp = _post_slot(plain_id, "2025-06-10T11:00:00", "2025-06-10T11:30:00")
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "CONFLICT"

    ok = _post_slot(plain_id, "2025-06-10T11:30:00", "2025-06-10T12:00:00")
    assert ok.status_code == 201, ok.text


def test_live_busy_is_used_and_failure_falls_back_to_cache():
    _clean_db()
    db = session()
    try:
        host, event = _setup_host(db, with_calendar=True)
        make_busy_block(db, host, datetime(2025, 6, 11, 10, 0), datetime(2025, 6, 11, 11, 0))
        event_id = event.id
    finally:
        db.close()

    fake_calendar.busy = [Interval(datetime(2025, 6, 10, 10, 0), datetime(2025, 6, 10, 11, 0))]
    resp = _post_slot(event_id, "2025-06-10T10:00:00", "2025-06-10T10:30:00")
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "CONFLICT"

    fake_calendar.fail_free_busy = True
    assert _post_slot(event_id, "2025-06-10T10:00:00", "2025-06-10T10:30:00").status_code == 201
    # cached block still applies when the live call fails
    resp = _post_slot(event_id, "2025-06-11T10:00:00", "2025-06-11T10:30:00")
    assert resp.status_code == 400


def test_existing_slot_blocks_overlap():
    _clean_db()
    db = session()
    try:
        host, event = _setup_host(db)
        make_slot(db, event, datetime(2025, 6, 10, 10, 0))
        event_id = event.id
    finally:
        db.close()

    resp = _post_slot(event_id, "2025-06-10T10:15:00", "2025-06-10T10:45:00")
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "CONFLICT"


def test_holiday_and_outside_hours_rejected():
    _clean_db()
    db = session()
    try:
        host, event = _setup_host(db)
        make_holiday(db, date(2025, 6, 12), "Founders day")
        event_id = event.id
    finally:
        db.close()

    resp = _post_slot(event_id, "2025-06-12T10:00:00", "2025-06-12T10:30:00")
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"] == "Company holiday: Founders day"
    assert detail["reason"] == "HOLIDAY"

    resp = _post_slot(event_id, "2025-06-10T18:00:00", "2025-06-10T18:30:00")
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "OUTSIDE_HOURS"

    # no patterns on Saturday: not restricted by hours
    assert _post_slot(event_id, "2025-06-14T18:00:00", "2025-06-14T18:30:00").status_code == 201


def test_collective_slot_names_unavailable_host():
    _clean_db()
    db = session()
    try:
        owner = make_host(db, "Dana")
        co_host = make_host(db, "Omar")
        event = make_event(db, owner, MeetingType.COLLECTIVE, co_hosts=[co_host])
        make_busy_block(db, co_host, datetime(2025, 6, 10, 9, 0), datetime(2025, 6, 10, 12, 0))
        event_id, co_host_id = event.id, co_host.id
    finally:
        db.close()

    resp = _post_slot(event_id, "2025-06-10T10:00:00", "2025-06-10T10:30:00")
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["reason"] == "HOST_UNAVAILABLE"
    assert detail["host_ids"] == [co_host_id]
    assert detail["error"] == "Not all hosts are available. Unavailable: Omar"

    assert _post_slot(event_id, "2025-06-10T13:00:00", "2025-06-10T13:30:00").status_code == 201


def test_round_robin_slot_is_assigned():
    _clean_db()
    db = session()
    try:
        ana = make_host(db, "Ana")
        ben = make_host(db, "Ben")
        event = make_event(db, ana, MeetingType.ROUND_ROBIN, co_hosts=[ben])
        event_id, ana_id, ben_id = event.id, ana.id, ben.id
    finally:
        db.close()

    first = _post_slot(event_id, "2025-06-10T10:00:00", "2025-06-10T10:30:00").json()["slot"]
    second = _post_slot(event_id, "2025-06-10T10:00:00", "2025-06-10T10:30:00").json()["slot"]
    assert [first["assigned_host_id"], second["assigned_host_id"]] == [ana_id, ben_id]

    # both hosts now busy at 10:00
    resp = _post_slot(event_id, "2025-06-10T10:00:00", "2025-06-10T10:30:00")
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "HOST_UNAVAILABLE"


def test_create_slot_unknown_event_and_bad_range():
    _clean_db()
    assert _post_slot(999, "2025-06-10T10:00:00", "2025-06-10T10:30:00").status_code == 404
    assert _post_slot(1, "2025-06-10T10:30:00", "2025-06-10T10:00:00").status_code == 422


def test_list_slots_with_counts_and_policy_filter():
    _clean_db()
    db = session()
    try:
        host, event = _setup_host(db, max_attendees=2, waitlist_enabled=True)
        soon = make_slot(db, event, datetime(2025, 6, 2, 20, 0))  # 8h away
        later = make_slot(db, event, datetime(2025, 6, 10, 10, 0))
        make_booking(db, later, "a@example.com")
        make_booking(db, later, "b@example.com")
        make_booking(db, later, "c@example.com", waitlist_position=1)
        event_id, soon_id, later_id = event.id, soon.id, later.id
    finally:
        db.close()

    resp = client.get("/api/slots", params={"event_id": event_id})
    assert resp.status_code == 200, resp.text
    slots = resp.json()["slots"]
    assert [s["id"] for s in slots] == [later_id]
    assert slots[0]["confirmed"] == 2
    assert slots[0]["waitlisted"] == 1
    assert slots[0]["is_full"] is True

    resp = client.get(
        "/api/slots",
        params={"event_id": event_id, "include_all": True},
    )
    assert [s["id"] for s in resp.json()["slots"]] == [soon_id, later_id]


def test_available_slots_skip_busy_and_buffers():
    _clean_db()
    db = session()
    try:
        host = make_host(db, "Dana")
        add_weekday_hours(db, host, "09:00", "12:00", days=(2,))
        event = make_event(db, host, duration_minutes=60, start_time_increment=30)
        make_busy_block(db, host, datetime(2025, 6, 10, 10, 0), datetime(2025, 6, 10, 10, 30))
        event_id = event.id
    finally:
        db.close()

    resp = client.get(
        "/api/slots/available",
        params={
            "event_id": event_id,
            "start": "2025-06-10T00:00:00",
            "end": "2025-06-11T00:00:00",
        },
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert [s["start_time"][11:16] for s in data["slots"]] == ["09:00", "10:30", "11:00"]
    assert data["duration_minutes"] == 60
    assert "Book at least 1 day in advance" in data["constraints"]


def test_available_slots_collective_intersection_and_range_limit():
    _clean_db()
    db = session()
    try:
        owner = make_host(db, "Dana")
        co_host = make_host(db, "Omar")
        add_weekday_hours(db, owner, "09:00", "12:00", days=(2,))
        add_weekday_hours(db, co_host, "11:00", "15:00", days=(2,))
        event = make_event(db, owner, MeetingType.COLLECTIVE, co_hosts=[co_host])
        event_id = event.id
    finally:
        db.close()

    params = {
        "event_id": event_id,
        "start": "2025-06-10T00:00:00",
        "end": "2025-06-11T00:00:00",
    }
    resp = client.get("/api/slots/available", params=params)
    assert [s["start_time"][11:16] for s in resp.json()["slots"]] == ["11:00", "11:30"]

    params["end"] = "2025-09-10T00:00:00"
    resp = client.get("/api/slots/available", params=params)
    assert resp.status_code == 400
