"""
Tests for the reservation state machine: request, decide, cancel, complete.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import DATE, OWNER, ExplodingNotifier, at, select
from app.application.exceptions import (
    AlreadyDecided,
    AlreadyHasActiveReservation,
    CapacityConflict,
    InvalidInput,
    NotAuthenticated,
    PastDeadline,
    PermissionDenied,
    SlotTaken,
)
from app.application.utils.record_paths import (
    APPOINTMENTS,
    availability_path,
    history_collection,
    history_path,
    pointer_path,
    request_path,
    slot_path,
)
from app.domain.entities.reservation import ReservationStatus, make_group_id

GROUP_15 = make_group_id(DATE, "15:00")


def _slot(store, hour):
    return store.get(slot_path(DATE, hour)).to_dict()


def _live_slots(store):
    return {s.to_dict()["hour"]: s.to_dict() for s in store.query(APPOINTMENTS)}


# -- requestReservation -------------------------------------------------------


def test_request_spans_contiguous_slots(engine_for, store):
    """90 minutes on an hourly grid at 15:00 occupies 15:00 and 16:00, both pending."""
    receipt = engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))

    assert receipt.group_id == GROUP_15
    assert receipt.slots == ("15:00", "16:00")
    assert receipt.total_duration_minutes == 90
    assert receipt.estimated_end == "16:30"

    head, member = _slot(store, "15:00"), _slot(store, "16:00")
    assert head["status"] == member["status"] == "pending"
    assert head["is_head"] is True
    assert member["is_head"] is False
    assert head["group_id"] == member["group_id"] == GROUP_15
    assert member["head_hour"] == "15:00"
    assert head["customer_id"] == "alice"
    assert head["created_at"] == at(9)

    pointer = store.get(pointer_path("alice")).to_dict()
    assert pointer["status"] == "pending"
    assert pointer["group_id"] == GROUP_15

    request = store.get(request_path(GROUP_15)).to_dict()
    assert request["status"] == "pending"
    assert request["slots"] == ["15:00", "16:00"]
    assert [s["id"] for s in request["services_selected"]] == ["full_set"]


def test_request_normalizes_bare_hour(engine_for, store):
    receipt = engine_for("alice").request_reservation(DATE, "17", select("polish"))
    assert receipt.start_hour == "17:00"
    assert store.get(slot_path(DATE, "17:00")).exists


def test_request_past_end_of_grid_is_capacity_conflict(engine_for, store):
    """17:00 plus 90 minutes needs an 18:00 slot that does not exist."""
    with pytest.raises(CapacityConflict):
        engine_for("alice").request_reservation(DATE, "17:00", select("full_set"))

    assert _live_slots(store) == {}
    assert not store.get(pointer_path("alice")).exists


def test_request_across_grid_gap_is_capacity_conflict(engine_for, store):
    store.set(availability_path(DATE), {"hours": ["15:00", "16:00", "18:00", "19:00"]})

    with pytest.raises(CapacityConflict):
        engine_for("alice").request_reservation(DATE, "16:00", select("full_set"))
    assert _live_slots(store) == {}


def test_request_rejects_hour_not_on_grid(engine_for):
    with pytest.raises(InvalidInput):
        engine_for("alice").request_reservation(DATE, "15:30", select("polish"))


def test_request_rejects_empty_selection(engine_for):
    with pytest.raises(InvalidInput):
        engine_for("alice").request_reservation(DATE, "15:00", select())


def test_request_rejects_bad_date(engine_for):
    with pytest.raises(InvalidInput):
        engine_for("alice").request_reservation("20-10-2026", "15:00", select("polish"))


def test_request_requires_authentication(engine_for):
    with pytest.raises(NotAuthenticated):
        engine_for(None).request_reservation(DATE, "15:00", select("polish"))


def test_request_for_past_slot_is_past_deadline(engine_for, clock, store):
    clock.set(at(15, 30))
    with pytest.raises(PastDeadline):
        engine_for("alice").request_reservation(DATE, "15:00", select("polish"))
    assert _live_slots(store) == {}


def test_request_on_closed_day_override(engine_for, store):
    """An empty override closes the day even though default hours exist."""
    store.set(availability_path(DATE), {"hours": []})
    with pytest.raises(InvalidInput):
        engine_for("alice").request_reservation(DATE, "15:00", select("polish"))


def test_occupied_slot_is_capacity_conflict(engine_for, store):
    """Alice already holds 16:00, so a 90-minute request from 15:00 cannot extend."""
    engine_for("alice").request_reservation(DATE, "16:00", select("polish"))

    with pytest.raises(CapacityConflict) as exc_info:
        engine_for("bob").request_reservation(DATE, "15:00", select("full_set"))
    assert exc_info.value.retryable is False
    assert list(_live_slots(store)) == ["16:00"]
    assert _slot(store, "16:00")["customer_id"] == "alice"
    assert not store.get(pointer_path("bob")).exists


def test_occupied_start_slot_is_capacity_conflict(engine_for, store):
    engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))

    with pytest.raises(CapacityConflict):
        engine_for("bob").request_reservation(DATE, "16:00", select("polish"))
    assert _slot(store, "16:00")["customer_id"] == "alice"


def test_grid_change_during_request_is_rechecked(engine_for, store):
    """An override committed mid-transaction removes 15:00; the retry sees the new grid."""
    store.before_next_commit = lambda: store.set(availability_path(DATE), {"hours": ["17:00"]})

    with pytest.raises(InvalidInput):
        engine_for("alice").request_reservation(DATE, "15:00", select("polish"))

    assert _live_slots(store) == {}
    assert not store.get(pointer_path("alice")).exists
    assert not store.get(request_path(GROUP_15)).exists


def test_second_active_reservation_is_refused(engine_for):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))

    with pytest.raises(AlreadyHasActiveReservation):
        alice.request_reservation(DATE, "17:00", select("polish"))


def test_rejected_pointer_does_not_block_new_request(engine_for, owner, store):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))
    owner.reject(GROUP_15)

    receipt = alice.request_reservation(DATE, "17:00", select("polish"))

    pointer = store.get(pointer_path("alice")).to_dict()
    assert pointer["status"] == "pending"
    assert pointer["group_id"] == receipt.group_id


def test_lost_race_gets_slot_taken(engine_for, store):
    """Bob commits 16:00 while Alice's 15:00-16:00 transaction is in flight; only Bob wins."""
    bob_receipts = []
    store.before_next_commit = lambda: bob_receipts.append(
        engine_for("bob").request_reservation(DATE, "16:00", select("polish"))
    )

    with pytest.raises(SlotTaken):
        engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))

    assert len(bob_receipts) == 1
    slots = _live_slots(store)
    assert list(slots) == ["16:00"]
    assert slots["16:00"]["customer_id"] == "bob"
    assert not store.get(pointer_path("alice")).exists
    assert not store.get(request_path(GROUP_15)).exists


def test_concurrent_requests_have_one_winner(engine_for, store):
    """Many customers racing for overlapping windows never share a slot."""
    customers = [f"customer-{i}" for i in range(8)]
    start = threading.Barrier(len(customers))

    def attempt(customer_id: str, hour: str, service: str):
        engine = engine_for(customer_id)
        start.wait()
        try:
            return engine.request_reservation(DATE, hour, select(service))
        except (SlotTaken, CapacityConflict):
            return None

    jobs = [
        (c, "15:00", "full_set") if i % 2 == 0 else (c, "16:00", "polish")
        for i, c in enumerate(customers)
    ]
    with ThreadPoolExecutor(max_workers=len(customers)) as pool:
        results = list(pool.map(lambda job: attempt(*job), jobs))

    winners = [r for r in results if r is not None]
    assert len(winners) == 1

    owners_by_hour: dict[str, set[str]] = {}
    for snap in store.query(APPOINTMENTS):
        data = snap.to_dict()
        owners_by_hour.setdefault(data["hour"], set()).add(data["group_id"])
    assert all(len(groups) == 1 for groups in owners_by_hour.values())

    claimed = [h for r in winners for h in r.slots]
    assert len(claimed) == len(set(claimed))


# -- owner decisions ------------------------------------------------------------


def test_reject_clears_slots_and_pointer(engine_for, owner, store, notifier):
    engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))

    group = owner.reject(GROUP_15)

    assert group.status == ReservationStatus.rejected
    assert _live_slots(store) == {}
    pointer = store.get(pointer_path("alice")).to_dict()
    assert pointer["status"] == "rejected"
    assert pointer["group_id"] is None
    assert pointer["slots"] == []
    request = store.get(request_path(GROUP_15)).to_dict()
    assert request["status"] == "rejected"
    assert request["decided_by"] == OWNER
    assert store.query(history_collection("alice")) == []
    assert notifier.sent[-1][0] == "alice"


def test_reject_can_write_history_when_enabled(engine_for, store):
    engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))

    engine_for(OWNER, record_rejections_in_history=True).reject(GROUP_15)

    history = store.get(history_path("alice", GROUP_15)).to_dict()
    assert history["status"] == "rejected"
    assert history["slots"] == ["15:00", "16:00"]


def test_approve_flips_every_record(engine_for, owner, store, notifier):
    engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))

    group = owner.approve(GROUP_15)

    assert group.status == ReservationStatus.approved
    assert _slot(store, "15:00")["status"] == "approved"
    assert _slot(store, "16:00")["status"] == "approved"
    assert _slot(store, "16:00")["approved_by"] == OWNER
    assert store.get(pointer_path("alice")).to_dict()["status"] == "approved"
    request = store.get(request_path(GROUP_15)).to_dict()
    assert request["status"] == "approved"
    assert request["decided_at"] == at(9)
    assert notifier.sent[-1][1] == "Appointment approved"


def test_decisions_are_owner_only(engine_for):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))

    with pytest.raises(PermissionDenied):
        alice.approve(GROUP_15)
    with pytest.raises(PermissionDenied):
        engine_for("bob").reject(GROUP_15)


def test_approve_twice_is_already_decided(engine_for, owner):
    engine_for("alice").request_reservation(DATE, "15:00", select("polish"))
    owner.approve(GROUP_15)

    with pytest.raises(AlreadyDecided):
        owner.approve(GROUP_15)
    with pytest.raises(AlreadyDecided):
        owner.reject(GROUP_15)


def test_approve_after_customer_cancelled_is_already_decided(engine_for, owner):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))
    alice.cancel_pending_request(GROUP_15)

    with pytest.raises(AlreadyDecided):
        owner.approve(GROUP_15)


def test_approve_refuses_when_a_slot_went_missing(engine_for, owner, store):
    """A group with a missing member is left untouched rather than half-approved."""
    engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))
    store.delete(slot_path(DATE, "16:00"))

    with pytest.raises(AlreadyDecided):
        owner.approve(GROUP_15)

    assert _slot(store, "15:00")["status"] == "pending"
    assert store.get(pointer_path("alice")).to_dict()["status"] == "pending"
    assert store.get(request_path(GROUP_15)).to_dict()["status"] == "pending"


def test_interrupted_approve_leaves_group_whole(engine_for, owner, store):
    """A crash before commit writes nothing; the retried approve flips every slot."""
    engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))

    def crash():
        raise RuntimeError("connection dropped")

    store.before_next_commit = crash
    with pytest.raises(RuntimeError):
        owner.approve(GROUP_15)

    assert {s["status"] for s in _live_slots(store).values()} == {"pending"}

    owner.approve(GROUP_15)
    assert {s["status"] for s in _live_slots(store).values()} == {"approved"}


def test_interrupted_reject_leaves_group_whole(engine_for, owner, store):
    engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))

    def crash():
        raise RuntimeError("connection dropped")

    store.before_next_commit = crash
    with pytest.raises(RuntimeError):
        owner.reject(GROUP_15)

    slots = _live_slots(store)
    assert list(slots) == ["15:00", "16:00"]
    assert {s["status"] for s in slots.values()} == {"pending"}
    assert store.get(pointer_path("alice")).to_dict()["group_id"] == GROUP_15
    assert store.get(request_path(GROUP_15)).to_dict()["status"] == "pending"

    owner.reject(GROUP_15)
    assert _live_slots(store) == {}
    pointer = store.get(pointer_path("alice")).to_dict()
    assert pointer["status"] == "rejected"
    assert pointer["group_id"] is None
    assert store.get(request_path(GROUP_15)).to_dict()["status"] == "rejected"


def test_interrupted_cancel_approved_leaves_group_whole(engine_for, owner, store):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("full_set"))
    owner.approve(GROUP_15)

    def crash():
        raise RuntimeError("connection dropped")

    store.before_next_commit = crash
    with pytest.raises(RuntimeError):
        alice.cancel_approved(DATE, "15:00")

    slots = _live_slots(store)
    assert list(slots) == ["15:00", "16:00"]
    assert {s["status"] for s in slots.values()} == {"approved"}
    assert store.get(pointer_path("alice")).to_dict()["status"] == "approved"
    assert store.query(history_collection("alice")) == []

    alice.cancel_approved(DATE, "15:00")
    assert _live_slots(store) == {}
    assert not store.get(pointer_path("alice")).exists
    history = store.get(history_path("alice", GROUP_15)).to_dict()
    assert history["status"] == "cancelled"
    assert history["slots"] == ["15:00", "16:00"]


def test_notification_failure_does_not_undo_approval(engine_for, store):
    engine_for("alice").request_reservation(DATE, "15:00", select("polish"))

    engine_for(OWNER, notifier=ExplodingNotifier()).approve(GROUP_15)

    assert _slot(store, "15:00")["status"] == "approved"


# -- cancelPendingRequest ------------------------------------------------------


def test_cancel_pending_is_idempotent(engine_for, store):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("full_set"))

    assert alice.cancel_pending_request(GROUP_15) == 2
    assert alice.cancel_pending_request(GROUP_15) == 0

    assert _live_slots(store) == {}
    assert not store.get(pointer_path("alice")).exists
    assert not store.get(request_path(GROUP_15)).exists
    assert store.query(history_collection("alice")) == []


def test_cancel_pending_only_removes_own_records(engine_for, store):
    """A retry after partial cleanup must not delete a slot someone else now holds."""
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("full_set"))
    store.delete(slot_path(DATE, "16:00"))
    engine_for("bob").request_reservation(DATE, "16:00", select("polish"))

    assert alice.cancel_pending_request(GROUP_15) == 1
    assert _slot(store, "16:00")["customer_id"] == "bob"


def test_cancel_pending_of_another_customer_is_denied(engine_for, store):
    engine_for("alice").request_reservation(DATE, "15:00", select("polish"))

    with pytest.raises(PermissionDenied):
        engine_for("bob").cancel_pending_request(GROUP_15)
    assert store.get(slot_path(DATE, "15:00")).exists


def test_cancel_pending_after_anchor_is_past_deadline(engine_for, clock):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))
    clock.set(at(15, 0, 1))

    with pytest.raises(PastDeadline):
        alice.cancel_pending_request(GROUP_15)


def test_cancel_pending_of_approved_is_already_decided(engine_for, owner):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))
    owner.approve(GROUP_15)

    with pytest.raises(AlreadyDecided):
        alice.cancel_pending_request(GROUP_15)


# -- cancelApproved ------------------------------------------------------------


def test_customer_cancels_approved_from_head(engine_for, owner, store):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("full_set"))
    owner.approve(GROUP_15)

    group = alice.cancel_approved(DATE, "15:00")

    assert group.status == ReservationStatus.cancelled
    assert _live_slots(store) == {}
    assert not store.get(pointer_path("alice")).exists
    history = store.get(history_path("alice", GROUP_15)).to_dict()
    assert history["status"] == "cancelled"
    assert history["cancelled_by"] == "customer"
    assert history["cancelled_at"] == at(9)
    assert history["slots"] == ["15:00", "16:00"]
    assert history["total_duration_minutes"] == 90
    assert [s["id"] for s in history["services_selected"]] == ["full_set"]


def test_owner_cancels_approved_and_customer_is_told(engine_for, owner, store, notifier):
    engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))
    owner.approve(GROUP_15)

    owner.cancel_approved(DATE, "15:00")

    assert store.get(history_path("alice", GROUP_15)).to_dict()["cancelled_by"] == "owner"
    assert notifier.sent[-1][:2] == ("alice", "Appointment cancelled")


def test_cancel_approved_must_use_head_slot(engine_for, owner):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("full_set"))
    owner.approve(GROUP_15)

    with pytest.raises(InvalidInput):
        alice.cancel_approved(DATE, "16:00")


def test_cancel_approved_of_another_customer_is_denied(engine_for, owner, store):
    engine_for("alice").request_reservation(DATE, "15:00", select("polish"))
    owner.approve(GROUP_15)

    with pytest.raises(PermissionDenied):
        engine_for("bob").cancel_approved(DATE, "15:00")
    assert _slot(store, "15:00")["status"] == "approved"


def test_cancel_approved_of_pending_is_invalid(engine_for):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))

    with pytest.raises(InvalidInput):
        alice.cancel_approved(DATE, "15:00")


def test_cancel_approved_after_anchor_is_past_deadline(engine_for, owner, clock):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))
    owner.approve(GROUP_15)
    clock.set(at(15, 10))

    with pytest.raises(PastDeadline):
        alice.cancel_approved(DATE, "15:00")


# -- completeIfPassed ----------------------------------------------------------


def test_complete_after_time_and_grace(engine_for, owner, store, clock):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("full_set"))
    owner.approve(GROUP_15)
    before = store.get(pointer_path("alice")).to_dict()

    clock.set(at(16, 2))
    group = alice.complete_if_passed()

    assert group is not None
    assert group.status == ReservationStatus.completed
    assert not store.get(pointer_path("alice")).exists
    history = store.get(history_path("alice", GROUP_15)).to_dict()
    assert history["status"] == "completed"
    assert history["completed_at"] == at(16, 2)
    assert history["slots"] == before["slots"]
    assert history["services_selected"] == before["services_selected"]
    assert history["total_duration_minutes"] == before["total_duration_minutes"]
    assert {s["status"] for s in _live_slots(store).values()} == {"completed"}


def test_complete_waits_for_grace_window(engine_for, owner, store, clock):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))
    owner.approve(GROUP_15)

    clock.set(at(15, 0, 30))
    assert alice.complete_if_passed() is None
    assert store.get(pointer_path("alice")).to_dict()["status"] == "approved"

    clock.set(at(15, 1, 1))
    assert alice.complete_if_passed() is not None


def test_customer_can_book_again_after_completion(engine_for, owner, store, clock):
    """A completed reservation no longer counts as active for the customer."""
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("polish"))
    owner.approve(GROUP_15)
    clock.set(at(16, 0))
    alice.complete_if_passed()

    receipt = alice.request_reservation(DATE, "17:00", select("polish"))
    assert receipt.slots == ("17:00",)


def test_lapsed_pending_request_is_cleared_without_history(engine_for, store, clock):
    alice = engine_for("alice")
    alice.request_reservation(DATE, "15:00", select("full_set"))
    clock.set(at(15, 5))

    group = alice.complete_if_passed()

    assert group is not None
    assert group.status == ReservationStatus.cancelled
    assert _live_slots(store) == {}
    assert not store.get(pointer_path("alice")).exists
    assert not store.get(request_path(GROUP_15)).exists
    assert store.query(history_collection("alice")) == []


def test_complete_for_someone_else_is_denied(engine_for):
    with pytest.raises(PermissionDenied):
        engine_for("bob").complete_if_passed("alice")


def test_complete_without_reservation_is_noop(engine_for):
    assert engine_for("alice").complete_if_passed() is None


# -- manual bookings -----------------------------------------------------------


def test_manual_booking_is_approved_immediately(owner, store):
    record = owner.create_manual_booking(DATE, "16", "Dana Levi", "050-123-4567", "Gel refill")

    assert record.status == ReservationStatus.approved
    data = _slot(store, "16:00")
    assert data["source"] == "owner_manual"
    assert data["customer_id"] is None
    assert data["customer_name"] == "Dana Levi"
    assert data["customer_phone"] == "0501234567"
    assert data["service_label"] == "Gel refill"
    assert data["is_head"] is True
    assert store.query("appointment_requests") == []
    assert store.query("user_reservations") == []


def test_manual_booking_blocks_customer_request(owner, engine_for):
    owner.create_manual_booking(DATE, "16:00", "Dana", "0501234567")

    with pytest.raises(CapacityConflict):
        engine_for("alice").request_reservation(DATE, "15:00", select("full_set"))


def test_manual_booking_validation(owner, engine_for):
    with pytest.raises(InvalidInput):
        owner.create_manual_booking(DATE, "16:00", "Dana", "12345")
    with pytest.raises(InvalidInput):
        owner.create_manual_booking(DATE, "16:00", "  ", "0501234567")
    with pytest.raises(InvalidInput):
        owner.create_manual_booking(DATE, "16:30", "Dana", "0501234567")
    with pytest.raises(PermissionDenied):
        engine_for("alice").create_manual_booking(DATE, "16:00", "Dana", "0501234567")


def test_manual_booking_on_taken_slot(owner, engine_for):
    engine_for("alice").request_reservation(DATE, "16:00", select("polish"))

    with pytest.raises(SlotTaken):
        owner.create_manual_booking(DATE, "16:00", "Dana", "0501234567")


def test_owner_cancels_manual_booking_without_history(owner, store):
    owner.create_manual_booking(DATE, "16:00", "Dana", "0501234567")

    group = owner.cancel_approved(DATE, "16:00")

    assert group.status == ReservationStatus.cancelled
    assert _live_slots(store) == {}
