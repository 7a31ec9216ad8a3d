from __future__ import annotations

from pywaweb.bridge import (
    Admission,
    EventBridge,
    Removal,
    classify_record_admission,
    classify_record_removal,
)
from pywaweb.records import (
    DomainEvent,
    InboundRecord,
    IsNew,
    MessageAdded,
    MessageRemoved,
    MessageTypeResolved,
    StateReady,
)
from pywaweb.remote import InMemoryRemoteStore


def _rec(rid: str, is_new: object = True, rtype: str = "chat") -> InboundRecord:
    return InboundRecord.from_js({"id": rid, "isNewMsg": is_new, "type": rtype})


def _bridge(store: InMemoryRemoteStore, **kwargs) -> tuple[EventBridge, list[DomainEvent]]:
    events: list[DomainEvent] = []
    bridge = EventBridge(store, events.append, **kwargs)
    bridge.attach()
    return bridge, events


def _added_ids(events: list[DomainEvent]) -> list[str]:
    return [e.record.id for e in events if isinstance(e, MessageAdded)]


def test_classify_admission_only_explicit_false_rejects() -> None:
    assert classify_record_admission(_rec("1", True)) is Admission.ADMIT
    assert classify_record_admission(_rec("2", None)) is Admission.ADMIT
    assert classify_record_admission(_rec("3", False)) is Admission.REJECT
    # Falsy but not `false`.
    assert classify_record_admission(_rec("4", 0)) is Admission.ADMIT


def test_classify_admission_defers_pending_types() -> None:
    assert classify_record_admission(_rec("1", True, "ciphertext")) is Admission.DEFER
    assert classify_record_admission(_rec("2", None, "ciphertext")) is Admission.DEFER
    # Stale wins over pending.
    assert classify_record_admission(_rec("3", False, "ciphertext")) is Admission.REJECT
    assert (
        classify_record_admission(_rec("4", True, "ptt"), pending_types={"ptt"})
        is Admission.DEFER
    )


def test_classify_removal() -> None:
    assert classify_record_removal(_rec("1", True)) is Removal.EMIT
    assert classify_record_removal(_rec("2", None)) is Removal.EMIT
    assert classify_record_removal(_rec("3", False)) is Removal.SUPPRESS


def test_ready_when_already_synced_fires_once_before_records() -> None:
    store = InMemoryRemoteStore(synced=True)
    bridge, events = _bridge(store)
    assert events == [StateReady()]
    assert bridge.ready_fired

    store.add_record(_rec("1"))
    store.set_synced(False)
    store.set_synced(True)
    assert events == [StateReady(), MessageAdded(store.get_record("1"))]


def test_ready_after_transition_fires_once_at_transition() -> None:
    store = InMemoryRemoteStore(synced=False)
    _, events = _bridge(store)
    assert events == []

    store.set_synced(True)
    assert events == [StateReady()]

    store.set_synced(None)
    store.set_synced(True)
    assert events == [StateReady()]


def test_ready_guard_when_check_and_listener_both_see_true() -> None:
    store = InMemoryRemoteStore(synced=True)
    events: list[DomainEvent] = []
    bridge = EventBridge(store, events.append)
    bridge.attach_ready_signal()
    # Listener path observes the same true flag again.
    bridge._on_sync_change(True)
    assert events == [StateReady()]


def test_record_batch_filters_stale() -> None:
    store = InMemoryRemoteStore(synced=True)
    _, events = _bridge(store)
    store.add_record(_rec("1", True))
    store.add_record(_rec("2", None))
    store.add_record(_rec("3", False))
    assert _added_ids(events) == ["1", "2"]


def test_duplicate_add_delivered_once() -> None:
    store = InMemoryRemoteStore()
    _, events = _bridge(store)
    store.add_record(_rec("1"))
    store.add_record(_rec("1"))
    assert _added_ids(events) == ["1"]


def test_pending_record_resolves_to_single_type_resolved() -> None:
    store = InMemoryRemoteStore()
    bridge, events = _bridge(store)

    store.add_record(_rec("4", True, "ciphertext"))
    assert events == []
    assert bridge.pending_ids == {"4"}

    store.set_record_type("4", "chat")
    assert len(events) == 1
    resolved = events[0]
    assert isinstance(resolved, MessageTypeResolved)
    assert resolved.record.id == "4"
    assert resolved.record.type == "chat"
    assert resolved.previous_type == "ciphertext"
    assert bridge.pending_ids == frozenset()

    # Later type changes and add replays do nothing.
    store.set_record_type("4", "image")
    store.add_record(store.get_record("4"))
    assert len(events) == 1
    assert _added_ids(events) == []


def test_pending_record_still_pending_keeps_waiting() -> None:
    store = InMemoryRemoteStore()
    bridge, events = _bridge(store, pending_types={"ciphertext", "e2e_placeholder"})

    store.add_record(_rec("5", None, "ciphertext"))
    store.set_record_type("5", "e2e_placeholder")
    assert events == []
    assert bridge.pending_ids == {"5"}

    store.set_record_type("5", "chat")
    assert [type(e) for e in events] == [MessageTypeResolved]
    assert events[0].previous_type == "ciphertext"


def test_pending_record_added_twice_registers_one_watcher() -> None:
    store = InMemoryRemoteStore()
    _, events = _bridge(store)
    rec = _rec("6", True, "ciphertext")
    store.add_record(rec)
    store.add_record(rec)
    assert store.watched_ids == {"6"}

    store.set_record_type("6", "chat")
    assert len(events) == 1


def test_unresolved_pending_record_is_never_delivered() -> None:
    store = InMemoryRemoteStore()
    bridge, events = _bridge(store)
    store.add_record(_rec("7", True, "ciphertext"))
    assert events == []
    assert bridge.pending_ids == {"7"}


def test_stale_pending_record_is_not_watched() -> None:
    store = InMemoryRemoteStore()
    bridge, events = _bridge(store)
    store.add_record(_rec("8", False, "ciphertext"))
    store.set_record_type("8", "chat")
    assert events == []
    assert bridge.pending_ids == frozenset()


def test_removal_events() -> None:
    store = InMemoryRemoteStore()
    _, events = _bridge(store)
    store.add_record(_rec("1", True))
    store.add_record(_rec("2", False))
    store.remove_record("1")
    store.remove_record("2")

    removed = [e.record.id for e in events if isinstance(e, MessageRemoved)]
    assert removed == ["1"]


def test_removal_cancels_pending_watch() -> None:
    store = InMemoryRemoteStore()
    bridge, events = _bridge(store)
    store.add_record(_rec("9", True, "ciphertext"))
    store.remove_record("9")

    assert bridge.pending_ids == frozenset()
    assert store.watched_ids == frozenset()
    assert [type(e) for e in events] == [MessageRemoved]


def test_detach_stops_all_delivery() -> None:
    store = InMemoryRemoteStore(synced=False)
    bridge, events = _bridge(store)
    store.add_record(_rec("10", True, "ciphertext"))

    bridge.detach()
    assert not bridge.attached
    assert store.watched_ids == frozenset()

    store.set_synced(True)
    store.add_record(_rec("11"))
    store.set_record_type("10", "chat")
    assert events == []


def test_dedup_window_is_bounded() -> None:
    store = InMemoryRemoteStore()
    bridge, events = _bridge(store, max_tracked_ids=2)
    for rid in ("a", "b", "c"):
        bridge.handle_record_added(_rec(rid))
    # "a" fell out of the window and is delivered again; "c" is still known.
    bridge.handle_record_added(_rec("a"))
    bridge.handle_record_added(_rec("c"))
    assert _added_ids(events) == ["a", "b", "c", "a"]


def test_records_keep_tri_state_marker() -> None:
    assert _rec("1", True).is_new is IsNew.TRUE
    assert _rec("2", None).is_new is IsNew.UNKNOWN
    assert _rec("3", False).is_new is IsNew.FALSE


def test_pending_record_readded_with_concrete_type_resolves() -> None:
    store = InMemoryRemoteStore(synced=True)
    bridge, events = _bridge(store)

    store.add_record(_rec("4", True, "ciphertext"))
    store.add_record(_rec("4", True, "ciphertext"))
    store.add_record(_rec("4", True, "chat"))

    assert [type(e) for e in events] == [StateReady, MessageTypeResolved]
    resolved = events[1]
    assert resolved.record.type == "chat"
    assert resolved.previous_type == "ciphertext"
    assert bridge.pending_ids == frozenset()
    assert store.watched_ids == frozenset()

    store.add_record(_rec("4", True, "chat"))
    store.set_record_type("4", "image")
    assert len(events) == 2
