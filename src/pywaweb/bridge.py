from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable, Iterable
from enum import Enum

from .constants import DEFAULT_MAX_TRACKED_IDS, DEFAULT_PENDING_TYPES
from .records import (
    DomainEvent,
    InboundRecord,
    IsNew,
    MessageAdded,
    MessageRemoved,
    MessageTypeResolved,
    StateReady,
)
from .remote import RemoteStore, Unsubscribe

logger = logging.getLogger(__name__)

EventSink = Callable[[DomainEvent], None]


class Admission(Enum):
    ADMIT = "admit"
    DEFER = "defer"
    REJECT = "reject"


class Removal(Enum):
    EMIT = "emit"
    SUPPRESS = "suppress"


def classify_record_admission(
    record: InboundRecord, *, pending_types: Iterable[str] = DEFAULT_PENDING_TYPES
) -> Admission:
    """
    Decide what to do with a record the store reports as added.

    Only an explicit `IsNew.FALSE` rejects: the page's marker degrades to
    "unknown" for live messages, so requiring `TRUE` would drop real ones.
    """

    if record.is_new is IsNew.FALSE:
        return Admission.REJECT
    if record.type in pending_types:
        return Admission.DEFER
    return Admission.ADMIT


def classify_record_removal(record: InboundRecord) -> Removal:
    if record.is_new is IsNew.FALSE:
        return Removal.SUPPRESS
    return Removal.EMIT


class _SeenIds:
    """Insertion-ordered set that forgets its oldest ids past `capacity`."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._ids: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, rid: object) -> bool:
        return rid in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, rid: str) -> None:
        self._ids[rid] = None
        self._ids.move_to_end(rid)
        while len(self._ids) > self._capacity:
            self._ids.popitem(last=False)


class EventBridge:
    """
    Turns remote store notifications into an ordered, deduplicated stream of
    `DomainEvent`s delivered to `sink`.

    Guarantees:
    - `StateReady` is delivered at most once per bridge, however many times
      the store reports the sync flag as true.
    - `MessageAdded` / `MessageRemoved` are delivered at most once per record
      id (within the last `max_tracked_ids` ids).
    - A record that arrives as a pending placeholder (e.g. "ciphertext") is
      held back until its type changes, then delivered as a single
      `MessageTypeResolved` and never as `MessageAdded`.

    The bridge never raises on bad input from the store; everything it cannot
    classify degrades to "no event".
    """

    def __init__(
        self,
        store: RemoteStore,
        sink: EventSink,
        *,
        pending_types: Iterable[str] = DEFAULT_PENDING_TYPES,
        max_tracked_ids: int = DEFAULT_MAX_TRACKED_IDS,
    ) -> None:
        self.store = store
        self._sink = sink
        self.pending_types = frozenset(pending_types)

        self._ready_fired = False
        self._subscriptions: list[Unsubscribe] = []
        # record id -> (unwatch, type the record first arrived with)
        self._watchers: dict[str, tuple[Unsubscribe, str]] = {}
        self._added = _SeenIds(max_tracked_ids)
        self._removed = _SeenIds(max_tracked_ids)

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    @property
    def ready_fired(self) -> bool:
        return self._ready_fired

    @property
    def pending_ids(self) -> frozenset[str]:
        return frozenset(self._watchers)

    def attach(self) -> None:
        """
        Subscribe to the store.

        The ready signal is wired first so that an already-synced store emits
        `StateReady` before any record event.
        """

        if self.attached:
            return
        self.attach_ready_signal()
        self._subscriptions.append(self.store.on_record_added(self.handle_record_added))
        self._subscriptions.append(self.store.on_record_removed(self.handle_record_removed))
        logger.debug("bridge attached (ready_fired=%s)", self._ready_fired)

    def attach_ready_signal(self) -> None:
        # Read first, then subscribe: a transition between the two would be
        # seen by the listener, and the guard drops the duplicate if both see it.
        if self.store.sync_flag is True:
            self._fire_ready()
        self._subscriptions.append(self.store.on_sync_change(self._on_sync_change))

    def detach(self) -> None:
        subs, self._subscriptions = self._subscriptions, []
        for unsubscribe in subs:
            unsubscribe()
        watchers, self._watchers = self._watchers, {}
        for unwatch, _ in watchers.values():
            unwatch()
        if subs or watchers:
            logger.debug("bridge detached (%d pending watchers dropped)", len(watchers))

    def _on_sync_change(self, value: bool | None) -> None:
        if value is True:
            self._fire_ready()

    def _fire_ready(self) -> None:
        if self._ready_fired:
            return
        self._ready_fired = True
        self._sink(StateReady())

    def handle_record_added(self, record: InboundRecord) -> None:
        watch = self._watchers.get(record.id)
        if watch is not None:
            if record.type in self.pending_types:
                return
            # Re-added after the type changed without a change notification.
            del self._watchers[record.id]
            unwatch, original_type = watch
            unwatch()
            self._resolve(record, original_type)
            return

        if record.id in self._added:
            logger.debug("record %s already delivered, skipping", record.id)
            return

        decision = classify_record_admission(record, pending_types=self.pending_types)
        if decision is Admission.REJECT:
            logger.debug("record %s rejected (stale)", record.id)
            return
        if decision is Admission.DEFER:
            self._defer(record)
            return

        self._added.add(record.id)
        self._sink(MessageAdded(record))

    def handle_record_removed(self, record: InboundRecord) -> None:
        watch = self._watchers.pop(record.id, None)
        if watch is not None:
            watch[0]()

        if classify_record_removal(record) is Removal.SUPPRESS:
            logger.debug("removal of %s suppressed (stale)", record.id)
            return
        if record.id in self._removed:
            return
        self._removed.add(record.id)
        self._sink(MessageRemoved(record))

    def _defer(self, record: InboundRecord, previous_type: str | None = None) -> None:
        if record.id in self._watchers:
            return
        original_type = previous_type or record.type

        def _on_type_change(updated: InboundRecord) -> None:
            self._on_record_type_changed(updated, original_type)

        logger.debug("record %s deferred (type=%s)", record.id, record.type)
        unwatch = self.store.watch_record_type(record.id, _on_type_change)
        self._watchers[record.id] = (unwatch, original_type)

    def _on_record_type_changed(self, record: InboundRecord, previous_type: str) -> None:
        # The store's watch is one-shot, so there is nothing to unsubscribe.
        if self._watchers.pop(record.id, None) is None:
            return
        if record.type in self.pending_types:
            self._defer(record, previous_type)
            return
        self._resolve(record, previous_type)

    def _resolve(self, record: InboundRecord, previous_type: str) -> None:
        if record.id in self._added:
            return
        self._added.add(record.id)
        self._sink(MessageTypeResolved(record, previous_type))
