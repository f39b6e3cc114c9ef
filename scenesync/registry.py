"""Local view of the remote planning scene's object membership.

Every object ID is in exactly one state: absent (unknown), in the world, or
attached to one manipulator link. Remote messages drive the state; local
pick/release actions update it optimistically and leave an expectation in a
sequence-tagged journal, one per ID (a newer local transition supersedes the
older one). Remote attach/detach events are always applied. An event that
matches the expectation confirms it; one that contradicts it leaves the
expectation in place, and the next snapshot that agrees with it restores the
local state, so a stale or reordered delta cannot permanently override a
newer local transition.

All reads that lead to writes must happen under `Registry.lock`.
"""
from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

from .errors import MalformedMessageError
from .messages import AttachOperation


logger = logging.getLogger(__name__)


class EntryState(Enum):
    UNKNOWN = "unknown"
    IN_WORLD = "in_world"
    ATTACHED = "attached"


class Origin(Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class RegistryEntry:
    object_id: str
    state: EntryState
    link: Optional[str] = None
    seq: int = 0
    origin: Origin = Origin.REMOTE


@dataclass
class Expectation:
    """The newest local transition for an ID, kept until a snapshot settles it."""
    seq: int
    object_id: str
    state: EntryState
    link: Optional[str] = None
    # Set once the matching remote attach/detach event has arrived
    confirmed: bool = False
    # Snapshots seen that did not agree with this expectation
    misses: int = 0

    def matches(self, op: AttachOperation, link: str) -> bool:
        if op == AttachOperation.ATTACH:
            return self.state == EntryState.ATTACHED and (not link or link == self.link)
        return self.state != EntryState.ATTACHED

    def agrees_with(self, in_snapshot: bool) -> bool:
        if self.state == EntryState.IN_WORLD:
            return in_snapshot
        return not in_snapshot


class Registry:
    def __init__(self, max_pending_snapshots: int = 3) -> None:
        self.lock = threading.RLock()
        self.max_pending_snapshots = max_pending_snapshots
        self._entries: Dict[str, RegistryEntry] = {}
        self._journal: Dict[str, Expectation] = {}
        self._seq = itertools.count(1)

    # --- Queries ---
    def state(self, object_id: str) -> EntryState:
        with self.lock:
            entry = self._entries.get(object_id)
            return entry.state if entry else EntryState.UNKNOWN

    def exists(self, object_id: str) -> bool:
        return self.state(object_id) == EntryState.IN_WORLD

    def is_attached(self, object_id: str) -> bool:
        return self.state(object_id) == EntryState.ATTACHED

    def attached_link(self, object_id: str) -> Optional[str]:
        with self.lock:
            entry = self._entries.get(object_id)
            if entry and entry.state == EntryState.ATTACHED:
                return entry.link
            return None

    def entry(self, object_id: str) -> Optional[RegistryEntry]:
        with self.lock:
            entry = self._entries.get(object_id)
            return RegistryEntry(**vars(entry)) if entry else None

    def world_ids(self) -> FrozenSet[str]:
        with self.lock:
            return frozenset(k for k, e in self._entries.items() if e.state == EntryState.IN_WORLD)

    def attached_ids(self) -> FrozenSet[str]:
        with self.lock:
            return frozenset(k for k, e in self._entries.items() if e.state == EntryState.ATTACHED)

    def pending(self) -> List[Expectation]:
        """Journaled expectations in sequence order, confirmed or not."""
        with self.lock:
            return sorted((Expectation(**vars(x)) for x in self._journal.values()), key=lambda x: x.seq)

    # --- Remote messages ---
    def apply_snapshot(self, ids: Iterable[str], replace: bool) -> int:
        """
        Apply a world-membership snapshot (replace=True) or additive delta.

        Attached entries are never touched. Blank IDs are skipped one by one.
        Both kinds run a reconciliation pass over the journal afterwards.
        Returns the number of IDs now marked in-world by this call.
        """
        with self.lock:
            if replace:
                for oid in [k for k, e in self._entries.items() if e.state == EntryState.IN_WORLD]:
                    del self._entries[oid]

            seen = set()
            inserted = 0
            for oid in ids:
                if not isinstance(oid, str) or not oid:
                    logger.warning("Skipping malformed object id in snapshot: %r", oid)
                    continue
                seen.add(oid)
                current = self._entries.get(oid)
                if current is not None and current.state == EntryState.ATTACHED:
                    logger.debug("Snapshot lists attached object '%s'; keeping it attached", oid)
                    continue
                self._set(oid, EntryState.IN_WORLD, None, Origin.REMOTE)
                inserted += 1

            self.reconcile(seen, full=replace)
            logger.debug(
                "Snapshot applied (replace=%s): %d in world, %d attached",
                replace, len(self.world_ids()), len(self.attached_ids()),
            )
            return inserted

    def apply_attach_event(self, object_id: str, link: str, op: AttachOperation) -> None:
        """
        Apply a remote attach/detach notification.

        ATTACH moves the entry to attached(link) from any state. DETACH makes
        it absent, unless it confirms a local release, whose world re-add is
        already recorded, in which case the entry stays in the world. An event
        that contradicts the journaled local transition is still applied; the
        expectation stays so the next agreeing snapshot can restore it.
        """
        if not isinstance(object_id, str) or not object_id:
            raise MalformedMessageError("attach event without object id")
        if op == AttachOperation.ATTACH and not link:
            raise MalformedMessageError(f"{object_id}: attach event without link name")
        with self.lock:
            x = self._journal.get(object_id)
            if x is not None and x.matches(op, link):
                x.confirmed = True
                self._set(object_id, x.state, x.link, Origin.REMOTE)
                logger.debug("Remote %s confirmed local transition seq=%d for '%s'", op.value, x.seq, object_id)
                return
            if x is not None:
                logger.info(
                    "Remote %s for '%s' contradicts local transition seq=%d; applying, next snapshot reconciles",
                    op.value, object_id, x.seq,
                )

            if op == AttachOperation.ATTACH:
                self._set(object_id, EntryState.ATTACHED, link, Origin.REMOTE)
                logger.info("'%s' attached to '%s'", object_id, link)
            elif self._entries.pop(object_id, None) is not None:
                logger.info("'%s' detached", object_id)

    # --- Local actions ---
    def remove(self, object_id: str) -> None:
        """Force the entry absent (local deletion, e.g. right before a pick)."""
        with self.lock:
            if self._entries.pop(object_id, None) is not None:
                logger.debug("Removed '%s' from registry", object_id)

    def discard_pending(self, object_id: str) -> int:
        """Forget the journaled local transition for an id; returns how many were dropped."""
        with self.lock:
            return 1 if self._journal.pop(object_id, None) is not None else 0

    def mark_attached(self, object_id: str, link: str) -> int:
        """Optimistic local pick. Returns the transition's sequence number."""
        with self.lock:
            seq = self._set(object_id, EntryState.ATTACHED, link, Origin.LOCAL)
            self._journal[object_id] = Expectation(seq, object_id, EntryState.ATTACHED, link)
            return seq

    def mark_released(self, object_id: str) -> int:
        """Optimistic local release back into the world."""
        with self.lock:
            seq = self._set(object_id, EntryState.IN_WORLD, None, Origin.LOCAL)
            self._journal[object_id] = Expectation(seq, object_id, EntryState.IN_WORLD)
            return seq

    # --- Reconciliation ---
    def reconcile(self, world_ids: Iterable[str], full: bool = True) -> None:
        """
        Settle journaled local transitions against a snapshot.

        A full snapshot is evidence both ways: listed means in the world,
        missing means not. An additive one only proves presence. If the
        snapshot agrees with an expectation, the expected membership is
        (re)applied and the expectation is settled. Otherwise it ages, and after
        `max_pending_snapshots` disagreeing snapshots it is dropped in favor of
        remote truth.
        """
        world = set(world_ids)
        with self.lock:
            settled = []
            for oid, x in self._journal.items():
                present = oid in world
                agrees = x.agrees_with(present) if full else (present and x.state == EntryState.IN_WORLD)
                current = self._entries.get(oid)
                if agrees:
                    if current is None or current.state != x.state:
                        logger.info("Reconciled '%s' back to %s (seq=%d)", oid, x.state.value, x.seq)
                        self._set(oid, x.state, x.link, Origin.LOCAL)
                    settled.append(oid)
                    continue
                x.misses += 1
                if x.misses >= self.max_pending_snapshots:
                    logger.warning(
                        "Dropping unreconciled local transition for '%s' (%s, seq=%d) after %d snapshots",
                        oid, x.state.value, x.seq, x.misses,
                    )
                    settled.append(oid)
                elif full and x.state == EntryState.IN_WORLD and not x.confirmed and current is None:
                    # Just placed; the snapshot predates our add
                    self._set(oid, EntryState.IN_WORLD, None, Origin.LOCAL)
            for oid in settled:
                del self._journal[oid]

    def _set(self, object_id: str, state: EntryState, link: Optional[str], origin: Origin) -> int:
        seq = next(self._seq)
        self._entries[object_id] = RegistryEntry(object_id, state, link, seq, origin)
        return seq


__all__ = ["Registry", "RegistryEntry", "EntryState", "Origin", "Expectation"]
