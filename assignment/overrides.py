"""Manual tail overrides: pin application, persistence contract, pending reconciliation."""

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Protocol, Set
import logging

from models import FlightLeg, FlightKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManualOverride:
    """A persisted tail assignment for one flight instance."""
    flight_id: str
    date: date
    registration: str

    @property
    def key(self) -> FlightKey:
        return FlightKey(self.flight_id, self.date)


def apply_overrides(legs: Iterable[FlightLeg], overrides: Iterable[ManualOverride]) -> List[FlightLeg]:
    """
    Return legs with override registrations merged in as pins.

    Input legs are never modified; overridden legs are copied.
    """
    by_key = {o.key: o.registration for o in overrides}
    merged = []
    for leg in legs:
        reg = by_key.get(leg.key)
        if reg is not None and reg != leg.pinned_registration:
            leg = replace(leg, pinned_registration=reg)
        merged.append(leg)
    return merged


def overrides_from_assignments(
    assignments: Dict[FlightKey, str],
    keys: Optional[Iterable[FlightKey]] = None
) -> List[ManualOverride]:
    """Override records that would pin the given (or all) assigned flights."""
    selected = assignments.keys() if keys is None else keys
    return [
        ManualOverride(key.flight_id, key.date, assignments[key])
        for key in sorted(selected)
        if key in assignments
    ]


class OverrideRepository(Protocol):
    """Persistence collaborator for manual overrides; every call is idempotent."""

    def commit(self, override: ManualOverride) -> None: ...

    def remove(self, key: FlightKey) -> None: ...

    def commit_many(self, overrides: Iterable[ManualOverride]) -> None: ...

    def remove_many(self, keys: Iterable[FlightKey]) -> None: ...

    def list(self) -> List[ManualOverride]: ...


class InMemoryOverrideRepository:
    """Dictionary-backed repository, useful for tests and the CLI."""

    def __init__(self, overrides: Optional[Iterable[ManualOverride]] = None):
        self._store: Dict[FlightKey, ManualOverride] = {}
        for override in overrides or ():
            self._store[override.key] = override

    def commit(self, override: ManualOverride) -> None:
        self._store[override.key] = override

    def remove(self, key: FlightKey) -> None:
        self._store.pop(key, None)

    def commit_many(self, overrides: Iterable[ManualOverride]) -> None:
        for override in overrides:
            self.commit(override)

    def remove_many(self, keys: Iterable[FlightKey]) -> None:
        for key in keys:
            self.remove(key)

    def get(self, key: FlightKey) -> Optional[ManualOverride]:
        return self._store.get(key)

    def list(self) -> List[ManualOverride]:
        return sorted(self._store.values(), key=lambda o: o.key)

    def __len__(self) -> int:
        return len(self._store)


@dataclass
class PendingOverrides:
    """
    Optimistic local edits reconciled against the authoritative override set.

    Adds and deletes are shown immediately; after each refresh, entries the
    server already reflects are dropped from the pending sets.
    """
    pending_add: Dict[FlightKey, ManualOverride] = field(default_factory=dict)
    pending_delete: Set[FlightKey] = field(default_factory=set)

    def add(self, override: ManualOverride) -> None:
        self.pending_delete.discard(override.key)
        self.pending_add[override.key] = override

    def delete(self, key: FlightKey) -> None:
        self.pending_add.pop(key, None)
        self.pending_delete.add(key)

    @property
    def is_empty(self) -> bool:
        return not self.pending_add and not self.pending_delete

    def merged(self, server: Iterable[ManualOverride]) -> List[ManualOverride]:
        """Server overrides with pending edits applied on top."""
        view = {o.key: o for o in server if o.key not in self.pending_delete}
        view.update(self.pending_add)
        return sorted(view.values(), key=lambda o: o.key)

    def reconcile(self, server: Iterable[ManualOverride]) -> None:
        """Drop pending entries the refreshed server state already confirms."""
        current = {o.key: o.registration for o in server}
        confirmed = [
            key for key, o in self.pending_add.items()
            if current.get(key) == o.registration
        ]
        for key in confirmed:
            del self.pending_add[key]
        self.pending_delete = {key for key in self.pending_delete if key in current}
        if confirmed:
            logger.debug(f"Reconciled {len(confirmed)} pending overrides")

    def flush(self, repository: OverrideRepository) -> None:
        """Send every pending edit to the repository and reconcile."""
        repository.commit_many(self.pending_add.values())
        repository.remove_many(self.pending_delete)
        self.reconcile(repository.list())
