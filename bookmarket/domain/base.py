"""Building blocks shared by every aggregate, value object and event.

Aggregates are immutable: every state change returns
a new aggregate value and leaves the original untouched.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, Self, TypeVar
from uuid import UUID, uuid4


def utc_now() -> datetime:
    """Return the current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


# ============================================================================
# Value Object Base
# ============================================================================


@dataclass(frozen=True)
class ValueObject(ABC):
    """Marker base for immutable values compared field by field (Money, Address, ...)."""


# ============================================================================
# Entity Base
# ============================================================================


T = TypeVar("T", bound=UUID | str)


@dataclass(frozen=True, eq=False)
class Entity(ABC, Generic[T]):
    """Something with an identity: equality and hashing look only at ``id``."""

    id: T

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


# ============================================================================
# Aggregate Root Base
# ============================================================================


@dataclass(frozen=True, eq=False, kw_only=True)
class AggregateRoot(Entity[T], Generic[T]):
    """Consistency boundary for a Listing or an Order.

    Transitions never mutate the aggregate; they return a new value
    carrying the events raised by that transition in ``pending_events``.
    The repository clears pending events and bumps ``version`` on save.

    Attributes:
        version: Optimistic locking version for concurrency control.
        created_at: Timestamp when the aggregate was created.
        updated_at: Timestamp of last modification.
        pending_events: Events raised since the aggregate was last persisted.
    """

    version: int = field(default=0, compare=False)
    created_at: datetime = field(default_factory=utc_now, compare=False)
    updated_at: datetime = field(default_factory=utc_now, compare=False)
    pending_events: tuple["DomainEvent", ...] = field(
        default=(),
        repr=False,
        compare=False,
    )

    def _evolve(self, *events: "DomainEvent", **changes: Any) -> Self:
        """Return a copy with the given field changes and a fresh updated_at.

        Args:
            *events: Domain events raised by this transition.
            **changes: Field values to replace.

        Returns:
            New aggregate value.
        """
        changes.setdefault("updated_at", utc_now())
        return replace(self, pending_events=self.pending_events + events, **changes)

    def collect_events(self) -> list["DomainEvent"]:
        """Return the events raised since the last save.

        Returns:
            List of domain events that were recorded.
        """
        return list(self.pending_events)

    def persisted(self, version: int) -> Self:
        """Return the stored form of this aggregate.

        Args:
            version: Version number assigned by the repository.

        Returns:
            Copy with the new version and no pending events.
        """
        return replace(self, version=version, pending_events=())


# ============================================================================
# Domain Event Base
# ============================================================================


@dataclass(frozen=True)
class DomainEvent(ABC):
    """A fact raised by an aggregate transition and published after save.

    Attributes:
        event_type: Dotted name such as ``listing.held`` (set per subclass).
        event_id: Unique per emitted event.
        occurred_at: When the transition happened.
        aggregate_id: Listing or order ID.
        aggregate_type: ``"Listing"`` or ``"Order"``.
    """

    event_type: ClassVar[str]

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utc_now)
    aggregate_id: str = field(default="")
    aggregate_type: str = field(default="")

    def to_dict(self) -> dict[str, Any]:
        """Envelope plus payload, JSON ready."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
            "payload": self._payload(),
        }

    @abstractmethod
    def _payload(self) -> dict[str, Any]:
        """Fields specific to the event subclass."""
