"""Availability change events and subscription scopes."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.constants import REALTIME_CHANNEL_PREFIX


class ChangeEventType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ConnectionState(str, Enum):
    """Observable lifecycle of one subscription."""

    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"


class ScopeKind(str, Enum):
    ACTIVITY = "activity"
    VENUE = "venue"
    ALL = "all"


@dataclass(frozen=True)
class SubscriptionScope:
    """What a subscriber listens to: one activity, every activity of a venue, or everything."""

    kind: ScopeKind
    scope_id: Optional[str] = None

    @classmethod
    def activity(cls, activity_id: str) -> "SubscriptionScope":
        return cls(ScopeKind.ACTIVITY, activity_id)

    @classmethod
    def venue(cls, venue_id: str) -> "SubscriptionScope":
        return cls(ScopeKind.VENUE, venue_id)

    @classmethod
    def all(cls) -> "SubscriptionScope":
        return cls(ScopeKind.ALL)

    @property
    def channel(self) -> str:
        if self.kind == ScopeKind.ALL:
            return f"{REALTIME_CHANNEL_PREFIX}:all"
        return f"{REALTIME_CHANNEL_PREFIX}:{self.kind.value}:{self.scope_id}"

    def __str__(self) -> str:
        return self.channel


@dataclass
class ChangeEvent:
    """A committed write that may change availability."""

    table: str
    event_type: ChangeEventType
    activity_id: Optional[str] = None
    venue_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def scopes(self) -> List[SubscriptionScope]:
        scopes = []
        if self.activity_id:
            scopes.append(SubscriptionScope.activity(self.activity_id))
        if self.venue_id:
            scopes.append(SubscriptionScope.venue(self.venue_id))
        scopes.append(SubscriptionScope.all())
        return scopes

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["occurred_at"] = self.occurred_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeEvent":
        return cls(
            table=data["table"],
            event_type=ChangeEventType(data["event_type"]),
            activity_id=data.get("activity_id"),
            venue_id=data.get("venue_id"),
            occurred_at=datetime.fromisoformat(data["occurred_at"])
            if data.get("occurred_at")
            else datetime.now(timezone.utc),
        )


@dataclass(frozen=True)
class InvalidationNotice:
    """
    What a subscriber receives after the debounce window.

    Only the last change of a burst is described; ``coalesced`` counts how
    many raw events were folded into this one notice.
    """

    table: str
    event_type: ChangeEventType
    scope_id: Optional[str]
    scope: SubscriptionScope
    coalesced: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "event_type": self.event_type.value,
            "scope_id": self.scope_id,
            "scope": self.scope.kind.value,
            "coalesced": self.coalesced,
        }
