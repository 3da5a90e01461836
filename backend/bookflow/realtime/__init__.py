from .events import (
    ChangeEvent,
    ChangeEventType,
    ConnectionState,
    InvalidationNotice,
    ScopeKind,
    SubscriptionScope,
)
from .invalidation_bus import (
    RealtimeInvalidationBus,
    Subscription,
    get_invalidation_bus,
    set_invalidation_bus,
)
from .transports import BroadcastTransport, EventTransport, InMemoryTransport

__all__ = [
    "BroadcastTransport",
    "ChangeEvent",
    "ChangeEventType",
    "ConnectionState",
    "EventTransport",
    "InMemoryTransport",
    "InvalidationNotice",
    "RealtimeInvalidationBus",
    "ScopeKind",
    "Subscription",
    "SubscriptionScope",
    "get_invalidation_bus",
    "set_invalidation_bus",
]
