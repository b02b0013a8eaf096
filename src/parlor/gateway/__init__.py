"""Fan-out of session output to UI consumers."""

from parlor.gateway.bus import BusSubscription, EventTarget, MessageBus

__all__ = ["BusSubscription", "EventTarget", "MessageBus"]
