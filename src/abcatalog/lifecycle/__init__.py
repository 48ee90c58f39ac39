"""Item lifecycle state machine and audit sinks."""

from .audit import AuditSink, InMemoryAuditSink, JsonlAuditSink
from .machine import PUBLISH_PENDING_MESSAGE, ItemLifecycle, TransitionRecord

__all__ = [
    "AuditSink",
    "InMemoryAuditSink",
    "JsonlAuditSink",
    "ItemLifecycle",
    "TransitionRecord",
    "PUBLISH_PENDING_MESSAGE",
]
