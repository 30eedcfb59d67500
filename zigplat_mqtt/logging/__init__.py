"""
Structured Logging for zigplat MQTT sessions
============================================

Bounded Context: Observability

JSON-structured logging for per-device MQTT sessions. Every device runs its
own session thread, so log lines carry the session identity in metadata.

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function
"""

from .events import LogEvent
from .structured import StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
