"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

This module defines typed event names for structured logging.

Design:
- Enum-based (prevents typos, enables autocomplete)
- Hierarchical naming (namespace.category.action)
- Searchable in log aggregators (Elasticsearch, CloudWatch Insights)

Event Naming Convention:
    <component>.<category>.<action>

    component: session, error
    category: connected, publish, handler
    action: skipped, failed

Example Log Query (CloudWatch Insights):
    fields @timestamp, event, message, metadata.device_id
    | filter event = "session.auth_failed"
    | stats count() by bin(5m)
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - session.*: MQTT session lifecycle (guest or authenticated)
    - error.*: Error conditions
    """

    # ========== Session Events ==========
    SESSION_OPENING = "session.opening"
    """Session construction started (identity, broker, last-will)."""

    SESSION_CONNECTED = "session.connected"
    """Broker accepted the session."""

    SESSION_DISCONNECTED = "session.disconnected"
    """Session closed (gracefully or not)."""

    SESSION_ENDING = "session.ending"
    """Graceful end requested."""

    SESSION_AUTH_FAILED = "session.auth_failed"
    """Broker rejected identity/secret."""

    SESSION_PUBLISH_SKIPPED = "session.publish.skipped"
    """Publish dropped because the session is closing or closed."""

    SESSION_ROUTING_MISS = "session.routing_miss"
    """Message arrived on a topic with no registered handler."""

    # ========== Error Events ==========
    SESSION_CONNECTION_ERROR = "error.session_connection"
    """Failed to construct or connect a session."""

    SESSION_PUBLISH_ERROR = "error.session_publish"
    """Error during message publication."""

    HANDLER_ERROR = "error.handler"
    """A message handler raised."""


SESSION_EVENTS = {
    LogEvent.SESSION_OPENING,
    LogEvent.SESSION_CONNECTED,
    LogEvent.SESSION_DISCONNECTED,
    LogEvent.SESSION_ENDING,
    LogEvent.SESSION_AUTH_FAILED,
    LogEvent.SESSION_PUBLISH_SKIPPED,
    LogEvent.SESSION_ROUTING_MISS,
}

ERROR_EVENTS = {
    LogEvent.SESSION_CONNECTION_ERROR,
    LogEvent.SESSION_PUBLISH_ERROR,
    LogEvent.HANDLER_ERROR,
}
