"""
MQTT Session
============

Bounded Context: MQTT Infrastructure

One guest-or-authenticated transport session to the platform broker,
parameterised by identity, secret and a last-will declaration.

Design:
- One factory (create_session) for both the pairing (guest) and the
  authenticated path; the caller only varies SessionConfig
- Per-topic message handlers (exact topic match); unmatched topics are
  logged as routing misses
- Graceful end (DISCONNECT packet) so the broker never fires the last-will
  for a session we closed on purpose
- Publishing is gated on the session not closing/closed

Responsibilities:
- paho-mqtt client lifecycle (connect, loop_start, disconnect, loop_stop)
- Authentication failure detection from CONNACK
- NOT responsible for: topic layout or status semantics (Platform owns those)

Threading:
- paho-mqtt runs one network thread per session (loop_start)
- All callbacks for a session arrive on that thread, in arrival order
- end() may be called from inside a callback of the same session

Example:
    >>> config = SessionConfig(
    ...     broker_host="broker.local",
    ...     broker_port=1883,
    ...     identity="guest=0x00124b0012345678",
    ...     secret="alice",
    ...     last_will=LastWill(topic="prefix/0x00124b0012345678/$state"),
    ... )
    >>> session = create_session(config, on_connect=lambda s: print("up"))
    >>> session.start()
    >>> session.publish("prefix/0x00124b0012345678/$state", "ready", qos=1, retain=True)
    >>> session.end()
"""

import ssl
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from .logging import LogEvent, StructuredLogger, create_logger
from .schemas import DeviceStatus, mask_secret

# CONNACK codes meaning "rejected credentials": MQTT 3.1.1 return codes 4/5
# and their MQTT 5 reason-code equivalents 134/135.
AUTH_FAILURE_CODES = frozenset({4, 5, 134, 135})

MessageHandler = Callable[[str, str], None]


@dataclass(frozen=True)
class LastWill:
    """
    Last-will declaration published by the broker if the session drops.

    Attributes:
        topic: Will topic (``<prefix>/<device_id>/$state``)
        payload: Will payload (default: ``lost``)
        qos: Will QoS (default: 1, at-least-once)
        retain: Retain flag (default: True)
    """
    topic: str
    payload: str = DeviceStatus.LOST.value
    qos: int = 1
    retain: bool = True


@dataclass(frozen=True)
class SessionConfig:
    """Connection parameters for a single session."""

    broker_host: str
    broker_port: int
    identity: str
    secret: str
    last_will: LastWill
    keepalive: int = 10
    client_id: str = ""
    tls: bool = False
    tls_insecure: bool = False

    def __post_init__(self):
        if not 1 <= self.broker_port <= 65535:
            raise ValueError(f"broker_port must be in [1, 65535], got {self.broker_port}")
        if self.keepalive <= 0:
            raise ValueError(f"keepalive must be > 0, got {self.keepalive}")

    def __repr__(self) -> str:
        return (
            f"SessionConfig(broker={self.broker_host}:{self.broker_port}, "
            f"identity={self.identity}, secret={mask_secret(self.secret)})"
        )


class Session(Protocol):
    """Interface the Platform relies on (MQTTSession or a test double)."""

    config: SessionConfig

    def start(self) -> None:
        ...

    def subscribe(self, topic: str, handler: MessageHandler, qos: int = 1) -> None:
        ...

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> bool:
        ...

    def end(self) -> None:
        ...

    @property
    def is_closing(self) -> bool:
        ...


SessionCallback = Callable[["MQTTSession"], None]
SessionFactory = Callable[..., Session]


class MQTTSession:
    """
    paho-mqtt backed session.

    Attributes:
        config: Connection parameters
        client: Underlying paho client
        logger: Structured logger instance

    Thread Safety:
        State flags are guarded by a lock; handler table is only mutated
        from the session's own callbacks or before start().
    """

    def __init__(
        self,
        config: SessionConfig,
        logger: Optional[StructuredLogger] = None,
        on_connect: Optional[SessionCallback] = None,
        on_auth_failure: Optional[Callable[["MQTTSession", Any], None]] = None,
        on_disconnect: Optional[Callable[["MQTTSession", Any], None]] = None,
    ):
        """
        Initialize session (does not connect).

        Args:
            config: Connection parameters
            logger: Structured logger (default: component "session")
            on_connect: Called every time the broker accepts the session
            on_auth_failure: Called when the broker rejects identity/secret
            on_disconnect: Called when the network connection closes
        """
        self.config = config
        self.logger = logger or create_logger("session")

        self._on_connect_cb = on_connect
        self._on_auth_failure_cb = on_auth_failure
        self._on_disconnect_cb = on_disconnect

        self.client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.username_pw_set(config.identity, config.secret)
        will = config.last_will
        self.client.will_set(will.topic, payload=will.payload, qos=will.qos, retain=will.retain)

        if config.tls:
            self._configure_tls()

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        self._handlers: Dict[str, MessageHandler] = {}
        self._lock = threading.Lock()
        self._connected = threading.Event()
        self._closing = False
        self._closed = False

    def _configure_tls(self) -> None:
        if self.config.tls_insecure:
            self.client.tls_set(cert_reqs=ssl.CERT_NONE)
            self.client.tls_insecure_set(True)
        else:
            self.client.tls_set()

    @property
    def _broker(self) -> str:
        return f"{self.config.broker_host}:{self.config.broker_port}"

    # ===== Lifecycle =====

    def start(self) -> None:
        """
        Open the network connection and start the paho network thread.

        Raises:
            OSError: If the broker cannot be reached (DNS, refused, timeout)
        """
        self.logger.info(
            event=LogEvent.SESSION_OPENING,
            message="Opening session",
            metadata={
                'broker': self._broker,
                'identity': self.config.identity,
                'secret': mask_secret(self.config.secret),
                'will_topic': self.config.last_will.topic,
                'keepalive': self.config.keepalive,
            }
        )
        self.client.connect(
            self.config.broker_host,
            self.config.broker_port,
            keepalive=self.config.keepalive,
        )
        self.client.loop_start()

    def end(self) -> None:
        """
        End the session gracefully.

        Sends DISCONNECT (so the last-will is discarded by the broker) and
        stops the network thread. Safe to call multiple times and from
        inside one of this session's callbacks.
        """
        with self._lock:
            if self._closing:
                return
            self._closing = True

        self.logger.info(
            event=LogEvent.SESSION_ENDING,
            message="Ending session",
            metadata={'identity': self.config.identity}
        )
        try:
            self.client.disconnect()
            self.client.loop_stop()
        except Exception as e:
            self.logger.error(
                event=LogEvent.SESSION_CONNECTION_ERROR,
                message="Error during disconnect",
                exc_info=e,
                metadata={'identity': self.config.identity}
            )

    @property
    def is_closing(self) -> bool:
        """True once end() was called or the connection is gone."""
        with self._lock:
            return self._closing or self._closed

    def is_connected(self) -> bool:
        return self._connected.is_set()

    # ===== Messaging =====

    def subscribe(self, topic: str, handler: MessageHandler, qos: int = 1) -> None:
        """
        Subscribe to an exact topic and route its messages to handler.

        Args:
            topic: Topic (no wildcards; routing is by exact match)
            handler: Called with (topic, payload) for every message
            qos: Subscription QoS (default: 1)
        """
        self._handlers[topic] = handler
        self.client.subscribe(topic, qos=qos)

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> bool:
        """
        Publish payload on topic.

        Returns:
            True if handed to paho successfully, False if skipped or failed
        """
        if self.is_closing:
            self.logger.debug(
                event=LogEvent.SESSION_PUBLISH_SKIPPED,
                message="Publish skipped: session closing",
                metadata={'topic': topic}
            )
            return False

        try:
            result = self.client.publish(topic, payload, qos=qos, retain=retain)
        except Exception as e:
            self.logger.error(
                event=LogEvent.SESSION_PUBLISH_ERROR,
                message="Error publishing message",
                exc_info=e,
                metadata={'topic': topic}
            )
            return False

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.warning(
                event=LogEvent.SESSION_PUBLISH_ERROR,
                message=f"Publish failed (rc={result.rc})",
                metadata={'topic': topic}
            )
            return False
        return True

    # ===== paho callbacks (run in the session's network thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        code = getattr(reason_code, "value", reason_code)

        if code == 0:
            self._connected.set()
            self.logger.info(
                event=LogEvent.SESSION_CONNECTED,
                message="Session established",
                metadata={'broker': self._broker, 'identity': self.config.identity}
            )
            self._invoke(self._on_connect_cb, self)
        elif code in AUTH_FAILURE_CODES:
            self.logger.warning(
                event=LogEvent.SESSION_AUTH_FAILED,
                message=f"Broker rejected credentials (rc={reason_code})",
                metadata={'identity': self.config.identity}
            )
            self._invoke(self._on_auth_failure_cb, self, reason_code)
        else:
            self.logger.error(
                event=LogEvent.SESSION_CONNECTION_ERROR,
                message=f"Connection refused (rc={reason_code})",
                metadata={'broker': self._broker, 'identity': self.config.identity}
            )

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None) -> None:
        self._connected.clear()
        with self._lock:
            graceful = self._closing
            if graceful:
                self._closed = True

        if graceful:
            self.logger.info(
                event=LogEvent.SESSION_DISCONNECTED,
                message="Session ended",
                metadata={'identity': self.config.identity}
            )
        else:
            self.logger.warning(
                event=LogEvent.SESSION_DISCONNECTED,
                message=f"Unexpected disconnection (rc={reason_code})",
                metadata={'broker': self._broker, 'identity': self.config.identity}
            )
        self._invoke(self._on_disconnect_cb, self, reason_code)

    def _on_message(self, client, userdata, msg: mqtt.MQTTMessage) -> None:
        payload = msg.payload.decode('utf-8', errors='replace')
        handler = self._handlers.get(msg.topic)

        if handler is None:
            self.logger.warning(
                event=LogEvent.SESSION_ROUTING_MISS,
                message=f"Received message on unrouted topic: {msg.topic}",
                metadata={'identity': self.config.identity}
            )
            return

        self._invoke(handler, msg.topic, payload)

    def _invoke(self, callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(
                event=LogEvent.HANDLER_ERROR,
                message="Session callback raised",
                exc_info=e,
                metadata={'identity': self.config.identity}
            )


def create_session(
    config: SessionConfig,
    on_connect: Optional[SessionCallback] = None,
    on_auth_failure: Optional[Callable[[MQTTSession, Any], None]] = None,
    on_disconnect: Optional[Callable[[MQTTSession, Any], None]] = None,
    logger: Optional[StructuredLogger] = None,
) -> MQTTSession:
    """
    Default session factory used by Platform.

    Args:
        config: Connection parameters
        on_connect: Called when the broker accepts the session
        on_auth_failure: Called when the broker rejects identity/secret
        on_disconnect: Called when the connection closes
        logger: Structured logger (optional)

    Returns:
        Unstarted MQTTSession
    """
    return MQTTSession(
        config,
        logger=logger,
        on_connect=on_connect,
        on_auth_failure=on_auth_failure,
        on_disconnect=on_disconnect,
    )
