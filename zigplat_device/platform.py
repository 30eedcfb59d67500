"""
Platform - Pairing/connection state machine for one virtualized device

Bounded Context: Device lifecycle on the platform broker
Responsibilities:
  - Pairing through an unauthenticated guest session
  - Credential persistence (via CredentialStore)
  - Authenticated session, capability-tree advertisement, status publishing
  - Command handling ($cmd/set: restart, reset)
  - Relaying telemetry into the capability tree

Lifecycle:

    UNPAIRED ──init()──▶ PAIRING_ACTIVE ──apiKey──▶ CREDENTIAL_PERSISTED
                              ▲                           │
                              │ reset / invalid apiKey    ▼
    CONNECTED ◀──established── AUTHENTICATED_CONNECTING ◀─┘
        │                           ▲
        └────────── restart ────────┘

Topic prefix:
  - Pairing:        prefix/<device_id>/...
  - Authenticated:  v2/<realm>/<device_id>/...

Threading:
  - Every session has its own paho network thread; the Platform's callbacks
    for a session run on it
  - Callbacks from a session that is no longer current are ignored
  - A new session is installed only after the previous one was ended
    gracefully, so the broker never fires the old session's last-will
"""

import logging
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

from zigplat_control import CommandChannel, CommandRegistry
from zigplat_mqtt.schemas import (
    ComponentType,
    CorruptCredentialError,
    Credential,
    DeviceCommand,
    DeviceStatus,
)
from zigplat_mqtt.session import LastWill, SessionConfig, create_session

from .node import Node
from .property import Property
from .storage import CredentialStore

logger = logging.getLogger(__name__)

GUEST_PREFIX = "prefix"
AUTH_PREFIX_TEMPLATE = "v2/{realm}"

PropertyValue = Union[str, Callable[[Node, Property], str]]


class PairingState(str, Enum):
    """Lifecycle state of a Platform."""
    UNPAIRED = "unpaired"
    PAIRING_ACTIVE = "pairing_active"
    CREDENTIAL_PERSISTED = "credential_persisted"
    AUTHENTICATED_CONNECTING = "authenticated_connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"      # Paired, no active session


class Platform:
    """
    One physical device exposed as a device-convention endpoint.

    Example:
        platform = Platform(
            device_id="0x00124b0012345678",
            realm="alice",
            device_name="Kitchen sensor",
            broker_host="broker.local",
            broker_port=1883,
            credential_store=JsonFileCredentialStore("data/credentials.json"),
        )
        node = platform.add_node("kitchen", "Kitchen sensor", ComponentType.GENERIC)
        node.add_property("temperature", "Temperature", datatype="float", unit="°C")
        platform.init()

        # Later, from gateway telemetry
        platform.publish_property_data("temperature", "21.5")
    """

    def __init__(
        self,
        device_id: str,
        realm: str,
        device_name: str,
        broker_host: str,
        broker_port: int,
        credential_store: CredentialStore,
        session_factory: Callable = create_session,
        keepalive: int = 10,
        production: bool = False,
        guest_prefix: str = GUEST_PREFIX,
        tls: bool = False,
        tls_insecure: bool = False,
        on_status: Optional[Callable[["Platform", DeviceStatus], None]] = None,
        on_connected: Optional[Callable[["Platform"], None]] = None,
    ):
        """
        Initialize the platform and load its stored credential.

        Args:
            device_id: Device identifier (e.g. zigbee ieee address)
            realm: Account namespace of the authenticated prefix
            device_name: Advertised on $name
            broker_host: Platform broker host
            broker_port: Platform broker port
            credential_store: Persistence for the pairing credential
            session_factory: Builds sessions (default: create_session)
            keepalive: MQTT keepalive in seconds, both session kinds
            production: When True, an invalid credential is only logged and
                the device is not sent back to pairing
            guest_prefix: Prefix used while pairing
            tls: Use TLS towards the broker
            tls_insecure: Skip certificate verification
            on_status: Observer called on every status change
            on_connected: Observer called when the authenticated session is up
        """
        if not device_id:
            raise ValueError("device_id cannot be empty")

        self.device_id = device_id
        self.realm = realm
        self.device_name = device_name
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.keepalive = keepalive
        self.production = production
        self.guest_prefix = guest_prefix
        self.tls = tls
        self.tls_insecure = tls_insecure

        self._store = credential_store
        self._session_factory = session_factory
        self._on_status = on_status
        self._on_connected = on_connected

        self.nodes: List[Node] = []
        self._property_ids: Dict[str, str] = {}
        self._sensor_count = -1

        self.prefix = guest_prefix
        self.status = DeviceStatus.LOST
        self._session = None
        self._session_lock = threading.Lock()

        self.command_registry = CommandRegistry()
        self.command_registry.register(
            DeviceCommand.RESTART.value, self._handle_restart, "Reconnect, keep credential"
        )
        self.command_registry.register(
            DeviceCommand.RESET.value, self._handle_reset, "Forget credential and re-pair"
        )
        self._command_channel = CommandChannel(self.command_registry, device_id)

        self.credential = self._load_credential()
        self.state = PairingState.DISCONNECTED if self.credential else PairingState.UNPAIRED

    def __repr__(self) -> str:
        return f"Platform(device_id={self.device_id!r}, state={self.state.value}, status={self.status.value})"

    # ===== Capability tree =====

    def add_node(
        self,
        node_id: str,
        name: str,
        component_type: Union[ComponentType, str] = ComponentType.GENERIC,
    ) -> Node:
        """
        Append a node to the capability tree.

        Raises:
            ValueError: If node_id is already used
        """
        if any(n.node_id == node_id for n in self.nodes):
            raise ValueError(f"Node '{node_id}' already exists on device {self.device_id}")

        node = Node(
            node_id,
            name,
            component_type,
            claim_property_id=lambda pid: self._claim_property_id(node_id, pid),
        )
        self.nodes.append(node)
        return node

    def add_sensor(self, property_id: str, name: str, **kwargs) -> Property:
        """Add an auto-numbered ``sensor<N>`` node holding one property."""
        self._sensor_count += 1
        node = self.add_node(f"sensor{self._sensor_count}", name, ComponentType.SENSOR)
        return node.add_property(property_id, name, **kwargs)

    def _claim_property_id(self, node_id: str, property_id: str) -> None:
        owner = self._property_ids.get(property_id)
        if owner is not None:
            raise ValueError(
                f"Property '{property_id}' already belongs to node '{owner}' "
                f"on device {self.device_id}"
            )
        self._property_ids[property_id] = node_id

    def find_property(self, property_id: str) -> Optional[Tuple[Node, Property]]:
        """Locate (node, property) by property id across all nodes."""
        for node in self.nodes:
            prop = node.get_property(property_id)
            if prop is not None:
                return node, prop
        return None

    # ===== Credential =====

    def _load_credential(self) -> Optional[Credential]:
        try:
            return self._store.get(self.device_id)
        except CorruptCredentialError as e:
            logger.error(f"❌ [{self.device_id}] Stored credential is corrupt, treating as unpaired: {e}")
            return None
        except OSError as e:
            logger.error(f"❌ [{self.device_id}] Unable to read credential store: {e}")
            return None

    def is_paired(self) -> bool:
        return self.credential is not None

    def forgot(self) -> None:
        """
        Drop the credential (memory and store) and fall back to the guest
        prefix. Idempotent.
        """
        self.credential = None
        self.prefix = self.guest_prefix
        self.state = PairingState.UNPAIRED
        try:
            self._store.remove(self.device_id)
        except OSError as e:
            logger.error(f"❌ [{self.device_id}] Unable to remove stored credential: {e}")
        logger.info(f"[{self.device_id}] Credential forgotten")

    # ===== Topics =====

    @property
    def device_prefix(self) -> str:
        """``<prefix>/<device_id>``, derived from the current prefix."""
        return f"{self.prefix}/{self.device_id}"

    @property
    def state_topic(self) -> str:
        return f"{self.device_prefix}/$state"

    @property
    def session(self):
        """The current session handle (None before the first connection)."""
        return self._session

    # ===== Lifecycle =====

    def init(self) -> None:
        """Enter the pairing path when unpaired, the authenticated path otherwise."""
        if not self.is_paired():
            self.connect_pairing()
        else:
            self.connect()

    def connect_pairing(self) -> None:
        """Open the guest session used to receive an apiKey."""
        self.prefix = self.guest_prefix
        self.state = PairingState.PAIRING_ACTIVE
        logger.info(f"🔌 [{self.device_id}] Connecting in pairing mode")

        self._open_session(
            identity=f"guest={self.device_id}",
            secret=self.realm,
            on_connect=self._on_pairing_established,
        )

    def connect(self) -> None:
        """Open the authenticated session using the stored apiKey."""
        if self.credential is None:
            logger.warning(f"⚠️ [{self.device_id}] Can't connect without apiKey")
            return

        self.prefix = AUTH_PREFIX_TEMPLATE.format(realm=self.realm)
        self.state = PairingState.AUTHENTICATED_CONNECTING
        logger.info(f"🔌 [{self.device_id}] Connecting as paired device")

        self._open_session(
            identity=f"device={self.realm}/{self.device_id}",
            secret=self.credential.api_key,
            on_connect=self._on_authenticated_established,
        )

    def disconnect(self) -> None:
        """Publish ``disconnected`` and end the current session."""
        session = self._session
        self.publish_status(DeviceStatus.DISCONNECTED)
        if session is not None:
            session.end()
        self.state = PairingState.DISCONNECTED if self.credential else PairingState.UNPAIRED

    def _open_session(self, identity: str, secret: str, on_connect: Callable) -> None:
        previous = self._session
        if previous is not None:
            previous.end()

        config = SessionConfig(
            broker_host=self.broker_host,
            broker_port=self.broker_port,
            identity=identity,
            secret=secret,
            last_will=LastWill(topic=self.state_topic),
            keepalive=self.keepalive,
            tls=self.tls,
            tls_insecure=self.tls_insecure,
        )

        try:
            session = self._session_factory(
                config,
                on_connect=on_connect,
                on_auth_failure=self._on_auth_failure,
                on_disconnect=self._on_disconnect,
            )
        except Exception as e:
            logger.error(f"❌ [{self.device_id}] Unable to create session: {e}", exc_info=True)
            return

        with self._session_lock:
            self._session = session

        try:
            session.start()
        except Exception as e:
            logger.error(f"❌ [{self.device_id}] Unable to connect to {self.broker_host}:{self.broker_port}: {e}")
            session.end()

    def _is_current(self, session) -> bool:
        return session is self._session

    # ===== Session callbacks =====

    def _on_pairing_established(self, session) -> None:
        if not self._is_current(session):
            return

        device_prefix = self.device_prefix
        self.publish_status(DeviceStatus.INIT)

        session.subscribe(f"{device_prefix}/$config/apiKey/set", self._handle_api_key, qos=1)
        self._command_channel.attach(session, f"{device_prefix}/$cmd/set")

        self.advertise()

        # Values only; nothing is settable before pairing
        for node in self.nodes:
            node.bind(device_prefix, session)

        self.publish_status(DeviceStatus.READY)

    def _on_authenticated_established(self, session) -> None:
        if not self._is_current(session):
            return

        device_prefix = self.device_prefix
        self.publish_status(DeviceStatus.INIT)

        self._command_channel.attach(session, f"{device_prefix}/$cmd/set")

        self.advertise()

        for node in self.nodes:
            node.subscribe(device_prefix, session)
            node.bind(device_prefix, session)

        self.state = PairingState.CONNECTED
        self.publish_status(DeviceStatus.READY)
        self._notify(self._on_connected, self)

    def _on_auth_failure(self, session, reason) -> None:
        if not self._is_current(session):
            return

        if self.state is PairingState.PAIRING_ACTIVE:
            logger.error(f"❌ [{self.device_id}] Guest session rejected by broker ({reason})")
            return

        logger.warning(f"⚠️ [{self.device_id}] Invalid username/password, forgetting apiKey")
        # TODO: confirm with product whether production should re-pair as well
        if self.production:
            logger.error(f"❌ [{self.device_id}] Production mode: keeping credential, device stays offline")
            return

        session.end()
        self.forgot()
        self.connect_pairing()

    def _on_disconnect(self, session, reason) -> None:
        if not self._is_current(session) or session.is_closing:
            return
        # Broker publishes the last-will; paho reconnects on its own
        logger.warning(f"⚠️ [{self.device_id}] Session lost ({reason})")
        self._set_status(DeviceStatus.LOST)

    # ===== Inbound handlers =====

    def _handle_api_key(self, topic: str, payload: str) -> None:
        if self.state is not PairingState.PAIRING_ACTIVE:
            logger.warning(f"⚠️ [{self.device_id}] apiKey ignored outside pairing mode")
            return
        if not payload:
            logger.warning(f"⚠️ [{self.device_id}] Empty apiKey ignored")
            return

        session = self._session
        self.credential = Credential(api_key=payload)
        self.state = PairingState.CREDENTIAL_PERSISTED
        try:
            self._store.set(self.device_id, self.credential)
            logger.info(f"🔑 [{self.device_id}] Got apiKey, reconnecting")
        except OSError as e:
            logger.error(f"❌ [{self.device_id}] Unable to persist apiKey, keeping it in memory: {e}")

        self.publish_status(DeviceStatus.PAIRED)
        self.publish_status(DeviceStatus.DISCONNECTED)
        session.end()
        self.connect()

    def _handle_restart(self) -> None:
        logger.info(f"[{self.device_id}] Restarting...")
        if self.is_paired():
            self.connect()
        else:
            self.connect_pairing()

    def _handle_reset(self) -> None:
        logger.info(f"[{self.device_id}] Resetting...")
        session = self._session
        if session is not None:
            session.end()
        self.forgot()
        self.connect_pairing()

    # ===== Outbound =====

    def advertise(self) -> None:
        """Publish $name, $realm, $nodes and every node/property descriptor."""
        session = self._session
        if session is None:
            return

        device_prefix = self.device_prefix
        session.publish(f"{device_prefix}/$name", self.device_name, qos=1, retain=True)
        session.publish(f"{device_prefix}/$realm", self.realm, qos=1, retain=True)
        session.publish(
            f"{device_prefix}/$nodes",
            ",".join(node.node_id for node in self.nodes),
            qos=1,
            retain=True,
        )

        for node in self.nodes:
            node.advertise(device_prefix, session)

    def publish_status(self, status: DeviceStatus) -> None:
        """Record status and publish it (retained) on ``$state``."""
        self._set_status(status)

        session = self._session
        if session is None or session.is_closing:
            logger.debug(f"[{self.device_id}] Status {status.value} not published: no live session")
            return
        session.publish(self.state_topic, status.value, qos=1, retain=True)

    def publish_property_data(self, property_id: str, value: PropertyValue) -> None:
        """
        Push a value into the property identified by property_id.

        Args:
            property_id: Property identifier (routing ignores node ids)
            value: Payload, or callable(node, property) returning it
        """
        found = self.find_property(property_id)
        if found is None:
            logger.debug(f"[{self.device_id}] Unable to locate node with property {property_id}")
            return

        if self._session is None:
            logger.debug(f"[{self.device_id}] Not connected")
            return

        node, prop = found
        try:
            final_value = value(node, prop) if callable(value) else value
            prop.set_value(final_value)
        except Exception as e:
            logger.error(f"❌ [{self.device_id}] Unable to publish {property_id}: {e}", exc_info=True)

    # ===== Observers =====

    def _set_status(self, status: DeviceStatus) -> None:
        self.status = status
        self._notify(self._on_status, self, status)

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"❌ [{self.device_id}] Observer raised: {e}", exc_info=True)
