"""
Gateway Bridge Service - zigbee2mqtt to platform dispatcher.

This module provides the GatewayBridgeService class which listens to a
zigbee2mqtt broker, builds one Platform per discovered device, pushes device
telemetry into the platforms, and writes platform set-commands back to the
gateway.

Topics (``base`` = gateway base topic, default ``zigbee2mqtt``):
    <base>/#                         subscribed
    <base>/bridge/devices            device roster (JSON array)
    <base>/<friendly_name>           device state (JSON object, name may hold "/")
    <base>/<friendly_name>/set/<p>   outbound writes

Threading Model:
- Gateway client thread (paho-mqtt internal): roster and telemetry handling
- One session thread per Platform (paho-mqtt internal): pairing, commands,
  inbound set messages
"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from zigplat_device import CredentialStore, Platform
from zigplat_mqtt.schemas import ComponentType
from zigplat_mqtt.session import create_session

from .config import BridgeConfig
from .convertor import assign_property, iter_exposes, normalize_value
from .registry import ManagedDevice, PlatformRegistry

logger = logging.getLogger(__name__)


class GatewayBridgeService:
    """
    Dispatcher between the zigbee2mqtt gateway and the platform broker.

    Usage:
        config = BridgeConfig.from_yaml("config.yaml")
        store = JsonFileCredentialStore(config.storage.credentials_path)

        service = GatewayBridgeService(config, store)
        service.start()   # Non-blocking
        ...
        service.stop()    # Disconnects every platform, then the gateway
    """

    def __init__(
        self,
        config: BridgeConfig,
        credential_store: CredentialStore,
        session_factory: Callable = create_session,
        client: Optional[mqtt.Client] = None,
    ):
        """
        Initialize the service.

        Args:
            config: Bridge configuration
            credential_store: Shared store for every device's credential
            session_factory: Platform session factory (default: create_session)
            client: Gateway MQTT client (default: new paho client)
        """
        self.config = config
        self.credential_store = credential_store
        self.session_factory = session_factory
        self.registry = PlatformRegistry()

        base = config.gateway.base_topic.strip("/")
        self.base_topic = base
        self.roster_topic = f"{base}/bridge/devices"

        if client is None:
            client = mqtt.Client(
                callback_api_version=CallbackAPIVersion.VERSION2,
                client_id="zigplat_gateway",
                protocol=mqtt.MQTTv311,
            )
            if config.gateway.username:
                client.username_pw_set(config.gateway.username, config.gateway.password or "")
        self.client = client
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        self._running = False

        logger.info(
            f"GatewayBridgeService initialized (gateway={config.gateway.host}:{config.gateway.port}, "
            f"platform={config.platform.host}:{config.platform.port}, realm={config.platform.realm})"
        )

    # ===== Lifecycle =====

    def start(self) -> None:
        """
        Connect to the gateway broker (non-blocking).

        Raises:
            OSError: If the gateway broker is unreachable
        """
        if self._running:
            logger.warning("Service already running")
            return

        gateway = self.config.gateway
        logger.info(f"🔌 Connecting to gateway broker: {gateway.host}:{gateway.port}")
        self.client.connect(gateway.host, gateway.port, keepalive=60)
        self.client.loop_start()
        self._running = True

    def stop(self) -> None:
        """Disconnect every platform, then the gateway. Safe to call twice."""
        if not self._running:
            return

        logger.info("Stopping gateway bridge service")
        for managed in self.registry.list_devices():
            try:
                managed.platform.disconnect()
            except Exception as e:
                logger.error(f"❌ Error disconnecting {managed.device_id}: {e}")

        self.client.disconnect()
        self.client.loop_stop()
        self._running = False
        logger.info("✅ Gateway bridge service stopped")

    @property
    def platforms(self) -> List[Platform]:
        return [managed.platform for managed in self.registry.list_devices()]

    # ===== MQTT callbacks (run in gateway client thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            client.subscribe(f"{self.base_topic}/#")
            logger.info(f"📥 Subscribed to: {self.base_topic}/#")
        else:
            logger.error(f"❌ Gateway connection failed (rc={reason_code})")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        if self._running:
            logger.warning(f"⚠️ Gateway disconnected (rc={reason_code})")

    def _on_message(self, client, userdata, msg):
        self.handle_message(msg.topic, msg.payload)

    # ===== Routing =====

    def handle_message(self, topic: str, payload: bytes) -> None:
        """Route one gateway message. Malformed payloads are logged and dropped."""
        try:
            if topic == self.roster_topic:
                devices = json.loads(payload)
                if not isinstance(devices, list):
                    raise ValueError("device roster must be a JSON array")
                self.handle_devices(devices)
                return

            if topic.startswith(f"{self.base_topic}/bridge/") or not topic.startswith(f"{self.base_topic}/"):
                return

            # Friendly names may contain "/"; sub-topics (/set, /availability) match no device
            friendly_name = topic[len(self.base_topic) + 1:]
            if self.registry.get_by_friendly_name(friendly_name) is None:
                return

            data = json.loads(payload)
            if not isinstance(data, dict):
                raise ValueError("device state must be a JSON object")
            self.handle_device_state(friendly_name, data)

        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
            logger.error(f"❌ Malformed payload on {topic}: {e}")
        except Exception as e:
            logger.error(f"❌ Error processing {topic}: {e}", exc_info=True)

    def handle_devices(self, devices: List[Dict[str, Any]]) -> None:
        """
        Build and start a Platform for every device not seen before.

        Already-known devices only get their friendly name refreshed.
        """
        for device in devices:
            device_id = device.get("ieee_address")
            if not device_id:
                continue
            if device.get("type") == "Coordinator":
                continue

            friendly_name = device.get("friendly_name") or device_id

            if self.registry.contains(device_id):
                self.registry.rename(device_id, friendly_name)
                continue

            try:
                managed = self._build_device(device_id, friendly_name, device)
                self.registry.add(managed)
            except ValueError as e:
                logger.error(f"❌ Unable to build platform for {device_id}: {e}")
                continue
            logger.info(
                f"🏗️  Created platform for {friendly_name} ({device_id}) "
                f"with {len(managed.exposed)} properties"
            )
            managed.platform.init()

    def handle_device_state(self, friendly_name: str, data: Dict[str, Any]) -> None:
        """Push a device's ``{property: value}`` state into its Platform."""
        managed = self.registry.get_by_friendly_name(friendly_name)
        if managed is None:
            return

        for gateway_name, raw in data.items():
            exposed = managed.exposed.get(gateway_name)
            if exposed is None:
                managed.platform.publish_property_data(gateway_name, normalize_value(raw))
                continue
            managed.platform.publish_property_data(
                exposed.property.property_id,
                lambda node, prop, exposed=exposed, raw=raw: exposed.to_platform(raw),
            )

    # ===== Construction =====

    def _build_device(self, device_id: str, friendly_name: str, device: Dict[str, Any]) -> ManagedDevice:
        platform_config = self.config.platform
        platform = Platform(
            device_id=device_id,
            realm=platform_config.realm,
            device_name=friendly_name,
            broker_host=platform_config.host,
            broker_port=platform_config.port,
            credential_store=self.credential_store,
            session_factory=self.session_factory,
            keepalive=platform_config.keepalive,
            production=platform_config.production,
            guest_prefix=platform_config.guest_prefix,
            tls=platform_config.tls,
            tls_insecure=platform_config.tls_insecure,
        )

        node = platform.add_node(
            _node_id(friendly_name),
            friendly_name,
            ComponentType.GENERIC,
        )

        managed = ManagedDevice(platform=platform, friendly_name=friendly_name)
        exposes = (device.get("definition") or {}).get("exposes") or []
        for expose in iter_exposes(exposes):
            exposed = assign_property(expose, node, lambda name: self._setter(managed, name))
            if exposed is not None:
                managed.exposed[exposed.gateway_name] = exposed

        return managed

    def _setter(self, managed: ManagedDevice, gateway_name: str) -> Callable[[Any], None]:
        def write(value: Any) -> None:
            topic = f"{self.base_topic}/{managed.friendly_name}/set/{gateway_name}"
            payload = value if isinstance(value, str) else json.dumps(value)
            logger.debug(f"📤 {topic} <- {payload}")
            self.client.publish(topic, payload)
        return write


def _node_id(friendly_name: str) -> str:
    """Friendly names may contain '/', spaces, etc.; node ids are one topic level."""
    node_id = re.sub(r"[^A-Za-z0-9_-]+", "-", friendly_name).strip("-").lower()
    return node_id or "node"
