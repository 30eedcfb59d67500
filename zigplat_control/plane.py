"""
CommandChannel - ``$cmd/set`` reception for one device session

Bounded Context: Command reception
Responsibilities:
  - Subscribe a session to the device's command topic
  - Normalize the raw payload (plain command string, not JSON)
  - Delegate execution to CommandRegistry

QoS Policy:
  - Commands: QoS 1 (at-least-once delivery)

Threading:
  - Handlers run in the session's paho network thread (keep them fast!)
  - A handler may end the very session it was delivered on (restart/reset)
"""

import logging

from .registry import CommandRegistry, CommandNotAvailableError

logger = logging.getLogger(__name__)


class CommandChannel:
    """
    Routes ``<prefix>/<device_id>/$cmd/set`` payloads to a CommandRegistry.

    Example:
        channel = CommandChannel(registry, device_id="0x00124b0012345678")
        channel.attach(session, topic=f"{device_prefix}/$cmd/set")
    """

    def __init__(self, registry: CommandRegistry, device_id: str):
        """
        Args:
            registry: Registry holding the device's commands
            device_id: Device identifier (for log context)
        """
        self.registry = registry
        self.device_id = device_id

    def attach(self, session, topic: str) -> None:
        """
        Subscribe session to topic and route its payloads to the registry.

        Args:
            session: Session (MQTTSession or compatible)
            topic: Full command topic
        """
        session.subscribe(topic, self.handle, qos=1)
        logger.debug(f"📥 [{self.device_id}] Subscribed to: {topic} (QoS 1)")

    def handle(self, topic: str, payload: str) -> None:
        """
        Execute the command carried by payload.

        Unknown and empty commands are logged and ignored.
        """
        command = payload.strip().lower()

        if not command:
            logger.warning(f"⚠️ [{self.device_id}] Empty command received on {topic}")
            return

        logger.info(f"🎯 [{self.device_id}] Executing command: {command}")

        try:
            self.registry.execute(command)
        except CommandNotAvailableError as e:
            logger.warning(f"⚠️ [{self.device_id}] {e}")
