"""
MQTT client wrapper for sending device-convention commands.

Handles MQTT connection, publishing, and disconnection for one-shot
commands (restart, reset, apiKey provisioning).
"""

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion
from typing import Optional


class MQTTCommandClient:
    """
    One-shot MQTT client for device commands.

    Publishes raw string payloads with QoS 1.
    """

    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None
    ):
        """
        Initialize MQTT command client.

        Args:
            broker: MQTT broker host
            port: MQTT broker port
            username: Optional MQTT username
            password: Optional MQTT password
        """
        self.broker = broker
        self.port = port
        self.username = username
        self.password = password

        self.client = mqtt.Client(callback_api_version=CallbackAPIVersion.VERSION2)

        if username:
            self.client.username_pw_set(username, password or "")

    def send(
        self,
        topic: str,
        payload: str,
        qos: int = 1,
        timeout: float = 5.0
    ) -> None:
        """
        Publish payload to topic and disconnect.

        Args:
            topic: Full topic (e.g., "v2/alice/0x00124b0012345678/$cmd/set")
            payload: Raw string payload
            qos: Quality of Service (default: 1 for control commands)
            timeout: Seconds to wait for the broker to acknowledge

        Raises:
            ConnectionError: If unable to connect to MQTT broker
            RuntimeError: If the publish is not acknowledged
        """
        try:
            self.client.connect(self.broker, self.port, keepalive=60)
        except OSError as e:
            raise ConnectionError(
                f"Unable to connect to MQTT broker at {self.broker}:{self.port}: {e}"
            ) from e

        self.client.loop_start()
        try:
            result = self.client.publish(topic, payload, qos=qos)
            result.wait_for_publish(timeout=timeout)
            if not result.is_published():
                raise RuntimeError(f"Publish to {topic} not acknowledged within {timeout}s")
        finally:
            self.client.disconnect()
            self.client.loop_stop()

        print(f"✅ Sent to {topic}")
