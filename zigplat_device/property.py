"""
Property - a single observable/controllable attribute of a node.

Topics (``device_prefix`` = ``<prefix>/<device_id>``):
    <device_prefix>/<node_id>/<property_id>             value channel
    <device_prefix>/<node_id>/<property_id>/set         inbound set (settable only)
    <device_prefix>/<node_id>/<property_id>/$name       advertisement
    <device_prefix>/<node_id>/<property_id>/$datatype
    <device_prefix>/<node_id>/<property_id>/$settable
    <device_prefix>/<node_id>/<property_id>/$retained
    <device_prefix>/<node_id>/<property_id>/$unit       (when set)
    <device_prefix>/<node_id>/<property_id>/$format     (when set)

A Property performs no I/O of its own: it publishes through the session it
was last bound to, under the prefix it was bound with.
"""

import logging
from typing import Any, Callable, Optional, Union

from zigplat_mqtt.schemas import Datatype

logger = logging.getLogger(__name__)

PropertyCallback = Callable[[str], None]


class Property:
    """
    Observable/controllable attribute.

    Attributes:
        node_id: Owning node identifier
        property_id: Identifier, unique within the device across all nodes
        name: Human-readable name
        datatype: Advertised datatype (no validation is performed on values)
        settable: Whether subscribers may write it via ``/set``
        callback: Invoked with the raw payload of inbound ``/set`` messages
        unit: Optional unit (e.g. "°C")
        format: Optional format (enum values "a,b,c" or range "0:100")
        retained: Whether value messages are retained
        current_value: Last value pushed through set_value()
    """

    def __init__(
        self,
        node_id: str,
        property_id: str,
        name: str,
        datatype: Union[Datatype, str] = Datatype.STRING,
        settable: bool = False,
        callback: Optional[PropertyCallback] = None,
        unit: Optional[str] = None,
        format: Optional[str] = None,
        retained: bool = True,
    ):
        if not property_id:
            raise ValueError("property_id cannot be empty")

        self.node_id = node_id
        self.property_id = property_id
        self.name = name
        self.datatype = Datatype(datatype)
        self.settable = settable
        self.callback = callback
        self.unit = unit
        self.format = format
        self.retained = retained
        self.current_value: Optional[str] = None

        self._device_prefix: Optional[str] = None
        self._session = None

    def __repr__(self) -> str:
        return (
            f"Property(property_id={self.property_id!r}, node_id={self.node_id!r}, "
            f"datatype={self.datatype.value}, settable={self.settable})"
        )

    def topic(self, device_prefix: str) -> str:
        """Value channel under device_prefix."""
        return f"{device_prefix}/{self.node_id}/{self.property_id}"

    def set_topic(self, device_prefix: str) -> str:
        return f"{self.topic(device_prefix)}/set"

    def bind(self, device_prefix: str, session) -> None:
        """Point the value channel at session, under device_prefix."""
        self._device_prefix = device_prefix
        self._session = session

    def advertise(self, device_prefix: str, session) -> None:
        """Publish descriptors, then the current value if one is known."""
        base = self.topic(device_prefix)
        session.publish(f"{base}/$name", self.name, qos=1, retain=True)
        session.publish(f"{base}/$datatype", self.datatype.value, qos=1, retain=True)
        session.publish(f"{base}/$settable", _flag(self.settable), qos=1, retain=True)
        session.publish(f"{base}/$retained", _flag(self.retained), qos=1, retain=True)
        if self.unit:
            session.publish(f"{base}/$unit", self.unit, qos=1, retain=True)
        if self.format:
            session.publish(f"{base}/$format", self.format, qos=1, retain=True)

        if self.current_value is not None:
            session.publish(base, self.current_value, qos=1, retain=self.retained)

    def set_value(self, value: Any) -> None:
        """
        Store value as current_value and publish it on the value channel.

        Values are published as their string form; callers are responsible
        for sending well-formed scalars.
        """
        payload = value if isinstance(value, str) else str(value)
        self.current_value = payload

        if self._session is None:
            logger.debug(f"Property {self.property_id} not bound; value stored only")
            return

        self._session.publish(
            self.topic(self._device_prefix),
            payload,
            qos=1,
            retain=self.retained,
        )

    def handle_set(self, topic: str, payload: str) -> None:
        """Inbound ``/set`` handler: forward the raw payload to callback."""
        if self.callback is None:
            logger.warning(f"Property {self.property_id} is settable but has no callback")
            return
        logger.debug(f"Set {self.property_id} <- {payload}")
        self.callback(payload)


def _flag(value: bool) -> str:
    return "true" if value else "false"
