"""
zigbee2mqtt expose convertor.

Translates the ``definition.exposes`` entries of a zigbee2mqtt device into
properties on a capability-tree node.

Expose mapping:
    binary   -> boolean  (value_on/value_off translated to true/false)
    numeric  -> float, or integer when value_step is a whole number
    enum     -> enum     ($format = comma-joined values)
    text     -> string
    composite types (switch, light, lock, ...) are flattened into features

Access bits (zigbee2mqtt):
    0b001 published in device state
    0b010 settable via /set
    0b100 retrievable via /get
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from zigplat_device import Node, Property
from zigplat_mqtt.schemas import Datatype

logger = logging.getLogger(__name__)

ACCESS_STATE = 0b001
ACCESS_SET = 0b010

COMPOSITE_TYPES = {"switch", "light", "lock", "cover", "climate", "fan", "composite"}

GatewaySetter = Callable[[Any], None]


@dataclass
class ExposedProperty:
    """
    A property created from an expose, with its gateway value mapping.

    Attributes:
        property: The capability-tree property
        gateway_name: Key used by zigbee2mqtt for this value
        value_on: Gateway value meaning true (binary only)
        value_off: Gateway value meaning false (binary only)
    """
    property: Property
    gateway_name: str
    value_on: Any = None
    value_off: Any = None

    @property
    def is_binary(self) -> bool:
        return self.property.datatype is Datatype.BOOLEAN

    def to_platform(self, raw: Any) -> str:
        """Gateway value -> platform payload."""
        if self.is_binary and self.value_on is not None:
            if raw == self.value_on:
                return "true"
            if raw == self.value_off:
                return "false"
        return normalize_value(raw)

    def to_gateway(self, payload: str) -> Any:
        """Platform payload -> gateway value."""
        if self.is_binary and self.value_on is not None:
            lowered = payload.strip().lower()
            if lowered == "true":
                return self.value_on
            if lowered == "false":
                return self.value_off
        return payload


def normalize_value(raw: Any) -> str:
    """Render a gateway JSON value as a platform payload string."""
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if raw is None:
        return ""
    if isinstance(raw, (dict, list)):
        return json.dumps(raw)
    return str(raw)


def iter_exposes(exposes: List[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    """Yield leaf exposes, flattening composite types into their features."""
    for expose in exposes:
        if expose.get("type") in COMPOSITE_TYPES and expose.get("features"):
            yield from iter_exposes(expose["features"])
        else:
            yield expose


def _datatype_and_format(expose: Dict[str, Any]) -> tuple:
    kind = expose.get("type")

    if kind == "binary":
        return Datatype.BOOLEAN, None

    if kind == "numeric":
        step = expose.get("value_step")
        datatype = Datatype.INTEGER if isinstance(step, int) or (
            isinstance(step, float) and step.is_integer()
        ) else Datatype.FLOAT
        vmin, vmax = expose.get("value_min"), expose.get("value_max")
        fmt = f"{vmin}:{vmax}" if vmin is not None and vmax is not None else None
        return datatype, fmt

    if kind == "enum":
        values = expose.get("values") or []
        return Datatype.ENUM, ",".join(str(v) for v in values) or None

    return Datatype.STRING, None


def assign_property(
    expose: Dict[str, Any],
    node: Node,
    setter_factory: Callable[[str], GatewaySetter],
) -> Optional[ExposedProperty]:
    """
    Add the property described by expose to node.

    Args:
        expose: One leaf zigbee2mqtt expose
        node: Node to add the property to
        setter_factory: Returns the function that writes a value for the
            given gateway property name back to the gateway

    Returns:
        ExposedProperty, or None when the expose is skipped (no property key,
        or the id is already used on this device)
    """
    gateway_name = expose.get("property") or expose.get("name")
    if not gateway_name:
        logger.debug(f"Skipping expose without property: {expose.get('type')}")
        return None

    datatype, fmt = _datatype_and_format(expose)
    access = expose.get("access", ACCESS_STATE)
    settable = bool(access & ACCESS_SET)

    exposed = ExposedProperty(
        property=None,
        gateway_name=gateway_name,
        value_on=expose.get("value_on"),
        value_off=expose.get("value_off"),
    )

    callback = None
    if settable:
        write = setter_factory(gateway_name)
        callback = lambda payload: write(exposed.to_gateway(payload))

    try:
        exposed.property = node.add_property(
            gateway_name,
            expose.get("label") or expose.get("name") or gateway_name,
            datatype=datatype,
            settable=settable,
            callback=callback,
            unit=expose.get("unit"),
            format=fmt,
        )
    except ValueError as e:
        logger.warning(f"⚠️ Skipping expose '{gateway_name}': {e}")
        return None

    return exposed
