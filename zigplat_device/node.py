"""
Node - a group of properties advertised under one node id.

Topics (``device_prefix`` = ``<prefix>/<device_id>``):
    <device_prefix>/<node_id>/$name
    <device_prefix>/<node_id>/$type          component type
    <device_prefix>/<node_id>/$properties    comma-joined property ids
"""

from typing import Callable, List, Optional, Union

from zigplat_mqtt.schemas import ComponentType

from .property import Property


class Node:
    """
    Capability tree node.

    Attributes:
        node_id: Identifier, unique within the device
        name: Human-readable name
        component_type: Kind of component
        properties: Properties in insertion (advertisement) order
    """

    def __init__(
        self,
        node_id: str,
        name: str,
        component_type: Union[ComponentType, str] = ComponentType.GENERIC,
        claim_property_id: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            node_id: Node identifier
            name: Node name
            component_type: Kind of component
            claim_property_id: Called with every new property id before it is
                added; raises ValueError if the id is already used elsewhere
                in the device
        """
        if not node_id:
            raise ValueError("node_id cannot be empty")

        self.node_id = node_id
        self.name = name
        self.component_type = ComponentType(component_type)
        self.properties: List[Property] = []
        self._claim_property_id = claim_property_id

    def __repr__(self) -> str:
        return f"Node(node_id={self.node_id!r}, properties={len(self.properties)})"

    def add_property(self, property_id: str, name: str, **kwargs) -> Property:
        """
        Append a property and return it.

        Args:
            property_id: Identifier, unique within the device
            name: Human-readable name
            **kwargs: Remaining Property arguments (datatype, settable,
                callback, unit, format, retained)

        Raises:
            ValueError: If property_id is already used in this device
        """
        if any(p.property_id == property_id for p in self.properties):
            raise ValueError(f"Property '{property_id}' already exists in node '{self.node_id}'")
        if self._claim_property_id is not None:
            self._claim_property_id(property_id)

        prop = Property(self.node_id, property_id, name, **kwargs)
        self.properties.append(prop)
        return prop

    def get_property(self, property_id: str) -> Optional[Property]:
        for prop in self.properties:
            if prop.property_id == property_id:
                return prop
        return None

    def advertise(self, device_prefix: str, session) -> None:
        """Publish node metadata, then every property's descriptors."""
        base = f"{device_prefix}/{self.node_id}"
        session.publish(f"{base}/$name", self.name, qos=1, retain=True)
        session.publish(f"{base}/$type", self.component_type.value, qos=1, retain=True)
        session.publish(
            f"{base}/$properties",
            ",".join(p.property_id for p in self.properties),
            qos=1,
            retain=True,
        )

        for prop in self.properties:
            prop.advertise(device_prefix, session)

    def subscribe(self, device_prefix: str, session) -> None:
        """Subscribe to ``/set`` of every settable property."""
        for prop in self.properties:
            if prop.settable:
                session.subscribe(prop.set_topic(device_prefix), prop.handle_set, qos=1)

    def bind(self, device_prefix: str, session) -> None:
        """Route every property's value channel through session."""
        for prop in self.properties:
            prop.bind(device_prefix, session)
