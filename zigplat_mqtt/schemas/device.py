"""
Device Convention Enumerations
==============================

Bounded Context: Device-Convention Vocabulary

String enums for the values that travel on the device-convention topics:

- DeviceStatus: payload of ``<prefix>/<device_id>/$state``
- DeviceCommand: payload of ``<prefix>/<device_id>/$cmd/set``
- ComponentType: payload of ``<prefix>/<device_id>/<node_id>/$type``
- Datatype: payload of ``<prefix>/<device_id>/<node_id>/<property_id>/$datatype``

All enums subclass ``str`` so members can be published directly as payloads.
"""

from enum import Enum


class DeviceStatus(str, Enum):
    """Connection status published (retained) on ``$state``."""
    DISCONNECTED = "disconnected"
    LOST = "lost"              # Also the last-will payload
    ERROR = "error"
    ALERT = "alert"
    SLEEPING = "sleeping"
    RESTARTING = "restarting"
    READY = "ready"
    INIT = "init"
    PAIRED = "paired"


class DeviceCommand(str, Enum):
    """Commands accepted on ``$cmd/set``."""
    RESTART = "restart"        # Reconnect, keep credential
    RESET = "reset"            # Forget credential, re-enter pairing


class ComponentType(str, Enum):
    """Kind of component a node represents."""
    GENERIC = "generic"
    SENSOR = "sensor"
    SWITCH = "switch"
    ACTIVATOR = "activator"


class Datatype(str, Enum):
    """Property value datatype advertised on ``$datatype``."""
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    ENUM = "enum"
    COLOR = "color"
