"""
zigplat_gateway - zigbee2mqtt dispatcher

This package discovers devices from a zigbee2mqtt gateway and exposes each
one as a Platform on the platform broker.

Architecture:
- GatewayBridgeService: Gateway client, roster handling, telemetry routing
- PlatformRegistry: One Platform per device id, friendly-name index
- convertor: zigbee2mqtt exposes -> capability-tree properties
- BridgeConfig: Configuration management (YAML + environment)

Threading Model:
- Gateway client thread (paho-mqtt internal)
- One session thread per Platform (paho-mqtt internal)
"""

from zigplat_gateway.config import BridgeConfig, GatewayConfig, PlatformConfig, StorageConfig
from zigplat_gateway.convertor import ExposedProperty, assign_property, iter_exposes, normalize_value
from zigplat_gateway.registry import ManagedDevice, PlatformRegistry
from zigplat_gateway.service import GatewayBridgeService

__all__ = [
    "BridgeConfig",
    "GatewayConfig",
    "PlatformConfig",
    "StorageConfig",
    "ExposedProperty",
    "assign_property",
    "iter_exposes",
    "normalize_value",
    "ManagedDevice",
    "PlatformRegistry",
    "GatewayBridgeService",
]
