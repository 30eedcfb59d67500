"""
Platform Registry - Thread-safe index of virtualized devices.

Holds exactly one Platform per device id, plus a friendly-name index used to
route zigbee2mqtt telemetry (which is addressed by friendly name).

Thread Safety:
- Uses threading.Lock for protecting dict mutations
- Readers get snapshots (lists/copies), never the live dicts
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from zigplat_device import Platform

from .convertor import ExposedProperty


@dataclass
class ManagedDevice:
    """
    A Platform with its gateway-side bookkeeping.

    Attributes:
        platform: The device's state machine
        friendly_name: Current zigbee2mqtt friendly name
        exposed: Gateway property name -> ExposedProperty
    """

    platform: Platform
    friendly_name: str
    exposed: Dict[str, ExposedProperty] = field(default_factory=dict)

    @property
    def device_id(self) -> str:
        return self.platform.device_id


class PlatformRegistry:
    """
    Thread-safe registry of ManagedDevice entries.

    Usage:
        registry = PlatformRegistry()
        registry.add(ManagedDevice(platform, "kitchen_sensor"))
        managed = registry.get_by_friendly_name("kitchen_sensor")
    """

    def __init__(self):
        self._devices: Dict[str, ManagedDevice] = {}
        self._by_name: Dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, managed: ManagedDevice) -> None:
        """
        Register a device.

        Raises:
            ValueError: If the device id is already registered
        """
        with self._lock:
            if managed.device_id in self._devices:
                raise ValueError(f"Device '{managed.device_id}' already registered")
            self._devices[managed.device_id] = managed
            self._by_name[managed.friendly_name] = managed.device_id

    def rename(self, device_id: str, friendly_name: str) -> None:
        """Point friendly_name at device_id (zigbee2mqtt rename)."""
        with self._lock:
            managed = self._devices.get(device_id)
            if managed is None or managed.friendly_name == friendly_name:
                return
            self._by_name.pop(managed.friendly_name, None)
            managed.friendly_name = friendly_name
            self._by_name[friendly_name] = device_id

    def contains(self, device_id: str) -> bool:
        with self._lock:
            return device_id in self._devices

    def get(self, device_id: str) -> Optional[ManagedDevice]:
        with self._lock:
            return self._devices.get(device_id)

    def get_by_friendly_name(self, friendly_name: str) -> Optional[ManagedDevice]:
        with self._lock:
            device_id = self._by_name.get(friendly_name)
            return self._devices.get(device_id) if device_id else None

    def list_devices(self) -> List[ManagedDevice]:
        with self._lock:
            return list(self._devices.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)
