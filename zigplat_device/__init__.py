"""
zigplat_device - Virtualized devices on the platform broker

This package models one physical device as a device-convention endpoint:
its capability tree (nodes and properties), its pairing credential, and the
state machine that pairs it and keeps its session alive.

Architecture:
- Platform: Pairing/connection state machine (one per device)
- Node, Property: Capability tree advertised and routed through a session
- CredentialStore: Credential persistence (JSON file or memory)
"""

from zigplat_device.node import Node
from zigplat_device.property import Property
from zigplat_device.platform import Platform, PairingState, GUEST_PREFIX, AUTH_PREFIX_TEMPLATE
from zigplat_device.storage import CredentialStore, JsonFileCredentialStore, MemoryCredentialStore

__all__ = [
    "Node",
    "Property",
    "Platform",
    "PairingState",
    "GUEST_PREFIX",
    "AUTH_PREFIX_TEMPLATE",
    "CredentialStore",
    "JsonFileCredentialStore",
    "MemoryCredentialStore",
]
