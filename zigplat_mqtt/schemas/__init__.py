"""
zigplat MQTT Schemas
====================

Bounded Context: Device-Convention Data Structures

Public API
----------
Enumerations:
    DeviceStatus, DeviceCommand, ComponentType, Datatype

Credential:
    Credential, CorruptCredentialError, mask_secret
"""

from .device import DeviceStatus, DeviceCommand, ComponentType, Datatype
from .credential import Credential, CorruptCredentialError, mask_secret

__all__ = [
    'DeviceStatus',
    'DeviceCommand',
    'ComponentType',
    'Datatype',
    'Credential',
    'CorruptCredentialError',
    'mask_secret',
]
