"""
zigplat MQTT Communication Package
==================================

Bounded Context: Transport for the device-convention protocol

This package provides the MQTT session used by every virtualized device,
the vocabulary that travels over it, and structured logging.

Architecture:
- schemas/: Device-convention enums and the typed Credential record
- session.py: MQTTSession + create_session factory (guest and authenticated)
- logging/: Structured JSON logging for observability

Public API
----------
Schemas:
    DeviceStatus, DeviceCommand, ComponentType, Datatype
    Credential, CorruptCredentialError

Session:
    MQTTSession, SessionConfig, LastWill, create_session

Logging:
    LogEvent, StructuredLogger, create_logger
"""

__version__ = "1.0.0"

from .schemas import (
    DeviceStatus,
    DeviceCommand,
    ComponentType,
    Datatype,
    Credential,
    CorruptCredentialError,
    mask_secret,
)

from .session import (
    MQTTSession,
    SessionConfig,
    LastWill,
    create_session,
)

from .logging import (
    LogEvent,
    StructuredLogger,
    create_logger,
)

__all__ = [
    '__version__',
    'DeviceStatus',
    'DeviceCommand',
    'ComponentType',
    'Datatype',
    'Credential',
    'CorruptCredentialError',
    'mask_secret',
    'MQTTSession',
    'SessionConfig',
    'LastWill',
    'create_session',
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
