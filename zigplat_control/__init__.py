"""
zigplat_control - Device command handling

Bounded Context: ``$cmd/set`` command-and-control
Responsibilities:
  - Command registration and validation
  - Command reception on a device session

Architecture:
  - CommandRegistry: Explicit registration pattern
  - CommandChannel: Subscribes a session to $cmd/set and dispatches payloads
  - QoS 1 for control commands (at-least-once delivery)
"""

from .registry import CommandRegistry, CommandNotAvailableError
from .plane import CommandChannel

__all__ = [
    "CommandRegistry",
    "CommandNotAvailableError",
    "CommandChannel",
]
