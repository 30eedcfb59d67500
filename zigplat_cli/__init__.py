"""
zigplat CLI - Command-line interface for device commands.

Usage:
    zigplat-cli pair <device_id> <api_key>
    zigplat-cli --realm <realm> restart <device_id>
    zigplat-cli --realm <realm> reset <device_id>
"""

from .cli import main

__all__ = ["main"]
