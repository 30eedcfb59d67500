"""
zigplat CLI - Main entry point.

Provides command-line interface for sending device-convention commands to a
virtualized device over the platform broker.
"""

import argparse
import sys
from typing import List, Optional

from zigplat_device.platform import AUTH_PREFIX_TEMPLATE, GUEST_PREFIX
from zigplat_mqtt.schemas import DeviceCommand

from .mqtt_client import MQTTCommandClient


def device_prefix(device_id: str, realm: Optional[str], guest: bool, guest_prefix: str = GUEST_PREFIX) -> str:
    """
    Topic prefix of a device.

    Args:
        device_id: Target device id
        realm: Account realm (required unless guest)
        guest: Address the pairing (guest) prefix instead of the realm prefix
        guest_prefix: Guest prefix in use by the bridge

    Raises:
        ValueError: If realm is missing for a non-guest target
    """
    if guest:
        return f"{guest_prefix}/{device_id}"
    if not realm:
        raise ValueError("--realm is required unless --guest is given")
    return f"{AUTH_PREFIX_TEMPLATE.format(realm=realm)}/{device_id}"


def build_message(args: argparse.Namespace) -> tuple:
    """
    Topic and payload for the parsed subcommand.

    Returns:
        (topic, payload)
    """
    if args.command == "pair":
        # apiKey is only accepted on the guest prefix
        prefix = device_prefix(args.device_id, args.realm, guest=True, guest_prefix=args.guest_prefix)
        return f"{prefix}/$config/apiKey/set", args.api_key

    prefix = device_prefix(args.device_id, args.realm, args.guest, args.guest_prefix)
    return f"{prefix}/$cmd/set", DeviceCommand(args.command).value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="zigplat CLI - Send commands to virtualized devices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Provision an apiKey to a device waiting in pairing mode
  zigplat-cli pair 0x00124b0012345678 secret123

  # Reconnect a paired device (keeps its apiKey)
  zigplat-cli --realm alice restart 0x00124b0012345678

  # Forget the apiKey and send the device back to pairing
  zigplat-cli --realm alice reset 0x00124b0012345678

  # Restart a device that is still in pairing mode
  zigplat-cli --guest restart 0x00124b0012345678
"""
    )

    parser.add_argument("--broker", default="localhost", help="Platform broker host (default: localhost)")
    parser.add_argument("--port", type=int, default=1883, help="Platform broker port (default: 1883)")
    parser.add_argument("--username", default=None, help="Broker username")
    parser.add_argument("--password", default=None, help="Broker password")
    parser.add_argument("--realm", default=None, help="Account realm of the device")
    parser.add_argument("--guest", action="store_true", help="Target the pairing (guest) prefix")
    parser.add_argument("--guest-prefix", default=GUEST_PREFIX, help=f"Guest prefix (default: {GUEST_PREFIX})")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    pair = subparsers.add_parser("pair", help="Send an apiKey to a device in pairing mode")
    pair.add_argument("device_id", help="Target device id")
    pair.add_argument("api_key", help="apiKey to provision")

    for command in DeviceCommand:
        sub = subparsers.add_parser(command.value, help=f"Send '{command.value}' on $cmd/set")
        sub.add_argument("device_id", help="Target device id")

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        topic, payload = build_message(args)
        client = MQTTCommandClient(
            broker=args.broker,
            port=args.port,
            username=args.username,
            password=args.password,
        )
        client.send(topic, payload, qos=1)
    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
