#!/usr/bin/env python3
"""
Gateway Bridge Service - Entry Point
====================================

This script starts the zigplat bridge, which:
- Listens to a zigbee2mqtt gateway for the device roster and telemetry
- Exposes every device as a Platform on the platform broker
- Pairs unpaired devices through a guest session
- Relays platform set-commands back to the gateway

Usage:
    python run_bridge.py --config config/bridge.yaml

Lifecycle:
    1. Load configuration from YAML (+ environment overrides)
    2. Setup logging (console + file)
    3. Create credential store and GatewayBridgeService
    4. Start service (non-blocking)
    5. Wait for stop signal (Ctrl+C or SIGTERM)
    6. Graceful shutdown (every Platform publishes "disconnected")

Signals:
    - SIGTERM: Graceful shutdown
    - SIGINT (Ctrl+C): Graceful shutdown
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from zigplat_device import JsonFileCredentialStore
from zigplat_gateway import BridgeConfig, GatewayBridgeService


# ─────────────────────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[Path] = None, level: str = "INFO") -> logging.Logger:
    """
    Setup logging for the bridge service.

    Args:
        log_file: Optional path to log file
        level: Root log level name

    Returns:
        Logger instance for the bridge
    """
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )

    return logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Main Service
# ─────────────────────────────────────────────────────────────────────────────

class BridgeApp:
    """
    Application wrapper for GatewayBridgeService.

    Handles:
    - Configuration loading
    - Component initialization
    - Signal handling (SIGTERM, SIGINT)
    - Graceful shutdown
    """

    def __init__(self, config_path: Path, log_file: Optional[Path] = None, log_level: str = "INFO"):
        self.config_path = config_path
        self.logger = setup_logging(log_file, log_level)

        self.config: Optional[BridgeConfig] = None
        self.service: Optional[GatewayBridgeService] = None

        self._stop_event = threading.Event()
        self._shutdown_requested = False

    def setup(self):
        """Load configuration and build the service."""
        self.logger.info("=" * 80)
        self.logger.info("🚀 zigplat bridge - Starting")
        self.logger.info("=" * 80)

        self.logger.info(f"📄 Loading configuration: {self.config_path}")
        self.config = BridgeConfig.from_yaml(self.config_path).with_env_overrides()
        self.logger.info(
            f"✅ Configuration loaded (realm={self.config.platform.realm}, "
            f"production={self.config.platform.production})"
        )

        store = JsonFileCredentialStore(self.config.storage.credentials_path)
        self.logger.info(f"🔑 Credentials: {self.config.storage.credentials_path}")

        self.service = GatewayBridgeService(self.config, store)

    def run(self):
        """Run until a shutdown signal arrives."""
        if not self.service:
            raise RuntimeError("Service not initialized. Call setup() first.")

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        try:
            self.service.start()
            self.logger.info("✅ Service started successfully")
            self.logger.info("Press Ctrl+C to stop")
            self._stop_event.wait()
        except Exception as e:
            self.logger.error(f"❌ Service error: {e}", exc_info=True)
            self.shutdown()
            sys.exit(1)

    def shutdown(self):
        """Stop the service once."""
        if self._shutdown_requested:
            return
        self._shutdown_requested = True

        self.logger.info("🛑 Shutting down bridge")
        if self.service:
            try:
                self.service.stop()
            except Exception as e:
                self.logger.error(f"❌ Error stopping service: {e}")
        self._stop_event.set()
        self.logger.info("✅ Shutdown complete")

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        self.logger.info(f"⚠️  Received signal {signal_name} ({signum})")
        self.shutdown()


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="zigplat bridge - zigbee2mqtt devices on the platform broker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with config
  python run_bridge.py --config config/bridge.yaml

  # Production (keeps rejected credentials instead of re-pairing)
  ZIGPLAT_ENV=production python run_bridge.py --config config/bridge.yaml
        """
    )

    parser.add_argument('--config', type=Path, required=True, help='Path to bridge configuration YAML file')
    parser.add_argument('--log-file', type=Path, default=Path('logs/bridge.log'),
                        help='Path to log file (default: logs/bridge.log)')
    parser.add_argument('--no-log-file', action='store_true', help='Disable file logging (console only)')
    parser.add_argument('--log-level', default='INFO', help='Log level (default: INFO)')

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    log_file = None if args.no_log_file else args.log_file

    if not args.config.exists():
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    app = BridgeApp(config_path=args.config, log_file=log_file, log_level=args.log_level)

    try:
        app.setup()
        app.run()
    except Exception as e:
        print(f"❌ Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
