"""
Configuration schema for the gateway bridge service.

This module defines the configuration structure for the bridge: the
zigbee2mqtt gateway broker, the platform broker and account realm, and where
pairing credentials are stored.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional
import yaml


@dataclass(frozen=True)
class GatewayConfig:
    """zigbee2mqtt broker configuration."""

    host: str = "localhost"
    port: int = 1883
    base_topic: str = "zigbee2mqtt"
    username: Optional[str] = None
    password: Optional[str] = None

    def __post_init__(self):
        """Validate gateway configuration."""
        if not self.host:
            raise ValueError("gateway host cannot be empty")

        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"Gateway port must be in [1, 65535], got {self.port}"
            )

        if not self.base_topic or "/" in self.base_topic.strip("/"):
            raise ValueError(
                f"base_topic must be a single topic level, got {self.base_topic!r}"
            )


@dataclass(frozen=True)
class PlatformConfig:
    """
    Platform broker configuration.

    ``production`` keeps a rejected credential instead of sending the device
    back to pairing.
    """

    host: str = "localhost"
    port: int = 1883
    realm: str = ""
    keepalive: int = 10
    guest_prefix: str = "prefix"
    tls: bool = False
    tls_insecure: bool = False
    production: bool = False

    def __post_init__(self):
        """Validate platform configuration."""
        if not self.host:
            raise ValueError("platform host cannot be empty")

        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"Platform port must be in [1, 65535], got {self.port}"
            )

        if not self.realm:
            raise ValueError("platform realm cannot be empty")

        if "/" in self.realm:
            raise ValueError(f"realm cannot contain '/', got {self.realm!r}")

        if not 1 <= self.keepalive <= 3600:
            raise ValueError(
                f"keepalive must be in [1, 3600], got {self.keepalive}"
            )

        if not self.guest_prefix:
            raise ValueError("guest_prefix cannot be empty")


@dataclass(frozen=True)
class StorageConfig:
    """Credential storage configuration."""

    credentials_path: Path = Path("./data/credentials.json")

    def __post_init__(self):
        if self.credentials_path.exists() and self.credentials_path.is_dir():
            raise ValueError(
                f"credentials_path must be a file, got directory: {self.credentials_path}"
            )


@dataclass(frozen=True)
class BridgeConfig:
    """
    Main configuration for the bridge service.

    Loaded from YAML and validated at startup.
    Immutable after construction (frozen dataclass).
    """

    platform: PlatformConfig
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "BridgeConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            gateway:
              host: "zigbee.local"
              port: 1883
              base_topic: "zigbee2mqtt"

            platform:
              host: "platform.example.com"
              port: 8883
              realm: "alice"
              keepalive: 10
              tls: true
              tls_insecure: true
              production: false

            storage:
              credentials_path: "./data/credentials.json"

        Raises:
            FileNotFoundError: If yaml_path does not exist
            ValueError: If YAML is invalid or values fail validation
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping) -> "BridgeConfig":
        """Build from an already-parsed mapping."""
        if "platform" not in data:
            raise ValueError("Missing required 'platform' section")

        gateway = GatewayConfig(**(data.get("gateway") or {}))
        platform = PlatformConfig(**data["platform"])

        storage_data = dict(data.get("storage") or {})
        if "credentials_path" in storage_data:
            storage_data["credentials_path"] = Path(storage_data["credentials_path"])
        storage = StorageConfig(**storage_data)

        return cls(platform=platform, gateway=gateway, storage=storage)

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "BridgeConfig":
        """
        Apply environment overrides.

        Variables:
            ZIGPLAT_GATEWAY_HOST, ZIGPLAT_GATEWAY_PORT
            ZIGPLAT_PLATFORM_HOST, ZIGPLAT_PLATFORM_PORT
            ZIGPLAT_REALM
            ZIGPLAT_ENV ("production" sets platform.production)
            ZIGPLAT_CREDENTIALS_PATH
        """
        env = os.environ if environ is None else environ

        gateway = self.gateway
        if env.get("ZIGPLAT_GATEWAY_HOST"):
            gateway = replace(gateway, host=env["ZIGPLAT_GATEWAY_HOST"])
        if env.get("ZIGPLAT_GATEWAY_PORT"):
            gateway = replace(gateway, port=int(env["ZIGPLAT_GATEWAY_PORT"]))

        platform = self.platform
        if env.get("ZIGPLAT_PLATFORM_HOST"):
            platform = replace(platform, host=env["ZIGPLAT_PLATFORM_HOST"])
        if env.get("ZIGPLAT_PLATFORM_PORT"):
            platform = replace(platform, port=int(env["ZIGPLAT_PLATFORM_PORT"]))
        if env.get("ZIGPLAT_REALM"):
            platform = replace(platform, realm=env["ZIGPLAT_REALM"])
        if "ZIGPLAT_ENV" in env:
            platform = replace(platform, production=env["ZIGPLAT_ENV"] == "production")

        storage = self.storage
        if env.get("ZIGPLAT_CREDENTIALS_PATH"):
            storage = replace(storage, credentials_path=Path(env["ZIGPLAT_CREDENTIALS_PATH"]))

        return replace(self, gateway=gateway, platform=platform, storage=storage)
