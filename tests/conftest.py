"""Shared fixtures: an in-memory session double and a recording factory."""

from typing import Callable, Dict, List, Optional, Tuple

import pytest

from zigplat_device import MemoryCredentialStore, Platform
from zigplat_mqtt.schemas import Credential
from zigplat_mqtt.session import SessionConfig


class FakeSession:
    """
    Session double.

    Records publishes and subscriptions; test code drives the broker side
    through fire_connect / deliver / fire_auth_failure / fire_disconnect.
    """

    def __init__(
        self,
        config: SessionConfig,
        on_connect: Optional[Callable] = None,
        on_auth_failure: Optional[Callable] = None,
        on_disconnect: Optional[Callable] = None,
    ):
        self.config = config
        self.on_connect = on_connect
        self.on_auth_failure = on_auth_failure
        self.on_disconnect = on_disconnect

        self.published: List[Tuple[str, str, int, bool]] = []
        self.handlers: Dict[str, Callable[[str, str], None]] = {}
        self.subscriptions: List[Tuple[str, int]] = []
        self.started = False
        self.ended = False
        self.fail_start = False

    # Session interface

    def start(self) -> None:
        if self.fail_start:
            raise OSError("connection refused")
        self.started = True

    def subscribe(self, topic, handler, qos=1) -> None:
        self.handlers[topic] = handler
        self.subscriptions.append((topic, qos))

    def publish(self, topic, payload, qos=0, retain=False) -> bool:
        if self.ended:
            return False
        self.published.append((topic, payload, qos, retain))
        return True

    def end(self) -> None:
        self.ended = True

    @property
    def is_closing(self) -> bool:
        return self.ended

    # Broker side

    def fire_connect(self) -> None:
        self.on_connect(self)

    def fire_auth_failure(self, rc: int = 5) -> None:
        self.on_auth_failure(self, rc)

    def fire_disconnect(self, rc: int = 7) -> None:
        self.on_disconnect(self, rc)

    def deliver(self, topic: str, payload: str) -> None:
        self.handlers[topic](topic, payload)

    # Helpers

    def payloads(self, topic: str) -> List[str]:
        return [p for t, p, _, _ in self.published if t == topic]

    def topics(self) -> List[str]:
        return [t for t, _, _, _ in self.published]


class FakeSessionFactory:
    """Drop-in for create_session; keeps every session it built."""

    def __init__(self):
        self.sessions: List[FakeSession] = []
        self.fail_next_start = False

    def __call__(self, config, on_connect=None, on_auth_failure=None, on_disconnect=None, logger=None):
        session = FakeSession(config, on_connect, on_auth_failure, on_disconnect)
        if self.fail_next_start:
            session.fail_start = True
            self.fail_next_start = False
        self.sessions.append(session)
        return session

    @property
    def last(self) -> FakeSession:
        return self.sessions[-1]

    @property
    def configs(self) -> List[SessionConfig]:
        return [s.config for s in self.sessions]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

DEVICE_ID = "0x00124b0012345678"
REALM = "alice"


@pytest.fixture
def factory():
    return FakeSessionFactory()


@pytest.fixture
def store():
    return MemoryCredentialStore()


@pytest.fixture
def paired_store():
    store = MemoryCredentialStore()
    store.set(DEVICE_ID, Credential(api_key="secret123"))
    return store


def make_platform(store, factory, **kwargs) -> Platform:
    """Platform with one node holding a read-only 'temp1' and a settable 'relay'."""
    platform = Platform(
        device_id=DEVICE_ID,
        realm=REALM,
        device_name="Kitchen sensor",
        broker_host="broker.local",
        broker_port=1883,
        credential_store=store,
        session_factory=factory,
        **kwargs,
    )
    node = platform.add_node("kitchen", "Kitchen", "generic")
    node.add_property("temp1", "Temperature", datatype="float", unit="°C")
    received = []
    node.add_property("relay", "Relay", datatype="boolean", settable=True, callback=received.append)
    platform.received_sets = received
    return platform


@pytest.fixture
def platform(store, factory):
    return make_platform(store, factory)


@pytest.fixture
def paired_platform(paired_store, factory):
    return make_platform(paired_store, factory)
