"""Tests for the Platform pairing/connection state machine.

Covers:
- Pairing path (guest session, subscriptions, advertisement, init/ready)
- apiKey reception, persistence and switch to the authenticated session
- Telemetry routing by property id
- restart / reset commands
- Invalid credential handling (production flag)
- Last-will declaration on every session
- Credential store errors and observers
"""

from unittest.mock import MagicMock

import pytest

from zigplat_device import MemoryCredentialStore, PairingState, Platform
from zigplat_mqtt.schemas import ComponentType, Credential, CorruptCredentialError, DeviceStatus

from conftest import DEVICE_ID, REALM, make_platform

GUEST = f"prefix/{DEVICE_ID}"
AUTH = f"v2/{REALM}/{DEVICE_ID}"


def _statuses(session, prefix):
    return session.payloads(f"{prefix}/$state")


def _pair(platform, factory, api_key="secret123"):
    platform.init()
    guest = factory.last
    guest.fire_connect()
    guest.deliver(f"{GUEST}/$config/apiKey/set", api_key)
    return guest, factory.last


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestConstruction:
    def test_unpaired_without_credential(self, platform):
        assert platform.state is PairingState.UNPAIRED
        assert not platform.is_paired()
        assert platform.session is None

    def test_paired_with_stored_credential(self, paired_platform):
        assert paired_platform.is_paired()
        assert paired_platform.credential == Credential(api_key="secret123")
        assert paired_platform.state is PairingState.DISCONNECTED

    def test_corrupt_credential_is_treated_as_unpaired(self, factory):
        store = MemoryCredentialStore({DEVICE_ID: "{not json"})
        platform = make_platform(store, factory)
        assert not platform.is_paired()
        assert platform.state is PairingState.UNPAIRED

    def test_empty_device_id_rejected(self, store, factory):
        with pytest.raises(ValueError):
            Platform("", REALM, "x", "broker.local", 1883, store, session_factory=factory)

    def test_commands_registered(self, platform):
        assert platform.command_registry.available_commands == {"restart", "reset"}


# ---------------------------------------------------------------------------
# Pairing path
# ---------------------------------------------------------------------------

class TestPairing:
    def test_init_opens_guest_session(self, platform, factory):
        platform.init()

        assert len(factory.sessions) == 1
        config = factory.last.config
        assert config.identity == f"guest={DEVICE_ID}"
        assert config.secret == REALM
        assert config.keepalive == 10
        assert factory.last.started
        assert platform.state is PairingState.PAIRING_ACTIVE

    def test_established_publishes_init_then_ready(self, platform, factory):
        platform.init()
        session = factory.last
        session.fire_connect()

        assert _statuses(session, GUEST) == ["init", "ready"]
        assert platform.status is DeviceStatus.READY

    def test_pairing_subscriptions(self, platform, factory):
        platform.init()
        session = factory.last
        session.fire_connect()

        assert (f"{GUEST}/$config/apiKey/set", 1) in session.subscriptions
        assert (f"{GUEST}/$cmd/set", 1) in session.subscriptions

    def test_settable_properties_not_writable_while_pairing(self, platform, factory):
        platform.init()
        session = factory.last
        session.fire_connect()

        assert f"{GUEST}/kitchen/relay/set" not in session.handlers

    def test_advertisement_under_guest_prefix(self, platform, factory):
        platform.init()
        session = factory.last
        session.fire_connect()

        assert session.payloads(f"{GUEST}/$name") == ["Kitchen sensor"]
        assert session.payloads(f"{GUEST}/$realm") == [REALM]
        assert session.payloads(f"{GUEST}/$nodes") == ["kitchen"]
        assert session.payloads(f"{GUEST}/kitchen/$properties") == ["temp1,relay"]

        topics = session.topics()
        assert topics.index(f"{GUEST}/$name") < topics.index(f"{GUEST}/kitchen/$name")
        # ready is published after advertisement
        assert topics.index(f"{GUEST}/kitchen/relay/$retained") < len(topics) - 1
        assert topics[-1] == f"{GUEST}/$state"

    def test_advertisement_is_retained_qos1(self, platform, factory):
        platform.init()
        session = factory.last
        session.fire_connect()

        for topic, _, qos, retain in session.published:
            assert qos == 1, topic
            assert retain is True, topic

    def test_session_start_failure_is_logged(self, platform, factory):
        factory.fail_next_start = True
        platform.init()

        assert factory.last.ended
        assert platform.state is PairingState.PAIRING_ACTIVE

    def test_session_factory_failure_is_logged(self, store):
        def broken_factory(config, **kwargs):
            raise RuntimeError("no transport")

        platform = Platform(DEVICE_ID, REALM, "x", "broker.local", 1883, store, session_factory=broken_factory)
        platform.init()
        assert platform.session is None


# ---------------------------------------------------------------------------
# apiKey reception
# ---------------------------------------------------------------------------

class TestApiKey:
    def test_apikey_is_persisted(self, platform, factory, store):
        _pair(platform, factory)

        assert store.get(DEVICE_ID) == Credential(api_key="secret123")
        assert platform.credential.api_key == "secret123"

    def test_paired_then_disconnected_then_guest_ends(self, platform, factory):
        guest, _ = _pair(platform, factory)

        assert _statuses(guest, GUEST) == ["init", "ready", "paired", "disconnected"]
        assert guest.ended

    def test_authenticated_session_follows(self, platform, factory):
        guest, auth = _pair(platform, factory)

        assert auth is not guest
        assert auth.config.identity == f"device={REALM}/{DEVICE_ID}"
        assert auth.config.secret == "secret123"
        assert platform.state is PairingState.AUTHENTICATED_CONNECTING

        auth.fire_connect()
        assert _statuses(auth, AUTH) == ["init", "ready"]
        assert platform.state is PairingState.CONNECTED

    def test_authenticated_session_makes_settable_writable(self, platform, factory):
        _, auth = _pair(platform, factory)
        auth.fire_connect()

        assert (f"{AUTH}/$cmd/set", 1) in auth.subscriptions
        assert (f"{AUTH}/kitchen/relay/set", 1) in auth.subscriptions
        assert f"{AUTH}/$config/apiKey/set" not in auth.handlers

        auth.deliver(f"{AUTH}/kitchen/relay/set", "true")
        assert platform.received_sets == ["true"]

    def test_empty_apikey_ignored(self, platform, factory, store):
        platform.init()
        guest = factory.last
        guest.fire_connect()
        guest.deliver(f"{GUEST}/$config/apiKey/set", "")

        assert not platform.is_paired()
        assert len(factory.sessions) == 1
        assert store.get(DEVICE_ID) is None

    def test_apikey_ignored_outside_pairing(self, paired_platform, factory, paired_store):
        paired_platform.init()
        auth = factory.last
        auth.fire_connect()

        # Not subscribed in authenticated mode; call the handler directly
        paired_platform._handle_api_key(f"{AUTH}/$config/apiKey/set", "other")

        assert paired_store.get(DEVICE_ID).api_key == "secret123"
        assert len(factory.sessions) == 1

    def test_store_failure_keeps_key_in_memory(self, factory):
        store = MagicMock()
        store.get.return_value = None
        store.set.side_effect = OSError("read-only filesystem")
        platform = make_platform(store, factory)

        guest, auth = _pair(platform, factory)

        assert platform.credential.api_key == "secret123"
        assert auth.config.secret == "secret123"


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------

class TestPublishPropertyData:
    def test_value_reaches_property_channel(self, paired_platform, factory):
        paired_platform.init()
        session = factory.last
        session.fire_connect()

        paired_platform.publish_property_data("temp1", "21.5")

        assert session.payloads(f"{AUTH}/kitchen/temp1") == ["21.5"]
        assert paired_platform.find_property("temp1")[1].current_value == "21.5"

    def test_unknown_property_is_noop(self, paired_platform, factory):
        paired_platform.init()
        session = factory.last
        session.fire_connect()
        before = list(session.published)

        paired_platform.publish_property_data("ghost", "1")

        assert session.published == before

    def test_callable_value(self, paired_platform, factory):
        paired_platform.init()
        session = factory.last
        session.fire_connect()

        paired_platform.publish_property_data("temp1", lambda node, prop: f"{node.node_id}:{prop.property_id}")

        assert session.payloads(f"{AUTH}/kitchen/temp1") == ["kitchen:temp1"]

    def test_raising_value_function_is_contained(self, paired_platform, factory):
        paired_platform.init()
        factory.last.fire_connect()

        def boom(node, prop):
            raise RuntimeError("sensor offline")

        paired_platform.publish_property_data("temp1", boom)

    def test_no_session_is_noop(self, paired_platform):
        paired_platform.publish_property_data("temp1", "21.5")
        assert paired_platform.find_property("temp1")[1].current_value is None

    def test_routing_ignores_node_id(self, paired_platform, factory):
        other = paired_platform.add_node("temp1", "Node named like a property")
        other.add_property("humidity", "Humidity")
        paired_platform.init()
        session = factory.last
        session.fire_connect()

        paired_platform.publish_property_data("temp1", "20")

        assert session.payloads(f"{AUTH}/kitchen/temp1") == ["20"]
        assert f"{AUTH}/temp1/humidity" not in session.topics()
        assert paired_platform.find_property("humidity")[0] is other

    def test_value_published_while_pairing(self, platform, factory):
        platform.init()
        session = factory.last
        session.fire_connect()

        platform.publish_property_data("temp1", "19")

        assert session.payloads(f"{GUEST}/kitchen/temp1") == ["19"]

    def test_known_value_is_readvertised(self, platform, factory):
        platform.init()
        guest = factory.last
        guest.fire_connect()
        platform.publish_property_data("temp1", "19")

        guest.deliver(f"{GUEST}/$config/apiKey/set", "secret123")
        auth = factory.last
        auth.fire_connect()

        assert auth.payloads(f"{AUTH}/kitchen/temp1") == ["19"]


# ---------------------------------------------------------------------------
# Capability tree ownership
# ---------------------------------------------------------------------------

class TestCapabilityTree:
    def test_duplicate_property_id_across_nodes(self, platform):
        other = platform.add_node("other", "Other")
        with pytest.raises(ValueError):
            other.add_property("temp1", "Temperature again")

    def test_duplicate_node_id(self, platform):
        with pytest.raises(ValueError):
            platform.add_node("kitchen", "Kitchen again")

    def test_add_sensor_numbers_nodes(self, platform):
        first = platform.add_sensor("lux", "Illuminance", datatype="integer")
        second = platform.add_sensor("co2", "CO2")

        assert first.node_id == "sensor0"
        assert second.node_id == "sensor1"
        node, _ = platform.find_property("lux")
        assert node.component_type is ComponentType.SENSOR


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

class TestCommands:
    def test_reset_discards_credential_and_repairs(self, paired_platform, factory, paired_store):
        paired_platform.init()
        auth = factory.last
        auth.fire_connect()

        auth.deliver(f"{AUTH}/$cmd/set", "reset")

        assert auth.ended
        assert not paired_platform.is_paired()
        assert paired_store.get(DEVICE_ID) is None
        guest = factory.last
        assert guest is not auth
        assert guest.config.identity == f"guest={DEVICE_ID}"
        assert paired_platform.prefix == "prefix"
        assert paired_platform.state is PairingState.PAIRING_ACTIVE

    def test_restart_keeps_credential(self, paired_platform, factory, paired_store):
        paired_platform.init()
        first = factory.last
        first.fire_connect()

        first.deliver(f"{AUTH}/$cmd/set", "restart")

        assert first.ended
        second = factory.last
        assert second is not first
        assert second.config.identity == f"device={REALM}/{DEVICE_ID}"
        assert paired_store.get(DEVICE_ID).api_key == "secret123"

    def test_restart_while_pairing_reopens_guest(self, platform, factory):
        platform.init()
        guest = factory.last
        guest.fire_connect()

        guest.deliver(f"{GUEST}/$cmd/set", "restart")

        assert guest.ended
        assert factory.last.config.identity == f"guest={DEVICE_ID}"

    def test_command_is_case_and_whitespace_insensitive(self, paired_platform, factory):
        paired_platform.init()
        auth = factory.last
        auth.fire_connect()

        auth.deliver(f"{AUTH}/$cmd/set", "  RESTART\n")

        assert len(factory.sessions) == 2

    def test_unknown_command_ignored(self, paired_platform, factory):
        paired_platform.init()
        auth = factory.last
        auth.fire_connect()

        auth.deliver(f"{AUTH}/$cmd/set", "selfdestruct")

        assert len(factory.sessions) == 1
        assert not auth.ended


# ---------------------------------------------------------------------------
# Session replacement
# ---------------------------------------------------------------------------

class TestSessionReplacement:
    def test_previous_session_ended_before_new_one_starts(self, paired_platform, factory):
        paired_platform.init()
        first = factory.last
        first.fire_connect()

        paired_platform.connect()

        assert first.ended
        assert factory.last.started
        assert paired_platform.session is factory.last

    def test_stale_session_callbacks_ignored(self, paired_platform, factory):
        paired_platform.init()
        first = factory.last
        paired_platform.connect()
        second = factory.last

        first.fire_connect()

        assert first.published == []
        assert paired_platform.state is PairingState.AUTHENTICATED_CONNECTING
        second.fire_connect()
        assert paired_platform.state is PairingState.CONNECTED

    def test_last_will_on_every_session(self, platform, factory):
        guest, auth = _pair(platform, factory)

        for session, prefix in ((guest, GUEST), (auth, AUTH)):
            will = session.config.last_will
            assert will.topic == f"{prefix}/$state"
            assert will.payload == "lost"
            assert will.qos == 1
            assert will.retain is True

    def test_keepalive_is_shared_by_both_paths(self, store, factory):
        platform = make_platform(store, factory, keepalive=30)
        _pair(platform, factory)

        assert [c.keepalive for c in factory.configs] == [30, 30]


# ---------------------------------------------------------------------------
# Authentication failure
# ---------------------------------------------------------------------------

class TestAuthFailure:
    def test_non_production_forgets_and_repairs(self, paired_platform, factory, paired_store):
        paired_platform.init()
        auth = factory.last

        auth.fire_auth_failure(5)

        assert auth.ended
        assert paired_store.get(DEVICE_ID) is None
        assert factory.last.config.identity == f"guest={DEVICE_ID}"
        assert paired_platform.state is PairingState.PAIRING_ACTIVE

    def test_production_keeps_credential(self, paired_store, factory):
        platform = make_platform(paired_store, factory, production=True)
        platform.init()
        auth = factory.last

        auth.fire_auth_failure(5)

        assert not auth.ended
        assert len(factory.sessions) == 1
        assert paired_store.get(DEVICE_ID).api_key == "secret123"
        assert platform.is_paired()

    def test_guest_rejection_does_not_loop(self, platform, factory):
        platform.init()
        guest = factory.last

        guest.fire_auth_failure(5)

        assert len(factory.sessions) == 1
        assert platform.state is PairingState.PAIRING_ACTIVE


# ---------------------------------------------------------------------------
# disconnect / forgot
# ---------------------------------------------------------------------------

class TestDisconnect:
    def test_disconnect_publishes_then_ends(self, paired_platform, factory):
        paired_platform.init()
        auth = factory.last
        auth.fire_connect()

        paired_platform.disconnect()

        assert _statuses(auth, AUTH)[-1] == "disconnected"
        assert auth.ended
        assert paired_platform.state is PairingState.DISCONNECTED

    def test_disconnect_then_reconnect(self, paired_platform, factory):
        paired_platform.init()
        factory.last.fire_connect()
        paired_platform.disconnect()

        paired_platform.connect()
        factory.last.fire_connect()

        assert len(factory.sessions) == 2
        assert paired_platform.state is PairingState.CONNECTED

    def test_status_not_published_on_closing_session(self, paired_platform, factory):
        paired_platform.init()
        auth = factory.last
        auth.fire_connect()
        auth.end()
        count = len(auth.published)

        paired_platform.publish_status(DeviceStatus.ALERT)

        assert len(auth.published) == count
        assert paired_platform.status is DeviceStatus.ALERT

    def test_unexpected_loss_sets_lost(self, paired_platform, factory):
        paired_platform.init()
        auth = factory.last
        auth.fire_connect()

        auth.fire_disconnect()

        assert paired_platform.status is DeviceStatus.LOST

    def test_forgot_is_idempotent(self, paired_platform, paired_store):
        paired_platform.forgot()
        paired_platform.forgot()

        assert not paired_platform.is_paired()
        assert paired_store.get(DEVICE_ID) is None
        assert paired_platform.prefix == "prefix"

    def test_forgot_survives_store_error(self, factory):
        store = MagicMock()
        store.get.return_value = Credential(api_key="k")
        store.remove.side_effect = OSError("disk gone")
        platform = make_platform(store, factory)

        platform.forgot()

        assert not platform.is_paired()

    def test_connect_without_credential_is_noop(self, platform, factory):
        platform.connect()
        assert factory.sessions == []


# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------

class TestObservers:
    def test_status_and_connected_notifications(self, paired_store, factory):
        statuses = []
        connected = []
        platform = make_platform(
            paired_store,
            factory,
            on_status=lambda p, s: statuses.append(s),
            on_connected=connected.append,
        )
        platform.init()
        factory.last.fire_connect()

        assert statuses == [DeviceStatus.INIT, DeviceStatus.READY]
        assert connected == [platform]

    def test_raising_observer_is_contained(self, paired_store, factory):
        def broken(platform, status):
            raise RuntimeError("observer bug")

        platform = make_platform(paired_store, factory, on_status=broken)
        platform.init()
        factory.last.fire_connect()

        assert platform.state is PairingState.CONNECTED


def test_corrupt_store_error_type():
    with pytest.raises(CorruptCredentialError):
        MemoryCredentialStore({DEVICE_ID: "[]"}).get(DEVICE_ID)
