import pytest

from task_scheduler.push.pushers import EmailPusher, LogPusher
from task_scheduler.push.registry import PusherRegistry, RegistryError


def test_register_and_get():
    registry = PusherRegistry()
    pusher = LogPusher()
    registry.register(pusher.name, pusher)
    assert registry.get(pusher.name) is pusher
    assert pusher.name in registry
    assert len(registry) == 1


def test_names_lists_all_registered():
    registry = PusherRegistry()
    log, email = LogPusher(), EmailPusher()
    registry.register(log.name, log)
    registry.register(email.name, email)
    assert sorted(registry.names()) == sorted([log.name, email.name])


def test_duplicate_registration_rejected():
    registry = PusherRegistry()
    registry.register("a", LogPusher())
    with pytest.raises(RegistryError):
        registry.register("a", EmailPusher())
    assert len(registry) == 1


def test_empty_name_and_none_pusher_rejected():
    registry = PusherRegistry()
    with pytest.raises(RegistryError):
        registry.register("", LogPusher())
    with pytest.raises(RegistryError):
        registry.register("a", None)
    assert registry.names() == []


def test_get_missing_raises():
    with pytest.raises(RegistryError):
        PusherRegistry().get("missing")


def test_unregister():
    registry = PusherRegistry()
    registry.register("a", LogPusher())
    registry.unregister("a")
    assert "a" not in registry
    with pytest.raises(RegistryError):
        registry.get("a")
    with pytest.raises(RegistryError):
        registry.unregister("a")