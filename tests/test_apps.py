from unittest import mock

import pytest

from task_scheduler.apps import App1Plugin, App1Task, App2Plugin, App2Task


def test_app1_plugin_defaults_and_task():
    plugin = App1Plugin()
    assert plugin.name == "app1"
    assert plugin.default_config() == {"timeout": 30, "message": "Hello from App1"}
    task = plugin.create_task({"message": "hey"})
    assert isinstance(task, App1Task)
    assert task.name == "app1"
    assert task.execute() == "hey"


def test_app1_execute_falls_back_to_default_message():
    assert App1Task({}).execute() == "Hello from App1"
    assert App1Task(None).execute() == "Hello from App1"
    assert App1Task({"message": 5}).execute() == "Hello from App1"


@pytest.mark.parametrize("timeout", [0, -1, "10", 1.5, True])
def test_app1_rejects_bad_timeout(timeout):
    with pytest.raises(ValueError):
        App1Task().validate_config({"timeout": timeout})


def test_app1_accepts_positive_timeout():
    task = App1Task()
    assert task.validate_config({"timeout": 30}) is None
    assert task.validate_config({}) is None


def test_app2_plugin_defaults():
    plugin = App2Plugin()
    assert plugin.name == "app2"
    assert plugin.default_config() == {"retry_count": 3, "data_path": "/tmp/data"}
    task = plugin.create_task({"data_path": "/srv/in"})
    assert isinstance(task, App2Task)
    assert task.config == {"data_path": "/srv/in"}


@mock.patch("task_scheduler.apps.time.sleep")
def test_app2_execute_uses_config(sleep):
    task = App2Plugin().create_task({"data_path": "/srv/in", "retry_count": 7})
    assert task.execute() == ("/srv/in", 7)
    sleep.assert_called_once_with(1.0)


def test_app2_execute_defaults_when_missing_or_zero():
    assert App2Task({"retry_count": 0}, delay=0).execute() == ("/tmp/data", 3)
    assert App2Task({"data_path": ""}, delay=0).execute() == ("/tmp/data", 3)


@pytest.mark.parametrize(
    "config",
    [
        {"retry_count": 11},
        {"retry_count": -1},
        {"retry_count": "3"},
        {"data_path": ""},
        {"data_path": 5},
    ],
)
def test_app2_rejects_bad_config(config):
    with pytest.raises(ValueError):
        App2Task(delay=0).validate_config(config)


def test_app2_accepts_bounds():
    task = App2Task(delay=0)
    assert task.validate_config({"retry_count": 0, "data_path": "/x"}) is None
    assert task.validate_config({"retry_count": 10}) is None