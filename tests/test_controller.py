import json
from datetime import datetime

import pytest

from task_scheduler.push.controller import PushController
from task_scheduler.push.pushers import BasePusher, PushError, WeChatPusher
from task_scheduler.push.registry import RegistryError
from task_scheduler.push.types import (
    DEFAULT_SEND_KEY,
    PushConfig,
    PushMethod,
    PushOptions,
    SendStatus,
    WeChatConfig,
    new_normal_message,
)


class RecordingPusher(BasePusher):
    def __init__(self, fail=False):
        super().__init__("recording")
        self.sent = []
        self.fail = fail

    def push(self, msg):
        if self.fail:
            raise PushError("boom")
        self.sent.append(msg)


@pytest.fixture
def config(tmp_path):
    return PushConfig(
        working_dir=str(tmp_path / "working"),
        history_dir=str(tmp_path / "history"),
    )


@pytest.fixture
def controller(config):
    ctrl = PushController(config)
    yield ctrl
    ctrl.stop()


def options():
    return PushOptions(receivers=["user1"], priority=1, retry=1)


def month():
    return datetime.now().strftime("%Y%m")


def test_initialize_registers_method_name(controller, config):
    controller.initialize(config, PushMethod.LOGGER)
    assert controller.registered_pushers() == ["logger"]


def test_initialize_wechat_uses_configured_key(controller, tmp_path):
    cfg = PushConfig(
        working_dir=str(tmp_path / "w"),
        history_dir=str(tmp_path / "h"),
        wechat_config=WeChatConfig(send_key="token"),
    )
    pusher = controller.initialize(cfg, PushMethod.WECHAT)
    assert isinstance(pusher, WeChatPusher)
    assert pusher.send_key == "token"


def test_initialize_wechat_empty_key_falls_back(controller, tmp_path):
    cfg = PushConfig(
        working_dir=str(tmp_path / "w"),
        history_dir=str(tmp_path / "h"),
        wechat_config=WeChatConfig(send_key=""),
    )
    pusher = controller.initialize(cfg, PushMethod.WECHAT)
    assert pusher.send_key == DEFAULT_SEND_KEY


def test_initialize_twice_same_method_fails(controller, config):
    controller.initialize(config, PushMethod.LOGGER)
    with pytest.raises(RegistryError):
        controller.initialize(config, PushMethod.LOGGER)


def test_initialize_unknown_method(controller, config):
    with pytest.raises(ValueError):
        controller.initialize(config, 42)


def test_initialize_with_none_pusher(controller, config):
    with pytest.raises(ValueError):
        controller.initialize_with_pusher(config, None)


def test_push_now_before_initialize(controller):
    with pytest.raises(RuntimeError):
        controller.push_now(new_normal_message("a", "t", "c"), options())


def test_enqueue_before_initialize(controller):
    with pytest.raises(RuntimeError):
        controller.enqueue(new_normal_message("a", "t", "c"), options())


def test_push_now_success_records_history(controller, config):
    pusher = RecordingPusher()
    controller.initialize_with_pusher(config, pusher)
    msg = new_normal_message("app1", "title", "content")
    controller.push_now(msg, options())
    assert pusher.sent == [msg]
    assert msg.send_status == SendStatus.SUCCESS
    assert msg.sent_at is not None
    records = controller.history_handler.success_records(month())
    assert [r.message_id for r in records] == [msg.id]
    assert records[0].pusher_name == "recording"


def test_push_now_invalid_options(controller, config):
    pusher = RecordingPusher()
    controller.initialize_with_pusher(config, pusher)
    msg = new_normal_message("app1", "title", "content")
    with pytest.raises(ValueError):
        controller.push_now(msg, PushOptions(receivers=[], priority=1, retry=1))
    assert pusher.sent == []
    failed = controller.history_handler.failed_records(month())
    assert [r.message_id for r in failed] == [msg.id]
    assert failed[0].error_reason


def test_push_now_failure(controller, config):
    controller.initialize_with_pusher(config, RecordingPusher(fail=True))
    msg = new_normal_message("app1", "title", "content")
    with pytest.raises(PushError):
        controller.push_now(msg, options())
    assert msg.send_status == SendStatus.FAILED
    failed = controller.history_handler.failed_records(month())
    assert [r.message_id for r in failed] == [msg.id]
    assert controller.history_handler.success_records(month()) == []


def test_push_now_flushes_delayed(controller, config):
    pusher = RecordingPusher()
    controller.initialize_with_pusher(config, pusher)
    controller.enqueue(new_normal_message("app1", "d1", "c1"), options())
    controller.enqueue(new_normal_message("app2", "d2", "c2"), options())
    controller.push_now(new_normal_message("app1", "now", "c"), options())
    assert len(pusher.sent) == 2
    assert pusher.sent[1].title == "2条延迟消息"
    assert list(controller.working_manager.working_dir.glob("delay_*.json")) == []


def test_flush_queue_returns_count(controller, config):
    pusher = RecordingPusher()
    controller.initialize_with_pusher(config, pusher)
    for i in range(3):
        controller.enqueue(new_normal_message("app1", f"t{i}", f"c{i}"), options())
    assert controller.flush_queue() == 3
    assert len(pusher.sent) == 1
    assert "[t0] c0" in pusher.sent[0].content


def test_push_at_writes_scheduled_file(controller, config):
    controller.initialize_with_pusher(config, RecordingPusher())
    when = datetime(2030, 1, 1, 10, 0).astimezone()
    msg = new_normal_message("app1", "later", "c")
    controller.push_at(msg, options(), when)
    path = controller.working_manager.scheduled_file_name(when)
    data = json.loads(path.read_text(encoding="utf-8"))
    assert [item["message"]["id"] for item in data] == [msg.id]


def test_push_at_invalid_options(controller, config):
    controller.initialize_with_pusher(config, RecordingPusher())
    when = datetime(2030, 1, 1, 10, 0).astimezone()
    with pytest.raises(ValueError):
        controller.push_at(new_normal_message("a", "t", "c"), PushOptions(), when)
    assert not controller.working_manager.scheduled_file_name(when).exists()


def test_scheduled_message_is_delivered_when_due(controller, config):
    pusher = RecordingPusher()
    controller.initialize_with_pusher(config, pusher)
    when = datetime(2030, 1, 1, 10, 0).astimezone()
    msg = new_normal_message("app1", "later", "c")
    controller.push_at(msg, options(), when)
    controller.working_manager.process_scheduled_messages(when)
    assert [m.id for m in pusher.sent] == [msg.id]


def test_registered_pushers_with_custom(controller, config):
    controller.initialize_with_pusher(config, RecordingPusher())
    assert controller.registered_pushers() == ["recording"]