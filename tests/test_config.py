import pytest

from task_scheduler.config import (
    Config,
    ConfigError,
    ConfigLoader,
    TaskConfig,
    TaskScheduleConfig,
)


def write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_main_config_defaults(tmp_path):
    path = write(tmp_path / "config.yaml", "tasks: []\n")
    config = ConfigLoader(path).load_main_config()
    assert config.log_level == "info"
    assert config.plugins_dir == "./plugins"
    assert config.tasks == []


def test_main_config_reads_tasks_case_insensitively(tmp_path):
    path = write(
        tmp_path / "config.yaml",
        "Log_Level: debug\n"
        "plugins_dir: ./extra\n"
        "tasks:\n"
        "  - Name: auto-buy\n"
        "    config_file: configs/auto-buy.yaml\n"
        "    enabled: true\n"
        "  - name: app1\n"
        "    config_file: configs/app1.yaml\n"
        "    enabled: 'false'\n",
    )
    config = ConfigLoader(path).load_main_config()
    assert config.log_level == "debug"
    assert config.plugins_dir == "./extra"
    assert config.tasks == [
        TaskConfig("auto-buy", "configs/auto-buy.yaml", True),
        TaskConfig("app1", "configs/app1.yaml", False),
    ]


def test_main_config_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        ConfigLoader(tmp_path / "missing.yaml").load_main_config()


@pytest.mark.parametrize("text", ["tasks: [\n", "- just\n- a list\n", "tasks: 5\n"])
def test_main_config_malformed(tmp_path, text):
    path = write(tmp_path / "config.yaml", text)
    with pytest.raises(ConfigError):
        ConfigLoader(path).load_main_config()


def test_task_config_lowercases_param_keys(tmp_path):
    path = write(
        tmp_path / "task.yaml",
        "schedule: '0 0 9 * * *'\nparams:\n  Base_Amount: 100\n  enabled: true\n",
    )
    loaded = ConfigLoader(tmp_path / "unused.yaml").load_task_config(path)
    assert loaded == TaskScheduleConfig(
        schedule="0 0 9 * * *", params={"base_amount": 100, "enabled": True}
    )


def test_task_config_without_params(tmp_path):
    path = write(tmp_path / "task.yaml", "schedule: '@daily'\n")
    loaded = ConfigLoader(tmp_path / "unused.yaml").load_task_config(path)
    assert loaded.schedule == "@daily"
    assert loaded.params == {}


def test_load_all_tasks_skips_disabled_and_unreadable(tmp_path):
    task_file = write(tmp_path / "good.yaml", "schedule: '@hourly'\nparams:\n  message: hi\n")
    main = Config(
        tasks=[
            TaskConfig("good", str(task_file), True),
            TaskConfig("off", str(task_file), False),
            TaskConfig("broken", str(tmp_path / "nope.yaml"), True),
        ]
    )
    tasks = ConfigLoader(tmp_path / "config.yaml").load_all_tasks(main)
    assert [t.name for t in tasks] == ["good"]
    assert tasks[0].schedule == "@hourly"
    assert tasks[0].config == {"message": "hi"}
    assert tasks[0].enabled is True


@pytest.mark.parametrize(
    "config",
    [
        Config(log_level=""),
        Config(plugins_dir=""),
        Config(tasks=[TaskConfig("", "x.yaml", True)]),
        Config(tasks=[TaskConfig("named", "", True)]),
    ],
)
def test_validate_config_rejects_empty_settings(tmp_path, config):
    with pytest.raises(ConfigError):
        ConfigLoader(tmp_path / "config.yaml").validate_config(config)