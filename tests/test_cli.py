import signal
import threading

from task_scheduler.cli import main


def test_missing_config_fails(tmp_path):
    assert main(["--config", str(tmp_path / "missing.yaml")]) == 1


def test_invalid_config_fails(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("tasks:\n  - config_file: x.yaml\n    enabled: true\n", encoding="utf-8")
    assert main(["-c", str(path)]) == 1


def test_runs_until_interrupted(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "tasks:\n"
        "  - name: auto-buy\n"
        "    config_file: configs/auto-buy.yaml\n"
        "    enabled: false\n"
        "  - name: app1\n"
        f"    config_file: {tmp_path / 'absent.yaml'}\n"
        "    enabled: true\n",
        encoding="utf-8",
    )
    timer = threading.Timer(1.0, signal.raise_signal, (signal.SIGINT,))
    timer.start()
    try:
        status = main(["--config", str(path)])
    finally:
        timer.cancel()
    assert status == 0