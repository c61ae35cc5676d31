from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from weaklockfree import cli


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Iterator[None]:
    logger = logging.getLogger("weaklockfree")
    handlers = list(logger.handlers)
    level, propagate = logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            handler.close()
            logger.removeHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


def test_json_formatter_with_exc_and_stack() -> None:
    formatter = cli.JsonFormatter()
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.getLogger("test").makeRecord(
            "test", logging.ERROR, __file__, 0, "failure", (), sys.exc_info(), func="func"
        )
    record.stack_info = "trace info"
    payload = json.loads(formatter.format(record))
    assert payload["level"] == "ERROR"
    assert payload["msg"] == "failure"
    assert "thread" in payload
    assert "exc_info" in payload
    assert payload["stack"]


def test_configure_logging_json_and_file(tmp_path: Path) -> None:
    log_file = tmp_path / "weakmap.log"
    cli.configure_logging(use_json=True, log_file=str(log_file), level="debug")
    logger = logging.getLogger("weaklockfree")
    logger.error("error message")
    assert logger.level == logging.DEBUG
    assert any(isinstance(handler, RotatingFileHandler) for handler in logger.handlers)
    assert log_file.exists()
    line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert json.loads(line)["msg"] == "error message"


def test_main_prints_json_summary(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["--mode", "inline", "--threads", "2", "--ops", "200", "--seed", "5", "--json"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out.strip())
    assert payload["mode"] == "inline"
    assert payload["anomalies"] == 0
    assert payload["drained"] is True


def test_main_text_output_with_metrics(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["--mode", "manual", "--threads", "1", "--ops", "50", "--seed", "1", "--metrics"])
    assert code == 0
    out = capsys.readouterr().out
    assert "mode=manual" in out
    assert "weakmap_puts_total" in out
    assert "weakmap_entries 0" in out
    assert 'weakmap_info{strategy="manual"} 1' in out


def test_main_reads_mode_from_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cfg_path = tmp_path / "weakmap.toml"
    cfg_path.write_text("[cleaner]\nmode = 'thread'\n\n[table]\nstripes = 4\n", encoding="utf-8")
    code = cli.main(["--config", str(cfg_path), "--threads", "2", "--ops", "100", "--json"])
    assert code == 0
    assert json.loads(capsys.readouterr().out.strip())["mode"] == "thread"


def test_main_bad_config_exits_with_envelope(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg_path = tmp_path / "bad.toml"
    cfg_path.write_text("[table]\nstripes = 3\n", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(cfg_path)])
    assert excinfo.value.code == 2
    envelope = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert envelope["error"] == "BadConfig"


def test_main_rejects_mistyped_stripes(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg_path = tmp_path / "typed.toml"
    cfg_path.write_text("[table]\nstripes = '8'\n", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(cfg_path), "--threads", "1", "--ops", "10"])
    assert excinfo.value.code == 2
    envelope = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert envelope["error"] == "BadConfig"
    assert "stripes" in envelope["detail"]


def test_main_reports_undrained_map(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    real_run = cli.run_stress

    def undrained(**kwargs: object):  # type: ignore[no-untyped-def]
        summary = real_run(**kwargs)  # type: ignore[arg-type]
        return summary.model_copy(update={"drained": False, "final_size": 3})

    monkeypatch.setattr(cli, "run_stress", undrained)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--mode", "inline", "--threads", "1", "--ops", "10"])
    assert excinfo.value.code == 3
    envelope = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert envelope["error"] == "MapInvariant"
    assert "hint" in envelope
