import json
import logging

from floorgen import app
from floorgen.logging_utils import get_logger
from floorgen.server import _configure_logging


def test_key_value_lines(monkeypatch, capsys):
    monkeypatch.delenv("FLOORGEN_LOG_JSON", raising=False)
    monkeypatch.setenv("FLOORGEN_LOG_LEVEL", "info")
    log = get_logger("floorgen.test")
    log.info(event="layout_generated", seed=42, reason="two words", skipped=None)
    out = capsys.readouterr().out.strip()
    assert out.startswith("level=info ts=")
    assert "event=layout_generated" in out
    assert "seed=42" in out
    assert "reason=two_words" in out
    assert "skipped" not in out
    assert "logger=floorgen.test" in out


def test_json_mode(monkeypatch, capsys):
    monkeypatch.setenv("FLOORGEN_LOG_JSON", "1")
    monkeypatch.setenv("FLOORGEN_LOG_LEVEL", "debug")
    get_logger("floorgen.test").warn(event="optimizer_not_converged", iterations=3)
    rec = json.loads(capsys.readouterr().err)
    assert rec["level"] == "warn"
    assert rec["event"] == "optimizer_not_converged"
    assert rec["iterations"] == 3
    assert rec["logger"] == "floorgen.test"


def test_level_threshold(monkeypatch, capsys):
    monkeypatch.delenv("FLOORGEN_LOG_JSON", raising=False)
    monkeypatch.setenv("FLOORGEN_LOG_LEVEL", "error")
    log = get_logger("floorgen.test")
    log.debug(event="hidden")
    log.info(event="hidden")
    log.warn(event="hidden")
    log.error(event="shown")
    captured = capsys.readouterr()
    assert "hidden" not in captured.out + captured.err
    assert "event=shown" in captured.err


def test_get_logger_is_cached():
    assert get_logger("floorgen.x") is get_logger("floorgen.x")


def test_configure_logging_writes_rotating_file(tmp_path, monkeypatch):
    monkeypatch.setattr(app, "instance_path", str(tmp_path))
    root = logging.getLogger()
    saved = list(root.handlers)
    try:
        # Twice to exercise the handler replacement path
        _configure_logging()
        path = _configure_logging()
        assert path == str(tmp_path / "app.log")
        assert len(root.handlers) == 2
        logging.getLogger("floorgen.test").info("hello file")
        for h in root.handlers:
            h.flush()
        assert "hello file" in (tmp_path / "app.log").read_text()
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved:
            root.addHandler(h)
