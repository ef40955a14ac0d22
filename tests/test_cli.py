from __future__ import annotations

import json
import logging
from pathlib import Path

from chatnav.core.config import Config
from chatnav.interfaces.cli import ChatNavCLI, setup_logging


def _feed(monkeypatch, lines) -> None:
    pending = iter(lines)

    def fake_input(prompt=''):
        try:
            return next(pending)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr('builtins.input', fake_input)


def test_interactive_session_runs_commands(monkeypatch, capsys) -> None:
    _feed(monkeypatch, ["open recent", ":state", ":quit"])

    cli = ChatNavCLI(no_bridge=True)
    assert cli.run_interactive() == 0

    out = capsys.readouterr().out
    assert "ChatNav Interactive Mode" in out
    assert "open_panel -> recent (executed)" in out
    assert '"turn_id": 1' in out


def test_ui_snapshot_command(tmp_path: Path, monkeypatch, capsys) -> None:
    snapshot = tmp_path / "ui.json"
    snapshot.write_text(json.dumps({
        "widgets": [{"id": "panel-e", "title": "Panel E"}]
    }), encoding="utf-8")
    _feed(monkeypatch, [f":ui {snapshot}", ":bogus"])

    cli = ChatNavCLI(no_bridge=True)
    assert cli.run_interactive() == 0

    out = capsys.readouterr().out
    assert "Loaded UI snapshot" in out
    assert "Unknown command: bogus" in out
    assert cli.ui_snapshot["widgets"][0]["id"] == "panel-e"


def test_missing_ui_snapshot_is_reported(tmp_path: Path, capsys) -> None:
    cli = ChatNavCLI(no_bridge=True)
    assert not cli.load_ui_snapshot(str(tmp_path / "missing.json"))
    assert "Could not read UI snapshot" in capsys.readouterr().out


def test_setup_logging_reads_config_level() -> None:
    config = Config()
    config.set('logging.level', 'error')
    chatnav_logger = logging.getLogger('chatnav')
    previous = chatnav_logger.level
    try:
        assert setup_logging(config) == logging.ERROR
        assert chatnav_logger.level == logging.ERROR
        assert setup_logging(config, verbose=True) == logging.INFO
        assert setup_logging(config, debug=True) == logging.DEBUG
    finally:
        chatnav_logger.setLevel(previous)
