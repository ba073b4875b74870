"""
Tests for the command-line entry point
"""

import json

import pytest

import lifelog.__main__ as cli


@pytest.fixture(autouse=True)
def keep_session_logging(monkeypatch):
    monkeypatch.setattr(cli, "cleanup_logging", lambda: None)
    for key in ("LIFELOG_CONFIG", "LIFELOG_DATA_DIR", "LIFELOG_DB_PATH", "LIFELOG_DISABLED_DRIVERS"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "lifelog.yaml"
    path.write_text(f"data_dir: {tmp_path / 'data'}\n")
    return path


def test_run_once(config_file, tmp_path):
    raw = tmp_path / "data" / "raw" / "spotify"
    raw.mkdir(parents=True)
    (raw / "StreamingHistory0.json").write_text(
        json.dumps([{"endTime": "2021-06-01 10:00", "artistName": "Low", "trackName": "Lullaby", "msPlayed": 1000}]),
        encoding="utf-8",
    )

    assert cli.main(["--config", str(config_file), "--run", "spotify", "--once"]) == 0
    assert (tmp_path / "data" / "index.duckdb").exists()


def test_unknown_driver_fails(config_file):
    assert cli.main(["--config", str(config_file), "--run", "myspace", "--once"]) == 1


def test_config_error(tmp_path, capsys):
    assert cli.main(["--config", str(tmp_path / "missing.yaml"), "--once"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    path = tmp_path / "lifelog.yaml"
    path.write_text(f"data_dir: {tmp_path}\ndb_path: {blocker / 'index.duckdb'}\n")
    assert cli.main(["--config", str(path), "--once"]) == 1
