import json
import logging
from types import SimpleNamespace

import pytest

from conftest import FakePipeline, make_page
from feed_sync import cli
from feed_sync.config import AppConfig, LoggingConfig
from feed_sync.errors import OriginError


def test_configure_logging_defaults_to_console_only(monkeypatch, tmp_path):
    original_handlers = list(logging.getLogger().handlers)
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)

    try:
        cli.configure_logging("INFO")

        handlers = logging.getLogger().handlers
        assert any(isinstance(handler, logging.StreamHandler) for handler in handlers)
        assert not any(isinstance(handler, logging.FileHandler) for handler in handlers)
    finally:
        for handler in logging.getLogger().handlers[:]:
            logging.getLogger().removeHandler(handler)
            handler.close()
        for handler in original_handlers:
            logging.getLogger().addHandler(handler)


def test_configure_logging_with_log_file_creates_file_handler(monkeypatch, tmp_path):
    original_handlers = list(logging.getLogger().handlers)
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)

    try:
        log_path = tmp_path / "nested" / "custom.log"
        cli.configure_logging("INFO", str(log_path))

        assert log_path.exists()
        handlers = logging.getLogger().handlers
        assert any(isinstance(handler, logging.StreamHandler) for handler in handlers)
        assert any(isinstance(handler, logging.FileHandler) for handler in handlers)
    finally:
        for handler in logging.getLogger().handlers[:]:
            logging.getLogger().removeHandler(handler)
            handler.close()
        for handler in original_handlers:
            logging.getLogger().addHandler(handler)


def _use_pipeline(monkeypatch, pipeline):
    monkeypatch.setattr(
        cli, "FeedPipeline", SimpleNamespace(from_config=lambda config: pipeline)
    )


def test_main_fetch_prints_page_as_json(monkeypatch, capsys):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    pipeline = FakePipeline(lambda url, start, size: make_page(["a", "b"]))
    _use_pipeline(monkeypatch, pipeline)

    exit_code = cli.main(["fetch", "https://blog.example.com/feed", "--start-index", "26"])

    assert exit_code == 0
    assert pipeline.calls == [("https://blog.example.com/feed", 26, 25)]
    payload = json.loads(capsys.readouterr().out)
    assert [a["guid"] for a in payload["articles"]] == ["a", "b"]
    assert payload["channel"]["title"] == "Example Blog"


def test_main_fetch_feed_error_exits_with_1(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)

    def respond(url, start, size):
        raise OriginError(404, "Not Found")

    _use_pipeline(monkeypatch, FakePipeline(respond))

    assert cli.main(["fetch", "https://blog.example.com/feed"]) == 1


def test_main_cli_overrides_logging(monkeypatch):
    captured_log_config = {}

    def fake_configure(level, log_file=None):
        captured_log_config["level"] = level
        captured_log_config["file"] = log_file

    monkeypatch.setattr(cli, "configure_logging", fake_configure)
    mock_app_config = AppConfig(logging=LoggingConfig(level="INFO", file="config.log"))
    monkeypatch.setattr(cli, "parse_app_config", lambda path: mock_app_config)
    _use_pipeline(monkeypatch, FakePipeline(lambda url, start, size: make_page([])))

    cli.main(
        [
            "--config",
            "configs/test.xml",
            "--log-level",
            "DEBUG",
            "--log-file",
            "cli.log",
            "fetch",
            "https://blog.example.com/feed",
        ]
    )

    assert captured_log_config["level"] == "DEBUG"
    assert captured_log_config["file"] == "cli.log"


def test_main_missing_config_exits_with_1(tmp_path):
    missing = tmp_path / "absent.xml"

    assert cli.main(["--config", str(missing), "fetch", "https://example.com/rss"]) == 1


def test_main_rejects_unknown_log_level(monkeypatch):
    _use_pipeline(monkeypatch, FakePipeline(lambda url, start, size: make_page([])))

    with pytest.raises(SystemExit) as info:
        cli.main(["--log-level", "LOUD", "fetch", "https://example.com/rss"])

    assert info.value.code == 2


def test_main_serve_binds_configured_address(monkeypatch):
    import uvicorn

    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    _use_pipeline(monkeypatch, FakePipeline(lambda url, start, size: make_page([])))
    captured = {}

    def fake_run(app, host, port):
        captured.update(app=app, host=host, port=port)

    monkeypatch.setattr(uvicorn, "run", fake_run)

    assert cli.main(["serve", "--port", "9999"]) == 0
    assert captured["host"] == "127.0.0.1"
    assert captured["port"] == 9999
    assert captured["app"].title == "Feed Sync"


def test_run_watch_prints_initial_articles(monkeypatch, capsys):
    pipeline = FakePipeline(lambda url, start, size: make_page(["a", "b"], title="Watched"))
    _use_pipeline(monkeypatch, pipeline)

    exit_code = cli.run_watch(AppConfig(), "https://blog.example.com/feed", duration=0)

    assert exit_code == 0
    out = capsys.readouterr().out
    assert out.splitlines()[0] == "Watched: 2 articles"
    assert "Title a" in out
