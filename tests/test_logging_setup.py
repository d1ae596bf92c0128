import logging
from pathlib import Path

from metabase_provider.core.logging_setup import build_logger


def test_logger_creates_files_and_redacts(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    logger = build_logger(
        name="mbp",
        run_id="run123",
        action="apply",
        base_dir="logs",
        console_level="INFO",
        file_level="DEBUG",
        extra={"resource": "user"},
    )

    logger.info("headers X-Metabase-Session: abc123")
    logger.error("password=secret-x, api_key=mb_AKIA123")
    logger.warning("sending %s", "X-API-KEY: k-999")

    app_log = Path("logs/app.log")
    assert app_log.exists()

    dated_dirs = list(Path("logs").glob("20*"))
    assert dated_dirs, "dated directory not created"
    files = list(dated_dirs[0].glob("apply_run123.log"))
    assert files, "action-based log file not created"

    content = app_log.read_text(encoding="utf-8")
    assert "***REDACTED***" in content
    for secret in ("abc123", "secret-x", "mb_AKIA123", "k-999"):
        assert secret not in content
    assert "run=run123 action=apply resource=user" in content

    action_content = files[0].read_text(encoding="utf-8")
    assert "***REDACTED***" in action_content
    assert "abc123" not in action_content


def test_module_records_get_placeholder_context(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    build_logger(name="mbp_ctx", run_id="r1", action="read", base_dir="logs")
    logging.getLogger("mbp_ctx.some.module").debug("plain-module-line")
    content = Path("logs/app.log").read_text(encoding="utf-8")
    assert "run=- action=- resource=- | plain-module-line" in content


def test_rotating_file_captures_debug(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    logger = build_logger(
        name="mbp_test2",
        run_id="r42",
        action="refresh",
        base_dir="logs",
        console_level="INFO",
        file_level="DEBUG",
    )
    logger.debug("debug-line-42")
    content = Path("logs/app.log").read_text(encoding="utf-8")
    assert "DEBUG" in content and "debug-line-42" in content
