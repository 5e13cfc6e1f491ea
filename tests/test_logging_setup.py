import logging

from diagnostics.logging_setup import configure_logging


def test_configure_logging_writes_kv_lines(tmp_path) -> None:
    info = configure_logging(tmp_path)
    assert info["logger_name"] == "widgetpreview.test"
    assert info["format"] == "kv"

    logger = logging.getLogger("widgetpreview.test")
    logger.info("sandbox ready")
    for handler in logger.handlers:
        handler.flush()

    text = (tmp_path / "logs" / "widgetpreview.log").read_text(encoding="utf-8")
    assert "level=INFO" in text
    assert "msg=sandbox ready" in text

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
