import logging

from apriltag_node.logging_utils import add_file_handler, remove_handler, setup_logger


def test_setup_logger_is_idempotent():
    logger = setup_logger("logcam", "debug")
    again = setup_logger("logcam")

    assert logger is again
    assert logger.name == "apriltag_node.logcam"
    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO


def test_file_handler_stamps_camera_name(tmp_path):
    logger = setup_logger("filecam")
    log_path = tmp_path / "session.log"

    handler = add_file_handler(logger, "filecam", str(log_path))
    logger.info("hello %s", "tags")
    remove_handler(logger, handler)
    logger.info("not written")

    text = log_path.read_text()
    assert "[filecam] apriltag_node.filecam: hello tags" in text
    assert "not written" not in text
    assert handler not in logger.handlers
