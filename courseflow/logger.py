"""Configures logging for the CourseFlow application.

Sets up a timed rotating file handler to manage log file size and retention.
Logs are written to 'courseflow.log' in the project root directory.
"""

import logging
import logging.handlers
import os
import sys

# logger.py lives in courseflow/, so two levels up is the project root
log_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
log_file_path = os.path.join(log_dir, "courseflow.log")

root_logger = logging.getLogger()
root_logger.setLevel(logging.DEBUG)

formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

handler_exists = any(
    isinstance(h, logging.handlers.TimedRotatingFileHandler) and h.baseFilename == log_file_path
    for h in root_logger.handlers
)

if not handler_exists:
    # Daily rotation, keep a week of logs
    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_file_path,
        when="D",
        interval=1,
        backupCount=7,
        encoding="utf-8",
        delay=True,  # Defer file opening until first log message
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

# Console output is opt-in; uvicorn already logs requests to stdout
if os.environ.get("COURSEFLOW_LOG_CONSOLE"):
    stream_handler_exists = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in root_logger.handlers
    )
    if not stream_handler_exists:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(logging.INFO)
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

logger = logging.getLogger(__name__)

if not handler_exists:
    logger.info(f"Logging configured with TimedRotatingFileHandler. Log file: {log_file_path}")
else:
    logger.debug("Logging handlers already configured.")
