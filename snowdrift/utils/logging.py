"""Gives out a production-ready logger.

This module provides:
- setup_logging: a function to assign app logging to a rotating file handler
"""

import logging
import os
from logging.handlers import RotatingFileHandler


def setup_logging(app):
    """Sets logging of a Flask app to .log file and std stream.

    Args:
        app (Flask): The app to configure, ``LOG_PATH`` naming the log file
    """

    log_level = logging.DEBUG if app.config["DEBUG"] else logging.INFO
    log_path = app.config["LOG_PATH"]

    log_dir = os.path.dirname(log_path)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir)

    file_handler = RotatingFileHandler(log_path, maxBytes=10_000_000, backupCount=5)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]")
    )
    file_handler.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
    console_handler.setLevel(log_level)

    # the app logger is named after the package, so module loggers propagate into it
    for handler in app.logger.handlers:
        handler.close()
    app.logger.handlers = []
    app.logger.addHandler(file_handler)
    app.logger.addHandler(console_handler)
    app.logger.setLevel(log_level)
