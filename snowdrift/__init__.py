"""Pulls pieces together into a Flask app that hands out unique IDs.

This module provides:
- create_app: a function to get a Flask considering a dev/prod environment
"""

import atexit
import time

from flask import Flask, g, request

from .allocator import WorkerIdentityAllocator
from .api.endpoints import register_endpoints
from .config import config
from .coordination import Coordinator, build_coordinator
from .utils.ids import Generator
from .utils.logging import setup_logging


def create_app(config_name="development", coordinator: Coordinator | None = None):
    """Initializes a Flask app with a worker identity and an ID generator.

    Registration with the coordinator happens here, once. If it fails, the
    coordinator session is closed and the error propagates so the process
    does not start.

    Args:
        config_name (str): A key of ``config``
        coordinator (Coordinator): A session to register through, built from config if omitted

    Raises:
        CoordinationUnavailable: If the coordinator could not be reached
        AllocationExhausted: If no unique identity is available
    """
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    setup_logging(app)

    if coordinator is None:
        coordinator = build_coordinator(app.config)
    allocator = WorkerIdentityAllocator(
        coordinator,
        root_path=app.config["ZK_ROOT_PATH"],
        node_prefix=app.config["ZK_NODE_PREFIX"],
        retries=app.config["ZK_RETRIES"],
        backoff_base=app.config["ZK_BACKOFF_BASE"],
        backoff_max=app.config["ZK_BACKOFF_MAX"],
    )
    try:
        worker_id, datacenter_id = allocator.allocate()
    except Exception:
        allocator.close()
        raise

    generator = Generator(
        worker_id,
        datacenter_id,
        epoch=app.config["SNOWFLAKE_EPOCH"],
        regression_threshold=app.config["REGRESSION_THRESHOLD_MS"],
        regression_checks=app.config["REGRESSION_CHECKS"],
        spin_limit=app.config["SPIN_LIMIT"],
    )
    app.logger.info(f"The worker_id is {worker_id}, and datacenter_id is {datacenter_id}")

    register_endpoints(app, generator, allocator)

    def _shutdown():
        atexit.unregister(_shutdown)
        generator.close()
        allocator.close()

    atexit.register(_shutdown)
    app.extensions["snowdrift"] = {
        "generator": generator,
        "allocator": allocator,
        "shutdown": _shutdown,
    }

    @app.before_request
    def _start_timer():
        g.start_time = time.time()

    @app.after_request
    def _log_request(response):
        if app.config["LOG_REQUESTS"]:
            duration = (time.time() - g.start_time) * 1000
            log_message = (
                f"{request.remote_addr} - {request.method} {request.path} "
                f"HTTP/{request.environ.get('SERVER_PROTOCOL')} "
                f"{response.status_code} - {duration:.2f}ms"
            )
            app.logger.info(log_message)
        return response

    return app
