"""The main endpoints file.

This module provides:
- API: a class of all endpoints
- register_endpoints: a function that registers endpoints onto an app and assigns a generator
"""
import logging
from http import HTTPStatus

from flask import Blueprint, Response, abort, jsonify, request

from ..allocator import WorkerIdentityAllocator
from ..utils.errors import ClockRegressionFatal, GeneratorClosed
from ..utils.ids import Generator
from ..utils.layout import to_datetime


class API:
    """The dome API class to store endpoint methods + the generator."""
    def __init__(self, generator: Generator, allocator: WorkerIdentityAllocator | None = None):
        """Populates variables that are used by endpoints.

        Args:
            generator (Generator): The generator issuing IDs for this process
            allocator (WorkerIdentityAllocator): The allocator holding this process' registration
        """
        self.generator = generator
        self.allocator = allocator
        self.logger = logging.getLogger(__name__)

    def uuid(self):
        """Issues a new ID as a decimal string."""
        try:
            return Response(str(self.generator.next_id()), 200, mimetype="text/plain")
        except ClockRegressionFatal as e:
            self.logger.error(f"Refused to issue an ID: {e}")
            abort(HTTPStatus.INTERNAL_SERVER_ERROR, description="Clock moved backwards")
        except GeneratorClosed:
            abort(HTTPStatus.SERVICE_UNAVAILABLE, description="Server is shutting down")

    def decode(self):
        """Splits an ID from the ``id`` request arg into its fields."""
        raw = request.args.get("id")
        if not raw:
            abort(HTTPStatus.BAD_REQUEST, description="ID missing")
        try:
            identifier = int(raw)
            parts = self.generator.decode(identifier)
            issued_at = to_datetime(identifier, self.generator.epoch)
        except (TypeError, ValueError, OverflowError):
            abort(HTTPStatus.BAD_REQUEST, description="ID is invalid")
        return jsonify(
            {
                "id": str(identifier),
                "timestamp": parts.timestamp + self.generator.epoch,
                "datetime": issued_at.isoformat(),
                "datacenter_id": parts.datacenter_id,
                "worker_id": parts.worker_id,
                "sequence": parts.sequence,
            }
        )

    def health(self):
        """Reports the identity of this process and what its generator is doing."""
        record = self.allocator.record if self.allocator else None
        return jsonify(
            {
                "worker_id": self.generator.worker_id,
                "datacenter_id": self.generator.datacenter_id,
                "status": self.generator.status.value,
                "node": record.path if record else None,
            }
        )

    @staticmethod
    def hello():
        """A root plug to test connections and inform users."""
        return Response(
            """
        <h1>Hello!</h1>
        <p>GET /uuid for a fresh ID, GET /decode?id=... to look inside one.</p>
        """,
            200,
        )


def register_endpoints(app, generator, allocator=None):
    """Binds endpoints to a Flask app.

    Args:
        app (Flask): The app to bind endpoints to
        generator (Generator): The generator that will be used for IDs
        allocator (WorkerIdentityAllocator): The allocator that produced the generator's identity
    """
    api = API(generator, allocator)
    api_bp = Blueprint("api", __name__)
    api_bp.add_url_rule("/uuid", view_func=api.uuid, methods=["GET"])
    api_bp.add_url_rule("/decode", view_func=api.decode, methods=["GET"])
    api_bp.add_url_rule("/health", view_func=api.health, methods=["GET"])
    api_bp.add_url_rule("/", view_func=api.hello, methods=["GET"])
    app.register_blueprint(api_bp)
