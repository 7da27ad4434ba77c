"""
kerrp2p - Kerr point-to-point imaging service.
Flask application factory.

Serves the REST API for image finding via registered KerrService
instances.

Usage:
    python app.py              # Development server on http://localhost:5000
    flask run                  # Same, via Flask CLI
"""

__version__ = "0.1.0"

import logging

from flask import Flask, jsonify

from kerrp2p.engine import default_engine
from kerrp2p.services import ServiceRegistry
from kerrp2p.services.imaging import ImagingService


def create_registry(engine=None):
    """Build and populate the service registry."""
    registry = ServiceRegistry()
    registry.register(ImagingService(engine or default_engine()))
    return registry


def create_app(engine=None):
    """
    Application factory for the kerrp2p Flask app.

    Parameters
    ----------
    engine : RayTracingEngine, optional
        Engine shared by every request. Defaults to the geodesic Oracle
        with default settings.
    """
    app = Flask(__name__)

    registry = create_registry(engine)

    from api.routes import create_api_blueprint
    api = create_api_blueprint(registry)
    app.register_blueprint(api)

    @app.route("/")
    def root():
        return jsonify({
            "name": "kerrp2p",
            "version": __version__,
            "services": registry.list_all(),
        })

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app()
    app.run(debug=True, host="127.0.0.1", port=5000)
