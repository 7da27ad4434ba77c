"""
Flask API blueprint for kerrp2p.

Shared endpoints live here; every registered service mounts its own
namespaced endpoints (e.g. /api/kerr/*) via register_routes().

Endpoints:
  GET  /api/services   - metadata of all registered services
"""

from flask import Blueprint, jsonify


def create_api_blueprint(registry):
    """
    Build the /api blueprint for a populated ServiceRegistry.

    Parameters
    ----------
    registry : ServiceRegistry

    Returns
    -------
    flask.Blueprint
    """
    api = Blueprint("api", __name__, url_prefix="/api")

    @api.route("/services", methods=["GET"])
    def list_services():
        """Return metadata for every registered service."""
        return jsonify(registry.list_all())

    for service in registry:
        service.register_routes(api)

    return api
