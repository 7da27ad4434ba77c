"""
Imaging Service for kerrp2p.

Wraps a RayTracingEngine and owns every image-finding endpoint under
/api/kerr/*. validate()/compute() implement the grid sweep, the
service's main computation; the other endpoints have their own
validate_* helpers that raise ValueError on bad input, which the
routes turn into HTTP 400.

Endpoints:
    GET  /api/kerr/statuses        - list ray statuses and precisions
    POST /api/kerr/evaluate        - trace one ray
    POST /api/kerr/evaluate-batch  - trace many rays, order preserved
    POST /api/kerr/find-root       - refine one image (optional period)
    POST /api/kerr/sweep           - find every image on a grid
    POST /api/kerr/clear-cache     - drop pooled evaluation contexts

Request JSON shared by every POST endpoint:
    params: {a, r_s, theta_s, r_o, nu_r, nu_theta, d_sign,
             rc, log_abs_d  (or lambda, eta)}
    precision: "float64" (default) or "longdouble"

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import math

from flask import jsonify, request

from kerrp2p.oracle import RayStatus
from kerrp2p.params import RayTracingParams
from kerrp2p.precision import get_precision
from kerrp2p.services import KerrService

MAX_GRID_AXIS = 1000
MAX_BATCH = 10000
DEFAULT_CUTOFF = 10
DEFAULT_TOL = 1e-8


def _number(config, key, default=None):
    """Finite float from config[key]; default when absent (None = required)."""
    value = config.get(key, default)
    if value is None:
        raise ValueError("{} is required".format(key))
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValueError("{} must be a number".format(key)) from None
    if not math.isfinite(value):
        raise ValueError("{} must be finite".format(key))
    return value


def _axis(config, key):
    values = config.get(key)
    if not isinstance(values, list) or not values:
        raise ValueError("{} must be a non-empty list of numbers".format(key))
    if len(values) > MAX_GRID_AXIS:
        raise ValueError("{} has more than {} entries".format(key, MAX_GRID_AXIS))
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError):
        raise ValueError("{} must be a list of numbers".format(key)) from None


class ImagingService(KerrService):
    """
    Point-to-point imaging service.

    Parameters
    ----------
    engine : RayTracingEngine
        Shared engine; its pools persist across requests until
        /api/kerr/clear-cache.
    """

    id = "imaging"
    name = "Kerr Imaging"
    description = "Find every image of a source around a Kerr black hole"
    endpoints = (
        "GET /api/kerr/statuses",
        "POST /api/kerr/evaluate",
        "POST /api/kerr/evaluate-batch",
        "POST /api/kerr/find-root",
        "POST /api/kerr/sweep",
        "POST /api/kerr/clear-cache",
    )

    def __init__(self, engine):
        self.engine = engine

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _base(self, config):
        if not config:
            raise ValueError("Request body must be JSON")
        precision = get_precision(config.get("precision", "float64"))
        params = RayTracingParams.from_dict(config.get("params"), precision)
        return {"precision": precision, "params": params}

    def _target(self, config, out):
        out["theta_o"] = _number(config, "theta_o")
        out["phi_o"] = _number(config, "phi_o")
        out["tol"] = _number(config, "tol", DEFAULT_TOL)
        if out["tol"] <= 0:
            raise ValueError("tol must be positive")
        return out

    def validate(self, config):
        """Validate a sweep request."""
        out = self._target(config, self._base(config))
        out["rc_list"] = _axis(config, "rc_list")
        out["lgd_list"] = _axis(config, "lgd_list")
        try:
            out["cutoff"] = max(0, int(config.get("cutoff", DEFAULT_CUTOFF)))
        except (TypeError, ValueError):
            raise ValueError("cutoff must be an integer") from None
        out["high_precision"] = bool(config.get("high_precision", False))
        return out

    def validate_evaluate(self, config):
        return self._base(config)

    def validate_batch(self, config):
        if not config:
            raise ValueError("Request body must be JSON")
        precision = get_precision(config.get("precision", "float64"))
        items = config.get("params_list")
        if not isinstance(items, list) or not items:
            raise ValueError("params_list must be a non-empty list")
        if len(items) > MAX_BATCH:
            raise ValueError("params_list has more than {} entries".format(MAX_BATCH))
        params_list = []
        for i, item in enumerate(items):
            try:
                params_list.append(RayTracingParams.from_dict(item, precision))
            except ValueError as e:
                raise ValueError("params_list[{}]: {}".format(i, e)) from None
        return {"precision": precision, "params_list": params_list}

    def validate_find_root(self, config):
        out = self._target(config, self._base(config))
        period = config.get("period")
        if period is not None:
            if isinstance(period, bool) or not isinstance(period, (int, float)) \
                    or period != int(period):
                raise ValueError("period must be an integer")
            period = int(period)
        out["period"] = period
        return out

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    def compute(self, config):
        """Run a (possibly high-precision) sweep."""
        run = (self.engine.sweep_high_precision if config["high_precision"]
               else self.engine.sweep)
        result = run(config["params"], config["theta_o"], config["phi_o"],
                     config["rc_list"], config["lgd_list"], config["cutoff"],
                     config["tol"], precision=config["precision"])
        return result.to_dict()

    def evaluate(self, config):
        result = self.engine.evaluate_single(config["params"],
                                             precision=config["precision"])
        return result.to_dict()

    def evaluate_batch(self, config):
        results = self.engine.evaluate_batch(config["params_list"],
                                             precision=config["precision"])
        return {"results": [r.to_dict() for r in results]}

    def find_root(self, config):
        args = (config["theta_o"], config["phi_o"], config["tol"])
        if config["period"] is None:
            outcome = self.engine.find_root(config["params"], *args,
                                            precision=config["precision"])
        else:
            outcome = self.engine.find_root_period(
                config["params"], config["period"], *args,
                precision=config["precision"])
        return outcome.to_dict()

    def statuses(self):
        return {
            "statuses": [s.value for s in RayStatus],
            "precisions": ["float64", "longdouble"],
            "engine": self.engine.config.to_dict(),
        }

    def register_routes(self, bp):
        """Mount all /kerr endpoints."""
        service = self

        def run(validator, computation):
            data = request.get_json(silent=True)
            try:
                config = validator(data)
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            return jsonify(computation(config))

        @bp.route("/kerr/statuses", methods=["GET"])
        def kerr_statuses():
            return jsonify(service.statuses())

        @bp.route("/kerr/evaluate", methods=["POST"])
        def kerr_evaluate():
            return run(service.validate_evaluate, service.evaluate)

        @bp.route("/kerr/evaluate-batch", methods=["POST"])
        def kerr_evaluate_batch():
            return run(service.validate_batch, service.evaluate_batch)

        @bp.route("/kerr/find-root", methods=["POST"])
        def kerr_find_root():
            return run(service.validate_find_root, service.find_root)

        @bp.route("/kerr/sweep", methods=["POST"])
        def kerr_sweep():
            return run(service.validate, service.compute)

        @bp.route("/kerr/clear-cache", methods=["POST"])
        def kerr_clear_cache():
            service.engine.clear_pool()
            return jsonify({"cleared": True})
