"""
Root solving for single images.

RootSolver adapts scipy's derivative-free Broyden method
(scipy.optimize.root, method='broyden1') to the ResidualFunction. It
only moves the point; it never decides whether the point is a root.
find_root_period() and find_root() re-evaluate the residual at the
solver's answer and turn the outcome into a FindRootResult, so solver
trouble never escapes as an exception.

Classes:
    SolverConfig   - Iteration budget, tolerance and verbosity
    RootSolver     - Broyden quasi-Newton adapter
    FindRootResult - Discriminated success/failure outcome

Functions:
    find_root_period - Solve for the image with a fixed winding
    find_root        - Solve for the nearest image of any winding

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging

import numpy as np
from scipy.optimize import root as scipy_root

from kerrp2p.angles import wrap_phi
from kerrp2p.oracle import RayStatus
from kerrp2p.residual import ResidualFunction

log = logging.getLogger(__name__)


class SolverConfig:
    """
    Settings for RootSolver.

    Parameters
    ----------
    max_iterations : int, optional
        Broyden iteration budget (default 100, minimum 1).
    tolerance : float, optional
        Stop once every residual component is below this (default 1e-11).
    verbosity : int, optional
        0 is silent; anything higher lets scipy print progress.
    """

    def __init__(self, max_iterations=100, tolerance=1e-11, verbosity=0):
        self.max_iterations = max(1, int(max_iterations))
        self.tolerance = float(tolerance)
        self.verbosity = int(verbosity)

    def to_dict(self):
        return {
            "max_iterations": self.max_iterations,
            "tolerance": self.tolerance,
            "verbosity": self.verbosity,
        }


class RootSolver:
    """Derivative-free quasi-Newton solver for 2-vector residuals."""

    def __init__(self, config=None):
        self.config = config or SolverConfig()

    def solve(self, x0, fun):
        """
        Refine x0 towards a zero of fun.

        Parameters
        ----------
        x0 : ndarray
            Initial point. Its dtype is kept for the returned point.
        fun : callable
            Residual function, ndarray -> ndarray of the same length.

        Returns
        -------
        ndarray
            The final point. NaN if the solver itself broke down.
        """
        cfg = self.config
        x0 = np.asarray(x0)
        try:
            with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
                sol = scipy_root(
                    fun, x0, method="broyden1",
                    options={
                        "maxiter": cfg.max_iterations,
                        "fatol": cfg.tolerance,
                        "disp": cfg.verbosity > 0,
                    },
                )
        except (ValueError, ArithmeticError, np.linalg.LinAlgError) as e:
            log.debug("broyden solver broke down: %s", e)
            return np.full(x0.shape, np.nan, dtype=x0.dtype)
        if cfg.verbosity > 0:
            log.info("broyden solver: %s (nit=%s)", sol.message,
                     getattr(sol, "nit", "?"))
        return np.asarray(sol.x, dtype=x0.dtype)


class FindRootResult:
    """
    Outcome of a single-image root search.

    Parameters
    ----------
    success : bool
    fail_reason : str
        Human-readable reason when success is False, else "".
    root : RayTracingResult or None
        The solved ray when success is True.
    """

    def __init__(self, success, fail_reason="", root=None):
        self.success = success
        self.fail_reason = fail_reason
        self.root = root

    def astype(self, precision):
        root = self.root.astype(precision) if self.root is not None else None
        return FindRootResult(self.success, self.fail_reason, root)

    def to_dict(self):
        return {
            "success": self.success,
            "fail_reason": self.fail_reason or None,
            "root": self.root.to_dict() if self.root is not None else None,
        }


def find_root_period(pool, params, period, theta_o, phi_o, tol, config=None):
    """
    Find the image with a given winding, starting from params' point.

    The residual's azimuthal component is phi_f - phi_o - period*2*pi,
    so the solution lands on exactly that winding.

    Parameters
    ----------
    pool : InstancePool
        Source of the evaluation context. Its precision sets the
        precision of the whole computation.
    params : RayTracingParams
        Physical configuration and initial ParameterPoint. Not modified.
    period : int or None
        Winding number. None selects the any-period sine metric.
    theta_o, phi_o : float
        Target sky angles. phi_o is wrapped into [0, 2*pi).
    tol : float
        Largest accepted residual norm.
    config : SolverConfig, optional

    Returns
    -------
    FindRootResult
    """
    prec = pool.precision
    phi_o = wrap_phi(phi_o, prec)
    theta_o = prec.cast(theta_o)
    local_params = (params.copy() if params.precision is prec
                    else params.astype(prec))
    x0 = prec.array([local_params.rc, local_params.log_abs_d])

    with pool.lease() as ray_tracer:
        try:
            residual_fn = ResidualFunction(ray_tracer, local_params,
                                           theta_o, phi_o, period)
            x = RootSolver(config).solve(x0, residual_fn)
            residual = residual_fn(x)

            if ray_tracer.status is not RayStatus.NORMAL:
                return FindRootResult(
                    False, "ray status: {}".format(ray_tracer.status.value))

            norm = np.sqrt(np.sum(residual * residual))
            if not norm <= prec.cast(tol):
                return FindRootResult(
                    False, "residual > threshold: {} > {}".format(norm, tol))

            root = ray_tracer.to_result()
        finally:
            ray_tracer.calc_t_f = True

    root.rc = x[0]
    root.log_abs_d = x[1]
    root.d_sign = local_params.d_sign
    if period is not None:
        root.period = int(period)
    else:
        root.period = int(np.rint((root.phi_f - phi_o) / prec.two_pi))
    return FindRootResult(True, "", root)


def find_root(pool, params, theta_o, phi_o, tol, config=None):
    """
    Find the nearest image of any winding, starting from params' point.

    Same as find_root_period() with the sine azimuth metric. The
    returned root's period is the winding it converged to.
    """
    return find_root_period(pool, params, None, theta_o, phi_o, tol, config)
