"""
RayTracingEngine: the public entry point of kerrp2p.

Owns one InstancePool per precision and exposes the operations callers
use:

    evaluate_single      - one Oracle call, packaged as a RayTracingResult
    evaluate_batch       - parallel map, output order matches input order
    find_root            - nearest image of any winding
    find_root_period     - image with a fixed winding
    sweep                - every image on a (rc, log_abs_d) grid
    sweep_high_precision - sweep at the next precision, cast back
    clear_pool           - drop all cached evaluation contexts

Nothing here raises for physically invalid input: bad rays come back
with a non-NORMAL status, failed root searches as FindRootResult with
success False, and empty sweeps as empty SweepResults.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from kerrp2p.geodesic import GeodesicRayTracer
from kerrp2p.high_precision import sweep_high_precision
from kerrp2p.pool import InstancePool
from kerrp2p.solver import SolverConfig, find_root, find_root_period
from kerrp2p.sweep import GridSweepEngine

MAX_WORKERS_CAP = 64


class EngineConfig:
    """
    Engine-wide settings.

    Parameters
    ----------
    max_workers : int, optional
        Worker threads for batches, sampling and refinement. Defaults to
        the CPU count; clamped to [1, 64].
    solver_max_iterations : int, optional
        Broyden iteration budget per root search (default 100).
    solver_tolerance : float, optional
        Broyden stopping tolerance on the residual (default 1e-11).
    solver_verbosity : int, optional
        0 is silent (default).
    """

    def __init__(self, max_workers=None, solver_max_iterations=100,
                 solver_tolerance=1e-11, solver_verbosity=0):
        if max_workers is None:
            max_workers = os.cpu_count() or 1
        self.max_workers = max(1, min(int(max_workers), MAX_WORKERS_CAP))
        self.solver = SolverConfig(
            max_iterations=solver_max_iterations,
            tolerance=solver_tolerance,
            verbosity=solver_verbosity,
        )

    def to_dict(self):
        result = {"max_workers": self.max_workers}
        result.update({"solver_" + k: v for k, v in self.solver.to_dict().items()})
        return result


class RayTracingEngine:
    """
    Facade over pools, solver and sweep.

    Parameters
    ----------
    tracer_factory : callable, optional
        Builds a RayTracer; called as tracer_factory(precision=...).
        Defaults to GeodesicRayTracer.
    config : EngineConfig, optional
    """

    def __init__(self, tracer_factory=GeodesicRayTracer, config=None):
        self.tracer_factory = tracer_factory
        self.config = config or EngineConfig()
        self._pools = {}
        self._pools_lock = threading.Lock()

    def pool_for(self, precision):
        """The InstancePool for a precision, created on first use."""
        with self._pools_lock:
            pool = self._pools.get(precision.name)
            if pool is None:
                pool = InstancePool(self.tracer_factory, precision)
                self._pools[precision.name] = pool
            return pool

    def clear_pool(self):
        """Discard every cached evaluation context of every precision."""
        with self._pools_lock:
            pools = list(self._pools.values())
        for pool in pools:
            pool.clear()

    def _precision(self, params, precision):
        return precision if precision is not None else params.precision

    @staticmethod
    def _at(params, precision):
        return params if params.precision is precision else params.astype(precision)

    # ------------------------------------------------------------------
    # Forward evaluation
    # ------------------------------------------------------------------

    def evaluate_single(self, params, precision=None):
        """
        Trace one ray.

        Parameters
        ----------
        params : RayTracingParams
        precision : Precision, optional
            Defaults to params.precision.

        Returns
        -------
        RayTracingResult
        """
        prec = self._precision(params, precision)
        with self.pool_for(prec).lease() as ray_tracer:
            return ray_tracer.evaluate(self._at(params, prec))

    def evaluate_batch(self, params_list, precision=None):
        """
        Trace many rays in parallel.

        Each worker leases one context for a contiguous block of inputs
        and writes only its own slots, so results[i] always belongs to
        params_list[i].

        Returns
        -------
        list of RayTracingResult
        """
        params_list = list(params_list)
        if not params_list:
            return []
        prec = self._precision(params_list[0], precision)
        pool = self.pool_for(prec)
        results = [None] * len(params_list)

        def run_block(block):
            with pool.lease() as ray_tracer:
                for i in block:
                    results[i] = ray_tracer.evaluate(
                        self._at(params_list[i], prec))

        workers = self.config.max_workers
        n_blocks = min(len(params_list), workers * 4)
        blocks = [b for b in np.array_split(np.arange(len(params_list)), n_blocks)
                  if b.size]
        with ThreadPoolExecutor(max_workers=workers) as executor:
            list(executor.map(run_block, blocks))
        return results

    # ------------------------------------------------------------------
    # Root finding
    # ------------------------------------------------------------------

    def find_root(self, params, theta_o, phi_o, tol, precision=None):
        """Nearest image of any winding. See kerrp2p.solver.find_root."""
        prec = self._precision(params, precision)
        return find_root(self.pool_for(prec), params, theta_o, phi_o, tol,
                         self.config.solver)

    def find_root_period(self, params, period, theta_o, phi_o, tol,
                         precision=None):
        """Image with a fixed winding. See kerrp2p.solver.find_root_period."""
        prec = self._precision(params, precision)
        return find_root_period(self.pool_for(prec), params, int(period),
                                theta_o, phi_o, tol, self.config.solver)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def sweep(self, params, theta_o, phi_o, rc_list, lgd_list, cutoff, tol,
              precision=None):
        """Every image on the grid. See GridSweepEngine.sweep."""
        prec = self._precision(params, precision)
        engine = GridSweepEngine(self.pool_for(prec),
                                 max_workers=self.config.max_workers,
                                 solver_config=self.config.solver)
        return engine.sweep(params, theta_o, phi_o, rc_list, lgd_list,
                            cutoff, tol)

    def sweep_high_precision(self, params, theta_o, phi_o, rc_list, lgd_list,
                             cutoff, tol, precision=None):
        """
        Same as sweep(), run one precision higher and cast back.

        The result is at `precision` (default params.precision).
        """
        prec = self._precision(params, precision)
        return sweep_high_precision(
            self.pool_for, self._at(params, prec), theta_o, phi_o, rc_list,
            lgd_list, cutoff, tol, max_workers=self.config.max_workers,
            solver_config=self.config.solver)


def default_engine():
    """Engine with the geodesic Oracle and default settings."""
    return RayTracingEngine(GeodesicRayTracer, EngineConfig())
