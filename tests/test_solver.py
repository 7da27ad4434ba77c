"""
Tests for the Broyden adapter and the single-image root searches.
"""

import functools
import math

import numpy as np
import pytest

from kerrp2p.oracle import RayStatus
from kerrp2p.pool import InstancePool
from kerrp2p.precision import EXTENDED
from kerrp2p.solver import (
    FindRootResult, RootSolver, SolverConfig, find_root, find_root_period,
)
from synthetic_oracles import (
    LinearRayTracer, PHI_O, ROOT_LGD, ROOT_RC, THETA_O, make_params,
)


def winding_pool(winding):
    return InstancePool(functools.partial(LinearRayTracer, winding=winding))


class TestRootSolver:

    def test_linear_system(self):
        def fun(x):
            return np.array([x[0] - 1.0 + 0.5 * x[1], 2.0 * x[1] + 3.0])
        x = RootSolver().solve(np.array([0.0, 0.0]), fun)
        assert x[1] == pytest.approx(-1.5, abs=1e-9)
        assert x[0] == pytest.approx(1.75, abs=1e-9)

    def test_keeps_dtype(self):
        def fun(x):
            return x - 2
        x = RootSolver().solve(np.array([1.0, 1.0], dtype=np.longdouble), fun)
        assert x.dtype == np.longdouble

    def test_config_bounds(self):
        cfg = SolverConfig(max_iterations=0, tolerance="1e-9", verbosity=0)
        assert cfg.max_iterations == 1
        assert cfg.tolerance == 1e-9
        assert cfg.to_dict()["max_iterations"] == 1


class TestFindRootPeriod:

    def test_converges_to_image(self):
        pool = winding_pool(2)
        outcome = find_root_period(pool, make_params(0.45, 0.4), 2,
                                   THETA_O, PHI_O, 1e-8)
        assert outcome.success
        assert outcome.fail_reason == ""
        root = outcome.root
        assert root.rc == pytest.approx(ROOT_RC, abs=1e-7)
        assert root.log_abs_d == pytest.approx(ROOT_LGD, abs=1e-7)
        assert root.period == 2
        assert root.status is RayStatus.NORMAL

    def test_fixed_period_residual_at_convergence(self):
        pool = winding_pool(1)
        outcome = find_root_period(pool, make_params(0.45, 0.4), 1,
                                   THETA_O, PHI_O, 1e-8)
        assert outcome.success
        residual = outcome.root.phi_f - PHI_O - 1 * 2 * math.pi
        assert abs(residual) < 1e-8

    def test_target_phi_is_wrapped(self):
        pool = winding_pool(0)
        outcome = find_root_period(pool, make_params(0.45, 0.4), 0,
                                   THETA_O, PHI_O + 4 * math.pi, 1e-8)
        assert outcome.success
        assert outcome.root.rc == pytest.approx(ROOT_RC, abs=1e-7)

    def test_does_not_modify_params(self):
        params = make_params(0.45, 0.4)
        find_root_period(winding_pool(0), params, 0, THETA_O, PHI_O, 1e-8)
        assert params.rc == 0.45
        assert params.log_abs_d == 0.4

    def test_invalid_ray_reports_status(self, confined_pool):
        outcome = find_root_period(confined_pool, make_params(), 0,
                                   THETA_O, PHI_O, 1e-8)
        assert not outcome.success
        assert outcome.fail_reason == "ray status: CONFINED"
        assert outcome.root is None

    def test_residual_above_threshold(self):
        cfg = SolverConfig(max_iterations=1)
        outcome = find_root_period(winding_pool(0), make_params(0.1, 0.9), 0,
                                   THETA_O, PHI_O, 1e-14, cfg)
        assert not outcome.success
        assert outcome.fail_reason.startswith("residual > threshold: ")

    def test_restores_coordinate_time(self, linear_pool):
        find_root_period(linear_pool, make_params(0.45, 0.4), 0,
                         THETA_O, PHI_O, 1e-8)
        with linear_pool.lease() as tracer:
            assert tracer.calc_t_f is True

    def test_extended_pool(self):
        pool = InstancePool(LinearRayTracer, EXTENDED)
        outcome = find_root_period(pool, make_params(0.45, 0.4), 0,
                                   THETA_O, PHI_O, 1e-8)
        assert outcome.success
        assert isinstance(outcome.root.rc, EXTENDED.dtype.type)


class TestFindRoot:

    @pytest.mark.parametrize("winding", [0, 1, 3])
    def test_reports_converged_period(self, winding):
        outcome = find_root(winding_pool(winding), make_params(0.45, 0.4),
                            THETA_O, PHI_O, 1e-8)
        assert outcome.success
        assert outcome.root.period == winding
        assert outcome.root.rc == pytest.approx(ROOT_RC, abs=1e-7)

    def test_failure_to_dict(self, confined_pool):
        outcome = find_root(confined_pool, make_params(), THETA_O, PHI_O, 1e-8)
        data = outcome.to_dict()
        assert data == {"success": False,
                        "fail_reason": "ray status: CONFINED",
                        "root": None}


class TestFindRootResult:

    def test_astype_keeps_outcome(self):
        outcome = find_root(winding_pool(0), make_params(0.45, 0.4),
                            THETA_O, PHI_O, 1e-8)
        cast = outcome.astype(EXTENDED)
        assert cast.success
        assert isinstance(cast.root.theta_f, EXTENDED.dtype.type)

    def test_failure_astype(self):
        assert FindRootResult(False, "x").astype(EXTENDED).root is None
