"""
Tests for ResidualFunction: determinism, both azimuth metrics, NaN on
invalid rays.
"""

import math
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from kerrp2p.residual import ResidualFunction
from synthetic_oracles import (
    ConfinedRayTracer, LinearRayTracer, PHI_O, THETA_O, make_params,
)

POINTS = [(0.1 * i, 0.05 * i - 0.2) for i in range(20)]


class TestDeterminism:

    def test_same_input_same_output(self):
        fn = ResidualFunction(LinearRayTracer(), make_params(), THETA_O, PHI_O)
        x = np.array([0.3, 0.1])
        assert np.array_equal(fn(x), fn(x.copy()))

    def test_parallel_matches_serial(self, linear_pool):
        serial_fn = ResidualFunction(LinearRayTracer(), make_params(),
                                     THETA_O, PHI_O, period=0)
        expected = [serial_fn(np.array(p)) for p in POINTS]

        def run(point):
            with linear_pool.lease() as tracer:
                fn = ResidualFunction(tracer, make_params(), THETA_O, PHI_O,
                                      period=0)
                return fn(np.array(point))

        with ThreadPoolExecutor(max_workers=4) as executor:
            got = list(executor.map(run, POINTS))
        for e, g in zip(expected, got):
            assert np.array_equal(e, g)

    def test_turns_off_coordinate_time(self):
        tracer = LinearRayTracer()
        ResidualFunction(tracer, make_params(), THETA_O, PHI_O)
        assert tracer.calc_t_f is False


class TestAzimuthMetric:

    def test_fixed_period_component(self):
        tracer = LinearRayTracer(winding=2)
        fn = ResidualFunction(tracer, make_params(), THETA_O, PHI_O, period=2)
        residual = fn(np.array([0.6, 0.4]))
        expected = tracer.phi_f - PHI_O - 2 * 2 * math.pi
        assert residual[1] == pytest.approx(expected, abs=1e-12)
        assert residual[0] == pytest.approx(tracer.theta_f - THETA_O)

    def test_fixed_period_wrong_winding_is_large(self):
        fn = ResidualFunction(LinearRayTracer(winding=2), make_params(),
                              THETA_O, PHI_O, period=1)
        residual = fn(np.array([0.52, 0.47]))
        assert residual[1] == pytest.approx(2 * math.pi, abs=1e-9)

    def test_sine_metric_ignores_winding(self):
        point = np.array([0.6, 0.4])
        r0 = ResidualFunction(LinearRayTracer(winding=0), make_params(),
                              THETA_O, PHI_O)(point)
        r3 = ResidualFunction(LinearRayTracer(winding=3), make_params(),
                              THETA_O, PHI_O)(point)
        assert abs(r3[1]) == pytest.approx(abs(r0[1]), abs=1e-12)

    def test_zero_at_image(self):
        fn = ResidualFunction(LinearRayTracer(winding=1), make_params(),
                              THETA_O, PHI_O)
        residual = fn(np.array([0.52, 0.47]))
        assert np.max(np.abs(residual)) < 1e-12


class TestInvalidRay:

    def test_confined_gives_nan(self):
        fn = ResidualFunction(ConfinedRayTracer(), make_params(),
                              THETA_O, PHI_O)
        residual = fn(np.array([0.5, 0.5]))
        assert residual.shape == (2,)
        assert np.all(np.isnan(residual))

    def test_non_finite_point_gives_nan(self):
        fn = ResidualFunction(LinearRayTracer(), make_params(),
                              THETA_O, PHI_O, period=0)
        assert np.all(np.isnan(fn(np.array([np.nan, 0.5]))))
