"""
Residual function driven to zero by the root solver.

For a ParameterPoint x = (rc, log_abs_d) the residual measures how far
the traced ray lands from the target sky angles (theta_o, phi_o):

    F_0(x) = theta_f - theta_o
    F_1(x) = phi_f - phi_o - period*2*pi     (period fixed)
    F_1(x) = sin((phi_f - phi_o)/2)          (any period)

The sine form vanishes at every multiple of 2*pi and is smooth and
antisymmetric around each of them, so the solver converges to whichever
winding is nearest without knowing it in advance.

A ray with a non-NORMAL status yields a NaN residual. The solver sees
that as a failed step instead of an exception.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging

import numpy as np

from kerrp2p.oracle import RayStatus

log = logging.getLogger(__name__)


class ResidualFunction:
    """
    Callable 2-vector residual around one Oracle context.

    Parameters
    ----------
    ray_tracer : RayTracer
        Exclusive evaluation context. Coordinate-time integration is
        switched off on it.
    params : RayTracingParams
        Private parameter copy; its ParameterPoint is overwritten on
        every call.
    theta_o, phi_o : float
        Target sky angles. phi_o is expected in [0, 2*pi).
    period : int, optional
        Fixed winding. None selects the any-period sine metric.
    """

    def __init__(self, ray_tracer, params, theta_o, phi_o, period=None):
        self.ray_tracer = ray_tracer
        self.params = params
        self.precision = params.precision
        self.theta_o = self.precision.cast(theta_o)
        self.phi_o = self.precision.cast(phi_o)
        self.period = period
        self.ray_tracer.calc_t_f = False

    @property
    def fixed_period(self):
        return self.period is not None

    def __call__(self, x):
        prec = self.precision
        params = self.params
        params.set_point(x[0], x[1])
        tracer = self.ray_tracer
        tracer.calc_ray(params)

        if tracer.status is not RayStatus.NORMAL:
            if params.print_args_error or tracer.status is not RayStatus.ARGUMENT_ERROR:
                log.debug("ray status: %s", tracer.status.value)
            return np.full(2, prec.nan, dtype=prec.dtype)

        residual = np.empty(2, dtype=prec.dtype)
        residual[0] = tracer.theta_f - self.theta_o
        if self.fixed_period:
            residual[1] = tracer.phi_f - self.phi_o - self.period * prec.two_pi
        else:
            residual[1] = np.sin((tracer.phi_f - self.phi_o) / prec.cast(2))
        return residual
