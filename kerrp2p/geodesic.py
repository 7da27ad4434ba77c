"""
Reference Oracle: Kerr null geodesics integrated in Mino time.

Units G = c = M = 1. For conserved quantities (lambda_, eta) the radial
and angular potentials are

    R(r)         = (r^2 + a^2 - a*lambda_)^2 - Delta*(eta + (lambda_ - a)^2)
    Theta(theta) = eta + a^2*cos^2(theta) - lambda_^2*cot^2(theta)

with Delta = r^2 - 2r + a^2. In Mino time tau the motion separates:

    dr/dtau      = p_r,        dp_r/dtau     = R'(r)/2
    dtheta/dtau  = p_theta,    dp_theta/dtau = Theta'(theta)/2
    dphi/dtau    = a*(r^2 + a^2 - a*lambda_)/Delta + lambda_/sin^2(theta) - a
    dt/dtau      = (r^2 + a^2)*(r^2 + a^2 - a*lambda_)/Delta
                   + a*(lambda_ - a*sin^2(theta))

Integrating the second-order form passes smoothly through radial and
polar turning points, so no sign bookkeeping is needed. The ray starts at
(r_s, theta_s, phi=0) with p_r = nu_r*sqrt(R), p_theta = nu_theta*sqrt(Theta)
and stops when it reaches r_o (NORMAL), falls to the horizon or runs out
of Mino time (CONFINED).

scipy's integrators work in float64. Contexts created at a higher
precision cast their inputs down and their outputs up.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
import math

import numpy as np
from scipy.integrate import solve_ivp

from kerrp2p.oracle import RayStatus, RayTracer
from kerrp2p.precision import DOUBLE

log = logging.getLogger(__name__)

# Stop this far (relative) outside the outer horizon; frame dragging
# makes dphi/dtau diverge at the horizon itself.
CAPTURE_MARGIN = 1e-4


def horizons(a):
    """Outer and inner horizon radii (r_plus, r_minus)."""
    root = math.sqrt(1.0 - a * a)
    return 1.0 + root, 1.0 - root


def radial_potential(r, a, lambda_, eta):
    """R(r); a photon can only be at radius r where R(r) >= 0."""
    w = r * r + a * a - a * lambda_
    delta = r * r - 2.0 * r + a * a
    return w * w - delta * (eta + (lambda_ - a) ** 2)


def angular_potential(theta, a, lambda_, eta):
    """Theta(theta); a photon can only be at polar angle theta where Theta >= 0."""
    c = math.cos(theta)
    s = math.sin(theta)
    return eta + a * a * c * c - lambda_ * lambda_ * c * c / (s * s)


def _geodesic_rhs(tau, y, a, lambda_, eta, r_o, r_capture, calc_t_f):
    r, p_r, theta, p_theta = y[0], y[1], y[2], y[3]
    w = r * r + a * a - a * lambda_
    delta = r * r - 2.0 * r + a * a
    s = math.sin(theta)
    c = math.cos(theta)
    s2 = s * s
    dp_r = 2.0 * r * w - (r - 1.0) * (eta + (lambda_ - a) ** 2)
    dp_theta = -a * a * c * s + lambda_ * lambda_ * c / (s2 * s)
    dphi = a * w / delta + lambda_ / s2 - a
    if calc_t_f:
        dt = (r * r + a * a) * w / delta + a * (lambda_ - a * s2)
    else:
        dt = 0.0
    return [p_r, dp_r, p_theta, dp_theta, dphi, dt]


def _reach_observer(tau, y, a, lambda_, eta, r_o, r_capture, calc_t_f):
    return y[0] - r_o


def _reach_horizon(tau, y, a, lambda_, eta, r_o, r_capture, calc_t_f):
    return y[0] - r_capture


def _radial_turn(tau, y, a, lambda_, eta, r_o, r_capture, calc_t_f):
    return y[1]


def _polar_turn(tau, y, a, lambda_, eta, r_o, r_capture, calc_t_f):
    return y[3]


_reach_observer.terminal = True
_reach_horizon.terminal = True
_reach_horizon.direction = -1

_EVENTS = (_reach_observer, _reach_horizon, _radial_turn, _polar_turn)


class GeodesicRayTracer(RayTracer):
    """
    Oracle context that traces rays with scipy.integrate.solve_ivp.

    Keeps the horizon radii of the last spin it saw and a scratch
    initial-state buffer, so repeated evaluations at the same spin do
    no extra setup.

    Parameters
    ----------
    precision : Precision, optional
        Precision of the stored outputs (default DOUBLE).
    rtol, atol : float, optional
        Integrator tolerances.
    tau_max : float, optional
        Mino-time budget. Rays that neither escape to r_o nor fall in
        within it are reported CONFINED.
    method : str, optional
        solve_ivp method (default 'DOP853').
    """

    def __init__(self, precision=DOUBLE, rtol=1e-10, atol=1e-12,
                 tau_max=1000.0, method="DOP853"):
        super().__init__(precision)
        self.rtol = rtol
        self.atol = atol
        self.tau_max = tau_max
        self.method = method
        self._a = None
        self._r_plus = None
        self._y0 = np.zeros(6)

    def _spin(self, a):
        if a != self._a:
            self._a = a
            self._r_plus = horizons(a)[0]
        return self._r_plus

    def calc_ray(self, params):
        self._reset()
        self.params = params
        cast = self.precision.cast

        a = float(params.a)
        r_s = float(params.r_s)
        r_o = float(params.r_o)
        theta_s = float(params.theta_s)
        lambda_ = float(params.lambda_)
        eta = float(params.eta)
        self.lambda_ = cast(params.lambda_)
        self.eta = cast(params.eta)

        values = (a, r_s, r_o, theta_s, lambda_, eta)
        if not all(math.isfinite(v) for v in values) or not 0.0 < a < 1.0:
            self.status = RayStatus.ARGUMENT_ERROR
            return
        r_plus = self._spin(a)
        if r_s <= r_plus or r_o <= r_plus:
            self.status = RayStatus.ARGUMENT_ERROR
            return
        if not 0.0 < theta_s < math.pi:
            self.status = RayStatus.ANGLE_OUT_OF_RANGE
            return

        big_theta = angular_potential(theta_s, a, lambda_, eta)
        if big_theta < 0.0:
            self.status = RayStatus.ANGLE_OUT_OF_RANGE
            return
        big_r = radial_potential(r_s, a, lambda_, eta)
        if big_r < 0.0:
            self.status = RayStatus.ARGUMENT_ERROR
            return

        y0 = self._y0
        y0[:] = 0.0
        y0[0] = r_s
        y0[1] = int(params.nu_r) * math.sqrt(big_r)
        y0[2] = theta_s
        y0[3] = int(params.nu_theta) * math.sqrt(big_theta)

        r_capture = r_plus * (1.0 + CAPTURE_MARGIN)
        try:
            sol = solve_ivp(
                _geodesic_rhs, (0.0, self.tau_max), y0,
                method=self.method, rtol=self.rtol, atol=self.atol,
                events=_EVENTS,
                args=(a, lambda_, eta, r_o, r_capture, self.calc_t_f),
            )
        except (ValueError, ZeroDivisionError, FloatingPointError) as e:
            log.debug("geodesic integration raised: %s", e)
            self.status = RayStatus.UNKNOWN_ERROR
            return

        if sol.status == -1:
            log.debug("geodesic integration failed: %s", sol.message)
            self.status = RayStatus.UNKNOWN_ERROR
            return

        self.radial_turns = len(sol.t_events[2])
        self.theta_turns = len(sol.t_events[3])

        if sol.status != 1 or len(sol.t_events[0]) == 0:
            # tau budget spent or horizon reached
            self.status = RayStatus.CONFINED
            return

        y_f = sol.y_events[0][0]
        theta_f = y_f[2]
        phi_f = y_f[4]
        if not (math.isfinite(theta_f) and math.isfinite(phi_f)):
            self.status = RayStatus.UNKNOWN_ERROR
            return
        if not 0.0 <= theta_f <= math.pi:
            self.status = RayStatus.ANGLE_OUT_OF_RANGE
            return

        self.theta_f = cast(theta_f)
        self.phi_f = cast(phi_f)
        if self.calc_t_f:
            self.t_f = cast(y_f[5])
        self.status = RayStatus.NORMAL
