"""
Ray parameters and the impact-parameter transform.

A photon is launched from a source at (r_s, theta_s) around a Kerr black
hole of unit mass and spin a, with initial radial and polar directions
nu_r and nu_theta. Its conserved quantities (lambda_, eta) are encoded
by a ParameterPoint (rc, log_abs_d):

    lambda_ = lambda_c(rc)
    eta     = eta_c(rc) + d,      d = d_sign * 10**log_abs_d

where (lambda_c, eta_c) is the critical curve, i.e. the conserved
quantities of the spherical photon orbit of radius rc:

    Delta    = rc^2 - 2*rc + a^2
    lambda_c = a + rc/a * (rc - 2*Delta/(rc - 1))
    eta_c    = rc^3/a^2 * (4*Delta/(rc - 1)^2 - rc)

lambda_c is strictly monotonic across the photon shell, so the map is
injective there. Photons with small |d| orbit close to rc many times,
which is why winding images sit at evenly spaced log_abs_d.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

from enum import IntEnum

import numpy as np

from kerrp2p.precision import DOUBLE


class Sign(IntEnum):
    POSITIVE = 1
    NEGATIVE = -1


def critical_curve(rc, a):
    """
    Conserved quantities of the spherical photon orbit at radius rc.

    Parameters
    ----------
    rc : float or ndarray
        Orbit radius in units of M.
    a : float
        Spin parameter, 0 < a < 1.

    Returns
    -------
    tuple
        (lambda_c, eta_c). Non-finite where the formula is singular (rc == 1 or
        a == 0).
    """
    # numpy operands, so division by zero yields inf/nan instead of raising
    rc = np.asarray(rc)
    a = np.asarray(a)
    with np.errstate(divide="ignore", invalid="ignore"):
        delta = rc * rc - 2 * rc + a * a
        lambda_c = a + rc / a * (rc - 2 * delta / (rc - 1))
        eta_c = rc ** 3 / (a * a) * (4 * delta / ((rc - 1) * (rc - 1)) - rc)
    return lambda_c, eta_c


class RayTracingParams:
    """
    Full input of one ray-tracing evaluation.

    Holds the fixed physical configuration (spin, source, observer
    radius, initial directions) and the ray's position in parameter
    space, either as a ParameterPoint (rc, log_abs_d, d_sign) or as the
    physical pair (lambda_, eta).

    Parameters
    ----------
    a : float
        Spin parameter, 0 < a < 1.
    r_s : float
        Source radius (must lie outside the horizon).
    theta_s : float
        Source polar angle in (0, pi).
    r_o : float
        Observer radius.
    nu_r, nu_theta : Sign or int
        Initial signs of dr/dtau and dtheta/dtau.
    rc, log_abs_d : float, optional
        ParameterPoint. lambda_ and eta are derived from them.
    d_sign : Sign or int, optional
        Side of the critical curve (default POSITIVE).
    lambda_, eta : float, optional
        Physical parameters, used when no ParameterPoint is given.
    print_args_error : bool, optional
        Log ARGUMENT_ERROR statuses during root solving (default False;
        they are routine while a solver steps outside the valid region).
    precision : Precision, optional
        Numeric type of every stored value (default DOUBLE).
    """

    def __init__(self, a, r_s, theta_s, r_o, nu_r=Sign.POSITIVE,
                 nu_theta=Sign.POSITIVE, rc=None, log_abs_d=None,
                 d_sign=Sign.POSITIVE, lambda_=None, eta=None,
                 print_args_error=False, precision=DOUBLE):
        cast = precision.cast
        self.precision = precision
        self.a = cast(a)
        self.r_s = cast(r_s)
        self.theta_s = cast(theta_s)
        self.r_o = cast(r_o)
        self.nu_r = Sign(int(nu_r))
        self.nu_theta = Sign(int(nu_theta))
        self.d_sign = Sign(int(d_sign))
        self.print_args_error = bool(print_args_error)
        self.rc = cast(rc) if rc is not None else precision.nan
        self.log_abs_d = cast(log_abs_d) if log_abs_d is not None else precision.nan
        self.lambda_ = cast(lambda_) if lambda_ is not None else precision.nan
        self.eta = cast(eta) if eta is not None else precision.nan
        if rc is not None and log_abs_d is not None:
            self.rc_d_to_lambda_q()

    def rc_d_to_lambda_q(self):
        """Recompute (lambda_, eta) from the current (rc, log_abs_d, d_sign)."""
        dtype = self.precision.dtype.type
        lambda_c, eta_c = critical_curve(self.rc, self.a)
        with np.errstate(over="ignore", invalid="ignore"):
            d = dtype(int(self.d_sign)) * np.power(dtype(10), self.log_abs_d)
        self.lambda_ = dtype(lambda_c)
        self.eta = dtype(eta_c + d)
        return self

    def set_point(self, rc, log_abs_d):
        """Move to a new ParameterPoint and refresh (lambda_, eta)."""
        self.rc = self.precision.cast(rc)
        self.log_abs_d = self.precision.cast(log_abs_d)
        return self.rc_d_to_lambda_q()

    def copy(self):
        """Private copy for one worker."""
        other = object.__new__(RayTracingParams)
        other.__dict__.update(self.__dict__)
        return other

    def astype(self, precision):
        """Copy of these parameters stored at another precision."""
        other = self.copy()
        other.precision = precision
        for key in ("a", "r_s", "theta_s", "r_o", "rc", "log_abs_d",
                    "lambda_", "eta"):
            setattr(other, key, precision.cast(getattr(self, key)))
        return other

    def to_dict(self):
        """Serialize for JSON responses."""
        return {
            "a": float(self.a),
            "r_s": float(self.r_s),
            "theta_s": float(self.theta_s),
            "r_o": float(self.r_o),
            "nu_r": int(self.nu_r),
            "nu_theta": int(self.nu_theta),
            "rc": float(self.rc),
            "log_abs_d": float(self.log_abs_d),
            "d_sign": int(self.d_sign),
            "lambda": float(self.lambda_),
            "eta": float(self.eta),
        }

    @classmethod
    def from_dict(cls, data, precision=DOUBLE):
        """
        Build parameters from a request payload.

        Either 'rc' and 'log_abs_d' or 'lambda' and 'eta' must be present.

        Raises
        ------
        ValueError
            If a required key is missing or a value is not numeric.
        """
        if not isinstance(data, dict):
            raise ValueError("params must be a JSON object")
        missing = [k for k in ("a", "r_s", "theta_s", "r_o") if k not in data]
        if missing:
            raise ValueError("params missing: {}".format(", ".join(missing)))
        has_point = "rc" in data and "log_abs_d" in data
        has_physical = "lambda" in data and "eta" in data
        if not has_point and not has_physical:
            raise ValueError(
                "params need either rc and log_abs_d, or lambda and eta")
        try:
            return cls(
                a=float(data["a"]),
                r_s=float(data["r_s"]),
                theta_s=float(data["theta_s"]),
                r_o=float(data["r_o"]),
                nu_r=_parse_sign(data.get("nu_r", 1)),
                nu_theta=_parse_sign(data.get("nu_theta", 1)),
                rc=float(data["rc"]) if has_point else None,
                log_abs_d=float(data["log_abs_d"]) if has_point else None,
                d_sign=_parse_sign(data.get("d_sign", 1)),
                lambda_=None if has_point else float(data["lambda"]),
                eta=None if has_point else float(data["eta"]),
                precision=precision,
            )
        except (TypeError, ValueError) as e:
            raise ValueError("invalid params: {}".format(e)) from None


def _parse_sign(value):
    """Accept +1/-1 or 'POSITIVE'/'NEGATIVE'."""
    if isinstance(value, str):
        try:
            return Sign[value.strip().upper()]
        except KeyError:
            raise ValueError("unknown sign '{}'".format(value)) from None
    if value not in (1, -1):
        raise ValueError("sign must be 1 or -1, got {!r}".format(value))
    return Sign(int(value))
