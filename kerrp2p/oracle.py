"""
Forward ray-tracing Oracle contract.

The Oracle maps RayTracingParams to the final sky angles of the photon
at the observer radius, the conserved quantities it used, and a validity
status. It is pure: the same parameters always produce the same result.

Concrete Oracles subclass RayTracer. A RayTracer instance is a reusable
evaluation context (scratch buffers, per-spin constants). Instances are
not thread safe; the InstancePool hands each worker its own.

Classes:
    RayStatus        - Validity status of one evaluation
    RayTracingResult - Packaged output of one evaluation
    RayTracer        - Abstract evaluation context

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

from abc import ABC, abstractmethod
from enum import Enum

from kerrp2p.params import Sign
from kerrp2p.precision import DOUBLE


class RayStatus(Enum):
    NORMAL = "NORMAL"
    CONFINED = "CONFINED"
    ANGLE_OUT_OF_RANGE = "ANGLE_OUT_OF_RANGE"
    ARGUMENT_ERROR = "ARGUMENT_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class RayTracingResult:
    """
    Record of one Oracle evaluation.

    Parameters
    ----------
    status : RayStatus
        NORMAL when every other field is meaningful.
    theta_f, phi_f : float
        Polar angle and unwrapped azimuth at the observer radius.
    lambda_, eta : float
        Conserved quantities of the ray.
    rc, log_abs_d : float
        ParameterPoint of the ray (NaN if built from lambda_, eta).
    d_sign : Sign
        Side of the critical curve.
    t_f : float
        Coordinate time at arrival (NaN when not computed).
    theta_turns, radial_turns : int
        Number of polar and radial turning points along the ray.
    period : int or None
        Winding used to solve for this ray. Set on refined roots.
    precision : Precision
        Numeric type of the float fields.
    """

    FLOAT_FIELDS = ("theta_f", "phi_f", "lambda_", "eta", "rc",
                    "log_abs_d", "t_f")

    def __init__(self, status, theta_f, phi_f, lambda_, eta, rc=None,
                 log_abs_d=None, d_sign=Sign.POSITIVE, t_f=None,
                 theta_turns=0, radial_turns=0, period=None,
                 precision=DOUBLE):
        self.status = status
        self.precision = precision
        self.theta_f = precision.cast(theta_f)
        self.phi_f = precision.cast(phi_f)
        self.lambda_ = precision.cast(lambda_)
        self.eta = precision.cast(eta)
        self.rc = precision.cast(rc) if rc is not None else precision.nan
        self.log_abs_d = (precision.cast(log_abs_d) if log_abs_d is not None
                          else precision.nan)
        self.d_sign = Sign(int(d_sign))
        self.t_f = precision.cast(t_f) if t_f is not None else precision.nan
        self.theta_turns = int(theta_turns)
        self.radial_turns = int(radial_turns)
        self.period = period

    def astype(self, precision):
        """Copy of this result with every float field cast to precision."""
        other = object.__new__(RayTracingResult)
        other.__dict__.update(self.__dict__)
        other.precision = precision
        for key in self.FLOAT_FIELDS:
            setattr(other, key, precision.cast(getattr(self, key)))
        return other

    def to_dict(self):
        """Serialize for JSON responses. NaN becomes None."""
        out = {"status": self.status.value}
        for key in self.FLOAT_FIELDS:
            value = float(getattr(self, key))
            out[key.rstrip("_")] = None if value != value else value
        out["d_sign"] = int(self.d_sign)
        out["theta_turns"] = self.theta_turns
        out["radial_turns"] = self.radial_turns
        out["period"] = self.period
        return out


class RayTracer(ABC):
    """
    Abstract reusable Oracle evaluation context.

    Subclasses implement calc_ray(), which must set every attribute
    listed below. to_result() packages them into a RayTracingResult.

    Attributes
    ----------
    status : RayStatus
    theta_f, phi_f, lambda_, eta, t_f : float
    theta_turns, radial_turns : int
    calc_t_f : bool
        Whether calc_ray() integrates coordinate time. The residual
        function switches it off for speed.
    """

    def __init__(self, precision=DOUBLE):
        self.precision = precision
        self.calc_t_f = True
        self.params = None
        self._reset()

    def _reset(self):
        nan = self.precision.nan
        self.status = RayStatus.UNKNOWN_ERROR
        self.theta_f = nan
        self.phi_f = nan
        self.lambda_ = nan
        self.eta = nan
        self.t_f = nan
        self.theta_turns = 0
        self.radial_turns = 0

    @abstractmethod
    def calc_ray(self, params):
        """
        Trace one ray and store the outcome on this context.

        Must never raise for bad physical input; report
        ARGUMENT_ERROR or another status instead.

        Parameters
        ----------
        params : RayTracingParams
        """

    def to_result(self):
        """Package the last calc_ray() outcome."""
        params = self.params
        return RayTracingResult(
            status=self.status,
            theta_f=self.theta_f,
            phi_f=self.phi_f,
            lambda_=self.lambda_,
            eta=self.eta,
            rc=params.rc if params is not None else None,
            log_abs_d=params.log_abs_d if params is not None else None,
            d_sign=params.d_sign if params is not None else Sign.POSITIVE,
            t_f=self.t_f,
            theta_turns=self.theta_turns,
            radial_turns=self.radial_turns,
            precision=self.precision,
        )

    def evaluate(self, params):
        """calc_ray() followed by to_result()."""
        self.calc_ray(params)
        return self.to_result()
