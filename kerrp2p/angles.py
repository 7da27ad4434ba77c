"""
Angle helpers shared by the residual function and the grid sweep.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import numpy as np

from kerrp2p.precision import DOUBLE


def sgn(value):
    """
    Sign of a scalar or array as -1, 0 or +1.

    NaN maps to 0 so that sign products involving a missing sample are
    never negative. Callers still test NaN explicitly before flagging
    candidates.
    """
    value = np.asarray(value)
    out = (value > 0).astype(np.int8) - (value < 0).astype(np.int8)
    if out.ndim == 0:
        return int(out)
    return out


def wrap_phi(phi, precision=DOUBLE):
    """
    Move an azimuth into [0, 2*pi).

    Idempotent: wrap_phi(wrap_phi(x)) == wrap_phi(x) for finite x.

    Parameters
    ----------
    phi : float
        Azimuth in radians, any finite value.
    precision : Precision, optional
        Precision of the returned value (default DOUBLE).

    Returns
    -------
    scalar of precision.dtype
        The equivalent azimuth in [0, 2*pi).
    """
    two_pi = precision.two_pi
    phi = precision.cast(phi)
    if phi < 0 or phi >= two_pi:
        phi = np.mod(phi, two_pi)
        # mod rounds up to exactly 2*pi for tiny negative inputs
        if phi >= two_pi:
            phi = precision.cast(0)
    return phi


def winding_number(phi, precision=DOUBLE):
    """Number of full turns contained in an unwrapped azimuth (floor)."""
    return precision.floor_int(precision.cast(phi) / precision.two_pi)
