"""
Numeric precision trait for the image-finding pipeline.

Every algorithm in kerrp2p is written once against a Precision object
instead of a hard-coded float type. The sweep, the residual function and
the solver adapter ask the precision for its dtype, its NaN sentinel and
its value of 2*pi, so the same code runs at working precision or at the
extended precision used by the fallback path.

Instances:
    DOUBLE    - numpy.float64, promotes to EXTENDED
    EXTENDED  - numpy.longdouble, promotes to itself

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import numpy as np


class Precision:
    """
    A numeric type with the operations the pipeline needs.

    Parameters
    ----------
    name : str
        Short identifier (e.g. 'float64'). Used as the pool key and in
        serialized output.
    dtype : numpy dtype
        Scalar type for every matrix and vector at this precision.
    """

    def __init__(self, name, dtype):
        self.name = name
        self.dtype = np.dtype(dtype)
        self._higher = None

    def __repr__(self):
        return "Precision({!r})".format(self.name)

    @property
    def higher(self):
        """The precision used by the high-precision fallback."""
        return self._higher if self._higher is not None else self

    @property
    def two_pi(self):
        return self.dtype.type(2) * self.pi

    @property
    def pi(self):
        # np.pi is a float64; rebuild it at full width for longdouble
        return self.dtype.type(4) * np.arctan(self.dtype.type(1))

    @property
    def nan(self):
        return self.dtype.type(np.nan)

    def cast(self, value):
        """Convert a scalar to this precision."""
        return self.dtype.type(value)

    def array(self, values):
        """Convert a sequence (or array of another precision) to this precision."""
        return np.asarray(values, dtype=self.dtype)

    def floor_int(self, value):
        """Floor of a scalar as a Python int (NaN raises ValueError)."""
        return int(np.floor(value))


DOUBLE = Precision("float64", np.float64)
EXTENDED = Precision("longdouble", np.longdouble)
DOUBLE._higher = EXTENDED

_BY_NAME = {p.name: p for p in (DOUBLE, EXTENDED)}


def get_precision(name):
    """
    Look up a precision by name.

    Parameters
    ----------
    name : str or Precision
        'float64' or 'longdouble'. A Precision instance is returned as is.

    Raises
    ------
    ValueError
        If the name is unknown.
    """
    if isinstance(name, Precision):
        return name
    try:
        return _BY_NAME[name]
    except KeyError:
        raise ValueError(
            "Unknown precision '{}'. Expected one of: {}".format(
                name, ", ".join(sorted(_BY_NAME)))
        ) from None
