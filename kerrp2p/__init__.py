"""
kerrp2p - point-to-point image finding around a Kerr black hole.

Given a source and an observer direction, find every photon path (image)
that connects them. Rays are parametrized by a point (rc, log_abs_d)
near the critical curve; a grid sweep brackets images by sign changes
and a Broyden solver refines them.

The entry point is kerrp2p.engine.RayTracingEngine.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

__version__ = "0.1.0"

from kerrp2p.engine import EngineConfig, RayTracingEngine, default_engine
from kerrp2p.oracle import RayStatus, RayTracer, RayTracingResult
from kerrp2p.params import RayTracingParams, Sign
from kerrp2p.precision import DOUBLE, EXTENDED, get_precision
from kerrp2p.solver import FindRootResult
from kerrp2p.sweep import SweepResult
