"""
High-precision fallback for ill-conditioned sweeps.

Promotes every numeric input to the next precision, runs the unmodified
GridSweepEngine on a pool of that precision, and casts the SweepResult
back to working precision. Nothing detects ill-conditioning
automatically; callers choose this path explicitly.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging

from kerrp2p.sweep import GridSweepEngine

log = logging.getLogger(__name__)


def sweep_high_precision(pool_for, params, theta_o, phi_o, rc_list,
                         lgd_list, cutoff, tol, max_workers=1,
                         solver_config=None):
    """
    Run a grid sweep at params.precision.higher and cast the result down.

    Parameters
    ----------
    pool_for : callable
        Maps a Precision to the InstancePool for it.
    params : RayTracingParams
        Working-precision parameters.
    theta_o, phi_o, rc_list, lgd_list, cutoff, tol
        As GridSweepEngine.sweep().
    max_workers : int, optional
    solver_config : SolverConfig, optional

    Returns
    -------
    SweepResult
        At params.precision.
    """
    low = params.precision
    high = low.higher
    log.debug("high precision sweep: %s -> %s", low.name, high.name)

    params_h = params.astype(high)
    theta_o_h = high.cast(theta_o)
    phi_o_h = high.cast(phi_o)
    rc_list_h = high.array(rc_list)
    lgd_list_h = high.array(lgd_list)
    tol_h = high.cast(tol)

    engine = GridSweepEngine(pool_for(high), max_workers=max_workers,
                             solver_config=solver_config)
    result = engine.sweep(params_h, theta_o_h, phi_o_h, rc_list_h,
                          lgd_list_h, cutoff, tol_h)
    return result.astype(low)
