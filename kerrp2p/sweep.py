"""
Grid sweep: find every image of a source on a (rc, log_abs_d) grid.

Pipeline (one call to GridSweepEngine.sweep):

    1. Sampling      - trace a ray at every grid point, in parallel over
                       blocks of rows; each block leases its own context.
    2. Isolation     - flag interior cells where delta_theta or delta_phi
                       changes sign against the left or upper neighbour.
                       phi-candidates also need lambda to keep its sign,
                       which rejects sign flips caused by lambda crossing
                       a branch discontinuity.
    3. Empty check   - no candidates at all gives an empty SweepResult.
    4. Pairing       - nearest phi-candidate for every theta-candidate
                       (k-d tree over grid coordinates). A true image sits
                       where both level sets meet.
    5. Ranking       - theta-candidates by pair distance, first `cutoff`.
    6. Refinement    - Broyden solve from each matched phi-candidate with
                       the winding read off the sampled phi, in parallel.
    7. Deduplication - drop roots within tol of an earlier root.

Grid matrices are indexed [row, col] = [log_abs_d index, rc index].

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from scipy.spatial import cKDTree

from kerrp2p.angles import sgn, winding_number, wrap_phi
from kerrp2p.oracle import RayStatus
from kerrp2p.precision import DOUBLE
from kerrp2p.solver import find_root_period

log = logging.getLogger(__name__)

MATRIX_FIELDS = ("theta", "phi", "lambda_", "eta", "delta_theta", "delta_phi")
POINT_FIELDS = ("theta_roots", "phi_roots", "theta_roots_closest")


class SweepResult:
    """
    Aggregate output of a grid sweep.

    Parameters
    ----------
    shape : tuple of int
        (len(lgd_list), len(rc_list)).
    precision : Precision, optional

    Attributes
    ----------
    theta, phi, lambda_, eta : ndarray
        Sampled Oracle outputs; NaN where the ray was invalid.
    delta_theta, delta_phi : ndarray
        theta - theta_o and sin((phi - phi_o)/2); NaN where invalid.
    theta_roots, phi_roots : ndarray, shape (N, 2)
        (rc, log_abs_d) of every theta- and phi-candidate.
    theta_roots_closest : ndarray, shape (N, 2)
        (rc, log_abs_d) of the phi-candidate matched to each
        theta-candidate, ordered by increasing pair distance.
    distances : ndarray, shape (N,)
        Grid distance of each matched pair, same order.
    results : list of RayTracingResult
        Deduplicated refined roots.
    """

    def __init__(self, shape=(0, 0), precision=DOUBLE):
        self.precision = precision
        dtype = precision.dtype
        for name in MATRIX_FIELDS:
            setattr(self, name, np.full(shape, np.nan, dtype=dtype))
        for name in POINT_FIELDS:
            setattr(self, name, np.empty((0, 2), dtype=dtype))
        self.distances = np.empty(0, dtype=np.float64)
        self.results = []

    @property
    def shape(self):
        return self.theta.shape

    def astype(self, precision):
        """Copy with every numeric field cast to precision."""
        other = SweepResult((0, 0), precision)
        for name in MATRIX_FIELDS + POINT_FIELDS:
            setattr(other, name, getattr(self, name).astype(precision.dtype))
        other.distances = self.distances.copy()
        other.results = [r.astype(precision) for r in self.results]
        return other

    def to_dict(self):
        """Serialize for JSON responses. NaN cells become None."""
        out = {"precision": self.precision.name}
        for name in MATRIX_FIELDS + POINT_FIELDS:
            out[name.rstrip("_")] = _to_list(getattr(self, name))
        out["distances"] = [float(d) for d in self.distances]
        out["results"] = [r.to_dict() for r in self.results]
        return out


def _to_list(matrix):
    return [[None if v != v else float(v) for v in row] for row in matrix]


def isolate_candidates(delta, lambda_=None):
    """
    Grid coordinates of sign changes in a sampled field.

    A cell (i, j) with i >= 1 and j >= 1 is flagged when
    sgn(delta[i, j]) * sgn(delta[i, j-1]) <= 0 or
    sgn(delta[i, j]) * sgn(delta[i-1, j]) <= 0, and none of the three
    samples is NaN. With lambda_ given, the cell additionally needs
    lambda_ to keep a strict, NaN-free sign against both neighbours.

    Parameters
    ----------
    delta : ndarray, shape (rows, cols)
    lambda_ : ndarray, optional
        Same shape as delta.

    Returns
    -------
    ndarray of int, shape (N, 2)
        (row, col) pairs in row-major order.
    """
    cur, left, up = delta[1:, 1:], delta[1:, :-1], delta[:-1, 1:]
    flagged = ~(np.isnan(cur) | np.isnan(left) | np.isnan(up))
    s = sgn(cur)
    flagged &= (s * sgn(left) <= 0) | (s * sgn(up) <= 0)

    if lambda_ is not None:
        l_cur, l_left, l_up = lambda_[1:, 1:], lambda_[1:, :-1], lambda_[:-1, 1:]
        flagged &= ~(np.isnan(l_cur) | np.isnan(l_left) | np.isnan(l_up))
        ls = sgn(l_cur)
        flagged &= (ls * sgn(l_left) > 0) & (ls * sgn(l_up) > 0)

    rows, cols = np.nonzero(flagged)
    return np.column_stack([rows + 1, cols + 1]).astype(np.intp)


def match_candidates(theta_index, phi_index):
    """
    Pair every theta-candidate with its nearest phi-candidate.

    Parameters
    ----------
    theta_index, phi_index : ndarray of int, shape (N, 2), (M, 2)
        Grid coordinates. phi_index must not be empty.

    Returns
    -------
    tuple
        (distances, matched) where matched[k] is the phi-candidate
        nearest to theta_index[k] and distances[k] their Euclidean grid
        distance.
    """
    tree = cKDTree(phi_index.astype(np.float64))
    distances, nearest = tree.query(theta_index.astype(np.float64), k=1)
    return np.asarray(distances, dtype=np.float64), phi_index[np.asarray(nearest)]


def deduplicate_roots(roots, tol):
    """
    Drop roots that repeat an earlier one.

    A root is dropped when both |delta rc| < tol and
    |delta log_abs_d| < tol against any earlier root in the list, so at
    most one representative of each cluster survives and no two
    survivors are within tol of each other.
    """
    kept = []
    for i, root in enumerate(roots):
        duplicate = False
        for other in roots[:i]:
            if (abs(root.rc - other.rc) < tol
                    and abs(root.log_abs_d - other.log_abs_d) < tol):
                duplicate = True
                break
        if not duplicate:
            kept.append(root)
    return kept


def _row_blocks(n_rows, max_workers):
    if n_rows == 0:
        return []
    n_blocks = min(n_rows, max_workers * 4)
    return [b for b in np.array_split(np.arange(n_rows), n_blocks) if b.size]


class GridSweepEngine:
    """
    Orchestrates sampling, candidate isolation, pairing and refinement.

    Parameters
    ----------
    pool : InstancePool
        Context pool. Its precision is the precision of the sweep.
    max_workers : int, optional
        Thread count for sampling and refinement (default 1).
    solver_config : SolverConfig, optional
        Passed to every refinement.
    """

    def __init__(self, pool, max_workers=1, solver_config=None):
        self.pool = pool
        self.precision = pool.precision
        self.max_workers = max(1, int(max_workers))
        self.solver_config = solver_config

    def polish(self, root):
        """Extension point applied to every refined root. No-op."""
        return root

    def sweep(self, params, theta_o, phi_o, rc_list, lgd_list, cutoff, tol):
        """
        Run the full image-finding pipeline.

        Parameters
        ----------
        params : RayTracingParams
            Physical configuration. Its ParameterPoint is ignored.
        theta_o, phi_o : float
            Target sky angles. phi_o is wrapped into [0, 2*pi).
        rc_list, lgd_list : sequence of float
            Grid axes (columns and rows respectively).
        cutoff : int
            Largest number of candidates to refine.
        tol : float
            Residual threshold for a refined root and deduplication
            distance.

        Returns
        -------
        SweepResult
        """
        prec = self.precision
        theta_o = prec.cast(theta_o)
        phi_o = wrap_phi(phi_o, prec)
        rc_list = prec.array(rc_list).ravel()
        lgd_list = prec.array(lgd_list).ravel()
        if params.precision is not prec:
            params = params.astype(prec)

        result = SweepResult((lgd_list.size, rc_list.size), prec)

        # Step 1: sample every grid point
        self._sample(result, params, rc_list, lgd_list)
        result.delta_theta = result.theta - theta_o
        result.delta_phi = np.sin((result.phi - phi_o) / prec.cast(2))

        # Step 2: isolate sign changes
        theta_index = isolate_candidates(result.delta_theta)
        phi_index = isolate_candidates(result.delta_phi, result.lambda_)
        log.debug("sweep %dx%d: %d theta candidates, %d phi candidates",
                  lgd_list.size, rc_list.size, len(theta_index), len(phi_index))

        # Step 3: nothing to pair
        if len(theta_index) == 0 and len(phi_index) == 0:
            return result

        result.theta_roots = self._grid_points(theta_index, rc_list, lgd_list)
        if len(phi_index) == 0:
            return result
        result.phi_roots = self._grid_points(phi_index, rc_list, lgd_list)
        if len(theta_index) == 0:
            return result

        # Step 4 + 5: pair, then rank by distance
        distances, matched = match_candidates(theta_index, phi_index)
        order = np.argsort(distances, kind="stable")
        matched = matched[order]
        result.distances = distances[order]
        result.theta_roots_closest = self._grid_points(matched, rc_list, lgd_list)

        # Step 6 + 7: refine and deduplicate
        n_refine = min(max(int(cutoff), 0), len(matched))
        roots = self._refine(params, theta_o, phi_o, result.phi,
                             matched[:n_refine], rc_list, lgd_list, tol)
        result.results = deduplicate_roots(roots, prec.cast(tol))
        log.info("sweep found %d roots (%d refined of %d attempted)",
                 len(result.results), len(roots), n_refine)
        return result

    @staticmethod
    def _grid_points(index, rc_list, lgd_list):
        return np.column_stack([rc_list[index[:, 1]], lgd_list[index[:, 0]]])

    def _sample(self, result, params, rc_list, lgd_list):
        theta, phi = result.theta, result.phi
        lambda_, eta = result.lambda_, result.eta

        def sample_rows(rows):
            local_params = params.copy()
            with self.pool.lease() as ray_tracer:
                ray_tracer.calc_t_f = False
                try:
                    for i in rows:
                        for j in range(rc_list.size):
                            local_params.set_point(rc_list[j], lgd_list[i])
                            ray_tracer.calc_ray(local_params)
                            if ray_tracer.status is RayStatus.NORMAL:
                                theta[i, j] = ray_tracer.theta_f
                                phi[i, j] = ray_tracer.phi_f
                                lambda_[i, j] = ray_tracer.lambda_
                                eta[i, j] = ray_tracer.eta
                finally:
                    ray_tracer.calc_t_f = True

        blocks = _row_blocks(lgd_list.size, self.max_workers)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            list(executor.map(sample_rows, blocks))

    def _refine(self, params, theta_o, phi_o, phi, matched, rc_list,
                lgd_list, tol):
        prec = self.precision
        found = []
        lock = threading.Lock()

        def refine(rank):
            row, col = matched[rank]
            local_params = params.copy()
            local_params.set_point(rc_list[col], lgd_list[row])
            period = winding_number(phi[row, col], prec)
            outcome = find_root_period(self.pool, local_params, period,
                                       theta_o, phi_o, tol,
                                       self.solver_config)
            if outcome.success:
                root = self.polish(outcome.root)
                with lock:
                    found.append((rank, root))
            else:
                log.warning("find root failed, rc = %s, log_abs_d = %s, "
                            "reason: %s", rc_list[col], lgd_list[row],
                            outcome.fail_reason)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            list(executor.map(refine, range(len(matched))))

        found.sort(key=lambda item: item[0])
        return [root for _, root in found]
