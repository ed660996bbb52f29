"""Outlier-robust rigid registration of point sets without known correspondences.

Every (source, destination) point pair allowed by the caller is a candidate
correspondence. Rigid motions preserve distances, so two true correspondences
(i, j) and (k, l) must satisfy

    | ||src_i - src_k|| - ||dest_j - dest_l|| | <= 2 * noise_bound

The candidates and this pairwise-consistency relation form a graph whose
maximum clique is the largest mutually consistent correspondence set. The
transform is then recovered in closed form (SVD) from the clique, and the
inliers are re-selected by their residual under that transform.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
from scipy.spatial.distance import cdist

from ..pose import SE3
from .config import RobustSolverParams

logger = logging.getLogger(__name__)

# Smallest singular value (relative) of the centered inlier set for the
# rotation to be observable
_MIN_SPREAD_RATIO = 1e-6

# Number of neighbor distances compared when pruning candidates
_SIGNATURE_SIZE = 8


@dataclass
class RobustRegistrationResult:
    """Result of robust registration.

    Attributes:
        valid: Whether a transform was accepted
        dest_T_src: Transform mapping source points onto destination points
        inliers: Index pairs (src_index, dest_index) of inlier correspondences
    """

    valid: bool
    dest_T_src: SE3 = field(default_factory=SE3.identity)
    inliers: list[tuple[int, int]] = field(default_factory=list)


def estimate_rigid_transform(src: np.ndarray, dest: np.ndarray) -> SE3:
    """Least-squares rigid transform aligning corresponding points.

    Args:
        src: (N, 3) source points
        dest: (N, 3) destination points, row-aligned with ``src``

    Returns:
        dest_T_src minimizing sum ||dest_i - (R @ src_i + t)||^2
    """
    src_mean = src.mean(axis=0)
    dest_mean = dest.mean(axis=0)
    H = (src - src_mean).T @ (dest - dest_mean)

    U, _, Vt = np.linalg.svd(H)
    # Correct a reflection into a proper rotation
    D = np.eye(3)
    D[2, 2] = np.sign(np.linalg.det(Vt.T @ U.T)) or 1.0
    R = Vt.T @ D @ U.T

    t = dest_mean - R @ src_mean
    return SE3(rotation=R, translation=t)


class RobustRegistrationSolver:
    """Correspondence-free rigid registration with a max-clique outlier filter."""

    def __init__(self, params: RobustSolverParams | None = None) -> None:
        """Initialize the solver.

        Args:
            params: Estimator parameters (defaults if None)
        """
        self.params = params or RobustSolverParams()

    def solve(
        self,
        src_points: np.ndarray,
        dest_points: np.ndarray,
        candidates: list[tuple[int, int]] | None = None,
    ) -> RobustRegistrationResult:
        """Register two point sets.

        Args:
            src_points: (N, 3) source points
            dest_points: (M, 3) destination points
            candidates: Allowed correspondences as (src_index, dest_index)
                pairs. All N*M pairs if None.

        Returns:
            RobustRegistrationResult
        """
        src_points = np.asarray(src_points, dtype=np.float64).reshape(-1, 3)
        dest_points = np.asarray(dest_points, dtype=np.float64).reshape(-1, 3)

        if candidates is None:
            src_idx, dest_idx = np.meshgrid(
                np.arange(len(src_points)), np.arange(len(dest_points)), indexing="ij"
            )
            src_idx = src_idx.ravel()
            dest_idx = dest_idx.ravel()
        else:
            pairs = np.asarray(candidates, dtype=np.int64).reshape(-1, 2)
            src_idx = pairs[:, 0]
            dest_idx = pairs[:, 1]

        num_candidates = len(src_idx)
        if num_candidates < self.params.min_inliers:
            logger.debug(f"Too few candidate correspondences: {num_candidates}")
            return RobustRegistrationResult(valid=False)

        if num_candidates > self.params.max_correspondences:
            keep = self._prune_candidates(src_points, dest_points, src_idx, dest_idx)
            logger.debug(
                f"Pruned {num_candidates} candidate correspondences to {len(keep)}"
            )
            src_idx = src_idx[keep]
            dest_idx = dest_idx[keep]
            num_candidates = len(src_idx)

        consistency = self._build_consistency_graph(
            src_points[src_idx], dest_points[dest_idx], src_idx, dest_idx
        )
        clique = self._find_max_clique(consistency)
        logger.debug(f"Max clique: {len(clique)} of {num_candidates} candidates")

        if len(clique) < self.params.min_inliers:
            return RobustRegistrationResult(valid=False)

        clique_src = src_points[src_idx[clique]]
        clique_dest = dest_points[dest_idx[clique]]
        if not self._is_well_conditioned(clique_src):
            logger.debug("Inlier set is degenerate (collinear)")
            return RobustRegistrationResult(valid=False)

        dest_T_src = estimate_rigid_transform(clique_src, clique_dest)

        # Re-select inliers among the clique by residual and refit
        residuals = np.linalg.norm(
            dest_T_src.transform_points(clique_src) - clique_dest, axis=1
        )
        keep = residuals <= self.params.noise_bound
        if np.count_nonzero(keep) < self.params.min_inliers:
            return RobustRegistrationResult(valid=False)

        clique = clique[keep]
        if not np.all(keep):
            clique_src = clique_src[keep]
            clique_dest = clique_dest[keep]
            if not self._is_well_conditioned(clique_src):
                return RobustRegistrationResult(valid=False)
            dest_T_src = estimate_rigid_transform(clique_src, clique_dest)

        if dest_T_src.rotation_angle() > self.params.max_rotation:
            logger.debug("Rotation outside of search bound")
            return RobustRegistrationResult(valid=False)

        if np.linalg.norm(dest_T_src.translation) > self.params.max_translation:
            logger.debug("Translation outside of search bound")
            return RobustRegistrationResult(valid=False)

        inliers = [(int(src_idx[c]), int(dest_idx[c])) for c in clique]
        return RobustRegistrationResult(valid=True, dest_T_src=dest_T_src, inliers=inliers)

    def _prune_candidates(
        self,
        src_points: np.ndarray,
        dest_points: np.ndarray,
        src_idx: np.ndarray,
        dest_idx: np.ndarray,
    ) -> np.ndarray:
        """Keep the best-matching destinations of every source point.

        Points are compared by their distance signature: the sorted distances
        to their nearest neighbors within their own set, which a rigid motion
        leaves unchanged. Each source keeps an equal share of the candidate
        budget.

        Returns:
            Sorted indices of the kept candidates
        """
        src_signatures = _distance_signatures(src_points)
        dest_signatures = _distance_signatures(dest_points)
        size = min(src_signatures.shape[1], dest_signatures.shape[1])
        scores = np.abs(
            src_signatures[src_idx, :size] - dest_signatures[dest_idx, :size]
        ).sum(axis=1)

        num_sources = len(np.unique(src_idx))
        per_source = max(1, self.params.max_correspondences // num_sources)

        order = np.lexsort((scores, src_idx))
        sorted_src = src_idx[order]
        rank = np.arange(len(order)) - np.searchsorted(sorted_src, sorted_src)
        return np.sort(order[rank < per_source])

    def _build_consistency_graph(
        self,
        src: np.ndarray,
        dest: np.ndarray,
        src_idx: np.ndarray,
        dest_idx: np.ndarray,
    ) -> np.ndarray:
        """Adjacency matrix of pairwise-consistent candidate correspondences."""
        src_dists = cdist(src, src)
        dest_dists = cdist(dest, dest)
        consistent = np.abs(src_dists - dest_dists) <= 2.0 * self.params.noise_bound

        # A point may take part in at most one correspondence
        consistent &= src_idx[:, None] != src_idx[None, :]
        consistent &= dest_idx[:, None] != dest_idx[None, :]
        return consistent

    def _find_max_clique(self, adjacency: np.ndarray) -> np.ndarray:
        """Greedy maximum clique search.

        Each seed grows a clique by repeatedly adding the remaining candidate
        with the most neighbors among the remaining candidates. Seeds are the
        highest-degree vertices; ties keep the first clique found.

        Returns:
            Sorted vertex indices of the largest clique found
        """
        degrees = adjacency.sum(axis=1)
        seeds = np.argsort(-degrees, kind="stable")[: self.params.max_clique_seeds]

        best: list[int] = []
        for seed in seeds:
            # A clique grown from this seed can't beat the best one
            if degrees[seed] + 1 <= len(best):
                break

            clique = [int(seed)]
            remaining = adjacency[seed].copy()
            while remaining.any():
                candidates = np.flatnonzero(remaining)
                local_degree = adjacency[np.ix_(candidates, candidates)].sum(axis=1)
                chosen = int(candidates[np.argmax(local_degree)])
                clique.append(chosen)
                remaining &= adjacency[chosen]

            if len(clique) > len(best):
                best = clique

        return np.array(sorted(best), dtype=np.int64)

    @staticmethod
    def _is_well_conditioned(points: np.ndarray) -> bool:
        """Whether the points span at least a line plus an off-line point."""
        if len(points) < 3:
            return False
        centered = points - points.mean(axis=0)
        singular_values = np.linalg.svd(centered, compute_uv=False)
        if singular_values[0] == 0.0:
            return False
        return bool(singular_values[1] / singular_values[0] > _MIN_SPREAD_RATIO)


def _distance_signatures(points: np.ndarray) -> np.ndarray:
    """Sorted distances from every point to its nearest neighbors."""
    size = min(_SIGNATURE_SIZE, len(points) - 1)
    if size <= 0:
        return np.zeros((len(points), 0))
    dists = np.sort(cdist(points, points), axis=1)
    # column 0 is the distance of every point to itself
    return dists[:, 1 : size + 1]
