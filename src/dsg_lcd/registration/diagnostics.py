"""Per-attempt registration records for offline debugging.

Each registration attempt may be written to ``<path_prefix><index>.yaml``,
where ``index`` comes from a ``RegistrationCounter``. Records are flat
key/value text meant for an operator, not for re-parsing.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import yaml

from ..scene_graph import DynamicSceneGraph, NodeId, display_node_symbols
from .pose_composition import get_agent_pose
from .types import DsgRegistrationInput, LayerRegistrationSolution

logger = logging.getLogger(__name__)

RECORD_EXTENSION = ".yaml"


class RegistrationCounter:
    """Monotonically increasing record index, safe to share between threads."""

    def __init__(self, start: int = 0) -> None:
        self._next = start
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return the current index and advance the counter."""
        with self._lock:
            index = self._next
            self._next += 1
            return index

    @property
    def value(self) -> int:
        """Index the next call to ``next`` will return."""
        with self._lock:
            return self._next


class RegistrationLogger:
    """Writes one record per registration attempt."""

    def __init__(
        self, path_prefix: str | Path, counter: RegistrationCounter | None = None
    ) -> None:
        """Initialize the logger.

        Args:
            path_prefix: Prefix of every record path (directory + file stem)
            counter: Record counter, possibly shared with other loggers
        """
        self.path_prefix = str(path_prefix)
        self.counter = counter or RegistrationCounter()

    def log(
        self,
        graph: DynamicSceneGraph,
        solution: LayerRegistrationSolution,
        match: DsgRegistrationInput,
        query_agent_id: NodeId,
    ) -> Path | None:
        """Write a record of a registration attempt.

        The counter advances even if the record can't be written.

        Args:
            graph: Scene graph
            solution: Local (pre-composition) layer solution
            match: Registration input
            query_agent_id: Query keyframe id

        Returns:
            Path of the written record, or None if writing failed
        """
        index = self.counter.next()
        path = Path(f"{self.path_prefix}{index}{RECORD_EXTENSION}")

        match_pose_info = get_agent_pose(graph, match.match_root)
        record = {
            "query_id": int(query_agent_id),
            "query_set": display_node_symbols(match.query_nodes),
            "match_set": display_node_symbols(match.match_nodes),
            "match_id": int(match_pose_info.id),
            "world_q_match": match_pose_info.world_T_body.to_quaternion().tolist(),
            "world_t_match": match_pose_info.world_T_body.translation.tolist(),
            "match_valid": match_pose_info.valid,
            "solution_valid": solution.valid,
            "dest_q_src": solution.dest_T_src.to_quaternion().tolist(),
            "dest_t_src": solution.dest_T_src.translation.tolist(),
            "num_inliers": len(solution.inliers),
        }

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                yaml.safe_dump(record, f, sort_keys=False, default_flow_style=None)
        except OSError as e:
            logger.warning(f"Failed to write registration record {path}: {e}")
            return None

        return path
