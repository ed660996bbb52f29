"""Configuration for loop-closure registration.

Configs are plain dataclasses with defaults and can be loaded from a YAML
file shaped like::

    registration_output_path: /tmp/lcd_logs
    enable_agent_registration: true
    solver:
      noise_bound: 0.1
      max_rotation: 3.14159
      max_translation: 50.0
    layers:
      places:
        use_pairwise_registration: true
        log_registration_problem: false
      objects:
        use_pairwise_registration: false

Missing values fall back to their defaults.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from ..scene_graph import DsgLayers, LayerId

logger = logging.getLogger(__name__)


@dataclass
class RobustSolverParams:
    """Parameters of the correspondence-free robust estimator.

    Attributes:
        noise_bound: Maximum expected position error of a true correspondence (m)
        max_rotation: Largest rotation angle accepted in a solution (rad)
        max_translation: Largest translation norm accepted in a solution (m)
        min_inliers: Minimum number of inlier correspondences
        max_clique_seeds: Number of highest-degree candidates used to seed
            the clique search
        max_correspondences: Candidate correspondence budget. Larger
            candidate sets are pruned to the best-matching destinations of
            every source point.
    """

    noise_bound: float = 0.1
    max_rotation: float = math.pi
    max_translation: float = math.inf
    min_inliers: int = 3
    max_clique_seeds: int = 50
    max_correspondences: int = 2000


@dataclass
class LayerRegistrationConfig:
    """Per-layer registration settings.

    Attributes:
        use_pairwise_registration: Consider all node pairs as candidate
            correspondences; otherwise only pairs with equal semantic labels
        log_registration_problem: Write a diagnostic record per attempt
        registration_output_path: Directory diagnostic records are written to
    """

    use_pairwise_registration: bool = True
    log_registration_problem: bool = False
    registration_output_path: str = ""


@dataclass
class LcdRegistrationConfig:
    """Registration settings for all layers.

    Attributes:
        solver: Robust estimator parameters shared by the layer solvers
        layers: Layer registration settings keyed by layer id
        enable_agent_registration: Register agent keyframes through the
            external frame registration service
    """

    solver: RobustSolverParams = field(default_factory=RobustSolverParams)
    layers: dict[LayerId, LayerRegistrationConfig] = field(
        default_factory=lambda: {DsgLayers.PLACES: LayerRegistrationConfig()}
    )
    enable_agent_registration: bool = False


def _read_dataclass(cls: type, data: dict[str, Any], context: str) -> Any:
    """Build a dataclass from a dict, defaulting (and logging) missing fields."""
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping for '{context}', got {type(data).__name__}")

    values = {}
    defaults = cls()
    for f in fields(cls):
        if f.name in data:
            default = getattr(defaults, f.name)
            values[f.name] = type(default)(data[f.name])
        else:
            logger.info(
                f"missing value for {context}.{f.name}. "
                f"defaulting to: {getattr(defaults, f.name)}"
            )

    unknown = set(data) - {f.name for f in fields(cls)}
    for key in sorted(unknown):
        logger.warning(f"Ignoring unknown config key {context}.{key}")

    return cls(**values)


def config_from_dict(data: dict[str, Any]) -> LcdRegistrationConfig:
    """Build a registration config from parsed YAML.

    Args:
        data: Parsed config mapping

    Returns:
        LcdRegistrationConfig

    Raises:
        ValueError: If a section has the wrong type
        KeyError: If a layer name is unknown
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping, got {type(data).__name__}")

    solver = _read_dataclass(RobustSolverParams, data.get("solver", {}), "solver")

    output_path = str(data.get("registration_output_path", ""))
    layers: dict[LayerId, LayerRegistrationConfig] = {}
    layer_data = data.get("layers")
    if layer_data is None:
        logger.info("missing value for layers. defaulting to: places")
        layer_data = {"places": {}}
    if not isinstance(layer_data, dict):
        raise ValueError("Expected a mapping for 'layers'")

    for name, values in layer_data.items():
        values = dict(values or {})
        values.setdefault("registration_output_path", output_path)
        layer_id = DsgLayers.string_to_layer_id(name)
        layers[layer_id] = _read_dataclass(
            LayerRegistrationConfig, values, f"layers.{name}"
        )

    return LcdRegistrationConfig(
        solver=solver,
        layers=layers,
        enable_agent_registration=bool(data.get("enable_agent_registration", False)),
    )


def load_registration_config(path: str | Path) -> LcdRegistrationConfig:
    """Load a registration config from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file contents are malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Registration config not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    return config_from_dict(data)
