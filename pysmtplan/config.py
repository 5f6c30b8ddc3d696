"""
Planner Configuration

Configuration dataclass shared by the encoder and the solver session.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


@dataclass
class PlannerConfig:
    """Configuration for one encoder/session pair."""
    # Encoding
    max_horizon: int = 100  # Largest bound encode() accepts
    sequential: bool = False  # At most one action start per layer

    # Solver
    timeout_ms: Optional[int] = None  # Per check; None means no limit
    tactic: Optional[str] = None  # e.g. "qfnra-nlsat"; None uses the default solver
    random_seed: Optional[int] = None

    def __post_init__(self):
        if self.max_horizon < 0:
            raise ValueError(f"max_horizon must be non-negative, got {self.max_horizon}")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlannerConfig":
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PlannerConfig":
        """Load a config from a YAML file. A ``planner`` section is used if present."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if "planner" in data:
            data = data["planner"] or {}
        return cls.from_dict(data)
