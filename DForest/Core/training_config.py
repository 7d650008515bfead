"""
Training knobs shared by every construction strategy.
"""

from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError


@dataclass
class TrainingConfig:
    """
    Settings threaded through tree, forest and vine construction.

    Attributes:
        minimum_support: Nodes with fewer points than this become leaves
        minimum_depth: Breadth-first growth accepts any split above this depth
        maximum_depth: Maximum number of node levels in a tree (root counts as one)
        number_of_tries: Breadth-first retry budget for empty rounds
        n_jobs: Worker threads for per-node feature trials (1 = run inline)
    """
    minimum_support: int = 0
    minimum_depth: int = 3
    maximum_depth: int = 10
    number_of_tries: int = 5
    n_jobs: int = 1

    def validate(self) -> 'TrainingConfig':
        if self.maximum_depth < 1:
            raise ConfigurationError(f"maximum_depth must be at least 1, got {self.maximum_depth}")
        if self.minimum_depth > self.maximum_depth:
            raise ConfigurationError(
                f"minimum_depth ({self.minimum_depth}) cannot exceed maximum_depth ({self.maximum_depth})")
        if self.number_of_tries < 1:
            raise ConfigurationError(f"number_of_tries must be at least 1, got {self.number_of_tries}")
        if self.minimum_support < 0:
            raise ConfigurationError(f"minimum_support cannot be negative, got {self.minimum_support}")
        if self.n_jobs < 1:
            raise ConfigurationError(f"n_jobs must be at least 1, got {self.n_jobs}")
        return self

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]]) -> 'TrainingConfig':
        """Build a config from a `training:` YAML section, ignoring unrelated keys."""
        values = values or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: values[k] for k in known if k in values})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def resolve_config(config: Optional[TrainingConfig]) -> TrainingConfig:
    return (config or TrainingConfig()).validate()
