"""
Feature and FeatureFactory abstractions.

A feature turns a data point into one scalar. A factory draws randomly
parameterized features of a single family; factories combine through
CombinationFeatureFactory.
"""

import math
from abc import ABC, abstractmethod
from enum import Enum, IntFlag
from typing import Dict, List

from .data_point import DataPoint
from .distribution import DIRICHLET_PRIOR
from Util.ThreadsafeRandom import ThreadsafeRandom


class OutputModifier(IntFlag):
    """Transform applied to a feature's raw response."""
    NONE = 0
    LOG = 1
    ABSOLUTE_VALUE = 2
    ALL = LOG | ABSOLUTE_VALUE


class BinaryCombination(Enum):
    """How a binary feature merges its two readouts."""
    SUBTRACT = 'subtract'
    ADD = 'add'
    MULTIPLY = 'multiply'
    DIVIDE = 'divide'
    LOG = 'log'


def apply_modifier(value: float, modifier: OutputModifier) -> float:
    if modifier & OutputModifier.LOG:
        value = math.log(max(abs(value), DIRICHLET_PRIOR))
    if modifier & OutputModifier.ABSOLUTE_VALUE:
        value = abs(value)
    return value


def combine(value1: float, value2: float, combination: BinaryCombination) -> float:
    if combination is BinaryCombination.SUBTRACT:
        return value1 - value2
    if combination is BinaryCombination.ADD:
        return value1 + value2
    if combination is BinaryCombination.MULTIPLY:
        return value1 * value2
    if combination is BinaryCombination.DIVIDE:
        if value2 == 0:
            value2 = DIRICHLET_PRIOR
        return value1 / value2
    # first readout weighted by the log magnitude of the second
    return value1 * math.log(abs(value2) if value2 != 0 else DIRICHLET_PRIOR)


def decorate_name(name: str, modifier: OutputModifier) -> str:
    if modifier & OutputModifier.ABSOLUTE_VALUE:
        return f"|{name}|"
    if modifier & OutputModifier.LOG:
        return f"log({name})"
    return name


class Feature(ABC):
    """
    A fixed, randomly drawn test that maps a data point to a scalar.

    Features are immutable after construction and must never return NaN or
    an infinite value.
    """

    @abstractmethod
    def compute(self, point: DataPoint, building: bool = False) -> float:
        """
        Args:
            point: The data point to evaluate
            building: True while a tree is being trained. Image features use
                it to decide whether integral images are kept on the image
                or held in a per-thread cache.

        Returns:
            The feature response
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier of the concrete test, used in metadata and counts."""

    def generate_code(self, variable_name: str = 'point') -> str:
        raise NotImplementedError(f"Code generation is not supported for feature {self.name}")

    def metadata(self) -> Dict[str, object]:
        raise NotImplementedError(f"Metadata export is not supported for feature {self.name}")

    def __str__(self):
        return self.name

    def __repr__(self):
        return f"{type(self).__name__}({self.name})"


class FeatureFactory(ABC):
    """Draws new features of one family."""

    @abstractmethod
    def create(self) -> Feature:
        """Return a freshly parameterized feature."""

    @abstractmethod
    def is_product(self, feature: Feature) -> bool:
        """True when `feature` belongs to this factory's family."""


class CombinationFeatureFactory(FeatureFactory):
    """Delegates `create` to a uniformly chosen sub-factory."""

    def __init__(self, *factories: FeatureFactory):
        self.factories: List[FeatureFactory] = list(factories)

    def add_factory(self, factory: FeatureFactory) -> None:
        self.factories.append(factory)

    def remove_factory(self, factory: FeatureFactory) -> None:
        self.factories.remove(factory)

    def create(self) -> Feature:
        if not self.factories:
            raise ValueError("CombinationFeatureFactory has no sub-factories")
        index = ThreadsafeRandom.next_int(0, len(self.factories))
        return self.factories[index].create()

    def is_product(self, feature: Feature) -> bool:
        return any(factory.is_product(feature) for factory in self.factories)

    def __len__(self):
        return len(self.factories)
