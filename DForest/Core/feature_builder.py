"""
Feature Factory Builder

This module turns the `features:` section of a configuration file into a
feature factory. Every entry names a feature family and its parameters;
several entries are combined into a CombinationFeatureFactory.
"""

from typing import Dict, List, Optional

from .features import BinaryCombination, CombinationFeatureFactory, FeatureFactory, OutputModifier
from .feature_factories import (BinaryFeatureFactory, BinaryImageFeatureFactory, UnaryFeatureFactory,
                                UnaryImageFeatureFactory)
from .image_features import (FilterBankFeatureFactory, GaussianDerivativeFilterBank, HaarFeatureFactory,
                             PartFeatureFactory, RectangleFeatureFactory)

MODIFIERS = {
    'none': OutputModifier.NONE,
    'log': OutputModifier.LOG,
    'abs': OutputModifier.ABSOLUTE_VALUE,
    'absolute_value': OutputModifier.ABSOLUTE_VALUE,
    'all': OutputModifier.ALL,
}

DEFAULT_FEATURES = [
    {'family': 'unary_image', 'box_rows': 5, 'box_columns': 5},
    {'family': 'binary_image', 'box_rows': 10, 'box_columns': 10, 'combination': 'subtract'},
]


class FeatureFactoryBuilder:
    """
    Builds feature factories from configuration entries.

    Args:
        config: List of feature entries, each a dict with a `family` key
        num_channels: Channel count of the training images
        vector_length: Length of data vectors, required by the `unary`/`binary` families
    """

    def __init__(self, config: Optional[List[Dict]] = None, num_channels: int = 1,
                 vector_length: Optional[int] = None):
        self.config = list(config) if config else list(DEFAULT_FEATURES)
        self.num_channels = num_channels
        self.vector_length = vector_length
        print(f"[FeatureFactoryBuilder] Initialized with {len(self.config)} feature families")

    @staticmethod
    def _modifier(entry: Dict) -> OutputModifier:
        name = str(entry.get('modifier', 'none')).lower()
        if name not in MODIFIERS:
            raise ValueError(f"Unknown output modifier: {name}")
        return MODIFIERS[name]

    @staticmethod
    def _combination(entry: Dict) -> BinaryCombination:
        try:
            return BinaryCombination(str(entry.get('combination', 'subtract')).lower())
        except ValueError:
            raise ValueError(f"Unknown binary combination: {entry.get('combination')}") from None

    def _vector_length(self, family: str) -> int:
        if self.vector_length is None:
            raise ValueError(f"Feature family '{family}' needs vector_length")
        return self.vector_length

    def create_factory(self, entry: Dict) -> FeatureFactory:
        family = entry.get('family')
        if family == 'unary':
            return UnaryFeatureFactory(entry.get('length', self._vector_length(family)), self._modifier(entry),
                                       entry.get('choose_randomly', True))
        if family == 'binary':
            return BinaryFeatureFactory(entry.get('length', self._vector_length(family)),
                                        self._combination(entry), self._modifier(entry))
        if family == 'unary_image':
            return UnaryImageFeatureFactory(entry.get('box_rows', 5), entry.get('box_columns', 5),
                                            self.num_channels, self._modifier(entry))
        if family == 'binary_image':
            return BinaryImageFeatureFactory(entry.get('box_rows', 10), entry.get('box_columns', 10),
                                             self.num_channels, self._combination(entry),
                                             entry.get('mix_channels', False), self._modifier(entry))
        if family == 'rectangle':
            return RectangleFeatureFactory(entry.get('box_size', 10), self.num_channels,
                                           entry.get('max_rows', 5), entry.get('max_columns', 5))
        if family == 'haar':
            return HaarFeatureFactory(entry.get('square_size', 3), self.num_channels,
                                      entry.get('mix_channels', False))
        if family == 'filter_bank':
            bank = GaussianDerivativeFilterBank(entry.get('scales', (1.0, 2.0, 4.0)))
            return FilterBankFeatureFactory([bank], entry.get('box_size', 5))
        if family == 'part':
            return PartFeatureFactory(entry.get('box_size', 8), self.num_channels, entry.get('num_parts', 3))
        raise ValueError(f"Unknown feature family: {family}")

    def build(self) -> FeatureFactory:
        """Single factory for one entry, a CombinationFeatureFactory for several."""
        factories = [self.create_factory(entry) for entry in self.config]
        if len(factories) == 1:
            return factories[0]
        return CombinationFeatureFactory(*factories)

    def get_family_names(self) -> List[str]:
        return [entry.get('family') for entry in self.config]
