"""
Pixel and vector readout feature families.

Vector features index into `point.data`. Image features read pixels at an
offset from the point's pixel, clamping the offset position to the image.
"""

import threading
from typing import Dict

from .data_point import DataPoint, ImageDataPoint
from .features import (Feature, FeatureFactory, OutputModifier, BinaryCombination,
                       apply_modifier, combine, decorate_name)
from Util.ThreadsafeRandom import ThreadsafeRandom


def _random_offset(box: int) -> int:
    return ThreadsafeRandom.next_int(-box, box + 1)


class UnaryFeature(Feature):
    """Reads one entry of the data vector."""

    def __init__(self, index: int, modifier: OutputModifier = OutputModifier.NONE):
        self.index = index
        self.modifier = OutputModifier(modifier)

    def compute(self, point: DataPoint, building: bool = False) -> float:
        return apply_modifier(float(point.data[self.index]), self.modifier)

    @property
    def name(self) -> str:
        return decorate_name("A", self.modifier)

    def generate_code(self, variable_name: str = 'point') -> str:
        if self.modifier != OutputModifier.NONE:
            return super().generate_code(variable_name)
        return f"{variable_name} = x[{self.index}]"

    def metadata(self) -> Dict[str, object]:
        return {'family': 'unary', 'index': self.index, 'modifier': int(self.modifier)}


class UnaryFeatureFactory(FeatureFactory):
    """
    Unary vector features.

    Args:
        length: Length of the data vectors
        modifier: Output transform for created features
        choose_randomly: Draw the index at random; otherwise cycle through indices
    """

    def __init__(self, length: int, modifier: OutputModifier = OutputModifier.NONE, choose_randomly: bool = True):
        if length < 1:
            raise ValueError("length must be positive")
        self.length = length
        self.modifier = modifier
        self.choose_randomly = choose_randomly
        self._current_index = 0
        self._lock = threading.Lock()

    def __getstate__(self):
        state = self.__dict__.copy()
        del state['_lock']
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._lock = threading.Lock()

    def create(self) -> Feature:
        if self.choose_randomly:
            index = ThreadsafeRandom.next_int(0, self.length)
        else:
            with self._lock:
                index = self._current_index
                self._current_index = (self._current_index + 1) % self.length
        return UnaryFeature(index, self.modifier)

    def is_product(self, feature: Feature) -> bool:
        return isinstance(feature, UnaryFeature)


class BinaryFeature(Feature):
    """Combines two entries of the data vector."""

    def __init__(self, index1: int, index2: int, combination: BinaryCombination,
                 modifier: OutputModifier = OutputModifier.NONE):
        self.index1 = index1
        self.index2 = index2
        self.combination = combination
        self.absolute_value = bool(modifier & OutputModifier.ABSOLUTE_VALUE)

    def compute(self, point: DataPoint, building: bool = False) -> float:
        data = point.data
        value = combine(float(data[self.index1]), float(data[self.index2]), self.combination)
        return abs(value) if self.absolute_value else value

    @property
    def name(self) -> str:
        name = self.combination.name.capitalize()
        return f"|{name}|" if self.absolute_value else name

    def generate_code(self, variable_name: str = 'point') -> str:
        operators = {BinaryCombination.SUBTRACT: '-', BinaryCombination.ADD: '+', BinaryCombination.MULTIPLY: '*'}
        if self.combination not in operators:
            return super().generate_code(variable_name)
        code = f"{variable_name} = x[{self.index1}] {operators[self.combination]} x[{self.index2}]"
        if self.absolute_value:
            code += f"; {variable_name} = abs({variable_name})"
        return code

    def metadata(self) -> Dict[str, object]:
        return {'family': 'binary', 'index1': self.index1, 'index2': self.index2,
                'combination': self.combination.value, 'absolute_value': self.absolute_value}


class BinaryFeatureFactory(FeatureFactory):
    """Binary vector features over two distinct indices."""

    def __init__(self, length: int, combination: BinaryCombination = BinaryCombination.SUBTRACT,
                 modifier: OutputModifier = OutputModifier.NONE):
        if length < 2:
            raise ValueError("Binary features need vectors of length 2 or more")
        self.length = length
        self.combination = combination
        self.modifier = modifier

    def create(self) -> Feature:
        index1 = ThreadsafeRandom.next_int(0, self.length)
        index2 = ThreadsafeRandom.next_int(0, self.length - 1)
        if index2 >= index1:
            index2 += 1
        return BinaryFeature(index1, index2, self.combination, self.modifier)

    def is_product(self, feature: Feature) -> bool:
        return isinstance(feature, BinaryFeature)


class UnaryImageFeature(Feature):
    """Reads one channel at an offset from the point's pixel."""

    def __init__(self, row: int, column: int, channel: int, modifier: OutputModifier = OutputModifier.NONE):
        self.row = row
        self.column = column
        self.channel = channel
        self.modifier = OutputModifier(modifier)

    def compute(self, point: ImageDataPoint, building: bool = False) -> float:
        image = point.image
        row, column = image.clamp(point.row + self.row, point.column + self.column)
        return apply_modifier(image[row, column, self.channel], self.modifier)

    @property
    def name(self) -> str:
        return decorate_name("Unary", self.modifier)

    def metadata(self) -> Dict[str, object]:
        return {'family': 'unary_image', 'row': self.row, 'column': self.column,
                'channel': self.channel, 'modifier': int(self.modifier)}


class UnaryImageFeatureFactory(FeatureFactory):
    """
    Single-pixel readouts within a (2*box_rows+1) x (2*box_columns+1) window.
    """

    def __init__(self, box_rows: int, box_columns: int, num_channels: int,
                 modifier: OutputModifier = OutputModifier.NONE):
        self.box_rows = box_rows
        self.box_columns = box_columns
        self.num_channels = num_channels
        self.modifier = modifier

    def create(self) -> Feature:
        return UnaryImageFeature(_random_offset(self.box_rows), _random_offset(self.box_columns),
                                 ThreadsafeRandom.next_int(0, self.num_channels), self.modifier)

    def is_product(self, feature: Feature) -> bool:
        return isinstance(feature, UnaryImageFeature)


class BinaryImageFeature(Feature):
    """Combines two pixel readouts at offsets from the point's pixel."""

    def __init__(self, row1: int, column1: int, channel1: int,
                 row2: int, column2: int, channel2: int,
                 combination: BinaryCombination, modifier: OutputModifier = OutputModifier.NONE):
        self.row1, self.column1, self.channel1 = row1, column1, channel1
        self.row2, self.column2, self.channel2 = row2, column2, channel2
        self.combination = combination
        self.absolute_value = bool(modifier & OutputModifier.ABSOLUTE_VALUE)

    def compute(self, point: ImageDataPoint, building: bool = False) -> float:
        image = point.image
        r1, c1 = image.clamp(point.row + self.row1, point.column + self.column1)
        r2, c2 = image.clamp(point.row + self.row2, point.column + self.column2)
        value = combine(image[r1, c1, self.channel1], image[r2, c2, self.channel2], self.combination)
        return abs(value) if self.absolute_value else value

    @property
    def name(self) -> str:
        name = f"Pixel{self.combination.name.capitalize()}"
        return f"|{name}|" if self.absolute_value else name

    def metadata(self) -> Dict[str, object]:
        return {'family': 'binary_image', 'combination': self.combination.value,
                'cell1': (self.row1, self.column1, self.channel1),
                'cell2': (self.row2, self.column2, self.channel2),
                'absolute_value': self.absolute_value}


class BinaryImageFeatureFactory(FeatureFactory):
    """
    Pairs of pixel readouts within a window around the point.

    Args:
        box_rows: Maximum absolute row offset
        box_columns: Maximum absolute column offset
        num_channels: Number of image channels
        combination: How the two readouts are combined
        mix_channels: Allow the two readouts to use different channels
        modifier: Output transform for created features
    """

    def __init__(self, box_rows: int, box_columns: int, num_channels: int,
                 combination: BinaryCombination = BinaryCombination.SUBTRACT,
                 mix_channels: bool = False, modifier: OutputModifier = OutputModifier.NONE):
        self.box_rows = box_rows
        self.box_columns = box_columns
        self.num_channels = num_channels
        self.combination = combination
        self.mix_channels = mix_channels
        self.modifier = modifier

    def create(self) -> Feature:
        row1, column1 = _random_offset(self.box_rows), _random_offset(self.box_columns)
        row2, column2 = _random_offset(self.box_rows), _random_offset(self.box_columns)
        channel1 = ThreadsafeRandom.next_int(0, self.num_channels)
        channel2 = ThreadsafeRandom.next_int(0, self.num_channels) if self.mix_channels else channel1
        return BinaryImageFeature(row1, column1, channel1, row2, column2, channel2,
                                  self.combination, self.modifier)

    def is_product(self, feature: Feature) -> bool:
        return isinstance(feature, BinaryImageFeature)
