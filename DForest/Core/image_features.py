"""
Region-based image feature families: rectangle sums, Haar-like layouts,
filter-bank responses and weighted multi-tap parts.
"""

import threading
from collections import OrderedDict
from functools import lru_cache
from typing import List, Protocol, Sequence, Tuple

import numpy as np
from scipy.ndimage import gaussian_filter

from .data_point import ImageDataPoint
from .features import Feature, FeatureFactory
from .image import Image, IntegralImage, Rectangle
from Util.ThreadsafeRandom import ThreadsafeRandom

_integral_cache = threading.local()


def integral_for(point: ImageDataPoint, building: bool) -> IntegralImage:
    """
    Integral image for the point's image.

    During training the integral image is kept on the image, since the same
    images are revisited for every node. Otherwise each thread holds only the
    integral image of the last image it saw.
    """
    image = point.image
    if image.is_integral:
        return image
    if building:
        return image.integral()
    if getattr(_integral_cache, 'image_id', None) != image.id:
        _integral_cache.integral = image.compute_integral()
        _integral_cache.image_id = image.id
    return _integral_cache.integral


def _random_offset(box: int) -> int:
    return ThreadsafeRandom.next_int(-box, box + 1)


class RectangleFeature(Feature):
    """Sum of one channel over a box placed relative to the pixel."""

    def __init__(self, rect: Rectangle, channel: int):
        self.rect = rect
        self.channel = channel

    def compute(self, point: ImageDataPoint, building: bool = False) -> float:
        integral = integral_for(point, building)
        return integral.compute_rectangle_sum(point.row, point.column, self.channel, self.rect)

    @property
    def name(self) -> str:
        return "Rectangle"


class RectangleFeatureFactory(FeatureFactory):
    """
    Args:
        box_size: Maximum absolute offset of the box's top-left corner
        num_channels: Number of image channels
        max_rows: Box heights are drawn from [1, max_rows)
        max_columns: Box widths are drawn from [1, max_columns)
    """

    def __init__(self, box_size: int, num_channels: int, max_rows: int, max_columns: int):
        self.box_size = box_size
        self.num_channels = num_channels
        self.max_rows = max(2, max_rows)
        self.max_columns = max(2, max_columns)

    def create(self) -> Feature:
        rect = Rectangle(_random_offset(self.box_size), _random_offset(self.box_size),
                         ThreadsafeRandom.next_int(1, self.max_rows),
                         ThreadsafeRandom.next_int(1, self.max_columns))
        return RectangleFeature(rect, ThreadsafeRandom.next_int(0, self.num_channels))

    def is_product(self, feature: Feature) -> bool:
        return isinstance(feature, RectangleFeature)


@lru_cache(maxsize=None)
def haar_layouts(square_size: int) -> Tuple[Tuple[Rectangle, ...], ...]:
    """
    Every 2-rectangle, 3-rectangle and 4-rectangle Haar layout fitting in a
    square of side `square_size`, with coordinates centred on the middle cell.
    """
    n = square_size
    layouts: List[List[Tuple[int, int, int, int]]] = []
    for width in range(1, n // 2 + 1):
        for i in range(n - 2 * width + 1):
            for height in range(1, n + 1):
                for j in range(n - height + 1):
                    layouts.append([(j, i, height, width), (j, i + width, height, width)])
    for height in range(1, n // 2 + 1):
        for j in range(n - 2 * height + 1):
            for width in range(1, n + 1):
                for i in range(n - width + 1):
                    layouts.append([(j, i, height, width), (j + height, i, height, width)])
    for width in range(1, n // 3 + 1):
        for i in range(n - 3 * width + 1):
            for height in range(1, n + 1):
                for j in range(n - height + 1):
                    layouts.append([(j, i + k * width, height, width) for k in range(3)])
    for height in range(1, n // 3 + 1):
        for j in range(n - 3 * height + 1):
            for width in range(1, n + 1):
                for i in range(n - width + 1):
                    layouts.append([(j + k * height, i, height, width) for k in range(3)])
    for width in range(1, n // 2 + 1):
        for i in range(n - 2 * width + 1):
            for height in range(1, n // 2 + 1):
                for j in range(n - 2 * height + 1):
                    layouts.append([(j, i, height, width), (j, i + width, height, width),
                                    (j + height, i + width, height, width), (j + height, i, height, width)])
    mid = n // 2
    return tuple(tuple(Rectangle(r - mid, c - mid, rows, columns) for r, c, rows, columns in layout)
                 for layout in layouts)


class HaarFeature(Feature):
    """Alternating-sign sum of rectangle sums: + first, - second, + third..."""

    def __init__(self, rectangles: Sequence[Rectangle], channels: Sequence[int]):
        if len(rectangles) != len(channels):
            raise ValueError("Each Haar rectangle needs a channel")
        self.rectangles = tuple(rectangles)
        self.channels = tuple(channels)

    def compute(self, point: ImageDataPoint, building: bool = False) -> float:
        integral = integral_for(point, building)
        total = 0.0
        for i, (rect, channel) in enumerate(zip(self.rectangles, self.channels)):
            value = integral.compute_rectangle_sum(point.row, point.column, channel, rect)
            total += value if i % 2 == 0 else -value
        return total

    @property
    def name(self) -> str:
        return f"{len(self.rectangles)} Haar"


class HaarFeatureFactory(FeatureFactory):
    """
    Haar-like features inside a (2*square_size+1) window.

    Args:
        square_size: Half-width of the window
        num_channels: Number of image channels
        mix_channels: Draw a channel per rectangle instead of one for all
    """

    def __init__(self, square_size: int, num_channels: int, mix_channels: bool = False):
        self.square_size = square_size
        self.num_channels = num_channels
        self.mix_channels = mix_channels
        self.layouts = haar_layouts(2 * square_size + 1)
        if not self.layouts:
            raise ValueError("square_size too small for any Haar layout")

    def create(self) -> Feature:
        rectangles = self.layouts[ThreadsafeRandom.next_int(0, len(self.layouts))]
        if self.mix_channels:
            channels = [ThreadsafeRandom.next_int(0, self.num_channels) for _ in rectangles]
        else:
            channels = [ThreadsafeRandom.next_int(0, self.num_channels)] * len(rectangles)
        return HaarFeature(rectangles, channels)

    def is_product(self, feature: Feature) -> bool:
        return isinstance(feature, HaarFeature)


class FilterBank(Protocol):
    """Anything producing a per-pixel descriptor vector of fixed length."""

    descriptor_length: int

    def compute(self, image: Image, row: int, column: int) -> np.ndarray:
        ...


class GaussianDerivativeFilterBank:
    """
    Gaussian smoothing, first and second derivatives of the channel-averaged
    image at each scale. Responses are computed once per image and the most
    recent `cache_size` images are kept.
    """

    ORDERS = ((0, 0), (0, 1), (1, 0), (0, 2), (2, 0), (1, 1))

    def __init__(self, scales: Sequence[float] = (1.0, 2.0, 4.0), cache_size: int = 4):
        self.scales = tuple(float(s) for s in scales)
        self.descriptor_length = len(self.scales) * len(self.ORDERS)
        self.cache_size = cache_size
        self._responses: 'OrderedDict[int, np.ndarray]' = OrderedDict()
        self._lock = threading.Lock()

    def __getstate__(self):
        return {'scales': self.scales, 'cache_size': self.cache_size}

    def __setstate__(self, state):
        self.__init__(state['scales'], state['cache_size'])

    def responses(self, image: Image) -> np.ndarray:
        with self._lock:
            cached = self._responses.get(image.id)
            if cached is not None:
                self._responses.move_to_end(image.id)
                return cached
        gray = image.data.mean(axis=2)
        stack = np.stack([gaussian_filter(gray, sigma, order=order)
                          for sigma in self.scales for order in self.ORDERS], axis=2)
        with self._lock:
            self._responses[image.id] = stack
            while len(self._responses) > self.cache_size:
                self._responses.popitem(last=False)
        return stack

    def compute(self, image: Image, row: int, column: int) -> np.ndarray:
        return self.responses(image)[row, column]

    def __str__(self):
        return "GaussianDerivatives(" + ",".join(f"{s:g}" for s in self.scales) + ")"


class FilterBankFeature(Feature):
    """One descriptor entry of a filter bank, read at an offset from the pixel."""

    def __init__(self, bank: FilterBank, row: int, column: int, index: int):
        self.bank = bank
        self.row = row
        self.column = column
        self.index = index

    def compute(self, point: ImageDataPoint, building: bool = False) -> float:
        image = point.image
        row, column = image.clamp(point.row + self.row, point.column + self.column)
        return float(self.bank.compute(image, row, column)[self.index])

    @property
    def name(self) -> str:
        return f"{self.bank}:{self.index} at ({self.row},{self.column})"


class FilterBankFeatureFactory(FeatureFactory):
    def __init__(self, banks: Sequence[FilterBank], box_size: int):
        if not banks:
            raise ValueError("At least one filter bank is required")
        self.banks = list(banks)
        self.box_size = box_size

    def create(self) -> Feature:
        bank = self.banks[ThreadsafeRandom.next_int(0, len(self.banks))]
        return FilterBankFeature(bank, _random_offset(self.box_size), _random_offset(self.box_size),
                                 ThreadsafeRandom.next_int(0, bank.descriptor_length))

    def is_product(self, feature: Feature) -> bool:
        return isinstance(feature, FilterBankFeature)


class PartFeature(Feature):
    """
    Weighted sum of pixel taps. Taps falling outside the image contribute 0.
    """

    def __init__(self, parts: Sequence[Tuple[int, int, int, float]]):
        self.parts = tuple((int(r), int(c), int(k), float(w)) for r, c, k, w in parts)

    def compute(self, point: ImageDataPoint, building: bool = False) -> float:
        image = point.image
        total = 0.0
        for row, column, channel, weight in self.parts:
            r = point.row + row
            c = point.column + column
            if image.contains(r, c):
                total += image[r, c, channel] * weight
        return total

    @property
    def name(self) -> str:
        return ",".join(f"({r},{c},{k}):{w:.4f}" for r, c, k, w in self.parts)


class PartFeatureFactory(FeatureFactory):
    def __init__(self, box_size: int, num_channels: int, num_parts: int):
        self.box_size = box_size
        self.num_channels = num_channels
        self.num_parts = num_parts

    def create(self) -> Feature:
        parts = [(_random_offset(self.box_size), _random_offset(self.box_size),
                  ThreadsafeRandom.next_int(0, self.num_channels),
                  1.0 - ThreadsafeRandom.next_float(0.0, 2.0))
                 for _ in range(self.num_parts)]
        return PartFeature(parts)

    def is_product(self, feature: Feature) -> bool:
        return isinstance(feature, PartFeature)
