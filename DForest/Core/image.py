"""
Multichannel image container used by the image feature families.

Images are read-only to features. Box sums are answered from an integral
image computed with scikit-image the first time one is requested.
"""

import itertools
import threading
from dataclasses import dataclass

import numpy as np
from skimage.transform import integral_image


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned box given by its top-left corner and size, in pixels."""
    row: int
    column: int
    rows: int
    columns: int

    def offset(self, row: int, column: int) -> 'Rectangle':
        return Rectangle(self.row + row, self.column + column, self.rows, self.columns)

    @property
    def area(self) -> int:
        return self.rows * self.columns


class IntegralImage:
    """
    Zero-padded summed-area table: entry (r, c, k) is the sum of channel k
    over all pixels above and to the left of (r, c), exclusive.
    """

    is_integral = True

    def __init__(self, sums: np.ndarray, source_id: int):
        self.sums = sums
        self.id = source_id

    @classmethod
    def from_array(cls, data: np.ndarray, source_id: int = 0) -> 'IntegralImage':
        channels = [integral_image(data[:, :, c]) for c in range(data.shape[2])]
        sums = np.stack(channels, axis=2).astype(np.float64)
        sums = np.pad(sums, ((1, 0), (1, 0), (0, 0)))
        return cls(sums, source_id)

    @property
    def rows(self) -> int:
        return self.sums.shape[0] - 1

    @property
    def columns(self) -> int:
        return self.sums.shape[1] - 1

    @property
    def channels(self) -> int:
        return self.sums.shape[2]

    def compute_rectangle_sum(self, row: int, column: int, channel: int, rect: Rectangle) -> float:
        """Sum of `channel` over `rect` placed relative to (row, column), clipped to the image."""
        r0 = min(max(row + rect.row, 0), self.rows)
        c0 = min(max(column + rect.column, 0), self.columns)
        r1 = min(max(row + rect.row + rect.rows, 0), self.rows)
        c1 = min(max(column + rect.column + rect.columns, 0), self.columns)
        s = self.sums
        return float(s[r1, c1, channel] - s[r0, c1, channel] - s[r1, c0, channel] + s[r0, c0, channel])


class Image:
    """
    Float image of shape (rows, columns, channels). Two-dimensional input is
    treated as a single channel.
    """

    is_integral = False
    _ids = itertools.count(1)

    def __init__(self, data):
        data = np.asarray(data, dtype=np.float64)
        if data.ndim == 2:
            data = data[:, :, np.newaxis]
        if data.ndim != 3:
            raise ValueError(f"Expected a 2D or 3D array, got shape {data.shape}")
        self.data = data
        self.id = next(Image._ids)
        self._integral = None
        self._lock = threading.Lock()

    def __getstate__(self):
        state = self.__dict__.copy()
        state.pop('_lock', None)
        state['_integral'] = None
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._lock = threading.Lock()

    @property
    def rows(self) -> int:
        return self.data.shape[0]

    @property
    def columns(self) -> int:
        return self.data.shape[1]

    @property
    def channels(self) -> int:
        return self.data.shape[2]

    def __getitem__(self, index) -> float:
        row, column, channel = index
        return float(self.data[row, column, channel])

    def pixel(self, row: int, column: int) -> np.ndarray:
        return self.data[row, column, :]

    def contains(self, row: int, column: int) -> bool:
        return 0 <= row < self.rows and 0 <= column < self.columns

    def clamp(self, row: int, column: int):
        return min(max(row, 0), self.rows - 1), min(max(column, 0), self.columns - 1)

    def integral(self) -> IntegralImage:
        """Integral image of this image, computed once and kept."""
        with self._lock:
            if self._integral is None:
                self._integral = IntegralImage.from_array(self.data, self.id)
            return self._integral

    def compute_integral(self) -> IntegralImage:
        """Integral image computed fresh, without storing it on the image."""
        return IntegralImage.from_array(self.data, self.id)

    def compute_rectangle_sum(self, row: int, column: int, channel: int, rect: Rectangle) -> float:
        return self.integral().compute_rectangle_sum(row, column, channel, rect)
