"""
Data points consumed by features and deciders.
"""

import numpy as np
from typing import Optional

from .image import Image


class DataPoint:
    """
    A labelled sample.

    `label` is an integer class id or -1 for unlabelled points. `feature_value`
    holds the most recent value a Decider computed for this point while
    partitioning; it is scratch state.
    """

    def __init__(self, label: int = -1, weight: float = 1.0):
        self.label = int(label)
        self.weight = float(weight)
        self.feature_value = 0.0

    @property
    def data(self) -> np.ndarray:
        raise NotImplementedError(f"{type(self).__name__} does not expose a data vector")

    @property
    def is_labelled(self) -> bool:
        return self.label >= 0


class ArrayDataPoint(DataPoint):
    """Data point backed by an explicit feature vector."""

    def __init__(self, data, label: int = -1, weight: float = 1.0):
        super().__init__(label, weight)
        self._data = np.asarray(data, dtype=np.float64).ravel()

    @property
    def data(self) -> np.ndarray:
        return self._data

    def __repr__(self):
        return f"ArrayDataPoint(label={self.label}, data={self._data})"


class ImageDataPoint(DataPoint):
    """
    Reference to one pixel of an image. The pixel's channel vector is only
    materialized when `data` is read.
    """

    def __init__(self, image: Image, row: int, column: int, label: int = -1, weight: float = 1.0):
        super().__init__(label, weight)
        self.image = image
        self.row = int(row)
        self.column = int(column)
        self._data: Optional[np.ndarray] = None

    @property
    def image_id(self) -> int:
        return self.image.id

    @property
    def data(self) -> np.ndarray:
        if self._data is None:
            self._data = self.image.pixel(self.row, self.column)
        return self._data

    def __repr__(self):
        return f"ImageDataPoint(image={self.image.id}, row={self.row}, column={self.column}, label={self.label})"
