"""
Dataset Classes for Decision Forest Training

This module provides dataset classes for loading labelled images and
sampling per-pixel training points from them.
"""

import os
from typing import List, Optional, Sequence, Tuple, Any

import numpy as np

from .data_point import ImageDataPoint
from .image import Image
from Util.ImageLoader import ImageLoader
from Util.ThreadsafeRandom import ThreadsafeRandom


class LabeledImage:
    """
    An image with its per-pixel label map. Labels of -1 mark unlabelled
    pixels; a mask, when given, unlabels every pixel where it is zero.
    """

    def __init__(self, image: np.ndarray, labels: np.ndarray, mask: Optional[np.ndarray] = None, name: str = ""):
        self.image = Image(image)
        labels = np.asarray(labels, dtype=np.int32).copy()
        if labels.shape != (self.image.rows, self.image.columns):
            raise ValueError(f"Label map shape {labels.shape} does not match image shape "
                             f"{(self.image.rows, self.image.columns)}")
        if mask is not None:
            mask = np.asarray(mask)
            if mask.shape[:2] != labels.shape:
                raise ValueError(f"Mask shape {mask.shape[:2]} does not match label shape {labels.shape}")
            labels[mask == 0] = -1
        self.labels = labels
        self.name = name

    @property
    def rows(self) -> int:
        return self.image.rows

    @property
    def columns(self) -> int:
        return self.image.columns

    def label_positions(self, label: int) -> np.ndarray:
        """(row, column) pairs of every pixel carrying `label`, shape (n, 2)."""
        return np.argwhere(self.labels == label)

    def point(self, row: int, column: int, weight: float = 1.0) -> ImageDataPoint:
        return ImageDataPoint(self.image, row, column, int(self.labels[row, column]), weight)

    def labelled_points(self) -> List[ImageDataPoint]:
        return [self.point(r, c) for r, c in np.argwhere(self.labels >= 0)]


class ImageDataset:
    """
    Loads and serves labelled images.

    Args:
        image_tuples: (image_path, label_path) or (image_path, label_path, mask_path) entries
        ignore_value: Label-map value that marks unlabelled pixels
        transform_fn: Optional callable (image, labels) -> (image, labels) applied after loading
    """

    def __init__(self, image_tuples: Sequence[Tuple[str, ...]], ignore_value: Optional[int] = None,
                 transform_fn: Optional[Any] = None):
        self.image_tuples = list(image_tuples)
        self.ignore_value = ignore_value
        self.transform_fn = transform_fn
        self.images: List[LabeledImage] = []
        self._load_all()

    def _load_all(self):
        for entry in self.image_tuples:
            img_path, label_path = entry[0], entry[1]
            mask_path = entry[2] if len(entry) > 2 else None
            img = ImageLoader.load_image(img_path)
            labels = ImageLoader.load_label_image(label_path, self.ignore_value)
            mask = ImageLoader.load_image(mask_path, grayscale=True) if mask_path else None
            if self.transform_fn:
                img, labels = self.transform_fn(img, labels)
            self.images.append(LabeledImage(img, labels, mask, os.path.basename(img_path)))
        print(f"[ImageDataset] Loaded {len(self.images)} images")

    @classmethod
    def from_arrays(cls, images: Sequence[np.ndarray], labels: Sequence[np.ndarray],
                    masks: Optional[Sequence[np.ndarray]] = None) -> 'ImageDataset':
        """Dataset over in-memory arrays instead of files."""
        dataset = cls([])
        masks = masks if masks is not None else [None] * len(images)
        dataset.images = [LabeledImage(img, lbl, m, f"image_{i:04d}")
                          for i, (img, lbl, m) in enumerate(zip(images, labels, masks))]
        return dataset

    def __len__(self):
        return len(self.images)

    def __getitem__(self, idx) -> LabeledImage:
        return self.images[idx]


class PixelDataset:
    """
    Samples labelled pixels from an ImageDataset as ImageDataPoints.

    Each image contributes up to `samples_per_image` points, split evenly
    between the labels present in it. The points are dealt round-robin into
    `num_splits` training splits, one per tree.
    """

    def __init__(self, image_dataset: ImageDataset, num_labels: int, samples_per_image: int = 1000,
                 num_splits: int = 1):
        if num_labels < 1:
            raise ValueError("num_labels must be positive")
        if num_splits < 1:
            raise ValueError("num_splits must be at least 1")
        self.image_dataset = image_dataset
        self.num_labels = num_labels
        self.samples_per_image = samples_per_image
        self.num_splits = num_splits
        self.points: List[ImageDataPoint] = []
        self._sample_points()

    def _sample_points(self):
        print(f"[PixelDataset] Sampling pixels from {len(self.image_dataset)} images...")
        for img_idx in range(len(self.image_dataset)):
            labeled = self.image_dataset[img_idx]
            present = [l for l in range(self.num_labels) if np.any(labeled.labels == l)]
            if not present:
                print(f"  Image {img_idx}: no labelled pixels, skipped")
                continue
            quota = max(1, self.samples_per_image // len(present))
            selected = []
            for label in present:
                positions = labeled.label_positions(label)
                chosen = ThreadsafeRandom.select_random(positions, quota)
                selected.extend(labeled.point(r, c) for r, c in chosen)
            ThreadsafeRandom.shuffle(selected)
            self.points.extend(selected)
            print(f"  Image {img_idx}: selected {len(selected)} pixels over {len(present)} labels")
        print(f"[PixelDataset] Total points sampled: {len(self.points)}")

    def __len__(self):
        return len(self.points)

    @property
    def labels(self) -> np.ndarray:
        return np.array([p.label for p in self.points], dtype=np.int64)

    def get_splits(self) -> List[List[ImageDataPoint]]:
        splits: List[List[ImageDataPoint]] = [[] for _ in range(self.num_splits)]
        for i, point in enumerate(self.points):
            splits[i % self.num_splits].append(point)
        return splits

    def label_counts(self) -> np.ndarray:
        return np.bincount(self.labels, minlength=self.num_labels)
