"""
Decision Forest Inference Engine

This module provides whole-image inference for trained decision forests
and vines: label maps, per-pixel distributions, leaf images and image
histograms.
"""

import os
import time
from typing import Dict, List, Optional, Union

import joblib
import numpy as np

from Util.config import Config
from Util.ImageLoader import ImageLoader
from .data_point import ImageDataPoint
from .dataset import LabeledImage
from .forest import DecisionForest
from .histogram import TreeHistogram
from .image import Image
from .tree import make_executor, parallel_map
from .vine import DecisionVine


class DecisionForestInference:
    """
    Inference engine for per-pixel labelling.

    Args:
        model: Path to a saved model, or a trained DecisionForest / DecisionVine
        config_path: Optional path to configuration file
    """

    def __init__(self, model: Union[str, DecisionForest, DecisionVine], config_path: Optional[str] = None):
        self.config = Config.load(config_path) if config_path else {}
        if isinstance(model, str):
            if not os.path.exists(model):
                raise FileNotFoundError(f"Model file not found: {model}")
            self.model_path = model
            self.model = joblib.load(model)
        else:
            self.model_path = None
            self.model = model
        self.n_jobs = Config.section(self.config, 'training').get('n_jobs', 1)

        print(f"[DecisionForestInference] Initialized")
        print(f"  Model: {self.model_path or type(self.model).__name__}")
        print(f"  Labels: {self.label_count}")

    @property
    def label_count(self) -> int:
        return self.model.label_count

    def _require_forest(self) -> DecisionForest:
        if not isinstance(self.model, DecisionForest):
            raise ValueError("This operation needs a DecisionForest model")
        return self.model

    @staticmethod
    def image_points(image: Union[Image, np.ndarray], mask: Optional[np.ndarray] = None) -> List[ImageDataPoint]:
        """One data point per pixel in row-major order, skipping pixels where the mask is zero."""
        if not isinstance(image, Image):
            image = Image(image)
        if mask is None:
            return [ImageDataPoint(image, r, c) for r in range(image.rows) for c in range(image.columns)]
        return [ImageDataPoint(image, r, c) for r, c in np.argwhere(np.asarray(mask) != 0)]

    def _map_points(self, fn, points: List[ImageDataPoint]) -> List:
        executor = make_executor(self.n_jobs)
        try:
            return parallel_map(fn, points, executor)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

    def distribution_image(self, image: Union[Image, np.ndarray], mask: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Label distribution of every pixel.

        Returns:
            Array of shape (H, W, num_labels); masked-out pixels are all zero
        """
        if not isinstance(image, Image):
            image = Image(image)
        points = self.image_points(image, mask)
        result = np.zeros((image.rows, image.columns, self.label_count), dtype=np.float64)
        distributions = self._map_points(self.model.classify_soft, points)
        for point, distribution in zip(points, distributions):
            result[point.row, point.column] = distribution
        return result

    def classify_image(self, image: Union[Image, np.ndarray], mask: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Most likely label of every pixel.

        Returns:
            int32 label map of shape (H, W); masked-out pixels are -1
        """
        distributions = self.distribution_image(image, mask)
        labels = np.argmax(distributions, axis=2).astype(np.int32)
        if mask is not None:
            labels[np.asarray(mask) == 0] = -1
        return labels

    def leaf_image(self, image: Union[Image, np.ndarray]) -> np.ndarray:
        """
        Leaf number reached in every active tree.

        Returns:
            int64 array of shape (H, W, tree_count)
        """
        forest = self._require_forest()
        if not isinstance(image, Image):
            image = Image(image)
        points = self.image_points(image)
        codes = np.array(self._map_points(forest.get_leaf_indices, points), dtype=np.int64)
        return codes.reshape(image.rows, image.columns, forest.tree_count)

    def image_histogram(self, image: Union[Image, np.ndarray], mask: Optional[np.ndarray] = None,
                        name: Optional[str] = None) -> TreeHistogram:
        """Forest histogram of the image's pixels, normalized by the pixel count."""
        forest = self._require_forest()
        histogram = forest.compute_histogram(self.image_points(image, mask))
        histogram.id = name
        return histogram

    def fill_from_images(self, images: List[LabeledImage], clear: bool = True) -> None:
        """Re-estimate the forest's node distributions from the labelled pixels of `images`."""
        forest = self._require_forest()
        if clear:
            forest.clear()
        for labeled in images:
            forest.fill(labeled.labelled_points())
        forest.normalize()
        print(f"[DecisionForestInference] Forest refilled from {len(images)} images")

    def predict_image(self, image: np.ndarray, mask: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Predict the label map of a single image.

        Args:
            image: Input image of shape (H, W) or (H, W, C)
            mask: Optional mask to limit inference region

        Returns:
            Label map of shape (H, W)
        """
        print(f"[DecisionForestInference] Predicting image of shape: {image.shape}")
        start_time = time.time()
        labels = self.classify_image(image, mask)
        print(f"[DecisionForestInference] Inference completed in {time.time() - start_time:.2f} seconds")
        return labels

    def predict_batch(self, images: List[np.ndarray],
                      masks: Optional[List[Optional[np.ndarray]]] = None) -> List[np.ndarray]:
        print(f"[DecisionForestInference] Predicting batch of {len(images)} images")
        if masks is None:
            masks = [None] * len(images)

        predictions = []
        for i, (image, mask) in enumerate(zip(images, masks)):
            print(f"Processing image {i + 1}/{len(images)}")
            predictions.append(self.predict_image(image, mask))
        return predictions

    def predict_from_paths(self, image_paths: List[str],
                           mask_paths: Optional[List[Optional[str]]] = None) -> List[np.ndarray]:
        print(f"[DecisionForestInference] Loading and predicting {len(image_paths)} images")
        images = []
        masks = []
        for i, img_path in enumerate(image_paths):
            images.append(ImageLoader.load_image(img_path))
            if mask_paths and i < len(mask_paths) and mask_paths[i]:
                masks.append(ImageLoader.load_image(mask_paths[i], grayscale=True))
            else:
                masks.append(None)
        return self.predict_batch(images, masks)

    def save_predictions(self, prediction_maps: List[np.ndarray], output_dir: str,
                         image_names: Optional[List[str]] = None) -> None:
        """Write label maps as 8-bit images; unlabelled pixels are written as 0."""
        os.makedirs(output_dir, exist_ok=True)
        if image_names is None:
            image_names = [f"prediction_{i:04d}" for i in range(len(prediction_maps))]

        print(f"[DecisionForestInference] Saving {len(prediction_maps)} predictions to: {output_dir}")
        for labels, name in zip(prediction_maps, image_names):
            base_name = os.path.splitext(name)[0]
            ImageLoader.save_label_image(os.path.join(output_dir, f"{base_name}_labels.png"), labels)
        print(f"[DecisionForestInference] Predictions saved successfully")

    def get_model_info(self) -> Dict:
        if isinstance(self.model, DecisionForest):
            info = self.model.get_model_info()
        else:
            info = {'level_count': self.model.level_count, 'leaf_count': self.model.leaf_count}
        info['model_path'] = self.model_path
        return info
