"""
Decision Forest Pipeline for Per-Pixel Labelling

This module provides the main pipeline class that combines data sampling,
training and inference for decision forests and vines.
"""

import os
from typing import Dict, List, Optional, Tuple

import numpy as np

from .Core.dataset import ImageDataset, PixelDataset
from .Core.trainer import DecisionForestTrainer
from .Core.inference import DecisionForestInference
from Util.config import Config


class DecisionForestPipeline:
    """
    Main pipeline class for per-pixel labelling with decision forests.
    Provides a unified interface for training, evaluation, and inference.
    """
    def __init__(self, config_path: str = "DForest/config_dforest.yaml", local_path: Optional[str] = None):
        self.config_path = config_path
        self.config = Config.load(config_path, local_path)
        self.dataset = None  # Will be set by prepare_data
        self.trainer = DecisionForestTrainer(config_path, local_path)
        self.inference_engine = None
        print(f"[DecisionForestPipeline] Initialized with config: {config_path}")

    def load_dataset(self, image_tuples: List[Tuple[str, ...]], transform_fn=None) -> ImageDataset:
        """
        Load (image, label[, mask]) path tuples. Label values equal to
        `data.ignore_value` become unlabelled.
        """
        ignore_value = Config.section(self.config, 'data').get('ignore_value')
        print(f"[DecisionForestPipeline] Loading {len(image_tuples)} labelled images (ignore value: {ignore_value})")
        return ImageDataset(image_tuples, ignore_value, transform_fn)

    def prepare_data(self, image_dataset: ImageDataset, samples_per_image: Optional[int] = None,
                     num_splits: Optional[int] = None) -> PixelDataset:
        """
        Sample training pixels from an ImageDataset.
        """
        print(f"[DecisionForestPipeline] Preparing data...")
        data = Config.section(self.config, 'data')
        samples_per_image = samples_per_image or data.get('samples_per_image', 1000)
        num_splits = num_splits or data.get('num_splits', self.trainer.num_trees)

        self.dataset = PixelDataset(image_dataset, self.trainer.num_labels, samples_per_image, num_splits)
        print(f"[DecisionForestPipeline] Data preparation completed. Points: {len(self.dataset)}, "
              f"label counts: {self.dataset.label_counts().tolist()}")
        return self.dataset

    def initialize_model(self):
        print(f"[DecisionForestPipeline] Initializing model...")
        channels = 3
        if self.dataset is not None and len(self.dataset.image_dataset) > 0:
            channels = self.dataset.image_dataset[0].image.channels
        return self.trainer.initialize_model(channels)

    def train(self, save: bool = True):
        print(f"[DecisionForestPipeline] Starting training...")
        if self.dataset is None or len(self.dataset) == 0:
            raise ValueError("Must call prepare_data() first")
        if self.trainer.factory is None:
            self.initialize_model()

        train_metrics = self.trainer.train(self.dataset)
        if save:
            self.trainer.save_model()
        self.inference_engine = DecisionForestInference(self.trainer.model)
        self.inference_engine.n_jobs = self.trainer.training_config.n_jobs
        print(f"[DecisionForestPipeline] Training completed")
        return train_metrics

    def evaluate(self, image_dataset: Optional[ImageDataset] = None) -> Dict[str, float]:
        """
        Evaluate on the sampled training pixels, or on every labelled pixel
        of `image_dataset` when given.
        """
        print(f"[DecisionForestPipeline] Evaluating model...")
        if image_dataset is not None:
            points = [p for labeled in image_dataset.images for p in labeled.labelled_points()]
            return self.trainer.evaluate(points)
        if self.dataset is None:
            raise ValueError("Must call prepare_data() first")
        return self.trainer.evaluate(self.dataset)

    def load_weights(self, path: str):
        print(f"[DecisionForestPipeline] Loading model from: {path}")
        model = self.trainer.load_model(path)
        self.inference_engine = DecisionForestInference(model)
        return model

    def initialize_inference(self, model_path: Optional[str] = None):
        model_path = model_path or self.config.get('model_save_path', 'DForest/SavedModels/dforest_best.pkl')
        if not model_path or not os.path.exists(model_path):
            raise FileNotFoundError(f"Model file not found: {model_path}")
        self.inference_engine = DecisionForestInference(model_path, self.config_path)
        print(f"[DecisionForestPipeline] Inference engine initialized")

    def predict(self, image_mask_pairs: List[Tuple[str, Optional[str]]],
                output_dir: Optional[str] = None) -> List[np.ndarray]:
        if self.inference_engine is None:
            self.initialize_inference()
        print(f"[DecisionForestPipeline] Running inference on {len(image_mask_pairs)} images...")
        image_paths = [pair[0] for pair in image_mask_pairs]
        mask_paths = [pair[1] if len(pair) > 1 else None for pair in image_mask_pairs]

        predictions = self.inference_engine.predict_from_paths(image_paths, mask_paths)
        if output_dir:
            image_names = [os.path.basename(path) for path in image_paths]
            self.inference_engine.save_predictions(predictions, output_dir, image_names)
        return predictions

    def predict_single(self, image_path: str, mask_path: Optional[str] = None) -> np.ndarray:
        return self.predict([(image_path, mask_path)])[0]

    def get_model_info(self) -> Dict:
        if self.trainer.model is not None:
            return self.trainer.get_training_summary()
        elif self.inference_engine is not None:
            return self.inference_engine.get_model_info()
        else:
            return {"status": "not_initialized"}


# Factory function for easy instantiation
def create_decision_forest_pipeline(config_path: str = "DForest/config_dforest.yaml") -> DecisionForestPipeline:
    return DecisionForestPipeline(config_path)


# Convenience function for quick inference
def run_decision_forest_classification(image_mask_pairs: List[Tuple[str, Optional[str]]], model_path: str,
                                       config_path: str = "DForest/config_dforest.yaml") -> List[np.ndarray]:
    pipeline = DecisionForestPipeline(config_path)
    pipeline.initialize_inference(model_path)
    return pipeline.predict(image_mask_pairs)
