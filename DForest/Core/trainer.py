"""
Decision Forest Trainer

This module provides training capabilities for decision forests and
decision vines on pixels sampled from labelled images.
"""

import os
import time
from typing import Dict, Optional, Sequence, Union

import joblib
import numpy as np
import yaml

from Util.config import Config
from Util.Evaluate import Evaluate
from Util.ThreadsafeRandom import ThreadsafeRandom
from .data_point import DataPoint
from .dataset import PixelDataset
from .feature_builder import FeatureFactoryBuilder
from .features import FeatureFactory
from .forest import DecisionForest
from .training_config import TrainingConfig
from .vine import DecisionVine

ALGORITHMS = ('depth_first', 'breadth_first', 'vine')


class DecisionForestTrainer:
    """
    Trainer class for decision forests and vines.
    """

    def __init__(self, config_path: str, local_path: Optional[str] = None):
        """
        Initialize the trainer.

        Args:
            config_path: Path to configuration file
            local_path: Optional override file merged over the configuration
        """
        self.config_path = config_path
        self.config = Config.load(config_path, local_path)

        training = Config.section(self.config, 'training')
        data = Config.section(self.config, 'data')
        self.training_config = TrainingConfig.from_dict(training).validate()
        self.algorithm = training.get('algorithm', 'depth_first')
        if self.algorithm not in ALGORITHMS:
            raise ValueError(f"Unknown training algorithm: {self.algorithm}")
        self.num_trees = training.get('num_trees', 10)
        self.num_features = training.get('num_features', 100)
        self.num_thresholds = training.get('num_thresholds', 10)
        self.breadth_first_threshold = training.get('breadth_first_threshold', 0.0)
        self.vine_config = training.get('vine') or {}
        self.label_names = list(data.get('label_names', ['background', 'foreground']))
        self.label_weights = data.get('label_weights')

        seed = training.get('seed')
        if seed is not None:
            ThreadsafeRandom.initialize(seed)

        # Initialize paths
        self.model_save_path = self.config.get('model_save_path', 'DForest/SavedModels/dforest_best.pkl')
        self.results_dir = self.config.get('results_dir', 'DForest/Results/')

        self.model: Optional[Union[DecisionForest, DecisionVine]] = None
        self.factory: Optional[FeatureFactory] = None
        self.training_time = 0

        print(f"[DecisionForestTrainer] Initialized")
        print(f"  Config: {os.path.basename(config_path)}")
        print(f"  Algorithm: {self.algorithm}")
        print(f"  Model save path: {self.model_save_path}")
        print(f"  Results directory: {self.results_dir}")

    @property
    def num_labels(self) -> int:
        return len(self.label_names)

    def initialize_model(self, num_channels: int = 3, vector_length: Optional[int] = None) -> FeatureFactory:
        """Build the feature factory the trees draw candidate features from."""
        builder = FeatureFactoryBuilder(self.config.get('features'), num_channels, vector_length)
        self.factory = builder.build()
        print(f"[DecisionForestTrainer] Feature factory initialized: {builder.get_family_names()}")
        return self.factory

    def train(self, dataset: Union[PixelDataset, Sequence[Sequence[DataPoint]]]) -> Dict[str, float]:
        """
        Train a forest or a vine.

        Args:
            dataset: A PixelDataset, or explicit training splits

        Returns:
            Training metrics
        """
        splits = dataset.get_splits() if isinstance(dataset, PixelDataset) else [list(s) for s in dataset]
        if self.factory is None:
            first = splits[0][0] if splits and splits[0] else None
            channels = first.image.channels if first is not None and hasattr(first, 'image') else 3
            self.initialize_model(channels)

        print(f"[DecisionForestTrainer] Starting training...")
        start_time = time.time()

        if self.algorithm == 'vine':
            points = [p for split in splits for p in split]
            self.model = DecisionVine.construct_using_lsearch(
                points, self.factory, self.num_features, self.num_thresholds,
                self.vine_config.get('max_children', 64), self.vine_config.get('max_iterations', 100),
                self.num_labels, self.training_config)
        elif self.algorithm == 'breadth_first':
            self.model = DecisionForest.compute_breadth_first(
                self.num_trees, splits, self.factory, self.num_features, self.num_thresholds,
                self.label_names, self.label_weights, self.breadth_first_threshold, self.training_config)
        else:
            self.model = DecisionForest.compute_depth_first(
                self.num_trees, splits, self.factory, self.num_features, self.num_thresholds,
                self.label_names, self.label_weights, self.training_config)

        self.training_time = time.time() - start_time
        print(f"[DecisionForestTrainer] Training completed in {self.training_time:.2f} seconds")

        train_metrics = self.evaluate([p for split in splits for p in split])
        print(f"[DecisionForestTrainer] Training metrics: {train_metrics}")
        self.save_training_summary(train_metrics)
        return train_metrics

    def evaluate(self, dataset: Union[PixelDataset, Sequence[DataPoint]]) -> Dict[str, float]:
        """
        Evaluate the model on labelled points.

        Returns:
            Accuracy and average recall
        """
        if self.model is None:
            raise ValueError("Model not trained. Call train() first.")
        points = dataset.points if isinstance(dataset, PixelDataset) else list(dataset)
        y_true = np.array([p.label for p in points], dtype=np.int64)
        y_pred = np.array([self.model.classify(p) for p in points], dtype=np.int64)
        return Evaluate.summary(y_true, y_pred, self.num_labels)

    def save_model(self, save_path: Optional[str] = None):
        if self.model is None:
            raise ValueError("No model to save. Train the model first.")

        save_path = save_path or self.model_save_path
        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        joblib.dump(self.model, save_path)
        print(f"[DecisionForestTrainer] Model saved to: {save_path}")

    def load_model(self, load_path: Optional[str] = None):
        load_path = load_path or self.model_save_path
        if not os.path.exists(load_path):
            raise FileNotFoundError(f"Model file not found: {load_path}")
        self.model = joblib.load(load_path)
        print(f"[DecisionForestTrainer] Model loaded from: {load_path}")
        return self.model

    def save_training_summary(self, metrics: Optional[Dict[str, float]] = None) -> str:
        """Write the training summary, test usage counts and metrics to `results_dir` as YAML."""
        os.makedirs(self.results_dir, exist_ok=True)
        summary = self.get_training_summary()
        if metrics is not None:
            summary['metrics'] = {name: float(value) for name, value in metrics.items()}
        summary_path = os.path.join(self.results_dir, 'training_summary.yaml')
        with open(summary_path, 'w') as f:
            yaml.safe_dump(summary, f, sort_keys=False)
        print(f"[DecisionForestTrainer] Training summary saved to: {summary_path}")
        return summary_path

    def get_training_summary(self) -> Dict:
        summary = {
            'algorithm': self.algorithm,
            'training_time': self.training_time,
            'num_features': self.num_features,
            'num_thresholds': self.num_thresholds,
            'training_config': self.training_config.to_dict(),
            'config_path': self.config_path,
        }
        if isinstance(self.model, DecisionForest):
            summary.update(self.model.get_model_info())
        elif isinstance(self.model, DecisionVine):
            summary.update({'level_count': self.model.level_count, 'leaf_count': self.model.leaf_count})
        return summary
