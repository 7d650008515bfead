"""
DForest - Randomized Decision Forests for Per-Pixel Labelling

This package trains decision forests and decision vines on pixels sampled
from labelled images and runs them over whole images.

Core Components:
- Core.tree / Core.forest: depth-first and breadth-first trees and forests
- Core.vine: decision vines (DAGs) trained with LSearch
- Core.features, Core.feature_factories, Core.image_features: feature families
- Core.dataset: labelled images and pixel sampling
- Core.trainer: config-driven training, evaluation and model saving
- Core.inference: label maps, distributions, leaf images and histograms

High-Level Interfaces:
- pipeline: Main pipeline class for training and inference

Usage Examples:

1. Training a new model:
    from DForest import DecisionForestPipeline
    from DForest.Core import ImageDataset

    pipeline = DecisionForestPipeline("DForest/config_dforest.yaml")
    pipeline.prepare_data(ImageDataset([("image.png", "labels.png")]))
    pipeline.train()

2. Running inference:
    from DForest import run_decision_forest_classification

    labels = run_decision_forest_classification([("image1.png", None)], "model.pkl")
"""

from .pipeline import DecisionForestPipeline, create_decision_forest_pipeline, run_decision_forest_classification

from .Core.forest import DecisionForest
from .Core.vine import DecisionVine
from .Core.tree import DecisionTree
from .Core.dataset import ImageDataset, PixelDataset
from .Core.trainer import DecisionForestTrainer
from .Core.inference import DecisionForestInference

__version__ = "1.0.0"
__author__ = "Decision Forest Team"
__description__ = "Randomized decision forests and vines for per-pixel labelling"

__all__ = [
    # Main interfaces
    'DecisionForestPipeline',
    'create_decision_forest_pipeline',
    'run_decision_forest_classification',

    # Core components
    'DecisionForest',
    'DecisionVine',
    'DecisionTree',
    'ImageDataset',
    'PixelDataset',
    'DecisionForestTrainer',
    'DecisionForestInference'
]
