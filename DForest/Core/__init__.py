"""
DForest Core - randomized decision forests for per-pixel labelling

Core Components:
- features, feature_factories, image_features: feature families and their factories
- decider / label_counter: randomized threshold search
- tree, forest, vine: construction strategies and classification
- histogram: sparse tree histograms
- dataset, trainer, inference: labelled images, config-driven training, whole-image inference
"""

from .data_point import DataPoint, ArrayDataPoint, ImageDataPoint
from .image import Image, IntegralImage, Rectangle
from .features import Feature, FeatureFactory, CombinationFeatureFactory, OutputModifier, BinaryCombination
from .decider import Decider, Decision
from .tree import DecisionTree, DecisionTreeNode, NodeType
from .forest import DecisionForest
from .vine import DecisionVine
from .histogram import TreeHistogram, TreeNode
from .training_config import TrainingConfig
from .exceptions import DForestError, ConfigurationError, TrainingInvariantError, InvalidFeatureValueError
from .dataset import LabeledImage, ImageDataset, PixelDataset
from .trainer import DecisionForestTrainer
from .inference import DecisionForestInference

__version__ = "1.0.0"
__author__ = "Decision Forest Team"
__description__ = "Randomized decision forests and vines for per-pixel labelling"

__all__ = [
    'DataPoint',
    'ArrayDataPoint',
    'ImageDataPoint',
    'Image',
    'IntegralImage',
    'Rectangle',
    'Feature',
    'FeatureFactory',
    'CombinationFeatureFactory',
    'OutputModifier',
    'BinaryCombination',
    'Decider',
    'Decision',
    'DecisionTree',
    'DecisionTreeNode',
    'NodeType',
    'DecisionForest',
    'DecisionVine',
    'TreeHistogram',
    'TreeNode',
    'TrainingConfig',
    'DForestError',
    'ConfigurationError',
    'TrainingInvariantError',
    'InvalidFeatureValueError',
    'LabeledImage',
    'ImageDataset',
    'PixelDataset',
    'DecisionForestTrainer',
    'DecisionForestInference'
]
