import numpy as np
import pytest

from DForest.Core.data_point import ArrayDataPoint
from DForest.Core.feature_factories import UnaryFeatureFactory
from DForest.Core.training_config import TrainingConfig
from Util.ThreadsafeRandom import ThreadsafeRandom
from Util.UpdateManager import UpdateManager


@pytest.fixture(autouse=True)
def seeded_random():
    ThreadsafeRandom.initialize(1234)
    UpdateManager.console_output = False
    UpdateManager.reset_indent()
    yield
    UpdateManager.console_output = True


@pytest.fixture
def identity_factory():
    return UnaryFeatureFactory(1)


@pytest.fixture
def separable_points():
    """Two well separated 1-D clusters whose mean falls in the gap."""
    low = [ArrayDataPoint([v], 0) for v in np.linspace(0.0, 0.4, 20)]
    high = [ArrayDataPoint([v], 1) for v in np.linspace(0.6, 1.0, 20)]
    return low + high


@pytest.fixture
def banded_points():
    """Four labels in interleaved bands along one axis."""
    values = np.linspace(0.0, 1.0, 160, endpoint=False)
    return [ArrayDataPoint([v], int(v * 8) % 4) for v in values]


@pytest.fixture
def shallow_config():
    return TrainingConfig(minimum_depth=1, maximum_depth=2)
