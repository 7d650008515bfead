import os

import pytest
import yaml

from DForest.Core.exceptions import ConfigurationError
from DForest.Core.training_config import TrainingConfig, resolve_config
from Util.config import Config


def test_defaults_are_valid():
    config = resolve_config(None)
    assert config.maximum_depth == 10
    assert config.minimum_depth == 3
    assert config.n_jobs == 1


def test_from_dict_ignores_unrelated_keys():
    config = TrainingConfig.from_dict({'maximum_depth': 4, 'minimum_depth': 2, 'algorithm': 'vine'})
    assert config.to_dict() == {'minimum_support': 0, 'minimum_depth': 2, 'maximum_depth': 4,
                                'number_of_tries': 5, 'n_jobs': 1}


def test_minimum_depth_above_maximum_is_rejected():
    with pytest.raises(ConfigurationError):
        TrainingConfig(minimum_depth=4, maximum_depth=2).validate()


def test_configuration_error_is_a_value_error():
    assert issubclass(ConfigurationError, ValueError)


def test_load_merges_local_overrides(tmp_path):
    root = tmp_path / "root.yaml"
    local = tmp_path / "local.yaml"
    root.write_text(yaml.safe_dump({'training': {'num_trees': 10, 'maximum_depth': 8}, 'results_dir': 'r'}))
    local.write_text(yaml.safe_dump({'training': {'num_trees': 2}}))

    config = Config.load(str(root), str(local))

    assert config['training'] == {'num_trees': 2, 'maximum_depth': 8}
    assert config['results_dir'] == 'r'
    assert Config.section(config, 'missing') == {}


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config.load(str(tmp_path / "nope.yaml"))


def test_packaged_default_config_is_valid():
    config = Config.load(os.path.join(os.path.dirname(__file__), "..", "DForest", "config_dforest.yaml"))
    TrainingConfig.from_dict(config['training']).validate()
    assert config['training']['algorithm'] in ('depth_first', 'breadth_first', 'vine')
