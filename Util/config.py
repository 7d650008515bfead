import os
import yaml


class Config:
    @staticmethod
    def load(root_path="DForest/config_dforest.yaml", local_path=None):
        """
        Load a YAML config file. If local_path is provided and exists, merge it over the root config.
        Nested sections are merged key by key; local values win.
        """
        if not os.path.exists(root_path):
            raise FileNotFoundError(f"Config file not found: {root_path}")
        with open(root_path, "r") as f:
            config = yaml.safe_load(f) or {}
        if local_path and os.path.exists(local_path):
            with open(local_path, "r") as f:
                local_config = yaml.safe_load(f) or {}
            Config.merge(config, local_config)
        return config

    @staticmethod
    def merge(base, override):
        """Recursively update `base` with `override` and return `base`."""
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                Config.merge(base[key], value)
            else:
                base[key] = value
        return base

    @staticmethod
    def section(config, name):
        """Return a config section as a dict, empty when missing or null."""
        return (config or {}).get(name) or {}
