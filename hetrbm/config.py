# Copyright 2025 HetRBM Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Configuration management for HetRBM.

Experiment configurations are YAML (or JSON) files with ``model``,
``training``, ``data`` and ``output`` sections. They are validated with a
JSON schema and turned into an initialized model by build_model.

Usage:
    from hetrbm.config import ConfigManager, build_model

    config = ConfigManager.load('configs/base.yaml',
                                overrides={'training.gd_learning_rate': 0.05})
    model = build_model(config)
"""

import yaml
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union
import copy
import os
from datetime import datetime
from jsonschema import validate, ValidationError

from .models.layout import VisibleUnitType
from .models.rbm import RestrictedBoltzmannMachine
from .training.loop import MonitoringMethod

logger = logging.getLogger(__name__)


class ConfigManager:
    """Loading, validation and merging of experiment configurations."""

    CONFIG_SCHEMA = {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "description": {"type": "string"},
            "model": {
                "type": "object",
                "properties": {
                    "num_hidden": {"type": "integer", "minimum": 1},
                    "visible_groups": {
                        "type": "array",
                        "minItems": 1,
                        "items": {
                            "type": "object",
                            "properties": {
                                "size": {"type": "integer", "minimum": 1},
                                "type": {"type": "string", "enum": [t.value for t in VisibleUnitType]}
                            },
                            "required": ["size", "type"]
                        }
                    },
                    "init_sigma": {"type": "number", "exclusiveMinimum": 0},
                    "random_seed": {"type": ["integer", "null"]}
                },
                "required": ["num_hidden", "visible_groups"]
            },
            "training": {
                "type": "object",
                "properties": {
                    "cd_num_steps": {"type": "integer", "minimum": 1},
                    "cd_persistent": {"type": "boolean"},
                    "cd_sample_visible": {"type": "boolean"},
                    "l1_coefficient": {"type": "number", "minimum": 0},
                    "l2_coefficient": {"type": "number", "minimum": 0},
                    "monitoring_method": {"type": "string", "enum": [m.value for m in MonitoringMethod]},
                    "monitoring_interval": {"type": "integer", "minimum": 1},
                    "gd_mini_batch_size": {"type": "integer", "minimum": 0},
                    "max_num_epochs": {"type": "integer", "minimum": 0},
                    "gd_learning_rate": {"type": "number", "minimum": 0},
                    "gd_learning_rate_decay": {"type": "number", "exclusiveMinimum": 0},
                    "gd_momentum": {"type": "number", "minimum": 0}
                },
                "additionalProperties": False
            },
            "data": {"type": "object"},
            "output": {"type": "object"}
        },
        "required": ["model"]
    }

    @classmethod
    def load(
        cls,
        config_path: Union[str, Path],
        overrides: Optional[Dict[str, Any]] = None,
        validate_config: bool = True
    ) -> Dict[str, Any]:
        """
        Load configuration with optional overrides.

        Args:
            config_path: Path to configuration file
            overrides: Dictionary of dot-notation parameter overrides
            validate_config: Whether to validate the configuration

        Returns:
            Loaded and processed configuration dictionary
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                config = yaml.safe_load(f)
            elif config_path.suffix.lower() == '.json':
                config = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {config_path.suffix}")

        logger.info(f"Loaded configuration from {config_path}")

        if overrides:
            config = cls._apply_overrides(config, overrides)
            logger.info(f"Applied {len(overrides)} parameter overrides")

        config = cls._substitute_env_vars(config)

        if validate_config:
            cls.validate(config)

        config['_metadata'] = {
            'loaded_from': str(config_path),
            'loaded_at': datetime.now().isoformat(),
            'overrides_applied': overrides is not None
        }

        return config

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration against schema.

        Raises:
            ValidationError: If configuration is invalid
        """
        try:
            validate(instance=config, schema=cls.CONFIG_SCHEMA)
            logger.debug("Configuration validation passed")
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e.message}")
            raise

    @classmethod
    def save(
        cls,
        config: Dict[str, Any],
        output_path: Union[str, Path],
        format: str = 'yaml',
        include_metadata: bool = True
    ) -> None:
        """
        Save configuration to file.

        Args:
            config: Configuration dictionary to save
            output_path: Output file path
            format: Output format ('yaml' or 'json')
            include_metadata: Whether to include metadata in output
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        save_config = copy.deepcopy(config)

        if not include_metadata and '_metadata' in save_config:
            del save_config['_metadata']

        with open(output_path, 'w') as f:
            if format.lower() == 'yaml':
                yaml.dump(save_config, f, default_flow_style=False, indent=2)
            elif format.lower() == 'json':
                json.dump(save_config, f, indent=2)
            else:
                raise ValueError(f"Unsupported format: {format}")

        logger.info(f"Saved configuration to {output_path}")

    @classmethod
    def merge(cls, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge configurations, later ones winning."""
        if not configs:
            return {}

        result = copy.deepcopy(configs[0])

        for config in configs[1:]:
            result = cls._deep_merge(result, config)

        return result

    @staticmethod
    def _apply_overrides(config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Apply parameter overrides using dot notation."""
        result = copy.deepcopy(config)

        for key, value in overrides.items():
            ConfigManager._set_nested_value(result, key, value)

        return result

    @staticmethod
    def _substitute_env_vars(config: Dict[str, Any]) -> Dict[str, Any]:
        """Substitute ``${VAR}`` / ``${VAR:default}`` string values."""
        def substitute_recursive(obj):
            if isinstance(obj, dict):
                return {k: substitute_recursive(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [substitute_recursive(item) for item in obj]
            elif isinstance(obj, str) and obj.startswith('${') and obj.endswith('}'):
                env_var = obj[2:-1]
                default_value = None
                if ':' in env_var:
                    env_var, default_value = env_var.split(':', 1)
                return os.getenv(env_var, default_value)
            else:
                return obj

        return substitute_recursive(config)

    @staticmethod
    def _deep_merge(dict1: Dict[str, Any], dict2: Dict[str, Any]) -> Dict[str, Any]:
        result = copy.deepcopy(dict1)

        for key, value in dict2.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)

        return result

    @staticmethod
    def _set_nested_value(config: Dict[str, Any], key_path: str, value: Any) -> None:
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value


def build_model(config: Dict[str, Any]) -> RestrictedBoltzmannMachine:
    """
    Create and initialize an RBM from a validated configuration.

    Args:
        config: Configuration with ``model`` and optional ``training`` sections

    Returns:
        Model with its parameter vector drawn and hyperparameters set
    """
    model_config = config['model']

    model = RestrictedBoltzmannMachine(
        num_hidden=model_config['num_hidden'],
        random_seed=model_config.get('random_seed')
    )
    for group in model_config['visible_groups']:
        model.add_visible_group(group['size'], group['type'])

    model.set_hyperparameters(**config.get('training', {}))
    model.initialize_neural_network(model_config.get('init_sigma', 0.01))

    logger.info(f"Built {model}")
    return model
