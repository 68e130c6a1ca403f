"""
Configuration Service - Monitor configuration management.

This module provides the ConfigurationService class that handles
loading, validating and saving monitor configuration from a JSON file
and environment variables.
"""

import json
import os
import logging
from typing import Dict, Any, Callable, Tuple

from shared_utils.validation import validate_monitor_configuration
from .exceptions import ConfigurationError
from .models import (
    MonitorConfiguration, ObjectRepeatPolicy, SignalKind,
    DEFAULT_CONFIRM_DELAYS_MS, DEFAULT_COOLDOWNS_MS
)


ENV_PREFIX = "PROCTOR_"

# Sections whose keys are merged individually instead of replaced wholesale
NESTED_SECTIONS = ('confirm_delay_ms', 'cooldown_ms', 'landmark_indices')


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class ConfigurationService:
    """
    Service for managing monitor configuration.

    Values are layered: built-in defaults, then the JSON file, then
    ``PROCTOR_*`` environment variables.
    """

    def __init__(self, config_file: str = "config/monitor_config.json"):
        """
        Initialize configuration service.

        Args:
            config_file: Path to the configuration file
        """
        self.config_file = config_file
        self.logger = logging.getLogger(__name__)

    def load_configuration(self) -> MonitorConfiguration:
        """
        Load monitor configuration from defaults, file and environment.

        Returns:
            Validated MonitorConfiguration

        Raises:
            ConfigurationError: If the file is unreadable or a value is invalid
        """
        config_data = self._get_default_config()

        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r') as f:
                    file_config = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigurationError(f"Cannot read {self.config_file}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"{self.config_file} must contain a JSON object")
            self._merge(config_data, file_config)
            self.logger.info(f"Loaded configuration from {self.config_file}")
        else:
            self.logger.info(f"Config file {self.config_file} not found, using defaults")
            self._create_default_config_file()

        config_data = self._apply_environment_overrides(config_data)

        is_valid, errors = validate_monitor_configuration(config_data)
        if not is_valid:
            raise ConfigurationError(f"Invalid configuration: {', '.join(errors)}")

        return self._dict_to_configuration(config_data)

    def save_configuration(self, config: MonitorConfiguration) -> bool:
        """Save monitor configuration to file."""
        try:
            self._write(config.to_dict())
            self.logger.info(f"Configuration saved to {self.config_file}")
            return True
        except OSError as e:
            self.logger.error(f"Error saving configuration: {e}")
            return False

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration dictionary."""
        return MonitorConfiguration().to_dict()

    def _create_default_config_file(self) -> None:
        """Create default configuration file."""
        try:
            self._write(self._get_default_config())
            self.logger.info(f"Created default configuration file: {self.config_file}")
        except OSError as e:
            self.logger.warning(f"Could not create default configuration file: {e}")

    def _write(self, config_data: Dict[str, Any]) -> None:
        config_dir = os.path.dirname(self.config_file)
        if config_dir and not os.path.exists(config_dir):
            os.makedirs(config_dir)

        with open(self.config_file, 'w') as f:
            json.dump(config_data, f, indent=4)

    @staticmethod
    def _merge(config_data: Dict[str, Any], overrides: Dict[str, Any]) -> None:
        for key, value in overrides.items():
            if key in NESTED_SECTIONS and isinstance(value, dict) and isinstance(config_data.get(key), dict):
                config_data[key].update(value)
            else:
                config_data[key] = value

    def _environment_mappings(self) -> Dict[str, Tuple[Tuple[str, ...], Callable[[str], Any]]]:
        env_mappings = {
            "PROCTOR_SESSION_DURATION_MS": (("session_duration_ms",), int),
            "PROCTOR_TICK_INTERVAL_MS": (("tick_interval_ms",), int),
            "PROCTOR_OBJECT_CONFIDENCE": (("object_confidence_threshold",), float),
            "PROCTOR_OBJECT_PRESENCE_TIMEOUT_MS": (("object_presence_timeout_ms",), int),
            "PROCTOR_OBJECT_REPEAT_POLICY": (("object_repeat_policy",), lambda x: x.strip().lower()),
            "PROCTOR_REPEAT_WHILE_PRESENT": (("repeat_while_present",), _parse_bool),
        }
        for kind in SignalKind:
            suffix = kind.value.upper()
            if kind.is_delayed:
                env_mappings[f"{ENV_PREFIX}CONFIRM_DELAY_{suffix}"] = (("confirm_delay_ms", kind.value), int)
            else:
                env_mappings[f"{ENV_PREFIX}COOLDOWN_{suffix}"] = (("cooldown_ms", kind.value), int)
        return env_mappings

    def _apply_environment_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        for env_var, (path, converter) in self._environment_mappings().items():
            env_value = os.getenv(env_var)
            if env_value is None:
                continue
            try:
                value = converter(env_value)
            except (ValueError, TypeError) as e:
                self.logger.warning(f"Invalid environment variable {env_var}={env_value}: {e}")
                continue

            if len(path) == 2:
                section, key = path
                config_data.setdefault(section, {})[key] = value
            else:
                config_data[path[0]] = value
            self.logger.info(f"Applied environment override: {'.'.join(path)} = {value}")

        return config_data

    def _dict_to_configuration(self, config_data: Dict[str, Any]) -> MonitorConfiguration:
        """Convert configuration dictionary to MonitorConfiguration instance."""
        confirm_delays = dict(DEFAULT_CONFIRM_DELAYS_MS)
        confirm_delays.update(
            self._kind_mapping(config_data.get('confirm_delay_ms', {}), delayed=True)
        )
        cooldowns = dict(DEFAULT_COOLDOWNS_MS)
        cooldowns.update(
            self._kind_mapping(config_data.get('cooldown_ms', {}), delayed=False)
        )

        indices = config_data.get('landmark_indices', {})
        defaults = MonitorConfiguration()

        return MonitorConfiguration(
            session_duration_ms=int(config_data.get('session_duration_ms', defaults.session_duration_ms)),
            tick_interval_ms=int(config_data.get('tick_interval_ms', defaults.tick_interval_ms)),
            confirm_delay_ms=confirm_delays,
            cooldown_ms=cooldowns,
            object_confidence_threshold=float(
                config_data.get('object_confidence_threshold', defaults.object_confidence_threshold)
            ),
            object_presence_timeout_ms=int(
                config_data.get('object_presence_timeout_ms', defaults.object_presence_timeout_ms)
            ),
            prohibited_labels=tuple(
                label.strip().lower()
                for label in config_data.get('prohibited_labels', defaults.prohibited_labels)
            ),
            gaze_band=tuple(float(edge) for edge in config_data.get('gaze_band', defaults.gaze_band)),
            drowsiness_eye_threshold=float(
                config_data.get('drowsiness_eye_threshold', defaults.drowsiness_eye_threshold)
            ),
            nose_tip_index=int(indices.get('nose_tip', defaults.nose_tip_index)),
            left_eye_index=int(indices.get('left_eye', defaults.left_eye_index)),
            right_eye_index=int(indices.get('right_eye', defaults.right_eye_index)),
            repeat_while_present=config_data.get('repeat_while_present', defaults.repeat_while_present),
            object_repeat_policy=ObjectRepeatPolicy(
                config_data.get('object_repeat_policy', ObjectRepeatPolicy.COOLDOWN.value)
            ),
        )

    def _kind_mapping(self, values: Dict[str, Any], delayed: bool) -> Dict[SignalKind, int]:
        mapping = {}
        for name, value in values.items():
            try:
                kind = SignalKind(name)
            except ValueError:
                raise ConfigurationError(f"Unknown signal kind: {name}")
            if kind.is_delayed != delayed:
                section = 'confirm_delay_ms' if delayed else 'cooldown_ms'
                raise ConfigurationError(f"{name} does not belong in {section}")
            mapping[kind] = int(value)
        return mapping
