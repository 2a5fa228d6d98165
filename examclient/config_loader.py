"""
Configuration loader for exam client parameters.

Handles loading and validating configuration files, with environment
overrides for the backend URL and exam duration.
"""

import json
import os
import sys
from pathlib import Path
from typing import Optional

from .models import ExamConfig


def load_config(config_path: Optional[Path] = None) -> ExamConfig:
    """
    Load client configuration from a JSON file.

    Args:
        config_path: Path to the configuration file. If None, looks for
                    'config.json' next to the executable/script.

    Returns:
        ExamConfig object with validated configuration

    Raises:
        ValueError: If config is invalid
    """
    if config_path is None:
        if getattr(sys, 'frozen', False):
            exe_dir = Path(sys.executable).parent
        else:
            exe_dir = Path(__file__).parent.parent

        config_path = exe_dir / "config.json"

    if not config_path.exists():
        print(f"Warning: Config file '{config_path}' not found. Using default configuration.")
        config = ExamConfig.default()
    else:
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file: {e}")
        except OSError as e:
            raise ValueError(f"Error reading config file: {e}")

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a JSON object")
        config = ExamConfig.from_dict(data)

    apply_env_overrides(config)

    is_valid, error_message = config.validate()
    if not is_valid:
        raise ValueError(f"Invalid configuration: {error_message}")

    return config


def apply_env_overrides(config: ExamConfig, environ=None) -> ExamConfig:
    """Apply EXAM_API_BASE and EXAM_DURATION_HOURS on top of a config."""
    environ = os.environ if environ is None else environ

    api_base = environ.get("EXAM_API_BASE")
    if api_base:
        config.api_base = api_base

    hours = environ.get("EXAM_DURATION_HOURS")
    if hours:
        try:
            config.exam_duration_seconds = int(float(hours) * 60 * 60)
        except ValueError:
            raise ValueError(f"EXAM_DURATION_HOURS must be a number, got '{hours}'")

    return config


def create_sample_config(output_path: Path):
    """
    Create a sample configuration file.

    Args:
        output_path: Path where to save the sample config
    """
    sample_config = {
        "api_base": "http://localhost:8000",
        "request_timeout_seconds": 30,
        "exam_duration_seconds": 12600,
        "batch_size": 6,
        "flush_multiple": 3,
        "inventory_cutoff": 3,
        "max_violations": 3,
        "fullscreen_poll_seconds": 2.0,
        "proctoring_enabled": True,
        "_comment": "This is a sample exam client configuration. Adjust values as needed.",
        "_instructions": {
            "api_base": "Base URL of the exam backend (EXAM_API_BASE overrides it)",
            "request_timeout_seconds": "Timeout of each request to the backend",
            "exam_duration_seconds": "Countdown length (EXAM_DURATION_HOURS overrides it)",
            "batch_size": "Batch size sent to the backend; this many buffered answers always flush",
            "flush_multiple": "Buffered answers are sent in multiples of this value",
            "inventory_cutoff": "Flush as soon as this few questions (or fewer) remain locally",
            "max_violations": "Tab or fullscreen violations that end the exam",
            "fullscreen_poll_seconds": "Interval of the fullscreen safety check",
            "proctoring_enabled": "Attach the tab/fullscreen violation monitor"
        }
    }

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(sample_config, f, indent=2)

    print(f"Sample configuration created at: {output_path}")
