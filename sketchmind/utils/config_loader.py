"""
Centralized configuration loading utility.
"""

import os
from pathlib import Path
from typing import Any

import yaml

CONFIG_ENV_VAR = "SKETCHMIND_CONFIG"


def _read(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Priority order:
    1. Explicitly provided config_path
    2. SKETCHMIND_CONFIG environment variable
    3. config.yaml in current directory
    4. config.yaml in the sketchmind package directory
    5. config.example.yaml in the sketchmind package directory
    6. Empty dict as fallback

    Invalid YAML raises yaml.YAMLError.
    """
    if config_path and Path(config_path).exists():
        return _read(Path(config_path))

    if os.environ.get(CONFIG_ENV_VAR):
        env_config = Path(os.environ[CONFIG_ENV_VAR])
        if env_config.exists():
            return _read(env_config)

    cwd_config = Path.cwd() / "config.yaml"
    if cwd_config.exists():
        return _read(cwd_config)

    package_dir = Path(__file__).parent.parent

    package_config = package_dir / "config.yaml"
    if package_config.exists():
        return _read(package_config)

    example_config = package_dir / "config.example.yaml"
    if example_config.exists():
        return _read(example_config)

    # Callers fall back to their own defaults
    return {}
