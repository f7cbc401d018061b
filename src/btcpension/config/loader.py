"""Scenario config loading: packaged defaults, user YAML files and overrides."""

import copy
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .schema import ScenarioConfig

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def _read_mapping(path: Path) -> Dict[str, Any]:
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a YAML mapping, got {type(data).__name__}")
    return data


def merge_overrides(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge `overrides` into a copy of `base`.

    Nested mappings merge key by key; any other value (lists included)
    replaces the base value.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_overrides(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(
    yaml_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None
) -> ScenarioConfig:
    """
    Load a scenario config.

    A user file only needs the sections it changes: it is merged over the
    packaged defaults, then `overrides` are merged over the result.

    Args:
        yaml_path: YAML file to layer over the defaults (None for defaults only)
        overrides: Nested dict merged last

    Returns:
        Validated ScenarioConfig

    Raises:
        FileNotFoundError: If yaml_path does not exist
        ValueError: If a file does not hold a mapping
        pydantic.ValidationError: If the merged config is invalid
    """
    data = _read_mapping(DEFAULTS_PATH)

    if yaml_path is not None:
        path = Path(yaml_path)
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")
        data = merge_overrides(data, _read_mapping(path))

    if overrides:
        data = merge_overrides(data, overrides)

    return ScenarioConfig.from_dict(data)


def config_from_dict(data: Dict[str, Any]) -> ScenarioConfig:
    """Validate a complete config dictionary."""
    return ScenarioConfig.from_dict(data)
