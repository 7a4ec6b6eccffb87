"""Scenario loading utilities."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import Scenario


def load_scenario(path: Path) -> Scenario:
    """Load and validate a scenario YAML file."""

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Scenario file {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Scenario file {path} must contain a mapping")
    try:
        return Scenario.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Scenario file {path} is invalid: {exc}") from exc
