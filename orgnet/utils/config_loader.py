"""
Centralized configuration loading utility.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

ENV_VAR = "ORGNET_CONFIG"


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Priority order:
    1. Explicitly provided config_path
    2. ORGNET_CONFIG environment variable
    3. config.yaml in current directory
    4. config.yaml in the orgnet package directory
    5. config.example.yaml in the orgnet package directory
    6. Empty dict as fallback
    """
    if config_path and Path(config_path).exists():
        return _read_yaml(Path(config_path))

    if os.environ.get(ENV_VAR):
        env_config = Path(os.environ[ENV_VAR])
        if env_config.exists():
            return _read_yaml(env_config)

    cwd_config = Path.cwd() / "config.yaml"
    if cwd_config.exists():
        return _read_yaml(cwd_config)

    package_dir = Path(__file__).parent.parent

    package_config = package_dir / "config.yaml"
    if package_config.exists():
        return _read_yaml(package_config)

    example_config = package_dir / "config.example.yaml"
    if example_config.exists():
        return _read_yaml(example_config)

    # Commands still run on built-in defaults
    return {}


class SimulationSettings(BaseModel):
    """Force layout constants. Defaults reproduce the dashboard layout."""
    model_config = {"extra": "forbid"}

    alpha_decay: float = Field(0.02, gt=0, lt=1)
    alpha_min: float = Field(0.05, ge=0)
    alpha_target: float = Field(0.0, ge=0)
    velocity_decay: float = Field(0.4, ge=0, le=1)
    warm_alpha: float = Field(0.05, gt=0, le=1)
    charge_strength: float = -150.0
    theta: float = Field(0.9, gt=0)
    center_strength: float = 0.04
    collide_radius: float = Field(40.0, ge=0)
    base_link_distance: float = 280.0
    min_link_distance: float = 100.0
    base_link_strength: float = 0.4
    width: float = Field(800.0, gt=0)
    height: float = Field(600.0, gt=0)
    seed: int | None = None


class RenderSettings(BaseModel):
    """Surface and label settings for the canvas renderer."""
    model_config = {"extra": "forbid"}

    width: int = Field(800, ge=0)
    height: int = Field(600, ge=0)
    device_pixel_ratio: float = Field(1.0, gt=0)
    background: str = "#ffffff"
    font: str | None = None
    initial_scale: float = Field(0.7, gt=0)


def simulation_settings(config: dict[str, Any] | None) -> SimulationSettings:
    return SimulationSettings(**((config or {}).get("simulation") or {}))


def render_settings(config: dict[str, Any] | None) -> RenderSettings:
    return RenderSettings(**((config or {}).get("render") or {}))
