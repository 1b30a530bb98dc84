"""
Engine configuration.

Defaults live on :class:`EngineConfig`; named profiles in
``configs/profiles.yaml`` override them.  ``GRAPHREEL_PROFILES`` points at an
alternative profiles file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .cache import RenderSettings

ENV_PROFILES_VAR = "GRAPHREEL_PROFILES"
CONFIG_DIR = Path(__file__).resolve().parent / "configs"
PROFILES_PATH = CONFIG_DIR / "profiles.yaml"


@dataclass
class EngineConfig:
    """Top level engine configuration."""

    profile: str = "default"
    fps: float = 30.0
    duration_frames: int = 300
    render: RenderSettings = field(default_factory=RenderSettings)
    apply_timeout: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "profile": self.profile,
            "fps": float(self.fps),
            "durationFrames": int(self.duration_frames),
            "render": self.render.to_dict(),
            "applyTimeout": self.apply_timeout,
        }


def profiles_path() -> Path:
    env_path = os.environ.get(ENV_PROFILES_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return PROFILES_PATH


def read_profiles(path: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    target = path or profiles_path()
    try:
        with target.open("r", encoding="utf-8") as handle:
            profiles = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        profiles = {}
    if not isinstance(profiles, dict):
        raise ValueError(f"{target} must contain a mapping of profiles")
    return profiles


def _render_settings(payload: Mapping[str, Any], base: RenderSettings) -> RenderSettings:
    return RenderSettings(
        width=int(payload.get("width", base.width)),
        height=int(payload.get("height", base.height)),
        pixel_density=float(payload.get("pixel_density", base.pixel_density)),
        background=str(payload.get("background", base.background)),
    )


def load_config(profile: str = "default", path: Optional[Path] = None) -> EngineConfig:
    """
    Build an :class:`EngineConfig` for ``profile``.

    The ``default`` profile may be missing from the file; any other unknown
    name raises ``KeyError``.
    """

    profiles = read_profiles(path)
    if profile not in profiles and profile != "default":
        raise KeyError(f"unknown profile '{profile}'")
    payload = profiles.get(profile) or {}

    config = EngineConfig(profile=profile)
    if "fps" in payload:
        config.fps = float(payload["fps"])
        if config.fps <= 0:
            raise ValueError("fps must be positive")
    if "duration_frames" in payload:
        config.duration_frames = max(0, int(payload["duration_frames"]))
    if "apply_timeout" in payload:
        timeout = payload["apply_timeout"]
        config.apply_timeout = float(timeout) if timeout is not None else None
    if isinstance(payload.get("render"), Mapping):
        config.render = _render_settings(payload["render"], config.render)
    return config
