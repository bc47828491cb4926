"""
Configuration management for the gesture-driven particle system.
"""
import yaml
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, fields


DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.default.yaml"


@dataclass
class CameraConfig:
    """Camera configuration settings."""
    index: int
    width: int
    height: int
    fps: int


@dataclass
class MediaPipeConfig:
    """MediaPipe Hands configuration settings."""
    max_num_hands: int
    model_complexity: int
    min_detection_confidence: float
    min_tracking_confidence: float


@dataclass
class GesturesConfig:
    """Gesture feature extraction constants."""
    smoothing: float  # base exponential blend per detection cycle
    absence_decay: float  # blend toward neutral while no hand is visible
    velocity_absence_decay: float
    rotation_rate_factor: float  # fraction of the base rate
    twist_rate_factor: float
    velocity_rate: float
    expansion_min_distance: float
    expansion_max_distance: float
    tension_open_distance: float
    tension_fist_distance: float
    grab_threshold: float
    rotation_sensitivity: float
    twist_sensitivity: float
    velocity_gain: float
    max_frame_gap_s: float


@dataclass
class ParticlesConfig:
    """Particle engine constants. Rates are per render tick."""
    count: int
    morph_rate: float
    explosion_morph_rate: float
    jitter_scale: float
    tension_pull_threshold: float
    tension_pull_gain: float
    grab_pull: float
    explosion_decay: float
    explosion_impulse_min: float
    explosion_impulse_max: float
    explosion_stop_threshold: float
    burst_velocity_threshold: float
    burst_expansion_threshold: float
    rest_scale: float
    scale_base: float
    scale_gain: float
    scale_rate: float
    orientation_gain: float
    orientation_rate: float
    spin_gain: float
    spin_decay: float
    idle_yaw_rate: float
    pitch_return: float
    point_size: float
    point_size_pulse: float
    pulse_rate: float


@dataclass
class DisplayConfig:
    """Display configuration settings."""
    window_name: str
    width: int
    height: int
    render_fps: int
    show_landmarks: bool
    initial_shape: str


@dataclass
class Cfg:
    """Main configuration class."""
    camera: CameraConfig
    mediapipe: MediaPipeConfig
    gestures: GesturesConfig
    particles: ParticlesConfig
    display: DisplayConfig


def load_config(path: Optional[str] = None) -> Cfg:
    """
    Load configuration from YAML.

    The packaged defaults are always read first. When ``path`` is given its
    contents are merged over them, so a user file only needs the keys it changes.

    Args:
        path: Optional path to a user config file

    Returns:
        Configuration object with all settings
    """
    with open(DEFAULT_CONFIG_PATH, 'r') as f:
        data = yaml.safe_load(f)

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path, 'r') as f:
            overrides = yaml.safe_load(f) or {}
        data = _merge(data, overrides)

    return _dict_to_config(data)


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(cls, data: Dict[str, Any]):
    """Build one config dataclass, rejecting unknown keys."""
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**{name: data[name] for name in names})


def _dict_to_config(data: Dict[str, Any]) -> Cfg:
    """Convert dictionary to configuration object."""
    return Cfg(
        camera=_section(CameraConfig, data['camera']),
        mediapipe=_section(MediaPipeConfig, data['mediapipe']),
        gestures=_section(GesturesConfig, data['gestures']),
        particles=_section(ParticlesConfig, data['particles']),
        display=_section(DisplayConfig, data['display'])
    )
