"""
Transfer function generation for volume rendering.

Maps Hounsfield units in [-1024, 3071] to a 4096-entry RGBA lookup texture
from a preset's control points, with linear interpolation between points.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from config import TF_HU_MIN, TF_SIZE

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class TransferFunctionControlPoint:
    hu: float
    color: RGB          # 0-255 per channel
    opacity: float      # 0-1

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "TransferFunctionControlPoint":
        return TransferFunctionControlPoint(
            hu=float(d["hu"]),
            color=tuple(int(c) for c in d["color"]),
            opacity=float(d["opacity"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"hu": self.hu, "color": list(self.color), "opacity": self.opacity}


@dataclass(frozen=True)
class TransferFunctionPreset:
    name: str
    control_points: Tuple[TransferFunctionControlPoint, ...] = field(default_factory=tuple)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "TransferFunctionPreset":
        """Build a preset from ``{"name": ..., "control_points": [{hu, color, opacity}, ...]}``."""
        points = d.get("control_points", d.get("controlPoints", []))
        return TransferFunctionPreset(
            name=str(d.get("name", "Custom")),
            control_points=tuple(TransferFunctionControlPoint.from_dict(p) for p in points),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "control_points": [p.to_dict() for p in self.control_points]}


def _preset(name: str, points: Sequence[Tuple[float, RGB, float]]) -> TransferFunctionPreset:
    return TransferFunctionPreset(
        name=name,
        control_points=tuple(TransferFunctionControlPoint(hu, color, opacity) for hu, color, opacity in points),
    )


# ==========================================
# Built-in presets
# ==========================================
VRT_PRESETS: Dict[str, TransferFunctionPreset] = {
    "CT-Bone": _preset("Bone", [
        (-1000, (0, 0, 0), 0.0),
        (100, (0, 0, 0), 0.0),
        (200, (180, 130, 80), 0.05),
        (400, (220, 190, 140), 0.25),
        (800, (245, 240, 220), 0.6),
        (2000, (255, 255, 255), 0.9),
    ]),
    "CT-Skin": _preset("Skin Surface", [
        (-1000, (0, 0, 0), 0.0),
        (-500, (0, 0, 0), 0.0),
        (-100, (194, 142, 97), 0.0),
        (-50, (194, 142, 97), 0.12),
        (300, (230, 190, 150), 0.25),
        (1000, (255, 255, 255), 0.5),
        (3000, (255, 255, 255), 0.85),
    ]),
    "CT-Angio": _preset("CT Angiography", [
        (-1000, (0, 0, 0), 0.0),
        (0, (0, 0, 0), 0.0),
        (100, (200, 50, 50), 0.08),
        (200, (255, 80, 80), 0.4),
        (500, (255, 200, 200), 0.6),
        (1000, (255, 255, 255), 0.85),
    ]),
    "MIP": _preset("Maximum Intensity", [
        (-1000, (0, 0, 0), 0.0),
        (0, (40, 40, 40), 0.005),
        (500, (180, 180, 180), 0.03),
        (1000, (255, 255, 255), 0.06),
        (3000, (255, 255, 255), 0.2),
    ]),
}


def get_preset(key: str) -> TransferFunctionPreset:
    try:
        return VRT_PRESETS[key]
    except KeyError:
        raise KeyError(f"Unknown transfer function preset '{key}'. Available: {', '.join(VRT_PRESETS)}") from None


def list_presets() -> List[str]:
    return list(VRT_PRESETS)


def intensity_to_index(hu: float) -> int:
    """Texture index for an intensity, clamped to [0, 4095]."""
    return max(0, min(TF_SIZE - 1, int(np.floor(hu - TF_HU_MIN + 0.5))))


def _round_clamp(values: np.ndarray) -> np.ndarray:
    return np.floor(np.clip(values, 0, 255) + 0.5).astype(np.uint8)


def generate_transfer_function(preset: TransferFunctionPreset) -> np.ndarray:
    """
    Build the RGBA lookup texture for ``preset``.

    Intensities at or before the first control point take its value, at or
    after the last take the last one's, and everything between interpolates
    linearly between the bracketing pair. Opacity is scaled to 0-255.

    Returns:
        uint8 array of shape (4096, 4). All zeros for a preset without points.
    """
    texture = np.zeros((TF_SIZE, 4), dtype=np.uint8)
    if not preset.control_points:
        return texture

    points = sorted(preset.control_points, key=lambda p: p.hu)
    hus = np.array([p.hu for p in points], dtype=np.float64)
    colors = np.array([p.color for p in points], dtype=np.float64)
    opacities = np.array([p.opacity for p in points], dtype=np.float64)
    last = len(points) - 1

    hu = np.arange(TF_SIZE, dtype=np.float64) + TF_HU_MIN
    # Last control point at or below each intensity
    idx = np.clip(np.searchsorted(hus, hu, side="right") - 1, 0, last)

    after_last = idx >= last
    before_first = ~after_last & (hu <= hus[0])
    between = ~after_last & ~before_first

    rgb = np.empty((TF_SIZE, 3), dtype=np.float64)
    alpha = np.empty(TF_SIZE, dtype=np.float64)

    rgb[after_last] = colors[last]
    alpha[after_last] = opacities[last]
    rgb[before_first] = colors[0]
    alpha[before_first] = opacities[0]

    if between.any():
        i0 = idx[between]
        i1 = i0 + 1
        span = hus[i1] - hus[i0]
        t = np.divide(hu[between] - hus[i0], span, out=np.zeros_like(span), where=span != 0)
        rgb[between] = colors[i0] + (colors[i1] - colors[i0]) * t[:, None]
        alpha[between] = opacities[i0] + (opacities[i1] - opacities[i0]) * t

    texture[:, :3] = _round_clamp(rgb)
    texture[:, 3] = _round_clamp(alpha * 255)
    return texture


def generate_preset_texture(key: str) -> np.ndarray:
    """Texture for a built-in preset by registry key."""
    return generate_transfer_function(get_preset(key))
