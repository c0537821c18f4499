"""
Data Transfer Objects (DTOs) for headless reconstruction runs.

Design rules
------------
* All DTOs are immutable (frozen=True).
* ``from_dict`` / ``from_yaml`` / ``from_json`` keep serialisation in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Optional, Dict, Any

from config import (
    CACHE_DEFAULT_CAPACITY_MB,
    MIP_DEFAULT_SLAB_HALF_SIZE,
    DEFAULT_PRESET,
)


@dataclass(frozen=True)
class ReconstructionDTO:
    """
    Immutable configuration for one reconstruction run.

    Used by the CLI and by tests that drive the pipeline without a viewer.
    """

    # Input
    input_path:        str                  = ""

    # Cache
    cache_capacity_mb: int                  = CACHE_DEFAULT_CAPACITY_MB

    # Validation
    allow_warnings:    bool                 = True     # Proceed when only warnings are reported

    # Projection
    slab_half_size:    int                  = MIP_DEFAULT_SLAB_HALF_SIZE
    mip_indices:       Tuple[int, ...]      = ()       # Empty -> centre slice

    # Transfer function
    preset:            str                  = DEFAULT_PRESET

    # Output
    output_dir:        Optional[str]        = None
    export_formats:    Tuple[str, ...]      = ("npy",) # "npy", "vti"

    @property
    def cache_capacity_bytes(self) -> int:
        return int(self.cache_capacity_mb) * 1024 * 1024

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ReconstructionDTO":
        return ReconstructionDTO(
            input_path        = str(d.get("input_path",        "")),
            cache_capacity_mb = int(d.get("cache_capacity_mb", CACHE_DEFAULT_CAPACITY_MB)),
            allow_warnings    = bool(d.get("allow_warnings",   True)),
            slab_half_size    = int(d.get("slab_half_size",    MIP_DEFAULT_SLAB_HALF_SIZE)),
            mip_indices       = tuple(int(z) for z in d.get("mip_indices", [])),
            preset            = str(d.get("preset",            DEFAULT_PRESET)),
            output_dir        = d.get("output_dir"),
            export_formats    = tuple(d.get("export_formats",  ["npy"])),
        )

    @staticmethod
    def from_yaml(path: str) -> "ReconstructionDTO":
        """Load config from a YAML file."""
        import yaml
        with open(path, encoding="utf-8") as fh:
            d = yaml.safe_load(fh)
        return ReconstructionDTO.from_dict(d or {})

    @staticmethod
    def from_json(path: str) -> "ReconstructionDTO":
        """Load config from a JSON file."""
        import json
        with open(path, encoding="utf-8") as fh:
            d = json.load(fh)
        return ReconstructionDTO.from_dict(d)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_path":        self.input_path,
            "cache_capacity_mb": self.cache_capacity_mb,
            "allow_warnings":    self.allow_warnings,
            "slab_half_size":    self.slab_half_size,
            "mip_indices":       list(self.mip_indices),
            "preset":            self.preset,
            "output_dir":        self.output_dir,
            "export_formats":    list(self.export_formats),
        }
