"""
Headless CLI entry point for the DICOM volume reconstruction core.

Sub-commands:
    validate  Check a series folder for geometry problems
    build     Reconstruct the volume and export it (.npy / .vti)
    mip       Reconstruct, then write slab projections for selected slices
    tf        Write a transfer function texture for a preset
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from typing import List, Optional, Tuple

import numpy as np


def _configure_headless_vtk() -> None:
    """Force VTK / PyVista into offscreen mode when no display is available."""
    display = os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY")
    if not display:
        os.environ.setdefault("PYVISTA_OFF_SCREEN", "true")
        os.environ.setdefault("VTK_DEFAULT_RENDER_WINDOW_OFFSCREEN", "1")


_configure_headless_vtk()


from core import Instance, ReconstructionDTO, VolumeData, sort_by_position, validate
from core.geometry import ValidationResult
from core.progress import ProgressBus, TerminalProgressObserver
from data.byte_cache import ByteCache
from loaders import DicomFolderSource, VolumeBuilder
from processors import MIPClient
from rendering import generate_preset_texture, get_preset
from config import MIP_RESPONSE_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = "output"


# ==========================================
# Steps
# ==========================================

def _print_validation(result: ValidationResult) -> None:
    status = "VALID" if result.valid else "INVALID"
    print(f"Geometry: {status} ({len(result.errors)} errors, {len(result.warnings)} warnings)")
    for message in result.errors:
        print(f"  [error]   {message}")
    for message in result.warnings:
        print(f"  [warning] {message}")


def load_series(dto: ReconstructionDTO) -> Tuple[DicomFolderSource, List[Instance]]:
    source = DicomFolderSource(dto.input_path)
    instances = source.scan()
    return source, instances


def check_series(dto: ReconstructionDTO, instances: List[Instance]) -> bool:
    """Print the validation report; return True when the build may proceed."""
    result = validate(instances)
    _print_validation(result)
    if not result.valid:
        return False
    if result.warnings and not dto.allow_warnings:
        print("Warnings present and allow_warnings is off; stopping.")
        return False
    return True


def reconstruct(dto: ReconstructionDTO) -> Optional[VolumeData]:
    """
    Scan, validate, sort and assemble the series in ``dto.input_path``.

    Returns None when validation rejects the series.
    """
    source, instances = load_series(dto)
    if not check_series(dto, instances):
        return None

    ordered = sort_by_position(instances).sorted_instances
    cache = ByteCache(dto.cache_capacity_bytes)
    progress_bus = ProgressBus().subscribe(TerminalProgressObserver())

    t_start = time.perf_counter()
    volume = VolumeBuilder().build(ordered, cache, source.fetch, progress_bus.counter_callback("build"))
    elapsed = time.perf_counter() - t_start

    cols, rows, slices = volume.dimensions
    print(f"\nVolume {cols}x{rows}x{slices} built in {elapsed:.2f}s")
    print(f"  spacing: {tuple(round(s, 4) for s in volume.spacing)}")
    print(f"  cache:   {cache.stats().to_dict()}")
    return volume


def _output_dir(dto: ReconstructionDTO) -> str:
    path = dto.output_dir or DEFAULT_OUTPUT_DIR
    os.makedirs(path, exist_ok=True)
    return path


def export_volume(volume: VolumeData, dto: ReconstructionDTO) -> List[str]:
    out_dir = _output_dir(dto)
    written: List[str] = []
    for fmt in dto.export_formats:
        fmt = fmt.lower().lstrip(".")
        if fmt == "npy":
            path = os.path.join(out_dir, "volume.npy")
            np.save(path, volume.data)
            meta_path = os.path.join(out_dir, "volume.json")
            with open(meta_path, "w", encoding="utf-8") as fh:
                json.dump({
                    "dimensions": list(volume.dimensions),
                    "spacing": list(volume.spacing),
                    "origin": list(volume.origin),
                    "orientation": volume.orientation.as_matrix().T.tolist(),
                    "window_center": volume.window_center,
                    "window_width": volume.window_width,
                }, fh, indent=2)
            written += [path, meta_path]
        elif fmt in ("vti", "vtk"):
            from exporters import VTKExporter

            path = os.path.join(out_dir, "volume.vti")
            VTKExporter.export_volume(volume, path)
            written.append(path)
        else:
            logger.warning("[CLI] Unknown export format skipped: %s", fmt)
    return written


def run_mip(volume: VolumeData, dto: ReconstructionDTO) -> List[str]:
    """Project each requested slice on the background engine and save the planes."""
    cols, rows, slices = volume.dimensions
    indices = list(dto.mip_indices) or [slices // 2]
    out_dir = _output_dir(dto)

    client = MIPClient()
    written: List[str] = []
    try:
        client.init_volume(volume).result(timeout=MIP_RESPONSE_TIMEOUT)
        futures = [(z, client.compute_slice(z, dto.slab_half_size)) for z in indices]
        for z, future in futures:
            plane = future.result(timeout=MIP_RESPONSE_TIMEOUT).reshape(rows, cols)
            path = os.path.join(out_dir, f"mip_z{z:04d}_slab{dto.slab_half_size}.npy")
            np.save(path, plane)
            written.append(path)
    finally:
        client.terminate()
    return written


def run_tf(dto: ReconstructionDTO) -> str:
    preset = get_preset(dto.preset)
    texture = generate_preset_texture(dto.preset)
    path = os.path.join(_output_dir(dto), f"tf_{dto.preset}.npy")
    np.save(path, texture)
    print(f"Preset '{dto.preset}' ({preset.name}): {len(preset.control_points)} control points")
    return path


# ==========================================
# Argument parsing
# ==========================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python cli.py",
        description="Headless DICOM volume reconstruction",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "command",
        choices=("validate", "build", "mip", "tf"),
        help="Operation to run.",
    )
    parser.add_argument(
        "--config",
        metavar="FILE",
        help="Path to YAML or JSON config file. Overrides other flags.",
    )
    parser.add_argument("--input", metavar="PATH", default="", help="Series folder (DICOM files).")
    parser.add_argument("--output", metavar="DIR", default=None, help="Output directory.")
    parser.add_argument("--cache-mb", metavar="MB", type=int, default=None, help="Byte cache capacity in MiB.")
    parser.add_argument("--strict", action="store_true", help="Stop on geometry warnings.")
    parser.add_argument("--slab", metavar="N", type=int, default=None, help="MIP slab half size.")
    parser.add_argument("--slices", metavar="Z", type=int, nargs="+", default=None, help="Slices to project.")
    parser.add_argument("--preset", metavar="NAME", default=None, help="Transfer function preset key.")
    parser.add_argument(
        "--formats",
        metavar="FMT",
        nargs="+",
        default=["npy"],
        help="Export formats: npy vti (space-separated).",
    )
    parser.add_argument("--log-level", metavar="LEVEL", default="WARNING", help="Logging level.")
    parser.add_argument("--dry-run", action="store_true", help="Print resolved DTO without running.")
    return parser


def _resolve_dto(args: argparse.Namespace, parser: argparse.ArgumentParser) -> ReconstructionDTO:
    """Resolve DTO from config file or inline CLI flags."""
    if args.config:
        cfg_path = args.config
        if cfg_path.endswith((".yaml", ".yml")):
            return ReconstructionDTO.from_yaml(cfg_path)
        if cfg_path.endswith(".json"):
            return ReconstructionDTO.from_json(cfg_path)
        try:
            return ReconstructionDTO.from_yaml(cfg_path)
        except Exception:
            return ReconstructionDTO.from_json(cfg_path)

    if not args.input and args.command != "tf":
        parser.error("Provide --config FILE or --input PATH")

    d = {
        "input_path": args.input,
        "output_dir": args.output,
        "allow_warnings": not args.strict,
        "export_formats": args.formats,
    }
    if args.cache_mb is not None:
        d["cache_capacity_mb"] = args.cache_mb
    if args.slab is not None:
        d["slab_half_size"] = args.slab
    if args.slices:
        d["mip_indices"] = args.slices
    if args.preset:
        d["preset"] = args.preset
    return ReconstructionDTO.from_dict(d)


def main(argv=None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    dto = _resolve_dto(args, parser)

    if args.dry_run:
        print("Resolved ReconstructionDTO:")
        print(json.dumps(dto.to_dict(), indent=2))
        return 0

    try:
        if args.command == "validate":
            _, instances = load_series(dto)
            return 0 if check_series(dto, instances) else 1

        if args.command == "tf":
            print(run_tf(dto))
            return 0

        volume = reconstruct(dto)
        if volume is None:
            return 1
        written = export_volume(volume, dto) if args.command == "build" else run_mip(volume, dto)
        if written:
            print("Written files:")
            for path in written:
                print(f"  {path}")
    except KeyboardInterrupt:
        print("\nAborted by user.")
        return 1
    except Exception as exc:
        import traceback

        print(f"\nFailed: {type(exc).__name__}: {exc}")
        traceback.print_exc()
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
