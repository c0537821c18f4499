import json

import yaml

from core.dto import ReconstructionDTO
from config import CACHE_DEFAULT_CAPACITY_MB, DEFAULT_PRESET, MIP_DEFAULT_SLAB_HALF_SIZE


def test_defaults():
    dto = ReconstructionDTO()
    assert dto.cache_capacity_mb == CACHE_DEFAULT_CAPACITY_MB
    assert dto.slab_half_size == MIP_DEFAULT_SLAB_HALF_SIZE
    assert dto.preset == DEFAULT_PRESET
    assert dto.export_formats == ("npy",)
    assert dto.allow_warnings is True


def test_from_dict_defaults_for_missing_keys():
    dto = ReconstructionDTO.from_dict({"input_path": "/data/ct"})
    assert dto == ReconstructionDTO(input_path="/data/ct")


def test_cache_capacity_bytes():
    assert ReconstructionDTO(cache_capacity_mb=3).cache_capacity_bytes == 3 * 1024 * 1024


def test_yaml_round_trip(tmp_path):
    dto = ReconstructionDTO(
        input_path="/data/ct",
        cache_capacity_mb=64,
        allow_warnings=False,
        slab_half_size=2,
        mip_indices=(4, 8),
        preset="CT-Angio",
        output_dir="out",
        export_formats=("npy", "vti"),
    )
    path = tmp_path / "run.yaml"
    path.write_text(yaml.safe_dump(dto.to_dict()), encoding="utf-8")

    assert ReconstructionDTO.from_yaml(str(path)) == dto


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert ReconstructionDTO.from_yaml(str(path)) == ReconstructionDTO()


def test_json_config(tmp_path):
    path = tmp_path / "run.json"
    path.write_text(json.dumps({"input_path": "x", "mip_indices": [1], "slab_half_size": 0}), encoding="utf-8")

    dto = ReconstructionDTO.from_json(str(path))

    assert dto.mip_indices == (1,)
    assert dto.slab_half_size == 0
