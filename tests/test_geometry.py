"""
Tests for slice sorting and stack geometry validation.
"""

import pytest

from core.errors import EmptyStackError
from core.geometry import IssueCode, compute_normal, sort_by_position, validate
from tests.conftest import make_instance


def _axial_stack(zs):
    return [make_instance(uid=f"uid-{i}", z=z) for i, z in enumerate(zs)]


def test_axial_stack_normal_and_spacing():
    result = sort_by_position(_axial_stack([0, 10, 20]))

    assert result.normal == pytest.approx((0.0, 0.0, 1.0))
    assert result.average_spacing == pytest.approx(10.0)
    assert [i.instance_uid for i in result.sorted_instances] == ["uid-0", "uid-1", "uid-2"]


def test_sort_orders_by_projected_position_not_input_order():
    stack = _axial_stack([20, 0, 10, -5])
    result = sort_by_position(stack)

    assert list(result.positions) == sorted(result.positions)
    assert [i.image_position_patient[2] for i in result.sorted_instances] == [-5, 0, 10, 20]
    assert result.average_spacing == pytest.approx(25 / 3)


def test_sort_ignores_sort_key():
    stack = [
        make_instance(uid="a", z=10, sort_key=1),
        make_instance(uid="b", z=0, sort_key=2),
    ]
    assert [i.instance_uid for i in sort_by_position(stack).sorted_instances] == ["b", "a"]


def test_sort_uses_oblique_normal():
    # Sagittal: rows along y, columns along z, normal along x
    orient = (0.0, 1.0, 0.0, 0.0, 0.0, 1.0)
    stack = [
        make_instance(uid="x2", image_position_patient=(4.0, 0.0, 0.0), image_orientation_patient=orient),
        make_instance(uid="x0", image_position_patient=(0.0, 0.0, 0.0), image_orientation_patient=orient),
        make_instance(uid="x1", image_position_patient=(2.0, 0.0, 0.0), image_orientation_patient=orient),
    ]
    result = sort_by_position(stack)
    assert result.normal == pytest.approx((1.0, 0.0, 0.0))
    assert [i.instance_uid for i in result.sorted_instances] == ["x0", "x1", "x2"]
    assert result.average_spacing == pytest.approx(2.0)


def test_single_slice_spacing_falls_back_to_thickness():
    result = sort_by_position([make_instance(slice_thickness=2.5)])
    assert result.average_spacing == pytest.approx(2.5)

    result = sort_by_position([make_instance(slice_thickness=None)])
    assert result.average_spacing == pytest.approx(1.0)


def test_sort_empty_raises():
    with pytest.raises(EmptyStackError):
        sort_by_position([])


def test_compute_normal_requires_six_values():
    with pytest.raises(ValueError):
        compute_normal((1.0, 0.0, 0.0))


def test_validate_regular_stack_is_valid():
    result = validate(_axial_stack([0, 1, 2, 3]))
    assert result.valid
    assert result.errors == []
    assert result.warnings == []


def test_validate_requires_two_slices():
    result = validate(_axial_stack([0]))
    assert not result.valid
    assert result.has(IssueCode.TOO_FEW_SLICES)
    assert result.errors == ["Minimum 2 slices required for MPR"]

    assert validate([]).has(IssueCode.EMPTY_STACK)


def test_validate_duplicate_position_is_error():
    stack = [make_instance(uid="a", z=5), make_instance(uid="b", z=5)]
    result = validate(stack)

    assert not result.valid
    assert result.has(IssueCode.DUPLICATE_SLICE_POSITION)
    assert "1 duplicate slice positions detected" in result.errors


def test_validate_mismatched_dimensions_is_error():
    stack = [
        make_instance(uid="a", z=0),
        make_instance(uid="b", z=1, rows=4, columns=4),
        make_instance(uid="c", z=2),
    ]
    result = validate(stack)

    assert not result.valid
    assert result.has(IssueCode.INCONSISTENT_GEOMETRY)
    assert result.errors[0] == "1 slices have inconsistent dimensions. Expected 2x2"


def test_validate_mismatched_orientation_is_error():
    stack = _axial_stack([0, 1])
    stack.append(make_instance(uid="tilted", z=2, image_orientation_patient=(1.0, 0.0, 0.0, 0.0, 0.9, 0.1)))
    result = validate(stack)

    assert not result.valid
    assert "1 slices have inconsistent orientation" in result.errors


def test_validate_small_orientation_drift_is_tolerated():
    stack = _axial_stack([0, 1])
    stack.append(make_instance(uid="drift", z=2, image_orientation_patient=(1.0, 0.0, 0.0005, 0.0, 1.0, 0.0)))
    assert validate(stack).valid


def test_validate_irregular_gaps_warn_only():
    result = validate(_axial_stack([0, 1, 2, 5]))

    assert result.valid
    assert result.has(IssueCode.INCONSISTENT_SPACING)
    assert len(result.warnings) == 1
    assert "deviate >10% from average spacing" in result.warnings[0]


def test_validate_pixel_spacing_difference_warns():
    stack = _axial_stack([0, 1])
    stack.append(make_instance(uid="c", z=2, pixel_spacing=(0.5, 0.8)))
    result = validate(stack)

    assert result.valid
    assert "1 slices have slightly different pixel spacing" in result.warnings


def test_validation_result_to_dict():
    result = validate([make_instance(uid="a", z=0), make_instance(uid="b", z=0)])
    d = result.to_dict()
    assert d["valid"] is False
    assert d["errors"]
