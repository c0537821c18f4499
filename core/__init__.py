"""
Core module containing base classes, geometry and data structures.
"""

from core.base import Instance, VolumeData, VolumeOrientation, BaseInstanceSource
from core.errors import (
    ReconstructionError,
    EmptyStackError,
    MissingPixelDataError,
    InvalidDimensionsError,
    DecodeFailureError,
    FetchFailureError,
    VolumeBuildError,
    NotInitializedError,
)
from core.geometry import (
    IssueCode,
    ValidationIssue,
    ValidationResult,
    SortResult,
    compute_normal,
    project_onto_normal,
    sort_by_position,
    validate,
)
from core.dto import ReconstructionDTO
from core.progress import (
    ProgressEvent,
    ProgressObserver,
    ProgressBus,
    CancelFlagObserver,
    TerminalProgressObserver,
)
from core.coordinates import raw_zyx_to_grid_xyz, world_to_voxel, voxel_to_world, voxel_to_index

__all__ = [
    'Instance', 'VolumeData', 'VolumeOrientation', 'BaseInstanceSource',
    'ReconstructionError', 'EmptyStackError', 'MissingPixelDataError',
    'InvalidDimensionsError', 'DecodeFailureError', 'FetchFailureError',
    'VolumeBuildError', 'NotInitializedError',
    'IssueCode', 'ValidationIssue', 'ValidationResult', 'SortResult',
    'compute_normal', 'project_onto_normal', 'sort_by_position', 'validate',
    'ReconstructionDTO',
    'ProgressEvent', 'ProgressObserver', 'ProgressBus',
    'CancelFlagObserver', 'TerminalProgressObserver',
    'raw_zyx_to_grid_xyz', 'world_to_voxel', 'voxel_to_world', 'voxel_to_index',
]
