"""
Exception taxonomy for volume reconstruction.

Geometry problems are reported as data (see ``core.geometry.ValidationResult``);
the classes below are raised by decode, fetch, assembly and projection code and
abort the operation in progress.
"""

from typing import Optional


class ReconstructionError(Exception):
    """Base class for all reconstruction failures."""


class EmptyStackError(ReconstructionError, ValueError):
    """Raised when a sort or build is requested for zero instances."""

    def __init__(self, message: str = "No instances provided"):
        super().__init__(message)


class MissingPixelDataError(ReconstructionError, ValueError):
    """The container has no Pixel Data element with a usable offset."""


class InvalidDimensionsError(ReconstructionError, ValueError):
    """Rows/columns are absent or non-positive."""

    def __init__(self, rows, columns):
        super().__init__(f"Invalid image dimensions: rows={rows!r}, columns={columns!r}")
        self.rows = rows
        self.columns = columns


class DecodeFailureError(ReconstructionError):
    """The pixel payload could not be decoded."""

    def __init__(self, message: str, buffer_size: Optional[int] = None):
        if buffer_size is not None:
            message = f"{message} (buffer size: {buffer_size} bytes)"
        super().__init__(message)
        self.buffer_size = buffer_size


class FetchFailureError(ReconstructionError):
    """The byte-fetch collaborator could not deliver an instance."""

    def __init__(self, instance_uid: str, reason: str = ""):
        message = f"Failed to fetch instance {instance_uid}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.instance_uid = instance_uid


class VolumeBuildError(ReconstructionError):
    """A single slice failed; the whole build is aborted."""

    def __init__(self, instance_uid: str, slice_index: int, cause: Exception):
        super().__init__(
            f"Failed to build volume at slice {slice_index} ({instance_uid}): "
            f"{type(cause).__name__}: {cause}"
        )
        self.instance_uid = instance_uid
        self.slice_index = slice_index
        self.cause = cause


class NotInitializedError(ReconstructionError, RuntimeError):
    """A projection request arrived before the engine was ready."""

    def __init__(self, message: str = "Volume not initialized", request_id=None):
        super().__init__(message)
        self.request_id = request_id


__all__ = [
    "ReconstructionError",
    "EmptyStackError",
    "MissingPixelDataError",
    "InvalidDimensionsError",
    "DecodeFailureError",
    "FetchFailureError",
    "VolumeBuildError",
    "NotInitializedError",
]
