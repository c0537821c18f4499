"""
Pixel decoding for single DICOM slices.

Turns one instance's raw container bytes into a flat 16-bit intensity array.
Two paths:

* Uncompressed: the Pixel Data value is reinterpreted in place as
  little-endian int16/uint16 (per PixelRepresentation).
* JPEG 2000 (1.2.840.10008.1.2.4.90 / .91): the codestream is located by its
  SOC marker, decoded by the OpenJPEG codec, then passed through a byte-order
  check because decoded sample order differs between encoder implementations.

The codec keeps process-global state, so every codec call runs under one
module-level lock. Callers may use the decoder from any thread.
"""

import io
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np
import pydicom
from pydicom.tag import Tag

from core.base import Instance
from core.errors import MissingPixelDataError, InvalidDimensionsError, DecodeFailureError
from config import (
    J2K_TRANSFER_SYNTAXES,
    J2K_MARKER,
    J2K_MARKER_SCAN_BYTES,
    BYTE_SWAP_SAMPLE_COUNT,
    DEFAULT_WINDOW_CENTER,
)

logger = logging.getLogger(__name__)

PIXEL_DATA_TAG = Tag(0x7FE0, 0x0010)

Codec = Callable[[bytes], Union[bytes, bytearray, np.ndarray]]

# Single-slot execution lock around every codec invocation
_CODEC_LOCK = threading.Lock()


@dataclass(frozen=True)
class PixelPayload:
    """Location and encoding of the Pixel Data value inside a container."""
    transfer_syntax: str
    pixel_representation: int
    rows: Optional[int]
    columns: Optional[int]
    offset: int
    length: int
    total_bytes: int

    @property
    def is_signed(self) -> bool:
        return self.pixel_representation == 1

    @property
    def is_j2k(self) -> bool:
        return self.transfer_syntax in J2K_TRANSFER_SYNTAXES

    @property
    def safe_length(self) -> int:
        """Declared length, or everything after the offset when it is undefined/non-positive."""
        if self.length > 0:
            return self.length
        return self.total_bytes - self.offset


def parse_container(raw) -> PixelPayload:
    """
    Parse a DICOM container and locate its Pixel Data value.

    Raises:
        MissingPixelDataError: no Pixel Data element, or no value offset for it.
        DecodeFailureError: the bytes are not a parseable DICOM container.
    """
    buffer = bytes(raw)
    try:
        ds = pydicom.dcmread(io.BytesIO(buffer), force=True)
    except Exception as exc:
        raise DecodeFailureError(f"Unreadable DICOM container: {exc}", buffer_size=len(buffer)) from exc

    # get_item keeps the raw element, which still carries its file offset
    elem = ds.get_item(PIXEL_DATA_TAG)
    if elem is None:
        raise MissingPixelDataError("Pixel Data not found")
    offset = getattr(elem, "value_tell", None)
    if offset is None:
        raise MissingPixelDataError("Pixel Data has no value offset")

    if getattr(elem, "is_undefined_length", False) or elem.length == 0xFFFFFFFF:
        length = -1
    else:
        length = int(elem.length)

    file_meta = getattr(ds, "file_meta", None)
    transfer_syntax = str(file_meta.get("TransferSyntaxUID", "")) if file_meta is not None else ""

    return PixelPayload(
        transfer_syntax=transfer_syntax,
        pixel_representation=int(ds.get("PixelRepresentation", 0) or 0),
        rows=ds.get("Rows"),
        columns=ds.get("Columns"),
        offset=int(offset),
        length=length,
        total_bytes=len(buffer),
    )


def find_codestream_start(pixel_bytes: bytes, scan_limit: int = J2K_MARKER_SCAN_BYTES) -> Optional[int]:
    """Index of the first 0xFF 0x4F pair within the scan window, or None."""
    window = pixel_bytes[: scan_limit + 1]
    idx = window.find(J2K_MARKER)
    if idx < 0 or idx >= scan_limit:
        return None
    return idx


def needs_byte_swap(
    decoded: bytes,
    window_center: float,
    slope: float = 1.0,
    intercept: float = 0.0,
    pixel_count: Optional[int] = None,
    sample_count: int = BYTE_SWAP_SAMPLE_COUNT,
) -> bool:
    """
    Decide whether decoded 16-bit samples are byte-swapped.

    Samples are read as unsigned little-endian words whatever the pixel
    representation. Positions are visited with an even step through the middle
    third of the first ``pixel_count`` samples; zeros are skipped and do not
    count towards the ``sample_count`` limit. Each sample is rescaled as read
    and with its two bytes exchanged; the order whose summed distance to
    ``window_center`` is strictly lower wins. Ties, and a window with no
    non-zero samples, keep the decoded order.
    """
    count = len(decoded) // 2
    if pixel_count is not None:
        count = min(count, int(pixel_count))
    if count <= 0:
        return False

    values = np.frombuffer(decoded, dtype="<u2", count=count)
    start, end = count // 3, (2 * count) // 3
    step = max(1, (end - start) // sample_count)
    candidates = values[start:end:step]
    samples = candidates[candidates != 0][:sample_count]
    if samples.size == 0:
        return False

    distance_decoded = 0.0
    distance_swapped = 0.0
    for value in samples.tolist():
        swapped = ((value & 0xFF) << 8) | ((value >> 8) & 0xFF)
        distance_decoded += abs(value * slope + intercept - window_center)
        distance_swapped += abs(swapped * slope + intercept - window_center)
    return distance_swapped < distance_decoded


def swap_byte_pairs(data: bytes) -> bytes:
    """Swap every byte pair; a trailing odd byte is kept as-is."""
    even = len(data) - (len(data) % 2)
    swapped = np.frombuffer(data, dtype=np.uint8, count=even).reshape(-1, 2)[:, ::-1].tobytes()
    return swapped + bytes(data[even:])


def _decoded_to_bytes(decoded) -> bytes:
    """Normalise codec output to little-endian sample bytes."""
    if isinstance(decoded, np.ndarray):
        arr = np.ascontiguousarray(decoded)
        if arr.dtype.itemsize == 2:
            arr = arr.astype(arr.dtype.newbyteorder("<"), copy=False)
        return arr.tobytes()
    return bytes(decoded)


def _openjpeg_decode(codestream: bytes) -> np.ndarray:
    """Default codec: pylibjpeg-openjpeg."""
    import openjpeg
    return openjpeg.decode(codestream)


class PixelDecoder:
    """
    Decode one slice's raw container bytes into an int16/uint16 array.

    Args:
        codec: Callable taking a J2K codestream and returning decoded samples
            (bytes or ndarray). Defaults to OpenJPEG.
        strict_codestream: Fail instead of decoding from offset 0 when the
            SOC marker is not found in the scan window.
    """

    def __init__(self, codec: Optional[Codec] = None, strict_codestream: bool = False):
        self._codec = codec or _openjpeg_decode
        self.strict_codestream = strict_codestream

    def decode(self, raw, instance: Optional[Instance] = None) -> np.ndarray:
        """
        Decode ``raw`` using the rescale/window hints of ``instance``.

        Returns:
            Flat array of length rows * columns, int16 when PixelRepresentation
            is 1, uint16 otherwise.
        """
        buffer = bytes(raw)
        payload = parse_container(buffer)

        rows = payload.rows or (instance.rows if instance else None)
        columns = payload.columns or (instance.columns if instance else None)
        if not rows or not columns or rows <= 0 or columns <= 0:
            raise InvalidDimensionsError(rows, columns)

        if instance is not None:
            window_center = instance.window_center if instance.window_center is not None else DEFAULT_WINDOW_CENTER
            slope, intercept = instance.slope, instance.intercept
        else:
            window_center, slope, intercept = DEFAULT_WINDOW_CENTER, 1.0, 0.0

        return self.decode_payload(
            buffer, payload, int(rows) * int(columns),
            window_center=window_center, slope=slope, intercept=intercept,
        )

    def decode_payload(
        self,
        buffer: bytes,
        payload: PixelPayload,
        pixel_count: int,
        window_center: float = DEFAULT_WINDOW_CENTER,
        slope: float = 1.0,
        intercept: float = 0.0,
    ) -> np.ndarray:
        end = payload.offset + payload.safe_length
        pixel_bytes = buffer[payload.offset:end]

        if payload.is_j2k:
            sample_bytes = self._decode_j2k(pixel_bytes, pixel_count, window_center, slope, intercept)
        else:
            sample_bytes = pixel_bytes

        available = len(sample_bytes) // 2
        if available < pixel_count:
            raise DecodeFailureError(
                f"Pixel payload holds {available} samples, expected {pixel_count} "
                f"(offset {payload.offset}, length {payload.safe_length})",
                buffer_size=len(sample_bytes),
            )

        dtype = "<i2" if payload.is_signed else "<u2"
        pixels = np.frombuffer(sample_bytes, dtype=dtype, count=pixel_count)
        return pixels.astype(np.int16 if payload.is_signed else np.uint16)

    def _decode_j2k(
        self,
        pixel_bytes: bytes,
        pixel_count: int,
        window_center: float,
        slope: float,
        intercept: float,
    ) -> bytes:
        start = find_codestream_start(pixel_bytes)
        if start is None:
            if self.strict_codestream:
                raise DecodeFailureError("J2K codestream marker not found", buffer_size=len(pixel_bytes))
            # TODO: make strict_codestream the default once existing archives are re-validated
            logger.warning("[PixelDecoder] J2K codestream marker not found, decoding from offset 0")
            start = 0

        codestream = pixel_bytes[start:]
        with _CODEC_LOCK:
            try:
                decoded = self._codec(codestream)
            except Exception as exc:
                raise DecodeFailureError(f"J2K decode failed: {exc}", buffer_size=len(codestream)) from exc

        decoded_bytes = _decoded_to_bytes(decoded)
        if not decoded_bytes:
            raise DecodeFailureError("J2K decoder returned empty data", buffer_size=len(codestream))

        if needs_byte_swap(decoded_bytes, window_center, slope, intercept, pixel_count=pixel_count):
            logger.debug("[PixelDecoder] Decoded samples are byte-swapped, correcting")
            decoded_bytes = swap_byte_pairs(decoded_bytes)
        return decoded_bytes
