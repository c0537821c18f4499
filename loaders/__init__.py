"""
Data loaders package.

Modules:
- pixel_decoder: Single-slice pixel decoding (uncompressed and JPEG 2000)
- volume_builder: Assembly of sorted slices into one int16 volume
- dicom_source: Folder-backed series source (headers + byte fetch)
"""

from loaders.pixel_decoder import PixelDecoder, PixelPayload, parse_container, needs_byte_swap
from loaders.volume_builder import VolumeBuilder, build_volume, rescale_to_hu
from loaders.dicom_source import DicomFolderSource

__all__ = [
    'PixelDecoder',
    'PixelPayload',
    'parse_container',
    'needs_byte_swap',
    'VolumeBuilder',
    'build_volume',
    'rescale_to_hu',
    'DicomFolderSource',
]
