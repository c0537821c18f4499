"""
Rendering package: transfer functions for volume rendering.
"""

from rendering.transfer_function import (
    TransferFunctionControlPoint,
    TransferFunctionPreset,
    VRT_PRESETS,
    get_preset,
    list_presets,
    intensity_to_index,
    generate_transfer_function,
    generate_preset_texture,
)

__all__ = [
    'TransferFunctionControlPoint',
    'TransferFunctionPreset',
    'VRT_PRESETS',
    'get_preset',
    'list_presets',
    'intensity_to_index',
    'generate_transfer_function',
    'generate_preset_texture',
]
