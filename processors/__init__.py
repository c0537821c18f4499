"""
Volume processors package.

Modules:
- mip_worker: Slab projection engine running on its own thread
- mip_client: Request/response front end for the projection engine
- mpr_sampler: Axial/coronal/sagittal planes, thin-slab MIP, window/level
- interpolation: Oblique planes and trilinear resampling
"""

from processors.mip_worker import MIPWorker, compute_slab_projection
from processors.mip_client import MIPClient
from processors.mpr_sampler import (
    PlaneType,
    Crosshair,
    SliceGeometry,
    SliceResult,
    get_slice_geometry,
    extract_slice,
    extract_mini_mip_slice,
    get_max_index,
    get_index_for_plane,
    update_crosshair_from_click,
    get_crosshair_screen_position,
    apply_window_level,
)
from processors.interpolation import (
    ObliquePlane,
    create_initial_oblique_plane,
    rotate_plane,
    translate_plane,
    sample_oblique_plane,
)

__all__ = [
    'MIPWorker',
    'compute_slab_projection',
    'MIPClient',
    'PlaneType',
    'Crosshair',
    'SliceGeometry',
    'SliceResult',
    'get_slice_geometry',
    'extract_slice',
    'extract_mini_mip_slice',
    'get_max_index',
    'get_index_for_plane',
    'update_crosshair_from_click',
    'get_crosshair_screen_position',
    'apply_window_level',
    'ObliquePlane',
    'create_initial_oblique_plane',
    'rotate_plane',
    'translate_plane',
    'sample_oblique_plane',
]
