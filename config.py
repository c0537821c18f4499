"""
Configuration constants for the DICOM volume reconstruction core.
All thresholds and configurable parameters are centralized here.
"""

# ==========================================
# Byte Cache Settings
# ==========================================
CACHE_DEFAULT_CAPACITY_MB = 2048               # 2 GiB shared byte cache
CACHE_DEFAULT_CAPACITY_BYTES = CACHE_DEFAULT_CAPACITY_MB * 1024 * 1024

# ==========================================
# Geometry Validation Settings
# ==========================================
GEOMETRY_ORIENTATION_TOLERANCE = 0.001   # Max per-component cosine difference
GEOMETRY_PIXEL_SPACING_TOLERANCE = 0.001  # mm, row/column pixel spacing
GEOMETRY_DUPLICATE_TOLERANCE = 0.001     # mm, adjacent projected positions
GEOMETRY_SPACING_DEVIATION = 0.1         # 10% deviation from mean gap
GEOMETRY_MIN_SLICES = 2

# ==========================================
# Pixel Decoder Settings
# ==========================================
TRANSFER_SYNTAX_J2K_LOSSLESS = "1.2.840.10008.1.2.4.90"
TRANSFER_SYNTAX_J2K = "1.2.840.10008.1.2.4.91"
J2K_TRANSFER_SYNTAXES = (TRANSFER_SYNTAX_J2K_LOSSLESS, TRANSFER_SYNTAX_J2K)

J2K_MARKER = b"\xff\x4f"                 # SOC (start of codestream)
J2K_MARKER_SCAN_BYTES = 4000             # Search window for SOC marker

BYTE_SWAP_SAMPLE_COUNT = 200             # Samples from the middle third

# ==========================================
# Display Defaults
# ==========================================
DEFAULT_WINDOW_CENTER = 40.0
DEFAULT_WINDOW_WIDTH = 400.0
OUT_OF_BOUNDS_HU = -1000                 # Air, used by oblique sampling

WINDOW_LEVEL_LUT_OFFSET = 32768
WINDOW_LEVEL_LUT_SIZE = 65536
WINDOW_LEVEL_LUT_CACHE = 8

# ==========================================
# Slab Projection (MIP) Settings
# ==========================================
MIP_DEFAULT_SLAB_HALF_SIZE = 5
MIP_CLIENT_CACHE_ENTRIES = 200           # Cached (z, slab) results per client
MIP_PREFETCH_RANGE = 10
MIP_RESPONSE_TIMEOUT = 30.0              # Seconds to wait for worker replies

# ==========================================
# Transfer Function Settings
# ==========================================
TF_HU_MIN = -1024
TF_HU_MAX = 3071
TF_SIZE = 4096                           # RGBA entries in the lookup texture
DEFAULT_PRESET = "CT-Bone"

# ==========================================
# Local Series Source
# ==========================================
SOURCE_FILE_EXTENSION = "*.dcm"
LOADER_MAX_WORKERS = 4            # Parallel threads for header reading
