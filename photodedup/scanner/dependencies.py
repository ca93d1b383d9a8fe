"""
Dependency initialization for the scanner package.

Handles PIL, imagehash and tqdm imports with proper error handling and
configuration.
"""

from __future__ import annotations

import warnings
import logging
from typing import Optional, Any

from ..user_config import get_user_config

# Module-level logger
_logger = logging.getLogger(__name__)

# Check for required dependencies
try:
    from PIL import Image
    import imagehash
except ImportError:
    raise ImportError(
        "Required packages not found!\n"
        "Install with: pip install Pillow imagehash"
    )

# Raise PIL's decompression bomb limit for large photos.
# Default is ~89MP; high-resolution scans and panoramas exceed it.
Image.MAX_IMAGE_PIXELS = get_user_config().max_image_pixels

# DecompressionBombWarning: the limit above is deliberate
warnings.filterwarnings("ignore", category=Image.DecompressionBombWarning)

# Optional: tqdm for progress bars
HAS_TQDM = False
_tqdm_class: Optional[Any] = None

try:
    from tqdm import tqdm as _tqdm_import
    HAS_TQDM = True
    _tqdm_class = _tqdm_import
except ImportError:
    pass


__all__ = [
    'Image',
    'imagehash',
    'HAS_TQDM',
    '_tqdm_class',
    '_logger',
]
