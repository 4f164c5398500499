"""Raster image ingestion into 8-bit sRGB arrays."""
from pathlib import Path
from typing import Union
import logging

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from layervec.types import IngestResult, VectorizationError

logger = logging.getLogger(__name__)


def ingest(path: Union[str, Path]) -> IngestResult:
    """
    Ingest a raster image file.

    Applies the EXIF orientation and composites any transparency onto a
    white background.

    Args:
        path: Path to image file

    Returns:
        IngestResult holding an (H, W, 3) uint8 array

    Raises:
        FileNotFoundError: If file doesn't exist
        VectorizationError: If file cannot be loaded
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if not path.is_file():
        raise VectorizationError(f"Path is not a file: {path}")

    try:
        with Image.open(path) as img:
            img = ImageOps.exif_transpose(img)
            has_alpha = img.mode in ('RGBA', 'LA', 'PA') or (
                img.mode == 'P' and 'transparency' in img.info
            )

            if has_alpha:
                rgba = img.convert('RGBA')
                background = Image.new('RGB', rgba.size, (255, 255, 255))
                background.paste(rgba, mask=rgba.split()[3])
                img = background
            elif img.mode != 'RGB':
                img = img.convert('RGB')

            width, height = img.size
            image = np.array(img, dtype=np.uint8)

    except (UnidentifiedImageError, OSError) as e:
        raise VectorizationError(f"Failed to load image {path}: {e}") from e

    logger.info(f"Ingested {path.name}: {width}x{height}, alpha={has_alpha}")

    return IngestResult(
        image=image,
        original_path=str(path),
        width=width,
        height=height,
        has_alpha=has_alpha
    )


def ingest_from_array(image: np.ndarray, path: str = "") -> IngestResult:
    """
    Create IngestResult from numpy array.

    Args:
        image: Image array (H, W), (H, W, 3) or (H, W, 4); floats in [0, 1]
            or integers in [0, 255]
        path: Optional path for reference

    Returns:
        IngestResult
    """
    image = np.asarray(image)

    if image.ndim == 2:
        # Grayscale - convert to RGB
        image = np.stack([image] * 3, axis=-1)

    if image.ndim != 3:
        raise VectorizationError(f"Expected 3D array, got {image.ndim}D")

    if image.shape[0] == 0 or image.shape[1] == 0:
        raise VectorizationError("Image has no pixels")

    if np.issubdtype(image.dtype, np.floating):
        image = image * 255.0

    image = np.clip(image.astype(np.float64), 0, 255)

    if image.shape[2] == 4:
        # RGBA - composite on white
        has_alpha = True
        alpha = image[..., 3:4] / 255.0
        image = image[..., :3] * alpha + 255.0 * (1 - alpha)
    elif image.shape[2] == 3:
        has_alpha = False
    else:
        raise VectorizationError(f"Expected 3 or 4 channels, got {image.shape[2]}")

    height, width = image.shape[:2]

    return IngestResult(
        image=np.rint(image).astype(np.uint8),
        original_path=path,
        width=width,
        height=height,
        has_alpha=has_alpha
    )
