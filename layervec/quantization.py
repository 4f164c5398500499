"""K-means color quantization producing per-pixel palette labels."""
from typing import Sequence
import logging

import numpy as np
from sklearn.cluster import KMeans
from skimage.color import rgb2lab

from layervec.types import QuantizationError, QuantizationResult, RgbColor

logger = logging.getLogger(__name__)


def quantize_image(
    image: np.ndarray,
    n_colors: int = 8,
    random_state: int = 42,
    color_space: str = "lab"
) -> QuantizationResult:
    """
    Quantize an image to a small palette with K-means.

    Clustering runs in CIELAB (``color_space="lab"``) or raw RGB. The
    palette entry of each cluster is the mean sRGB color of its pixels.
    Labels are renumbered in row-major order of first appearance, and
    clusters that end up empty are dropped.

    Args:
        image: (H, W, 3) uint8 sRGB image
        n_colors: Maximum number of palette colors (must be >= 1)
        random_state: Random seed for reproducibility
        color_space: "lab" or "rgb"

    Returns:
        QuantizationResult

    Raises:
        ValueError: If n_colors < 1 or color_space is unknown
        QuantizationError: If the image is empty or malformed
    """
    if n_colors < 1:
        raise ValueError(f"n_colors must be >= 1, got {n_colors}")

    if color_space not in ("lab", "rgb"):
        raise ValueError(f"color_space must be 'lab' or 'rgb', got {color_space!r}")

    image = np.asarray(image)
    if image.size == 0:
        raise QuantizationError("Cannot quantize empty image")

    if image.ndim != 3 or image.shape[2] != 3:
        raise QuantizationError(f"Expected (H, W, 3) image, got shape {image.shape}")

    h, w = image.shape[:2]
    pixels = image.reshape(-1, 3).astype(np.uint8)

    unique_colors = np.unique(pixels, axis=0)
    n_clusters = min(n_colors, len(unique_colors))

    if color_space == "lab":
        features = rgb2lab(pixels.reshape(1, -1, 3)).reshape(-1, 3)
    else:
        features = pixels.astype(np.float64)

    if n_clusters == 1:
        raw_labels = np.zeros(len(pixels), dtype=np.int64)
    else:
        logger.info(f"Running K-means with {n_clusters} colors in {color_space} space")
        try:
            kmeans = KMeans(n_clusters=n_clusters, random_state=random_state, n_init=10)
            raw_labels = kmeans.fit_predict(features)
        except ValueError as e:
            raise QuantizationError(f"Color quantization failed: {e}") from e

    labels, order = _renumber_by_first_appearance(raw_labels)

    palette = []
    for cluster in order:
        members = pixels[raw_labels == cluster]
        mean = np.rint(members.mean(axis=0)).astype(int)
        palette.append(RgbColor(*(int(c) for c in mean)))

    logger.info(f"Quantized {w}x{h} image to {len(palette)} colors")

    return QuantizationResult(width=w, height=h, palette=tuple(palette), labels=labels.reshape(h, w))


def _renumber_by_first_appearance(raw_labels: np.ndarray):
    _, first_index = np.unique(raw_labels, return_index=True)
    order = raw_labels[np.sort(first_index)]

    remap = np.full(int(raw_labels.max()) + 1, -1, dtype=np.int64)
    remap[order] = np.arange(len(order))
    return remap[raw_labels], order


def quantization_from_label_map(
    label_map: np.ndarray,
    palette: Sequence[Sequence[int]]
) -> QuantizationResult:
    """
    Wrap an existing (H, W) label map and palette as a QuantizationResult.

    Raises:
        ValueError: If the label map is not 2D or references missing colors
    """
    label_map = np.asarray(label_map)
    if label_map.ndim != 2:
        raise ValueError(f"Expected 2D label map, got {label_map.ndim}D")

    h, w = label_map.shape
    return QuantizationResult(
        width=w,
        height=h,
        palette=tuple(RgbColor(*(int(c) for c in color)) for color in palette),
        labels=label_map
    )
