"""Debug utilities for auditing extracted layers."""
import logging
from typing import Sequence

import numpy as np
from scipy import ndimage

from layervec.boundary_tracing import signed_area
from layervec.types import QuantizationResult, ShapeLayer, ShapeLayerExtractionResult

logger = logging.getLogger(__name__)

# 4-connectivity structuring element
_FOUR_CONNECTED = np.array([[0, 1, 0], [1, 1, 1], [0, 1, 0]], dtype=bool)


def audit_partition(result: ShapeLayerExtractionResult, width: int, height: int) -> dict:
    """
    Check that shape and noisy layer masks partition the image.

    Args:
        result: Segmenter output
        width: Image width
        height: Image height

    Returns:
        Dictionary with audit statistics
    """
    coverage = np.zeros((height, width), dtype=np.int32)
    for layer in list(result.shape_layers) + list(result.noisy_layers):
        coverage += layer.mask.bits

    stats = {
        "total_pixels": width * height,
        "uncovered_pixels": int(np.count_nonzero(coverage == 0)),
        "overlapping_pixels": int(np.count_nonzero(coverage > 1)),
    }
    stats["is_partition"] = stats["uncovered_pixels"] == 0 and stats["overlapping_pixels"] == 0

    if stats["is_partition"]:
        logger.info(f"Partition check: all {stats['total_pixels']} pixels covered exactly once")
    else:
        logger.error(
            f"PARTITION VIOLATION: {stats['uncovered_pixels']} uncovered, "
            f"{stats['overlapping_pixels']} overlapping pixels"
        )

    return stats


def audit_windings(layers: Sequence[ShapeLayer]) -> dict:
    """Count outer boundaries and holes with the wrong winding."""
    stats = {
        "layers": len(layers),
        "holes": 0,
        "bad_outer": 0,
        "bad_holes": 0,
    }

    for layer in layers:
        if signed_area([(p.x, p.y) for p in layer.boundary]) <= 0:
            stats["bad_outer"] += 1
            logger.warning(f"{layer.id}: outer boundary is not counter-clockwise")
        for hole in layer.holes:
            stats["holes"] += 1
            if signed_area([(p.x, p.y) for p in hole]) >= 0:
                stats["bad_holes"] += 1
                logger.warning(f"{layer.id}: hole does not wind opposite to the outer boundary")

    return stats


def audit_components(quantization: QuantizationResult, result: ShapeLayerExtractionResult) -> dict:
    """
    Cross-check the number of extracted components against scipy labelling.
    """
    expected = 0
    for label in np.unique(quantization.labels):
        _, count = ndimage.label(quantization.labels == label, structure=_FOUR_CONNECTED)
        expected += count

    actual = len(result.shape_layers) + len(result.noisy_layers)
    stats = {
        "expected_components": int(expected),
        "extracted_components": actual,
        "matches": int(expected) == actual,
    }

    if not stats["matches"]:
        logger.error(
            f"COMPONENT MISMATCH: expected {expected} 4-connected components, "
            f"extracted {actual}"
        )
    else:
        logger.debug(f"Component check: {actual} components")

    return stats
