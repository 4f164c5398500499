"""Depth-ordered shape layer extraction for raster vectorization."""
from layervec.types import (
    DepthOrder,
    DepthOrderingOptions,
    NoisyLayer,
    OperationCancelled,
    PipelineConfig,
    Point,
    QuantizationResult,
    RasterMask,
    RgbColor,
    SegmentationError,
    ShapeLayer,
    ShapeLayerBuilderOptions,
    ShapeLayerExtractionResult,
    VectorizationError,
)
from layervec.segmentation import LayerIdCounter, ShapeLayerBuilder, segment
from layervec.depth_ordering import DepthOrderingService, compute_depth_order
from layervec.errors import ErrorCode, LayerVecError
from layervec.pipeline import LayerPipeline, PipelineResult

__version__ = "0.1.0"

__all__ = [
    "DepthOrder",
    "DepthOrderingOptions",
    "DepthOrderingService",
    "ErrorCode",
    "LayerIdCounter",
    "LayerPipeline",
    "LayerVecError",
    "NoisyLayer",
    "OperationCancelled",
    "PipelineConfig",
    "PipelineResult",
    "Point",
    "QuantizationResult",
    "RasterMask",
    "RgbColor",
    "SegmentationError",
    "ShapeLayer",
    "ShapeLayerBuilder",
    "ShapeLayerBuilderOptions",
    "ShapeLayerExtractionResult",
    "VectorizationError",
    "compute_depth_order",
    "segment",
]
