"""Error codes and descriptors for pipeline-level failures."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from layervec.types import (
    OperationCancelled,
    QuantizationError,
    SegmentationError,
    VectorizationError,
)


class ErrorCode(Enum):
    """Known pipeline failure codes."""
    INPUT_FILE_NOT_FOUND = "input_file_not_found"
    IMAGE_DECODE_FAILED = "image_decode_failed"
    INVALID_CONFIGURATION = "invalid_configuration"
    QUANTIZATION_FAILED = "quantization_failed"
    SEGMENTATION_PRODUCED_NO_LAYERS = "segmentation_produced_no_layers"
    SEGMENTATION_INTERNAL_ERROR = "segmentation_internal_error"
    DEPTH_ORDERING_FAILED = "depth_ordering_failed"
    OUTPUT_WRITE_FAILED = "output_write_failed"
    OPERATION_CANCELLED = "operation_cancelled"
    UNEXPECTED_PIPELINE_FAILURE = "unexpected_pipeline_failure"


class ErrorCategory(Enum):
    """Area of the pipeline an error belongs to."""
    INPUT = "input"
    CONFIGURATION = "configuration"
    QUANTIZATION = "quantization"
    SEGMENTATION = "segmentation"
    DEPTH_ORDERING = "depth_ordering"
    OUTPUT = "output"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class ErrorDescriptor:
    """Classification and guidance for an error code."""
    code: ErrorCode
    category: ErrorCategory
    summary: str
    recommended_action: str


_DESCRIPTORS = [
    ErrorDescriptor(
        ErrorCode.INPUT_FILE_NOT_FOUND,
        ErrorCategory.INPUT,
        "The input image file could not be found.",
        "Verify the input path is correct and points to an accessible file.",
    ),
    ErrorDescriptor(
        ErrorCode.IMAGE_DECODE_FAILED,
        ErrorCategory.INPUT,
        "The image could not be decoded.",
        "Ensure the file is not corrupted and is a format Pillow can read (PNG, JPEG, ...).",
    ),
    ErrorDescriptor(
        ErrorCode.INVALID_CONFIGURATION,
        ErrorCategory.CONFIGURATION,
        "The pipeline configuration is invalid.",
        "Check --colors, --delta and the noisy-layer thresholds.",
    ),
    ErrorDescriptor(
        ErrorCode.QUANTIZATION_FAILED,
        ErrorCategory.QUANTIZATION,
        "Color quantization failed.",
        "Lower --colors or check that the image has pixel data.",
    ),
    ErrorDescriptor(
        ErrorCode.SEGMENTATION_PRODUCED_NO_LAYERS,
        ErrorCategory.SEGMENTATION,
        "Segmentation produced no usable shape layers.",
        "Adjust the color count or the noisy-layer thresholds and retry.",
    ),
    ErrorDescriptor(
        ErrorCode.SEGMENTATION_INTERNAL_ERROR,
        ErrorCategory.SEGMENTATION,
        "The segmentation graph is malformed.",
        "Report the issue together with the input image.",
    ),
    ErrorDescriptor(
        ErrorCode.DEPTH_ORDERING_FAILED,
        ErrorCategory.DEPTH_ORDERING,
        "Depth ordering rejected the extracted layers.",
        "Review the segmentation result; all layers must share the image size.",
    ),
    ErrorDescriptor(
        ErrorCode.OUTPUT_WRITE_FAILED,
        ErrorCategory.OUTPUT,
        "Writing the layer report failed.",
        "Confirm the output directory exists and is writable.",
    ),
    ErrorDescriptor(
        ErrorCode.OPERATION_CANCELLED,
        ErrorCategory.UNEXPECTED,
        "Processing was cancelled.",
        "Re-run the command if the cancellation was not intended.",
    ),
    ErrorDescriptor(
        ErrorCode.UNEXPECTED_PIPELINE_FAILURE,
        ErrorCategory.UNEXPECTED,
        "An unexpected error interrupted the pipeline.",
        "Re-run with --verbose and report the issue.",
    ),
]

_CATALOG: Dict[ErrorCode, ErrorDescriptor] = {d.code: d for d in _DESCRIPTORS}


def get_descriptor(code: ErrorCode) -> ErrorDescriptor:
    """Return the descriptor for ``code``."""
    try:
        return _CATALOG[code]
    except KeyError:
        raise ValueError(f"Unknown error code: {code!r}") from None


def all_descriptors() -> List[ErrorDescriptor]:
    return list(_DESCRIPTORS)


class LayerVecError(VectorizationError):
    """Pipeline error carrying a catalog descriptor."""

    def __init__(self, descriptor: ErrorDescriptor, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.descriptor = descriptor
        self.details = details

    @property
    def code(self) -> ErrorCode:
        return self.descriptor.code

    @property
    def category(self) -> ErrorCategory:
        return self.descriptor.category

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[str] = None,
        cause: Optional[BaseException] = None
    ) -> "LayerVecError":
        descriptor = get_descriptor(code)
        message = descriptor.summary
        if descriptor.recommended_action:
            message += f" Recommended action: {descriptor.recommended_action}"
        if details and details.strip():
            message += f" Details: {details}"

        error = cls(descriptor, message, details)
        if cause is not None:
            error.__cause__ = cause
        return error


def translate_exception(exc: BaseException, stage: Optional[str] = None) -> LayerVecError:
    """
    Map an exception raised inside the pipeline onto a catalog error.

    Args:
        exc: The exception to translate
        stage: Pipeline stage name, used to classify plain ValueErrors

    Returns:
        LayerVecError (``exc`` itself if it already is one)
    """
    if isinstance(exc, LayerVecError):
        return exc

    if isinstance(exc, OSError) and stage == "write_report":
        code = ErrorCode.OUTPUT_WRITE_FAILED
    elif isinstance(exc, FileNotFoundError):
        code = ErrorCode.INPUT_FILE_NOT_FOUND
    elif isinstance(exc, OperationCancelled):
        code = ErrorCode.OPERATION_CANCELLED
    elif isinstance(exc, SegmentationError):
        code = ErrorCode.SEGMENTATION_INTERNAL_ERROR
    elif isinstance(exc, QuantizationError) or (isinstance(exc, ValueError) and stage == "quantize"):
        code = ErrorCode.QUANTIZATION_FAILED
    elif isinstance(exc, VectorizationError) and stage == "ingest":
        code = ErrorCode.IMAGE_DECODE_FAILED
    elif isinstance(exc, (ValueError, TypeError)) and stage == "order_depth":
        code = ErrorCode.DEPTH_ORDERING_FAILED
    elif isinstance(exc, (ValueError, TypeError)) and stage in (None, "configure"):
        code = ErrorCode.INVALID_CONFIGURATION
    else:
        code = ErrorCode.UNEXPECTED_PIPELINE_FAILURE

    return LayerVecError.from_code(code, details=str(exc) or type(exc).__name__, cause=exc)
