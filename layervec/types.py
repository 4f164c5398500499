"""Core types for the layer extraction and depth ordering pipeline."""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union
import math

import numpy as np


class VectorizationError(Exception):
    """Base exception for vectorization errors."""
    pass


class QuantizationError(VectorizationError):
    """Exception raised during color quantization."""
    pass


class SegmentationError(VectorizationError):
    """Raised when the segmentation graph is malformed.

    This signals a mask or tracing defect, not bad input, and is never
    recovered from.
    """
    pass


class OperationCancelled(VectorizationError):
    """Raised when a cancellation event is set during processing."""
    pass


@dataclass(frozen=True)
class Point:
    """2D point on the pixel-corner grid."""
    x: float
    y: float

    def as_list(self) -> List[float]:
        return [self.x, self.y]


Polygon = Tuple[Point, ...]


class RgbColor(NamedTuple):
    """8-bit RGB color."""
    r: int
    g: int
    b: int

    def to_hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"


@dataclass(frozen=True, eq=False)
class RasterMask:
    """Immutable width x height bitmap marking the pixels of one region.

    Bits are stored row-major as a read-only (height, width) bool array.
    """
    width: int
    height: int
    bits: np.ndarray

    def __post_init__(self):
        if self.width <= 0:
            raise ValueError(f"Width must be positive, got {self.width}")
        if self.height <= 0:
            raise ValueError(f"Height must be positive, got {self.height}")

        bits = np.asarray(self.bits, dtype=bool)
        if bits.size != self.width * self.height:
            raise ValueError(
                f"Bit mask length {bits.size} does not match mask dimensions "
                f"{self.width}x{self.height}"
            )

        bits = bits.reshape(self.height, self.width).copy()
        bits.setflags(write=False)
        object.__setattr__(self, "bits", bits)

    @classmethod
    def from_indices(cls, width: int, height: int, indices: Sequence[int]) -> "RasterMask":
        """Build a mask with the given flat row-major pixel indices set."""
        flat = np.zeros(width * height, dtype=bool)
        flat[np.asarray(indices, dtype=np.intp)] = True
        return cls(width, height, flat)

    def __getitem__(self, xy: Tuple[int, int]) -> bool:
        x, y = xy
        if not (0 <= x < self.width) or not (0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} mask")
        return bool(self.bits[y, x])

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width

    @property
    def pixel_count(self) -> int:
        return int(np.count_nonzero(self.bits))


def polygon_perimeter(points: Sequence[Point]) -> float:
    """Length of a closed polygon."""
    count = len(points)
    total = 0.0
    for i in range(count):
        a = points[i]
        b = points[(i + 1) % count]
        total += math.hypot(b.x - a.x, b.y - a.y)
    return total


def _validate_layer_fields(layer_id: str, mask: RasterMask, boundary: Sequence[Point], area: int):
    if not isinstance(layer_id, str) or not layer_id.strip():
        raise ValueError("Layer id must be non-empty")
    if mask is None:
        raise TypeError("Layer mask is required")
    if boundary is None or len(boundary) < 3:
        raise ValueError("Boundary must contain at least three points")
    if area <= 0:
        raise ValueError(f"Area must be positive, got {area}")


@dataclass(frozen=True, eq=False)
class ShapeLayer:
    """Admitted connected region with outer boundary and holes.

    The outer boundary winds counter-clockwise (positive shoelace area in
    image coordinates); every hole winds the other way.
    """
    id: str
    color: RgbColor
    mask: RasterMask
    boundary: Polygon
    area: int
    holes: Tuple[Polygon, ...] = ()

    def __post_init__(self):
        _validate_layer_fields(self.id, self.mask, self.boundary, self.area)
        object.__setattr__(self, "boundary", tuple(self.boundary))
        object.__setattr__(self, "holes", tuple(tuple(hole) for hole in (self.holes or ())))

    @property
    def perimeter(self) -> float:
        return polygon_perimeter(self.boundary)


@dataclass(frozen=True, eq=False)
class NoisyLayer:
    """Component excluded from vectorization, kept for diagnostics."""
    id: str
    color: RgbColor
    mask: RasterMask
    boundary: Polygon
    area: int

    def __post_init__(self):
        _validate_layer_fields(self.id, self.mask, self.boundary, self.area)
        object.__setattr__(self, "boundary", tuple(self.boundary))

    @property
    def perimeter(self) -> float:
        return polygon_perimeter(self.boundary)


@dataclass(frozen=True)
class ShapeLayerExtractionResult:
    """Output of the segmenter."""
    shape_layers: Tuple[ShapeLayer, ...]
    noisy_layers: Tuple[NoisyLayer, ...]

    def __post_init__(self):
        if self.shape_layers is None or self.noisy_layers is None:
            raise TypeError("Shape and noisy layer collections are required")
        object.__setattr__(self, "shape_layers", tuple(self.shape_layers))
        object.__setattr__(self, "noisy_layers", tuple(self.noisy_layers))


class DepthOrder:
    """Total back-to-front ordering of layers (0 = farthest)."""

    def __init__(self, depth_by_layer: Mapping[str, int]):
        if depth_by_layer is None:
            raise TypeError("depth_by_layer is required")
        if len(depth_by_layer) == 0:
            raise ValueError("Depth order requires at least one layer")

        seen = set()
        entries: Dict[str, int] = {}
        for layer_id, depth in depth_by_layer.items():
            if not isinstance(layer_id, str) or not layer_id.strip():
                raise ValueError("Layer id must be non-empty")
            if depth < 0:
                raise ValueError(f"Depth index must be non-negative, got {depth} for '{layer_id}'")
            if depth in seen:
                raise ValueError(f"Depth indices must be unique, {depth} is repeated")
            seen.add(depth)
            entries[layer_id] = int(depth)

        if max(seen) != len(seen) - 1:
            raise ValueError("Depth indices must be a dense range starting at 0")

        self._depths = MappingProxyType(entries)

    @property
    def depth_by_layer(self) -> Mapping[str, int]:
        return self._depths

    def depth_of(self, layer_id: str) -> int:
        try:
            return self._depths[layer_id]
        except KeyError:
            raise KeyError(f"Layer '{layer_id}' does not exist in the depth order") from None

    def compare(self, left_id: str, right_id: str) -> int:
        """Return -1, 0 or 1 as ``left_id`` lies behind, level with or in front of ``right_id``."""
        left = self.depth_of(left_id)
        right = self.depth_of(right_id)
        return (left > right) - (left < right)

    def ordered_ids(self) -> List[str]:
        """Layer ids from farthest to nearest."""
        return sorted(self._depths, key=self._depths.__getitem__)

    def as_dict(self) -> Dict[str, int]:
        return dict(self._depths)

    def __getitem__(self, layer_id: str) -> int:
        return self.depth_of(layer_id)

    def __contains__(self, layer_id: object) -> bool:
        return layer_id in self._depths

    def __iter__(self) -> Iterator[str]:
        return iter(self.ordered_ids())

    def __len__(self) -> int:
        return len(self._depths)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DepthOrder):
            return NotImplemented
        return dict(self._depths) == dict(other._depths)

    def __repr__(self) -> str:
        return f"DepthOrder({self.as_dict()!r})"


@dataclass
class ShapeLayerBuilderOptions:
    """Admission thresholds for the segmenter.

    A threshold of 0 disables the corresponding check. A component whose
    area or perimeter is strictly below a threshold becomes a noisy layer.
    """
    noisy_component_minimum_pixel_count: int = 0
    noisy_component_minimum_perimeter: float = 0.0
    max_primary_layer_count: Optional[int] = None

    def validate(self):
        if self.noisy_component_minimum_pixel_count < 0:
            raise ValueError(
                "Pixel threshold must be non-negative, got "
                f"{self.noisy_component_minimum_pixel_count}"
            )
        perimeter = self.noisy_component_minimum_perimeter
        if math.isnan(perimeter) or perimeter < 0:
            raise ValueError(f"Perimeter threshold must be non-negative, got {perimeter}")
        if self.max_primary_layer_count is not None and self.max_primary_layer_count < 0:
            raise ValueError(
                f"Layer cap must be non-negative, got {self.max_primary_layer_count}"
            )


DEFAULT_DEPTH_DELTA = 0.05


@dataclass
class DepthOrderingOptions:
    """Options for depth ordering."""
    # Minimum relative area difference for an ordering edge (0..1)
    delta: float = DEFAULT_DEPTH_DELTA

    @property
    def effective_delta(self) -> float:
        if not math.isfinite(self.delta):
            return DEFAULT_DEPTH_DELTA
        return min(1.0, max(0.0, float(self.delta)))


LabelArray = Union[np.ndarray, Sequence[int]]


@dataclass(frozen=True, eq=False)
class QuantizationResult:
    """Output of color quantization: palette plus per-pixel palette indices."""
    width: int
    height: int
    palette: Tuple[RgbColor, ...]
    labels: np.ndarray

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image dimensions must be positive, got {self.width}x{self.height}")
        if not self.palette:
            raise ValueError("Palette must contain at least one color")

        palette = tuple(RgbColor(*(int(c) for c in color)) for color in self.palette)

        labels = np.asarray(self.labels)
        if labels.size != self.width * self.height:
            raise ValueError(
                f"Label count {labels.size} does not match pixel count {self.width * self.height}"
            )
        if labels.size and not np.issubdtype(labels.dtype, np.integer):
            raise ValueError(f"Labels must be integers, got {labels.dtype}")

        labels = labels.astype(np.int64).reshape(self.height, self.width)
        if labels.min() < 0 or labels.max() >= len(palette):
            raise ValueError("Label index must refer to an existing palette entry")

        labels.setflags(write=False)
        object.__setattr__(self, "palette", palette)
        object.__setattr__(self, "labels", labels)


@dataclass
class PipelineConfig:
    """Configuration for the layer pipeline."""
    # Color quantization
    n_colors: int = 8
    random_state: int = 42
    color_space: str = "lab"

    # Layer admission
    noisy_component_minimum_pixel_count: int = 0
    noisy_component_minimum_perimeter: float = 0.0
    max_primary_layer_count: Optional[int] = None

    # Depth ordering
    depth_delta: float = DEFAULT_DEPTH_DELTA

    def validate(self):
        if self.n_colors < 1:
            raise ValueError(f"n_colors must be >= 1, got {self.n_colors}")
        if self.color_space not in ("lab", "rgb"):
            raise ValueError(f"color_space must be 'lab' or 'rgb', got {self.color_space!r}")
        if not 0.0 <= self.depth_delta <= 1.0:
            raise ValueError(f"depth_delta must be within [0, 1], got {self.depth_delta}")
        self.builder_options().validate()

    def builder_options(self) -> ShapeLayerBuilderOptions:
        return ShapeLayerBuilderOptions(
            noisy_component_minimum_pixel_count=self.noisy_component_minimum_pixel_count,
            noisy_component_minimum_perimeter=self.noisy_component_minimum_perimeter,
            max_primary_layer_count=self.max_primary_layer_count,
        )

    def depth_options(self) -> DepthOrderingOptions:
        return DepthOrderingOptions(delta=self.depth_delta)


@dataclass
class IngestResult:
    """Result from raster image ingestion."""
    image: np.ndarray  # (H, W, 3) uint8 sRGB
    original_path: str
    width: int
    height: int
    has_alpha: bool = False
