"""Connected-component extraction of shape layers from a quantized label map."""
from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Sequence
import logging
import threading

import numpy as np

from layervec.boundary_tracing import trace_component
from layervec.types import (
    LabelArray,
    NoisyLayer,
    OperationCancelled,
    QuantizationResult,
    RasterMask,
    RgbColor,
    ShapeLayer,
    ShapeLayerBuilderOptions,
    ShapeLayerExtractionResult,
    polygon_perimeter,
)

logger = logging.getLogger(__name__)


@dataclass
class LayerIdCounter:
    """Sequential id source for one segmentation run."""
    next_shape: int = 1
    next_noise: int = 1

    def shape_id(self) -> str:
        layer_id = f"layer-{self.next_shape:04d}"
        self.next_shape += 1
        return layer_id

    def noise_id(self) -> str:
        layer_id = f"noise-{self.next_noise:04d}"
        self.next_noise += 1
        return layer_id


@dataclass
class _Component:
    label: int
    pixels: List[int]
    mask: RasterMask
    boundary: tuple
    holes: list
    perimeter: float

    @property
    def area(self) -> int:
        return len(self.pixels)


def segment(
    label_map: LabelArray,
    palette: Sequence[RgbColor],
    options: Optional[ShapeLayerBuilderOptions] = None,
    *,
    width: Optional[int] = None,
    height: Optional[int] = None,
    counter: Optional[LayerIdCounter] = None,
    cancel_event: Optional[threading.Event] = None
) -> ShapeLayerExtractionResult:
    """
    Split a label map into shape layers and noisy layers.

    Pixels are scanned row-major; every unvisited pixel seeds a 4-connected
    breadth-first flood fill over pixels with the same label. Each component
    is traced into an outer boundary plus holes, then admitted as a shape
    layer or classified as noise by the option thresholds.

    Args:
        label_map: (H, W) array of palette indices, or a flat sequence when
            width and height are given
        palette: Color per label
        options: Admission thresholds (defaults disable all checks)
        width: Image width for flat label sequences
        height: Image height for flat label sequences
        counter: Id sequence to draw layer ids from
        cancel_event: Checked once per flood-fill seed pixel

    Returns:
        ShapeLayerExtractionResult with shape and noisy layers in discovery order

    Raises:
        ValueError: If the label map or options are invalid
        SegmentationError: If a component boundary cannot be traced
        OperationCancelled: If cancel_event is set
    """
    labels = np.asarray(label_map)
    if labels.ndim == 2 and width is None and height is None:
        height, width = labels.shape
    if width is None or height is None:
        raise ValueError("width and height are required for flat label sequences")

    quantization = QuantizationResult(width=width, height=height, palette=tuple(palette), labels=labels)
    return ShapeLayerBuilder(options).build_layers(
        quantization, counter=counter, cancel_event=cancel_event
    )


class ShapeLayerBuilder:
    """Extracts shape layers from quantization results."""

    def __init__(self, options: Optional[ShapeLayerBuilderOptions] = None):
        self.options = options or ShapeLayerBuilderOptions()
        self.options.validate()

    def build_layers(
        self,
        quantization: QuantizationResult,
        counter: Optional[LayerIdCounter] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> ShapeLayerExtractionResult:
        """Segment a quantization result. See :func:`segment`."""
        if quantization is None:
            raise TypeError("quantization is required")

        counter = counter or LayerIdCounter()
        width, height = quantization.width, quantization.height
        labels = quantization.labels.ravel().tolist()
        palette = quantization.palette

        shapes: List[ShapeLayer] = []
        noise: List[NoisyLayer] = []

        for component in self._iter_components(labels, width, height, cancel_event):
            color = palette[component.label]
            if self._is_noisy(component):
                noise.append(NoisyLayer(
                    id=counter.noise_id(),
                    color=color,
                    mask=component.mask,
                    boundary=component.boundary,
                    area=component.area,
                ))
                logger.debug(
                    f"{noise[-1].id}: area={component.area}, "
                    f"perimeter={component.perimeter:.1f} below admission thresholds"
                )
            else:
                shapes.append(ShapeLayer(
                    id=counter.shape_id(),
                    color=color,
                    mask=component.mask,
                    boundary=component.boundary,
                    holes=tuple(component.holes),
                    area=component.area,
                ))

        shapes, demoted = self._enforce_layer_cap(shapes, counter)
        noise.extend(demoted)

        logger.info(
            f"Extracted {len(shapes) + len(noise)} components: "
            f"{len(shapes)} shape layers, {len(noise)} noisy layers"
        )

        return ShapeLayerExtractionResult(shape_layers=tuple(shapes), noisy_layers=tuple(noise))

    def _iter_components(self, labels: List[int], width: int, height: int, cancel_event):
        total = width * height
        visited = np.zeros(total, dtype=bool)
        queue = deque()

        for seed in range(total):
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelled("Shape layer extraction was cancelled")
            if visited[seed]:
                continue

            label = labels[seed]
            pixels = []
            visited[seed] = True
            queue.append(seed)

            while queue:
                current = queue.popleft()
                pixels.append(current)
                x = current % width

                # 4-connected neighbours: left, right, up, down
                if x > 0:
                    _visit(current - 1, label, labels, visited, queue)
                if x + 1 < width:
                    _visit(current + 1, label, labels, visited, queue)
                if current >= width:
                    _visit(current - width, label, labels, visited, queue)
                if current + width < total:
                    _visit(current + width, label, labels, visited, queue)

            mask_bits = np.zeros(total, dtype=bool)
            mask_bits[pixels] = True
            boundary, holes = trace_component(pixels, mask_bits, width, height)

            yield _Component(
                label=label,
                pixels=pixels,
                mask=RasterMask(width, height, mask_bits),
                boundary=boundary,
                holes=holes,
                perimeter=polygon_perimeter(boundary),
            )

    def _is_noisy(self, component: _Component) -> bool:
        min_pixels = self.options.noisy_component_minimum_pixel_count
        min_perimeter = self.options.noisy_component_minimum_perimeter

        if min_pixels > 0 and component.area < min_pixels:
            return True
        if min_perimeter > 0 and component.perimeter < min_perimeter:
            return True
        return False

    def _enforce_layer_cap(self, shapes: List[ShapeLayer], counter: LayerIdCounter):
        cap = self.options.max_primary_layer_count
        if not cap or len(shapes) <= cap:
            return shapes, []

        by_size = sorted(shapes, key=lambda layer: (layer.area, layer.id))
        to_demote = by_size[:len(shapes) - cap]
        demoted_ids = {layer.id for layer in to_demote}

        demoted = [
            NoisyLayer(
                id=counter.noise_id(),
                color=layer.color,
                mask=layer.mask,
                boundary=layer.boundary,
                area=layer.area,
            )
            for layer in to_demote
        ]
        logger.info(f"Layer cap {cap} reached: demoted {len(demoted)} smallest shape layers to noise")

        kept = [layer for layer in shapes if layer.id not in demoted_ids]
        return kept, demoted


def _visit(index: int, label: int, labels: List[int], visited: np.ndarray, queue: deque):
    if not visited[index] and labels[index] == label:
        visited[index] = True
        queue.append(index)
