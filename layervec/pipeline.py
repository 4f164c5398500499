"""Layer pipeline: ingest, quantize, extract shape layers, order by depth."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union
import json
import logging
import threading
import time

import numpy as np

from layervec.depth_ordering import compute_depth_order
from layervec.errors import ErrorCode, LayerVecError, translate_exception
from layervec.quantization import quantize_image
from layervec.raster_ingest import ingest, ingest_from_array
from layervec.segmentation import ShapeLayerBuilder
from layervec.types import (
    DepthOrder,
    PipelineConfig,
    QuantizationResult,
    ShapeLayer,
    ShapeLayerExtractionResult,
)

logger = logging.getLogger(__name__)

STAGE_NAMES = ("ingest", "quantize", "extract_layers", "order_depth")


@dataclass
class PipelineResult:
    """Everything produced by one pipeline run."""
    quantization: QuantizationResult
    extraction: ShapeLayerExtractionResult
    depth_order: DepthOrder
    timings: Dict[str, float] = field(default_factory=dict)
    source: str = ""

    @property
    def shape_layers(self):
        return self.extraction.shape_layers

    @property
    def noisy_layers(self):
        return self.extraction.noisy_layers

    def layers_back_to_front(self) -> List[ShapeLayer]:
        """Shape layers sorted from farthest (depth 0) to nearest."""
        return sorted(self.shape_layers, key=lambda layer: self.depth_order.depth_of(layer.id))

    def to_report(self) -> dict:
        """JSON-ready summary of the layers and their depths."""
        return {
            "source": self.source,
            "width": self.quantization.width,
            "height": self.quantization.height,
            "palette": [color.to_hex() for color in self.quantization.palette],
            "layers": [
                {
                    "id": layer.id,
                    "depth": self.depth_order.depth_of(layer.id),
                    "color": layer.color.to_hex(),
                    "area": layer.area,
                    "perimeter": round(layer.perimeter, 3),
                    "boundary": [p.as_list() for p in layer.boundary],
                    "holes": [[p.as_list() for p in hole] for hole in layer.holes],
                }
                for layer in self.layers_back_to_front()
            ],
            "noise": [
                {
                    "id": layer.id,
                    "color": layer.color.to_hex(),
                    "area": layer.area,
                    "boundary": [p.as_list() for p in layer.boundary],
                }
                for layer in self.noisy_layers
            ],
            "timings": {name: round(seconds, 4) for name, seconds in self.timings.items()},
        }


def save_report(result: PipelineResult, output_path: Union[str, Path]) -> None:
    """
    Write the JSON layer report.

    Raises:
        LayerVecError: If the file cannot be written
    """
    try:
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(result.to_report(), f, indent=2)
    except OSError as e:
        raise translate_exception(e, stage="write_report") from e
    logger.info(f"Layer report saved to {output_path}")


class LayerPipeline:
    """Runs the segmentation-and-ordering pipeline on images."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        """
        Initialize layer pipeline.

        Args:
            config: Configuration (uses defaults if None)

        Raises:
            LayerVecError: If the configuration is invalid
        """
        self.config = config or PipelineConfig()
        try:
            self.config.validate()
        except ValueError as e:
            raise translate_exception(e, stage="configure") from e

    def process(
        self,
        input_path: Union[str, Path],
        report_path: Optional[Union[str, Path]] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> PipelineResult:
        """
        Process an image file.

        Args:
            input_path: Path to input image
            report_path: Optional path for the JSON layer report
            cancel_event: Cooperative cancellation flag

        Returns:
            PipelineResult
        """
        timings: Dict[str, float] = {}
        ingest_result = self._run_stage("ingest", timings, ingest, input_path)
        return self._finish(
            ingest_result.image, timings, report_path, cancel_event, source=ingest_result.original_path
        )

    def process_array(
        self,
        image: np.ndarray,
        report_path: Optional[Union[str, Path]] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> PipelineResult:
        """Process an in-memory image array."""
        timings: Dict[str, float] = {}
        ingest_result = self._run_stage("ingest", timings, ingest_from_array, image)
        return self._finish(ingest_result.image, timings, report_path, cancel_event)

    def process_quantized(
        self,
        quantization: QuantizationResult,
        report_path: Optional[Union[str, Path]] = None,
        cancel_event: Optional[threading.Event] = None,
        timings: Optional[Dict[str, float]] = None,
        source: str = ""
    ) -> PipelineResult:
        """Run layer extraction and depth ordering on an existing quantization."""
        timings = {} if timings is None else timings

        builder = ShapeLayerBuilder(self.config.builder_options())
        extraction = self._run_stage(
            "extract_layers", timings, builder.build_layers, quantization, cancel_event=cancel_event
        )

        if not extraction.shape_layers:
            raise LayerVecError.from_code(
                ErrorCode.SEGMENTATION_PRODUCED_NO_LAYERS,
                details=f"{len(extraction.noisy_layers)} components were classified as noise",
            )

        depth_order = self._run_stage(
            "order_depth",
            timings,
            compute_depth_order,
            extraction.shape_layers,
            self.config.depth_options(),
            cancel_event=cancel_event,
        )

        result = PipelineResult(
            quantization=quantization,
            extraction=extraction,
            depth_order=depth_order,
            timings=timings,
            source=source,
        )

        total = sum(timings.values())
        logger.info(
            f"Pipeline finished in {total:.2f}s: {len(extraction.shape_layers)} layers, "
            f"{len(extraction.noisy_layers)} noisy"
        )

        if report_path is not None:
            save_report(result, report_path)

        return result

    def _finish(self, image, timings, report_path, cancel_event, source: str = "") -> PipelineResult:
        quantization = self._run_stage(
            "quantize",
            timings,
            quantize_image,
            image,
            n_colors=self.config.n_colors,
            random_state=self.config.random_state,
            color_space=self.config.color_space,
        )
        return self.process_quantized(
            quantization, report_path, cancel_event=cancel_event, timings=timings, source=source
        )

    def _run_stage(self, name: str, timings: Dict[str, float], func, *args, **kwargs):
        logger.info(f"Stage {STAGE_NAMES.index(name) + 1}/{len(STAGE_NAMES)}: {name}")
        start = time.time()
        try:
            return func(*args, **kwargs)
        except Exception as e:
            raise translate_exception(e, stage=name) from e
        finally:
            timings[name] = time.time() - start
