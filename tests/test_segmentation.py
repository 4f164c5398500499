"""Tests for shape layer extraction."""
import threading

import numpy as np
import pytest

from layervec.boundary_tracing import signed_area
from layervec.segmentation import LayerIdCounter, ShapeLayerBuilder, segment
from layervec.types import (
    OperationCancelled,
    Point,
    QuantizationResult,
    RgbColor,
    ShapeLayerBuilderOptions,
)


def _area(points):
    return signed_area([(p.x, p.y) for p in points])


class TestSegment:
    """Test connected component extraction."""

    def test_two_color_columns(self, two_color_palette):
        """Test a 2x2 image with two color columns yields two layers."""
        labels = np.array([[0, 1], [0, 1]])

        result = segment(labels, two_color_palette)

        assert result.noisy_layers == ()
        left, right = result.shape_layers

        assert left.id == "layer-0001"
        assert left.area == 2
        assert left.color == RgbColor(10, 20, 30)
        assert left.mask[0, 0] and left.mask[0, 1]
        assert not left.mask[1, 0]
        assert len(left.boundary) == 4
        assert Point(0, 0) in left.boundary
        assert Point(1, 2) in left.boundary

        assert right.id == "layer-0002"
        assert right.area == 2
        assert right.color == RgbColor(200, 210, 220)
        assert right.mask[1, 0] and right.mask[1, 1]
        assert not right.mask[0, 0]
        assert len(right.boundary) == 4
        assert Point(2, 0) in right.boundary
        assert Point(1, 2) in right.boundary

    def test_ring_with_hole(self):
        """Test a ring around a single pixel produces one layer with one hole."""
        palette = [RgbColor(50, 60, 70), RgbColor(200, 210, 220)]
        labels = np.array([
            [0, 0, 0],
            [0, 1, 0],
            [0, 0, 0],
        ])
        options = ShapeLayerBuilderOptions(noisy_component_minimum_pixel_count=2)

        result = segment(labels, palette, options)

        assert len(result.shape_layers) == 1
        layer = result.shape_layers[0]
        assert layer.id == "layer-0001"
        assert layer.area == 8
        assert len(layer.holes) == 1

        hole = layer.holes[0]
        assert len(hole) == 4
        assert set(hole) == {Point(1, 1), Point(2, 1), Point(2, 2), Point(1, 2)}
        assert set(layer.boundary) == {Point(0, 0), Point(3, 0), Point(3, 3), Point(0, 3)}

        assert len(result.noisy_layers) == 1
        noise = result.noisy_layers[0]
        assert noise.id == "noise-0001"
        assert noise.area == 1
        assert noise.color == RgbColor(200, 210, 220)

    def test_outer_and_hole_windings_are_opposite(self):
        """Test outer boundaries wind positively and holes negatively."""
        labels = np.zeros((5, 5), dtype=int)
        labels[2, 2] = 1

        result = segment(labels, [RgbColor(0, 0, 0), RgbColor(255, 255, 255)])

        ring = result.shape_layers[0]
        assert ring.area == 24
        assert _area(ring.boundary) == 25
        assert len(ring.holes) == 1
        assert _area(ring.holes[0]) == -1

    def test_multiple_holes(self):
        """Test a component with two separate holes."""
        labels = np.array([
            [0, 0, 0, 0, 0],
            [0, 1, 0, 1, 0],
            [0, 0, 0, 0, 0],
        ])

        result = segment(labels, [RgbColor(0, 0, 0), RgbColor(9, 9, 9)])

        outer = result.shape_layers[0]
        assert outer.area == 13
        assert len(outer.holes) == 2
        assert all(_area(hole) < 0 for hole in outer.holes)
        # The two hole pixels are separate components
        assert len(result.shape_layers) == 3

    def test_hole_touching_notch_diagonally(self):
        """Test a hole that touches an outer notch at one corner stays a hole."""
        labels = np.array([
            [0, 0, 0],
            [0, 1, 0],
            [0, 0, 1],
        ])

        result = segment(labels, [RgbColor(0, 0, 0), RgbColor(9, 9, 9)])

        outer = result.shape_layers[0]
        assert outer.area == 7
        assert len(outer.boundary) == 6
        assert _area(outer.boundary) == 8
        assert len(outer.holes) == 1
        assert len(outer.holes[0]) == 4
        assert len(result.shape_layers) == 3

    def test_l_shape_keeps_reflex_corner(self):
        """Test an L-shaped component keeps all six corners."""
        labels = np.array([[0, 1], [0, 0]])

        result = segment(labels, [RgbColor(0, 0, 0), RgbColor(9, 9, 9)])

        l_shape = result.shape_layers[0]
        assert l_shape.area == 3
        assert list(l_shape.boundary) == [
            Point(0, 0), Point(1, 0), Point(1, 1), Point(2, 1), Point(2, 2), Point(0, 2)
        ]
        assert l_shape.perimeter == pytest.approx(8.0)

    def test_diagonal_pixels_are_separate_components(self):
        """Test 4-connectivity: diagonal neighbours do not merge."""
        labels = np.array([[0, 1], [1, 0]])

        result = segment(labels, [RgbColor(0, 0, 0), RgbColor(9, 9, 9)])

        assert len(result.shape_layers) == 4
        assert all(layer.area == 1 for layer in result.shape_layers)
        assert [layer.id for layer in result.shape_layers] == [
            "layer-0001", "layer-0002", "layer-0003", "layer-0004"
        ]

    def test_masks_partition_image(self):
        """Test every pixel belongs to exactly one shape or noisy layer."""
        rng = np.random.default_rng(0)
        labels = rng.integers(0, 3, size=(12, 15))
        palette = [RgbColor(0, 0, 0), RgbColor(128, 128, 128), RgbColor(255, 255, 255)]
        options = ShapeLayerBuilderOptions(noisy_component_minimum_pixel_count=3)

        result = segment(labels, palette, options)

        coverage = np.zeros((12, 15), dtype=int)
        for layer in result.shape_layers + result.noisy_layers:
            coverage += layer.mask.bits
        assert np.all(coverage == 1)

        for layer in result.shape_layers:
            assert _area(layer.boundary) > 0
            assert all(_area(hole) < 0 for hole in layer.holes)
            assert layer.area == layer.mask.pixel_count

    def test_flat_label_sequence(self, two_color_palette):
        """Test flat label sequences with explicit dimensions."""
        result = segment([0, 1, 0, 1], two_color_palette, width=2, height=2)

        assert len(result.shape_layers) == 2

    def test_flat_label_sequence_requires_dimensions(self, two_color_palette):
        """Test flat labels without dimensions are rejected."""
        with pytest.raises(ValueError):
            segment([0, 1, 0, 1], two_color_palette)

    def test_label_outside_palette(self, two_color_palette):
        """Test labels must index the palette."""
        with pytest.raises(ValueError, match="palette"):
            segment(np.array([[0, 2]]), two_color_palette)

    def test_deterministic(self):
        """Test repeated runs give identical ids, areas and boundaries."""
        rng = np.random.default_rng(7)
        labels = rng.integers(0, 4, size=(10, 10))
        palette = [RgbColor(i, i, i) for i in range(4)]

        first = segment(labels, palette)
        second = segment(labels, palette)

        assert [l.id for l in first.shape_layers] == [l.id for l in second.shape_layers]
        assert [l.area for l in first.shape_layers] == [l.area for l in second.shape_layers]
        assert [l.boundary for l in first.shape_layers] == [l.boundary for l in second.shape_layers]


class TestAdmission:
    """Test noisy component admission thresholds."""

    def test_single_pixel_is_noise(self, two_color_palette):
        """Test a 1-pixel component with minimum pixel count 2 is noise."""
        labels = np.array([[0, 0, 1]])
        options = ShapeLayerBuilderOptions(noisy_component_minimum_pixel_count=2)

        result = segment(labels, two_color_palette, options)

        assert [layer.area for layer in result.shape_layers] == [2]
        assert [layer.id for layer in result.noisy_layers] == ["noise-0001"]
        assert result.noisy_layers[0].area == 1

    def test_area_threshold(self, two_color_palette):
        """Test components below the pixel threshold become noise."""
        labels = np.array([[0, 0, 0, 1, 1]])
        options = ShapeLayerBuilderOptions(noisy_component_minimum_pixel_count=3)

        result = segment(labels, two_color_palette, options)

        assert len(result.shape_layers) == 1
        assert result.shape_layers[0].id == "layer-0001"
        assert result.shape_layers[0].area == 3
        assert len(result.noisy_layers) == 1
        assert result.noisy_layers[0].id == "noise-0001"
        assert result.noisy_layers[0].area == 2

    def test_threshold_boundary_is_admitted(self, two_color_palette):
        """Test area and perimeter exactly at the thresholds are admitted."""
        labels = np.array([[0, 0, 1]])
        options = ShapeLayerBuilderOptions(
            noisy_component_minimum_pixel_count=2,
            noisy_component_minimum_perimeter=6.0,
        )

        result = segment(labels, two_color_palette, options)

        assert len(result.shape_layers) == 1
        assert result.shape_layers[0].area == 2
        assert result.shape_layers[0].perimeter == pytest.approx(6.0)
        assert len(result.noisy_layers) == 1
        assert result.noisy_layers[0].area == 1

    def test_perimeter_threshold(self, two_color_palette):
        """Test components with a short outline become noise."""
        labels = np.array([[0, 0, 1]])
        options = ShapeLayerBuilderOptions(noisy_component_minimum_perimeter=5.0)

        result = segment(labels, two_color_palette, options)

        assert [layer.area for layer in result.shape_layers] == [2]
        assert [layer.area for layer in result.noisy_layers] == [1]

    def test_layer_cap_demotes_smallest(self):
        """Test the layer cap demotes the smallest layers to noise."""
        labels = np.array([[0, 0, 0, 1, 1, 2]])
        palette = [RgbColor(0, 0, 0), RgbColor(1, 1, 1), RgbColor(2, 2, 2)]
        options = ShapeLayerBuilderOptions(max_primary_layer_count=1)

        result = segment(labels, palette, options)

        assert [layer.id for layer in result.shape_layers] == ["layer-0001"]
        assert [(layer.id, layer.area) for layer in result.noisy_layers] == [
            ("noise-0001", 1),
            ("noise-0002", 2),
        ]

    def test_layer_cap_ties_broken_by_id(self, two_color_palette):
        """Test equal-area layers are demoted in ascending id order."""
        labels = np.array([[0, 0, 1, 1]])
        options = ShapeLayerBuilderOptions(max_primary_layer_count=1)

        result = segment(labels, two_color_palette, options)

        assert [layer.id for layer in result.shape_layers] == ["layer-0002"]
        assert len(result.noisy_layers) == 1

    def test_layer_cap_zero_disables(self, two_color_palette):
        """Test a cap of 0 keeps every layer."""
        labels = np.array([[0, 1, 0, 1]])
        options = ShapeLayerBuilderOptions(max_primary_layer_count=0)

        result = segment(labels, two_color_palette, options)

        assert len(result.shape_layers) == 4

    def test_invalid_options(self):
        """Test negative thresholds are rejected."""
        with pytest.raises(ValueError):
            ShapeLayerBuilder(ShapeLayerBuilderOptions(noisy_component_minimum_pixel_count=-1))
        with pytest.raises(ValueError):
            ShapeLayerBuilder(ShapeLayerBuilderOptions(noisy_component_minimum_perimeter=float("nan")))


class TestShapeLayerBuilder:
    """Test the builder entry point."""

    def test_explicit_counter(self, two_color_palette):
        """Test ids are drawn from the supplied counter."""
        quantization = QuantizationResult(2, 1, tuple(two_color_palette), np.array([0, 1]))
        counter = LayerIdCounter(next_shape=5)

        result = ShapeLayerBuilder().build_layers(quantization, counter=counter)

        assert [layer.id for layer in result.shape_layers] == ["layer-0005", "layer-0006"]
        assert counter.next_shape == 7
        assert counter.next_noise == 1

    def test_cancellation(self, two_color_palette):
        """Test a set cancel event stops extraction."""
        quantization = QuantizationResult(2, 1, tuple(two_color_palette), np.array([0, 1]))
        event = threading.Event()
        event.set()

        with pytest.raises(OperationCancelled):
            ShapeLayerBuilder().build_layers(quantization, cancel_event=event)

    def test_none_quantization(self):
        """Test a missing quantization result is rejected."""
        with pytest.raises(TypeError):
            ShapeLayerBuilder().build_layers(None)
