"""Command line interface for layervec."""
import argparse
import logging
import sys
from pathlib import Path

from layervec.debug_utils import audit_components, audit_partition, audit_windings
from layervec.errors import LayerVecError
from layervec.pipeline import LayerPipeline
from layervec.types import DEFAULT_DEPTH_DELTA, PipelineConfig


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog='layervec',
        description='Extract depth-ordered shape layers from a raster image'
    )

    parser.add_argument(
        'input',
        type=str,
        help='Input image path'
    )

    parser.add_argument(
        '-o', '--output',
        type=str,
        help='Output JSON report path (default: input.layers.json)'
    )

    parser.add_argument(
        '--colors',
        type=int,
        default=8,
        help='Number of quantization colors (default: 8)'
    )

    parser.add_argument(
        '--color-space',
        choices=['lab', 'rgb'],
        default='lab',
        help='Color space used for clustering (default: lab)'
    )

    parser.add_argument(
        '--min-pixels',
        type=int,
        default=0,
        help='Components with fewer pixels become noise (default: 0, disabled)'
    )

    parser.add_argument(
        '--min-perimeter',
        type=float,
        default=0.0,
        help='Components with a shorter outline become noise (default: 0, disabled)'
    )

    parser.add_argument(
        '--max-layers',
        type=int,
        default=None,
        help='Keep at most this many shape layers; smaller ones become noise'
    )

    parser.add_argument(
        '--delta',
        type=float,
        default=DEFAULT_DEPTH_DELTA,
        help=f'Minimum relative area difference for a depth edge (default: {DEFAULT_DEPTH_DELTA})'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=42,
        help='Random seed for quantization (default: 42)'
    )

    parser.add_argument(
        '--audit',
        action='store_true',
        help='Run partition, winding and component audits on the result'
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    verbosity.add_argument('-q', '--quiet', action='store_true', help='Only log errors')

    return parser


def _configure_logging(parsed_args):
    if parsed_args.verbose:
        level = logging.DEBUG
    elif parsed_args.quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')


def main(args=None):
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)
    _configure_logging(parsed_args)

    input_path = Path(parsed_args.input)
    if parsed_args.output:
        output_path = Path(parsed_args.output)
    else:
        output_path = input_path.with_suffix('.layers.json')

    config = PipelineConfig(
        n_colors=parsed_args.colors,
        random_state=parsed_args.seed,
        color_space=parsed_args.color_space,
        noisy_component_minimum_pixel_count=parsed_args.min_pixels,
        noisy_component_minimum_perimeter=parsed_args.min_perimeter,
        max_primary_layer_count=parsed_args.max_layers,
        depth_delta=parsed_args.delta,
    )

    try:
        pipeline = LayerPipeline(config)
        result = pipeline.process(input_path, output_path)
    except LayerVecError as e:
        print(f"Error [{e.code.value}]: {e}", file=sys.stderr)
        return 1

    q = result.quantization
    print(f"Image: {q.width}x{q.height}, {len(q.palette)} colors")
    print(f"Layers: {len(result.shape_layers)} shape, {len(result.noisy_layers)} noise")
    for layer in result.layers_back_to_front():
        print(
            f"  depth {result.depth_order.depth_of(layer.id):3d}  {layer.id}  "
            f"{layer.color.to_hex()}  area={layer.area}  holes={len(layer.holes)}"
        )
    print(f"Report: {output_path}")

    if parsed_args.audit:
        partition = audit_partition(result.extraction, q.width, q.height)
        windings = audit_windings(result.shape_layers)
        components = audit_components(q, result.extraction)
        ok = (
            partition['is_partition']
            and windings['bad_outer'] == 0
            and windings['bad_holes'] == 0
            and components['matches']
        )
        print(f"Audit: {'PASS' if ok else 'FAIL'}")
        return 0 if ok else 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
