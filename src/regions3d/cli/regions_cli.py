from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from regions3d.api import RegionVisualizer
from regions3d.core.alignment import compute_spatial_overlap, describe_grid
from regions3d.core.colors import to_hex
from regions3d.core.config_io import load_project_config
from regions3d.core.models import GrayWindow, ProjectConfig
from regions3d.core.region import RegionVolume

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    """
    CLI for extracting per-label region surfaces from an intensity + label pair.
    """
    parser = argparse.ArgumentParser(
        prog="regions3d",
        description="Build one 3D surface per label region of a segmented scan.",
    )

    parser.add_argument(
        "intensity",
        type=Path,
        nargs="?",
        default=None,
        help="Intensity volume (.nii, .nii.gz, .nrrd, .nhdr). Optional with --config.",
    )

    parser.add_argument(
        "labels",
        type=Path,
        nargs="?",
        default=None,
        help="Label volume on the same subject. Optional with --config.",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Project YAML with volume paths, gray window and geometry options.",
    )

    parser.add_argument(
        "--gray-window",
        type=float,
        nargs=2,
        metavar=("MIN", "MAX"),
        default=None,
        help="Gray value window biasing the isosurface threshold (active if MIN < MAX).",
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads for per-label surface builds (default: from config, 1).",
    )

    parser.add_argument(
        "--export",
        type=Path,
        default=None,
        help="Write the region information report to this text file.",
    )

    parser.add_argument(
        "--camera",
        type=float,
        nargs=3,
        metavar=("X", "Y", "Z"),
        default=None,
        help="Camera position; prints the back-to-front draw order for it.",
    )

    parser.add_argument(
        "--info",
        action="store_true",
        help="Print spatial information of both volumes before processing.",
    )

    parser.add_argument(
        "--view",
        action="store_true",
        help="Open the interactive viewer (requires the 'gui' extras).",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug).",
    )

    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def format_summary(region: RegionVolume) -> str:
    x, y, z = (float(c) for c in region.centroid)
    geometry = "yes" if region.has_geometry else "no"
    return (
        f"{region.label:>5}  {to_hex(region.color)}  geometry={geometry:<3}  "
        f"centroid=({x:.2f}, {y:.2f}, {z:.2f})"
    )


def _resolve_project(args: argparse.Namespace, parser: argparse.ArgumentParser) -> ProjectConfig:
    project = load_project_config(args.config) if args.config is not None else ProjectConfig()

    if args.intensity is not None:
        project.intensity_path = args.intensity
    if args.labels is not None:
        project.label_path = args.labels
    if args.gray_window is not None:
        project.gray_window = GrayWindow(*args.gray_window)
    if args.workers is not None:
        if args.workers < 1:
            parser.error("--workers must be >= 1")
        project.regions.max_workers = args.workers

    if not args.view and (project.intensity_path is None or project.label_path is None):
        parser.error("both INTENSITY and LABELS are required (positionally or via --config)")
    return project


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    _configure_logging(args.verbose)

    try:
        project = _resolve_project(args, parser)
    except (OSError, ValueError) as exc:
        print(f"error: invalid config {args.config}: {exc}", file=sys.stderr)
        return 2

    if args.view:
        from regions3d.gui.app import run

        return run(project)

    viz = RegionVisualizer(project.regions)
    errors: List[str] = []
    viz.on_error(errors.append)

    if not viz.load_intensity_volume(project.intensity_path):
        print(f"error: {errors[-1]}", file=sys.stderr)
        return 1
    if not viz.load_label_volume(project.label_path):
        print(f"error: {errors[-1]}", file=sys.stderr)
        return 1

    if args.info:
        print(describe_grid(viz.intensity_volume, "Intensity"))
        print(describe_grid(viz.label_volume, "Labels"))
        overlap = compute_spatial_overlap(viz.intensity_volume, viz.label_volume)
        print(f"Spatial overlap: {overlap:.3f}")

    window = project.gray_window
    if window is not None:
        ok = viz.process_regions(window.min_gray, window.max_gray)
    else:
        ok = viz.process_regions()
    if not ok:
        print(f"error: {errors[-1]}", file=sys.stderr)
        return 1

    print(f"Regions: {viz.region_count()}")
    for region in viz.registry:
        print(format_summary(region))

    if args.camera is not None:
        order = viz.sort_by_camera(args.camera)
        print("Draw order (farthest first): " + " ".join(str(label) for label in order))

    if args.export is not None:
        if not viz.export_region_info(args.export):
            print(f"error: {errors[-1]}", file=sys.stderr)
            return 1
        print(f"Region info written to {args.export}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
