"""
Command line entry point of the large-scale meshing pipeline.

Usage:
    large-scale-meshing --ini mvs.ini --depthMapFolder ./depthMap \
        --depthMapFilterFolder ./depthMapFilter -o ./out/mesh.obj --partitioning auto
"""

import argparse
import sys
import time
from typing import List, Optional

from .config import DEFAULT_MAX_PTS, DEFAULT_MAX_PTS_PER_VOXEL, MeshingConfig, MeshingSettings
from .core.structures import PartitioningMode
from .errors import InvalidPartitioningMode, MeshingError
from .logger import configure_root_logger, get_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="large-scale-meshing",
        description="Large-scale meshing from filtered depth maps",
    )

    # Input/Output
    parser.add_argument('--ini', type=str, required=True,
                        help='Configuration file (INI, or JSON by suffix)')
    parser.add_argument('--depthMapFolder', type=str, required=True,
                        help='Input depth maps folder (cameras.json, similarity maps)')
    parser.add_argument('--depthMapFilterFolder', type=str, required=True,
                        help='Input filtered depth maps folder')
    parser.add_argument('-o', '--output', type=str, required=True,
                        help='Output mesh file (OBJ)')

    # Budgets
    parser.add_argument('--maxPts', type=int, default=DEFAULT_MAX_PTS,
                        help='Max points per block (default: %(default)s)')
    parser.add_argument('--maxPtsPerVoxel', type=int, default=DEFAULT_MAX_PTS_PER_VOXEL,
                        help='Max points per voxel of the coarse grid (default: %(default)s)')
    parser.add_argument('--partitioning', type=str, default='singleBlock',
                        help="Partitioning: 'singleBlock' or 'auto' (default: %(default)s)")

    # Logging
    parser.add_argument('--verbose', action='store_true',
                        help='Enable verbose logging')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Log to file')

    return parser


def build_config(args: argparse.Namespace) -> MeshingConfig:
    """
    Raises:
        InvalidPartitioningMode: If --partitioning is neither 'singleBlock' nor 'auto'
        ConfigurationError: If the configuration file cannot be used
    """
    partitioning = PartitioningMode.from_string(args.partitioning)
    if partitioning == PartitioningMode.UNDEFINED:
        raise InvalidPartitioningMode(args.partitioning)

    settings = MeshingSettings.from_file(args.ini)
    return MeshingConfig.from_settings(
        settings,
        ini_path=args.ini,
        depth_map_folder=args.depthMapFolder,
        depth_map_filter_folder=args.depthMapFilterFolder,
        output_mesh=args.output,
        max_pts=args.maxPts,
        max_pts_per_voxel=args.maxPtsPerVoxel,
        partitioning=partitioning,
        verbose=args.verbose,
        log_file=args.log_file,
    )


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    parser = build_parser()

    if not argv:
        parser.print_help()
        return 0

    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # --help exits with 0, usage errors with 2
        return 0 if e.code in (0, None) else 1

    configure_root_logger(verbose=args.verbose, log_file=args.log_file)
    logger = get_logger("CLI")
    start_time = time.time()

    try:
        config = build_config(args)

        from .data.providers import DepthMapFolderProvider
        from .pipeline import LargeScaleMeshingPipeline

        provider = DepthMapFolderProvider(
            config.depth_map_folder,
            config.depth_map_filter_folder,
            cameras_file=config.settings.get('global.camerasFile', '') or None,
            pixel_step=config.settings.get('prematching.pixStep', 4),
        )
        result = LargeScaleMeshingPipeline(config, provider).run()

    except KeyboardInterrupt:
        logger.error("Interrupted by user")
        return 1
    except MeshingError as e:
        logger.error(f"ERROR: {e}")
        return 1

    logger.info(f"Mesh: {result.output_mesh}")
    logger.info("Statistics:")
    for key, value in result.statistics.items():
        logger.info(f"  {key}: {value}")
    logger.info(f"Elapsed time: {time.time() - start_time:.2f}s")
    return 0


if __name__ == '__main__':
    sys.exit(main())
