"""
Large-Scale Meshing - Command Line Runner
=========================================

Usage:
    python run_meshing.py --ini mvs.ini --depthMapFolder ./depthMap \
        --depthMapFilterFolder ./depthMapFilter -o ./out/mesh.obj --partitioning auto
"""

import sys

from LargeScaleMeshing.cli import main


if __name__ == '__main__':
    sys.exit(main())
