"""
Shared fixtures for the LargeScaleMeshing test suite.

The reconstruction engine is replaced by a fake returning canned meshes,
so only the Open3D engine tests need open3d.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from LargeScaleMeshing.core.interfaces import IDenseReconstructionEngine
from LargeScaleMeshing.core.structures import Hexahedron, LocalMeshResult, TrackSet

# Triangulated unit-cube surface over UNIT_CORNERS
CUBE_FACES = np.array([
    [0, 1, 2], [0, 2, 3],
    [4, 6, 5], [4, 7, 6],
    [0, 5, 1], [0, 4, 5],
    [3, 2, 6], [3, 6, 7],
    [0, 3, 7], [0, 7, 4],
    [1, 5, 6], [1, 6, 2],
])


class FakeEngine(IDenseReconstructionEngine):
    """Returns the surface of the block hexahedron, seen by the block cameras"""

    def __init__(self, empty: bool = False):
        self.empty = empty
        self.requests = []
        self.post_processed = 0

    def reconstruct_block(self, request):
        self.requests.append(request)
        if self.empty:
            return LocalMeshResult(np.zeros((0, 3)), np.zeros((0, 3)), [], request.block.name)

        cams = np.asarray(request.block.camera_ids, dtype=np.int32)
        return LocalMeshResult(
            vertices=request.block.hexahedron.corners.copy(),
            faces=CUBE_FACES.copy(),
            pts_cams=[cams] * 8,
            block_name=request.block.name,
        )

    def post_process(self, result, request):
        self.post_processed += 1
        return result


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def unit_domain():
    return Hexahedron.from_bounds([0.0, 0.0, 0.0], [1.0, 1.0, 1.0])


@pytest.fixture
def random_tracks():
    """2000 tracks uniformly spread in the unit cube, seen by 1 to 3 of 6 cameras"""
    rng = np.random.default_rng(42)
    points = rng.uniform(0.01, 0.99, size=(2000, 3))
    cams = [sorted(rng.choice(6, size=rng.integers(1, 4), replace=False).tolist())
            for _ in range(len(points))]
    return TrackSet.from_lists(points, cams)


@pytest.fixture
def clustered_tracks():
    """Dense cluster in one corner of the unit cube plus sparse background"""
    rng = np.random.default_rng(7)
    dense = rng.uniform(0.0, 0.25, size=(3000, 3))
    sparse = rng.uniform(0.0, 1.0, size=(500, 3))
    points = np.concatenate([dense, sparse])
    return TrackSet.from_lists(points, [[i % 4] for i in range(len(points))])
