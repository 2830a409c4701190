"""
Camera and track providers.

Available Providers:
    - DepthMapFolderProvider: Back-project depth maps stored on disk
    - SyntheticProvider: Generate a synthetic scene for testing

Usage:
    from LargeScaleMeshing.data.providers import DepthMapFolderProvider

    provider = DepthMapFolderProvider('./depthMap', './depthMapFilter', pixel_step=4)
    tracks = provider.get_tracks(sim_threshold=0.0)
"""

from ...core.interfaces import ICameraTrackProvider
from .folder_provider import DepthMapFolderProvider
from .synthetic_provider import SyntheticProvider

__all__ = [
    'ICameraTrackProvider',
    'DepthMapFolderProvider',
    'SyntheticProvider',
]
