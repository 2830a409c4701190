"""
Space Estimation
================

Reconstruction domain, coarse voxel grid and track-count estimates.
"""

from .domain_estimator import SpatialDomainEstimator, SpaceEstimate
from .track_estimator import TrackCountEstimator

__all__ = [
    'SpatialDomainEstimator',
    'SpaceEstimate',
    'TrackCountEstimator',
]
