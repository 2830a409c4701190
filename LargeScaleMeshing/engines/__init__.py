"""
Dense reconstruction engines.

The Open3D engine is imported on demand:

    from LargeScaleMeshing.engines.surface_engine import PointCloudSurfaceEngine
"""
