"""
Mesh Processing
===============

Block mesh post-processing and debug coloring.
"""

from .mesh_processor import MeshProcessor

__all__ = ['MeshProcessor']
