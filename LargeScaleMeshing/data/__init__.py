"""Input data access"""

from .providers import DepthMapFolderProvider, SyntheticProvider

__all__ = ['DepthMapFolderProvider', 'SyntheticProvider']
