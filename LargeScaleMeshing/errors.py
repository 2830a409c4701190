"""
Meshing Errors
==============

Exception hierarchy raised by the large-scale meshing pipeline.
Every error is fatal: the CLI reports it and exits with a non-zero status.
"""


class MeshingError(Exception):
    """Base class for all large-scale meshing failures"""


class ConfigurationError(MeshingError):
    """Missing or malformed required parameter (or malformed input data)"""


class InvalidPartitioningMode(ConfigurationError):
    """Partitioning mode string did not map to a known mode"""

    def __init__(self, mode):
        self.mode = mode
        super().__init__(f"Partitioning not defined: {mode} (expected 'singleBlock' or 'auto')")


class SizingSearchFailure(MeshingError):
    """The track budget cannot be met under the resolution floor"""


class EmptyMeshError(MeshingError):
    """The reconstruction engine (or the merge) produced a mesh without vertices"""


class PersistenceError(MeshingError):
    """Reading or writing a cache or output artifact failed"""
