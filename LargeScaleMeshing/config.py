"""
Configuration management for large-scale meshing.

Two layers:
    - MeshingSettings: typed, dotted-key lookup ("section.key") with defaults
      over the configuration file given on the command line (INI or JSON).
    - MeshingConfig: the resolved parameters of one meshing run.
"""

import configparser
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .core.structures import PartitioningMode
from .errors import ConfigurationError, InvalidPartitioningMode


DEFAULT_MAX_PTS = 6000000
DEFAULT_MAX_PTS_PER_VOXEL = 6000000
SURFACE_METHODS = ('alpha_shape', 'poisson', 'ball_pivoting')

_TRUE_STRINGS = {'1', 'true', 'yes', 'on'}
_FALSE_STRINGS = {'0', 'false', 'no', 'off'}


class MeshingSettings:
    """
    Typed key lookup over a configuration file.

    Keys are dotted: "largeScale.gridLevel0" reads option ``gridLevel0`` of
    section ``[largeScale]``. The type of the default decides the conversion.

    Usage:
        settings = MeshingSettings.from_file('mvs.ini')
        ocTreeDim = settings.get('largeScale.gridLevel0', 1024)
    """

    def __init__(self, values: Optional[Dict[str, Dict[str, Any]]] = None,
                 source: Optional[str] = None):
        self._values = {
            section.lower(): {str(k).lower(): v for k, v in options.items()}
            for section, options in (values or {}).items()
        }
        self.source = source

    @classmethod
    def from_file(cls, filepath: Union[str, Path]) -> 'MeshingSettings':
        """
        Load settings from an INI or JSON file.

        Raises:
            ConfigurationError: If the file is missing or cannot be parsed
        """
        path = Path(filepath)
        if not path.is_file():
            raise ConfigurationError(f"Configuration file not found: {filepath}")

        if path.suffix.lower() == '.json':
            try:
                with open(path, 'r') as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON configuration {filepath}: {e}") from e
            if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
                raise ConfigurationError(
                    f"JSON configuration {filepath} must map section names to objects"
                )
            return cls(data, source=str(path))

        parser = configparser.ConfigParser(interpolation=None)
        parser.optionxform = str
        try:
            parser.read(path)
        except configparser.Error as e:
            raise ConfigurationError(f"Invalid configuration file {filepath}: {e}") from e

        values = {section: dict(parser.items(section)) for section in parser.sections()}
        return cls(values, source=str(path))

    def has(self, key: str) -> bool:
        section, option = self._split(key)
        return option in self._values.get(section, {})

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a typed value.

        Args:
            key: Dotted key "section.option"
            default: Value returned when the key is absent; its type is used
                     to convert the stored value

        Raises:
            ConfigurationError: If the stored value cannot be converted
        """
        section, option = self._split(key)
        options = self._values.get(section, {})
        if option not in options:
            return default

        raw = options[option]
        if default is None:
            return raw

        try:
            return self._convert(raw, type(default))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid value for '{key}': {raw!r} (expected {type(default).__name__})"
            ) from e

    @staticmethod
    def _split(key: str):
        if '.' not in key:
            raise ConfigurationError(f"Configuration key must be 'section.option': {key!r}")
        section, option = key.split('.', 1)
        return section.lower(), option.lower()

    @staticmethod
    def _convert(raw: Any, target: type) -> Any:
        if target is bool:
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE_STRINGS:
                return True
            if text in _FALSE_STRINGS:
                return False
            raise ValueError(f"not a boolean: {raw!r}")
        if target is int:
            if isinstance(raw, float) and not raw.is_integer():
                raise ValueError(f"not an integer: {raw!r}")
            return int(str(raw).strip()) if isinstance(raw, str) else int(raw)
        if target is float:
            return float(raw)
        if target is str:
            return str(raw)
        return target(raw)


@dataclass
class MeshingConfig:
    """Configuration for one large-scale meshing run"""

    # Inputs / outputs
    ini_path: str = ''
    depth_map_folder: str = ''
    depth_map_filter_folder: str = ''
    output_mesh: str = ''

    # Budgets
    max_pts: int = DEFAULT_MAX_PTS
    max_pts_per_voxel: int = DEFAULT_MAX_PTS_PER_VOXEL

    partitioning: PartitioningMode = PartitioningMode.SINGLE_BLOCK

    # Space / grid
    sim_threshold: float = 0.0
    grid_level0: int = 1024
    base_dir_name: str = 'root01024'
    min_grid_level: int = 16
    max_voxels_per_axis: int = 64
    domain_margin_coef: float = 0.05
    domain_percentile: float = 0.5
    oriented_domain: bool = False

    # Engine / post-processing
    export_debug_gc: bool = False
    min_cams_per_vertex: int = 1
    neighbour_cams: int = 8
    surface_method: str = 'alpha_shape'
    keep_largest_component: bool = True

    # Logging
    verbose: bool = False
    log_file: Optional[str] = None

    settings: MeshingSettings = field(default_factory=MeshingSettings, repr=False)

    @property
    def output_dir(self) -> Path:
        return Path(self.output_mesh).parent

    @property
    def tmp_dir(self) -> Path:
        return self.output_dir / 'tmp'

    def validate(self):
        """
        Check run parameters before any computation.

        Raises:
            InvalidPartitioningMode: If the partitioning mode is undefined
            ConfigurationError: If a required parameter is missing or malformed
        """
        if self.partitioning == PartitioningMode.UNDEFINED:
            raise InvalidPartitioningMode(self.partitioning)
        if not self.output_mesh:
            raise ConfigurationError("Output mesh path is required")
        if self.max_pts <= 0:
            raise ConfigurationError(f"maxPts must be positive, got {self.max_pts}")
        if self.max_pts_per_voxel <= 0:
            raise ConfigurationError(f"maxPtsPerVoxel must be positive, got {self.max_pts_per_voxel}")
        if self.grid_level0 <= 0:
            raise ConfigurationError(f"largeScale.gridLevel0 must be positive, got {self.grid_level0}")
        if self.min_grid_level <= 0:
            raise ConfigurationError(f"largeScale.minGridLevel must be positive, got {self.min_grid_level}")
        if self.max_voxels_per_axis <= 0:
            raise ConfigurationError(
                f"largeScale.maxVoxelsPerAxis must be positive, got {self.max_voxels_per_axis}"
            )
        if self.surface_method not in SURFACE_METHODS:
            raise ConfigurationError(
                f"delaunaycut.surfaceMethod must be one of {', '.join(SURFACE_METHODS)}, "
                f"got {self.surface_method!r}"
            )

    @classmethod
    def from_settings(cls, settings: MeshingSettings, **overrides) -> 'MeshingConfig':
        """Build a run configuration from file settings, then apply CLI overrides"""
        config = cls(
            sim_threshold=settings.get('global.simThr', 0.0),
            grid_level0=settings.get('largeScale.gridLevel0', 1024),
            base_dir_name=settings.get('largeScale.baseDirName', 'root01024'),
            min_grid_level=settings.get('largeScale.minGridLevel', 16),
            max_voxels_per_axis=settings.get('largeScale.maxVoxelsPerAxis', 64),
            domain_margin_coef=settings.get('largeScale.domainMarginCoef', 0.05),
            domain_percentile=settings.get('largeScale.domainPercentile', 0.5),
            oriented_domain=settings.get('largeScale.orientedDomain', False),
            export_debug_gc=settings.get('delaunaycut.exportDebugGC', False),
            min_cams_per_vertex=settings.get('delaunaycut.minCamsPerVertex', 1),
            neighbour_cams=settings.get('delaunaycut.neighbourCams', 8),
            surface_method=settings.get('delaunaycut.surfaceMethod', 'alpha_shape'),
            keep_largest_component=settings.get('meshing.keepLargestComponent', True),
            settings=settings,
        )
        for key, value in overrides.items():
            if not hasattr(config, key):
                raise ConfigurationError(f"Unknown configuration parameter: {key}")
            setattr(config, key, value)
        return config
