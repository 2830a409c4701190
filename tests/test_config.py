"""
Tests for configuration loading and run parameters.
"""

import json

import pytest

from LargeScaleMeshing.config import DEFAULT_MAX_PTS, MeshingConfig, MeshingSettings
from LargeScaleMeshing.core.structures import PartitioningMode
from LargeScaleMeshing.errors import ConfigurationError, InvalidPartitioningMode

INI = """
[global]
simThr = -0.5

[largeScale]
gridLevel0 = 512
orientedDomain = yes

[delaunaycut]
exportDebugGC = true
"""


@pytest.fixture
def ini_file(tmp_path):
    path = tmp_path / 'mvs.ini'
    path.write_text(INI)
    return path


class TestMeshingSettings:
    def test_typed_values_from_ini(self, ini_file):
        settings = MeshingSettings.from_file(ini_file)
        assert settings.get('global.simThr', 0.0) == -0.5
        assert settings.get('largeScale.gridLevel0', 1024) == 512
        assert settings.get('largeScale.orientedDomain', False) is True
        assert settings.get('delaunaycut.exportDebugGC', False) is True

    def test_defaults_for_absent_keys(self, ini_file):
        settings = MeshingSettings.from_file(ini_file)
        assert settings.get('largeScale.baseDirName', 'root01024') == 'root01024'
        assert settings.get('meshing.keepLargestComponent', True) is True
        assert not settings.has('prematching.pixStep')

    def test_keys_are_case_insensitive(self, ini_file):
        settings = MeshingSettings.from_file(ini_file)
        assert settings.get('LARGESCALE.GRIDLEVEL0', 0) == 512

    def test_json_settings(self, tmp_path):
        path = tmp_path / 'mvs.json'
        path.write_text(json.dumps({'largeScale': {'gridLevel0': 256}, 'prematching': {'pixStep': 2}}))
        settings = MeshingSettings.from_file(path)
        assert settings.get('largeScale.gridLevel0', 1024) == 256
        assert settings.get('prematching.pixStep', 4) == 2

    def test_json_must_hold_sections(self, tmp_path):
        path = tmp_path / 'mvs.json'
        path.write_text(json.dumps({'gridLevel0': 256}))
        with pytest.raises(ConfigurationError):
            MeshingSettings.from_file(path)

    def test_malformed_value(self, tmp_path):
        path = tmp_path / 'mvs.ini'
        path.write_text("[largeScale]\ngridLevel0 = lots\n")
        with pytest.raises(ConfigurationError):
            MeshingSettings.from_file(path).get('largeScale.gridLevel0', 1024)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            MeshingSettings.from_file(tmp_path / 'missing.ini')

    def test_key_without_section(self):
        with pytest.raises(ConfigurationError):
            MeshingSettings().get('gridLevel0', 1)


class TestMeshingConfig:
    def test_from_settings_with_overrides(self, ini_file, tmp_path):
        config = MeshingConfig.from_settings(
            MeshingSettings.from_file(ini_file),
            output_mesh=str(tmp_path / 'out' / 'mesh.obj'),
            partitioning=PartitioningMode.AUTO,
        )
        assert config.grid_level0 == 512
        assert config.oriented_domain is True
        assert config.export_debug_gc is True
        assert config.max_pts == DEFAULT_MAX_PTS
        assert config.partitioning == PartitioningMode.AUTO
        assert config.output_dir == tmp_path / 'out'
        assert config.tmp_dir == tmp_path / 'out' / 'tmp'

    def test_unknown_override(self):
        with pytest.raises(ConfigurationError):
            MeshingConfig.from_settings(MeshingSettings(), max_points=10)

    def test_undefined_mode(self):
        config = MeshingConfig(output_mesh='mesh.obj', partitioning=PartitioningMode.UNDEFINED)
        with pytest.raises(InvalidPartitioningMode):
            config.validate()

    @pytest.mark.parametrize("field", ['max_pts', 'max_pts_per_voxel', 'grid_level0', 'min_grid_level'])
    def test_non_positive_parameters(self, field):
        config = MeshingConfig(output_mesh='mesh.obj')
        setattr(config, field, 0)
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_output_required(self):
        with pytest.raises(ConfigurationError):
            MeshingConfig().validate()

    def test_unknown_surface_method(self):
        config = MeshingConfig(output_mesh='mesh.obj', surface_method='marching_cubes')
        with pytest.raises(ConfigurationError, match="surfaceMethod"):
            config.validate()

    @pytest.mark.parametrize("method", ['alpha_shape', 'poisson', 'ball_pivoting'])
    def test_known_surface_methods(self, method):
        MeshingConfig(output_mesh='mesh.obj', surface_method=method).validate()
