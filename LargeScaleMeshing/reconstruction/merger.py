"""
Mesh Merging
============

Concatenates block meshes and their camera-visibility lists, in plan order,
into one global mesh. Coincident vertices on block boundaries are kept as
they are: seamless boundaries can only come from the engine.
"""

from pathlib import Path
from typing import Dict, Iterable, Union

from ..core.structures import LocalMeshResult, MergeState
from ..errors import EmptyMeshError
from ..io.mesh_exporter import DENSE_RECONSTRUCTION_BIN, PTS_CAMS_BIN, MeshExporter
from ..logger import get_logger


def merge(state: MergeState, local: LocalMeshResult) -> MergeState:
    """
    Append a block mesh to the merge state.

    Returns a new state; `state` is left untouched. Faces of `local` are
    offset by the number of vertices already merged.
    """
    return MergeState(
        vertex_chunks=state.vertex_chunks + (local.vertices,),
        face_chunks=state.face_chunks + (local.faces + state.n_vertices,),
        pts_cams_chunks=state.pts_cams_chunks + (tuple(local.pts_cams),),
        block_names=state.block_names + (local.block_name,),
        n_vertices=state.n_vertices + local.n_vertices,
        n_faces=state.n_faces + local.n_faces,
    )


class MeshMerger:
    """Merge, validation and persistence of block meshes"""

    def __init__(self, exporter: MeshExporter = None):
        self.exporter = exporter or MeshExporter()
        self.logger = get_logger("Merger")

    def merge_all(self, results: Iterable[LocalMeshResult]) -> MergeState:
        """Fold block results, in the given order, into one merge state"""
        state = MergeState.empty()
        for local in results:
            state = merge(state, local)
            self.logger.info(
                f"Merged {local.block_name}: +{local.n_vertices:,} vertices "
                f"(total {state.n_vertices:,})"
            )
        return state

    def validate(self, state: MergeState):
        """
        Raises:
            EmptyMeshError: If the merged mesh has no vertex
        """
        if state.is_empty:
            raise EmptyMeshError("Empty mesh: the merged reconstruction has no vertex")

    def persist(self, state: MergeState, output_mesh: Union[str, Path],
                out_dir: Union[str, Path]) -> Dict[str, Path]:
        """
        Write the binary snapshot, the interchange export and the camera
        visibility array. The state is validated first, so nothing is
        written for an empty mesh.
        """
        self.validate(state)
        out_dir = Path(out_dir)
        mesh = state.mesh

        self.logger.info("Saving joined meshes")
        bin_path = self.exporter.save_bin(mesh.vertices, mesh.faces, out_dir / DENSE_RECONSTRUCTION_BIN)
        mesh_path = self.exporter.export_mesh(mesh.vertices, mesh.faces, output_mesh)
        cams_path = self.exporter.save_pts_cams(state.pts_cams, out_dir / PTS_CAMS_BIN)

        return {
            'dense_reconstruction_bin': bin_path,
            'output_mesh': mesh_path,
            'pts_cams_bin': cams_path,
        }
