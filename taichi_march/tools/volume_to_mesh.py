## @package VolumeToMesh converts sampled density data to a triangle mesh
#
import numpy as np
import taichi as ti
from taichi_march.utils import *
from taichi_march.voxel_field import *
from taichi_march.marching import *
from taichi_march.tools.marching_cubes import *
from taichi_march.tools.marching_tetrahedron import *


## Represents the triangulation used for each cell
class MarchingMode:
    cubes = 0
    tetrahedron = 1


@ti.kernel
def accumulate_face_normals(vertices: ti.types.ndarray(), indices: ti.types.ndarray(), normals: ti.types.ndarray()):
    for i in range(indices.shape[0] // 3):
        ind0 = indices[i * 3]
        ind1 = indices[i * 3 + 1]
        ind2 = indices[i * 3 + 2]

        vert0 = ti.Vector([vertices[ind0, 0], vertices[ind0, 1], vertices[ind0, 2]])
        vert1 = ti.Vector([vertices[ind1, 0], vertices[ind1, 1], vertices[ind1, 2]])
        vert2 = ti.Vector([vertices[ind2, 0], vertices[ind2, 1], vertices[ind2, 2]])
        face_normal = (vert1 - vert0).cross(vert2 - vert0)
        for k in ti.static(range(3)):
            normals[ind0, k] += face_normal[k]
            normals[ind1, k] += face_normal[k]
            normals[ind2, k] += face_normal[k]


class VolumeToMesh:

    @staticmethod
    def create_marching(mode=MarchingMode.cubes, surface=0.0):
        if mode == MarchingMode.cubes:
            return MarchingCubes(surface)
        march_assert(mode == MarchingMode.tetrahedron, "Unknown marching mode {}.".format(mode))
        return MarchingTetrahedron(surface)

    ## @param voxels The populated VoxelField
    #  @param surface The iso value to extract, its sign decides the winding of the triangles
    #  @param out_vertices, out_indices Containers the mesh is appended to, see Marching.generate
    #  @param mode One of MarchingMode, fixed for the whole extraction
    @staticmethod
    def generate(voxels: VoxelField, surface, out_vertices, out_indices, mode=MarchingMode.cubes):
        VolumeToMesh.create_marching(mode, surface).generate(voxels, out_vertices, out_indices)

    @staticmethod
    def generate_arrays(voxels: VoxelField, surface, mode=MarchingMode.cubes):
        return VolumeToMesh.create_marching(mode, surface).generate_arrays(voxels)

    ## @detail Normal of the density at every vertex. Vertices are expected in voxel
    # space, with the field spanning [0, dimension - 1] on each axis.
    @staticmethod
    def smooth_normals(voxels: VoxelField, vertices):
        vertices = np.asarray(vertices, dtype=voxels.np_dtype).reshape(-1, 3)
        uvw = vertices / (np.array(voxels.shape, dtype=voxels.np_dtype) - 1)
        return voxels.normals_uvw(uvw)

    ## @detail Area weighted average of the right-handed face normals around every vertex.
    # Vertices that are not part of a proper triangle get a zero normal.
    @staticmethod
    def flat_normals(vertices, indices):
        vertices = np.ascontiguousarray(vertices, dtype=np.float32).reshape(-1, 3)
        indices = np.ascontiguousarray(indices, dtype=np.int32).reshape(-1)
        normals = np.zeros_like(vertices)
        if indices.shape[0] >= 3:
            accumulate_face_normals(vertices, indices, normals)

        lengths = np.linalg.norm(normals, axis=1, keepdims=True)
        return np.divide(normals, lengths, out=np.zeros_like(normals), where=lengths > 0.0)
