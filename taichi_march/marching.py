## @package Marching walks every cell of a VoxelField and collects the triangles of a marching strategy
#
import collections
import logging
import math
import numpy as np
import taichi as ti
from taichi_march.utils import *
from taichi_march.voxel_field import *


MeshVertex = collections.namedtuple("MeshVertex", ["position", "color"])


@ti.data_oriented
class Marching:
    ## @detail Corners of a cell relative to its origin. Both triangulation tables are
    # defined against this order:
    #
    #       7 ---------- 6
    #       / |        /|
    #      /  |       / |
    #     4----------5  |
    #     |   |      |  |
    #     |   3------|--2
    #     |  /       | /
    #     | /        |/
    #     0----------1
    #
    # 0 -> 1 is the positive x direction
    # 0 -> 3 is the positive y direction
    # 0 -> 4 is the positive z direction
    vertex_offset = (
        (0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0),
        (0, 0, 1), (1, 0, 1), (1, 1, 1), (0, 1, 1),
    )

    def __init__(self, surface=0.0):
        self.surface = surface
        self.winding_order = np.array([0, 1, 2], dtype=np.int32)

    ## @detail Triangles are kept facing the same side of the surface whether the
    # solid lies below or above the surface value.
    def update_winding_order(self):
        if self.surface > 0.0:
            self.winding_order[:] = (2, 1, 0)
        else:
            self.winding_order[:] = (0, 1, 2)

    ## @param voxels The VoxelField to polygonise
    #  @param out_vertices Any ordered container supporting len() and extend(), receives MeshVertex tuples
    #  @param out_indices Any ordered container supporting extend(), receives 3 vertex indices per triangle
    def generate(self, voxels: VoxelField, out_vertices, out_indices):
        vertices, colors, indices = self.generate_arrays(voxels)
        base = len(out_vertices)
        out_vertices.extend(MeshVertex(tuple(p), tuple(c)) for p, c in zip(vertices.tolist(), colors.tolist()))
        out_indices.extend((indices + base).tolist())

    ## @return vertices (n, 3), colors (n, 4) and indices (n,) with n = 3 * number of triangles
    def generate_arrays(self, voxels: VoxelField):
        width, height, depth = voxels.shape
        march_assert(width >= 2 and height >= 2 and depth >= 2,
                     "Marching needs a field of at least 2x2x2 samples, got {}.".format(voxels.shape))
        march_assert(math.isfinite(self.surface), "Surface value must be finite, got {}.".format(self.surface))
        march_assert(not np.isnan(voxels.density.to_numpy()).any(), "VoxelField contains NaN densities.")

        self.update_winding_order()
        # The threshold is compared at the precision of the densities
        surface = np.array([self.surface], dtype=voxels.np_dtype)

        # Every cell gets its own slice of the output so cells can be processed in
        # parallel while the buffers keep the x, y, z traversal order.
        counts = np.zeros(voxels.num_cells, dtype=np.int32)
        self.count_triangles(voxels, surface, counts)
        num_triangles = int(counts.sum())
        march_log("Marching {} cells of a {}x{}x{} field.".format(voxels.num_cells, width, height, depth), logging.DEBUG)

        vertices = np.zeros((num_triangles * 3, 3), dtype=voxels.np_dtype)
        colors = np.zeros((num_triangles * 3, 4), dtype=voxels.np_dtype)
        indices = np.zeros(num_triangles * 3, dtype=np.int32)

        if num_triangles > 0:
            offsets = (np.cumsum(counts, dtype=np.int64) - counts).astype(np.int32)
            self.march_cells(voxels, surface, self.winding_order, offsets, vertices, colors, indices)

        march_log("Generated {} vertices and {} indices".format(vertices.shape[0], indices.shape[0]))
        return vertices, colors, indices

    # ------------------------------------Strategy interface------------------------------------
    ## @param values The 8 corner densities of a cell
    #  @return The number of triangles march_cell emits for the cell
    def count_cell(self, values, surface):
        raise NotImplementedError("Marching strategies need to implement count_cell.")

    ## @param origin The cell origin as a float vector
    #  @param values, colors The 8 corner densities and colors of the cell
    #  @param triangle_offset The index of the first triangle the cell writes
    def march_cell(self, voxels, origin, values, colors, surface, winding, triangle_offset, vertices, out_colors, indices):
        raise NotImplementedError("Marching strategies need to implement march_cell.")

    # ------------------------------------Kernels------------------------------------
    @ti.func
    def gather_densities(self, voxels: ti.template(), x, y, z):
        values = ti.Vector.zero(dt=voxels.dtype, n=8)
        for i in ti.static(range(8)):
            offset = ti.static(Marching.vertex_offset[i])
            values[i] = voxels.read_density(x + offset[0], y + offset[1], z + offset[2])
        return values

    @ti.func
    def gather_colors(self, voxels: ti.template(), x, y, z):
        colors = ti.Matrix.zero(voxels.dtype, 8, 4)
        for i in ti.static(range(8)):
            offset = ti.static(Marching.vertex_offset[i])
            color = voxels.read_color(x + offset[0], y + offset[1], z + offset[2])
            for k in ti.static(range(4)):
                colors[i, k] = color[k]
        return colors

    @ti.func
    def cell_index(self, voxels: ti.template(), x, y, z):
        return (x * (voxels.height - 1) + y) * (voxels.depth - 1) + z

    @ti.kernel
    def count_triangles(self, voxels: ti.template(), surface: ti.types.ndarray(), counts: ti.types.ndarray()):
        for x, y, z in ti.ndrange(voxels.width - 1, voxels.height - 1, voxels.depth - 1):
            values = self.gather_densities(voxels, x, y, z)
            counts[self.cell_index(voxels, x, y, z)] = self.count_cell(values, surface[0])

    @ti.kernel
    def march_cells(self, voxels: ti.template(), surface: ti.types.ndarray(), winding: ti.types.ndarray(),
                    offsets: ti.types.ndarray(), vertices: ti.types.ndarray(), out_colors: ti.types.ndarray(),
                    indices: ti.types.ndarray()):
        for x, y, z in ti.ndrange(voxels.width - 1, voxels.height - 1, voxels.depth - 1):
            values = self.gather_densities(voxels, x, y, z)
            colors = self.gather_colors(voxels, x, y, z)
            origin = ti.Vector([x, y, z], dt=voxels.dtype)
            self.march_cell(voxels, origin, values, colors, surface[0], winding, offsets[self.cell_index(voxels, x, y, z)],
                            vertices, out_colors, indices)
