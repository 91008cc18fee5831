## @package MarchingTetrahedron splits each cell into 6 tetrahedra and polygonises each of them
#
import logging
import numpy as np
import taichi as ti
from taichi_march.utils import *
from taichi_march.march_math import *
from taichi_march.marching import *


## @detail The cube is split about its body diagonal 0 -> 6, corner ids refer to
# Marching.vertex_offset. The 6 tetrahedra cover the cell without overlap, and neighbouring
# cells split their shared faces along the same diagonal.
tetrahedrons_in_a_cube = (
    (0, 5, 1, 6),
    (0, 1, 2, 6),
    (0, 2, 3, 6),
    (0, 3, 7, 6),
    (0, 7, 4, 6),
    (0, 4, 5, 6),
)

## Corner pairs of the 6 tetrahedron edges, corner ids are local to the tetrahedron
tetrahedron_edge_connection = (
    (0, 1), (1, 2), (2, 0), (0, 3), (1, 3), (2, 3),
)


def tetrahedron_edge_id(a, b):
    for e, (c0, c1) in enumerate(tetrahedron_edge_connection):
        if (c0, c1) == (a, b) or (c0, c1) == (b, a):
            return e
    raise ValueError("({}, {}) is not a tetrahedron edge".format(a, b))


def build_tetrahedron_triangle_table():
    """Triangle table of every tetrahedron of the cube.

    Returns an int32 array of shape (6, 16, 6). Entry [t, flag_index] lists up to two
    triangles as tetrahedron edge ids, padded with -1. Bit j of flag_index is set when
    corner j of the tetrahedron is at or below the surface.

    Triangles follow the winding of the cube table: the right-handed normal of the listed
    order points towards the corners at or below the surface. The orientation is decided
    on the edge midpoints, it holds for any point along the crossed edges.
    """
    corners = np.array(Marching.vertex_offset, dtype=np.float64)
    table = np.full((6, 16, 6), -1, dtype=np.int32)

    for t, tetrahedron in enumerate(tetrahedrons_in_a_cube):
        positions = corners[list(tetrahedron)]
        for flag_index in range(16):
            below = [(flag_index >> j) & 1 for j in range(4)]
            inside = [j for j in range(4) if below[j]]
            outside = [j for j in range(4) if not below[j]]
            if not inside or not outside:
                continue

            if len(inside) == 2:
                # Four crossed edges form a quad, walk it in cyclic order
                a, b = inside
                c, d = outside
                polygon = [tetrahedron_edge_id(a, c), tetrahedron_edge_id(a, d),
                           tetrahedron_edge_id(b, d), tetrahedron_edge_id(b, c)]
            else:
                polygon = [e for e, (c0, c1) in enumerate(tetrahedron_edge_connection) if below[c0] != below[c1]]

            points = np.array([positions[list(tetrahedron_edge_connection[e])].mean(axis=0) for e in polygon])
            normal = np.cross(points[1] - points[0], points[2] - points[0])
            towards_inside = positions[inside].mean(axis=0) - points.mean(axis=0)
            if np.dot(normal, towards_inside) < 0.0:
                polygon = polygon[::-1]

            triangles = polygon[:3]
            if len(polygon) == 4:
                triangles += [polygon[0], polygon[2], polygon[3]]
            table[t, flag_index, :len(triangles)] = triangles

    return table


@ti.data_oriented
class MarchingTetrahedron(Marching):
    ## Each tetrahedron emits at most 2 triangles
    max_triangles_per_cell = 12

    def __init__(self, surface=0.0):
        super().__init__(surface)
        triangle_table_data = build_tetrahedron_triangle_table()
        self.triangle_table = ti.field(ti.i32, shape=(6, 16, 6))
        self.triangle_count = ti.field(ti.i32, shape=(6, 16))

        self.triangle_table.from_numpy(triangle_table_data)
        self.triangle_count.from_numpy((np.count_nonzero(triangle_table_data >= 0, axis=2) // 3).astype(np.int32))
        march_log("Built marching tetrahedron tables", logging.DEBUG)

    @ti.func
    def tetrahedron_index(self, values, surface, t: ti.template()):
        flag_index = 0
        for j in ti.static(range(4)):
            if values[ti.static(tetrahedrons_in_a_cube[t][j])] <= surface:
                flag_index |= ti.static(1 << j)
        return flag_index

    @ti.func
    def count_cell(self, values, surface):
        count = 0
        for t in ti.static(range(6)):
            count += self.triangle_count[t, self.tetrahedron_index(values, surface, t)]
        return count

    @ti.func
    def march_cell(self, voxels: ti.template(), origin, values, colors, surface, winding: ti.template(),
                   triangle_offset, vertices: ti.template(), out_colors: ti.template(), indices: ti.template()):
        num_triangles = 0
        for t in ti.static(range(6)):
            flag_index = self.tetrahedron_index(values, surface, t)

            if self.triangle_count[t, flag_index] > 0:
                edge_vertex = ti.Matrix.zero(voxels.dtype, 6, 3)
                edge_color = ti.Matrix.zero(voxels.dtype, 6, 4)

                for e in ti.static(range(6)):
                    a, b = ti.static(tetrahedron_edge_connection[e])
                    if ((flag_index >> a) & 1) != ((flag_index >> b) & 1):
                        c0, c1 = ti.static(tetrahedrons_in_a_cube[t][a], tetrahedrons_in_a_cube[t][b])
                        p0 = ti.Vector(ti.static(Marching.vertex_offset[c0]), dt=voxels.dtype)
                        p1 = ti.Vector(ti.static(Marching.vertex_offset[c1]), dt=voxels.dtype)
                        offset = edge_offset(surface, values[c0], values[c1])
                        point = origin + lerp(p0, p1, offset)
                        for k in ti.static(range(3)):
                            edge_vertex[e, k] = point[k]
                        for k in ti.static(range(4)):
                            edge_color[e, k] = lerp(colors[c0, k], colors[c1, k], offset)

                for p in ti.static(range(2)):
                    if self.triangle_table[t, flag_index, 3 * p] >= 0:
                        base = (triangle_offset + num_triangles) * 3
                        for j in ti.static(range(3)):
                            edge = self.triangle_table[t, flag_index, 3 * p + j]
                            for k in ti.static(range(3)):
                                vertices[base + j, k] = edge_vertex[edge, k]
                            for k in ti.static(range(4)):
                                out_colors[base + j, k] = edge_color[edge, k]
                            indices[base + j] = base + winding[j]
                        num_triangles += 1
