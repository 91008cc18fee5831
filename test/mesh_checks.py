import collections
import numpy as np
from taichi_march.marching import *
from taichi_march.voxel_field import *


## @param values The 8 corner densities, in Marching.vertex_offset order
def corner_field(values, **kwargs):
    densities = np.zeros((2, 2, 2), dtype=np.float32)
    for value, offset in zip(values, Marching.vertex_offset):
        densities[offset] = value
    return VoxelField.from_numpy(densities, **kwargs)


## A field that is 0 everywhere but 1 at the center sample
def center_blob_field():
    densities = np.zeros((3, 3, 3), dtype=np.float32)
    densities[1, 1, 1] = 1.0
    return VoxelField.from_numpy(densities)


## Signed distance to a sphere, negative inside
def sphere_field(size, center, radius):
    x, y, z = np.meshgrid(np.arange(size), np.arange(size), np.arange(size), indexing="ij")
    distance = np.sqrt((x - center) ** 2 + (y - center) ** 2 + (z - center) ** 2) - radius
    return VoxelField.from_numpy(distance.astype(np.float32))


def face_normals(vertices, indices):
    triangles = vertices[indices.reshape(-1, 3)]
    return np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0])


## @detail Every vertex lies on a lattice segment of the cell it was emitted from. The
# segment is identified by the floor of the vertex and the axes along which it moves,
# so vertices emitted twice for neighbouring cells get the same key.
def lattice_key(vertex):
    base = np.floor(vertex)
    return tuple(base.astype(int).tolist()), tuple((vertex != base).tolist())


def directed_edges(vertices, indices):
    keys = [lattice_key(v) for v in np.asarray(vertices, dtype=np.float64)]
    edges = collections.Counter()
    for a, b, c in np.asarray(indices).reshape(-1, 3):
        for p, q in ((a, b), (b, c), (c, a)):
            edges[(keys[p], keys[q])] += 1
    return edges


## @detail A closed, consistently wound surface uses every directed edge once and its
# reverse once.
def is_closed_surface(vertices, indices):
    edges = directed_edges(vertices, indices)
    return all(count == 1 and edges.get((q, p), 0) == 1 for (p, q), count in edges.items())
