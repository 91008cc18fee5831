import unittest
import numpy as np
import taichi as ti
from taichi_march.utils import *
from taichi_march.tools.volume_to_mesh import *
from mesh_checks import *

try:
    import open3d as o3d
except ImportError:
    o3d = None


def setUpModule():
    init_marching(arch=ti.cpu)


## @detail Loads a generated mesh into open3d and welds the per-triangle vertices
def to_triangle_mesh(vertices, indices):
    mesh = o3d.geometry.TriangleMesh(o3d.utility.Vector3dVector(vertices.astype(np.float64)),
                                     o3d.utility.Vector3iVector(indices.reshape(-1, 3).astype(np.int32)))
    mesh.merge_close_vertices(1e-4)
    return mesh


@unittest.skipIf(o3d is None, "open3d is not installed")
class MeshTopologyTest(unittest.TestCase):

    def check_sphere(self, mode):
        center, radius = 4.5, 3.0
        vertices, _, indices = VolumeToMesh.generate_arrays(sphere_field(10, center, radius), 0.0, mode)
        mesh = to_triangle_mesh(vertices, indices)

        self.assertEqual(len(mesh.triangles), indices.shape[0] // 3)
        self.assertLess(len(mesh.vertices), vertices.shape[0])
        self.assertTrue(mesh.is_edge_manifold())
        self.assertTrue(mesh.is_vertex_manifold())
        self.assertTrue(mesh.is_orientable())
        self.assertTrue(mesh.is_watertight())
        np.testing.assert_allclose(np.asarray(mesh.get_center()), [center] * 3, atol=0.2)

    def test_cubes_sphere(self):
        self.check_sphere(MarchingMode.cubes)

    def test_tetrahedron_sphere(self):
        self.check_sphere(MarchingMode.tetrahedron)

    def test_blob_volume(self):
        vertices, _, indices = VolumeToMesh.generate_arrays(center_blob_field(), 0.5)
        mesh = to_triangle_mesh(vertices, indices)
        self.assertEqual(len(mesh.vertices), 6)
        self.assertTrue(mesh.is_watertight())
        self.assertAlmostEqual(abs(mesh.get_volume()), 1.0 / 6.0, places=5)


if __name__ == '__main__':
    unittest.main()
