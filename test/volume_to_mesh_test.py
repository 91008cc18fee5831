import unittest
import numpy as np
import taichi as ti
from taichi_march.utils import *
from taichi_march.voxel_field import *
from taichi_march.marching import *
from taichi_march.tools.volume_to_mesh import *
from mesh_checks import *


def setUpModule():
    init_marching(arch=ti.cpu)


class VolumeToMeshTest(unittest.TestCase):

    def test_mode_selects_the_strategy(self):
        self.assertIsInstance(VolumeToMesh.create_marching(MarchingMode.cubes, 0.5), MarchingCubes)
        self.assertIsInstance(VolumeToMesh.create_marching(MarchingMode.tetrahedron, 0.5), MarchingTetrahedron)
        self.assertEqual(VolumeToMesh.create_marching(surface=0.25).surface, 0.25)

        voxels = corner_field([0, 0, 0, 0, 1, 1, 1, 1])
        _, _, cube_indices = VolumeToMesh.generate_arrays(voxels, 0.5, MarchingMode.cubes)
        _, _, tetrahedron_indices = VolumeToMesh.generate_arrays(voxels, 0.5, MarchingMode.tetrahedron)
        self.assertEqual(cube_indices.shape[0], 2 * 3)
        self.assertEqual(tetrahedron_indices.shape[0], 8 * 3)

    def test_unknown_mode(self):
        with self.assertRaises(AssertionError):
            VolumeToMesh.create_marching(2, 0.0)

    def test_nan_is_rejected(self):
        voxels = corner_field([0, 0, 0, 0, 1, 1, 1, 1])
        with self.assertRaises(AssertionError):
            VolumeToMesh.generate_arrays(voxels, float("nan"))

        voxels.set(1, 1, 1, float("nan"))
        for mode in (MarchingMode.cubes, MarchingMode.tetrahedron):
            with self.assertRaises(AssertionError):
                VolumeToMesh.generate_arrays(voxels, 0.5, mode)

    def test_infinite_surface_is_rejected(self):
        voxels = VoxelField(2, 2, 2, density=0.5)
        for surface in (float("inf"), float("-inf")):
            for mode in (MarchingMode.cubes, MarchingMode.tetrahedron):
                with self.assertRaises(AssertionError):
                    VolumeToMesh.generate_arrays(voxels, surface, mode)

    def test_generate_into_lists(self):
        voxels = center_blob_field()
        out_vertices = []
        out_indices = []
        VolumeToMesh.generate(voxels, 0.5, out_vertices, out_indices)
        self.assertEqual(len(out_vertices), 8 * 3)
        self.assertEqual(len(out_indices), 8 * 3)
        self.assertTrue(all(isinstance(vertex, MeshVertex) for vertex in out_vertices))

        # A second mesh is appended after the first one
        VolumeToMesh.generate(voxels, 0.5, out_vertices, out_indices, MarchingMode.tetrahedron)
        self.assertEqual(len(out_vertices), len(out_indices))
        self.assertEqual(sorted(out_indices), list(range(len(out_vertices))))

        vertices = np.array([vertex.position for vertex in out_vertices])
        self.assertTrue(is_closed_surface(vertices[:24], np.array(out_indices[:24])))

    def test_smooth_normals_point_outwards(self):
        center = 4.5
        voxels = sphere_field(10, center, 3.0)
        vertices, _, indices = VolumeToMesh.generate_arrays(voxels, 0.0)
        normals = VolumeToMesh.smooth_normals(voxels, vertices)

        self.assertEqual(normals.shape, vertices.shape)
        np.testing.assert_allclose(np.linalg.norm(normals, axis=1), 1.0, rtol=1e-4)
        radial = (vertices - center) / np.linalg.norm(vertices - center, axis=1, keepdims=True)
        self.assertTrue((np.einsum("ij,ij->i", normals, radial) > 0.7).all())

    def test_smooth_normals_flip(self):
        densities = np.zeros((2, 2, 2), dtype=np.float32)
        densities[:, :, 1] = 1.0
        vertices, _, _ = VolumeToMesh.generate_arrays(VoxelField.from_numpy(densities), 0.5)
        normals = VolumeToMesh.smooth_normals(VoxelField.from_numpy(densities), vertices)
        np.testing.assert_allclose(normals, np.tile([0.0, 0.0, 1.0], (6, 1)), atol=1e-5)

        flipped = VolumeToMesh.smooth_normals(VoxelField.from_numpy(densities, flip_normals=True), vertices)
        np.testing.assert_allclose(flipped, -normals, atol=1e-5)

    def test_flat_normals(self):
        voxels = corner_field([0, 0, 0, 0, 1, 1, 1, 1])
        vertices, _, indices = VolumeToMesh.generate_arrays(voxels, 0.5)
        normals = VolumeToMesh.flat_normals(vertices, indices)
        np.testing.assert_allclose(normals, np.tile([0.0, 0.0, 1.0], (6, 1)), atol=1e-6)

        # Below the zero surface the triangles keep the table order and face the other way
        voxels = corner_field([-1, -1, -1, -1, 1, 1, 1, 1])
        vertices, _, indices = VolumeToMesh.generate_arrays(voxels, 0.0)
        normals = VolumeToMesh.flat_normals(vertices, indices)
        np.testing.assert_allclose(normals, np.tile([0.0, 0.0, -1.0], (6, 1)), atol=1e-6)

    def test_flat_normals_of_empty_and_degenerate_meshes(self):
        normals = VolumeToMesh.flat_normals(np.zeros((0, 3)), np.zeros(0, dtype=np.int32))
        self.assertEqual(normals.shape, (0, 3))

        vertices = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]])
        normals = VolumeToMesh.flat_normals(vertices, [0, 1, 2])
        np.testing.assert_array_equal(normals, np.zeros((3, 3)))


if __name__ == '__main__':
    unittest.main()
