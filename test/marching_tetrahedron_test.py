import unittest
import numpy as np
import taichi as ti
from taichi_march.utils import *
from taichi_march.voxel_field import *
from taichi_march.marching import *
from taichi_march.tools.marching_cubes import *
from taichi_march.tools.marching_tetrahedron import *
from mesh_checks import *


def setUpModule():
    init_marching(arch=ti.cpu)


class TetrahedronTableTest(unittest.TestCase):

    def test_decomposition_fills_the_cube(self):
        corners = np.array(Marching.vertex_offset, dtype=np.float64)
        volume = 0.0
        for tetrahedron in tetrahedrons_in_a_cube:
            p = corners[list(tetrahedron)]
            volume += abs(np.linalg.det(np.stack([p[1] - p[0], p[2] - p[0], p[3] - p[0]]))) / 6.0
            # Every tetrahedron shares the body diagonal
            self.assertEqual((tetrahedron[0], tetrahedron[3]), (0, 6))
        self.assertAlmostEqual(volume, 1.0)

    def test_edge_ids(self):
        for e, (a, b) in enumerate(tetrahedron_edge_connection):
            self.assertEqual(tetrahedron_edge_id(a, b), e)
            self.assertEqual(tetrahedron_edge_id(b, a), e)
        with self.assertRaises(ValueError):
            tetrahedron_edge_id(1, 1)

    def test_triangle_counts(self):
        table = build_tetrahedron_triangle_table()
        self.assertEqual(table.shape, (6, 16, 6))
        for flag_index in range(16):
            inside = bin(flag_index).count("1")
            expected = 0 if inside in (0, 4) else (2 if inside == 2 else 1)
            self.assertLessEqual(expected * 6, MarchingTetrahedron.max_triangles_per_cell)
            for t in range(6):
                row = table[t, flag_index]
                self.assertEqual(np.count_nonzero(row >= 0), expected * 3)
                for e in row[row >= 0]:
                    a, b = tetrahedron_edge_connection[e]
                    self.assertNotEqual((flag_index >> a) & 1, (flag_index >> b) & 1)

    def test_complement_configurations_reverse_the_winding(self):
        table = build_tetrahedron_triangle_table()
        for t in range(6):
            for flag_index in (1, 2, 4, 8):
                triangle = list(table[t, flag_index, :3])
                flipped = list(table[t, 15 - flag_index, :3])
                self.assertEqual(sorted(triangle), sorted(flipped))
                # Same three edges with the opposite cyclic order
                rotations = [flipped[i:] + flipped[:i] for i in range(3)]
                self.assertIn(triangle[::-1], rotations)


class MarchingTetrahedronTest(unittest.TestCase):

    def test_horizontal_slab(self):
        voxels = corner_field([0, 0, 0, 0, 1, 1, 1, 1])
        vertices, colors, indices = MarchingTetrahedron(0.5).generate_arrays(voxels)

        self.assertEqual(indices.shape[0], 8 * 3)
        np.testing.assert_allclose(vertices[:, 2], 0.5)
        normals = face_normals(vertices, indices)
        # The triangles tile the unit square, all facing the higher density
        np.testing.assert_allclose(np.linalg.norm(normals, axis=1).sum() / 2.0, 1.0, rtol=1e-5)
        self.assertTrue((normals[:, 2] > 0.0).all())

    def test_orientation_matches_cubes(self):
        for values in ([0, 0, 0, 0, 1, 1, 1, 1], [1, 0, 0, 1, 1, 0, 0, 1], [0, 0, 1, 1, 0, 0, 1, 1]):
            for surface in (0.5, 0.25):
                voxels = corner_field(values)
                cube_normals = face_normals(*MarchingCubes(surface).generate_arrays(voxels)[::2]).sum(axis=0)
                tetrahedron_normals = face_normals(*MarchingTetrahedron(surface).generate_arrays(voxels)[::2]).sum(axis=0)
                np.testing.assert_allclose(tetrahedron_normals, cube_normals, atol=1e-5)

    def test_surface_outside_the_density_range(self):
        voxels = corner_field([0, 0, 0, 0, 1, 1, 1, 1])
        for surface in (1.5, -0.5):
            vertices, _, indices = MarchingTetrahedron(surface).generate_arrays(voxels)
            self.assertEqual(vertices.shape[0], 0)
            self.assertEqual(indices.shape[0], 0)

    def test_constant_field(self):
        voxels = VoxelField(3, 3, 3, density=-2.0)
        vertices, _, indices = MarchingTetrahedron(-2.0).generate_arrays(voxels)
        self.assertEqual(indices.shape[0], 0)

    def test_center_blob_is_closed(self):
        vertices, _, indices = MarchingTetrahedron(0.5).generate_arrays(center_blob_field())
        self.assertGreater(indices.shape[0], 0)
        self.assertTrue(is_closed_surface(vertices, indices))
        # Every vertex lies on a segment from the center sample to a neighbour, half way
        distances = np.linalg.norm(vertices - 1.0, axis=1)
        self.assertTrue((distances > 0.49).all())
        self.assertTrue((distances < 0.87).all())

    def test_sphere(self):
        center, radius = 3.5, 2.3
        vertices, _, indices = MarchingTetrahedron(0.0).generate_arrays(sphere_field(8, center, radius))
        self.assertGreater(indices.shape[0], 0)
        self.assertTrue(is_closed_surface(vertices, indices))
        np.testing.assert_allclose(np.linalg.norm(vertices - center, axis=1), radius, atol=0.25)

    def test_double_precision_threshold(self):
        densities = np.ones((2, 2, 2), dtype=np.float64)
        densities[:, :, 0] = 0.1000000001
        voxels = VoxelField.from_numpy(densities, dtype=ti.f64)

        vertices, _, indices = MarchingTetrahedron(0.1).generate_arrays(voxels)
        self.assertEqual(indices.shape[0], 0)

        vertices, _, indices = MarchingTetrahedron(0.1000000002).generate_arrays(voxels)
        self.assertEqual(indices.shape[0], 8 * 3)
        self.assertTrue((vertices[:, 2] < 1e-6).all())

    def test_winding_follows_surface_sign(self):
        below = corner_field([-1.5, -1.5, -1.5, -1.5, -0.5, -0.5, -0.5, -0.5])
        above = corner_field([0.5, 0.5, 0.5, 0.5, 1.5, 1.5, 1.5, 1.5])

        vertices_below, _, indices_below = MarchingTetrahedron(-1.0).generate_arrays(below)
        vertices_above, _, indices_above = MarchingTetrahedron(1.0).generate_arrays(above)

        self.assertEqual(indices_below.shape[0], 8 * 3)
        np.testing.assert_allclose(vertices_below, vertices_above)
        np.testing.assert_array_equal(indices_below, np.arange(8 * 3))
        np.testing.assert_array_equal(indices_above, np.arange(8 * 3).reshape(-1, 3)[:, ::-1].ravel())

    def test_random_field_has_valid_indices(self):
        densities = np.random.default_rng(11).standard_normal((4, 5, 3)).astype(np.float32)
        vertices, colors, indices = MarchingTetrahedron(0.0).generate_arrays(VoxelField.from_numpy(densities))

        self.assertEqual(indices.shape[0] % 3, 0)
        self.assertEqual(vertices.shape[0], indices.shape[0])
        self.assertEqual(colors.shape[0], indices.shape[0])
        np.testing.assert_array_equal(np.sort(indices.reshape(-1, 3), axis=1), np.arange(indices.shape[0]).reshape(-1, 3))
        self.assertTrue((vertices >= 0.0).all())
        self.assertTrue((vertices <= np.array([3.0, 4.0, 2.0])).all())


if __name__ == '__main__':
    unittest.main()
