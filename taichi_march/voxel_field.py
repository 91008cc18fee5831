## @package VoxelField
# Dense density storage for marching, with clamped access, trilinear sampling and finite difference normals
import collections
import numpy as np
import taichi as ti
from taichi_march.utils import *
from taichi_march.march_math import *


Sample = collections.namedtuple("Sample", ["position", "density", "color"])


def to_numpy_dtype(dtype):
    return np.float64 if dtype == ti.f64 else np.float32


## @detail Samples are stored in one flat array, the sample (x, y, z) lives at
#  index x + y * width + z * width * height.
#  Integer queries take grid indices, the *_uvw queries take normalized coordinates
#  in [0, 1] that are scaled by (dimension - 1) on each axis.
@ti.data_oriented
class VoxelField:
    ## Normalized step used by the finite difference on normalized coordinates
    uvw_step = 0.005

    def __init__(self, width: int, height: int, depth: int, density=0.0, dtype=ti.f32, flip_normals=False):
        march_assert(width >= 2 and height >= 2 and depth >= 2,
                     "VoxelField needs width, height and depth of at least 2, got ({}, {}, {}).".format(width, height, depth))
        self.width = int(width)
        self.height = int(height)
        self.depth = int(depth)
        self.num_samples = self.width * self.height * self.depth
        self.dtype = dtype
        self.np_dtype = to_numpy_dtype(dtype)
        self.flip_normals = flip_normals

        self.density = ti.field(dtype, shape=self.num_samples)
        self.color = ti.Vector.field(n=4, dtype=dtype, shape=self.num_samples)
        self.density.fill(density)

    @property
    def shape(self):
        return self.width, self.height, self.depth

    @property
    def num_cells(self):
        return (self.width - 1) * (self.height - 1) * (self.depth - 1)

    ## @param densities A (width, height, depth) array of densities
    #  @param colors An optional (width, height, depth, 4) array of colors
    @classmethod
    def from_numpy(cls, densities, colors=None, **kwargs):
        densities = np.asarray(densities)
        march_assert(densities.ndim == 3, "Densities need to be a 3 dimensional array, got shape {}.".format(densities.shape))
        voxels = cls(*densities.shape, **kwargs)
        voxels.density.from_numpy(np.ravel(densities, order="F").astype(voxels.np_dtype))
        if colors is not None:
            colors = np.asarray(colors)
            march_assert(colors.shape == densities.shape + (4,),
                         "Colors need shape {}, got {}.".format(densities.shape + (4,), colors.shape))
            voxels.color.from_numpy(colors.reshape((voxels.num_samples, 4), order="F").astype(voxels.np_dtype))
        return voxels

    ## @param samples Densities in index order, x + y * width + z * width * height
    @classmethod
    def from_flat(cls, samples, width, height, depth, **kwargs):
        samples = np.asarray(samples)
        march_assert(samples.shape == (width * height * depth,),
                     "Expected {} samples, got shape {}.".format(width * height * depth, samples.shape))
        voxels = cls(width, height, depth, **kwargs)
        voxels.density.from_numpy(samples.astype(voxels.np_dtype))
        return voxels

    def to_numpy(self):
        return self.density.to_numpy().reshape(self.shape, order="F")

    def index(self, x, y, z):
        return x + y * self.width + z * self.width * self.height

    def clamp(self, x, y, z):
        x = 0 if x < 0 else (self.width - 1 if x >= self.width else x)
        y = 0 if y < 0 else (self.height - 1 if y >= self.height else y)
        z = 0 if z < 0 else (self.depth - 1 if z >= self.depth else z)
        return x, y, z

    def is_inside(self, x, y, z):
        return 0 <= x < self.width and 0 <= y < self.height and 0 <= z < self.depth

    def get(self, x, y, z):
        if not self.is_inside(x, y, z):
            raise IndexError("Voxel ({}, {}, {}) is outside of a field of size {}".format(x, y, z, self.shape))
        index = self.index(x, y, z)
        return Sample((float(x), float(y), float(z)), self.density[index], tuple(self.color[index].to_numpy().tolist()))

    def get_clamped(self, x, y, z):
        return self.get(*self.clamp(x, y, z))

    def set(self, x, y, z, density, color=None):
        if not self.is_inside(x, y, z):
            raise IndexError("Voxel ({}, {}, {}) is outside of a field of size {}".format(x, y, z, self.shape))
        index = self.index(x, y, z)
        self.density[index] = density
        if color is not None:
            self.color[index] = color

    def __getitem__(self, key):
        return self.get(*key)

    def __setitem__(self, key, density):
        self.set(*key, density)

    def density_at(self, x, y, z):
        return self.density[self.index(*self.clamp(x, y, z))]

    def density_at_uvw(self, u, v, w):
        return float(self.sample_densities(np.array([[u, v, w]]))[0])

    def gradient(self, x, y, z):
        return self.gradients(np.array([[x, y, z]]))[0]

    def gradient_uvw(self, u, v, w):
        return self.gradients_uvw(np.array([[u, v, w]]))[0]

    def normal(self, x, y, z):
        return self.normals(np.array([[x, y, z]]))[0]

    def normal_uvw(self, u, v, w):
        return self.normals_uvw(np.array([[u, v, w]]))[0]

    # Batched queries, each row of the input is one query point
    def sample_densities(self, uvw):
        uvw = self._as_points(uvw, self.np_dtype)
        out = np.zeros(uvw.shape[0], dtype=self.np_dtype)
        if uvw.shape[0] > 0:
            self.sample_densities_impl(uvw, out)
        return out

    def gradients(self, xyz):
        xyz = self._as_points(xyz, np.int32)
        out = np.zeros((xyz.shape[0], 3), dtype=self.np_dtype)
        if xyz.shape[0] > 0:
            self.gradients_impl(xyz, out, 0, 0)
        return out

    def gradients_uvw(self, uvw):
        uvw = self._as_points(uvw, self.np_dtype)
        out = np.zeros((uvw.shape[0], 3), dtype=self.np_dtype)
        if uvw.shape[0] > 0:
            self.gradients_uvw_impl(uvw, out, 0, 0)
        return out

    def normals(self, xyz):
        xyz = self._as_points(xyz, np.int32)
        out = np.zeros((xyz.shape[0], 3), dtype=self.np_dtype)
        if xyz.shape[0] > 0:
            self.gradients_impl(xyz, out, 1, int(self.flip_normals))
        return out

    def normals_uvw(self, uvw):
        uvw = self._as_points(uvw, self.np_dtype)
        out = np.zeros((uvw.shape[0], 3), dtype=self.np_dtype)
        if uvw.shape[0] > 0:
            self.gradients_uvw_impl(uvw, out, 1, int(self.flip_normals))
        return out

    @staticmethod
    def _as_points(points, dtype):
        points = np.ascontiguousarray(points, dtype=dtype)
        march_assert(points.ndim == 2 and points.shape[1] == 3,
                     "Query points need shape (n, 3), got {}.".format(points.shape))
        return points

    # ------------------------------------Taichi scope access------------------------------------
    ## @param x, y, z The voxel coordinates, saturated to the field on each axis
    @ti.func
    def clamp_index(self, x, y, z):
        cx = ti.max(0, ti.min(x, self.width - 1))
        cy = ti.max(0, ti.min(y, self.height - 1))
        cz = ti.max(0, ti.min(z, self.depth - 1))
        return cx + cy * self.width + cz * self.width * self.height

    @ti.func
    def read_density(self, x, y, z):
        return self.density[self.clamp_index(x, y, z)]

    @ti.func
    def read_color(self, x, y, z):
        return self.color[self.clamp_index(x, y, z)]

    ## @param u, v, w Normalized coordinates
    #  @return The trilinear interpolated density
    @ti.func
    def sample_density(self, u, v, w):
        x = u * (self.width - 1)
        y = v * (self.height - 1)
        z = w * (self.depth - 1)

        xi = ti.cast(ti.floor(x), ti.i32)
        yi = ti.cast(ti.floor(y), ti.i32)
        zi = ti.cast(ti.floor(z), ti.i32)

        v000 = self.read_density(xi, yi, zi)
        v100 = self.read_density(xi + 1, yi, zi)
        v010 = self.read_density(xi, yi + 1, zi)
        v110 = self.read_density(xi + 1, yi + 1, zi)

        v001 = self.read_density(xi, yi, zi + 1)
        v101 = self.read_density(xi + 1, yi, zi + 1)
        v011 = self.read_density(xi, yi + 1, zi + 1)
        v111 = self.read_density(xi + 1, yi + 1, zi + 1)

        tx = ti.min(ti.max(x - xi, 0.0), 1.0)
        ty = ti.min(ti.max(y - yi, 0.0), 1.0)
        tz = ti.min(ti.max(z - zi, 0.0), 1.0)

        v0 = bilerp(v000, v100, v010, v110, tx, ty)
        v1 = bilerp(v001, v101, v011, v111, tx, ty)
        return lerp(v0, v1, tz)

    ## @detail Central difference on the grid, one sided at the borders through clamping.
    #  Zero wherever the density is locally constant.
    @ti.func
    def first_derivative(self, x, y, z):
        dx = (self.read_density(x + 1, y, z) - self.read_density(x - 1, y, z)) * 0.5
        dy = (self.read_density(x, y + 1, z) - self.read_density(x, y - 1, z)) * 0.5
        dz = (self.read_density(x, y, z + 1) - self.read_density(x, y, z - 1)) * 0.5
        return ti.Vector([dx, dy, dz], dt=self.dtype)

    @ti.func
    def first_derivative_uvw(self, u, v, w):
        hh = ti.static(VoxelField.uvw_step * 0.5)
        ih = ti.static(1.0 / VoxelField.uvw_step)
        dx = (self.sample_density(u + hh, v, w) - self.sample_density(u - hh, v, w)) * ih
        dy = (self.sample_density(u, v + hh, w) - self.sample_density(u, v - hh, w)) * ih
        dz = (self.sample_density(u, v, w + hh) - self.sample_density(u, v, w - hh)) * ih
        return ti.Vector([dx, dy, dz], dt=self.dtype)

    ## @detail Normalizes a gradient, a zero gradient stays a zero vector
    @ti.func
    def to_normal(self, gradient, flip):
        res = ti.Vector.zero(dt=self.dtype, n=3)
        length = gradient.norm()
        if length > 0.0:
            res = gradient / length
            if flip != 0:
                res = -res
        return res

    @ti.kernel
    def sample_densities_impl(self, uvw: ti.types.ndarray(), out: ti.types.ndarray()):
        for i in range(uvw.shape[0]):
            out[i] = self.sample_density(uvw[i, 0], uvw[i, 1], uvw[i, 2])

    @ti.kernel
    def gradients_impl(self, xyz: ti.types.ndarray(), out: ti.types.ndarray(), normalize: ti.i32, flip: ti.i32):
        for i in range(xyz.shape[0]):
            g = self.first_derivative(xyz[i, 0], xyz[i, 1], xyz[i, 2])
            if normalize != 0:
                g = self.to_normal(g, flip)
            for k in ti.static(range(3)):
                out[i, k] = g[k]

    @ti.kernel
    def gradients_uvw_impl(self, uvw: ti.types.ndarray(), out: ti.types.ndarray(), normalize: ti.i32, flip: ti.i32):
        for i in range(uvw.shape[0]):
            g = self.first_derivative_uvw(uvw[i, 0], uvw[i, 1], uvw[i, 2])
            if normalize != 0:
                g = self.to_normal(g, flip)
            for k in ti.static(range(3)):
                out[i, k] = g[k]
