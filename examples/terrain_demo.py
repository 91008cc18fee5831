import numpy as np
import taichi as ti
from taichi_march.utils import *
from taichi_march.voxel_field import *
from taichi_march.tools.volume_to_mesh import *

init_marching(arch=ti.cpu)

width = 32
height = 32
depth = 32

mode = MarchingMode.tetrahedron
smooth_normals = True
export_mesh = True
show_mesh = False


def make_terrain():
    # Density is negative below a rolling height map and positive above it
    u, v, w = np.meshgrid(np.linspace(0, 1, width), np.linspace(0, 1, height), np.linspace(0, 1, depth), indexing="ij")
    ground = 0.4 + 0.15 * np.sin(u * 2 * np.pi * 1.5) * np.cos(w * 2 * np.pi)
    densities = v - ground

    colors = np.zeros((width, height, depth, 4))
    colors[..., 0] = np.clip(w, 0, 1)
    colors[..., 3] = 1.0
    return VoxelField.from_numpy(densities, colors)


if __name__ == "__main__":
    voxels = make_terrain()
    vertices, colors, indices = VolumeToMesh.generate_arrays(voxels, 0.0, mode)

    if smooth_normals:
        normals = VolumeToMesh.smooth_normals(voxels, vertices)
    else:
        normals = VolumeToMesh.flat_normals(vertices, indices)

    print(f"Generated {vertices.shape[0]} vertices and {indices.shape[0]} indices")

    if export_mesh:
        writer = ti.tools.PLYWriter(num_vertices=vertices.shape[0], num_faces=indices.shape[0] // 3, face_type="tri")
        writer.add_vertex_pos(vertices[:, 0], vertices[:, 1], vertices[:, 2])
        writer.add_vertex_normal(normals[:, 0], normals[:, 1], normals[:, 2])
        writer.add_faces(indices)
        writer.export("terrain.ply")

    if show_mesh:
        mesh_vertices = ti.Vector.field(n=3, dtype=ti.f32, shape=vertices.shape[0])
        mesh_normals = ti.Vector.field(n=3, dtype=ti.f32, shape=vertices.shape[0])
        mesh_colors = ti.Vector.field(n=3, dtype=ti.f32, shape=vertices.shape[0])
        mesh_indices = ti.field(dtype=ti.i32, shape=indices.shape[0])
        # Centered on the origin, scaled to the unit cube
        mesh_vertices.from_numpy(((vertices - np.array([width, height, depth]) / 2) / width).astype(np.float32))
        mesh_normals.from_numpy(normals.astype(np.float32))
        mesh_colors.from_numpy(colors[:, :3].astype(np.float32))
        mesh_indices.from_numpy(indices)

        window = ti.ui.Window("Marching Viewer", (1600, 900))
        canvas = window.get_canvas()
        scene = ti.ui.Scene()
        camera = ti.ui.Camera()
        camera.position(0, 0.5, -1.5)
        camera.lookat(0, 0, 0)

        while window.running:
            camera.track_user_inputs(window, movement_speed=0.01, hold_key=ti.ui.LMB)
            scene.set_camera(camera)
            scene.ambient_light((0.8, 0.8, 0.8))
            scene.point_light(pos=(1.5, 1.5, 1.5), color=(1, 1, 1))
            scene.mesh(vertices=mesh_vertices, indices=mesh_indices, normals=mesh_normals,
                       per_vertex_color=mesh_colors, two_sided=True)
            canvas.scene(scene)
            window.show()
