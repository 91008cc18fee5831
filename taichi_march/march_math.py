import taichi as ti


## @param v0, v1 The values to interpolate between
#  @param t The interpolation fraction
#  @detail: Returns v0 + (v1 - v0) * t, works on scalars and vectors
@ti.pyfunc
def lerp(v0, v1, t):
    return v0 + (v1 - v0) * t


## @detail: Bilinear interpolation of a face, first along x (tx) then along y (ty)
@ti.pyfunc
def bilerp(v00, v10, v01, v11, tx, ty):
    return lerp(lerp(v00, v10, tx), lerp(v01, v11, tx), ty)


## @param surface The iso value of the surface
#  @param v1, v2 The densities at both ends of an edge
#  @detail: Returns the fraction along the edge at which the density reaches surface.
#  Equal densities return surface itself. The result is not clamped to [0, 1], so
#  densities that do not bracket surface give a point beyond the edge.
@ti.pyfunc
def edge_offset(surface, v1, v2):
    delta = v2 - v1
    res = surface
    if delta != 0.0:
        res = (surface - v1) / delta
    return res
