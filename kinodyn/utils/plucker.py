"""Spatial (Plücker) algebra in Featherstone's convention.

Spatial motion vectors are [angular; linear]. A motion transform BXA maps
motion vectors from frame A coordinates to frame B coordinates, where E
rotates A coordinates into B coordinates and r is the position of the
origin of B expressed in A.
"""
import casadi as ca

import kinodyn.utils.transformation_matrix as tm


def zeros_like(x, n, m=1):
    """Zero matrix of the casadi type of x (DM for numeric input)."""
    if isinstance(x, (ca.SX, ca.MX)):
        return type(x).zeros(n, m)
    return ca.DM.zeros(n, m)


def motion_cross_product(v):
    """Returns the motion cross product matrix of a spatial vector."""

    mcp = zeros_like(v, 6, 6)

    mcp[0, 1] = -v[2]
    mcp[0, 2] = v[1]
    mcp[1, 0] = v[2]
    mcp[1, 2] = -v[0]
    mcp[2, 0] = -v[1]
    mcp[2, 1] = v[0]

    mcp[3, 4] = -v[2]
    mcp[3, 5] = v[1]
    mcp[4, 3] = v[2]
    mcp[4, 5] = -v[0]
    mcp[5, 3] = -v[1]
    mcp[5, 4] = v[0]

    mcp[3, 1] = -v[5]
    mcp[3, 2] = v[4]
    mcp[4, 0] = v[5]
    mcp[4, 2] = -v[3]
    mcp[5, 0] = -v[4]
    mcp[5, 1] = v[3]

    return mcp


def force_cross_product(v):
    """Returns the force cross product matrix of a spatial vector."""
    return -motion_cross_product(v).T


def spatial_inertia_matrix(I_com, mass, c):
    """Returns the 6x6 spatial inertia expressed at the frame origin.

    I_com is the 3x3 rotational inertia about the center of mass c, both
    expressed in the frame coordinates.
    """
    I_com = ca.DM(I_com)
    c = ca.DM(c)
    c_sk = ca.skew(c)

    IO = ca.DM.zeros(6, 6)
    IO[:3, :3] = I_com + mass*(c_sk @ c_sk.T)
    IO[:3, 3:] = mass*c_sk
    IO[3:, :3] = mass*c_sk.T
    IO[3:, 3:] = mass*ca.DM.eye(3)
    return IO


def spatial_transform(E, r):
    """Returns the spatial motion transform from a 3x3 rotation E and a
    3x1 displacement vector r."""
    X = zeros_like(E if isinstance(E, (ca.SX, ca.MX)) else r, 6, 6)
    X[:3, :3] = E
    X[3:, 3:] = E
    X[3:, :3] = -ca.mtimes(E, ca.skew(r))
    return X


def XJT_revolute(R_pj, p_pj, axis, qi):
    """Returns the transform from parent body to child body of a revolute
    joint whose frame sits at (R_pj, p_pj) in the parent body."""
    R = R_pj @ tm.rot_from_axis_angle(axis, qi)
    return spatial_transform(R.T, p_pj)


def XJT_prismatic(R_pj, p_pj, axis, qi):
    """Returns the transform from parent body to child body of a prismatic
    joint whose frame sits at (R_pj, p_pj) in the parent body."""
    ax = ca.DM(axis) / ca.norm_2(ca.DM(axis))
    return spatial_transform(R_pj.T, p_pj + R_pj @ ax * qi)

