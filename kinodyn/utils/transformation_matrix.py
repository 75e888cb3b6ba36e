"""Functions for getting casadi expressions for rotations, transformation
matrices and orientation parameterizations.

All functions work on casadi.SX (symbolic) as well as casadi.DM (numeric)
arguments, the result has the type of the argument.
ZYX Euler angles are always ordered [yaw, pitch, roll], quaternions are
always ordered [x, y, z, w].
"""
import casadi as ca


def rot_from_rpy(roll, pitch, yaw):
    cr, sr = ca.cos(roll),  ca.sin(roll)
    cp, sp = ca.cos(pitch), ca.sin(pitch)
    cy, sy = ca.cos(yaw),   ca.sin(yaw)
    Rz = ca.vertcat(
        ca.hcat([cy, -sy, 0]),
        ca.hcat([sy,  cy, 0]),
        ca.hcat([0,    0,  1]),
    )
    Ry = ca.vertcat(
        ca.hcat([ cp, 0, sp]),
        ca.hcat([  0, 1,  0]),
        ca.hcat([-sp, 0, cp]),
    )
    Rx = ca.vertcat(
        ca.hcat([1,  0,  0]),
        ca.hcat([0, cr, -sr]),
        ca.hcat([0, sr,  cr]),
    )
    return Rz @ Ry @ Rx  # URDF uses RPY about fixed axes Z, Y, X


def rot_from_axis_angle(axis, qval):
    """Rotation of qval about a constant axis, Rodrigues' formula."""
    ax = ca.vertcat(axis[0], axis[1], axis[2])
    ax = ax / ca.norm_2(ax)
    K = ca.skew(ax)
    return ca.DM.eye(3) + ca.sin(qval) * K + (1 - ca.cos(qval)) * (K @ K)


def vee(omega_hat):
    return ca.vertcat(
        omega_hat[2, 1],
        omega_hat[0, 2],
        omega_hat[1, 0]
    )


def rotation_from_euler_zyx(euler):
    """R = Rz(yaw) Ry(pitch) Rx(roll) for euler = [yaw, pitch, roll]."""
    return rot_from_rpy(euler[2], euler[1], euler[0])


def euler_zyx_from_rotation(R):
    """Inverse of rotation_from_euler_zyx away from pitch = +-pi/2."""
    yaw = ca.atan2(R[1, 0], R[0, 0])
    pitch = ca.asin(ca.fmin(ca.fmax(-R[2, 0], -1.0), 1.0))
    roll = ca.atan2(R[2, 1], R[2, 2])
    return ca.vertcat(yaw, pitch, roll)


def quaternion_from_euler_zyx(euler):
    """Returns the unit quaternion [x, y, z, w] of Rz(yaw) Ry(pitch) Rx(roll)."""
    yaw, pitch, roll = euler[0], euler[1], euler[2]
    cr = ca.cos(roll/2.0)
    sr = ca.sin(roll/2.0)
    cp = ca.cos(pitch/2.0)
    sp = ca.sin(pitch/2.0)
    cy = ca.cos(yaw/2.0)
    sy = ca.sin(yaw/2.0)
    x = sr * cp * cy - cr * sp * sy
    y = cr * sp * cy + sr * cp * sy
    z = cr * cp * sy - sr * sp * cy
    w = cr * cp * cy + sr * sp * sy
    return ca.vertcat(x, y, z, w)


def rotation_from_quaternion(quat):
    """Rotation matrix of a unit quaternion [x, y, z, w]."""
    x, y, z, w = quat[0], quat[1], quat[2], quat[3]
    return ca.vertcat(
        ca.hcat([1 - 2*(y*y + z*z), 2*(x*y - z*w),     2*(x*z + y*w)]),
        ca.hcat([2*(x*y + z*w),     1 - 2*(x*x + z*z), 2*(y*z - x*w)]),
        ca.hcat([2*(x*z - y*w),     2*(y*z + x*w),     1 - 2*(x*x + y*y)]),
    )


def euler_zyx_from_quaternion(quat):
    return euler_zyx_from_rotation(rotation_from_quaternion(quat))


def quaternion_product(quat0, quat1):
    """Returns the quaternion product of q0 and q1, both [x, y, z, w]."""
    x0, y0, z0, w0 = quat0[0], quat0[1], quat0[2], quat0[3]
    x1, y1, z1, w1 = quat1[0], quat1[1], quat1[2], quat1[3]
    return ca.vertcat(
        w0*x1 + x0*w1 + y0*z1 - z0*y1,
        w0*y1 - x0*z1 + y0*w1 + z0*x1,
        w0*z1 + x0*y1 - y0*x1 + z0*w1,
        w0*w1 - x0*x1 - y0*y1 - z0*z1)


def quaternion_exp(omega):
    """Unit quaternion [x, y, z, w] of the rotation vector omega."""
    theta = ca.norm_2(omega)
    # sin(theta/2)/theta, series expansion near zero
    k = ca.if_else(theta > 1e-9,
                   ca.sin(theta/2.0) / ca.fmax(theta, 1e-9),
                   0.5 - theta**2 / 48.0)
    return ca.vertcat(k * omega, ca.cos(theta/2.0))


def euler_zyx_rate_to_body_angular_velocity(euler):
    """E(euler) with w_body = E(euler) @ d/dt [yaw, pitch, roll]."""
    sθ, cθ = ca.sin(euler[1]), ca.cos(euler[1])
    sφ, cφ = ca.sin(euler[2]), ca.cos(euler[2])

    row1 = ca.horzcat(   -sθ,   0, 1)
    row2 = ca.horzcat(cθ*sφ,  cφ, 0)
    row3 = ca.horzcat(cθ*cφ, -sφ, 0)
    return ca.vertcat(row1, row2, row3)


def body_angular_velocity_to_euler_zyx_rate(euler):
    """E(euler)^-1, singular at pitch = +-pi/2."""
    sθ, cθ = ca.sin(euler[1]), ca.cos(euler[1])
    sφ, cφ = ca.sin(euler[2]), ca.cos(euler[2])

    row1 = ca.horzcat(0, sφ/cθ,    cφ/cθ)
    row2 = ca.horzcat(0, cφ,       -sφ)
    row3 = ca.horzcat(1, sφ*sθ/cθ, cφ*sθ/cθ)
    return ca.vertcat(row1, row2, row3)
