"""This module contains a class for turning a floating-base URDF tree into
casadi expressions of its kinematics and dynamics.

Generalized position q = [base position (3), base quaternion (x, y, z, w),
joint positions], generalized velocity v = [base linear velocity (3, base
frame), base angular velocity (3, base frame), joint velocities]. Every
algorithm accepts casadi.DM (numeric) or casadi.SX (symbolic) arguments.
"""
import hashlib
import json
from logging import getLogger

import casadi as ca
import numpy as np
from urdf_parser_py.urdf import URDF

import kinodyn.utils.plucker as plucker
import kinodyn.utils.transformation_matrix as Transformation

logger = getLogger(__name__)

# maps the floating base velocity [linear; angular] to a spatial motion vector
BASE_MOTION_SUBSPACE = ca.DM(np.block([[np.zeros((3, 3)), np.eye(3)],
                                       [np.eye(3), np.zeros((3, 3))]]))


def _as_casadi(x):
    if isinstance(x, (ca.SX, ca.MX, ca.DM)):
        return x
    return ca.DM(np.asarray(x, dtype=float))


class Body(object):
    """A rigid body of the tree: an actuated joint plus its child link and
    every link rigidly attached to it."""

    def __init__(self, name, parent, joint_name=None, joint_type=None,
                 axis=None, R_pj=None, p_pj=None, q_index=None):
        self.name = name
        self.parent = parent
        self.joint_name = joint_name
        self.joint_type = joint_type
        self.axis = axis
        self.R_pj = R_pj
        self.p_pj = p_pj
        self.q_index = q_index
        self.mass = 0.0
        self.inertia = ca.DM.zeros(6, 6)

    @property
    def motion_subspace(self):
        axis = ca.DM(self.axis) / ca.norm_2(ca.DM(self.axis))
        if self.joint_type == "prismatic":
            return ca.vertcat(ca.DM.zeros(3), axis)
        return ca.vertcat(axis, ca.DM.zeros(3))


class KinDynInterface(object):
    """Kinematics and dynamics of a floating-base URDF tree."""
    actuated_types = ["prismatic", "revolute", "continuous"]

    def __init__(self, gravity=(0.0, 0.0, -9.81)):
        self.robot_desc = None
        self.bodies = []
        self.frames = {}
        self.gravity = ca.DM(np.asarray(gravity, dtype=float))

    def from_file(self, filename):
        """Uses an URDF file to get robot description."""
        self.robot_desc = URDF.from_xml_file(filename)
        self._build_tree()
        return self

    def from_string(self, xml_string):
        """Uses an URDF string to get robot description."""
        self.robot_desc = URDF.from_xml_string(xml_string)
        self._build_tree()
        return self

    def _require_loaded(self):
        if self.robot_desc is None:
            raise ValueError('Robot description not loaded from urdf')

    def _build_tree(self):
        """Walks the URDF from its root link, creating one body per actuated
        joint and lumping fixed joints into their parent body."""
        root = self.robot_desc.get_root()
        self.bodies = [Body(root, -1)]
        self.frames = {}
        self._add_subtree(root, 0, ca.DM.eye(3), ca.DM.zeros(3))
        logger.debug("Loaded %s: %d bodies, %d joints, %d frames",
                     self.robot_desc.name, len(self.bodies), self.n_joints,
                     len(self.frames))

    def _add_subtree(self, link_name, body_index, R_bl, p_bl):
        """R_bl, p_bl: pose of the link frame in the body frame."""
        body = self.bodies[body_index]
        self.frames[link_name] = (body_index, R_bl, p_bl)

        link = self.robot_desc.link_map[link_name]
        if link.inertial is not None and link.inertial.mass:
            inertial = link.inertial
            I = inertial.inertia
            I_in = ca.DM([[I.ixx, I.ixy, I.ixz],
                          [I.ixy, I.iyy, I.iyz],
                          [I.ixz, I.iyz, I.izz]])
            xyz, rpy = [0., 0., 0.], [0., 0., 0.]
            if inertial.origin is not None:
                xyz = inertial.origin.xyz or xyz
                rpy = inertial.origin.rpy or rpy
            R_bi = R_bl @ Transformation.rot_from_rpy(*rpy)
            com = p_bl + R_bl @ ca.DM(xyz)
            body.inertia = body.inertia + plucker.spatial_inertia_matrix(
                R_bi @ I_in @ R_bi.T, inertial.mass, com)
            body.mass += inertial.mass

        for joint_name, child in self.robot_desc.child_map.get(link_name, []):
            joint = self.robot_desc.joint_map[joint_name]
            xyz, rpy = [0., 0., 0.], [0., 0., 0.]
            if joint.origin is not None:
                xyz = joint.origin.xyz or xyz
                rpy = joint.origin.rpy or rpy
            R_bj = R_bl @ Transformation.rot_from_rpy(*rpy)
            p_bj = p_bl + R_bl @ ca.DM(xyz)

            if joint.type == "fixed":
                self._add_subtree(child, body_index, R_bj, p_bj)
            elif joint.type in self.actuated_types:
                axis = joint.axis if joint.axis is not None else [1., 0., 0.]
                self.bodies.append(Body(child, body_index,
                                        joint_name=joint.name,
                                        joint_type=joint.type,
                                        axis=[float(a) for a in axis],
                                        R_pj=R_bj, p_pj=p_bj,
                                        q_index=self.n_joints))
                self._add_subtree(child, len(self.bodies) - 1,
                                  ca.DM.eye(3), ca.DM.zeros(3))
            else:
                raise ValueError(
                    f"Unsupported joint type '{joint.type}' for joint '{joint.name}'")

    @property
    def n_joints(self):
        """Returns number of actuated joints."""
        return len(self.bodies) - 1

    @property
    def nq(self):
        return 7 + self.n_joints

    @property
    def nv(self):
        return 6 + self.n_joints

    @property
    def joint_names(self):
        return [body.joint_name for body in self.bodies[1:]]

    @property
    def frame_names(self):
        return list(self.frames)

    @property
    def total_mass(self):
        return sum(body.mass for body in self.bodies)

    def _dofs(self, i):
        if i == 0:
            return slice(0, 6)
        k = 6 + self.bodies[i].q_index
        return slice(k, k + 1)

    def _motion_subspace(self, i):
        if i == 0:
            return BASE_MOTION_SUBSPACE
        return self.bodies[i].motion_subspace

    def _joint_transforms(self, q):
        """Transforms from parent body to body i for every non-root body."""
        i_X_p = [None]
        for body in self.bodies[1:]:
            qi = q[7 + body.q_index]
            if body.joint_type == "prismatic":
                i_X_p.append(plucker.XJT_prismatic(body.R_pj, body.p_pj, body.axis, qi))
            else:
                i_X_p.append(plucker.XJT_revolute(body.R_pj, body.p_pj, body.axis, qi))
        return i_X_p

    def neutral_configuration(self):
        q = ca.DM.zeros(self.nq)
        q[6] = 1.0
        return q

    def integrate(self, q, dq):
        """Returns q (+) dq: the base moves by dq[0:6] expressed in the base
        frame, the joints by dq[6:]."""
        q, dq = _as_casadi(q), _as_casadi(dq)
        R = Transformation.rotation_from_quaternion(q[3:7])
        position = q[0:3] + R @ dq[0:3]
        quat = Transformation.quaternion_product(
            q[3:7], Transformation.quaternion_exp(dq[3:6]))
        return ca.vertcat(position, quat / ca.norm_2(quat), q[7:] + dq[6:])

    def body_placements(self, q):
        """World rotation and position of every body frame."""
        q = _as_casadi(q)
        placements = [(Transformation.rotation_from_quaternion(q[3:7]), q[0:3])]
        for body in self.bodies[1:]:
            R_p, p_p = placements[body.parent]
            qi = q[7 + body.q_index]
            if body.joint_type == "prismatic":
                ax = ca.DM(body.axis) / ca.norm_2(ca.DM(body.axis))
                R = R_p @ body.R_pj
                p = p_p + R_p @ (body.p_pj + body.R_pj @ ax * qi)
            else:
                R = R_p @ body.R_pj @ Transformation.rot_from_axis_angle(body.axis, qi)
                p = p_p + R_p @ body.p_pj
            placements.append((R, p))
        return placements

    def _frame(self, frame):
        self._require_loaded()
        if frame not in self.frames:
            raise ValueError(f"Unknown frame '{frame}'")
        return self.frames[frame]

    def frame_placement(self, q, frame):
        """Returns the world rotation and position of a link frame."""
        body_index, R_bf, p_bf = self._frame(frame)
        R_b, p_b = self.body_placements(q)[body_index]
        return R_b @ R_bf, p_b + R_b @ p_bf

    def frame_jacobian(self, q, frame):
        """Returns the 6 x nv Jacobian [linear; angular] of a link frame,
        expressed in a frame at the link origin aligned with the world."""
        q = _as_casadi(q)
        body_index, R_bf, p_bf = self._frame(frame)
        placements = self.body_placements(q)
        R_b, p_b = placements[body_index]
        p_f = p_b + R_b @ p_bf

        J = plucker.zeros_like(q, 6, self.nv)
        R_0, p_0 = placements[0]
        J[0:3, 0:3] = R_0
        J[0:3, 3:6] = -ca.skew(p_f - p_0) @ R_0
        J[3:6, 3:6] = R_0

        i = body_index
        while i > 0:
            body = self.bodies[i]
            R_i, p_i = placements[i]
            axis = R_i @ (ca.DM(body.axis) / ca.norm_2(ca.DM(body.axis)))
            col = 6 + body.q_index
            if body.joint_type == "prismatic":
                J[0:3, col] = axis
            else:
                J[0:3, col] = ca.cross(axis, p_f - p_i)
                J[3:6, col] = axis
            i = body.parent
        return J

    def mass_matrix(self, q):
        """Returns the joint space inertia matrix, composite rigid body
        algorithm."""
        self._require_loaded()
        q = _as_casadi(q)
        i_X_p = self._joint_transforms(q)
        n_bodies = len(self.bodies)

        Ic = [body.inertia for body in self.bodies]
        for i in range(n_bodies - 1, 0, -1):
            p = self.bodies[i].parent
            Ic[p] = Ic[p] + i_X_p[i].T @ Ic[i] @ i_X_p[i]

        M = plucker.zeros_like(q, self.nv, self.nv)
        for i in range(n_bodies):
            S_i = self._motion_subspace(i)
            fh = Ic[i] @ S_i
            M[self._dofs(i), self._dofs(i)] = S_i.T @ fh
            j = i
            while self.bodies[j].parent >= 0:
                fh = i_X_p[j].T @ fh
                j = self.bodies[j].parent
                M_ij = fh.T @ self._motion_subspace(j)
                M[self._dofs(i), self._dofs(j)] = M_ij
                M[self._dofs(j), self._dofs(i)] = M_ij.T
        return M

    def inverse_dynamics(self, q, v, a):
        """Returns the generalized forces for accelerations a, recursive
        Newton-Euler algorithm with gravity."""
        self._require_loaded()
        q, v, a = _as_casadi(q), _as_casadi(v), _as_casadi(a)
        i_X_p = self._joint_transforms(q)
        n_bodies = len(self.bodies)

        # gravity enters as a fictitious upward acceleration of the base
        R_0 = Transformation.rotation_from_quaternion(q[3:7])
        a_grav = ca.vertcat(ca.DM.zeros(3), -R_0.T @ self.gravity)

        vel = [BASE_MOTION_SUBSPACE @ v[0:6]]
        acc = [BASE_MOTION_SUBSPACE @ a[0:6] + a_grav]
        f = []
        for i in range(n_bodies):
            if i != 0:
                S_i = self._motion_subspace(i)
                vJ = S_i @ v[self._dofs(i)]
                p = self.bodies[i].parent
                vel.append(i_X_p[i] @ vel[p] + vJ)
                acc.append(i_X_p[i] @ acc[p] + S_i @ a[self._dofs(i)]
                           + plucker.motion_cross_product(vel[i]) @ vJ)
            I_i = self.bodies[i].inertia
            f.append(I_i @ acc[i]
                     + plucker.force_cross_product(vel[i]) @ (I_i @ vel[i]))

        tau = [None] * n_bodies
        for i in range(n_bodies - 1, -1, -1):
            tau[i] = self._motion_subspace(i).T @ f[i]
            p = self.bodies[i].parent
            if p >= 0:
                f[p] = f[p] + i_X_p[i].T @ f[i]

        # bodies are ordered by q_index, so this is the generalized layout
        return ca.vertcat(*tau)

    def nonlinear_effects(self, q, v):
        """Returns the Coriolis, centrifugal and gravity terms h(q, v)."""
        return self.inverse_dynamics(q, v, plucker.zeros_like(_as_casadi(v), self.nv))

    def generalized_gravity(self, q):
        zero = plucker.zeros_like(_as_casadi(q), self.nv)
        return self.inverse_dynamics(q, zero, zero)

    def forward_dynamics(self, q, v, tau):
        """Returns the generalized accelerations M^-1 (tau - h)."""
        return ca.solve(self.mass_matrix(q),
                        _as_casadi(tau) - self.nonlinear_effects(q, v))

    def signature(self):
        """SHA-256 of everything the dynamics depend on."""
        self._require_loaded()
        tree = {
            "gravity": np.asarray(self.gravity).ravel().tolist(),
            "bodies": [
                {
                    "name": body.name,
                    "parent": body.parent,
                    "joint": body.joint_name,
                    "type": body.joint_type,
                    "axis": body.axis,
                    "R_pj": None if body.R_pj is None else np.asarray(body.R_pj).ravel().tolist(),
                    "p_pj": None if body.p_pj is None else np.asarray(body.p_pj).ravel().tolist(),
                    "inertia": np.asarray(body.inertia).ravel().tolist(),
                }
                for body in self.bodies
            ],
            "frames": {
                name: [index, np.asarray(R).ravel().tolist(), np.asarray(p).ravel().tolist()]
                for name, (index, R, p) in sorted(self.frames.items())
            },
        }
        payload = json.dumps(tree, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
