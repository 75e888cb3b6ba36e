"""Mapping between the floating base state/input and the generalized
coordinates of the multibody solver."""
import casadi as ca
import numpy as np

import floating_base.access_helpers as access
import kinodyn.utils.transformation_matrix as Transformation
from floating_base._internal.validation import (
    as_vector,
    is_symbolic,
    validate_matrix,
    validate_vector,
)
from floating_base.errors import DimensionMismatch
from floating_base.model_info import FloatingBaseModelInfo


class FloatingBaseMapping(object):
    """Converts state and input to the solver's generalized position and
    velocity, and lifts solver Jacobians back to state and input.

    The solver context is bound, never owned: the caller keeps it alive for
    as long as it stays bound. Copies start unbound.
    """

    def __init__(self, info: FloatingBaseModelInfo):
        self.info = info
        self._context = None

    @property
    def context(self):
        return self._context

    def bind(self, context):
        """Records a reference to the solver context used by later calls."""
        self._context = context
        self._check_context()
        return self

    def clone(self):
        return FloatingBaseMapping(self.info)

    def __copy__(self):
        return self.clone()

    def __deepcopy__(self, memo):
        return self.clone()

    def _check_context(self):
        if self._context is None:
            return
        nv, n_joints = self._context.nv, self._context.n_joints
        if nv != self.info.generalized_coordinates_num or n_joints != self.info.actuated_dof_num:
            raise DimensionMismatch(
                f"Solver context has nv={nv} and {n_joints} joints, model info expects "
                f"nv={self.info.generalized_coordinates_num} and {self.info.actuated_dof_num} joints"
            )

    def to_generalized_position(self, state):
        """Returns q = [base position, base quaternion (x, y, z, w), joint angles].

        numpy in, numpy out; casadi in, casadi out.
        """
        info = self.info
        symbolic = is_symbolic(state)
        if not symbolic:
            state = ca.DM(as_vector(state, info.state_dim, 'state'))
        validate_vector(state, info.state_dim, 'state')

        base_position = access.get_base_position(state, info)
        base_quaternion = Transformation.quaternion_from_euler_zyx(
            access.get_base_orientation_zyx(state, info))
        joint_angles = access.get_joint_angles(state, info)

        q = ca.vertcat(base_position, base_quaternion, joint_angles)
        return q if symbolic else q.full().ravel()

    def to_generalized_velocity(self, state, input):
        """Returns v = [base linear velocity, base angular velocity, joint
        velocities], base velocities in the base frame."""
        info = self.info
        symbolic = is_symbolic(state) or is_symbolic(input)
        if not symbolic:
            state = ca.DM(as_vector(state, info.state_dim, 'state'))
            input = ca.DM(as_vector(input, info.input_dim, 'input'))

        base_velocity = access.get_base_velocity(state, info)
        joint_velocities = access.get_joint_velocities(input, info)

        v = ca.vertcat(base_velocity, joint_velocities)
        return v if symbolic else v.full().ravel()

    def lift_jacobians(self, state, Jq, Jv):
        """Chain rule from solver Jacobians to state and input Jacobians.

        Jq is the derivative with respect to the configuration tangent
        dq = [dp_base (base frame), dtheta_base (base frame), dq_joints] and
        Jv the derivative with respect to v, both rows x nv.

        Returns:
            dfdx (rows x state_dim), dfdu (rows x input_dim)
        """
        info = self.info
        self._check_context()
        state = as_vector(state, info.state_dim, 'state')
        nv = info.generalized_coordinates_num
        Jq = np.atleast_2d(np.asarray(Jq, dtype=float))
        Jv = np.atleast_2d(np.asarray(Jv, dtype=float))
        validate_matrix(Jq, None, nv, 'Jq')
        validate_matrix(Jv, Jq.shape[0], nv, 'Jv')

        euler = ca.DM(access.get_base_orientation_zyx(state, info))
        R = Transformation.rotation_from_euler_zyx(euler).full()
        E = Transformation.euler_zyx_rate_to_body_angular_velocity(euler).full()

        n = info.actuated_dof_num
        dqdx = np.zeros((nv, info.state_dim))
        dqdx[0:3, 6:9] = R.T
        dqdx[3:6, 9:12] = E
        dqdx[6:, 12:] = np.eye(n)

        dvdx = np.zeros((nv, info.state_dim))
        dvdx[0:6, 0:6] = np.eye(6)

        dvdu = np.zeros((nv, info.input_dim))
        dvdu[6:, info.input_dim - n:] = np.eye(n)

        dfdx = Jq @ dqdx + Jv @ dvdx
        dfdu = Jv @ dvdu
        return dfdx, dfdu
