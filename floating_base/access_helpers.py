"""Named blocks of the floating base state and input vectors.

Every quantity has a read accessor ``get_<quantity>`` and a write accessor
``<quantity>_view``.

* ``get_*`` accepts numpy arrays (and sequences) as well as casadi column
  vectors. For numpy arrays it returns a non-writeable view, for casadi
  vectors the sliced expression.
* ``*_view`` only accepts a numpy array and returns a writeable view that
  aliases the array's storage, so writing through it updates the vector
  in place.

The vector length is always checked against the model info and a wrong
length raises DimensionMismatch.
"""

import numpy as np

from floating_base._internal.validation import (
    is_symbolic,
    validate_index,
    validate_vector,
)
from floating_base.model_info import FloatingBaseModelInfo


def _read(vector, start: int, length: int, expected: int, name: str):
    if is_symbolic(vector):
        validate_vector(vector, expected, name)
        return vector[start:start + length]

    array = vector if isinstance(vector, np.ndarray) else np.asarray(vector, dtype=float)
    validate_vector(array, expected, name)
    view = array[start:start + length]
    view.flags.writeable = False
    return view


def _write(vector, start: int, length: int, expected: int, name: str) -> np.ndarray:
    if not isinstance(vector, np.ndarray):
        raise TypeError(
            f"{name} must be a numpy array to be written in place, got {type(vector).__name__}"
        )
    validate_vector(vector, expected, name)
    return vector[start:start + length]


def _contact_force_start(info: FloatingBaseModelInfo, contact_index: int) -> int:
    validate_index(contact_index, info.num_contacts, 'contact')
    if contact_index < info.num_point_contacts:
        return 3 * contact_index
    return 3 * info.num_point_contacts + 6 * (contact_index - info.num_point_contacts)


def _contact_torque_start(info: FloatingBaseModelInfo, contact_index: int) -> int:
    validate_index(contact_index, info.num_wrench_contacts, 'wrench contact')
    return 3 * info.num_point_contacts + 6 * contact_index + 3


# state


def get_base_velocity(state, info: FloatingBaseModelInfo):
    """[linear; angular] base velocity in the base frame."""
    return _read(state, 0, 6, info.state_dim, 'state')


def base_velocity_view(state, info: FloatingBaseModelInfo):
    return _write(state, 0, 6, info.state_dim, 'state')


def get_base_linear_velocity(state, info: FloatingBaseModelInfo):
    return _read(state, 0, 3, info.state_dim, 'state')


def base_linear_velocity_view(state, info: FloatingBaseModelInfo):
    return _write(state, 0, 3, info.state_dim, 'state')


def get_base_angular_velocity(state, info: FloatingBaseModelInfo):
    return _read(state, 3, 3, info.state_dim, 'state')


def base_angular_velocity_view(state, info: FloatingBaseModelInfo):
    return _write(state, 3, 3, info.state_dim, 'state')


def get_base_pose(state, info: FloatingBaseModelInfo):
    """[position; euler_zyx] base pose in the world frame."""
    return _read(state, 6, 6, info.state_dim, 'state')


def base_pose_view(state, info: FloatingBaseModelInfo):
    return _write(state, 6, 6, info.state_dim, 'state')


def get_base_position(state, info: FloatingBaseModelInfo):
    return _read(state, 6, 3, info.state_dim, 'state')


def base_position_view(state, info: FloatingBaseModelInfo):
    return _write(state, 6, 3, info.state_dim, 'state')


def get_base_orientation_zyx(state, info: FloatingBaseModelInfo):
    """[yaw, pitch, roll]"""
    return _read(state, 9, 3, info.state_dim, 'state')


def base_orientation_zyx_view(state, info: FloatingBaseModelInfo):
    return _write(state, 9, 3, info.state_dim, 'state')


def get_joint_angles(state, info: FloatingBaseModelInfo):
    return _read(state, 12, info.actuated_dof_num, info.state_dim, 'state')


def joint_angles_view(state, info: FloatingBaseModelInfo):
    return _write(state, 12, info.actuated_dof_num, info.state_dim, 'state')


def get_generalized_coordinates(state, info: FloatingBaseModelInfo):
    """Base pose followed by the joint angles."""
    return _read(state, 6, 6 + info.actuated_dof_num, info.state_dim, 'state')


def generalized_coordinates_view(state, info: FloatingBaseModelInfo):
    return _write(state, 6, 6 + info.actuated_dof_num, info.state_dim, 'state')


# input


def get_contact_forces(input, info: FloatingBaseModelInfo, contact_index: int):
    """Force of a contact; point contacts come first, then wrench contacts."""
    start = _contact_force_start(info, contact_index)
    return _read(input, start, 3, info.input_dim, 'input')


def contact_forces_view(input, info: FloatingBaseModelInfo, contact_index: int):
    start = _contact_force_start(info, contact_index)
    return _write(input, start, 3, info.input_dim, 'input')


def get_contact_torques(input, info: FloatingBaseModelInfo, contact_index: int):
    """Torque of a wrench contact, indexed among the wrench contacts only."""
    start = _contact_torque_start(info, contact_index)
    return _read(input, start, 3, info.input_dim, 'input')


def contact_torques_view(input, info: FloatingBaseModelInfo, contact_index: int):
    start = _contact_torque_start(info, contact_index)
    return _write(input, start, 3, info.input_dim, 'input')


def get_joint_velocities(input, info: FloatingBaseModelInfo):
    start = info.input_dim - info.actuated_dof_num
    return _read(input, start, info.actuated_dof_num, info.input_dim, 'input')


def joint_velocities_view(input, info: FloatingBaseModelInfo):
    start = info.input_dim - info.actuated_dof_num
    return _write(input, start, info.actuated_dof_num, info.input_dim, 'input')
