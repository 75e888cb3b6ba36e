"""Static description of the floating base parameterization.

State: x = [base_linear_velocity, base_angular_velocity, base_position,
            base_orientation_zyx, joint_positions]
Input: u = [point_contact_forces, contact_wrenches, joint_velocities]

Base velocities are expressed in the base frame, base position and
orientation in the world frame. Contact forces and wrenches are expressed
in the world frame.
"""

import numbers
from dataclasses import dataclass, field
from typing import Tuple

from floating_base.errors import InvalidConfiguration

BASE_VELOCITY_DIM = 6
BASE_POSE_DIM = 6


def _validate_count(value, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidConfiguration(
            f"{name} must be an integer, got {value!r}"
        )
    if value < 0:
        raise InvalidConfiguration(
            f"{name} must be non-negative, got {value}"
        )


@dataclass(frozen=True)
class FloatingBaseModelInfo:
    """Counts of contacts and actuated joints and the derived dimensions.

    Attributes:
        num_point_contacts: Contacts exerting a pure force (3 inputs each)
        num_wrench_contacts: Contacts exerting force and torque (6 inputs each)
        actuated_dof_num: Number of actuated joints
        point_contact_names: Frame names of the point contacts, in input order
        wrench_contact_names: Frame names of the wrench contacts, in input order
    """

    num_point_contacts: int
    num_wrench_contacts: int
    actuated_dof_num: int
    point_contact_names: Tuple[str, ...] = field(default=())
    wrench_contact_names: Tuple[str, ...] = field(default=())

    def __post_init__(self):
        _validate_count(self.num_point_contacts, 'num_point_contacts')
        _validate_count(self.num_wrench_contacts, 'num_wrench_contacts')
        _validate_count(self.actuated_dof_num, 'actuated_dof_num')

        object.__setattr__(self, 'point_contact_names', tuple(self.point_contact_names))
        object.__setattr__(self, 'wrench_contact_names', tuple(self.wrench_contact_names))
        for names, count, label in (
                (self.point_contact_names, self.num_point_contacts, 'point'),
                (self.wrench_contact_names, self.num_wrench_contacts, 'wrench')):
            if names and len(names) != count:
                raise InvalidConfiguration(
                    f"{len(names)} {label} contact names given for {count} {label} contacts"
                )
        all_names = self.point_contact_names + self.wrench_contact_names
        if len(set(all_names)) != len(all_names):
            raise InvalidConfiguration(f"Duplicate contact names in {all_names}")

    @property
    def num_contacts(self) -> int:
        return self.num_point_contacts + self.num_wrench_contacts

    @property
    def contact_names(self) -> Tuple[str, ...]:
        return self.point_contact_names + self.wrench_contact_names

    @property
    def has_contact_names(self) -> bool:
        return len(self.contact_names) == self.num_contacts

    @property
    def state_dim(self) -> int:
        return BASE_VELOCITY_DIM + BASE_POSE_DIM + self.actuated_dof_num

    @property
    def input_dim(self) -> int:
        return (3 * self.num_point_contacts
                + 6 * self.num_wrench_contacts
                + self.actuated_dof_num)

    @property
    def generalized_coordinates_num(self) -> int:
        """Size of the solver velocity vector (base tangent + joints)."""
        return BASE_VELOCITY_DIM + self.actuated_dof_num

    def __str__(self):
        return (
            f"FloatingBaseModelInfo(point contacts: {self.num_point_contacts}, "
            f"wrench contacts: {self.num_wrench_contacts}, "
            f"actuated joints: {self.actuated_dof_num}, "
            f"state dim: {self.state_dim}, input dim: {self.input_dim})"
        )


def create_model_info(kindyn, point_contact_names=(), wrench_contact_names=()):
    """Builds the model info of a loaded robot.

    Args:
        kindyn: KinDynInterface with a loaded robot description
        point_contact_names: Frames exerting a pure force
        wrench_contact_names: Frames exerting a force and a torque

    Raises:
        InvalidConfiguration: If a contact frame does not exist
    """
    frames = set(kindyn.frame_names)
    for name in tuple(point_contact_names) + tuple(wrench_contact_names):
        if name not in frames:
            raise InvalidConfiguration(f"Contact frame '{name}' not found in the robot")

    return FloatingBaseModelInfo(
        num_point_contacts=len(point_contact_names),
        num_wrench_contacts=len(wrench_contact_names),
        actuated_dof_num=kindyn.n_joints,
        point_contact_names=tuple(point_contact_names),
        wrench_contact_names=tuple(wrench_contact_names),
    )
