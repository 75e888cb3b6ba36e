import copy

import casadi as ca
import numpy as np
import pytest

import floating_base.access_helpers as access
import kinodyn.utils.transformation_matrix as Transformation
from floating_base.errors import DimensionMismatch
from floating_base.mapping import FloatingBaseMapping
from floating_base.model_info import FloatingBaseModelInfo

from conftest import random_input, random_state


@pytest.fixture
def mapping(info, kindyn):
    return FloatingBaseMapping(info).bind(kindyn)


def _foot_quantity(kindyn, q, v, frame="LF_FOOT"):
    """A downstream quantity of (q, v): foot position and foot velocity."""
    _, p = kindyn.frame_placement(q, frame)
    J = kindyn.frame_jacobian(q, frame)
    return np.asarray(ca.vertcat(p, J[0:3, :] @ ca.DM(v)).full()).ravel()


def _solver_jacobians(kindyn, q, v, h=1e-6):
    """Derivatives of the foot quantity with respect to the configuration
    tangent (through integrate) and the generalized velocity."""
    rows = _foot_quantity(kindyn, q, v).size
    Jq = np.zeros((rows, kindyn.nv))
    Jv = np.zeros((rows, kindyn.nv))
    for k in range(kindyn.nv):
        dq = np.zeros(kindyn.nv)
        dq[k] = h
        Jq[:, k] = (_foot_quantity(kindyn, kindyn.integrate(q, dq), v)
                    - _foot_quantity(kindyn, kindyn.integrate(q, -dq), v)) / (2 * h)
        Jv[:, k] = (_foot_quantity(kindyn, q, v + dq)
                    - _foot_quantity(kindyn, q, v - dq)) / (2 * h)
    return Jq, Jv


def test_generalized_position(mapping, info, rng):
    x = random_state(info, rng)
    q = mapping.to_generalized_position(x)
    assert isinstance(q, np.ndarray)
    assert q.shape == (7 + info.actuated_dof_num,)
    np.testing.assert_allclose(q[0:3], x[6:9])
    np.testing.assert_allclose(q[7:], x[12:])
    assert np.linalg.norm(q[3:7]) == pytest.approx(1.0)
    euler = Transformation.euler_zyx_from_quaternion(ca.DM(q[3:7])).full().ravel()
    np.testing.assert_allclose(euler, x[9:12], atol=1e-10)


def test_generalized_position_yaw_only(mapping, info):
    x = np.zeros(info.state_dim)
    x[9] = np.pi / 2
    q = mapping.to_generalized_position(x)
    np.testing.assert_allclose(q[3:7], [0.0, 0.0, np.sin(np.pi / 4), np.cos(np.pi / 4)],
                               atol=1e-12)


def test_generalized_velocity(mapping, info, rng):
    x = random_state(info, rng)
    u = random_input(info, rng)
    v = mapping.to_generalized_velocity(x, u)
    assert v.shape == (info.generalized_coordinates_num,)
    np.testing.assert_allclose(v[0:6], x[0:6])
    np.testing.assert_allclose(v[6:], u[-info.actuated_dof_num:])


def test_symbolic_conversion(mapping, info, rng):
    x_sym = ca.SX.sym("x", info.state_dim)
    u_sym = ca.SX.sym("u", info.input_dim)
    q_sym = mapping.to_generalized_position(x_sym)
    v_sym = mapping.to_generalized_velocity(x_sym, u_sym)
    assert isinstance(q_sym, ca.SX) and isinstance(v_sym, ca.SX)

    f = ca.Function("f", [x_sym, u_sym], [q_sym, v_sym])
    x = random_state(info, rng)
    u = random_input(info, rng)
    q, v = f(x, u)
    np.testing.assert_allclose(q.full().ravel(), mapping.to_generalized_position(x))
    np.testing.assert_allclose(v.full().ravel(), mapping.to_generalized_velocity(x, u))


def test_conversion_needs_no_context(info, rng):
    mapping = FloatingBaseMapping(info)
    assert mapping.context is None
    x = random_state(info, rng)
    assert mapping.to_generalized_position(x).shape == (7 + info.actuated_dof_num,)


def test_wrong_lengths(mapping, info):
    with pytest.raises(DimensionMismatch):
        mapping.to_generalized_position(np.zeros(info.state_dim - 1))
    with pytest.raises(DimensionMismatch):
        mapping.to_generalized_velocity(np.zeros(info.state_dim), np.zeros(info.input_dim + 2))
    with pytest.raises(DimensionMismatch):
        mapping.lift_jacobians(np.zeros(info.state_dim), np.zeros((2, 5)), np.zeros((2, 5)))
    nv = info.generalized_coordinates_num
    with pytest.raises(DimensionMismatch):
        mapping.lift_jacobians(np.zeros(info.state_dim), np.zeros((2, nv)), np.zeros((3, nv)))


def test_bind_checks_dimensions(kindyn):
    with pytest.raises(DimensionMismatch):
        FloatingBaseMapping(FloatingBaseModelInfo(4, 0, 6)).bind(kindyn)


def test_clone_is_unbound(mapping, info, kindyn):
    assert mapping.context is kindyn
    for other in (mapping.clone(), copy.copy(mapping), copy.deepcopy(mapping)):
        assert other.context is None
        assert other.info is info
    assert mapping.context is kindyn


def test_lifted_blocks(mapping, info, rng):
    x = random_state(info, rng)
    rows = 4
    nv = info.generalized_coordinates_num
    n = info.actuated_dof_num
    Jq = rng.normal(size=(rows, nv))
    Jv = rng.normal(size=(rows, nv))
    dfdx, dfdu = mapping.lift_jacobians(x, Jq, Jv)
    assert dfdx.shape == (rows, info.state_dim)
    assert dfdu.shape == (rows, info.input_dim)

    euler = ca.DM(access.get_base_orientation_zyx(x, info))
    R = Transformation.rotation_from_euler_zyx(euler).full()
    E = Transformation.euler_zyx_rate_to_body_angular_velocity(euler).full()

    # base velocity columns only see the velocity Jacobian
    np.testing.assert_allclose(dfdx[:, 0:6], Jv[:, 0:6])
    # base position columns: world displacement expressed in the base frame
    np.testing.assert_allclose(dfdx[:, 6:9], Jq[:, 0:3] @ R.T)
    # orientation columns: euler rates to body angular displacement
    np.testing.assert_allclose(dfdx[:, 9:12], Jq[:, 3:6] @ E)
    np.testing.assert_allclose(dfdx[:, 12:], Jq[:, 6:])
    # only the joint velocities of the input enter
    np.testing.assert_allclose(dfdu[:, :info.input_dim - n], 0.0)
    np.testing.assert_allclose(dfdu[:, info.input_dim - n:], Jv[:, 6:])


def test_lifted_blocks_are_local(mapping, info, rng):
    x = random_state(info, rng)
    nv = info.generalized_coordinates_num
    Jq = np.zeros((3, nv))
    Jv = rng.normal(size=(3, nv))
    Jv[:, 6:] = 0.0
    dfdx, dfdu = mapping.lift_jacobians(x, Jq, Jv)
    np.testing.assert_allclose(dfdx[:, 6:], 0.0)
    np.testing.assert_allclose(dfdu, 0.0)

    Jq = rng.normal(size=(3, nv))
    Jq[:, 0:6] = 0.0
    dfdx, _ = mapping.lift_jacobians(x, Jq, np.zeros((3, nv)))
    np.testing.assert_allclose(dfdx[:, 0:12], 0.0)


def test_lift_matches_finite_differences(mapping, info, kindyn, rng):
    x = random_state(info, rng)
    u = random_input(info, rng)
    q = mapping.to_generalized_position(x)
    v = mapping.to_generalized_velocity(x, u)
    Jq, Jv = _solver_jacobians(kindyn, q, v)
    dfdx, dfdu = mapping.lift_jacobians(x, Jq, Jv)

    def g(x, u):
        return _foot_quantity(kindyn, mapping.to_generalized_position(x),
                              mapping.to_generalized_velocity(x, u))

    h = 1e-6
    dfdx_fd = np.zeros_like(dfdx)
    for k in range(info.state_dim):
        dx = np.zeros(info.state_dim)
        dx[k] = h
        dfdx_fd[:, k] = (g(x + dx, u) - g(x - dx, u)) / (2 * h)
    dfdu_fd = np.zeros_like(dfdu)
    for k in range(info.input_dim):
        du = np.zeros(info.input_dim)
        du[k] = h
        dfdu_fd[:, k] = (g(x, u + du) - g(x, u - du)) / (2 * h)

    np.testing.assert_allclose(dfdx, dfdx_fd, atol=1e-5)
    np.testing.assert_allclose(dfdu, dfdu_fd, atol=1e-5)
