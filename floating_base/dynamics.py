"""Automatically differentiated flow map of a floating base robot.

The flow map x_dot = f(t, x, u) is recorded once as a casadi SX graph, turned
into two casadi functions (value, value plus Jacobians) and cached as an
artifact. Evaluation afterwards only calls the compiled functions.
"""
import hashlib
import json
import re
from collections import namedtuple
from logging import DEBUG, INFO, getLogger
from platform import machine, system

import casadi as ca
import numpy as np

import floating_base.access_helpers as access
import kinodyn.utils.transformation_matrix as Transformation
from floating_base._internal.validation import as_vector
from floating_base.artifact_cache import ArtifactKey, default_cache
from floating_base.errors import InvalidConfiguration
from floating_base.mapping import FloatingBaseMapping
from floating_base.model_info import FloatingBaseModelInfo
from floating_base.settings import DEFAULT_MODEL_FOLDER

logger = getLogger(__name__)

VectorFunctionLinearApproximation = namedtuple(
    "VectorFunctionLinearApproximation", ["f", "dfdx", "dfdu"])


def _function_name(model_name):
    """Turns model_name into a valid casadi function name."""
    name = re.sub(r"[^0-9A-Za-z]+", "_", model_name).strip("_")
    if not name or not name[0].isalpha():
        name = "model_" + name if name else "model"
    return name


class FloatingBaseDynamicsAD(object):
    """Flow map of the floating base state under contact forces and joint
    velocity inputs.

    The base acceleration follows from the floating base rows of the equations
    of motion, M_bb a_b = (J_c^T F_c - h)_b, with the joints moving at the
    commanded velocities. The state derivative is

        x_dot = [a_b, R(euler) v_base, E(euler)^-1 w_base, qd_joints]
    """
    func_opts = {}
    jit_func_opts = {"jit": True, "jit_options": {"flags": "-O3 -ffast-math",}}
    # OS/CPU dependent choice of compiler
    if system().lower() == "darwin" or machine().lower() == "aarch64":
        jit_func_opts["compiler"] = "shell"

    def __init__(self, kindyn, info: FloatingBaseModelInfo, model_name,
                 model_folder=DEFAULT_MODEL_FOLDER, recompile_libraries=True,
                 verbose=False, use_jit=False, cache=None):
        """Records and compiles the flow map, or loads a stored one.

        Args:
            kindyn: Loaded KinDynInterface of the robot
            info: Model info; contact names select the contact frames
            model_name: Name of the generated functions and artifact files
            model_folder: Folder of the artifact files
            recompile_libraries: Regenerate even if an artifact is stored
            verbose: Report build and load steps at INFO level
            use_jit: Just-in-time compile the functions
            cache: ArtifactCache to use, the module default if None

        Raises:
            InvalidConfiguration: If contact frames are missing or unknown
            DimensionMismatch: If the robot does not match the model info
            CompilationError: If recording or storing the flow map fails
            ArtifactLoadError: If a stored artifact cannot be used
        """
        self.info = info
        self.model_name = _function_name(model_name)
        self.mapping = FloatingBaseMapping(info).bind(kindyn)
        self._check_contacts(kindyn)

        self.func_opts = dict(self.func_opts)
        if use_jit:
            # NOTE: use_jit=True requires a C compiler on the path
            self.func_opts.update(self.jit_func_opts)

        key = ArtifactKey(self._signature(kindyn), self.model_name, model_folder)
        metadata = {"state_dim": info.state_dim, "input_dim": info.input_dim,
                    "model_info": str(info)}
        self._cache = cache if cache is not None else default_cache
        self._flow_map, self._linear_approximation = self._cache.get_or_build(
            key, lambda: self._build(kindyn, verbose), recompile=recompile_libraries,
            verbose=verbose, metadata=metadata)
        # the solver context is only needed while recording
        self.mapping = self.mapping.clone()

    @classmethod
    def from_settings(cls, kindyn, info, settings, cache=None):
        return cls(kindyn, info, settings.model_name,
                   model_folder=settings.model_folder,
                   recompile_libraries=settings.recompile_libraries,
                   verbose=settings.verbose, use_jit=settings.use_jit,
                   cache=cache)

    def _check_contacts(self, kindyn):
        info = self.info
        if info.num_contacts and not info.has_contact_names:
            raise InvalidConfiguration(
                "Contact frame names are required to apply the contact forces")
        for name in info.contact_names:
            if name not in kindyn.frames:
                raise InvalidConfiguration(f"Contact frame '{name}' not found in the robot")

    def _signature(self, kindyn):
        payload = "|".join([kindyn.signature(), repr(self.info),
                            json.dumps(self.func_opts, sort_keys=True)])
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def _build(self, kindyn, verbose):
        level = INFO if verbose else DEBUG
        info = self.info
        t = ca.SX.sym("t")
        x = ca.SX.sym("x", info.state_dim)
        u = ca.SX.sym("u", info.input_dim)

        logger.log(level, "Recording flow map of %s", info)
        x_dot = self._record_flow_map(kindyn, x, u)

        flow_map = ca.Function(
            self.model_name + "_flow_map", [t, x, u], [x_dot],
            ["t", "x", "u"], ["x_dot"], self.func_opts)
        linear_approximation = ca.Function(
            self.model_name + "_linear_approximation", [t, x, u],
            [x_dot, ca.jacobian(x_dot, x), ca.jacobian(x_dot, u)],
            ["t", "x", "u"], ["f", "dfdx", "dfdu"], self.func_opts)
        logger.log(level, "Flow map has %d nodes", flow_map.n_nodes())
        return flow_map, linear_approximation

    def _record_flow_map(self, kindyn, x, u):
        info = self.info
        q = self.mapping.to_generalized_position(x)
        v = self.mapping.to_generalized_velocity(x, u)

        M = kindyn.mass_matrix(q)
        h = kindyn.nonlinear_effects(q, v)

        tau = ca.SX.zeros(kindyn.nv)
        for i, frame in enumerate(info.point_contact_names):
            J = kindyn.frame_jacobian(q, frame)
            tau = tau + J[0:3, :].T @ access.get_contact_forces(u, info, i)
        for j, frame in enumerate(info.wrench_contact_names):
            J = kindyn.frame_jacobian(q, frame)
            wrench = ca.vertcat(
                access.get_contact_forces(u, info, info.num_point_contacts + j),
                access.get_contact_torques(u, info, j))
            tau = tau + J.T @ wrench

        base_acceleration = ca.solve(M[0:6, 0:6], (tau - h)[0:6])

        euler = access.get_base_orientation_zyx(x, info)
        R = Transformation.rotation_from_euler_zyx(euler)
        E_inv = Transformation.body_angular_velocity_to_euler_zyx_rate(euler)
        return ca.vertcat(
            base_acceleration,
            R @ access.get_base_linear_velocity(x, info),
            E_inv @ access.get_base_angular_velocity(x, info),
            access.get_joint_velocities(u, info),
        )

    def _arguments(self, time, state, input):
        state = as_vector(state, self.info.state_dim, 'state')
        input = as_vector(input, self.info.input_dim, 'input')
        return float(time), ca.DM(state), ca.DM(input)

    def evaluate(self, time, state, input):
        """Returns the state derivative as a numpy array of length state_dim.

        Raises:
            DimensionMismatch: If state or input has the wrong length
        """
        x_dot = self._flow_map(*self._arguments(time, state, input))
        return x_dot.full().ravel()

    def linear_approximation(self, time, state, input):
        """Returns the state derivative with its exact Jacobians with respect
        to state and input.

        Raises:
            DimensionMismatch: If state or input has the wrong length
        """
        f, dfdx, dfdu = self._linear_approximation(*self._arguments(time, state, input))
        return VectorFunctionLinearApproximation(
            f.full().ravel(), np.asarray(dfdx.full()), np.asarray(dfdu.full()))

    @property
    def flow_map_function(self):
        return self._flow_map

    @property
    def linear_approximation_function(self):
        return self._linear_approximation

    def clone(self):
        """Copy sharing the compiled functions, with its own unbound mapping."""
        new = object.__new__(type(self))
        new.__dict__.update(self.__dict__)
        new.mapping = self.mapping.clone()
        return new

    def __copy__(self):
        return self.clone()

    def __deepcopy__(self, memo):
        return self.clone()
