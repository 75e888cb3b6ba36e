import os

import numpy as np
import pytest

from floating_base.artifact_cache import ArtifactCache
from floating_base.dynamics import FloatingBaseDynamicsAD
from floating_base.model_info import create_model_info
from kinodyn.kindyn import KinDynInterface

DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")
QUADRUPED_URDF = os.path.join(DATA_DIR, "quadruped.urdf")
FEET = ("LF_FOOT", "RF_FOOT", "LH_FOOT", "RH_FOOT")
TOTAL_MASS = 20.0


def random_state(info, rng):
    """Random state away from the pitch singularity."""
    x = np.zeros(info.state_dim)
    x[0:6] = rng.normal(scale=0.5, size=6)
    x[6:9] = rng.normal(scale=0.3, size=3)
    x[9:12] = rng.uniform(-0.6, 0.6, size=3)
    x[12:] = rng.uniform(-0.5, 0.5, size=info.actuated_dof_num)
    return x


def random_input(info, rng):
    u = rng.normal(scale=30.0, size=info.input_dim)
    u[info.input_dim - info.actuated_dof_num:] = rng.normal(
        scale=0.5, size=info.actuated_dof_num)
    return u


@pytest.fixture(scope="session")
def kindyn():
    return KinDynInterface().from_file(QUADRUPED_URDF)


@pytest.fixture(scope="session")
def info(kindyn):
    return create_model_info(kindyn, point_contact_names=FEET)


@pytest.fixture(scope="session")
def model_folder(tmp_path_factory):
    return str(tmp_path_factory.mktemp("floating_base_model"))


@pytest.fixture(scope="session")
def dynamics(kindyn, info, model_folder):
    return FloatingBaseDynamicsAD(kindyn, info, "quadruped",
                                  model_folder=model_folder,
                                  recompile_libraries=True,
                                  cache=ArtifactCache())


@pytest.fixture
def rng():
    return np.random.default_rng(42)
