import json
import threading

import casadi as ca
import numpy as np
import pytest

from floating_base.artifact_cache import ArtifactCache, ArtifactKey
from floating_base.dynamics import FloatingBaseDynamicsAD
from floating_base.errors import ArtifactLoadError, CompilationError

from conftest import random_input, random_state


class CountingBuilder(object):
    """Builds a small pair of functions and counts the calls."""

    def __init__(self, gain=2.0):
        self.gain = gain
        self.calls = 0

    def __call__(self):
        self.calls += 1
        t = ca.SX.sym("t")
        x = ca.SX.sym("x", 2)
        u = ca.SX.sym("u", 1)
        f = self.gain * x + ca.vertcat(u, ca.sin(x[0]))
        return (ca.Function("toy_flow_map", [t, x, u], [f]),
                ca.Function("toy_linear_approximation", [t, x, u],
                            [f, ca.jacobian(f, x), ca.jacobian(f, u)]))


@pytest.fixture
def key(tmp_path):
    return ArtifactKey("abc123", "toy", str(tmp_path / "artifacts"))


def test_build_and_store(key):
    builder = CountingBuilder()
    flow_map, linear_approximation = ArtifactCache().get_or_build(key, builder, recompile=True)
    assert builder.calls == 1
    assert float(flow_map(0.0, [1.0, 0.0], [0.5])[0]) == pytest.approx(2.5)
    for path in (ArtifactCache.metadata_path(key),
                 ArtifactCache.function_path(key, "flow_map"),
                 ArtifactCache.function_path(key, "linear_approximation")):
        with open(path, "rb") as file:
            assert file.read()
    with open(ArtifactCache.metadata_path(key)) as file:
        metadata = json.load(file)
    assert metadata["signature"] == "abc123"
    assert metadata["casadi_version"] == ca.__version__


def test_missing_artifact_is_built(key):
    builder = CountingBuilder()
    cache = ArtifactCache()
    assert not cache.exists(key)
    cache.get_or_build(key, builder, recompile=False)
    assert builder.calls == 1
    assert cache.exists(key)


def test_memo(key):
    builder = CountingBuilder()
    cache = ArtifactCache()
    first = cache.get_or_build(key, builder, recompile=True)
    second = cache.get_or_build(key, builder, recompile=False)
    assert builder.calls == 1
    assert key in cache
    assert first[0] is second[0]

    cache.get_or_build(key, builder, recompile=True)
    assert builder.calls == 2

    cache.clear()
    assert key not in cache


def test_load_from_disk(key):
    ArtifactCache().get_or_build(key, CountingBuilder(), recompile=True)

    builder = CountingBuilder(gain=-1.0)
    flow_map, linear_approximation = ArtifactCache().get_or_build(key, builder, recompile=False)
    assert builder.calls == 0
    f, dfdx, dfdu = linear_approximation(0.0, [0.3, -0.2], [1.0])
    np.testing.assert_allclose(f.full().ravel(), [1.6, -0.4 + np.sin(0.3)])
    np.testing.assert_allclose(dfdx.full(), [[2.0, 0.0], [np.cos(0.3), 2.0]])
    np.testing.assert_allclose(dfdu.full(), [[1.0], [0.0]])


def test_signature_mismatch(key):
    ArtifactCache().get_or_build(key, CountingBuilder(), recompile=True)
    other = key._replace(signature="def456")
    with pytest.raises(ArtifactLoadError):
        ArtifactCache().get_or_build(other, CountingBuilder(), recompile=False)
    # forcing a rebuild replaces the stale artifact
    ArtifactCache().get_or_build(other, CountingBuilder(), recompile=True)
    ArtifactCache().get_or_build(other, CountingBuilder(), recompile=False)


def test_incomplete_artifact(key, tmp_path):
    ArtifactCache().get_or_build(key, CountingBuilder(), recompile=True)
    (tmp_path / "artifacts" / "toy_linear_approximation.casadi").unlink()
    with pytest.raises(ArtifactLoadError, match="Missing"):
        ArtifactCache().get_or_build(key, CountingBuilder(), recompile=False)


def test_corrupt_function_file(key):
    ArtifactCache().get_or_build(key, CountingBuilder(), recompile=True)
    with open(ArtifactCache.function_path(key, "flow_map"), "w") as file:
        file.write("not a casadi function")
    with pytest.raises(ArtifactLoadError):
        ArtifactCache().get_or_build(key, CountingBuilder(), recompile=False)


def test_corrupt_metadata(key):
    ArtifactCache().get_or_build(key, CountingBuilder(), recompile=True)
    with open(ArtifactCache.metadata_path(key), "w") as file:
        file.write("{")
    with pytest.raises(ArtifactLoadError):
        ArtifactCache().get_or_build(key, CountingBuilder(), recompile=False)


def test_contains_waits_for_lock(key):
    cache = ArtifactCache()
    cache.get_or_build(key, CountingBuilder(), recompile=True)
    found = []
    with cache._lock:
        reader = threading.Thread(target=lambda: found.append(key in cache))
        reader.start()
        reader.join(timeout=0.2)
        assert reader.is_alive()
    reader.join()
    assert found == [True]


def test_malformed_metadata(key):
    ArtifactCache().get_or_build(key, CountingBuilder(), recompile=True)
    with open(ArtifactCache.metadata_path(key), "w") as file:
        json.dump(["abc123"], file)
    with pytest.raises(ArtifactLoadError, match="Malformed"):
        ArtifactCache().get_or_build(key, CountingBuilder(), recompile=False)


def test_builder_failure(key):
    def builder():
        raise RuntimeError("recording failed")

    with pytest.raises(CompilationError, match="recording failed"):
        ArtifactCache().get_or_build(key, builder, recompile=True)


def test_builder_must_return_pair(key):
    with pytest.raises(CompilationError):
        ArtifactCache().get_or_build(key, lambda: (CountingBuilder()()[0],), recompile=True)


def test_reloaded_dynamics_agree(dynamics, kindyn, info, model_folder, rng):
    reloaded = FloatingBaseDynamicsAD(kindyn, info, "quadruped",
                                      model_folder=model_folder,
                                      recompile_libraries=False,
                                      cache=ArtifactCache())
    again = FloatingBaseDynamicsAD(kindyn, info, "quadruped",
                                   model_folder=model_folder,
                                   recompile_libraries=False,
                                   cache=ArtifactCache())
    for _ in range(3):
        x = random_state(info, rng)
        u = random_input(info, rng)
        expected = dynamics.linear_approximation(0.0, x, u)
        for model in (reloaded, again):
            approximation = model.linear_approximation(0.0, x, u)
            np.testing.assert_allclose(approximation.f, expected.f, rtol=1e-12, atol=1e-12)
            np.testing.assert_allclose(approximation.dfdx, expected.dfdx, rtol=1e-12, atol=1e-12)
            np.testing.assert_allclose(approximation.dfdu, expected.dfdu, rtol=1e-12, atol=1e-12)
            np.testing.assert_allclose(model.evaluate(0.0, x, u), dynamics.evaluate(0.0, x, u),
                                       rtol=1e-12, atol=1e-12)
