"""Storage of the generated flow map functions.

An artifact is the pair (flow map, linear approximation) of casadi
functions of one model. It lives in memory for the process and on disk as

    <folder>/<name>_flow_map.casadi
    <folder>/<name>_linear_approximation.casadi
    <folder>/<name>.json

where the json file records the format version, the casadi version and the
model signature the functions were generated for.
"""
import json
import os
import threading
from collections import namedtuple
from logging import DEBUG, INFO, getLogger

import casadi as ca

from floating_base.errors import ArtifactLoadError, CompilationError

logger = getLogger(__name__)

FORMAT_VERSION = 1
FUNCTION_NAMES = ("flow_map", "linear_approximation")

ArtifactKey = namedtuple("ArtifactKey", ["signature", "name", "folder"])


class ArtifactCache(object):
    """In-process memo in front of the artifact files."""

    def __init__(self):
        self._memo = {}
        self._lock = threading.Lock()

    def __contains__(self, key):
        with self._lock:
            return key in self._memo

    def clear(self):
        with self._lock:
            self._memo.clear()

    @staticmethod
    def function_path(key, function_name):
        return os.path.join(key.folder, f"{key.name}_{function_name}.casadi")

    @staticmethod
    def metadata_path(key):
        return os.path.join(key.folder, f"{key.name}.json")

    def _paths(self, key):
        return [self.metadata_path(key)] + [
            self.function_path(key, name) for name in FUNCTION_NAMES]

    def exists(self, key):
        """True if any file of the artifact is on disk."""
        return any(os.path.exists(path) for path in self._paths(key))

    def get_or_build(self, key, builder, recompile=False, verbose=False, metadata=None):
        """Returns the (flow map, linear approximation) functions of key.

        Args:
            key: ArtifactKey of the model
            builder: Callable returning the function pair, called when the
                artifact has to be generated
            recompile: Always generate and overwrite the stored artifact
            verbose: Log the build and load steps at INFO level
            metadata: Extra entries written to the metadata file

        Raises:
            CompilationError: If generating or saving the functions fails
            ArtifactLoadError: If a stored artifact is incomplete, unreadable
                or was generated for a different model
        """
        level = INFO if verbose else DEBUG
        with self._lock:
            if not recompile and key in self._memo:
                logger.log(level, "Using in-memory artifact '%s'", key.name)
                return self._memo[key]

            if not recompile and self.exists(key):
                functions = self._load(key, level)
            else:
                functions = self._build(key, builder, level)
                self._save(key, functions, level, metadata or {})

            self._memo[key] = functions
            return functions

    def _build(self, key, builder, level):
        logger.log(level, "Generating artifact '%s'", key.name)
        try:
            functions = tuple(builder())
        except (RuntimeError, NotImplementedError) as e:
            raise CompilationError(f"Failed to generate '{key.name}': {e}") from e
        if len(functions) != len(FUNCTION_NAMES):
            raise CompilationError(
                f"Builder of '{key.name}' returned {len(functions)} functions, "
                f"expected {len(FUNCTION_NAMES)}")
        return functions

    def _save(self, key, functions, level, metadata):
        try:
            os.makedirs(key.folder, exist_ok=True)
            for name, function in zip(FUNCTION_NAMES, functions):
                function.save(self.function_path(key, name))
            content = dict(metadata)
            content.update({
                "format_version": FORMAT_VERSION,
                "casadi_version": ca.__version__,
                "signature": key.signature,
                "functions": list(FUNCTION_NAMES),
            })
            with open(self.metadata_path(key), "w") as file:
                json.dump(content, file, indent=2, sort_keys=True)
        except (RuntimeError, OSError) as e:
            raise CompilationError(f"Failed to save '{key.name}' to {key.folder}: {e}") from e
        logger.log(level, "Saved artifact '%s' to %s", key.name, key.folder)

    def _load(self, key, level):
        logger.log(level, "Loading artifact '%s' from %s", key.name, key.folder)
        metadata_path = self.metadata_path(key)
        try:
            with open(metadata_path, "r") as file:
                metadata = json.load(file)
        except (OSError, ValueError) as e:
            raise ArtifactLoadError(f"Cannot read {metadata_path}: {e}") from e
        if not isinstance(metadata, dict):
            raise ArtifactLoadError(f"Malformed metadata in {metadata_path}")

        expected = {
            "format_version": FORMAT_VERSION,
            "casadi_version": ca.__version__,
            "signature": key.signature,
        }
        for field, value in expected.items():
            if metadata.get(field) != value:
                logger.warning("Artifact '%s' has %s %r, expected %r",
                               key.name, field, metadata.get(field), value)
                raise ArtifactLoadError(
                    f"Artifact '{key.name}' in {key.folder} does not match the model "
                    f"({field} differs), regenerate it with recompile enabled")

        functions = []
        for name in FUNCTION_NAMES:
            path = self.function_path(key, name)
            if not os.path.exists(path):
                raise ArtifactLoadError(f"Missing artifact file {path}")
            try:
                functions.append(ca.Function.load(path))
            except RuntimeError as e:
                raise ArtifactLoadError(f"Cannot load {path}: {e}") from e
        return tuple(functions)


default_cache = ArtifactCache()
