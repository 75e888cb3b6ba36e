"""Build settings of the automatically differentiated dynamics."""

import os
import re
import tempfile
from dataclasses import dataclass

import yaml

from floating_base.errors import InvalidConfiguration

DEFAULT_MODEL_FOLDER = os.path.join(tempfile.gettempdir(), "floating_base_model")


@dataclass(frozen=True)
class DynamicsSettings:
    """Where and how the flow map is generated.

    Attributes:
        model_name: Name of the generated model, used for the artifact files
        model_folder: Folder the artifact files are saved to
        recompile_libraries: If true the model is always regenerated, if false
            an existing artifact is loaded when available
        verbose: Report build and load steps at INFO level
        use_jit: Just-in-time compile the casadi functions, needs a C compiler
    """

    model_name: str = "floating_base_dynamics"
    model_folder: str = DEFAULT_MODEL_FOLDER
    recompile_libraries: bool = True
    verbose: bool = False
    use_jit: bool = False

    def __post_init__(self):
        # casadi rejects function names with repeated or trailing underscores
        if not re.fullmatch(r"[A-Za-z][A-Za-z0-9]*(_[A-Za-z0-9]+)*", self.model_name or ""):
            raise InvalidConfiguration(
                f"model_name must be a valid casadi function name, got {self.model_name!r}"
            )
        if not self.model_folder:
            raise InvalidConfiguration("model_folder must not be empty")

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'DynamicsSettings':
        """Load settings from a YAML file.

        The file holds the fields either at top level or under a
        ``dynamics`` key.

        Raises:
            FileNotFoundError: If YAML file does not exist
            InvalidConfiguration: If a field is unknown or invalid
        """
        with open(yaml_path, 'r') as file:
            config = yaml.safe_load(file) or {}

        if isinstance(config, dict):
            config = config.get('dynamics', config)
        if not isinstance(config, dict):
            raise InvalidConfiguration(
                f"Dynamics settings in {yaml_path} must be a mapping, got {type(config).__name__}"
            )
        unknown = set(config) - set(cls.__dataclass_fields__)
        if unknown:
            raise InvalidConfiguration(f"Unknown dynamics settings: {sorted(unknown)}")
        return cls(**config)
