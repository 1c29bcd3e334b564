"""Project configuration loading and build request construction."""

from debmatrix.project.io import ConfigurationError, load_build_config
from debmatrix.project.request import BuildRequest, build_request_from_config
from debmatrix.project.schema import BuildConfigSchema

__all__ = [
    "BuildConfigSchema",
    "BuildRequest",
    "ConfigurationError",
    "build_request_from_config",
    "load_build_config",
]
