"""
Configuration shared by the Azure resource samples.

Usage:
    from samples_config import parse_environment
    config = parse_environment()
    group = config.generate_group_name("networking")
"""

from .config import (
    AzureEnvironment,
    AzureSamplesSettings,
    ConfigurationError,
    environment_from_name,
    parse_environment,
)

__all__ = [
    "AzureEnvironment",
    "AzureSamplesSettings",
    "ConfigurationError",
    "environment_from_name",
    "parse_environment",
]
