"""
Configuration for the Azure resource samples.

Loads client credentials, tenant and subscription identifiers and the
defaults used when creating resource groups. Some of these should be
considered base names and defaults rather than exact settings.

Environment variables are loaded from a sibling .env file or the system
environment, once, by parse_environment().
"""

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

REQUIRED_VARIABLES = (
    "AZURE_CLIENT_ID",
    "AZURE_CLIENT_SECRET",
    "AZURE_TENANT_ID",
    "AZURE_SUBSCRIPTION_ID",
)

GROUP_NAME_SUFFIX_LENGTH = 5
GROUP_NAME_ALPHABET = string.ascii_lowercase + string.digits

# Accepted spellings for boolean flags
_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


class ConfigurationError(Exception):
    """Required configuration is missing or invalid"""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


# =============================================================================
# Azure Clouds
# =============================================================================

@dataclass(frozen=True)
class AzureEnvironment:
    """Endpoints of one Azure cloud."""
    name: str
    resource_manager_endpoint: str
    active_directory_endpoint: str


PUBLIC_CLOUD = AzureEnvironment(
    name="AzurePublicCloud",
    resource_manager_endpoint="https://management.azure.com/",
    active_directory_endpoint="https://login.microsoftonline.com/",
)

AZURE_ENVIRONMENTS: Dict[str, AzureEnvironment] = {
    env.name.upper(): env
    for env in (
        PUBLIC_CLOUD,
        AzureEnvironment(
            name="AzureChinaCloud",
            resource_manager_endpoint="https://management.chinacloudapi.cn/",
            active_directory_endpoint="https://login.chinacloudapi.cn/",
        ),
        AzureEnvironment(
            name="AzureUSGovernmentCloud",
            resource_manager_endpoint="https://management.usgovcloudapi.net/",
            active_directory_endpoint="https://login.microsoftonline.us/",
        ),
        AzureEnvironment(
            name="AzureGermanCloud",
            resource_manager_endpoint="https://management.microsoftazure.de/",
            active_directory_endpoint="https://login.microsoftonline.de/",
        ),
    )
}


def environment_from_name(name: Optional[str]) -> AzureEnvironment:
    """Look up a cloud by name; unknown names fall back to the public cloud."""
    if not name:
        return PUBLIC_CLOUD
    env = AZURE_ENVIRONMENTS.get(name.strip().upper())
    if env is None:
        logger.warning(f"Unknown Azure environment {name!r}, using {PUBLIC_CLOUD.name}")
        return PUBLIC_CLOUD
    return env


# =============================================================================
# Settings
# =============================================================================

class AzureSamplesSettings(BaseSettings):
    """
    Immutable configuration record for the resource samples.

    Read through the lowercase properties; the uppercase fields mirror the
    environment variable names.
    """

    # these must be provided by environment
    AZURE_CLIENT_ID: str = Field(..., min_length=1)
    AZURE_CLIENT_SECRET: str = Field(..., min_length=1, repr=False)
    AZURE_TENANT_ID: str = Field(..., min_length=1)
    AZURE_SUBSCRIPTION_ID: str = Field(..., min_length=1)

    # we can choose defaults for these
    AZURE_ENVIRONMENT: str = Field(default=PUBLIC_CLOUD.name)
    AZURE_GROUP_NAME: str = Field(default="azure-samples")
    AZURE_BASE_GROUP_NAME: Optional[str] = Field(default=None)
    AZURE_RESOURCE_URL: Optional[str] = Field(default=None)
    AZURE_LOCATION_DEFAULT: str = Field(default="westus2")
    AZURE_USE_DEVICEFLOW: bool = Field(default=False)
    AZURE_SAMPLES_KEEP_RESOURCES: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator("AZURE_USE_DEVICEFLOW", "AZURE_SAMPLES_KEEP_RESOURCES", mode="before")
    @classmethod
    def parse_flag(cls, v: Union[str, bool, int, None], info) -> bool:
        """
        Parse a boolean flag; invalid values are logged and disable the flag.
        """
        if isinstance(v, bool):
            return v
        if v is None:
            return False
        text = str(v).strip()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        logger.warning(f"invalid value specified for {info.field_name}, disabling")
        return False

    @model_validator(mode="before")
    @classmethod
    def fill_derived_defaults(cls, data: Any) -> Any:
        # base group name and resource URL default to other settings
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("AZURE_BASE_GROUP_NAME"):
            data["AZURE_BASE_GROUP_NAME"] = data.get("AZURE_GROUP_NAME") or cls.model_fields["AZURE_GROUP_NAME"].default
        if not data.get("AZURE_RESOURCE_URL"):
            data["AZURE_RESOURCE_URL"] = environment_from_name(
                data.get("AZURE_ENVIRONMENT")
            ).resource_manager_endpoint
        return data

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def client_id(self) -> str:
        """OAuth client ID"""
        return self.AZURE_CLIENT_ID

    @property
    def client_secret(self) -> str:
        """OAuth client secret"""
        return self.AZURE_CLIENT_SECRET

    @property
    def tenant_id(self) -> str:
        """AAD tenant to which this client belongs"""
        return self.AZURE_TENANT_ID

    @property
    def subscription_id(self) -> str:
        """Target subscription for resource management"""
        return self.AZURE_SUBSCRIPTION_ID

    @property
    def resource_url(self) -> str:
        """URL of the resource used with OAuth requests"""
        return self.AZURE_RESOURCE_URL

    @property
    def default_location(self) -> str:
        """
        Default location wherein to create new resources.

        Some resource types are not available in all locations so another
        location might need to be chosen.
        """
        return self.AZURE_LOCATION_DEFAULT

    @property
    def location(self) -> str:
        """Deprecated: use default_location instead."""
        return self.AZURE_LOCATION_DEFAULT

    @property
    def environment(self) -> AzureEnvironment:
        return environment_from_name(self.AZURE_ENVIRONMENT)

    @property
    def authorization_server_url(self) -> str:
        """OAuth authorization server URL"""
        return self.environment.active_directory_endpoint

    @property
    def use_device_flow(self) -> bool:
        """Whether interactive (device code) auth should be used"""
        return self.AZURE_USE_DEVICEFLOW

    @property
    def group_name(self) -> str:
        """Deprecated: do not use a shared group name, use base_group_name as a prefix."""
        return self.AZURE_GROUP_NAME

    @property
    def base_group_name(self) -> str:
        """Prefix for new resource groups"""
        return self.AZURE_BASE_GROUP_NAME

    @property
    def keep_resources(self) -> bool:
        return self.AZURE_SAMPLES_KEEP_RESOURCES

    def generate_group_name(self, *affixes: str) -> str:
        """
        Append a random string to the base group name, after any affixes.
        This helps to avoid collisions.

        Example:
            >>> config.generate_group_name("vm")
            'azure-samples-vm-k3x9q'
        """
        prefix = f"{self.base_group_name}-"
        for affix in affixes:
            if affix:
                prefix += f"{affix}-"
        suffix = "".join(secrets.choice(GROUP_NAME_ALPHABET) for _ in range(GROUP_NAME_SUFFIX_LENGTH))
        return prefix + suffix


# =============================================================================
# Loading
# =============================================================================

def parse_environment(env_file: Optional[str] = ".env") -> AzureSamplesSettings:
    """
    Load the sibling .env file and the environment into a settings record.

    Args:
        env_file: dotenv file to read, or None to use only the environment

    Returns:
        AzureSamplesSettings

    Raises:
        ConfigurationError: If a required variable is missing or a value is
            invalid
    """
    try:
        return AzureSamplesSettings(_env_file=env_file)
    except ValidationError as e:
        missing = [
            str(err["loc"][0])
            for err in e.errors()
            if err.get("type") == "missing" and err.get("loc")
        ]
        if missing:
            raise ConfigurationError(
                f"required environment variable(s) not set: {', '.join(missing)}",
                missing=missing,
            ) from e
        raise ConfigurationError(f"invalid configuration: {e}") from e


def describe(config: AzureSamplesSettings) -> Dict[str, Any]:
    """Configuration summary with the client secret masked."""
    return {
        "client_id": config.client_id,
        "client_secret": "****",
        "tenant_id": config.tenant_id,
        "subscription_id": config.subscription_id,
        "environment": config.environment.name,
        "resource_url": config.resource_url,
        "authorization_server_url": config.authorization_server_url,
        "default_location": config.default_location,
        "base_group_name": config.base_group_name,
        "use_device_flow": config.use_device_flow,
        "keep_resources": config.keep_resources,
    }


if __name__ == "__main__":
    """
    Validate your .env configuration:
        python -m samples_config.config
    """
    import json
    import sys

    logging.basicConfig(level=logging.INFO)

    try:
        config = parse_environment()
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        print("\nRequired variables:")
        for name in REQUIRED_VARIABLES:
            print(f"  - {name}")
        sys.exit(1)

    print(json.dumps(describe(config), indent=2))
