"""
Azure Samples Configuration Tests

Tests loading the sample settings from the environment, the derived
defaults and resource group name generation.
"""

import logging
import os

import pytest

from samples_config.config import (
    PUBLIC_CLOUD,
    REQUIRED_VARIABLES,
    ConfigurationError,
    describe,
    environment_from_name,
    parse_environment,
)

REQUIRED = {
    "AZURE_CLIENT_ID": "client-id",
    "AZURE_CLIENT_SECRET": "client-secret",
    "AZURE_TENANT_ID": "tenant-id",
    "AZURE_SUBSCRIPTION_ID": "subscription-id",
}


@pytest.fixture
def azure_env(monkeypatch):
    """Clean environment holding only the required variables"""
    for name in list(os.environ):
        if name.startswith("AZURE_"):
            monkeypatch.delenv(name)
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


class TestParseEnvironment:
    """Test suite for loading the configuration"""

    def test_accessors_return_values_verbatim(self, azure_env):
        azure_env.setenv("AZURE_GROUP_NAME", "my-group")
        azure_env.setenv("AZURE_BASE_GROUP_NAME", "my-base")
        azure_env.setenv("AZURE_RESOURCE_URL", "https://management.example.com/")
        azure_env.setenv("AZURE_LOCATION_DEFAULT", "eastus")
        azure_env.setenv("AZURE_USE_DEVICEFLOW", "true")
        azure_env.setenv("AZURE_SAMPLES_KEEP_RESOURCES", "1")

        config = parse_environment(env_file=None)

        assert config.client_id == "client-id"
        assert config.client_secret == "client-secret"
        assert config.tenant_id == "tenant-id"
        assert config.subscription_id == "subscription-id"
        assert config.group_name == "my-group"
        assert config.base_group_name == "my-base"
        assert config.resource_url == "https://management.example.com/"
        assert config.default_location == "eastus"
        assert config.location == "eastus"
        assert config.use_device_flow is True
        assert config.keep_resources is True

    def test_defaults(self, azure_env):
        config = parse_environment(env_file=None)

        assert config.group_name == "azure-samples"
        assert config.base_group_name == "azure-samples"
        assert config.default_location == "westus2"
        assert config.environment == PUBLIC_CLOUD
        assert config.resource_url == PUBLIC_CLOUD.resource_manager_endpoint
        assert config.authorization_server_url == PUBLIC_CLOUD.active_directory_endpoint
        assert config.use_device_flow is False
        assert config.keep_resources is False

    def test_base_group_name_defaults_to_group_name(self, azure_env):
        azure_env.setenv("AZURE_GROUP_NAME", "shared")
        config = parse_environment(env_file=None)
        assert config.base_group_name == "shared"

    def test_resource_url_follows_environment(self, azure_env):
        azure_env.setenv("AZURE_ENVIRONMENT", "AzureChinaCloud")
        config = parse_environment(env_file=None)
        assert config.resource_url == "https://management.chinacloudapi.cn/"
        assert config.authorization_server_url == "https://login.chinacloudapi.cn/"

    @pytest.mark.parametrize("missing", REQUIRED_VARIABLES)
    def test_missing_required_variable_raises(self, azure_env, missing):
        azure_env.delenv(missing)

        with pytest.raises(ConfigurationError) as exc_info:
            parse_environment(env_file=None)

        assert missing in str(exc_info.value)
        assert exc_info.value.missing == [missing]

    def test_invalid_flag_disables_it(self, azure_env, caplog):
        azure_env.setenv("AZURE_USE_DEVICEFLOW", "sometimes")

        with caplog.at_level(logging.WARNING, logger="samples_config.config"):
            config = parse_environment(env_file=None)

        assert config.use_device_flow is False
        assert "AZURE_USE_DEVICEFLOW" in caplog.text

    def test_config_is_immutable(self, azure_env):
        config = parse_environment(env_file=None)
        with pytest.raises(Exception):
            config.AZURE_GROUP_NAME = "changed"

    def test_describe_masks_secret(self, azure_env):
        summary = describe(parse_environment(env_file=None))
        assert summary["client_secret"] == "****"
        assert "client-secret" not in summary.values()


class TestGroupNames:
    """Test suite for resource group name generation"""

    def test_generated_names_are_unique(self, azure_env):
        azure_env.setenv("AZURE_BASE_GROUP_NAME", "base")
        config = parse_environment(env_file=None)

        first = config.generate_group_name("affix")
        second = config.generate_group_name("affix")

        assert first != second
        for name in (first, second):
            assert name.startswith("base-affix-")
            suffix = name[len("base-affix-"):]
            assert len(suffix) == 5
            assert suffix.isalnum() and suffix == suffix.lower()

    def test_without_affixes(self, azure_env):
        config = parse_environment(env_file=None)
        name = config.generate_group_name()
        assert name.startswith("azure-samples-")
        assert len(name) == len("azure-samples-") + 5

    def test_empty_affixes_skipped(self, azure_env):
        config = parse_environment(env_file=None)
        assert config.generate_group_name("", "vm").startswith("azure-samples-vm-")


class TestEnvironments:
    """Test suite for cloud lookup"""

    def test_lookup_is_case_insensitive(self):
        assert environment_from_name("azureusgovernmentcloud").name == "AzureUSGovernmentCloud"

    def test_unknown_name_falls_back_to_public(self, caplog):
        with caplog.at_level(logging.WARNING, logger="samples_config.config"):
            assert environment_from_name("MarsCloud") == PUBLIC_CLOUD
        assert "MarsCloud" in caplog.text

    def test_empty_name_is_public(self):
        assert environment_from_name(None) == PUBLIC_CLOUD
