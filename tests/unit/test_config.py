"""Unit tests for configuration."""
import pytest
from unittest.mock import patch

from pydantic import ValidationError

from cloud_kms_eth.config import BaseConfig
from cloud_kms_eth.exceptions import ConfigurationError

# Test Constants
TEST_ENV = {
    "project_id": "test-project",
    "location_id": "test-region",
    "key_ring_id": "test-keyring",
    "key_id": "test-key",
}
ENV_VARS = {
    "GOOGLE_CLOUD_PROJECT": "env-project",
    "GOOGLE_CLOUD_REGION": "env-region",
    "KEY_RING": "env-keyring",
    "KEY_NAME": "env-key",
}


def test_config_initialization():
    """Test initialization with instance variables."""
    config = BaseConfig(**TEST_ENV)
    assert config.project_id == TEST_ENV["project_id"]
    assert config.location_id == TEST_ENV["location_id"]
    assert config.key_ring_id == TEST_ENV["key_ring_id"]
    assert config.key_id == TEST_ENV["key_id"]


def test_config_default_values():
    """Test default values for non-required fields."""
    config = BaseConfig(**TEST_ENV)
    assert config.web3_provider_uri == "http://localhost:8545"
    assert config.key_version == "1"
    assert config.chain_id is None
    assert config.service_account_path is None
    assert config.max_retries == 3


def test_config_resource_paths():
    config = BaseConfig(**TEST_ENV, key_version="4")
    assert config.key_ring_path == "projects/test-project/locations/test-region/keyRings/test-keyring"
    assert config.key_path == config.key_ring_path + "/cryptoKeys/test-key"
    assert config.key_version_path == config.key_path + "/cryptoKeyVersions/4"


def test_config_validation_empty():
    """Test validation with empty config."""
    with pytest.raises(ValidationError) as exc_info:
        BaseConfig()
    error_msg = str(exc_info.value)
    assert "project_id" in error_msg
    assert "location_id" in error_msg
    assert "key_ring_id" in error_msg
    assert "key_id" in error_msg


def test_config_partial_values():
    """Test validation with partial values."""
    with pytest.raises(ValidationError) as exc_info:
        BaseConfig(project_id="test-project", location_id="test-region")
    error_msg = str(exc_info.value)
    assert "key_ring_id" in error_msg
    assert "key_id" in error_msg


@pytest.mark.parametrize("value", ["", "   ", "\t", "\r\n"])
def test_config_blank_string_validation(value):
    """Test that empty and whitespace strings are considered invalid."""
    with pytest.raises(ValidationError) as exc_info:
        BaseConfig(**{**TEST_ENV, "project_id": value})
    assert "project_id" in str(exc_info.value)


def test_config_strips_whitespace():
    config = BaseConfig(**{**TEST_ENV, "key_id": "  test-key \n"})
    assert config.key_id == "test-key"


@pytest.mark.parametrize("field,value", [("chain_id", 0), ("max_retries", 0), ("rpc_timeout", -1)])
def test_config_numeric_bounds(field, value):
    with pytest.raises(ValidationError):
        BaseConfig(**TEST_ENV, **{field: value})


def test_config_update():
    """Test updating config values."""
    config = BaseConfig(**TEST_ENV)

    # Update single value
    assert config.update(project_id="new-project") is config
    assert config.project_id == "new-project"

    # Update multiple values
    config.update(location_id="new-region", key_ring_id="new-keyring")
    assert config.location_id == "new-region"
    assert config.key_ring_id == "new-keyring"
    assert config.key_path.startswith("projects/new-project/locations/new-region/keyRings/new-keyring/")


def test_config_update_validation():
    """A failed update raises and leaves every field unchanged."""
    config = BaseConfig(**TEST_ENV)

    with pytest.raises(ConfigurationError) as exc_info:
        config.update(location_id="new-region", project_id="")
    assert "project_id" in str(exc_info.value)
    assert config.project_id == TEST_ENV["project_id"]
    assert config.location_id == TEST_ENV["location_id"]


def test_config_update_unknown_field():
    config = BaseConfig(**TEST_ENV)
    with pytest.raises(ConfigurationError, match="Unknown configuration fields: colour"):
        config.update(colour="blue")


def test_config_web3_provider_override():
    """Test overriding web3 provider URI."""
    custom_uri = "http://custom:8545"
    config = BaseConfig(**TEST_ENV, web3_provider_uri=custom_uri)
    assert config.web3_provider_uri == custom_uri


def test_config_from_env_vars():
    """Test BaseConfig initialization from environment variables."""
    with patch.dict("os.environ", ENV_VARS, clear=True):
        config = BaseConfig.from_env()

    assert config.project_id == "env-project"
    assert config.location_id == "env-region"
    assert config.key_ring_id == "env-keyring"
    assert config.key_id == "env-key"
    assert config.key_version == "1"
    assert config.service_account_path is None


def test_config_optional_env_vars():
    """Test web3 and key version settings from environment."""
    env_vars = {
        **ENV_VARS,
        "KEY_VERSION": "3",
        "WEB3_PROVIDER_URI": "http://env:8545",
        "CHAIN_ID": "84532",
        "RPC_TIMEOUT": "12.5",
        "RPC_MAX_RETRIES": "5",
        "GOOGLE_APPLICATION_CREDENTIALS": "/secrets/sa.json",
    }

    with patch.dict("os.environ", env_vars, clear=True):
        config = BaseConfig.from_env()

    assert config.key_version == "3"
    assert config.web3_provider_uri == "http://env:8545"
    assert config.chain_id == 84532
    assert config.rpc_timeout == 12.5
    assert config.max_retries == 5
    assert config.service_account_path == "/secrets/sa.json"


def test_config_chain_id_unset():
    """An unset or empty CHAIN_ID leaves the chain to the node."""
    with patch.dict("os.environ", {**ENV_VARS, "CHAIN_ID": ""}, clear=True):
        assert BaseConfig.from_env().chain_id is None


def test_config_empty_env():
    """Test that an empty environment raises a configuration error."""
    with patch.dict("os.environ", {}, clear=True):
        with pytest.raises(ConfigurationError) as exc_info:
            BaseConfig.from_env()
    error_msg = str(exc_info.value)
    assert all(var in error_msg for var in ["project_id", "location_id", "key_ring_id", "key_id"])


@pytest.mark.parametrize("whitespace", ["  ", "\t", "\n", "\r\n"])
def test_config_whitespace_env_vars(whitespace):
    """Test that whitespace environment variables are treated as missing."""
    env_vars = {name: whitespace for name in ENV_VARS}

    with patch.dict("os.environ", env_vars, clear=True):
        with pytest.raises(ConfigurationError):
            BaseConfig.from_env()


def test_config_invalid_chain_id_env():
    with patch.dict("os.environ", {**ENV_VARS, "CHAIN_ID": "mainnet"}, clear=True):
        with pytest.raises(ConfigurationError, match="chain_id"):
            BaseConfig.from_env()


def test_config_blank_credentials_env():
    with patch.dict("os.environ", {**ENV_VARS, "GOOGLE_APPLICATION_CREDENTIALS": " "}, clear=True):
        assert BaseConfig.from_env().service_account_path is None
