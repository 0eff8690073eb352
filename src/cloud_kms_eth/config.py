"""Configuration settings for the application."""

import os

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cloud_kms_eth.exceptions import ConfigurationError

# Configuration Constants
ENV_PROJECT_ID = "GOOGLE_CLOUD_PROJECT"
ENV_LOCATION_ID = "GOOGLE_CLOUD_REGION"
ENV_KEY_RING_ID = "KEY_RING"
ENV_KEY_ID = "KEY_NAME"
ENV_KEY_VERSION = "KEY_VERSION"
ENV_SERVICE_ACCOUNT_PATH = "GOOGLE_APPLICATION_CREDENTIALS"
ENV_WEB3_PROVIDER_URI = "WEB3_PROVIDER_URI"
ENV_CHAIN_ID = "CHAIN_ID"
ENV_RPC_TIMEOUT = "RPC_TIMEOUT"
ENV_RPC_MAX_RETRIES = "RPC_MAX_RETRIES"

DEFAULT_KEY_VERSION = "1"
DEFAULT_WEB3_PROVIDER_URI = "http://localhost:8545"
DEFAULT_RPC_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3


class BaseConfig(BaseModel):
    """Application settings for Google Cloud KMS."""

    model_config = ConfigDict(validate_assignment=True)

    # Google Cloud settings
    project_id: str
    location_id: str
    key_ring_id: str
    key_id: str
    key_version: str = DEFAULT_KEY_VERSION
    service_account_path: str | None = None

    # Web3 settings
    web3_provider_uri: str = DEFAULT_WEB3_PROVIDER_URI
    chain_id: int | None = Field(None, gt=0)
    rpc_timeout: float = Field(DEFAULT_RPC_TIMEOUT, gt=0)
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=1)

    @field_validator("project_id", "location_id", "key_ring_id", "key_id", "key_version", "web3_provider_uri")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        """Validate that fields are not empty or whitespace."""
        if not v or not v.strip():
            msg = "Field cannot be empty or whitespace"
            raise ValueError(msg)
        return v.strip()

    @field_validator("service_account_path")
    @classmethod
    def empty_path_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def key_path(self) -> str:
        """Resource name of the crypto key (without version)."""
        return (
            f"projects/{self.project_id}/locations/{self.location_id}/"
            f"keyRings/{self.key_ring_id}/cryptoKeys/{self.key_id}"
        )

    @property
    def key_ring_path(self) -> str:
        return f"projects/{self.project_id}/locations/{self.location_id}/keyRings/{self.key_ring_id}"

    @property
    def key_version_path(self) -> str:
        """Resource name of the crypto key version used for signing."""
        return f"{self.key_path}/cryptoKeyVersions/{self.key_version}"

    def update(self, **fields) -> "BaseConfig":
        """
        Replace ``fields`` in place. All values are validated together before
        anything is assigned, so a failed update leaves the config untouched.

        Raises:
            ConfigurationError: If a field is unknown or a value is invalid
        """
        unknown = set(fields) - set(self.__class__.model_fields)
        if unknown:
            msg = f"Unknown configuration fields: {', '.join(sorted(unknown))}"
            raise ConfigurationError(msg)
        try:
            validated = self.__class__.model_validate({**self.model_dump(), **fields})
        except ValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

        for name in fields:
            setattr(self, name, getattr(validated, name))
        return self

    @classmethod
    def from_env(cls) -> "BaseConfig":
        """
        Create configuration from environment variables.

        Returns:
            BaseConfig: Configuration instance with values from environment variables.

        Raises:
            ConfigurationError: If a required variable is missing or a value is invalid

        Example:
            ```python
            config = BaseConfig.from_env()
            account = GCPKmsAccount(config=config)
            ```
        """
        try:
            return cls(
                project_id=os.getenv(ENV_PROJECT_ID, ""),
                location_id=os.getenv(ENV_LOCATION_ID, ""),
                key_ring_id=os.getenv(ENV_KEY_RING_ID, ""),
                key_id=os.getenv(ENV_KEY_ID, ""),
                key_version=os.getenv(ENV_KEY_VERSION, DEFAULT_KEY_VERSION),
                service_account_path=os.getenv(ENV_SERVICE_ACCOUNT_PATH),
                web3_provider_uri=os.getenv(ENV_WEB3_PROVIDER_URI, DEFAULT_WEB3_PROVIDER_URI),
                chain_id=os.getenv(ENV_CHAIN_ID) or None,
                rpc_timeout=os.getenv(ENV_RPC_TIMEOUT, str(DEFAULT_RPC_TIMEOUT)),
                max_retries=os.getenv(ENV_RPC_MAX_RETRIES, str(DEFAULT_MAX_RETRIES)),
            )
        except ValidationError as e:
            msg = f"Invalid configuration from environment: {e}"
            raise ConfigurationError(msg) from e
