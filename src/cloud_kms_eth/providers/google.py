import logging

from google.api_core import exceptions as gcp_exceptions
from google.cloud import kms
from google.cloud.kms_v1 import KeyManagementServiceClient

from cloud_kms_eth.config import BaseConfig
from cloud_kms_eth.exceptions import KeyImportError, KeyNotFoundError, SigningError
from cloud_kms_eth.providers.base import HSMProvider
from cloud_kms_eth.types.ethereum_types import MSG_HASH_LENGTH

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = kms.CryptoKeyVersion.CryptoKeyVersionAlgorithm.EC_SIGN_SECP256K1_SHA256
IMPORT_METHOD = kms.ImportJob.ImportMethod.RSA_OAEP_3072_SHA256


class GoogleCloudHSM(HSMProvider):
    """Google Cloud HSM implementation."""

    def __init__(self, config: BaseConfig, client: KeyManagementServiceClient | None = None):
        self.config = config
        self.client = client or self._create_client()

    def _create_client(self) -> KeyManagementServiceClient:
        """Create Google Cloud KMS client."""
        if self.config.service_account_path:
            return kms.KeyManagementServiceClient.from_service_account_json(self.config.service_account_path)
        return kms.KeyManagementServiceClient()

    @property
    def key_version_path(self) -> str:
        return self.config.key_version_path

    def _import_job_path(self, import_job: str) -> str:
        if import_job.startswith("projects/"):
            return import_job
        return f"{self.config.key_ring_path}/importJobs/{import_job}"

    def sign_digest(self, digest: bytes) -> bytes:
        """
        Sign a precomputed digest with Cloud KMS.

        The Keccak-256 hash goes into the ``sha256`` digest slot unchanged;
        KMS does not hash it again.

        Raises:
            SigningError: If the digest is not 32 bytes or KMS rejects the request
            KeyNotFoundError: If the key version does not exist
        """
        if len(digest) != MSG_HASH_LENGTH:
            msg = f"Digest must be 32 bytes, got {len(digest)}"
            raise SigningError(msg)

        try:
            response = self.client.asymmetric_sign(
                request={
                    "name": self.key_version_path,
                    "digest": {"sha256": digest},
                }
            )
        except gcp_exceptions.NotFound as e:
            msg = f"Key version not found: {self.key_version_path}"
            raise KeyNotFoundError(msg) from e
        except Exception as e:
            msg = f"Failed to sign message: {e!s}"
            raise SigningError(msg) from e

        if not response.signature:
            msg = "Empty signature returned by Cloud KMS"
            raise SigningError(msg)
        return response.signature

    def get_public_key(self) -> bytes:
        """Get the PEM public key from Google Cloud HSM."""
        try:
            response = self.client.get_public_key(request={"name": self.key_version_path})
        except gcp_exceptions.NotFound as e:
            msg = f"Key version not found: {self.key_version_path}"
            raise KeyNotFoundError(msg) from e
        except Exception as e:
            msg = f"Failed to get public key: {e!s}"
            raise SigningError(msg) from e

        if not response.pem:
            msg = "No PEM data in response"
            raise KeyNotFoundError(msg)
        return response.pem.encode()

    def create_signing_key(self, crypto_key_id: str, import_only: bool = False) -> str:
        """
        Create an HSM-protected secp256k1 signing key in the configured key ring.

        Args:
            crypto_key_id: Name of the new crypto key
            import_only: Create the key without an initial version, so that its
                only versions come from imported material

        Returns:
            str: Resource name of the created key
        """
        crypto_key = {
            "purpose": kms.CryptoKey.CryptoKeyPurpose.ASYMMETRIC_SIGN,
            "version_template": {
                "algorithm": SIGNING_ALGORITHM,
                "protection_level": kms.ProtectionLevel.HSM,
            },
        }
        request = {"parent": self.config.key_ring_path, "crypto_key_id": crypto_key_id, "crypto_key": crypto_key}
        if import_only:
            crypto_key["import_only"] = True
            request["skip_initial_version_creation"] = True

        try:
            created = self.client.create_crypto_key(request=request)
        except Exception as e:
            msg = f"Failed to create key {crypto_key_id}: {e!s}"
            raise KeyImportError(msg) from e

        logger.info("Created HSM key %s", created.name)
        return created.name

    def create_import_job(self, import_job_id: str) -> str:
        """Create an RSA-OAEP-3072/SHA-256 import job and return its resource name."""
        import_job = {"import_method": IMPORT_METHOD, "protection_level": kms.ProtectionLevel.HSM}
        try:
            created = self.client.create_import_job(
                request={"parent": self.config.key_ring_path, "import_job_id": import_job_id, "import_job": import_job}
            )
        except Exception as e:
            msg = f"Failed to create import job {import_job_id}: {e!s}"
            raise KeyImportError(msg) from e

        logger.info("Created import job %s", created.name)
        return created.name

    def get_wrapping_key(self, import_job: str) -> bytes:
        name = self._import_job_path(import_job)
        try:
            job = self.client.get_import_job(request={"name": name})
        except gcp_exceptions.NotFound as e:
            msg = f"Import job not found: {name}"
            raise KeyNotFoundError(msg) from e
        except Exception as e:
            msg = f"Failed to read import job {name}: {e!s}"
            raise KeyImportError(msg) from e

        if job.state != kms.ImportJob.ImportJobState.ACTIVE:
            msg = f"Import job {name} is not active (state: {job.state})"
            raise KeyImportError(msg)
        return job.public_key.pem.encode()

    def import_key_material(self, wrapped_key: bytes, import_job: str) -> str:
        name = self._import_job_path(import_job)
        try:
            version = self.client.import_crypto_key_version(
                request={
                    "parent": self.config.key_path,
                    "import_job": name,
                    "algorithm": SIGNING_ALGORITHM,
                    "wrapped_key": wrapped_key,
                }
            )
        except Exception as e:
            msg = f"Failed to import key material: {e!s}"
            raise KeyImportError(msg) from e

        logger.info("Imported key version %s", version.name)
        return version.name
