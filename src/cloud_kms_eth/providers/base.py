from abc import ABC, abstractmethod


class HSMProvider(ABC):
    """Base class for HSM providers.

    A provider holds one secp256k1 signing key and never hands out the
    private scalar. Everything it returns is either a DER signature, a public
    key or resource names.
    """

    @abstractmethod
    def sign_digest(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest as-is and return the DER ``SEQUENCE { r, s }``."""

    @abstractmethod
    def get_public_key(self) -> bytes:
        """Get the public key from HSM (PEM, DER or raw point)."""

    @abstractmethod
    def get_wrapping_key(self, import_job: str) -> bytes:
        """PEM-encoded RSA key that import material must be wrapped with."""

    @abstractmethod
    def import_key_material(self, wrapped_key: bytes, import_job: str) -> str:
        """Import wrapped PKCS#8 material and return the new key version name."""
