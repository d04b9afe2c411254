"""Fernet encryption for broker relay tokens stored in forwarding_config."""

from cryptography.fernet import Fernet

from alert_relay.config import settings

_fernet: Fernet | None = None


def generate_key() -> str:
    return Fernet.generate_key().decode()


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        key = settings.encryption_key
        if not key:
            raise RuntimeError(
                "AR_ENCRYPTION_KEY not set. Generate one with: python -m alert_relay.cli generate-key"
            )
        _fernet = Fernet(key.encode() if isinstance(key, str) else key)
    return _fernet


def encrypt(plaintext: str) -> str:
    """Encrypt a token for storage."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    return _get_fernet().decrypt(ciphertext.encode()).decode()
