"""At-rest protection for WordPress application passwords."""
import logging

from cryptography.fernet import Fernet, InvalidToken
from autopublish.config import settings
from autopublish.errors import CredentialError

logger = logging.getLogger(__name__)

def _fernet() -> Fernet:
    if not settings.fernet_key:
        raise CredentialError("FERNET_KEY is not set; WordPress application passwords cannot be stored or read")
    try:
        return Fernet(settings.fernet_key.encode())
    except ValueError as e:
        raise CredentialError("FERNET_KEY is not a valid Fernet key") from e

def encrypt_app_password(app_password: str) -> str:
    return _fernet().encrypt(app_password.encode()).decode()

def decrypt_app_password(ciphertext: str, site_id=None) -> str:
    try:
        return _fernet().decrypt(ciphertext.encode()).decode()
    except (TypeError, InvalidToken) as e:
        logger.error("[credentials] application password for site %s cannot be decrypted: %r", site_id, e)
        raise CredentialError(
            f"Stored application password for site {site_id} cannot be decrypted; "
            "FERNET_KEY changed or the row is corrupt. Re-register the site."
        ) from e
