from cryptography.fernet import Fernet, InvalidToken
from tandem.config import get_settings

def get_fernet() -> Fernet:
    settings = get_settings()
    return Fernet(settings.FERNET_KEY.encode() if isinstance(settings.FERNET_KEY, str) else settings.FERNET_KEY)

def encrypt_message_content(content: str) -> str:
    """Encrypt message text using Fernet symmetric encryption."""
    f = get_fernet()
    return f.encrypt(content.encode("utf-8")).decode("ascii")

def decrypt_message_content(token: str) -> str:
    """Decrypt a Fernet token back to message text.

    Raises ``InvalidToken`` when the key has been rotated without
    re-encrypting stored rows.
    """
    f = get_fernet()
    return f.decrypt(token.encode("ascii")).decode("utf-8")

__all__ = ["encrypt_message_content", "decrypt_message_content", "InvalidToken"]
