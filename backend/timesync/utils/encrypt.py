from cryptography.fernet import Fernet
from timesync.config import settings

def get_fernet_key():
    """Returns the Fernet cipher for stored remote API keys."""
    return Fernet(settings.encryption_key.encode('utf-8'))

def encrypt_api_key(api_key: str) -> str:
    """Encrypts an API key for storage."""
    f = get_fernet_key()
    return f.encrypt(api_key.encode('utf-8')).decode('utf-8')

def decrypt_api_key(encrypted_key: str) -> str:
    """Decrypts a stored API key. Raises cryptography's InvalidToken on a bad key or payload."""
    f = get_fernet_key()
    return f.decrypt(encrypted_key.encode('utf-8')).decode('utf-8')
