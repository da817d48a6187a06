from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

from ..services.encryption_service import get_encryption_service


class EncryptedString(TypeDecorator):
    """String column encrypted with the application Fernet key.

    Attribute values stay plaintext in Python; only the stored form is
    ciphertext.
    """
    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return get_encryption_service().encrypt(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return get_encryption_service().decrypt(value)
