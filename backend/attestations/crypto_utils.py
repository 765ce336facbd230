# attestations/crypto_utils.py
import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings

logger = logging.getLogger(__name__)


def compute_hashes(pdf_bytes: bytes):
    return {
        "hash_sha256": hashlib.sha256(pdf_bytes).hexdigest(),
    }


def _fernet() -> Fernet:
    key = getattr(settings, "TOTP_ENCRYPTION_KEY", "") or ""
    if not key:
        # Clé dérivée du SECRET_KEY quand aucune clé dédiée n'est configurée
        digest = hashlib.sha256(settings.SECRET_KEY.encode("utf-8")).digest()
        key = base64.urlsafe_b64encode(digest)
    return Fernet(key)


def encrypt_secret(value: str) -> str:
    return _fernet().encrypt(value.encode("utf-8")).decode("ascii")


def decrypt_secret(token: str) -> str:
    """Déchiffre un secret stocké ; lève ``InvalidToken`` si la clé a changé."""
    try:
        return _fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        logger.error("Secret chiffré illisible (clé TOTP modifiée ?)")
        raise
