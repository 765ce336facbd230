# attestations/otp.py
import hashlib
import hmac
import math
import secrets

import pyotp
from django.core.cache import cache
from django.conf import settings
from django.utils import timezone


def otp_ttl():
    return settings.OTP_TTL_SECONDS


def expiry_minutes():
    return math.ceil(otp_ttl() / 60)


def _cache_key(challenge_id):
    return f"otp_challenge_{challenge_id}"


def _attempt_key(challenge_id):
    return f"otp_attempts_{challenge_id}"


def new_code() -> str:
    return f"{secrets.randbelow(10 ** 6):06d}"


def generate_otp(challenge_id) -> str:
    """
    Génère un code à 6 chiffres à usage unique pour la tentative de signature
    et le garde en cache pendant OTP_TTL_SECONDS.
    Un nouvel appel remplace le code précédent sans remettre à zéro les tentatives.
    """
    code = new_code()
    cache.set(_cache_key(challenge_id), code, timeout=otp_ttl())
    return code


def validate_otp(challenge_id, token):
    """
    Vérifie le code et limite le nombre de tentatives.
    Retourne un tuple (is_valid, blocked) :
      - is_valid : True si le code est correct (il est alors consommé)
      - blocked  : True si le nombre maximal de tentatives est atteint
    """
    code = cache.get(_cache_key(challenge_id))
    attempts_key = _attempt_key(challenge_id)
    attempts = cache.get(attempts_key, 0)
    max_attempts = settings.MAX_OTP_ATTEMPTS

    if attempts >= max_attempts:
        return False, True
    if not code or not token:
        return False, False

    if hmac.compare_digest(code, str(token).strip()):
        clear_otp(challenge_id)
        return True, False

    attempts += 1
    cache.set(attempts_key, attempts, timeout=otp_ttl())
    return False, attempts >= max_attempts


def clear_otp(challenge_id):
    cache.delete_many([_cache_key(challenge_id), _attempt_key(challenge_id)])


# ---------------------------------------------------------------------------
# TOTP (application d'authentification)
# ---------------------------------------------------------------------------
def new_totp_secret() -> str:
    return pyotp.random_base32()


def provisioning_uri(secret: str, user) -> str:
    label = f"{user.get_full_name() or user.username} ({user.email})"
    return pyotp.TOTP(secret).provisioning_uri(name=label, issuer_name=settings.TOTP_ISSUER)


def match_totp(secret: str, token, for_time=None):
    """
    Retourne le pas de temps (timecode) correspondant au code, en tolérant
    un pas de décalage de part et d'autre, ou None si le code est faux.
    """
    token = str(token or "").strip()
    if len(token) != 6 or not token.isdigit():
        return None
    totp = pyotp.TOTP(secret)
    for_time = for_time or timezone.now()
    current = totp.timecode(for_time)
    for offset in (0, -1, 1):
        if hmac.compare_digest(totp.at(for_time, counter_offset=offset), token):
            return current + offset
    return None


# ---------------------------------------------------------------------------
# Codes de secours
# ---------------------------------------------------------------------------
def _normalize(code) -> str:
    return str(code or "").strip().upper().replace("-", "").replace(" ", "")


def hash_backup_code(code) -> str:
    return hmac.new(settings.SECRET_KEY.encode("utf-8"), _normalize(code).encode("utf-8"), hashlib.sha256).hexdigest()


def generate_backup_codes(count=None):
    count = count or settings.TOTP_BACKUP_CODES
    return [secrets.token_hex(4).upper() for _ in range(count)]


def consume_backup_code(hashes, code):
    """Retourne la liste des empreintes restantes si le code est valide, sinon None."""
    if not _normalize(code):
        return None
    candidate = hash_backup_code(code)
    for stored in hashes:
        if hmac.compare_digest(stored, candidate):
            return [h for h in hashes if h != stored]
    return None
