# attestations/qr_codec.py
"""Charge utile du QR code des attestations et signature HMAC.

La charge utile contient six champs métier en noms courts, sérialisés
dans un ordre fixe, plus l'empreinte ``h`` (HMAC-SHA256, hex)::

    {"n": "ATT-2026-00001", "nom": "ABDOU", "prenom": "Moussa",
     "dn": "1995-05-15", "arr": "ARR-2024-017", "dt": "2026-03-02", "h": "..."}
"""
import base64
import hashlib
import hmac
import io
import json
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from urllib.parse import quote, urlencode

import qrcode
from django.conf import settings
from django.utils import timezone

FIELDS = ("n", "nom", "prenom", "dn", "arr", "dt")
DIGEST_FIELD = "h"


@dataclass(frozen=True)
class PayloadCheck:
    valid: bool
    reason: Optional[str] = None


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _secret(secret_key=None) -> bytes:
    key = secret_key if secret_key is not None else settings.QR_SECRET_KEY
    return key.encode("utf-8") if isinstance(key, str) else key


def canonical(fields: dict) -> bytes:
    ordered = {name: _as_text(fields.get(name)) for name in FIELDS}
    return json.dumps(ordered, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_digest(fields: dict, secret_key=None) -> str:
    return hmac.new(_secret(secret_key), canonical(fields), hashlib.sha256).hexdigest()


def unsigned_payload(numero, nom, prenom, date_naissance, numero_arrete, date_emission) -> dict:
    return {
        "n": _as_text(numero),
        "nom": _as_text(nom),
        "prenom": _as_text(prenom),
        "dn": _as_text(date_naissance),
        "arr": _as_text(numero_arrete),
        "dt": _as_text(date_emission),
    }


def build_payload(numero, nom, prenom, date_naissance, numero_arrete, date_emission, secret_key=None) -> dict:
    payload = unsigned_payload(numero, nom, prenom, date_naissance, numero_arrete, date_emission)
    payload[DIGEST_FIELD] = compute_digest(payload, secret_key)
    return payload


def payload_for_attestation(attestation, secret_key=None) -> dict:
    """Charge utile signée reconstruite depuis l'état courant en base."""
    appele = attestation.demande.appele
    return build_payload(
        attestation.numero,
        appele.nom,
        appele.prenom,
        appele.date_naissance,
        appele.numero_arrete,
        attestation.date_generation,
        secret_key,
    )


def check_payload(payload, secret_key=None) -> PayloadCheck:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (TypeError, ValueError):
            return PayloadCheck(False, "malformed")
    if not isinstance(payload, dict):
        return PayloadCheck(False, "malformed")

    # Un champ vide est présent ; seul un champ manquant invalide la charge utile
    for name in FIELDS:
        if name not in payload or payload[name] is None:
            return PayloadCheck(False, "missing_fields")

    digest = payload.get(DIGEST_FIELD)
    if not isinstance(digest, str) or len(digest) != 64:
        return PayloadCheck(False, "bad_digest")
    try:
        bytes.fromhex(digest)
    except ValueError:
        return PayloadCheck(False, "bad_digest")

    expected = compute_digest(payload, secret_key)
    if not hmac.compare_digest(expected, digest.lower()):
        return PayloadCheck(False, "bad_digest")
    return PayloadCheck(True)


def verify_payload(payload, secret_key=None) -> bool:
    return check_payload(payload, secret_key).valid


# ---------------------------------------------------------------------------
# Paramètres sig/ts de l'URL de vérification
# ---------------------------------------------------------------------------
def sign_freshness(numero: str, ts: int, secret_key=None) -> str:
    message = f"{numero}|{int(ts)}".encode("utf-8")
    return hmac.new(_secret(secret_key), message, hashlib.sha256).hexdigest()


def verify_freshness(numero: str, sig, ts, secret_key=None, now: Optional[float] = None) -> bool:
    if not sig or ts in (None, ""):
        return False
    try:
        ts = int(ts)
    except (TypeError, ValueError):
        return False
    now = time.time() if now is None else now
    if ts > now + settings.QR_CLOCK_SKEW_SECONDS:
        return False
    if now - ts > settings.QR_MAX_AGE_SECONDS:
        return False
    expected = sign_freshness(numero, ts, secret_key)
    return hmac.compare_digest(expected, str(sig).lower())


def verification_url(numero: str, sig: str, ts: int) -> str:
    base = settings.FRONT_BASE_URL.rstrip("/")
    return f"{base}/verifier/{quote(numero)}?{urlencode({'sig': sig, 'ts': int(ts)})}"


def signed_verification_url(numero: str, ts: Optional[int] = None, secret_key=None) -> str:
    ts = int(time.time()) if ts is None else int(ts)
    return verification_url(numero, sign_freshness(numero, ts, secret_key), ts)


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------
def qr_png_bytes(data: str) -> bytes:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=10,
        border=1,
    )
    qr.add_data(data)
    qr.make(fit=True)
    buf = io.BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buf, format="PNG")
    return buf.getvalue()


def qr_data_uri(data: str) -> str:
    return "data:image/png;base64," + base64.b64encode(qr_png_bytes(data)).decode("ascii")
