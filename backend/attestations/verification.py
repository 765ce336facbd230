# attestations/verification.py
"""Vérification publique d'une attestation à partir de son QR code.

Le motif précis d'un échec est journalisé mais jamais renvoyé à
l'appelant : la réponse publique est toujours la même.
"""
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Optional

from . import qr_codec
from .exceptions import TamperDetected
from .models import Attestation

logger = logging.getLogger(__name__)

PUBLIC_REASON = "Attestation introuvable ou invalide"


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reason: Optional[str] = None
    attestation: Optional[Attestation] = None

    def public_payload(self) -> dict:
        if not self.valid:
            return {"valid": False, "reason": PUBLIC_REASON}
        att = self.attestation
        appele = att.demande.appele
        return {
            "valid": True,
            "attestation": {
                "numero": att.numero,
                "nom": appele.nom,
                "prenom": appele.prenom,
                "date_naissance": appele.date_naissance.isoformat(),
                "promotion": appele.promotion,
                "diplome": appele.diplome,
                "numero_arrete": appele.numero_arrete,
                "date_generation": att.date_generation.isoformat(),
                "date_signature": att.date_signature.isoformat() if att.date_signature else None,
                "statut": att.statut,
            },
        }


def _load(numero) -> Attestation:
    attestation = (
        Attestation.objects.select_related("demande__appele").filter(numero=str(numero or "").strip()).first()
    )
    if attestation is None:
        raise TamperDetected("not_found")
    if not attestation.est_signee:
        raise TamperDetected("not_signed")
    return attestation


def _check_integrity(attestation, presented=None):
    stored = attestation.qr_payload or {}
    check = qr_codec.check_payload(stored)
    if not check.valid:
        raise TamperDetected(check.reason)
    expected = qr_codec.payload_for_attestation(attestation)
    if not hmac.compare_digest(expected[qr_codec.DIGEST_FIELD], stored[qr_codec.DIGEST_FIELD]):
        raise TamperDetected("payload_mismatch")
    if presented is not None and presented != expected:
        raise TamperDetected("payload_mismatch")


def reject(reason, label) -> VerificationResult:
    logger.warning("Vérification refusée pour %s : %s", label, reason)
    return VerificationResult(False, reason)


def _outcome(func, label) -> VerificationResult:
    try:
        attestation = func()
    except TamperDetected as e:
        return reject(e.reason, label)
    return VerificationResult(True, None, attestation)


def verify_attestation(numero, sig=None, ts=None) -> VerificationResult:
    """Vérifie une attestation par son numéro et, s'ils sont fournis, les paramètres sig/ts."""

    def _run():
        if (sig in (None, "")) != (ts in (None, "")):
            raise TamperDetected("missing_fields")
        attestation = _load(numero)
        if sig not in (None, "") and not qr_codec.verify_freshness(attestation.numero, sig, ts):
            raise TamperDetected("bad_freshness")
        _check_integrity(attestation)
        return attestation

    return _outcome(_run, numero)


def verify_scanned_payload(payload) -> VerificationResult:
    """Vérifie une charge utile JSON lue dans le QR code."""

    def _run():
        data = payload
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except ValueError:
                raise TamperDetected("malformed")
        check = qr_codec.check_payload(data)
        if not check.valid:
            raise TamperDetected(check.reason)
        attestation = _load(data.get("n"))
        presented = {k: data[k] for k in (*qr_codec.FIELDS, qr_codec.DIGEST_FIELD)}
        _check_integrity(attestation, presented)
        return attestation

    label = payload.get("n") if isinstance(payload, dict) else "charge utile"
    return _outcome(_run, label)
