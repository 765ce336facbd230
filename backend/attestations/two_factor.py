# attestations/two_factor.py
"""Protocole de signature à deux facteurs du directeur.

Une tentative de signature (``SigningChallenge``) vit en cache le temps
de ``SIGNATURE_CHALLENGE_TTL_SECONDS`` et passe par les états
AWAITING_PIN → AWAITING_SECOND_FACTOR → AUTHORIZED. L'autorisation
obtenue ne peut être consommée qu'une seule fois.
"""
import logging
import re
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from enum import Enum

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from . import otp
from .audit import log_action
from .crypto_utils import decrypt_secret, encrypt_secret
from .exceptions import AccountLocked, AuthenticationFailed, NotFound, ValidationError
from .models import AuditAction, DirecteurSignature
from .qr_codec import qr_data_uri
from .tasks import send_otp_email, send_signature_locked_email

logger = logging.getLogger(__name__)

PIN_RE = re.compile(r"^\d{4,6}$")
POSITION_FIELDS = (
    "position_x", "position_y", "signature_width", "signature_height",
    "qr_position_x", "qr_position_y", "qr_size",
)


class ChallengeState(str, Enum):
    AWAITING_PIN = "AWAITING_PIN"
    AWAITING_SECOND_FACTOR = "AWAITING_SECOND_FACTOR"
    AUTHORIZED = "AUTHORIZED"


@dataclass
class SigningChallenge:
    id: str
    user_id: int
    attestation_ids: list
    state: ChallengeState = ChallengeState.AWAITING_PIN
    method: str = "email"
    created_at: float = field(default_factory=time.time)

    def as_dict(self):
        data = asdict(self)
        data["state"] = self.state.value
        return data


def _challenge_key(challenge_id):
    return f"sig_challenge_{challenge_id}"


def _totp_attempt_key(challenge_id):
    return f"sig_totp_attempts_{challenge_id}"


def _enrollment_key(user):
    return f"totp_enrollment_{user.pk}"


def _save(challenge: SigningChallenge):
    cache.set(_challenge_key(challenge.id), challenge.as_dict(), timeout=settings.SIGNATURE_CHALLENGE_TTL_SECONDS)


def _discard(challenge: SigningChallenge):
    cache.delete_many([_challenge_key(challenge.id), _totp_attempt_key(challenge.id)])
    otp.clear_otp(challenge.id)


def get_challenge(user, challenge_id) -> SigningChallenge:
    data = cache.get(_challenge_key(challenge_id)) if challenge_id else None
    if not data or data["user_id"] != user.pk:
        raise AuthenticationFailed("Tentative de signature expirée ou inconnue")
    data = dict(data, state=ChallengeState(data["state"]))
    return SigningChallenge(**data)


def get_config(user, for_update=False) -> DirecteurSignature:
    qs = DirecteurSignature.objects.select_for_update() if for_update else DirecteurSignature.objects
    try:
        return qs.get(user=user)
    except DirecteurSignature.DoesNotExist:
        raise NotFound("Signature électronique non configurée")


def _normalize_ids(attestation_ids):
    if not isinstance(attestation_ids, (list, tuple)) or not attestation_ids:
        raise ValidationError("Aucune attestation à signer")
    try:
        ids = [int(i) for i in attestation_ids]
    except (TypeError, ValueError):
        raise ValidationError("Identifiants d'attestation invalides")
    return list(dict.fromkeys(ids))


# ---------------------------------------------------------------------------
# PIN et verrouillage
# ---------------------------------------------------------------------------
def _retry_after(config, now) -> int:
    return max(int((config.pin_locked_until - now).total_seconds()), 1)


def _reset_attempts(config):
    config.pin_attempts = 0
    config.pin_first_failure_at = None
    config.pin_locked_until = None


def check_pin(user, pin, ctx) -> DirecteurSignature:
    """Vérifie le PIN du directeur en comptant les échecs.

    Au-delà de ``SIGNATURE_MAX_PIN_ATTEMPTS`` échecs dans la fenêtre,
    la signature est bloquée pendant ``SIGNATURE_LOCKOUT_SECONDS``,
    même pour un PIN correct.
    """
    now = timezone.now()
    max_attempts = settings.SIGNATURE_MAX_PIN_ATTEMPTS
    window = timedelta(seconds=settings.SIGNATURE_PIN_WINDOW_SECONDS)

    # Le compteur est enregistré avant de lever l'erreur, hors du bloc atomique
    with transaction.atomic():
        config = get_config(user, for_update=True)
        if not config.is_enabled:
            outcome = "disabled"
        elif not config.has_pin:
            outcome = "no_pin"
        elif config.is_locked(now):
            outcome = "locked"
        else:
            if config.pin_locked_until:
                _reset_attempts(config)
            if config.pin_first_failure_at and now - config.pin_first_failure_at > window:
                _reset_attempts(config)
            if check_password(str(pin or ""), config.pin_hash):
                _reset_attempts(config)
                outcome = "ok"
            else:
                config.pin_attempts += 1
                config.pin_first_failure_at = config.pin_first_failure_at or now
                if config.pin_attempts >= max_attempts:
                    config.pin_locked_until = now + timedelta(seconds=settings.SIGNATURE_LOCKOUT_SECONDS)
                    outcome = "locked_now"
                else:
                    outcome = "wrong"
            config.save(update_fields=["pin_attempts", "pin_first_failure_at", "pin_locked_until", "updated_at"])

    if outcome == "ok":
        return config
    if outcome == "disabled":
        raise AuthenticationFailed("Signature électronique désactivée")
    if outcome == "no_pin":
        raise ValidationError("Code PIN non configuré")
    if outcome == "locked":
        raise AccountLocked(retry_after=_retry_after(config, now))

    log_action(ctx, AuditAction.PIN_ECHEC, details={"tentatives": config.pin_attempts})
    if outcome == "locked_now":
        logger.warning("Signature du directeur %s bloquée après %d PIN erronés", user.pk, config.pin_attempts)
        log_action(ctx, AuditAction.SIGNATURE_BLOQUEE, details={"jusqua": config.pin_locked_until.isoformat()})
        send_signature_locked_email.delay(user.pk)
        raise AccountLocked(retry_after=_retry_after(config, now))
    raise AuthenticationFailed("Code PIN incorrect", attempts_left=max_attempts - config.pin_attempts)


# ---------------------------------------------------------------------------
# Tentative de signature
# ---------------------------------------------------------------------------
def begin(user, attestation_ids) -> SigningChallenge:
    challenge = SigningChallenge(id=uuid.uuid4().hex, user_id=user.pk, attestation_ids=_normalize_ids(attestation_ids))
    _save(challenge)
    return challenge


def submit_pin(user, challenge_id, pin, ctx) -> SigningChallenge:
    challenge = get_challenge(user, challenge_id)
    if challenge.state != ChallengeState.AWAITING_PIN:
        raise AuthenticationFailed("Le code PIN a déjà été validé pour cette tentative")

    config = check_pin(user, pin, ctx)
    challenge.method = "totp" if config.two_factor_method == "totp" and config.totp_enabled else "email"
    if challenge.method == "email":
        _dispatch_otp(user, challenge)
    challenge.state = ChallengeState.AWAITING_SECOND_FACTOR
    _save(challenge)
    return challenge


def _dispatch_otp(user, challenge):
    if not user.email:
        raise ValidationError("Aucune adresse e-mail pour l'envoi du code de vérification")
    code = otp.generate_otp(challenge.id)
    send_otp_email.delay(user.pk, code)


def resend_otp(user, challenge_id) -> SigningChallenge:
    challenge = get_challenge(user, challenge_id)
    if challenge.state != ChallengeState.AWAITING_SECOND_FACTOR or challenge.method != "email":
        raise ValidationError("Aucun code e-mail à renvoyer pour cette tentative")
    _dispatch_otp(user, challenge)
    _save(challenge)
    return challenge


def submit_second_factor(user, challenge_id, code, ctx) -> SigningChallenge:
    challenge = get_challenge(user, challenge_id)
    if challenge.state != ChallengeState.AWAITING_SECOND_FACTOR:
        raise AuthenticationFailed("Étape de signature invalide")

    if challenge.method == "email":
        ok, blocked = otp.validate_otp(challenge.id, code)
    else:
        ok = verify_totp_or_backup(user, code, ctx) is not None
        blocked = False
        if not ok:
            attempts = cache.get(_totp_attempt_key(challenge.id), 0) + 1
            cache.set(_totp_attempt_key(challenge.id), attempts, timeout=settings.SIGNATURE_CHALLENGE_TTL_SECONDS)
            blocked = attempts >= settings.MAX_OTP_ATTEMPTS

    if not ok:
        log_action(ctx, AuditAction.OTP_ECHEC, details={"methode": challenge.method})
        if blocked:
            _discard(challenge)
            raise AuthenticationFailed("Trop de codes erronés, recommencez la signature")
        raise AuthenticationFailed("Code de vérification invalide ou expiré")

    challenge.state = ChallengeState.AUTHORIZED
    _save(challenge)
    return challenge


def consume(user, challenge_id) -> list:
    """Consomme l'autorisation ; un second appel échoue."""
    challenge = get_challenge(user, challenge_id)
    if challenge.state != ChallengeState.AUTHORIZED:
        raise AuthenticationFailed("Signature non autorisée")
    if not cache.delete(_challenge_key(challenge.id)):
        raise AuthenticationFailed("Autorisation de signature déjà utilisée")
    cache.delete(_totp_attempt_key(challenge.id))
    return challenge.attestation_ids


# ---------------------------------------------------------------------------
# TOTP
# ---------------------------------------------------------------------------
def verify_totp_or_backup(user, code, ctx):
    """Retourne "totp", "backup" ou None. Un pas TOTP déjà utilisé est refusé."""
    with transaction.atomic():
        config = get_config(user, for_update=True)
        if not config.totp_enabled or not config.totp_secret:
            return None
        timecode = otp.match_totp(decrypt_secret(config.totp_secret), code)
        if timecode is not None and (config.totp_last_timecode is None or timecode > config.totp_last_timecode):
            config.totp_last_timecode = timecode
            config.save(update_fields=["totp_last_timecode", "updated_at"])
            return "totp"
        remaining = otp.consume_backup_code(config.totp_backup_codes, code)
        if remaining is None:
            return None
        config.totp_backup_codes = remaining
        config.save(update_fields=["totp_backup_codes", "updated_at"])

    log_action(ctx, AuditAction.BACKUP_CODE_UTILISE, details={"restants": len(remaining)})
    return "backup"


def setup_totp(user) -> dict:
    get_config(user)
    secret = otp.new_totp_secret()
    codes = otp.generate_backup_codes()
    cache.set(
        _enrollment_key(user),
        {"secret": encrypt_secret(secret), "codes": [otp.hash_backup_code(c) for c in codes]},
        timeout=settings.TOTP_ENROLLMENT_TTL_SECONDS,
    )
    uri = otp.provisioning_uri(secret, user)
    return {
        "secret": secret,
        "provisioning_uri": uri,
        "qr_code": qr_data_uri(uri),
        "backup_codes": codes,
    }


def enable_totp(user, code, ctx) -> DirecteurSignature:
    pending = cache.get(_enrollment_key(user))
    if not pending:
        raise ValidationError("Aucune configuration TOTP en cours, recommencez l'enrôlement")
    timecode = otp.match_totp(decrypt_secret(pending["secret"]), code)
    if timecode is None:
        raise AuthenticationFailed("Code TOTP invalide")

    with transaction.atomic():
        config = get_config(user, for_update=True)
        config.totp_secret = pending["secret"]
        config.totp_enabled = True
        config.totp_last_timecode = timecode
        config.totp_backup_codes = pending["codes"]
        config.two_factor_method = "totp"
        config.save()
    cache.delete(_enrollment_key(user))
    log_action(ctx, AuditAction.TOTP_ACTIVE)
    return config


def disable_totp(user, code, ctx) -> DirecteurSignature:
    config = get_config(user)
    if not config.totp_enabled:
        raise ValidationError("L'authentification TOTP n'est pas activée")
    if verify_totp_or_backup(user, code, ctx) is None:
        raise AuthenticationFailed("Code TOTP invalide")

    with transaction.atomic():
        config = get_config(user, for_update=True)
        config.totp_secret = ""
        config.totp_enabled = False
        config.totp_last_timecode = None
        config.totp_backup_codes = []
        config.two_factor_method = "email"
        config.save()
    log_action(ctx, AuditAction.TOTP_DESACTIVE)
    return config


def set_method(user, method, ctx) -> DirecteurSignature:
    if method not in ("email", "totp"):
        raise ValidationError("Méthode invalide (email ou totp)")
    with transaction.atomic():
        config = get_config(user, for_update=True)
        if method == "totp" and not config.totp_enabled:
            raise ValidationError("Activez d'abord l'authentification TOTP")
        previous = config.two_factor_method
        config.two_factor_method = method
        config.save(update_fields=["two_factor_method", "updated_at"])
    log_action(ctx, AuditAction.METHODE_2FA_MODIFIEE, details={"avant": previous, "apres": method})
    return config


# ---------------------------------------------------------------------------
# Configuration de la signature
# ---------------------------------------------------------------------------
def _validate_pin(pin):
    if not PIN_RE.match(str(pin or "")):
        raise ValidationError("Le code PIN doit comporter 4 à 6 chiffres")


def configure_signature(user, ctx, *, pin=None, signature_image=None, texte_signature=None, positions=None):
    with transaction.atomic():
        config, created = DirecteurSignature.objects.select_for_update().get_or_create(user=user)
        if pin is not None:
            _validate_pin(pin)
            config.pin_hash = make_password(str(pin))
        elif not config.has_pin:
            raise ValidationError("Un code PIN est requis pour configurer la signature")
        if signature_image is not None:
            config.signature_image = signature_image
        if texte_signature is not None:
            config.texte_signature = texte_signature
        for name, value in (positions or {}).items():
            if name in POSITION_FIELDS:
                setattr(config, name, float(value))
        config.save()
    log_action(ctx, AuditAction.SIGNATURE_CONFIGUREE, details={"creation": created, "pin": pin is not None})
    return config


def change_pin(user, old_pin, new_pin, ctx) -> DirecteurSignature:
    _validate_pin(new_pin)
    check_pin(user, old_pin, ctx)
    with transaction.atomic():
        config = get_config(user, for_update=True)
        config.pin_hash = make_password(str(new_pin))
        _reset_attempts(config)
        config.save()
    log_action(ctx, AuditAction.PIN_MODIFIE)
    return config


def unlock(directeur, ctx) -> DirecteurSignature:
    with transaction.atomic():
        config = get_config(directeur, for_update=True)
        _reset_attempts(config)
        config.save()
    log_action(ctx, AuditAction.SIGNATURE_DEBLOQUEE, cible=directeur.username)
    return config
