# attestations/signing.py
import logging
import time
from dataclasses import dataclass, field

from django.core.files.base import ContentFile
from django.db import DatabaseError, transaction
from django.utils import timezone

from . import lifecycle, pdf_engine, qr_codec, two_factor
from .audit import log_action
from .crypto_utils import compute_hashes
from .exceptions import InvalidState, NotFound, ScnError, StorageFailure, ValidationError
from .issuance import read_file
from .layout import Box, TemplateConfig
from .lifecycle import Action
from .models import Attestation, AuditAction, Demande
from .tasks import notify_demande_status

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    signees: list = field(default_factory=list)
    erreurs: list = field(default_factory=list)

    def as_dict(self):
        return {"signees": self.signees, "erreurs": self.erreurs}


def _boxes(attestation, config):
    """Zones signature / QR : celles du template utilisé, sinon celles du directeur."""
    template = attestation.template
    if template is not None and template.config:
        layout = TemplateConfig.from_dict(template.config)
        return layout.signature_position, layout.qr_position
    return (
        Box(config.position_x, config.position_y, config.signature_width, config.signature_height),
        Box(config.qr_position_x, config.qr_position_y, config.qr_size, config.qr_size),
    )


def _signature_visual(attestation, config, user):
    if attestation.type_signature == Attestation.TypeSignature.MANUSCRITE and attestation.signature_manuscrite:
        return read_file(attestation.signature_manuscrite, "scan de signature")
    if config.signature_image:
        return read_file(config.signature_image, "image de signature")
    return config.texte_signature or user.get_full_name() or user.username


def _sign_locked(attestation_id, user, config, type_signature, signature_manuscrite):
    with transaction.atomic():
        try:
            attestation = Attestation.objects.select_for_update().select_related("template").get(pk=attestation_id)
        except Attestation.DoesNotExist:
            raise NotFound("Attestation introuvable")
        demande = Demande.objects.select_for_update().get(pk=attestation.demande_id)
        if attestation.statut != Attestation.Statut.EN_ATTENTE_SIGNATURE:
            raise InvalidState(attestation.statut, Attestation.Statut.SIGNEE, "Attestation déjà signée ou non signable")
        lifecycle.transition(demande, Action.SIGNER)
        if type_signature == Attestation.TypeSignature.MANUSCRITE and signature_manuscrite is None:
            raise ValidationError("Le scan de la signature manuscrite est requis")

        attestation.type_signature = type_signature
        saved = []
        try:
            if type_signature == Attestation.TypeSignature.MANUSCRITE:
                attestation.signature_manuscrite.save(
                    f"{attestation.numero}-manuscrite.png", signature_manuscrite, save=False
                )
                saved.append(attestation.signature_manuscrite)

            now = timezone.now()
            ts = int(time.time())
            attestation.qr_payload = qr_codec.payload_for_attestation(attestation)
            qr_png = qr_codec.qr_png_bytes(qr_codec.signed_verification_url(attestation.numero, ts))
            signature_box, qr_box = _boxes(attestation, config)
            pdf = pdf_engine.render_signed(
                read_file(attestation.fichier, "document non signé"),
                _signature_visual(attestation, config, user),
                qr_png,
                signature_box,
                qr_box,
            )

            attestation.fichier_signe.save(f"{attestation.numero}-signee.pdf", ContentFile(pdf), save=False)
            saved.append(attestation.fichier_signe)
            attestation.statut = Attestation.Statut.SIGNEE
            attestation.date_signature = now
            attestation.signataire = user
            attestation.hash_sha256 = compute_hashes(pdf)["hash_sha256"]
            attestation.save()
            demande.date_signature = now
            demande.save()
        except Exception:
            for stored in saved:
                stored.delete(save=False)
            raise
        transaction.on_commit(lambda: notify_demande_status.delay(demande.pk, "signee"))
    return attestation, demande


def sign_one(attestation_id, user, config, ctx, type_signature=Attestation.TypeSignature.ELECTRONIQUE,
             signature_manuscrite=None) -> Attestation:
    try:
        attestation, demande = _sign_locked(attestation_id, user, config, type_signature, signature_manuscrite)
    except (OSError, DatabaseError) as e:
        logger.exception("Stockage indisponible pendant la signature de l'attestation %s", attestation_id)
        raise StorageFailure() from e

    log_action(
        ctx, AuditAction.ATTESTATION_SIGNEE, demande=demande, cible=attestation.numero,
        details={"type_signature": type_signature},
    )
    logger.info("Attestation %s signée par %s", attestation.numero, user.pk)
    return attestation


def sign_attestations(user, challenge_id, ctx, type_signature=Attestation.TypeSignature.ELECTRONIQUE,
                      signature_manuscrite=None) -> BatchResult:
    """Consomme l'autorisation puis signe chaque attestation du lot.

    Le lot est contrôlé avant de consommer l'autorisation. Les échecs sont
    rapportés par attestation ; les signatures réussies ne sont pas annulées.
    """
    challenge = two_factor.get_challenge(user, challenge_id)
    if type_signature == Attestation.TypeSignature.MANUSCRITE and len(challenge.attestation_ids) != 1:
        raise ValidationError("La signature manuscrite ne s'applique qu'à une attestation à la fois")
    config = two_factor.get_config(user)
    ids = two_factor.consume(user, challenge_id)

    result = BatchResult()
    for attestation_id in ids:
        try:
            attestation = sign_one(attestation_id, user, config, ctx, type_signature, signature_manuscrite)
        except ScnError as e:
            logger.warning("Échec de signature de l'attestation %s : %s", attestation_id, e.message)
            result.erreurs.append({"id": attestation_id, "error": e.message})
            continue
        result.signees.append({"id": attestation.pk, "numero": attestation.numero})
    return result
