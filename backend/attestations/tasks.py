# attestations/tasks.py
import logging
import math
from smtplib import SMTPException

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model

from .email_utils import EmailTemplates
from .models import Attestation, Demande

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "pieces_non_conformes": (
        "Pièces non conformes",
        "Certaines pièces de votre dossier ne sont pas conformes. Merci de vous rapprocher de nos services.",
    ),
    "validee": (
        "Demande validée",
        "Votre demande d'attestation a été validée. Le document est en cours de préparation.",
    ),
    "rejetee": (
        "Demande rejetée",
        "Votre demande d'attestation a été rejetée.",
    ),
    "delivree": (
        "Attestation délivrée",
        "Votre attestation de service civique vous a été délivrée.",
    ),
}


@shared_task(autoretry_for=(SMTPException, ConnectionError), retry_backoff=True, max_retries=3)
def send_otp_email(user_id: int, code: str):
    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None:
        logger.error("send_otp_email: utilisateur %s introuvable", user_id)
        return
    EmailTemplates.otp_email(user, code, math.ceil(settings.OTP_TTL_SECONDS / 60))
    logger.info("Code OTP de signature envoyé à l'utilisateur %s", user_id)


@shared_task(autoretry_for=(SMTPException, ConnectionError), retry_backoff=True, max_retries=3)
def send_signature_locked_email(user_id: int):
    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None or not user.email:
        return
    EmailTemplates.signature_locked_email(user, math.ceil(settings.SIGNATURE_LOCKOUT_SECONDS / 60))


@shared_task
def notify_demande_status(demande_id: int, evenement: str):
    """Informe l'appelé d'un changement de statut de sa demande.

    Un échec d'envoi est journalisé sans remonter : la notification ne
    conditionne jamais le traitement de la demande.
    """
    demande = Demande.objects.select_related("appele").filter(pk=demande_id).first()
    if demande is None:
        logger.error("notify_demande_status: demande %s introuvable", demande_id)
        return
    appele = getattr(demande, "appele", None)
    if appele is None or not appele.email:
        logger.info("Demande %s : pas d'adresse e-mail, notification ignorée", demande_id)
        return

    try:
        if evenement == "signee":
            attestation = Attestation.objects.get(demande=demande)
            EmailTemplates.attestation_ready_email(appele, attestation)
        else:
            subject, message = STATUS_MESSAGES[evenement]
            info = demande.motif_rejet if evenement == "rejetee" and demande.motif_rejet else None
            if info:
                info = f"Motif : {info}"
            EmailTemplates.demande_status_email(appele, demande, subject, message, info)
    except (SMTPException, ConnectionError, ValueError, KeyError, Attestation.DoesNotExist):
        logger.exception("Erreur notification '%s' pour la demande %s", evenement, demande_id)
        return
    logger.info("Notification '%s' envoyée pour la demande %s", evenement, demande_id)
