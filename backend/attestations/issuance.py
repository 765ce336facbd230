# attestations/issuance.py
"""Génération des attestations et numérotation ATT-YYYY-NNNNN.

Le numéro est pris sur un compteur annuel incrémenté dans la même
transaction que l'insertion de l'attestation : un échec ultérieur annule
l'incrément, un numéro attribué n'est jamais réutilisé.
"""
import logging
import time

from django.conf import settings
from django.core.files.base import ContentFile
from django.db import OperationalError, transaction
from django.db.models import F
from django.utils import timezone

from . import lifecycle, pdf_engine, qr_codec
from .audit import log_action
from .crypto_utils import compute_hashes
from .exceptions import (
    AlreadyIssued,
    InvalidState,
    NoActiveTemplate,
    NotFound,
    PiecesIncompletes,
    RenderingError,
    StorageFailure,
    ValidationError,
)
from .layout import TemplateConfig
from .lifecycle import Action
from .models import (
    Attestation,
    AttestationCounter,
    AuditAction,
    Demande,
    StatutDemande,
    TemplateAttestation,
)

logger = logging.getLogger(__name__)


def format_numero(year: int, sequence: int) -> str:
    return f"ATT-{year}-{sequence:05d}"


def allocate_sequence(year: int) -> int:
    """Incrémente le compteur de l'année ; à appeler dans une transaction."""
    AttestationCounter.objects.select_for_update().get_or_create(annee=year)
    AttestationCounter.objects.filter(annee=year).update(valeur=F("valeur") + 1)
    return AttestationCounter.objects.values_list("valeur", flat=True).get(annee=year)


def active_template():
    template = TemplateAttestation.objects.filter(actif=True).first()
    if template is None:
        raise NoActiveTemplate()
    config = TemplateConfig.from_dict(template.config)
    if not config.fields:
        raise NoActiveTemplate("Le template actif ne définit aucun champ")
    return template, config


def read_file(file_field, what="fichier") -> bytes:
    try:
        with file_field.storage.open(file_field.name, "rb") as fh:
            return fh.read()
    except (OSError, ValueError) as e:
        raise RenderingError(f"Lecture impossible du {what}") from e


def render_values(demande, appele, numero, issued_at) -> dict:
    return {
        "numero": numero,
        "civilite": appele.civilite,
        "prenom_nom": appele.nom_complet,
        "nom": appele.nom,
        "prenom": appele.prenom,
        "date_naissance": appele.date_naissance,
        "lieu_naissance": appele.lieu_naissance,
        "diplome": appele.diplome,
        "promotion": appele.promotion,
        "lieu_service": appele.structure,
        "numero_arrete": appele.numero_arrete,
        "date_debut_service": appele.date_debut_service,
        "date_fin_service": appele.date_fin_service,
        "date_signature": issued_at,
        "date_enregistrement": demande.date_enregistrement,
        "nom_directeur": settings.ATTESTATION_DIRECTEUR_NOM,
    }


def generate(demande_id, ctx) -> Attestation:
    """Génère l'attestation non signée d'une demande validée.

    Les conflits de verrou sur le compteur sont retentés avec un délai
    exponentiel, puis remontés en ``StorageFailure``.
    """
    retries = settings.NUMBERING_MAX_RETRIES
    for attempt in range(1, retries + 1):
        try:
            attestation = _generate_once(demande_id)
            break
        except OperationalError as e:
            if attempt == retries:
                logger.error("Numérotation impossible pour la demande %s après %d essais", demande_id, attempt)
                raise StorageFailure() from e
            delay = settings.NUMBERING_RETRY_BACKOFF * (2 ** (attempt - 1))
            logger.warning("Conflit de numérotation (demande %s, essai %d), nouvel essai dans %.2fs",
                           demande_id, attempt, delay)
            time.sleep(delay)

    log_action(ctx, AuditAction.ATTESTATION_GENEREE, demande=attestation.demande, cible=attestation.numero)
    logger.info("Attestation %s générée pour la demande %s", attestation.numero, demande_id)
    return attestation


def _generate_once(demande_id) -> Attestation:
    with transaction.atomic():
        try:
            demande = Demande.objects.select_for_update().get(pk=demande_id)
        except Demande.DoesNotExist:
            raise NotFound("Demande introuvable")
        if Attestation.objects.filter(demande=demande).exists():
            raise AlreadyIssued()
        if demande.statut != StatutDemande.VALIDEE:
            raise InvalidState(
                demande.statut, StatutDemande.EN_ATTENTE_SIGNATURE,
                "Seule une demande validée peut donner lieu à une attestation",
            )
        template, config = active_template()
        bloquantes = [p.type_piece for p in demande.pieces.all() if p.bloquante]
        if bloquantes:
            raise PiecesIncompletes(pieces=bloquantes)
        appele = getattr(demande, "appele", None)
        if appele is None:
            raise ValidationError("La demande n'a pas de fiche appelé")
        background = read_file(template.background, "fond du template")

        issued_at = timezone.now()
        year = timezone.localtime(issued_at).year
        sequence = allocate_sequence(year)
        numero = format_numero(year, sequence)

        pdf = pdf_engine.render_unsigned(config, background, render_values(demande, appele, numero, issued_at), numero)

        attestation = Attestation(
            demande=demande,
            numero=numero,
            annee=year,
            sequence=sequence,
            date_generation=issued_at,
            template=template,
            statut=Attestation.Statut.EN_ATTENTE_SIGNATURE,
            # pas d'empreinte "h" avant la signature : non vérifiable par construction
            qr_payload=qr_codec.unsigned_payload(
                numero, appele.nom, appele.prenom, appele.date_naissance, appele.numero_arrete, issued_at
            ),
            hash_sha256=compute_hashes(pdf)["hash_sha256"],
        )
        attestation.fichier.save(f"{numero}.pdf", ContentFile(pdf), save=False)
        try:
            attestation.save()
            lifecycle.transition(demande, Action.GENERER)
            demande.save()
        except Exception:
            attestation.fichier.delete(save=False)
            raise
    return attestation


def retourner_agent(attestation_id, remarque, ctx) -> Demande:
    """Renvoi par le directeur : la demande repasse en traitement, l'attestation non signée est supprimée."""
    remarque = (remarque or "").strip()
    if not remarque:
        raise ValidationError("Une remarque est obligatoire pour retourner la demande")

    with transaction.atomic():
        attestation = _locked_attestation(attestation_id)
        demande = Demande.objects.select_for_update().get(pk=attestation.demande_id)
        if attestation.statut != Attestation.Statut.EN_ATTENTE_SIGNATURE:
            raise InvalidState(attestation.statut, StatutDemande.EN_TRAITEMENT)
        lifecycle.transition(demande, Action.RETOURNER_AGENT)
        demande.append_observation(f"[Retour directeur] {remarque}")
        demande.save()
        numero = attestation.numero
        _delete_with_files(attestation)

    log_action(ctx, AuditAction.DEMANDE_RETOURNEE, demande=demande, cible=numero, details={"remarque": remarque})
    return demande


def supprimer_attestation(attestation_id, ctx) -> Demande:
    """Annulation administrative : la demande revient à l'état validé, le numéro est perdu."""
    with transaction.atomic():
        attestation = _locked_attestation(attestation_id)
        demande = Demande.objects.select_for_update().get(pk=attestation.demande_id)
        lifecycle.transition(demande, Action.ANNULER_ATTESTATION)
        demande.date_signature = None
        demande.date_delivrance = None
        demande.save()
        numero = attestation.numero
        _delete_with_files(attestation)

    log_action(ctx, AuditAction.ATTESTATION_SUPPRIMEE, demande=demande, cible=numero)
    logger.info("Attestation %s supprimée, demande %s remise à l'état validé", numero, demande.pk)
    return demande


def _locked_attestation(attestation_id) -> Attestation:
    try:
        return Attestation.objects.select_for_update().get(pk=attestation_id)
    except Attestation.DoesNotExist:
        raise NotFound("Attestation introuvable")


def _delete_with_files(attestation):
    fichiers = [f for f in (attestation.fichier, attestation.fichier_signe, attestation.signature_manuscrite) if f]
    attestation.delete()
    # Les fichiers ne disparaissent qu'une fois la suppression validée
    for f in fichiers:
        transaction.on_commit(lambda f=f: f.storage.delete(f.name))


def activer_template(template_id, ctx) -> TemplateAttestation:
    """Active un template et désactive les autres ; un seul template est actif à la fois."""
    with transaction.atomic():
        try:
            template = TemplateAttestation.objects.select_for_update().get(pk=template_id)
        except TemplateAttestation.DoesNotExist:
            raise NotFound("Template introuvable")
        config = TemplateConfig.from_dict(template.config)
        if not config.fields:
            raise NoActiveTemplate("Impossible d'activer un template sans champ")
        TemplateAttestation.objects.exclude(pk=template.pk).filter(actif=True).update(actif=False)
        template.actif = True
        template.save(update_fields=["actif", "updated_at"])

    log_action(ctx, AuditAction.TEMPLATE_ACTIVE, cible=template.nom, details={"template_id": template.pk})
    logger.info("Template %s activé", template.pk)
    return template
