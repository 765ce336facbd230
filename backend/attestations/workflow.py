# attestations/workflow.py
"""Opérations des agents sur une demande, de l'enregistrement à la délivrance.

Chaque opération verrouille la ligne de la demande, applique la transition
via ``lifecycle`` et laisse une trace dans le journal d'audit.
"""
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from . import lifecycle
from .audit import log_action
from .exceptions import InvalidState, NotFound, PiecesIncompletes, ValidationError
from .lifecycle import Action
from .models import Appele, Attestation, AuditAction, Demande, PieceDossier, StatutDemande
from .tasks import notify_demande_status

logger = logging.getLogger(__name__)

APPELE_FIELDS = (
    "civilite", "nom", "prenom", "date_naissance", "lieu_naissance", "diplome", "promotion",
    "structure", "date_debut_service", "date_fin_service", "numero_arrete", "email", "telephone",
)
VERIFIABLE = (StatutDemande.ENREGISTREE, StatutDemande.EN_TRAITEMENT, StatutDemande.PIECES_NON_CONFORMES)


def _locked(demande_id) -> Demande:
    try:
        return Demande.objects.select_for_update().get(pk=demande_id)
    except Demande.DoesNotExist:
        raise NotFound("Demande introuvable")


def _notify(demande_id, evenement):
    transaction.on_commit(lambda: notify_demande_status.delay(demande_id, evenement))


def _apply_pieces(demande, pieces):
    if not pieces:
        return
    by_type = {p.type_piece: p for p in demande.pieces.all()}
    for item in pieces:
        piece = by_type.get(item.get("type_piece"))
        if piece is None:
            raise ValidationError(f"Type de pièce inconnu : {item.get('type_piece')}")
        if "present" in item:
            piece.present = bool(item["present"])
            if not piece.present:
                piece.conforme = None
        if "obligatoire" in item:
            piece.obligatoire = bool(item["obligatoire"])
        if "observation" in item:
            piece.observation = item["observation"] or ""
        piece.save()


def creer_demande(ctx, *, numero_enregistrement, appele, pieces=None, observations="", date_enregistrement=None):
    """Crée la demande, l'appelé et les cinq pièces du dossier en une transaction."""
    numero = (numero_enregistrement or "").strip()
    if not numero:
        raise ValidationError("Le numéro d'enregistrement est obligatoire")

    with transaction.atomic():
        if Demande.objects.filter(numero_enregistrement=numero).exists():
            raise ValidationError("Ce numéro d'enregistrement existe déjà")
        try:
            demande = Demande.objects.create(
                numero_enregistrement=numero,
                date_enregistrement=date_enregistrement or timezone.now(),
                observations=observations or "",
                agent=ctx.user,
            )
        except IntegrityError:
            raise ValidationError("Ce numéro d'enregistrement existe déjà")
        Appele.objects.create(demande=demande, **{k: v for k, v in appele.items() if k in APPELE_FIELDS})
        PieceDossier.objects.bulk_create(
            [PieceDossier(demande=demande, type_piece=t) for t in PieceDossier.TypePiece.values]
        )
        _apply_pieces(demande, pieces)

    log_action(ctx, AuditAction.DEMANDE_CREEE, demande=demande)
    logger.info("Demande %s enregistrée", numero)
    return demande


def modifier_demande(demande_id, ctx, *, appele=None, pieces=None, observations=None):
    with transaction.atomic():
        demande = _locked(demande_id)
        lifecycle.target(demande.statut, Action.MODIFIER)
        if appele:
            fiche = demande.appele
            changed = [k for k in appele if k in APPELE_FIELDS]
            for key in changed:
                setattr(fiche, key, appele[key])
            fiche.save(update_fields=changed or None)
        _apply_pieces(demande, pieces)
        if observations is not None:
            demande.observations = observations
        demande.save()

    log_action(
        ctx, AuditAction.DEMANDE_MODIFIEE, demande=demande,
        details={"appele": sorted(appele or {}), "pieces": [p.get("type_piece") for p in pieces or []]},
    )
    return demande


def demarrer_traitement(demande_id, ctx):
    with transaction.atomic():
        demande = _locked(demande_id)
        lifecycle.transition(demande, Action.DEMARRER_TRAITEMENT)
        demande.date_traitement = timezone.now()
        demande.save()
    log_action(ctx, AuditAction.TRAITEMENT_DEMARRE, demande=demande)
    return demande


def verifier_piece(demande_id, piece_id, conforme, ctx, observation=""):
    if not isinstance(conforme, bool):
        raise ValidationError("Le champ conforme est requis et doit être un booléen")

    with transaction.atomic():
        demande = _locked(demande_id)
        if demande.statut not in VERIFIABLE:
            raise InvalidState(
                demande.statut, demande.statut,
                "Les pièces ne peuvent plus être vérifiées dans l'état actuel de la demande",
            )
        try:
            piece = demande.pieces.select_for_update().get(pk=piece_id)
        except PieceDossier.DoesNotExist:
            raise NotFound("Pièce introuvable")
        if not piece.present:
            raise ValidationError("Impossible de vérifier une pièce absente du dossier")
        piece.conforme = conforme
        piece.observation = observation or piece.observation
        piece.date_verification = timezone.now()
        piece.verifie_par = ctx.user
        piece.save()

    log_action(
        ctx, AuditAction.PIECE_VERIFIEE, demande=demande,
        details={"piece": piece.type_piece, "conforme": conforme},
    )
    return piece


def signaler_non_conformite(demande_id, ctx, *, pieces, observations=""):
    if not pieces:
        raise ValidationError("Veuillez spécifier les pièces non conformes")

    with transaction.atomic():
        demande = _locked(demande_id)
        lifecycle.transition(demande, Action.SIGNALER_NON_CONFORMITE)
        by_type = {p.type_piece: p for p in demande.pieces.select_for_update()}
        for item in pieces:
            piece = by_type.get(item.get("type_piece"))
            if piece is None:
                raise ValidationError(f"Type de pièce inconnu : {item.get('type_piece')}")
            piece.conforme = False
            piece.observation = item.get("observation") or "Pièce non conforme"
            piece.date_verification = timezone.now()
            piece.verifie_par = ctx.user
            piece.save()
        demande.append_observation(
            observations or "Pièces non conformes : " + ", ".join(p["type_piece"] for p in pieces)
        )
        demande.save()
        _notify(demande.pk, "pieces_non_conformes")

    log_action(ctx, AuditAction.PIECES_NON_CONFORMES, demande=demande, details={"pieces": pieces})
    return demande


def reprendre_traitement(demande_id, ctx):
    with transaction.atomic():
        demande = _locked(demande_id)
        lifecycle.transition(demande, Action.REPRENDRE)
        demande.save()
    log_action(ctx, AuditAction.TRAITEMENT_REPRIS, demande=demande)
    return demande


def valider(demande_id, ctx, observations=""):
    with transaction.atomic():
        demande = _locked(demande_id)
        lifecycle.target(demande.statut, Action.VALIDER)
        bloquantes = [p.type_piece for p in demande.pieces.all() if p.bloquante]
        if bloquantes:
            raise PiecesIncompletes(pieces=bloquantes)
        lifecycle.transition(demande, Action.VALIDER)
        demande.date_validation = timezone.now()
        if observations:
            demande.append_observation(observations)
        demande.save()
        _notify(demande.pk, "validee")

    log_action(ctx, AuditAction.DEMANDE_VALIDEE, demande=demande, details={"observations": observations})
    return demande


def rejeter(demande_id, motif, ctx):
    motif = (motif or "").strip()
    if not motif:
        raise ValidationError("Le motif de rejet est obligatoire")

    with transaction.atomic():
        demande = _locked(demande_id)
        lifecycle.transition(demande, Action.REJETER)
        demande.motif_rejet = motif
        demande.save()
        _notify(demande.pk, "rejetee")

    log_action(ctx, AuditAction.DEMANDE_REJETEE, demande=demande, details={"motif": motif})
    return demande


def delivrer(demande_id, ctx):
    with transaction.atomic():
        demande = _locked(demande_id)
        try:
            attestation = Attestation.objects.select_for_update().get(demande=demande)
        except Attestation.DoesNotExist:
            raise NotFound("Aucune attestation pour cette demande")
        if attestation.statut != Attestation.Statut.SIGNEE:
            raise InvalidState(attestation.statut, Attestation.Statut.DELIVREE)
        lifecycle.transition(demande, Action.DELIVRER)
        now = timezone.now()
        demande.date_delivrance = now
        demande.save()
        attestation.statut = Attestation.Statut.DELIVREE
        attestation.date_delivrance = now
        attestation.save(update_fields=["statut", "date_delivrance"])
        _notify(demande.pk, "delivree")

    log_action(ctx, AuditAction.ATTESTATION_DELIVREE, demande=demande, cible=attestation.numero)
    return attestation


def supprimer_demande(demande_id, ctx):
    with transaction.atomic():
        demande = _locked(demande_id)
        attestation = Attestation.objects.select_for_update().filter(demande=demande).first()
        if attestation is not None:
            if attestation.est_signee:
                raise InvalidState(
                    demande.statut, demande.statut,
                    "Impossible de supprimer une demande dont l'attestation est signée",
                )
            fichiers = [f for f in (attestation.fichier, attestation.fichier_signe) if f]
            attestation.delete()
            for f in fichiers:
                transaction.on_commit(lambda f=f: f.storage.delete(f.name))
        numero = demande.numero_enregistrement
        demande.delete()

    log_action(ctx, AuditAction.DEMANDE_SUPPRIMEE, cible=numero)
    return numero
