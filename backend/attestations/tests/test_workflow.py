from datetime import date
from unittest import mock

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError
from django.test import TestCase

from attestations import workflow
from attestations.audit import log_action
from attestations.exceptions import (
    IllegalTransition,
    InvalidState,
    NotFound,
    PiecesIncompletes,
    ValidationError,
)
from attestations.models import AuditAction, AuditLog, Demande, PieceDossier, StatutDemande, User

from .base import MediaMixin, ctx_for, make_user

APPELE = {
    "civilite": "Mme",
    "nom": "MAÏGA",
    "prenom": "Aïcha",
    "date_naissance": date(1998, 2, 3),
    "lieu_naissance": "Tahoua",
    "diplome": "Master en droit",
    "promotion": "2023-2024",
    "numero_arrete": "ARR-2024-101",
}


class WorkflowTests(MediaMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.agent = make_user("agent", User.Role.AGENT)
        self.ctx = ctx_for(self.agent)
        self.demande = workflow.creer_demande(
            self.ctx,
            numero_enregistrement="REG-2026-010",
            appele=APPELE,
            pieces=[{"type_piece": t, "present": True} for t in PieceDossier.TypePiece.values],
        )

    def _piece(self, type_piece):
        return self.demande.pieces.get(type_piece=type_piece)

    def test_creation(self):
        self.assertEqual(self.demande.statut, StatutDemande.ENREGISTREE)
        self.assertEqual(self.demande.agent, self.agent)
        self.assertEqual(self.demande.appele.nom_complet, "Aïcha MAÏGA")
        self.assertEqual(self.demande.pieces.count(), 5)
        self.assertTrue(all(p.present and p.conforme is None for p in self.demande.pieces.all()))
        log = AuditLog.objects.get(action=AuditAction.DEMANDE_CREEE)
        self.assertEqual((log.cible, log.ip_address), ("REG-2026-010", "127.0.0.1"))

    def test_duplicate_registration_number(self):
        with self.assertRaises(ValidationError):
            workflow.creer_demande(self.ctx, numero_enregistrement="REG-2026-010", appele=APPELE)

    def test_registration_number_is_immutable(self):
        self.demande.numero_enregistrement = "REG-AUTRE"
        with self.assertRaises(DjangoValidationError):
            self.demande.save()

    def test_full_processing(self):
        workflow.demarrer_traitement(self.demande.pk, self.ctx)
        for piece in self.demande.pieces.all():
            workflow.verifier_piece(self.demande.pk, piece.pk, True, self.ctx)
        demande = workflow.valider(self.demande.pk, self.ctx, "Dossier complet")
        self.assertEqual(demande.statut, StatutDemande.VALIDEE)
        self.assertIsNotNone(demande.date_validation)
        self.assertEqual(AuditLog.objects.filter(action=AuditAction.PIECE_VERIFIEE).count(), 5)

    def test_pending_review_does_not_block_validation(self):
        workflow.demarrer_traitement(self.demande.pk, self.ctx)
        self.assertEqual(workflow.valider(self.demande.pk, self.ctx).statut, StatutDemande.VALIDEE)

    def test_missing_mandatory_piece_blocks_validation(self):
        workflow.demarrer_traitement(self.demande.pk, self.ctx)
        workflow.modifier_demande(
            self.demande.pk, self.ctx,
            pieces=[{"type_piece": PieceDossier.TypePiece.CERTIFICAT_CESSATION, "present": False}],
        )
        with self.assertRaises(PiecesIncompletes):
            workflow.valider(self.demande.pk, self.ctx)
        self.assertEqual(Demande.objects.get(pk=self.demande.pk).statut, StatutDemande.EN_TRAITEMENT)

    def test_optional_piece_may_be_missing(self):
        workflow.demarrer_traitement(self.demande.pk, self.ctx)
        workflow.modifier_demande(
            self.demande.pk, self.ctx,
            pieces=[{"type_piece": PieceDossier.TypePiece.DEMANDE_MANUSCRITE, "present": False, "obligatoire": False}],
        )
        self.assertEqual(workflow.valider(self.demande.pk, self.ctx).statut, StatutDemande.VALIDEE)

    def test_non_conformity_round_trip(self):
        workflow.demarrer_traitement(self.demande.pk, self.ctx)
        demande = workflow.signaler_non_conformite(
            self.demande.pk, self.ctx,
            pieces=[{"type_piece": PieceDossier.TypePiece.COPIE_ARRETE, "observation": "Copie illisible"}],
        )
        self.assertEqual(demande.statut, StatutDemande.PIECES_NON_CONFORMES)
        piece = self._piece(PieceDossier.TypePiece.COPIE_ARRETE)
        self.assertIs(piece.conforme, False)
        self.assertEqual(piece.verifie_par, self.agent)

        with self.assertRaises(PiecesIncompletes):
            workflow.valider(self.demande.pk, self.ctx)

        workflow.verifier_piece(self.demande.pk, piece.pk, True, self.ctx, "Nouvelle copie reçue")
        self.assertEqual(workflow.reprendre_traitement(self.demande.pk, self.ctx).statut, StatutDemande.EN_TRAITEMENT)
        self.assertEqual(workflow.valider(self.demande.pk, self.ctx).statut, StatutDemande.VALIDEE)

    def test_non_conformity_needs_pieces(self):
        workflow.demarrer_traitement(self.demande.pk, self.ctx)
        with self.assertRaises(ValidationError):
            workflow.signaler_non_conformite(self.demande.pk, self.ctx, pieces=[])

    def test_rejection_needs_reason(self):
        workflow.demarrer_traitement(self.demande.pk, self.ctx)
        with self.assertRaises(ValidationError):
            workflow.rejeter(self.demande.pk, "", self.ctx)
        demande = workflow.rejeter(self.demande.pk, "Service non accompli", self.ctx)
        self.assertEqual((demande.statut, demande.motif_rejet), (StatutDemande.REJETEE, "Service non accompli"))

    def test_illegal_transitions(self):
        with self.assertRaises(IllegalTransition):
            workflow.valider(self.demande.pk, self.ctx)
        with self.assertRaises(IllegalTransition):
            workflow.reprendre_traitement(self.demande.pk, self.ctx)

    def test_validated_request_is_read_only(self):
        workflow.demarrer_traitement(self.demande.pk, self.ctx)
        workflow.valider(self.demande.pk, self.ctx)
        with self.assertRaises(IllegalTransition):
            workflow.modifier_demande(self.demande.pk, self.ctx, observations="trop tard")
        with self.assertRaises(InvalidState):
            workflow.verifier_piece(self.demande.pk, self._piece(PieceDossier.TypePiece.COPIE_ARRETE).pk, True, self.ctx)

    def test_modification_updates_applicant(self):
        demande = workflow.modifier_demande(self.demande.pk, self.ctx, appele={"promotion": "2024-2025"})
        self.assertEqual(Demande.objects.get(pk=demande.pk).appele.promotion, "2024-2025")
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.DEMANDE_MODIFIEE).exists())

    def test_verify_absent_piece(self):
        workflow.modifier_demande(
            self.demande.pk, self.ctx,
            pieces=[{"type_piece": PieceDossier.TypePiece.COPIE_ARRETE, "present": False}],
        )
        piece = self._piece(PieceDossier.TypePiece.COPIE_ARRETE)
        with self.assertRaises(ValidationError):
            workflow.verifier_piece(self.demande.pk, piece.pk, True, self.ctx)
        with self.assertRaises(ValidationError):
            workflow.verifier_piece(self.demande.pk, piece.pk, "oui", self.ctx)
        with self.assertRaises(NotFound):
            workflow.verifier_piece(self.demande.pk, 999999, True, self.ctx)

    def test_delivery_requires_signed_attestation(self):
        with self.assertRaises(NotFound):
            workflow.delivrer(self.demande.pk, self.ctx)

    def test_delete_without_attestation(self):
        workflow.supprimer_demande(self.demande.pk, self.ctx)
        self.assertFalse(Demande.objects.exists())
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.DEMANDE_SUPPRIMEE, cible="REG-2026-010").exists())


class AuditTrailTests(TestCase):
    def setUp(self):
        self.agent = make_user("agent", User.Role.AGENT)

    def test_entries_are_immutable(self):
        entry = log_action(ctx_for(self.agent), AuditAction.DEMANDE_CREEE, cible="REG-1")
        entry.cible = "REG-2"
        with self.assertRaises(DjangoValidationError):
            entry.save()
        with self.assertRaises(DjangoValidationError):
            entry.delete()
        self.assertEqual(AuditLog.objects.get().cible, "REG-1")

    def test_write_failure_never_aborts_the_operation(self):
        demande = Demande.objects.create(numero_enregistrement="REG-3")
        with mock.patch("attestations.audit.AuditLog.objects.create", side_effect=DatabaseError("disque plein")):
            with self.assertLogs("attestations.alerts", level="ERROR"):
                result = workflow.demarrer_traitement(demande.pk, ctx_for(self.agent))
        self.assertEqual(result.statut, StatutDemande.EN_TRAITEMENT)
        self.assertEqual(Demande.objects.get(pk=demande.pk).statut, StatutDemande.EN_TRAITEMENT)
