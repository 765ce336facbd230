import io
import os
from unittest import mock

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from PyPDF2 import PdfReader

from attestations import pdf_engine, qr_codec, signing, workflow
from attestations.exceptions import AuthenticationFailed, InvalidState, RenderingError, StorageFailure, ValidationError
from attestations.models import Attestation, AuditAction, AuditLog, Demande, StatutDemande, User

from .base import (
    OTP_CODE,
    MediaMixin,
    authorize,
    ctx_for,
    generated,
    make_demande,
    make_directeur,
    make_template,
    make_user,
    png_bytes,
)


@mock.patch("attestations.otp.new_code", return_value=OTP_CODE)
class SignAttestationsTests(MediaMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.agent = make_user("agent", User.Role.AGENT)
        self.directeur = make_directeur()
        self.ctx = ctx_for(self.directeur)
        make_template()
        self.first = generated(make_demande("REG-1", agent=self.agent), self.agent)
        self.second = generated(make_demande("REG-2", nom="ISSA", agent=self.agent), self.agent)

    def test_batch_signature(self, _code):
        challenge_id = authorize(self.directeur, [self.first.pk, self.second.pk])
        result = signing.sign_attestations(self.directeur, challenge_id, self.ctx)

        self.assertEqual([s["numero"] for s in result.signees], [self.first.numero, self.second.numero])
        self.assertEqual(result.erreurs, [])
        for attestation in Attestation.objects.all():
            self.assertEqual(attestation.statut, Attestation.Statut.SIGNEE)
            self.assertEqual(attestation.signataire, self.directeur)
            self.assertTrue(qr_codec.verify_payload(attestation.qr_payload))
            self.assertEqual(attestation.demande.statut, StatutDemande.SIGNEE)
            with attestation.fichier_signe.open("rb") as fh:
                text = PdfReader(io.BytesIO(fh.read())).pages[0].extract_text()
            self.assertIn("Le Directeur", text)
        self.assertEqual(AuditLog.objects.filter(action=AuditAction.ATTESTATION_SIGNEE).count(), 2)

    def test_partial_failure_keeps_successful_signatures(self, _code):
        challenge_id = authorize(self.directeur, [self.first.pk])
        signing.sign_attestations(self.directeur, challenge_id, self.ctx)

        challenge_id = authorize(self.directeur, [self.first.pk, self.second.pk, 999999])
        result = signing.sign_attestations(self.directeur, challenge_id, self.ctx)

        self.assertEqual([s["id"] for s in result.signees], [self.second.pk])
        self.assertEqual([e["id"] for e in result.erreurs], [self.first.pk, 999999])
        self.assertEqual(Attestation.objects.filter(statut=Attestation.Statut.SIGNEE).count(), 2)

    def test_authorization_cannot_be_reused(self, _code):
        challenge_id = authorize(self.directeur, [self.first.pk])
        signing.sign_attestations(self.directeur, challenge_id, self.ctx)
        with self.assertRaises(AuthenticationFailed):
            signing.sign_attestations(self.directeur, challenge_id, self.ctx)

    def test_handwritten_signature_needs_single_attestation(self, _code):
        challenge_id = authorize(self.directeur, [self.first.pk, self.second.pk])
        with self.assertRaises(ValidationError):
            signing.sign_attestations(
                self.directeur, challenge_id, self.ctx,
                type_signature=Attestation.TypeSignature.MANUSCRITE,
                signature_manuscrite=SimpleUploadedFile("scan.png", png_bytes(), content_type="image/png"),
            )

        # le lot refusé ne consomme pas l'autorisation
        result = signing.sign_attestations(self.directeur, challenge_id, self.ctx)
        self.assertEqual(len(result.signees), 2)

    def test_storage_failure_on_second_item_is_reported(self, _code):
        real = pdf_engine.render_signed
        calls = []

        def flaky(*args, **kwargs):
            calls.append(1)
            if len(calls) == 2:
                raise OSError("disk full")
            return real(*args, **kwargs)

        challenge_id = authorize(self.directeur, [self.first.pk, self.second.pk])
        with mock.patch("attestations.signing.pdf_engine.render_signed", side_effect=flaky), \
                self.assertLogs("attestations.signing", level="ERROR"):
            result = signing.sign_attestations(self.directeur, challenge_id, self.ctx)

        self.assertEqual([s["id"] for s in result.signees], [self.first.pk])
        self.assertEqual(result.erreurs, [{"id": self.second.pk, "error": StorageFailure.default_message}])
        second = Attestation.objects.get(pk=self.second.pk)
        self.assertEqual(second.statut, Attestation.Statut.EN_ATTENTE_SIGNATURE)
        self.assertFalse(second.fichier_signe)
        self.assertEqual(Attestation.objects.get(pk=self.first.pk).statut, Attestation.Statut.SIGNEE)

    def _stored_files(self):
        return {os.path.join(root, name) for root, _, files in os.walk(self._media_root) for name in files}

    def test_failed_handwritten_signature_leaves_no_scan(self, _code):
        challenge_id = authorize(self.directeur, [self.first.pk])
        before = self._stored_files()
        with mock.patch("attestations.signing.pdf_engine.render_signed", side_effect=RenderingError()):
            result = signing.sign_attestations(
                self.directeur, challenge_id, self.ctx,
                type_signature=Attestation.TypeSignature.MANUSCRITE,
                signature_manuscrite=SimpleUploadedFile("scan.png", png_bytes(), content_type="image/png"),
            )

        self.assertEqual([e["id"] for e in result.erreurs], [self.first.pk])
        self.assertFalse(Attestation.objects.get(pk=self.first.pk).signature_manuscrite)
        self.assertEqual(self._stored_files() - before, set())

    def test_handwritten_signature(self, _code):
        challenge_id = authorize(self.directeur, [self.first.pk])
        result = signing.sign_attestations(
            self.directeur, challenge_id, self.ctx,
            type_signature=Attestation.TypeSignature.MANUSCRITE,
            signature_manuscrite=SimpleUploadedFile("scan.png", png_bytes((300, 100), "navy"), content_type="image/png"),
        )
        self.assertEqual(len(result.signees), 1)
        attestation = Attestation.objects.get(pk=self.first.pk)
        self.assertEqual(attestation.type_signature, Attestation.TypeSignature.MANUSCRITE)
        self.assertTrue(attestation.signature_manuscrite)

    def test_delivery_after_signature(self, _code):
        challenge_id = authorize(self.directeur, [self.first.pk])
        signing.sign_attestations(self.directeur, challenge_id, self.ctx)
        attestation = workflow.delivrer(self.first.demande_id, ctx_for(self.agent))
        self.assertEqual(attestation.statut, Attestation.Statut.DELIVREE)
        self.assertEqual(Demande.objects.get(pk=self.first.demande_id).statut, StatutDemande.DELIVREE)

    def test_signed_request_cannot_be_deleted(self, _code):
        challenge_id = authorize(self.directeur, [self.first.pk])
        signing.sign_attestations(self.directeur, challenge_id, self.ctx)
        with self.assertRaises(InvalidState):
            workflow.supprimer_demande(self.first.demande_id, ctx_for(self.agent))
        self.assertTrue(Demande.objects.filter(pk=self.first.demande_id).exists())
