import time

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework.test import APITestCase

from attestations import qr_codec, verification
from attestations.models import Appele, Attestation, User
from attestations.verification import PUBLIC_REASON

from .base import MediaMixin, generated, make_demande, make_directeur, make_template, make_user, sign


class VerificationSetupMixin(MediaMixin):
    def setUp(self):
        super().setUp()
        agent = make_user("agent", User.Role.AGENT)
        self.directeur = make_directeur()
        make_template()
        self.demande = make_demande(agent=agent)
        self.attestation = generated(self.demande, agent)

    def signed(self):
        sign(self.directeur, [self.attestation])
        self.attestation.refresh_from_db()
        return self.attestation


class VerifyAttestationTests(VerificationSetupMixin, TestCase):
    def test_valid_signed_attestation(self):
        attestation = self.signed()
        result = verification.verify_attestation(attestation.numero)
        self.assertTrue(result.valid)
        self.assertEqual(result.attestation, attestation)

    def test_unsigned_attestation_never_verifies(self):
        with self.assertLogs("attestations.verification", level="WARNING") as logs:
            result = verification.verify_attestation(self.attestation.numero)
        self.assertFalse(result.valid)
        self.assertEqual(result.reason, "not_signed")
        self.assertIn("not_signed", logs.output[0])

    def test_tampered_record(self):
        attestation = self.signed()
        Appele.objects.filter(demande=self.demande).update(nom="ABDOV")
        result = verification.verify_attestation(attestation.numero)
        self.assertFalse(result.valid)
        self.assertEqual(result.reason, "payload_mismatch")

    def test_tampered_stored_payload(self):
        attestation = self.signed()
        payload = dict(attestation.qr_payload, nom="ABDOV")
        Attestation.objects.filter(pk=attestation.pk).update(qr_payload=payload)
        self.assertEqual(verification.verify_attestation(attestation.numero).reason, "bad_digest")

    def test_unknown_number(self):
        self.assertEqual(verification.verify_attestation("ATT-1999-99999").reason, "not_found")

    def test_freshness_parameters(self):
        attestation = self.signed()
        ts = int(time.time())
        sig = qr_codec.sign_freshness(attestation.numero, ts)
        self.assertTrue(verification.verify_attestation(attestation.numero, sig, ts).valid)
        self.assertEqual(verification.verify_attestation(attestation.numero, "0" * 64, ts).reason, "bad_freshness")
        self.assertEqual(verification.verify_attestation(attestation.numero, sig, None).reason, "missing_fields")

    @override_settings(QR_MAX_AGE_SECONDS=60)
    def test_stale_link(self):
        attestation = self.signed()
        ts = int(time.time()) - 3600
        sig = qr_codec.sign_freshness(attestation.numero, ts)
        self.assertEqual(verification.verify_attestation(attestation.numero, sig, ts).reason, "bad_freshness")

    def test_scanned_payload(self):
        attestation = self.signed()
        self.assertTrue(verification.verify_scanned_payload(dict(attestation.qr_payload)).valid)
        forged = dict(attestation.qr_payload, prenom="Moussaa")
        self.assertEqual(verification.verify_scanned_payload(forged).reason, "bad_digest")
        self.assertEqual(verification.verify_scanned_payload("{pas du json").reason, "malformed")

    def test_public_payload(self):
        attestation = self.signed()
        data = verification.verify_attestation(attestation.numero).public_payload()
        self.assertTrue(data["valid"])
        self.assertEqual(data["attestation"]["nom"], "ABDOU")
        self.assertEqual(data["attestation"]["date_naissance"], "1995-05-15")
        self.assertEqual(
            verification.VerificationResult(False, "bad_digest").public_payload(),
            {"valid": False, "reason": PUBLIC_REASON},
        )


class VerificationApiTests(VerificationSetupMixin, APITestCase):
    def test_get_valid(self):
        attestation = self.signed()
        response = self.client.get(reverse("verifier-code", kwargs={"code": attestation.numero}))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["valid"])
        self.assertEqual(response.data["attestation"]["numero"], attestation.numero)

    def test_failure_reason_is_not_disclosed(self):
        attestation = self.signed()
        Appele.objects.filter(demande=self.demande).update(nom="ABDOV")
        for code in (attestation.numero, "ATT-2026-99999"):
            response = self.client.get(reverse("verifier-code", kwargs={"code": code}))
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.data, {"valid": False, "reason": PUBLIC_REASON})

    def test_post_scanned_payload(self):
        attestation = self.signed()
        response = self.client.post(reverse("verifier"), {"payload": attestation.qr_payload}, format="json")
        self.assertTrue(response.data["valid"])
        forged = dict(attestation.qr_payload, nom="ABDOV")
        response = self.client.post(reverse("verifier"), {"payload": forged}, format="json")
        self.assertFalse(response.data["valid"])

    def test_post_body_that_is_not_an_object(self):
        url = reverse("verifier")
        for response in (
            self.client.post(url, [1, 2], format="json"),
            self.client.post(url, "\"ATT-2026-00001\"", content_type="application/json"),
            self.client.post(url, "{pas du json", content_type="application/json"),
        ):
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.data, {"valid": False, "reason": PUBLIC_REASON})

    def test_query_parameters(self):
        attestation = self.signed()
        ts = int(time.time())
        sig = qr_codec.sign_freshness(attestation.numero, ts)
        url = reverse("verifier-code", kwargs={"code": attestation.numero})
        self.assertTrue(self.client.get(url, {"sig": sig, "ts": ts}).data["valid"])
        self.assertFalse(self.client.get(url, {"sig": sig, "ts": ts + 1}).data["valid"])

    def test_public_endpoint_is_throttled(self):
        cache.clear()
        url = reverse("verifier-code", kwargs={"code": "ATT-2026-99999"})
        statuses = [self.client.get(url).status_code for _ in range(31)]
        self.assertEqual(statuses[:30], [200] * 30)
        self.assertEqual(statuses[30], 429)
