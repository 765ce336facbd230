import json
import time
from datetime import date, datetime, timezone as dt_timezone

from django.test import SimpleTestCase, override_settings

from attestations import qr_codec


@override_settings(QR_SECRET_KEY="cle-de-test", QR_MAX_AGE_SECONDS=3600, QR_CLOCK_SKEW_SECONDS=300,
                   FRONT_BASE_URL="https://attestations.scn.ne", TIME_ZONE="Africa/Niamey")
class PayloadTests(SimpleTestCase):
    def _payload(self, **overrides):
        fields = dict(
            numero="ATT-2026-00001", nom="ABDOU", prenom="Moussa", date_naissance=date(1995, 5, 15),
            numero_arrete="ARR-2024-017", date_emission=date(2026, 3, 2),
        )
        fields.update(overrides)
        return qr_codec.build_payload(**fields)

    def test_payload_uses_short_keys_and_verifies(self):
        payload = self._payload()
        self.assertEqual(set(payload), {"n", "nom", "prenom", "dn", "arr", "dt", "h"})
        self.assertEqual(payload["dn"], "1995-05-15")
        self.assertEqual(len(payload["h"]), 64)
        self.assertTrue(qr_codec.verify_payload(payload))

    def test_single_character_change_breaks_digest(self):
        original = self._payload()
        for name in qr_codec.FIELDS:
            with self.subTest(champ=name):
                payload = dict(original)
                value = payload[name]
                payload[name] = value[:-1] + ("0" if value[-1] != "0" else "1")
                self.assertEqual(qr_codec.check_payload(payload).reason, "bad_digest")

    def test_digest_of_one_record_does_not_fit_another(self):
        first = self._payload()
        second = self._payload(numero="ATT-2026-00002", nom="ISSA", prenom="Fati")
        transplanted = dict(second, h=first["h"])
        self.assertFalse(qr_codec.verify_payload(transplanted))
        self.assertNotEqual(first["h"], second["h"])

    def test_encoding_is_deterministic(self):
        fields = dict(
            numero="ATT-2026-00003", nom="MAÏGA", prenom="Aïcha", date_naissance=date(2000, 1, 1),
            numero_arrete="ARR-2025-001", date_emission=date(2026, 1, 5),
        )
        first, second = qr_codec.build_payload(**fields), qr_codec.build_payload(**fields)
        self.assertEqual(first, second)
        self.assertEqual(qr_codec.canonical(first), qr_codec.canonical(second))
        self.assertEqual(json.dumps(first, sort_keys=True), json.dumps(second, sort_keys=True))

    def test_missing_field_is_reported(self):
        payload = self._payload()
        del payload["arr"]
        self.assertEqual(qr_codec.check_payload(payload).reason, "missing_fields")

    def test_empty_field_still_verifies(self):
        payload = self._payload(numero_arrete="")
        self.assertEqual(payload["arr"], "")
        self.assertTrue(qr_codec.verify_payload(payload))

    def test_malformed_json(self):
        self.assertEqual(qr_codec.check_payload("{pas du json").reason, "malformed")
        self.assertEqual(qr_codec.check_payload(["n"]).reason, "malformed")

    def test_json_string_payload_is_accepted(self):
        payload = self._payload()
        self.assertTrue(qr_codec.verify_payload(json.dumps(payload)))

    def test_other_secret_does_not_verify(self):
        payload = self._payload()
        self.assertFalse(qr_codec.verify_payload(payload, secret_key="autre-cle"))

    def test_canonical_form_is_compact_and_keeps_accents(self):
        raw = qr_codec.canonical({"n": "ATT-2026-00002", "nom": "MAÏGA", "prenom": "Aïcha",
                                  "dn": "2000-01-01", "arr": "", "dt": "2026-01-05"})
        self.assertEqual(
            raw,
            '{"n":"ATT-2026-00002","nom":"MAÏGA","prenom":"Aïcha","dn":"2000-01-01","arr":"","dt":"2026-01-05"}'.encode(
                "utf-8"
            ),
        )

    def test_aware_datetime_uses_local_date(self):
        # 23h30 UTC le 1er mars = 0h30 le 2 mars à Niamey
        payload = self._payload(date_emission=datetime(2026, 3, 1, 23, 30, tzinfo=dt_timezone.utc))
        self.assertEqual(payload["dt"], "2026-03-02")


@override_settings(QR_SECRET_KEY="cle-de-test", QR_MAX_AGE_SECONDS=3600, QR_CLOCK_SKEW_SECONDS=300,
                   FRONT_BASE_URL="https://attestations.scn.ne/")
class FreshnessTests(SimpleTestCase):
    def test_valid_signature(self):
        ts = int(time.time())
        sig = qr_codec.sign_freshness("ATT-2026-00001", ts)
        self.assertTrue(qr_codec.verify_freshness("ATT-2026-00001", sig, ts))

    def test_signature_bound_to_numero(self):
        ts = int(time.time())
        sig = qr_codec.sign_freshness("ATT-2026-00001", ts)
        self.assertFalse(qr_codec.verify_freshness("ATT-2026-00002", sig, ts))

    def test_expired_timestamp(self):
        ts = int(time.time()) - 7200
        sig = qr_codec.sign_freshness("ATT-2026-00001", ts)
        self.assertFalse(qr_codec.verify_freshness("ATT-2026-00001", sig, ts))

    def test_future_timestamp_within_skew(self):
        now = 1_800_000_000
        ts = now + 200
        sig = qr_codec.sign_freshness("ATT-2026-00001", ts)
        self.assertTrue(qr_codec.verify_freshness("ATT-2026-00001", sig, ts, now=now))
        ts = now + 600
        sig = qr_codec.sign_freshness("ATT-2026-00001", ts)
        self.assertFalse(qr_codec.verify_freshness("ATT-2026-00001", sig, ts, now=now))

    def test_garbage_parameters(self):
        self.assertFalse(qr_codec.verify_freshness("ATT-2026-00001", "", 123))
        self.assertFalse(qr_codec.verify_freshness("ATT-2026-00001", "abc", "pas-un-nombre"))

    def test_verification_url(self):
        url = qr_codec.signed_verification_url("ATT-2026-00001", ts=1_800_000_000)
        sig = qr_codec.sign_freshness("ATT-2026-00001", 1_800_000_000)
        self.assertEqual(url, f"https://attestations.scn.ne/verifier/ATT-2026-00001?sig={sig}&ts=1800000000")

    def test_qr_png(self):
        png = qr_codec.qr_png_bytes("https://attestations.scn.ne/verifier/ATT-2026-00001")
        self.assertTrue(png.startswith(b"\x89PNG"))
        self.assertTrue(qr_codec.qr_data_uri("x").startswith("data:image/png;base64,"))
