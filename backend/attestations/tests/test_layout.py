import copy

from django.test import SimpleTestCase

from attestations.exceptions import TemplateInvalide
from attestations.layout import AVAILABLE_FIELDS, SAMPLE_DATA, Box, TemplateConfig

from .base import TEMPLATE_CONFIG


class TemplateConfigTests(SimpleTestCase):
    def test_parse_reference_config(self):
        config = TemplateConfig.from_dict(TEMPLATE_CONFIG)
        self.assertEqual(len(config.fields), 5)
        self.assertEqual(config.qr_position, Box(40, 470, 80, 80))
        self.assertEqual(config.get_field("prenom_nom").text_align, "center")
        self.assertIsNone(config.get_field("inconnu"))

    def test_defaults(self):
        config = TemplateConfig.from_dict({"fields": [{"id": "numero"}]})
        field = config.fields[0]
        self.assertEqual((field.font_size, field.font_family, field.color), (12, "Helvetica", "#000000"))
        self.assertEqual(config.orientation, "landscape")

    def test_as_json_keeps_qr_size(self):
        stored = TemplateConfig.from_dict(TEMPLATE_CONFIG).as_json()
        self.assertEqual(stored["qr_position"], {"x": 40.0, "y": 470.0, "size": 80.0})
        self.assertEqual(TemplateConfig.from_dict(stored).qr_position, Box(40, 470, 80, 80))

    def test_duplicate_field_ids(self):
        data = copy.deepcopy(TEMPLATE_CONFIG)
        data["fields"].append({"id": "numero", "x": 10, "y": 10})
        with self.assertRaisesMessage(TemplateInvalide, "dupliqué"):
            TemplateConfig.from_dict(data)

    def test_rejects_invalid_values(self):
        for bad in (
            {"version": 2},
            {"orientation": "diagonal"},
            {"page_width": -1},
            {"fields": [{"id": "numero", "color": "rouge"}]},
            {"fields": [{"id": "numero", "x": "10"}]},
            {"fields": [{"id": "numero", "font_family": "Comic"}]},
            {"fields": [{"label": "sans id"}]},
        ):
            with self.subTest(bad=bad), self.assertRaises(TemplateInvalide):
                TemplateConfig.from_dict(bad)

    def test_catalogue_has_sample_values(self):
        ids = {f["id"] for f in AVAILABLE_FIELDS}
        self.assertIn("qrcode", ids)
        self.assertIn("signature", ids)
        for field_id in ids - {"qrcode", "signature"}:
            self.assertIn(field_id, SAMPLE_DATA)
