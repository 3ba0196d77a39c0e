"""
Tests for the pass.json template projector.
"""

import copy
import unittest

from appointment_pass.config import Settings
from appointment_pass.exceptions import TemplateShapeError
from appointment_pass.models import AppointmentRequest
from appointment_pass.services.request_normalizer import RequestNormalizer
from appointment_pass.services.template_projector import (
    TemplateProjector,
    find_field,
    load_template,
    upsert_field,
)


def field_value(document, section, key):
    return find_field(document, section, key)["value"]


class TestTemplateProjector(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.settings = Settings(pass_type_identifier="pass.com.test.appointments", team_identifier="TEAM123456",
                                base_url="https://passes.example.com")
        cls.template = load_template(cls.settings.model_dir / "pass.json")

    def setUp(self):
        self.projector = TemplateProjector(self.settings, copy.deepcopy(self.template))
        self.normalizer = RequestNormalizer(self.settings)

    def project(self, payload):
        request = AppointmentRequest.model_validate(payload)
        appointment = self.normalizer.normalize(request, "http://testserver/", serial_number="1700000000000")
        return self.projector.project(appointment)

    def test_always_set_fields(self):
        document = self.project({})

        download_url = "http://testserver/passes/1700000000000.pkpass"
        self.assertEqual(document["serialNumber"], "1700000000000")
        self.assertEqual(document["passTypeIdentifier"], "pass.com.test.appointments")
        self.assertEqual(document["teamIdentifier"], "TEAM123456")
        self.assertEqual(document["webServiceURL"], "https://passes.example.com/api/v1/passes")
        self.assertEqual(len(document["authenticationToken"]), 64)
        self.assertTrue(document["suppressStripShine"])

        self.assertEqual(document["barcode"]["message"], download_url)
        self.assertEqual(document["barcodes"], [document["barcode"]])
        self.assertEqual(document["barcode"]["format"], "PKBarcodeFormatQR")

        self.assertEqual(len(document["locations"]), 1)
        self.assertEqual(document["locations"][0]["latitude"], 40.7313)
        self.assertEqual(document["locations"][0]["relevantText"], "Your appointment at the office is now.")
        self.assertTrue(field_value(document, "backFields", "directions").startswith("https://maps.apple.com/?ll="))
        self.assertNotIn("relevantDate", document)

    def test_absent_fields_keep_template_values(self):
        document = self.project({})

        self.assertEqual(field_value(document, "primaryFields", "type"),
                         field_value(self.template, "primaryFields", "type"))
        self.assertEqual(field_value(document, "backFields", "notes"),
                         field_value(self.template, "backFields", "notes"))
        self.assertEqual(document["backgroundColor"], self.template["backgroundColor"])

    def test_supplied_fields_are_written(self):
        document = self.project({
            "appointmentDate": "2024-06-01",
            "appointmentTime": "2024-06-01T14:30",
            "appointmentType": "Dental Cleaning",
            "clientName": "Sam Rivera",
            "providerName": "Dr. Lee",
            "location": "Downtown Clinic, Suite 4",
            "fullAddress": "123 Main St, Springfield, USA",
            "notes": "Bring insurance card",
            "backgroundColor": "rgb(10, 20, 30)",
        })

        self.assertEqual(field_value(document, "primaryFields", "type"), "Dental Cleaning")
        self.assertEqual(field_value(document, "secondaryFields", "location"), "Downtown Clinic\nSuite 4")
        self.assertEqual(field_value(document, "auxiliaryFields", "client"), "Sam Rivera")
        self.assertEqual(field_value(document, "auxiliaryFields", "provider"), "Dr. Lee")
        self.assertEqual(field_value(document, "backFields", "address"), "123 Main St\nSpringfield")
        self.assertEqual(field_value(document, "backFields", "notes"), "Bring insurance card")
        self.assertEqual(document["backgroundColor"], "rgb(10, 20, 30)")
        self.assertTrue(field_value(document, "headerFields", "date").endswith("Z"))
        self.assertTrue(field_value(document, "secondaryFields", "time").endswith("Z"))
        self.assertIn("relevantDate", document)

    def test_template_is_not_mutated(self):
        before = copy.deepcopy(self.projector.template)
        self.project({"clientName": "Sam", "duration": 30})
        self.assertEqual(self.projector.template, before)

    def test_duration_is_appended(self):
        document = self.project({"duration": 45})

        auxiliary = document["eventTicket"]["auxiliaryFields"]
        self.assertEqual(auxiliary[-1], {"key": "duration", "label": "DURATION", "value": "45 min"})

    def test_duration_upsert_keeps_position(self):
        document = self.project({})
        auxiliary = document["eventTicket"]["auxiliaryFields"]
        auxiliary.insert(0, {"key": "duration", "label": "DURATION", "value": "old"})

        upsert_field(document, "auxiliaryFields", {"key": "duration", "label": "DURATION", "value": "1 hr"})
        upsert_field(document, "auxiliaryFields", {"key": "duration", "label": "DURATION", "value": "2 hr"})

        durations = [f for f in auxiliary if f["key"] == "duration"]
        self.assertEqual(len(durations), 1)
        self.assertEqual(auxiliary[0]["value"], "2 hr")

    def test_invalid_duration_is_skipped(self):
        document = self.project({"duration": "soon"})
        keys = [f["key"] for f in document["eventTicket"]["auxiliaryFields"]]
        self.assertNotIn("duration", keys)

    def test_template_missing_field_fails_clearly(self):
        broken = copy.deepcopy(self.template)
        broken["eventTicket"]["backFields"] = [f for f in broken["eventTicket"]["backFields"]
                                               if f["key"] != "notes"]
        with self.assertRaises(TemplateShapeError) as ctx:
            TemplateProjector(self.settings, broken)
        self.assertIn("backFields.notes", str(ctx.exception))

    def test_template_missing_section_fails_clearly(self):
        broken = copy.deepcopy(self.template)
        del broken["eventTicket"]
        with self.assertRaises(TemplateShapeError):
            TemplateProjector(self.settings, broken)


if __name__ == "__main__":
    unittest.main()
