"""
Projects normalized appointment values onto the pass.json template.
"""

import copy
import json
import logging
import secrets
from pathlib import Path
from typing import Dict, List

from ..config import Settings
from ..exceptions import TemplateShapeError
from ..models import NormalizedAppointment
from .request_normalizer import to_iso_instant

logger = logging.getLogger(__name__)

PASS_STYLE = "eventTicket"
BARCODE_ALT_TEXT = "Scan for appointment"

# (section, key) pairs written by the projector
DATE_FIELD = ("headerFields", "date")
TYPE_FIELD = ("primaryFields", "type")
TIME_FIELD = ("secondaryFields", "time")
LOCATION_FIELD = ("secondaryFields", "location")
CLIENT_FIELD = ("auxiliaryFields", "client")
PROVIDER_FIELD = ("auxiliaryFields", "provider")
ADDRESS_FIELD = ("backFields", "address")
NOTES_FIELD = ("backFields", "notes")
DIRECTIONS_FIELD = ("backFields", "directions")

REQUIRED_FIELDS = [
    DATE_FIELD, TYPE_FIELD, TIME_FIELD, LOCATION_FIELD, CLIENT_FIELD,
    PROVIDER_FIELD, ADDRESS_FIELD, NOTES_FIELD, DIRECTIONS_FIELD,
]


def load_template(path: Path) -> Dict:
    """Load and validate the pass.json template."""
    try:
        template = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise TemplateShapeError(f"Invalid pass template {path}: {e}") from e
    validate_template(template)
    return template


def validate_template(template: Dict) -> None:
    """Fail unless every field the projector writes to exists in the template"""
    missing = []
    for section, key in REQUIRED_FIELDS:
        try:
            find_field(template, section, key)
        except TemplateShapeError:
            missing.append(f"{section}.{key}")
    if missing:
        raise TemplateShapeError(f"Pass template is missing fields: {', '.join(missing)}")


def _section(document: Dict, section: str) -> List[Dict]:
    style = document.get(PASS_STYLE)
    if not isinstance(style, dict):
        raise TemplateShapeError(f"Pass template has no '{PASS_STYLE}' section")
    fields = style.get(section)
    if not isinstance(fields, list):
        raise TemplateShapeError(f"Pass template has no '{PASS_STYLE}.{section}' list")
    return fields


def find_field(document: Dict, section: str, key: str) -> Dict:
    for field in _section(document, section):
        if isinstance(field, dict) and field.get("key") == key:
            return field
    raise TemplateShapeError(f"Pass template has no field '{key}' in {section}")


def set_field_value(document: Dict, section: str, key: str, value) -> None:
    find_field(document, section, key)["value"] = value


def upsert_field(document: Dict, section: str, field: Dict) -> None:
    """Replace the field with the same key in place, or append it"""
    fields = _section(document, section)
    for index, existing in enumerate(fields):
        if isinstance(existing, dict) and existing.get("key") == field["key"]:
            fields[index] = field
            return
    fields.append(field)


def barcode_descriptor(message: str) -> Dict:
    return {
        "message": message,
        "format": "PKBarcodeFormatQR",
        "messageEncoding": "iso-8859-1",
        "altText": BARCODE_ALT_TEXT,
    }


class TemplateProjector:
    """Builds the final pass.json document for one appointment"""

    def __init__(self, settings: Settings, template: Dict = None):
        self.settings = settings
        if template is None:
            template = load_template(settings.model_dir / "pass.json")
        else:
            validate_template(template)
        self.template = template

    def project(self, appointment: NormalizedAppointment) -> Dict:
        """
        Fill a copy of the template with the appointment values.

        Args:
            appointment: Normalized request values

        Returns:
            pass.json document ready to be bundled
        """
        document = copy.deepcopy(self.template)

        document["passTypeIdentifier"] = self.settings.pass_type_identifier
        document["teamIdentifier"] = self.settings.team_identifier
        document["authenticationToken"] = secrets.token_hex(32)
        document["webServiceURL"] = self.settings.web_service_url
        document["serialNumber"] = appointment.serial_number

        document["barcode"] = barcode_descriptor(appointment.download_url)
        document["barcodes"] = [barcode_descriptor(appointment.download_url)]
        document["suppressStripShine"] = True

        if appointment.relevant_date:
            document["relevantDate"] = to_iso_instant(appointment.relevant_date)

        document["locations"] = [{
            "latitude": appointment.latitude,
            "longitude": appointment.longitude,
            "relevantText": appointment.relevant_text,
        }]

        if appointment.background_color:
            document["backgroundColor"] = appointment.background_color

        if appointment.appointment_date:
            set_field_value(document, *DATE_FIELD, to_iso_instant(appointment.appointment_date))
        if appointment.appointment_type:
            set_field_value(document, *TYPE_FIELD, appointment.appointment_type)
        if appointment.appointment_time:
            set_field_value(document, *TIME_FIELD, to_iso_instant(appointment.appointment_time))
        if appointment.location:
            set_field_value(document, *LOCATION_FIELD, appointment.formatted_location)
        if appointment.client_name:
            set_field_value(document, *CLIENT_FIELD, appointment.client_name)
        if appointment.provider_name:
            set_field_value(document, *PROVIDER_FIELD, appointment.provider_name)

        if appointment.formatted_duration:
            upsert_field(document, "auxiliaryFields", {
                "key": "duration",
                "label": "DURATION",
                "value": appointment.formatted_duration,
            })

        if appointment.formatted_address:
            set_field_value(document, *ADDRESS_FIELD, appointment.formatted_address)
        if appointment.notes:
            set_field_value(document, *NOTES_FIELD, appointment.notes)

        set_field_value(document, *DIRECTIONS_FIELD, appointment.directions_url)

        logger.info(f"Projected pass.json for serial {appointment.serial_number}")
        return document
