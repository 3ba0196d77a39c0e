"""
Request normalization: defaults, formatting helpers and derived values.
"""

import logging
import re
import threading
import time
from datetime import datetime, time as dt_time, timedelta, timezone
from typing import Any, Optional, Tuple
from urllib.parse import quote

from ..config import Settings
from ..models import AppointmentRequest, NormalizedAppointment

logger = logging.getLogger(__name__)

DEFAULT_COLOR = (41, 128, 185)
DEFAULT_NOTIFICATION_MINUTES = 15
COUNTRY_SUFFIX = "USA"
MEETING_POINT = "Meeting Point"

RGB_PATTERN = re.compile(r"rgb\((\d+),\s*(\d+),\s*(\d+)\)")

_serial_lock = threading.Lock()
_last_serial = 0


def format_address(address: Optional[str], country_suffix: str = COUNTRY_SUFFIX) -> str:
    """Split an address into "street\\nrest" after dropping a trailing country"""
    if not address:
        return ""

    address = re.sub(rf",\s*{re.escape(country_suffix)}$", "", address, flags=re.IGNORECASE)

    first, sep, rest = address.partition(",")
    if not sep:
        return address

    return f"{first.strip()}\n{rest.strip()}"


def format_duration(minutes: Any) -> str:
    """Render minutes as "45 min", "2 hr" or "1 hr 30 min"; "" when invalid"""
    if minutes is None or isinstance(minutes, bool):
        return ""
    try:
        minutes = int(str(minutes).strip()) if isinstance(minutes, str) else int(minutes)
    except (TypeError, ValueError, OverflowError):
        return ""
    if minutes < 0:
        return ""

    if minutes < 60:
        return f"{minutes} min"

    hours, remainder = divmod(minutes, 60)
    if remainder == 0:
        return f"{hours} hr"
    return f"{hours} hr {remainder} min"


def parse_rgb_color(value: Optional[str]) -> Tuple[int, int, int]:
    """Parse "rgb(r, g, b)" into a tuple, falling back to DEFAULT_COLOR"""
    match = RGB_PATTERN.search(value or "")
    if not match:
        return DEFAULT_COLOR

    rgb = tuple(int(group) for group in match.groups())
    if any(channel > 255 for channel in rgb):
        return DEFAULT_COLOR
    return rgb


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 date or date-time as a local, timezone-aware datetime.

    Naive values are taken to be in the server's local timezone.
    """
    return datetime.fromisoformat(value.strip()).astimezone()


def combine_date_and_time(date_value: Optional[str], time_value: Optional[str]) -> Optional[datetime]:
    """
    Build the appointment instant from separate date and time values.

    The calendar day comes from the date, hours and minutes from the time.
    A bare "HH:MM" time is accepted as well as a full date-time.
    """
    if not date_value:
        return None

    appointment = parse_timestamp(date_value)
    if not time_value:
        return appointment

    clock = parse_clock(time_value)
    # Set the local wall clock, then localize again so the offset matches the new time
    wall_clock = appointment.replace(tzinfo=None, hour=clock.hour, minute=clock.minute)
    return wall_clock.astimezone()


def parse_clock(value: str) -> dt_time:
    try:
        return parse_timestamp(value).time()
    except ValueError:
        return dt_time.fromisoformat(value.strip())


def reminder_time(appointment: datetime, lead_minutes: Optional[int]) -> datetime:
    if lead_minutes is None:
        lead_minutes = DEFAULT_NOTIFICATION_MINUTES
    return appointment - timedelta(minutes=lead_minutes)


def to_iso_instant(value: datetime) -> str:
    """Format as a UTC instant, e.g. 2024-06-01T18:15:00.000Z"""
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def generate_serial_number() -> str:
    """
    Millisecond timestamp, doubles as the bundle file name stem.

    Never repeats within the process: a request landing in the same
    millisecond as the previous one gets the next free value.
    """
    global _last_serial
    with _serial_lock:
        serial = max(int(time.time() * 1000), _last_serial + 1)
        _last_serial = serial
    return str(serial)


def build_download_url(base_url: str, serial_number: str) -> str:
    return f"{base_url.rstrip('/')}/passes/{serial_number}.pkpass"


def build_directions_url(latitude: float, longitude: float, label: str = MEETING_POINT) -> str:
    return f"https://maps.apple.com/?ll={latitude},{longitude}&q={quote(label)}"


class RequestNormalizer:
    """Turns an AppointmentRequest into the values written to pass.json"""

    def __init__(self, settings: Settings):
        self.settings = settings

    def normalize(self, request: AppointmentRequest, base_url: str,
                  serial_number: Optional[str] = None) -> NormalizedAppointment:
        serial_number = serial_number or generate_serial_number()

        appointment_date = parse_timestamp(request.appointment_date) if request.appointment_date else None
        appointment_time = None
        if request.appointment_time:
            if appointment_date:
                appointment_time = combine_date_and_time(request.appointment_date, request.appointment_time)
            else:
                appointment_time = parse_timestamp(request.appointment_time)

        combined = combine_date_and_time(request.appointment_date, request.appointment_time)
        relevant_date = reminder_time(combined, request.notification_time) if combined else None

        latitude = request.latitude if request.latitude is not None else self.settings.default_latitude
        longitude = request.longitude if request.longitude is not None else self.settings.default_longitude
        directions_lat = request.latitude if request.latitude is not None else self.settings.directions_latitude
        directions_lng = request.longitude if request.longitude is not None else self.settings.directions_longitude

        relevant_text = (
            f"Your {request.appointment_type or 'appointment'} "
            f"at {request.location or 'the office'} is now."
        )

        normalized = NormalizedAppointment(
            serial_number=serial_number,
            download_url=build_download_url(base_url, serial_number),
            appointment_type=request.appointment_type,
            client_name=request.client_name,
            provider_name=request.provider_name,
            location=request.location,
            formatted_location=format_address(request.location),
            formatted_address=format_address(request.full_address),
            notes=request.notes,
            background_color=request.background_color,
            latitude=latitude,
            longitude=longitude,
            directions_url=build_directions_url(directions_lat, directions_lng),
            relevant_text=relevant_text,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            relevant_date=relevant_date,
            formatted_duration=format_duration(request.duration),
        )

        if relevant_date:
            logger.info(f"Pass {serial_number}: reminder at {to_iso_instant(relevant_date)}")
        return normalized
