"""
Data models and schemas for the appointment pass service.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class StripImage(BaseModel):
    """Strip image uploaded alongside an appointment"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    base64_data: Optional[str] = Field(default=None, alias="base64Data")
    encoding: str = "base64"
    content_type: Optional[str] = Field(default=None, alias="contentType")


class AppointmentRequest(BaseModel):
    """Inbound /generate-pass payload; every field is optional"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    appointment_date: Optional[str] = Field(default=None, alias="appointmentDate")
    appointment_time: Optional[str] = Field(default=None, alias="appointmentTime")
    appointment_type: Optional[str] = Field(default=None, alias="appointmentType")
    client_name: Optional[str] = Field(default=None, alias="clientName")
    provider_name: Optional[str] = Field(default=None, alias="providerName")
    location: Optional[str] = None
    full_address: Optional[str] = Field(default=None, alias="fullAddress")
    notes: Optional[str] = None
    background_color: Optional[str] = Field(default=None, alias="backgroundColor")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notification_time: Optional[int] = Field(default=None, ge=0, alias="notificationTime")
    duration: Any = None
    strip_image: Optional[StripImage] = Field(default=None, alias="stripImage")

    @property
    def has_strip_image(self) -> bool:
        return bool(self.strip_image and self.strip_image.base64_data)


@dataclass
class NormalizedAppointment:
    """Request values after defaulting plus the derived values"""

    serial_number: str
    download_url: str
    appointment_type: Optional[str]
    client_name: Optional[str]
    provider_name: Optional[str]
    location: Optional[str]
    formatted_location: str
    formatted_address: str
    notes: Optional[str]
    background_color: Optional[str]
    latitude: float
    longitude: float
    directions_url: str
    relevant_text: str
    appointment_date: Optional[datetime] = None
    appointment_time: Optional[datetime] = None
    relevant_date: Optional[datetime] = None
    formatted_duration: str = ""


@dataclass
class DeviceRegistration:
    """Push registration record forwarded to the device registry"""

    serial_number: str
    device_library_identifier: str
    push_token: str

    def to_payload(self) -> dict:
        return {
            "serialNumber": self.serial_number,
            "deviceLibraryIdentifier": self.device_library_identifier,
            "pushToken": self.push_token,
        }
