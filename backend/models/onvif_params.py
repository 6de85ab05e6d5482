# backend/models/onvif_params.py
"""
JSON payloads accepted by ONVIF write commands.

Write commands carry structured parameters as a JSON string value; these
models validate them before anything is sent to the camera.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ValidationError

from errors import CommandValueError
from .device import CommandValue


class OnvifUserParams(BaseModel):
    """User to create on the camera"""
    Username: str
    Password: str
    UserLevel: str
    Extension: Optional[str] = None


class OnvifDateTimeParams(BaseModel):
    """Broken-down UTC date and time for a manual clock change"""
    Year: int
    Month: int
    Day: int
    Hour: int = 0
    Minute: int = 0
    Second: int = 0

    def to_datetime(self) -> datetime:
        return datetime(
            self.Year, self.Month, self.Day,
            self.Hour, self.Minute, self.Second,
            tzinfo=timezone.utc,
        )


def params_from_value(param: CommandValue, model: type) -> BaseModel:
    """
    Parse a write parameter's JSON string into ``model``.

    Raises:
        CommandValueError: value is not a string, or the JSON does not
            match the model
    """
    try:
        text = param.string_value()
    except CommandValueError:
        raise CommandValueError(
            f"{model.__name__} CommandValue missing string value",
            resource=param.device_resource_name,
        )

    try:
        return model.model_validate_json(text)
    except ValidationError as e:
        raise CommandValueError(
            f"error unmarshaling string: {e}",
            resource=param.device_resource_name,
        )
