# island_tracker/schemas/schema_user.py
import datetime as dt

from pydantic import BaseModel, Field, field_validator

from island_tracker.domain.timezone import resolve_timezone


def _valid_timezone(v: str) -> str:
    # InvalidTimezone is a ValueError, so pydantic reports it as a 422
    resolve_timezone(v)
    return v


class SignUpRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def timezone_known(cls, v):
        return _valid_timezone(v)


class UpdateSettingsReq(BaseModel):
    timezone: str

    @field_validator("timezone")
    @classmethod
    def timezone_known(cls, v):
        return _valid_timezone(v)


class SettingsItem(BaseModel):
    user_id: str
    name: str
    timezone: str
    updated_at: dt.datetime
