import re
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.validation import validate_email

NAME_PATTERN = re.compile(r"^[a-zA-ZÀ-ÿ\s'-]+$")
PHONE_PATTERN = re.compile(r"^[+]?[0-9\s().-]{10,20}$")
MIN_GRADUATION_YEAR = 1950


def _check_name(value: str, label: str) -> str:
    if not value:
        raise ValueError(f"{label} is required")
    if not NAME_PATTERN.match(value):
        raise ValueError(f"{label} contains invalid characters")
    if not (2 <= len(value) <= 50):
        raise ValueError(f"{label} must be between 2 and 50 characters")
    return value


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _WireModel(BaseModel):
    # Payloads use the frontend's camelCase keys; snake_case is accepted too.
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class EducationIn(_WireModel):
    degree: str = Field(min_length=2, max_length=100)
    institution: str = Field(min_length=2, max_length=100)
    graduation_year: int | None = Field(default=None, alias="graduationYear")

    @field_validator("graduation_year", mode="before")
    @classmethod
    def _blank_year(cls, v):
        return _blank_to_none(v)

    @field_validator("graduation_year")
    @classmethod
    def _year_in_range(cls, v: int | None) -> int | None:
        if v is None:
            return v
        latest = datetime.now().year + 10
        if not (MIN_GRADUATION_YEAR <= v <= latest):
            raise ValueError("Please provide a valid graduation year")
        return v


class WorkExperienceIn(_WireModel):
    company: str = Field(min_length=2, max_length=100)
    position: str = Field(min_length=2, max_length=100)
    start_date: date = Field(alias="startDate")
    end_date: date | None = Field(default=None, alias="endDate")
    description: str | None = Field(default=None, max_length=1000)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _date_only(cls, v):
        v = _blank_to_none(v)
        # Accept full ISO timestamps as sent by date pickers; keep the date part.
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class CandidateUpdate(_WireModel):
    """Partial update: only fields that were sent are validated and applied."""

    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    email: str | None = None
    phone: str | None = None
    address: str | None = Field(default=None, max_length=200)
    education: list[EducationIn] | None = None
    work_experience: list[WorkExperienceIn] | None = Field(default=None, alias="workExperience")

    @field_validator("first_name")
    @classmethod
    def _first_name(cls, v: str | None) -> str | None:
        return None if v is None else _check_name(v, "First name")

    @field_validator("last_name")
    @classmethod
    def _last_name(cls, v: str | None) -> str | None:
        return None if v is None else _check_name(v, "Last name")

    @field_validator("email")
    @classmethod
    def _email(cls, v: str | None) -> str | None:
        return None if v is None else validate_email(v)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str | None) -> str | None:
        if v is None or v == "":
            return None
        if not PHONE_PATTERN.match(v):
            raise ValueError("Please provide a valid phone number")
        return v

    def changes(self) -> dict:
        """Fields explicitly provided by the client, snake_case keyed."""
        return self.model_dump(exclude_unset=True)


class CandidateCreate(CandidateUpdate):
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: str
    education: list[EducationIn] = Field(default_factory=list)
    work_experience: list[WorkExperienceIn] = Field(default_factory=list, alias="workExperience")
