"""
Database Schemas for Trackademic (academic record submission and review)

Each stored Pydantic model corresponds to a MongoDB collection.
Collection name = "<APP_ID>." + lowercase of class name without the Record suffix.

Key Collections:
- Submission: certificate/event records submitted by students, reviewed by staff

Everything else here is a request/response shape, not a collection.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

import errors

Role = Literal["student", "staff"]
SubmissionStatus = Literal["pending", "approved", "rejected"]
EventType = Literal["Workshop", "Symposium", "Seminar", "Competition", "Internship"]
Level = Literal["Intra-college", "Inter-college", "State", "National", "International"]

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def field_errors(exc: PydanticValidationError, skip_prefix: tuple = ()) -> Dict[str, str]:
    """Flatten pydantic errors into {field: message}."""
    fields = {}
    for err in exc.errors():
        loc = [str(part) for part in err["loc"] if part not in skip_prefix]
        fields[".".join(loc) or "__root__"] = err["msg"]
    return fields


# ---------- Identity ----------
class Principal(BaseModel):
    id: str
    email: EmailStr
    role: Role
    department: Optional[str] = Field(None, description="Set during onboarding")
    batch: Optional[str] = Field(None, description="Students only, e.g. 2022-2027")
    display_name: Optional[str] = None
    onboarding_complete: bool = False


class SignUpIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Role = "student"
    display_name: Optional[str] = None


class SignInIn(BaseModel):
    email: EmailStr
    password: str


class SessionOut(BaseModel):
    token: str
    principal: Principal


class OnboardingIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    display_name: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    batch: Optional[str] = Field(None, description="Required for students")


# ---------- Submissions ----------
class SubmissionIn(BaseModel):
    """What a student fills in; owner fields are taken from the session."""
    model_config = ConfigDict(str_strip_whitespace=True)

    event_name: str = Field(..., min_length=1)
    event_type: EventType
    organizer: str = Field(..., min_length=1)
    hosting_institution: str = Field(..., min_length=1)
    level: Level
    event_date: date
    semester: str = Field(..., min_length=1)
    certificate_link: str = Field(..., min_length=1, description="Link to the certificate document")

    @field_validator("certificate_link")
    @classmethod
    def _well_formed_link(cls, value: str) -> str:
        try:
            _HTTP_URL.validate_python(value)
        except PydanticValidationError:
            raise ValueError("must be a well-formed http(s) URL")
        return value

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "SubmissionIn":
        """Validate raw input, raising errors.ValidationError with a per-field map."""
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise errors.ValidationError(fields=field_errors(exc))


class SubmissionRecord(BaseModel):
    """Stored submission. Lenient on read so legacy rows still load."""
    id: str
    owner_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    department: str
    batch: Optional[str] = None
    semester: Optional[str] = None
    event_name: str
    event_type: Optional[str] = None
    organizer: Optional[str] = None
    hosting_institution: Optional[str] = None
    level: Optional[str] = None
    event_date: Optional[str] = Field(None, description="ISO date as submitted")
    certificate_link: Optional[str] = None
    status: SubmissionStatus = "pending"
    last_modified: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return value or "pending"

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "SubmissionRecord":
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


class StatusPatch(BaseModel):
    id: str
    status: SubmissionStatus


class ReviewAction(BaseModel):
    decision: str = Field(..., description="approved | rejected")


class SubmitOut(BaseModel):
    outcome: Literal["created", "overwritten"]
    message: str
    submission: SubmissionRecord


# Convenience model for the filter engine (not a collection)
class FilterConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Optional[SubmissionStatus] = None
    batch: Optional[str] = None
    semester: Optional[str] = None
    event_type: Optional[str] = None
    month: Optional[int] = Field(None, ge=1, le=12)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="before")
    @classmethod
    def _blank_means_unset(cls, data):
        if isinstance(data, dict):
            return {k: (None if v == "" else v) for k, v in data.items()}
        return data

    def active(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class LiveView(BaseModel):
    filters: FilterConfig
    records: List[SubmissionRecord]
