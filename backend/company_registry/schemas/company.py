# backend/company_registry/schemas/company.py
from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..core.errors import FieldError, ValidationError
from ..models.company import TITLE_MAX_LENGTH


class CompanyFields(BaseModel):
    """Schema every company must satisfy before the primary store accepts it."""
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str = ""
    url: str = ""

    model_config = ConfigDict(extra="ignore")


def validate_company_fields(fields: Dict[str, Any]) -> CompanyFields:
    """
    Validate a company payload, collecting one FieldError per offending field.
    """
    try:
        return CompanyFields.model_validate(fields)
    except PydanticValidationError as exc:
        errors: List[FieldError] = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err.get("loc", ())) or "body"
            errors.append(FieldError(field=field, message=f"{field}: {err['msg']}"))
        raise ValidationError(errors) from None


class CompanyOut(BaseModel):
    id: str
    title: str
    description: str
    url: str


class CompanyCreatedOut(BaseModel):
    id: str


class CompanySnapshot(BaseModel):
    title: str
    description: str
    url: str


class CompanyUpdateOut(BaseModel):
    message: str
    old: CompanySnapshot
    new: CompanySnapshot


class CompanyRemovedOut(BaseModel):
    message: str
    company: CompanyOut


class IndexDivergenceOut(BaseModel):
    id: int
    company_id: str
    operation: str
    error: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
