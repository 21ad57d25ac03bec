"""
Error taxonomy for the company registry.

Every failure a caller can see is one of the ``RegistryError`` subclasses below.
Each carries the HTTP status it maps to and a message that is safe to return
to clients; the API layer renders them with a single exception handler.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

MSG_UNAUTHORIZED = "You are unauthorized to add a company."
MSG_UNSUPPORTED_MEDIA_TYPE = "The 'content-type' header must be '[aA]pplication/json'."
MSG_NOT_FOUND = "Company not found."
MSG_DUPLICATE = "A company with the same title already exists."
MSG_STORE_UNAVAILABLE = "The company store is currently unavailable."
MSG_INDEX_UNAVAILABLE = "The company search index is currently unavailable."

USAGE_HINT = (
    "To correctly register a company, you have to format the content like so:\n"
    "\n"
    "{\n"
    '  "title": "CompanyTitle",\n'
    '  "description": "This is a company",\n'
    '  "url": "www.company.com"\n'
    "}\n"
    "\n"
    "Required fields are:\n"
    "title"
)


@dataclass(frozen=True)
class FieldError:
    """A single invalid field and the reason it was rejected."""
    field: str
    message: str


def render_validation_message(field_errors: Iterable[FieldError]) -> str:
    """
    One line per offending field, then the usage hint once at the end.
    """
    lines = [err.message for err in field_errors]
    body = "".join(f"{line}\n" for line in lines)
    return f"{body}\n{USAGE_HINT}"


class RegistryError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(RegistryError):
    status_code = 401
    default_message = MSG_UNAUTHORIZED


class UnsupportedMediaType(RegistryError):
    status_code = 415
    default_message = MSG_UNSUPPORTED_MEDIA_TYPE


class InvalidIdentifier(RegistryError):
    status_code = 412
    default_message = "Company ID is malformed"


class ValidationError(RegistryError):
    status_code = 412

    def __init__(self, field_errors: List[FieldError]) -> None:
        self.field_errors = list(field_errors)
        super().__init__(render_validation_message(self.field_errors))


class DuplicateError(RegistryError):
    status_code = 409
    default_message = MSG_DUPLICATE


class NotFound(RegistryError):
    status_code = 404
    default_message = MSG_NOT_FOUND


class StoreError(RegistryError):
    """The primary store was unavailable or rejected the operation."""
    status_code = 500
    default_message = MSG_STORE_UNAVAILABLE


class MalformedKeyError(StoreError):
    """The primary store could not parse the key it was given."""


class SearchIndexError(RegistryError):
    """The search index was unavailable or rejected the operation."""
    status_code = 500
    default_message = MSG_INDEX_UNAVAILABLE


class IndexNotFoundError(SearchIndexError):
    """The search index has not been created yet (no document was ever written)."""
