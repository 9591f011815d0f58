"""Validation of liberation submissions."""

import re

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import InvalidInputError
from ..pipeline.models import SourceType

PROJECT_NAME_PATTERN = r"^[a-zA-Z0-9\-_ ]+$"
PROJECT_NAME_MAX_LENGTH = 100

_PROJECT_NAME_RE = re.compile(PROJECT_NAME_PATTERN)


class LiberationRequest(BaseModel):
    """Body of a liberation submission.

    `file` carries the base64 archive for JSON submissions and is left empty
    when the archive arrives as a raw request body.
    """

    project_name: str = Field(min_length=1, max_length=PROJECT_NAME_MAX_LENGTH, pattern=PROJECT_NAME_PATTERN)
    file: str | None = None
    source_type: SourceType = SourceType.ARCHIVE
    source_url: str | None = Field(default=None, max_length=2048)


def validate_project_name(project_name: str | None) -> str:
    """Check a project name against the safe character set.

    Raises:
        InvalidInputError: If the name is missing, too long or has unsafe characters
    """
    if not project_name or not project_name.strip():
        raise InvalidInputError("project_name is required")
    if len(project_name) > PROJECT_NAME_MAX_LENGTH:
        raise InvalidInputError(f"project_name must be at most {PROJECT_NAME_MAX_LENGTH} characters")
    if not _PROJECT_NAME_RE.match(project_name):
        raise InvalidInputError("project_name may only contain letters, digits, spaces, '-' and '_'")
    return project_name


def parse_request(data: dict) -> LiberationRequest:
    """Build a LiberationRequest, converting pydantic errors to InvalidInputError."""
    try:
        return LiberationRequest.model_validate(data)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
        )
        raise InvalidInputError(f"Invalid liberation request: {details}") from e
