"""Typed argument models for the LODA tools.

Each tool validates its raw argument bag into exactly one of these models
before its handler runs. Models forbid unknown fields and use strict types,
mirroring ``additionalProperties: false`` and the JSON Schema types in the
tool descriptors.
"""

from __future__ import annotations

import re
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# A leading "A" followed by at least six digits, e.g. A000045
SEQUENCE_ID_PATTERN = r"^A[0-9]{6,}$"
SEQUENCE_ID_REGEX = re.compile(SEQUENCE_ID_PATTERN)

MIN_LIMIT = 1
MAX_LIMIT = 100
DEFAULT_LIMIT = 10
MAX_EVAL_TERMS = 10000
DEFAULT_EVAL_TERMS = 10
EXPORT_FORMATS = ("loda", "formula", "pari", "lean")

ExportFormat = Literal["loda", "formula", "pari", "lean"]


def is_valid_sequence_id(value: str) -> bool:
    """Return True when value is a well-formed A-number."""
    return bool(SEQUENCE_ID_REGEX.fullmatch(value))


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, str_strip_whitespace=True)


class _IdentifiedArgs(ToolArgs):
    id: str = Field(..., description="Sequence ID, e.g. A000045")

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not is_valid_sequence_id(value):
            raise ValueError(
                "must be 'A' followed by at least 6 digits (e.g. A000045)"
            )
        return value


class _PagedArgs(ToolArgs):
    limit: int = Field(default=DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT)
    skip: int = Field(default=0, ge=0)


class GetSequenceArgs(_IdentifiedArgs):
    pass


class GetProgramArgs(_IdentifiedArgs):
    pass


class SearchArgs(_PagedArgs):
    q: str = Field(..., min_length=1)


class EvalProgramArgs(ToolArgs):
    code: str = Field(..., min_length=1)
    num_terms: int = Field(default=DEFAULT_EVAL_TERMS, ge=1, le=MAX_EVAL_TERMS)
    offset: Optional[int] = None


class ExportProgramArgs(_IdentifiedArgs):
    format: ExportFormat


class SubmitProgramArgs(_IdentifiedArgs):
    code: str = Field(..., min_length=1)


class ListSubmissionsArgs(_PagedArgs):
    pass


class NoArgs(ToolArgs):
    pass
