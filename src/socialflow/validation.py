"""Validation result types shared by graph and content validation."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError


class ValidationIssue(BaseModel):
    """A single validation error."""

    code: str
    message: str
    node_ids: List[str] = Field(default_factory=list)
    connection: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationResult(BaseModel):
    """Outcome of validating a graph or a piece of formatted content."""

    errors: List[ValidationIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def codes(self) -> List[str]:
        return [e.code for e in self.errors]


def format_pydantic_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "config"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


__all__ = ["ValidationIssue", "ValidationResult", "format_pydantic_errors"]
