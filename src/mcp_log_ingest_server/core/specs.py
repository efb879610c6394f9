"""Base model for user-supplied processing specs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import InvalidSpecError


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "spec"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


class SpecModel(BaseModel):
    """Strict pydantic model whose validation failures become InvalidSpecError."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def build(cls, **kwargs: Any):
        """Validate keyword arguments into a spec (``None`` values are dropped)."""
        data = {k: v for k, v in kwargs.items() if v is not None}
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidSpecError(f"Invalid {cls.__name__}: {_describe(exc)}") from exc
