from __future__ import annotations

"""
Pydantic schemas for the Packs Print API (v1).

These models validate incoming job submissions before they reach the queue.
Limits are applied via the validation context passed at runtime, allowing
env-driven constraints without circular imports.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator


def _has_control_chars(s: str) -> bool:
    return any((ord(c) < 32 and c not in "\n\r\t") or ord(c) == 127 for c in s)


class JobSubmitRequest(BaseModel):
    """Request to print ``copies`` labels from a named template."""
    template: str = Field(
        description="Name of the label template (file name without .epl)",
        min_length=1,
        examples=["label", "shipping"],
    )
    data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Template fields. Order is preserved.",
        examples=[{"name": "Widget", "sku": "W-100"}],
    )
    copies: Optional[int] = Field(
        default=None,
        description="Number of copies (>= 1). Defaults to 1.",
        examples=[1, 2],
    )

    @field_validator("template")
    @classmethod
    def _template_rules(cls, v: str, info: ValidationInfo) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("template required")
        if _has_control_chars(v) or "/" in v or "\\" in v:
            raise ValueError("invalid template name")
        limits = (info.context or {}).get("limits", {})
        max_len = int(limits.get("MAX_TEMPLATE_LEN", 100))
        if len(v) > max_len:
            raise ValueError(f"template name too long (max {max_len})")
        return v

    @field_validator("data")
    @classmethod
    def _data_rules(cls, v: Dict[str, Any], info: ValidationInfo) -> Dict[str, Any]:
        limits = (info.context or {}).get("limits", {})
        max_fields = int(limits.get("MAX_FIELDS", 100))
        if len(v) > max_fields:
            raise ValueError(f"too many data fields (max {max_fields})")
        return v

    @field_validator("copies", mode="before")
    @classmethod
    def _copies_rules(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return None
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError("copies must be a positive integer")
        if v < 1:
            raise ValueError("copies must be a positive integer")
        limits = (info.context or {}).get("limits", {})
        max_copies = int(limits.get("MAX_COPIES", 100))
        if v > max_copies:
            raise ValueError(f"too many copies (max {max_copies})")
        return v


class Links(BaseModel):
    """Hypermedia links for API navigation."""
    self: str = Field(description="Link to this resource")
    queue: str = Field(description="Link to the queue status endpoint")


class JobAcceptedResponse(BaseModel):
    """Response when a print job is accepted into the backlog."""
    id: str = Field(description="Unique identifier for the submitted job")
    status: str = Field(description="Current job status", examples=["queued"])
    links: Links = Field(description="Related resource links")


class ClearResponse(BaseModel):
    cleared: int = Field(description="Number of queued jobs removed")


class ReconnectResponse(BaseModel):
    changed: bool = Field(description="Whether the retry changed the device status")
    status: str = Field(description="Classified device status after the retry")
    available: bool
