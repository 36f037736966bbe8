"""
schemas/common.py

- Shared schemas used across the project
- Pydantic v2
- Contents:
  1) error response standard: ErrorDetail, ErrorResponse
  2) success response wrapper: SuccessEnvelope[T]
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, ConfigDict


# =========================================================
# 1) Error response standard
# =========================================================

class ErrorDetail(BaseModel):
    """Minimal error unit"""
    code: str = Field(..., description="error code (e.g. WEIGHT_VALIDATION, MISSING_TRANSMUTATION_ROW)")
    message: str = Field(..., description="human readable message")
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """
    Error body returned by the global error handlers
    - middlewares/error_handler.py serializes through this schema
    """
    success: bool = False
    error: ErrorDetail
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="response time (UTC)"
    )

    model_config = ConfigDict(extra="ignore")


# =========================================================
# 2) Success response wrapper
# =========================================================

T = TypeVar("T")

class SuccessEnvelope(BaseModel, Generic[T]):
    """
    Success response wrapper
    - success: always True
    - data: payload
    - message: short human readable status
    """
    success: bool = True
    data: T
    message: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
