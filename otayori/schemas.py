"""
Pydantic schemas for request/response validation.

Request models accept every field as optional: presence of required
fields is checked by the services so that all input problems surface as
the same 400 ``{"error": ...}`` body.
"""

from datetime import date
from typing import Optional, Union

from pydantic import BaseModel, Field, StrictInt, StrictStr, field_validator


# =============================================================================
# Pydantic Request Models
# =============================================================================

class ThemeCreateRequest(BaseModel):
    """Body of POST /api/staff/themes."""
    title: Optional[str] = Field(None, description="Theme title (required)")
    description: Optional[str] = Field(None, description="Free-text description")
    start_date: Optional[str] = Field(None, description="First open day, YYYY-MM-DD")
    end_date: Optional[str] = Field(None, description="Last open day, YYYY-MM-DD")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "title": "夏休みの思い出",
                    "description": "夏休みにあったことを教えてください",
                    "start_date": "2025-09-01",
                    "end_date": "2025-09-30",
                }
            ]
        }
    }


class MessageSubmitRequest(BaseModel):
    """Body of POST /api/student/messages."""
    sender_name: Optional[str] = Field(None, description="Real name (optional)")
    radio_name: Optional[str] = Field(None, description="Radio name (required)")
    school_year: Optional[Union[str, int]] = Field(None, description="School year, e.g. 2")
    school_class: Optional[Union[str, int]] = Field(None, description="Class, e.g. B")
    # JSON booleans and floats are not identifiers
    theme_id: Optional[Union[StrictStr, StrictInt]] = Field(None, description="Theme identifier")
    content: Optional[str] = Field(None, description="Message body (required)")
    share_name: bool = Field(False, description="Name may be shown on air")
    share_class: bool = Field(False, description="Class may be shown on air")
    share_theme: bool = Field(False, description="Theme may be shown on air")

    @field_validator("share_name", "share_class", "share_theme", mode="before")
    @classmethod
    def null_flag_is_false(cls, v):
        """Treat an explicit null share flag as false."""
        return False if v is None else v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "radio_name": "たろう",
                    "school_year": "2",
                    "school_class": "B",
                    "theme_id": 1,
                    "content": "いつも楽しく聴いています！",
                    "share_class": True,
                }
            ]
        }
    }


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for error responses."""
    error: str = Field(..., description="Error description")


class SuccessResponse(BaseModel):
    success: bool = True


class TokenResponse(BaseModel):
    """Current staff URL and token; both null when no token was issued yet."""
    url: Optional[str] = None
    token: Optional[str] = None


class VerifyTokenResponse(BaseModel):
    valid: bool


class ThemeResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: str
    is_active: bool

    model_config = {"from_attributes": True}


class MessageSubmitResponse(BaseModel):
    success: bool = True
    id: int
    message: str


class StaffMessageResponse(BaseModel):
    """Full message record as shown to staff, with the theme title."""
    id: int
    sender_name: Optional[str] = None
    radio_name: str
    school_class: Optional[str] = None
    theme_id: Optional[int] = None
    content: str
    share_name: bool
    share_class: bool
    share_theme: bool
    ip_address: Optional[str] = None
    created_at: str
    is_read: bool
    theme_title: Optional[str] = None

    model_config = {"from_attributes": True}


class TeacherLogEntry(BaseModel):
    """Reduced message projection for the teacher audit log."""
    id: int
    sender_name: Optional[str] = None
    radio_name: str
    school_class: Optional[str] = None
    content: str
    ip_address: Optional[str] = None
    created_at: str
    theme_title: Optional[str] = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
