from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator, model_validator

ALLOWED_SOURCES = (
    "web",
    "mobile",
    "api",
    "widget",
    "popup",
    "footer",
    "header",
    "sidebar",
    "landing",
    "blog",
)

UNSUBSCRIBE_REASONS = (
    "too_frequent",
    "not_relevant",
    "never_signed_up",
    "privacy_concerns",
    "technical_issues",
    "content_quality",
    "other",
)

MAX_TAGS = 10
MAX_METADATA_KEYS = 20


class SubscriptionRecord(BaseModel):
    """Storage-agnostic view of a subscription row, returned by every adapter."""

    id: str
    email: str
    status: str
    source: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata_", "metadata"),
    )
    verified: bool = False
    verification_token: Optional[str] = None
    unsubscribe_token: Optional[str] = None
    subscribed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("tags", mode="before")
    @classmethod
    def _none_tags(cls, value):
        return value or []

    @field_validator("metadata", mode="before")
    @classmethod
    def _none_metadata(cls, value):
        return value or {}

    @field_validator(
        "subscribed_at", "confirmed_at", "unsubscribed_at", "created_at", "updated_at"
    )
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]):
        # SQLite drops tzinfo on the way back
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class SubscriptionOut(BaseModel):
    id: str
    email: str
    status: str
    source: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    subscribed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SubscribeRequest(BaseModel):
    email: str = Field(..., max_length=320)
    source: str = "web"
    tags: List[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("source", mode="before")
    @classmethod
    def _check_source(cls, value):
        if value is None:
            return "web"
        if value not in ALLOWED_SOURCES:
            raise ValueError(f"Source must be one of: {', '.join(ALLOWED_SOURCES)}")
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _limit_tags(cls, value):
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("Tags must be a list of strings")
        for tag in value:
            if not isinstance(tag, str) or not 1 <= len(tag) <= 50:
                raise ValueError("Each tag must be a string of 1 to 50 characters")
        return value[:MAX_TAGS]

    @field_validator("metadata", mode="before")
    @classmethod
    def _limit_metadata(cls, value):
        if value is None:
            return {}
        if isinstance(value, dict) and len(value) > MAX_METADATA_KEYS:
            raise ValueError(f"Metadata cannot have more than {MAX_METADATA_KEYS} keys")
        return value


class SubscribeData(BaseModel):
    subscription: SubscriptionOut
    count: int
    is_new_subscription: bool
    requires_confirmation: bool
    email_sent: bool


class SubscribeResponse(BaseModel):
    success: bool = True
    code: str
    message: str
    data: SubscribeData
    timestamp: datetime


class ConfirmResponse(BaseModel):
    success: bool = True
    code: Literal["confirmed", "already_confirmed"]
    message: str


class UnsubscribeRequest(BaseModel):
    """Token from the email link, or email plus an explicit confirm flag."""

    token: Optional[str] = Field(default=None, max_length=128)
    reason: Optional[Literal[UNSUBSCRIBE_REASONS]] = None
    feedback: Optional[str] = Field(default=None, max_length=1000)
    email: Optional[EmailStr] = None
    confirm: Optional[bool] = None

    @model_validator(mode="after")
    def _token_or_email(self):
        if self.token:
            return self
        if self.email and self.confirm is True:
            return self
        if self.email:
            raise ValueError("Confirmation is required")
        raise ValueError("Provide either a valid token or email with confirmation.")


class UnsubscribeData(BaseModel):
    subscription_id: str
    email: str
    unsubscribed_at: datetime
    reason: Optional[str] = None


class UnsubscribeResponse(BaseModel):
    success: bool = True
    data: UnsubscribeData
    timestamp: datetime


class EmailEventRequest(BaseModel):
    """Delivery feedback posted by the email provider."""

    type: Literal["email.bounced", "email.complained", "email.delivered"]
    email: EmailStr
    bounce_type: Optional[str] = None


class CountResponse(BaseModel):
    success: bool = True
    count: int


class SendWelcomeRequest(BaseModel):
    email: EmailStr
