from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from reportdesk.models.enums import Priority, ReportStatus


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Report(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra='ignore')

    id: str = Field(validation_alias=AliasChoices('_id', 'id'))
    issue_type: str = Field(validation_alias=AliasChoices('issueType', 'issue_type'))
    priority: Priority = Priority.MEDIUM
    location: str
    details: Optional[str] = None
    image: Optional[str] = None
    image_name: Optional[str] = Field(default=None, validation_alias=AliasChoices('imageName', 'image_name'))
    image_type: Optional[str] = Field(default=None, validation_alias=AliasChoices('imageType', 'image_type'))
    status: ReportStatus = ReportStatus.PENDING
    reported_by: str = Field(default='Anonymous', validation_alias=AliasChoices('reportedBy', 'reported_by'))
    created_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices('timestamp', 'createdAt', 'created_at'),
    )
    resolved_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices('resolvedAt', 'resolved_at'),
    )

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, value):  # type: ignore[override]
        return str(value)

    @field_validator('priority', mode='before')
    @classmethod
    def parse_priority(cls, value):  # type: ignore[override]
        return Priority.parse(value)

    @field_validator('status', mode='before')
    @classmethod
    def default_status(cls, value):  # type: ignore[override]
        return value or ReportStatus.PENDING

    @field_validator('reported_by', mode='before')
    @classmethod
    def default_reporter(cls, value):  # type: ignore[override]
        return value or 'Anonymous'

    @field_validator('created_at', 'resolved_at')
    @classmethod
    def utc_timestamps(cls, value):  # type: ignore[override]
        return ensure_utc(value)

    @property
    def is_pending(self) -> bool:
        return self.status == ReportStatus.PENDING


class Attachment(BaseModel):
    content: bytes
    content_type: str
    filename: str


class ReportDraft(BaseModel):
    issue_type: str = ''
    custom_issue_type: str = ''
    location: str = ''
    details: str = ''
    attachment: Optional[Attachment] = None


class AttachmentIn(BaseModel):
    data: str
    content_type: str
    filename: str


class ReportSubmitIn(BaseModel):
    issue_type: str = ''
    custom_issue_type: str = ''
    location: str = ''
    details: str = ''
    attachment: Optional[AttachmentIn] = None
