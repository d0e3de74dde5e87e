from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from reportdesk.schemas.report import Report, ensure_utc


class AdminUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra='ignore')

    report_id: str = Field(validation_alias=AliasChoices('reportId', 'report_id'))
    issue_type: str = Field(validation_alias=AliasChoices('issueType', 'issue_type'))
    location: str
    created_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices('createdAt', 'timestamp', 'created_at'),
    )

    @field_validator('report_id', mode='before')
    @classmethod
    def coerce_report_id(cls, value):  # type: ignore[override]
        return str(value)

    @field_validator('created_at')
    @classmethod
    def utc_timestamp(cls, value):  # type: ignore[override]
        return ensure_utc(value)

    @classmethod
    def snapshot(cls, report: Report, created_at: datetime) -> 'AdminUpdate':
        return cls(
            report_id=report.id,
            issue_type=report.issue_type,
            location=report.location,
            created_at=created_at,
        )

    def to_payload(self) -> dict:
        return {'reportId': self.report_id, 'issueType': self.issue_type, 'location': self.location}
