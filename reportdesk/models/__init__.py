from reportdesk.models.enums import (
    PRIORITY_BY_ISSUE_TYPE,
    IssueType,
    Priority,
    ReportScope,
    ReportStatus,
)

__all__ = [
    'PRIORITY_BY_ISSUE_TYPE',
    'IssueType',
    'Priority',
    'ReportScope',
    'ReportStatus',
]
