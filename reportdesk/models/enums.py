from enum import Enum


class ReportStatus(str, Enum):
    PENDING = 'pending'
    RESOLVED = 'resolved'


class Priority(str, Enum):
    HIGH = 'High Priority'
    MEDIUM = 'Medium Priority'
    LOW = 'Low Priority'

    @classmethod
    def parse(cls, value) -> 'Priority':
        if isinstance(value, Priority):
            return value
        if not value:
            return cls.MEDIUM
        word = str(value).strip().split()[0].lower()
        for item in cls:
            if item.value.split()[0].lower() == word:
                return item
        return cls.MEDIUM


class IssueType(str, Enum):
    EMPTY_DISPENSER = 'Empty Dispenser'
    POOR_CLEANLINESS = 'Poor Cleanliness'
    FULL_DISPOSAL_BIN = 'Full Disposal Bin'
    PRIVACY_ISSUES = 'Privacy Issues'
    MISSING_SUPPLIES = 'Missing Supplies'
    MAINTENANCE_REQUIRED = 'Maintenance Required'
    OTHER = 'Other'


class ReportScope(str, Enum):
    ALL = 'all'
    MINE = 'mine'


PRIORITY_BY_ISSUE_TYPE: dict[IssueType, Priority] = {
    IssueType.EMPTY_DISPENSER: Priority.HIGH,
    IssueType.POOR_CLEANLINESS: Priority.MEDIUM,
    IssueType.FULL_DISPOSAL_BIN: Priority.MEDIUM,
    IssueType.PRIVACY_ISSUES: Priority.HIGH,
    IssueType.MISSING_SUPPLIES: Priority.HIGH,
    IssueType.MAINTENANCE_REQUIRED: Priority.MEDIUM,
    IssueType.OTHER: Priority.LOW,
}
