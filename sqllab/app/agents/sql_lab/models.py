from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ReasonCode(str, Enum):
    EMPTY = "EMPTY"
    MULTI_STATEMENT = "MULTI_STATEMENT"
    SYSTEM_SCHEMA = "SYSTEM_SCHEMA"
    FORBIDDEN_VERB = "FORBIDDEN_VERB"
    NOT_READ_ONLY = "NOT_READ_ONLY"
    SCHEMA_QUALIFIED_REFERENCE = "SCHEMA_QUALIFIED_REFERENCE"
    SYSTEM_TABLE = "SYSTEM_TABLE"
    COMPOSITE_RISK = "COMPOSITE_RISK"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


@dataclass(frozen=True)
class SqlSubmission:
    text: str
    workspace_id: str


@dataclass(frozen=True)
class AdmissionVerdict:
    accepted: bool
    reason_code: Optional[ReasonCode] = None
    message: str = ""
    verb: Optional[str] = None   # only set for FORBIDDEN_VERB

    def as_dict(self):
        return {
            "success": self.accepted,
            "reasonCode": self.reason_code.value if self.reason_code else None,
            "message": self.message,
        }


ACCEPTED = AdmissionVerdict(accepted=True)


@dataclass
class ColumnInfo:
    name: str
    data_type: Any           # engine type id (PostgreSQL OID), passed through as-is


@dataclass
class ExecutionResult:
    columns: List[ColumnInfo]
    rows: List[Dict[str, Any]]
    row_count: int

    def as_dict(self):
        return {
            "columns": [{"name": c.name, "dataType": c.data_type} for c in self.columns],
            "rows": self.rows,
            "rowCount": self.row_count,
        }


@dataclass
class Assignment:
    assignment_id: str
    title: str
    description: str
    question: str
    sample_tables: List[Dict[str, Any]] = field(default_factory=list)
