"""
SQL Lab 例外類別

AdmissionRejected 屬於預期結果 (學生查詢被規則擋下)，其餘為執行或外部服務錯誤。
所有錯誤都只嘗試一次，不做自動重試。
"""
from typing import Optional

from .models import AdmissionVerdict


class SqlLabError(Exception):
    """Base class for every error raised by the SQL Lab core."""


class AdmissionRejected(SqlLabError):
    def __init__(self, verdict: AdmissionVerdict):
        super().__init__(verdict.message)
        self.verdict = verdict


class ExecutionFault(SqlLabError):
    """The database refused or failed an accepted statement."""

    def __init__(self, engine_message: str):
        super().__init__(engine_message)
        self.engine_message = engine_message


class UpstreamUnavailable(SqlLabError):
    """Connection pool exhausted / database unreachable, or the LLM failed."""


class ValidationInputFault(SqlLabError):
    """Malformed request shape, rejected before admission."""


class InvalidWorkspaceError(ValidationInputFault):
    def __init__(self, workspace_id: Optional[str]):
        super().__init__(f"Invalid workspace identifier: {workspace_id!r}")
        self.workspace_id = workspace_id


class AssignmentNotFound(SqlLabError):
    def __init__(self, assignment_id: str):
        super().__init__(f"Assignment not found: {assignment_id}")
        self.assignment_id = assignment_id
