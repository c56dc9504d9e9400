"""
Admission Policy 模組
功能：在執行前以字彙規則 (lexical blocklist) 判斷學生的 SQL 是否可以執行。

規則依序檢查，第一個命中的規則決定結果。這不是 SQL parser，
誤判的邊界本身就是規則的一部分 (錯誤訊息會直接顯示給學生)。
"""
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..errors import AdmissionRejected
from ..models import ACCEPTED, AdmissionVerdict, ReasonCode

logger = logging.getLogger(__name__)

FORBIDDEN_VERBS = [
    "DROP", "DELETE", "UPDATE", "INSERT", "ALTER", "CREATE",
    "TRUNCATE", "GRANT", "REVOKE", "EXEC", "EXECUTE", "CALL",
    "MERGE", "COPY", "VACUUM", "ANALYZE", "REINDEX", "CLUSTER",
]

# Forbidden patterns
SYSTEM_SCHEMAS = {
    "pg_catalog": re.compile(r"\bpg_catalog\b", re.IGNORECASE),
    "information_schema": re.compile(r"\binformation_schema\b", re.IGNORECASE),
}
VERB_PATTERNS = [(verb, re.compile(rf"\b{verb}\b", re.IGNORECASE)) for verb in FORBIDDEN_VERBS]
READ_ONLY_START = re.compile(r"^\s*(SELECT|WITH)\b", re.IGNORECASE)
QUALIFIED_REFERENCE = re.compile(
    r"\b(FROM|JOIN)\s+([a-zA-Z_][a-zA-Z0-9_]*\.)+[a-zA-Z_][a-zA-Z0-9_]*",
    re.IGNORECASE,
)
PG_SYSTEM_TABLE = re.compile(r"\bpg_[a-z_]+", re.IGNORECASE)
COMPOSITE_PATTERNS = [
    (
        re.compile(r";\s*(DROP|DELETE|UPDATE|INSERT|ALTER|CREATE)", re.IGNORECASE),
        "Query contains multiple statements with forbidden operations. Only single SELECT queries are allowed.",
    ),
    (
        re.compile(r"UNION\s+ALL\s+SELECT", re.IGNORECASE),
        "UNION ALL SELECT pattern is not allowed. Please use standard SELECT queries only.",
    ),
]


def _reject(code: ReasonCode, message: str, verb: Optional[str] = None) -> AdmissionVerdict:
    return AdmissionVerdict(accepted=False, reason_code=code, message=message, verb=verb)


@dataclass(frozen=True)
class AdmissionRule:
    code: ReasonCode
    check: Callable[[str], Optional[AdmissionVerdict]]


# ==========================================
# Rules (each receives the stripped SQL text)
# ==========================================

def check_empty(sql: str) -> Optional[AdmissionVerdict]:
    if not sql:
        return _reject(ReasonCode.EMPTY, "SQL query cannot be empty")
    return None


def check_multi_statement(sql: str) -> Optional[AdmissionVerdict]:
    count = sql.count(";")
    if count > 1 or (count == 1 and not sql.endswith(";")):
        return _reject(
            ReasonCode.MULTI_STATEMENT,
            "Multiple SQL statements are not allowed. Please execute one query at a time.",
        )
    return None


def check_system_schema(sql: str) -> Optional[AdmissionVerdict]:
    for schema, pattern in SYSTEM_SCHEMAS.items():
        if pattern.search(sql):
            return _reject(
                ReasonCode.SYSTEM_SCHEMA,
                f"Access to {schema} system schema is not allowed. "
                "Please use only the tables provided in the assignment.",
            )
    return None


def check_forbidden_verb(sql: str) -> Optional[AdmissionVerdict]:
    for verb, pattern in VERB_PATTERNS:
        if pattern.search(sql):
            return _reject(
                ReasonCode.FORBIDDEN_VERB,
                f"Query contains forbidden operation: {verb}. "
                "Only SELECT and WITH (CTE) queries are allowed.",
                verb=verb,
            )
    return None


def check_read_only(sql: str) -> Optional[AdmissionVerdict]:
    if not READ_ONLY_START.match(sql):
        return _reject(
            ReasonCode.NOT_READ_ONLY,
            "Only SELECT and WITH (Common Table Expression) queries are allowed.",
        )
    return None


def check_schema_qualified(sql: str) -> Optional[AdmissionVerdict]:
    # 只檢查 FROM / JOIN 後面緊接的名稱，子查詢中的其他位置不在檢查範圍
    if "." in sql and QUALIFIED_REFERENCE.search(sql):
        return _reject(
            ReasonCode.SCHEMA_QUALIFIED_REFERENCE,
            "Schema-qualified table names are not allowed. Use table names without schema prefix.",
        )
    return None


def check_system_table(sql: str) -> Optional[AdmissionVerdict]:
    if PG_SYSTEM_TABLE.search(sql):
        return _reject(
            ReasonCode.SYSTEM_TABLE,
            "Access to PostgreSQL system tables (pg_*) is not allowed. "
            "Please use only the tables provided in the assignment.",
        )
    return None


def check_composite_risk(sql: str) -> Optional[AdmissionVerdict]:
    for pattern, message in COMPOSITE_PATTERNS:
        if pattern.search(sql):
            return _reject(ReasonCode.COMPOSITE_RISK, message)
    return None


ADMISSION_RULES: List[AdmissionRule] = [
    AdmissionRule(ReasonCode.EMPTY, check_empty),
    AdmissionRule(ReasonCode.MULTI_STATEMENT, check_multi_statement),
    AdmissionRule(ReasonCode.SYSTEM_SCHEMA, check_system_schema),
    AdmissionRule(ReasonCode.FORBIDDEN_VERB, check_forbidden_verb),
    AdmissionRule(ReasonCode.NOT_READ_ONLY, check_read_only),
    AdmissionRule(ReasonCode.SCHEMA_QUALIFIED_REFERENCE, check_schema_qualified),
    AdmissionRule(ReasonCode.SYSTEM_TABLE, check_system_table),
    AdmissionRule(ReasonCode.COMPOSITE_RISK, check_composite_risk),
]


def evaluate(text: str) -> AdmissionVerdict:
    """
    判斷一段 SQL 是否允許執行。

    Args:
        text: 學生送出的原始 SQL

    Returns:
        AdmissionVerdict，accepted=False 時帶有 reason_code 與給學生看的訊息
    """
    sql = (text or "").strip()
    for rule in ADMISSION_RULES:
        verdict = rule.check(sql)
        if verdict is not None:
            logger.debug(f"Admission rule {rule.code.value} rejected query: {sql!r}")
            return verdict
    return ACCEPTED


def ensure_admitted(text: str) -> AdmissionVerdict:
    """Same as evaluate(), but raises AdmissionRejected instead of returning a rejection."""
    verdict = evaluate(text)
    if not verdict.accepted:
        raise AdmissionRejected(verdict)
    return verdict
