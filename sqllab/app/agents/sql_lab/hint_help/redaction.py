"""
Hint Redaction 模組
功能：清理 LLM 產生的提示文字，移除可能洩漏解答的 SQL 語法。

注意：這是啟發式 (heuristic) 的防護層，不是保證。
改寫過的 SQL、或沒有明確字界的關鍵字 (例如 "SELECTname") 仍可能通過。
"""
import re

REMOVAL_MARKER = "[code removed]"
FALLBACK_HINT = (
    "Think about the structure of your query. "
    "Consider what tables you need and how to filter or combine them."
)
MIN_HINT_LENGTH = 10

SQL_KEYWORDS = [
    "SELECT", "FROM", "WHERE", "JOIN", "GROUP BY", "ORDER BY", "HAVING",
    "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "ALTER", "WITH",
    "AS", "ON", "INNER", "OUTER", "LEFT", "RIGHT", "FULL",
    "UNION", "INTERSECT", "EXCEPT",
]
LINE_PREFIXES = ("SELECT", "WITH", "FROM", "WHERE", "JOIN")

FENCED_CODE = re.compile(r"```[\s\S]*?```")
INLINE_CODE = re.compile(r"`[^`\n]+`")
# SQL 不分大小寫，小寫的 "select ... from" 也要移除 (代價是較常退回 FALLBACK_HINT)
KEYWORD_PATTERN = re.compile(
    r"\b(?:" + "|".join(k.replace(" ", r"\s+") for k in SQL_KEYWORDS) + r")\b",
    re.IGNORECASE,
)


def _leaks_sql(line: str) -> bool:
    if KEYWORD_PATTERN.search(line):
        return True
    return line.strip().upper().startswith(LINE_PREFIXES)


def redact_hint(text: str) -> str:
    text = FENCED_CODE.sub(REMOVAL_MARKER, text or "")
    text = INLINE_CODE.sub(REMOVAL_MARKER, text)

    kept = [line for line in text.splitlines() if not _leaks_sql(line)]

    text = "\n".join(kept)
    text = KEYWORD_PATTERN.sub("", text)     # e.g. "GROUP\nBY" split across lines
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"\s*,\s*", ", ", text).strip()

    if len(text) < MIN_HINT_LENGTH:
        return FALLBACK_HINT
    return text
