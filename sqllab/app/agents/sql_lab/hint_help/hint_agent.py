"""
Hint Agent 模組
功能：
1. 依據題目、資料表結構與學生目前的查詢組出 prompt
2. 呼叫 LLM 產生提示
3. 經過 redaction 後回傳，避免直接洩漏解答
"""
import os
import logging
from typing import Any, Dict, List, Optional, Tuple

import openai
from dotenv import load_dotenv
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from starlette.concurrency import run_in_threadpool

from ..errors import UpstreamUnavailable
from ..models import Difficulty
from .difficulty import DIFFICULTY_GUIDANCE, classify_difficulty
from .redaction import FALLBACK_HINT, redact_hint

load_dotenv()
logger = logging.getLogger(__name__)

HINT_MODEL = os.getenv("HINT_MODEL", "gpt-4o-mini")

SYSTEM_PROMPT = """You are a SQL learning assistant. Your role is to provide helpful hints to students learning SQL, NOT to give complete solutions.

CRITICAL RULES:
1. NEVER provide complete SQL queries or code solutions
2. NEVER write out the full query structure
3. ONLY provide conceptual hints, guidance, or suggestions
4. Point students toward the right direction without solving the problem
5. If there's an error, explain what might be wrong conceptually, but don't fix the query
6. Adapt your hint difficulty based on the assignment difficulty level
7. Keep hints concise and educational

Your response should be a helpful hint that guides the student, not a solution."""


class HintLLM:
    """Thin wrapper so the rest of the hint path only sees complete(system, user) -> text."""

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 200,
        request_timeout: float = 30,
    ):
        self.model = model or HINT_MODEL
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self._llm = None

    def _get_llm(self) -> ChatOpenAI:
        if not self.api_key:
            raise UpstreamUnavailable("OpenAI API key is not configured")
        if self._llm is None:
            self._llm = ChatOpenAI(
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                api_key=self.api_key,
                request_timeout=self.request_timeout,
                max_retries=0,
            )
        return self._llm

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        llm = self._get_llm()
        try:
            response = await llm.ainvoke([
                SystemMessage(content=system_prompt),
                HumanMessage(content=user_prompt),
            ])
        except openai.OpenAIError as e:
            logger.error(f"Hint LLM call failed: {e}")
            raise UpstreamUnavailable(f"OpenAI API error: {e}") from e
        return str(response.content).strip()


def format_schema(sample_tables: List[Dict[str, Any]]) -> str:
    schema_parts = []
    for table in sample_tables or []:
        columns = ", ".join(
            f"{col.get('column_name')} ({col.get('data_type')})"
            for col in table.get("columns", [])
        )
        schema_parts.append(f"{table.get('table_name')}: {columns}")
    return "\n".join(schema_parts)


def build_hint_prompts(
    question: str,
    schema: str,
    user_query: str,
    error: Optional[str] = None,
    difficulty: Difficulty = Difficulty.MEDIUM,
) -> Tuple[str, str]:
    error_context = (
        f"The user's query resulted in an error: {error}."
        if error
        else "The user has written a query but may need guidance."
    )
    guidance = DIFFICULTY_GUIDANCE.get(difficulty, DIFFICULTY_GUIDANCE[Difficulty.MEDIUM])

    user_prompt = f"""Assignment Question: {question}

Database Schema: {schema}

User's Current Query: {user_query}

{error_context}

Difficulty Level: {difficulty.value}
{guidance}

Provide a helpful hint that guides the student toward solving this SQL problem. Remember: NO SQL code, NO complete solutions, ONLY hints and guidance."""

    return SYSTEM_PROMPT, user_prompt


async def generate_hint(
    store,
    llm: HintLLM,
    assignment_id: str,
    user_query: str,
    error: Optional[str] = None,
) -> str:
    """
    Hint 流程：讀取題目 -> 判斷難度 -> 組 prompt -> LLM -> redaction

    Raises:
        AssignmentNotFound: 題目不存在
        UpstreamUnavailable: LLM 無法使用
    """
    assignment = await run_in_threadpool(store.get_by_id, assignment_id)

    schema = format_schema(assignment.sample_tables)
    difficulty = classify_difficulty(assignment.description)
    system_prompt, user_prompt = build_hint_prompts(
        assignment.question, schema, user_query, error, difficulty
    )

    raw_hint = await llm.complete(system_prompt, user_prompt)
    hint = redact_hint(raw_hint)
    if hint == FALLBACK_HINT:
        logger.info(f"Hint for assignment {assignment_id} fully redacted, using fallback.")
    return hint
