import os
import json
from typing import Optional

from sqlalchemy import (
    create_engine, MetaData, Table, Column, String, Text, DateTime, JSON, select
)
from sqlalchemy.engine import Engine
from sqlalchemy.sql import func
from dotenv import load_dotenv

from .errors import AssignmentNotFound
from .models import Assignment

load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://localhost/sqllab")
ASSIGNMENT_DATABASE_URL = os.getenv("ASSIGNMENT_DATABASE_URL") or DATABASE_URL

# 連線池大小即為同時可執行的學生查詢上限
POOL_SIZE = int(os.getenv("SQL_LAB_POOL_SIZE", "5"))
POOL_TIMEOUT = float(os.getenv("SQL_LAB_POOL_TIMEOUT", "10"))

metadata = MetaData()

# ==========================================
# Assignment Table
# ==========================================
assignment_table = Table(
    "assignments",
    metadata,
    Column("assignment_id", String, primary_key=True),
    Column("title", Text, nullable=False),
    Column("description", Text, nullable=False),
    Column("question", Text, nullable=False),
    # [{"table_name": ..., "columns": [{"column_name": ..., "data_type": ...}]}]
    Column("sample_tables", JSON),
    Column("created_at", DateTime, server_default=func.now()),
    extend_existing=True,
)


def create_workspace_engine(
    url: Optional[str] = None,
    pool_size: Optional[int] = None,
    pool_timeout: Optional[float] = None,
    **kwargs,
) -> Engine:
    """Bounded pool backing the execution sandbox."""
    return create_engine(
        url or DATABASE_URL,
        pool_size=pool_size or POOL_SIZE,
        max_overflow=0,
        pool_timeout=pool_timeout if pool_timeout is not None else POOL_TIMEOUT,
        pool_pre_ping=True,
        **kwargs,
    )


def create_catalog_engine(url: Optional[str] = None) -> Engine:
    return create_engine(url or ASSIGNMENT_DATABASE_URL, pool_pre_ping=True)


class AssignmentStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def get_by_id(self, assignment_id: str) -> Assignment:
        stmt = select(
            assignment_table.c.assignment_id,
            assignment_table.c.title,
            assignment_table.c.description,
            assignment_table.c.question,
            assignment_table.c.sample_tables,
        ).where(assignment_table.c.assignment_id == assignment_id)

        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()

        if not row:
            raise AssignmentNotFound(assignment_id)

        row_mapping = row._mapping
        sample_tables = row_mapping["sample_tables"] or []
        if isinstance(sample_tables, str):
            sample_tables = json.loads(sample_tables)

        return Assignment(
            assignment_id=row_mapping["assignment_id"],
            title=row_mapping["title"],
            description=row_mapping["description"] or "",
            question=row_mapping["question"] or "",
            sample_tables=sample_tables,
        )
