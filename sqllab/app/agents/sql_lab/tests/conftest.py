import pytest

from sqllab.app.agents.sql_lab.db import create_workspace_engine
from sqllab.app.agents.sql_lab.runner.sandbox_runner import WorkspaceSandbox

# SQLite 沒有 search_path，改用會帶出 schema 名稱的 SELECT
SQLITE_NAMESPACE_STATEMENT = "SELECT '{schema}' AS workspace"


@pytest.fixture
def engine_factory(tmp_path):
    engines = []

    def _make(pool_size=2, pool_timeout=1.0):
        engine = create_workspace_engine(
            f"sqlite:///{tmp_path / 'workspace.db'}",
            pool_size=pool_size,
            pool_timeout=pool_timeout,
            connect_args={"check_same_thread": False},
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.dispose()


@pytest.fixture
def workspace_engine(engine_factory):
    engine = engine_factory()
    with engine.begin() as conn:
        conn.exec_driver_sql(
            "CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT, created_at TEXT, note TEXT)"
        )
        conn.exec_driver_sql(
            "INSERT INTO customers (id, name, created_at, note) VALUES "
            "(1, 'Ada', '2024-01-01', NULL), "
            "(2, 'Grace', '2024-02-01', 'vip'), "
            "(3, 'Linus', '2024-03-01', NULL)"
        )
    return engine


@pytest.fixture
def sandbox(workspace_engine):
    return WorkspaceSandbox(workspace_engine, namespace_statement=SQLITE_NAMESPACE_STATEMENT)
