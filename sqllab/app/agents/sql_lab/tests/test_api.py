import pytest
from httpx import ASGITransport, AsyncClient

from sqllab.api_server import app
from sqllab.app.agents.sql_lab.errors import (
    AssignmentNotFound,
    ExecutionFault,
    UpstreamUnavailable,
)
from sqllab.app.agents.sql_lab.models import Assignment, ColumnInfo, ExecutionResult
from sqllab.app.routers.hints import get_assignment_store, get_hint_llm
from sqllab.app.routers.queries import get_sandbox


class SpySandbox:
    def __init__(self, result=None, error=None):
        self.calls = []
        self.result = result or ExecutionResult(
            columns=[ColumnInfo(name="id", data_type=23)], rows=[{"id": 1}], row_count=1
        )
        self.error = error

    def execute(self, sql, workspace_id):
        self.calls.append((sql, workspace_id))
        if self.error:
            raise self.error
        return self.result


class StaticStore:
    def get_by_id(self, assignment_id):
        if assignment_id != "a1":
            raise AssignmentNotFound(assignment_id)
        return Assignment(
            assignment_id="a1",
            title="Customers",
            description="Easy",
            question="List every customer name.",
            sample_tables=[{"table_name": "customers", "columns": [{"column_name": "name", "data_type": "TEXT"}]}],
        )


class ReplyLLM:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error

    async def complete(self, system_prompt, user_prompt):
        if self.error:
            raise self.error
        return self.reply


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def use_sandbox(sandbox):
    app.dependency_overrides[get_sandbox] = lambda: sandbox
    return sandbox


# ==========================================
# /api/queries/execute
# ==========================================

async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_end_to_end_select_in_workspace(client, sandbox):
    use_sandbox(sandbox)
    response = await client.post(
        "/api/queries/execute", json={"sql": "SELECT id FROM customers", "workspaceId": "w1"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["rowCount"] == 3
    assert body["columns"][0]["name"] == "id"
    assert body["rows"] == [{"id": 1}, {"id": 2}, {"id": 3}]


async def test_query_alias_and_schema_field_are_accepted(client):
    spy = use_sandbox(SpySandbox())
    response = await client.post("/api/queries/execute", json={"query": "SELECT 1;", "schema": "w2"})

    assert response.status_code == 200
    assert response.json()["columns"] == [{"name": "id", "dataType": 23}]
    assert spy.calls == [("SELECT 1;", "w2")]


async def test_empty_sql_field_falls_through_to_query(client):
    spy = use_sandbox(SpySandbox())
    response = await client.post(
        "/api/queries/execute", json={"sql": "", "query": "SELECT 1", "workspaceId": "w1"}
    )

    assert response.status_code == 200
    assert spy.calls == [("SELECT 1", "w1")]


async def test_like_pattern_reaches_sandbox_verbatim(client, sandbox):
    use_sandbox(sandbox)
    response = await client.post(
        "/api/queries/execute",
        json={"sql": "SELECT name FROM customers WHERE name LIKE 'A%'", "workspaceId": "w1"},
    )

    assert response.status_code == 200
    assert response.json()["rows"] == [{"name": "Ada"}]


async def test_rejected_query_never_reaches_sandbox(client):
    spy = use_sandbox(SpySandbox())
    response = await client.post(
        "/api/queries/execute", json={"sql": "SELECT * FROM public.events", "workspaceId": "w1"}
    )

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "reasonCode": "SCHEMA_QUALIFIED_REFERENCE",
        "message": "Schema-qualified table names are not allowed. Use table names without schema prefix.",
    }
    assert spy.calls == []


async def test_stacked_statement_rejected(client):
    spy = use_sandbox(SpySandbox())
    response = await client.post(
        "/api/queries/execute", json={"sql": "select 1; drop table x", "workspaceId": "w1"}
    )
    assert response.status_code == 400
    assert response.json()["reasonCode"] in ("MULTI_STATEMENT", "FORBIDDEN_VERB")
    assert spy.calls == []


async def test_empty_sql_rejected_by_policy(client):
    use_sandbox(SpySandbox())
    response = await client.post("/api/queries/execute", json={"sql": "   ", "workspaceId": "w1"})
    assert response.status_code == 400
    assert response.json()["reasonCode"] == "EMPTY"


@pytest.mark.parametrize("body", [
    {"workspaceId": "w1"},
    {"sql": 123, "workspaceId": "w1"},
    {"sql": "SELECT 1"},
    {"sql": "SELECT 1", "workspaceId": "!!!"},
])
async def test_malformed_requests_are_validation_faults(client, body):
    spy = use_sandbox(SpySandbox())
    response = await client.post("/api/queries/execute", json=body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["success"] is False
    assert "reasonCode" not in payload
    assert payload["message"]
    assert spy.calls == []


async def test_execution_fault_is_client_error(client):
    use_sandbox(SpySandbox(error=ExecutionFault('column "nme" does not exist')))
    response = await client.post(
        "/api/queries/execute", json={"sql": "SELECT nme FROM customers", "workspaceId": "w1"}
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": 'column "nme" does not exist'}


async def test_pool_unavailable_is_503(client):
    use_sandbox(SpySandbox(error=UpstreamUnavailable("All database connections are busy.")))
    response = await client.post("/api/queries/execute", json={"sql": "SELECT 1", "workspaceId": "w1"})
    assert response.status_code == 503
    assert response.json()["success"] is False


async def test_unexpected_sandbox_failure_is_json_500(client):
    use_sandbox(SpySandbox(error=TypeError("immutabledict is not a sequence")))
    response = await client.post("/api/queries/execute", json={"sql": "SELECT 1", "workspaceId": "w1"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Error executing query"}


# ==========================================
# /api/hint
# ==========================================

def use_hint_deps(llm):
    app.dependency_overrides[get_assignment_store] = lambda: StaticStore()
    app.dependency_overrides[get_hint_llm] = lambda: llm


async def test_hint_success_is_redacted(client):
    use_hint_deps(ReplyLLM("Look at the name column.\nSELECT name FROM customers"))
    response = await client.post("/api/hint", json={"assignmentId": "a1", "userQuery": "SELECT * FROM customers"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "hint": "Look at the name column."}


async def test_hint_unknown_assignment_is_404(client):
    use_hint_deps(ReplyLLM("unused"))
    response = await client.post("/api/hint", json={"assignmentId": "zzz", "userQuery": "SELECT 1"})
    assert response.status_code == 404


async def test_hint_bad_assignment_id_is_400(client):
    use_hint_deps(ReplyLLM("unused"))
    response = await client.post("/api/hint", json={"assignmentId": "a1; --", "userQuery": "SELECT 1"})
    assert response.status_code == 400
    assert "Invalid assignment ID format" in response.json()["message"]


async def test_hint_missing_user_query_is_400(client):
    use_hint_deps(ReplyLLM("unused"))
    response = await client.post("/api/hint", json={"assignmentId": "a1"})
    assert response.status_code == 400


async def test_hint_llm_down_is_503(client):
    use_hint_deps(ReplyLLM(error=UpstreamUnavailable("OpenAI API error: quota")))
    response = await client.post(
        "/api/hint", json={"assignmentId": "a1", "userQuery": "SELECT 1", "error": "syntax error"}
    )
    assert response.status_code == 503
    assert response.json()["message"] == "Hint service temporarily unavailable"


async def test_hint_unexpected_failure_is_500(client):
    use_hint_deps(ReplyLLM(error=RuntimeError("boom")))
    response = await client.post("/api/hint", json={"assignmentId": "a1", "userQuery": "SELECT 1"})
    assert response.status_code == 500
    assert response.json()["message"] == "Error generating hint"
