"""
Tests for the HTTP surface: upload, preview, questions and exploration routes.
"""

import io
import json
import uuid

import httpx
import pandas as pd
import pytest
from fastapi.testclient import TestClient

from app.llm import TextGenClient
from app.llm_loader import TextGenConfig
from conftest import FakeTextGen
from main import app
from server.api import get_orchestrator
from server.orchestrator import QueryOrchestrator

PEOPLE_CSV = b"name,age\nann,20\nbob,25\ncid,30\ndee,90\n"


@pytest.fixture
def fake():
    return FakeTextGen()


@pytest.fixture
def client(fake):
    app.dependency_overrides[get_orchestrator] = lambda: QueryOrchestrator(fake)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def headers():
    return {"X-Session-Id": f"test-{uuid.uuid4()}"}


def _upload(client, headers, content=PEOPLE_CSV, filename="people.csv"):
    return client.post("/upload", headers=headers, files={"file": (filename, content, "application/octet-stream")})


class TestUpload:
    """Tests for dataset upload and schema replacement."""

    def test_csv_upload(self, client, headers):
        resp = _upload(client, headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["table"] == "people"
        assert body["rows"] == 4
        assert body["schema"]["columns"] == [
            {"name": "name", "type": "string"},
            {"name": "age", "type": "number"},
        ]
        assert body["chart"]["column"] == "name"
        assert len(body["chart"]["chartData"]) == 4

    def test_excel_first_sheet(self, client, headers):
        df = pd.DataFrame({
            "region": ["north", "south", "north"],
            "sales": [10.5, 20.0, 7.25],
            "closed": [True, False, True],
            "day": pd.to_datetime(["2024-01-01", "2024-01-02", "2024-01-03"]),
        })
        buf = io.BytesIO()
        df.to_excel(buf, index=False)

        resp = _upload(client, headers, buf.getvalue(), "q1.sales.xlsx")
        assert resp.status_code == 200
        body = resp.json()
        assert body["table"] == "q1"
        assert [c["type"] for c in body["schema"]["columns"]] == ["string", "number", "boolean", "datetime"]
        assert body["chart"]["chartData"][0] == {"name": "north", "value": 2}

    def test_numeric_header_matches_records(self, client, headers):
        df = pd.DataFrame({2023: [1, 2, 3], "name": ["a", "b", "c"]})
        buf = io.BytesIO()
        df.to_excel(buf, index=False)

        body = _upload(client, headers, buf.getvalue(), "years.xlsx").json()
        assert body["schema"]["columns"][0] == {"name": "2023", "type": "number"}
        assert body["chart"]["column"] == "2023"
        assert [p["value"] for p in body["chart"]["chartData"]] == [1, 1, 1]

        prof = client.get("/api/profile/2023", headers=headers).json()
        assert prof["totalCount"] == 3
        preview = client.get("/table/preview", headers=headers).json()
        assert preview["rows"][0] == {"2023": 1, "name": "a"}

    def test_reupload_replaces_dataset(self, client, headers):
        _upload(client, headers)
        client.post("/nlq", headers=headers, json={"question": "hi"})
        resp = _upload(client, headers, b"city\nparis\nrome\n", "cities.csv")
        assert resp.status_code == 200

        schema = client.get("/schema", headers=headers).json()
        assert schema == {"tableName": "cities", "columns": [{"name": "city", "type": "string"}]}
        convo = client.get("/api/conversation", headers=headers).json()
        assert len(convo["messages"]) == 2

    def test_unreadable_file(self, client, headers):
        resp = _upload(client, headers, b"\x00\x01 definitely not a workbook", "broken.xlsx")
        assert resp.status_code == 400

    def test_header_only_sheet(self, client, headers):
        resp = _upload(client, headers, b"a,b\n", "empty.csv")
        assert resp.status_code == 400

    def test_missing_session_header(self, client):
        resp = client.post("/upload", files={"file": ("people.csv", PEOPLE_CSV, "text/csv")})
        assert resp.status_code == 400


class TestPreview:
    """Tests for paginated dataset views."""

    def test_pages_of_ten(self, client, headers):
        rows = "\n".join(f"row{i},{i}" for i in range(23))
        _upload(client, headers, f"label,n\n{rows}\n".encode(), "rows.csv")

        first = client.get("/table/preview", headers=headers).json()
        assert first["page"] == 1
        assert len(first["rows"]) == 10
        assert first["total_pages"] == 3
        assert first["columns"] == ["label", "n"]

        last = client.get("/table/preview?page=3", headers=headers).json()
        assert [r["label"] for r in last["rows"]] == ["row20", "row21", "row22"]

    def test_preview_without_data(self, client, headers):
        assert client.get("/table/preview", headers=headers).status_code == 400
        assert client.get("/schema", headers=headers).status_code == 400


class TestQuestions:
    """Tests for the /nlq endpoint."""

    def test_question_before_upload(self, client, headers, fake):
        resp = client.post("/nlq", headers=headers, json={"question": "how many rows?"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Please upload data first"
        assert fake.calls == 0

    def test_empty_question(self, client, headers):
        _upload(client, headers)
        resp = client.post("/nlq", headers=headers, json={"question": "   "})
        assert resp.status_code == 422

    def test_greeting(self, client, headers, fake):
        _upload(client, headers)
        resp = client.post("/nlq", headers=headers, json={"question": " Hello "})
        assert resp.status_code == 200
        body = resp.json()
        assert body["sqlQuery"] == ""
        assert body["needsChart"] is False
        assert fake.calls == 0

        convo = client.get("/api/conversation", headers=headers).json()
        assert [m["role"] for m in convo["messages"]] == ["user", "assistant"]
        assert convo["in_flight"] is False

    def test_answer_with_chart(self, client, headers, fake):
        _upload(client, headers)
        fake.replies.append(json.dumps({
            "answer": "Ages cluster at both ends.",
            "sqlQuery": "select age from people",
            "visualization": "bar",
            "chartDataColumn": "age",
        }))
        body = client.post("/nlq", headers=headers, json={"question": "age spread?"}).json()

        assert body["answer"] == "Ages cluster at both ends."
        assert body["formattedSql"] == "SELECT age\n  FROM people"
        assert body["chartType"] == "bar"
        assert body["chartDataColumn"] == "age"
        assert [p["value"] for p in body["chartData"]] == [3, 0, 0, 1]
        assert isinstance(body["executionTime"], int)
        assert all(isinstance(p["value"], int) for p in body["chartData"])

    @pytest.mark.parametrize("bad_value", ['"NaN"', '"Infinity"', "1e400", "NaN"])
    def test_non_finite_reply_chart_is_rebuilt_locally(self, client, headers, fake, bad_value):
        _upload(client, headers)
        fake.replies.append(
            '{"answer": "x", "visualization": "bar", "chartDataColumn": "age", '
            '"chartData": [{"name": "a", "value": ' + bad_value + '}]}'
        )
        resp = client.post("/nlq", headers=headers, json={"question": "age spread?"})

        assert resp.status_code == 200
        assert [p["value"] for p in resp.json()["chartData"]] == [3, 0, 0, 1]


class TestExploration:
    """Tests for on-demand charts and profiles."""

    def test_chart_for_numeric_column(self, client, headers):
        _upload(client, headers)
        body = client.get("/api/chart/age?chart_type=bar", headers=headers).json()
        assert body["column"] == "age"
        assert body["columnType"] == "number"
        assert body["chartType"] == "bar"
        assert [p["name"] for p in body["chartData"]][-1] == "72.50 - 90.00"

    def test_unknown_column_substituted(self, client, headers):
        _upload(client, headers)
        body = client.get("/api/chart/salary", headers=headers).json()
        assert body["column"] == "name"
        assert body["chartType"] == "pie"

    def test_chart_by_query_param(self, client, headers):
        _upload(client, headers)
        body = client.get("/api/chart?column=age", headers=headers).json()
        assert body["column"] == "age"

    def test_invalid_chart_type(self, client, headers):
        _upload(client, headers)
        assert client.get("/api/chart/age?chart_type=radar", headers=headers).status_code == 422

    def test_chart_without_data(self, client, headers):
        assert client.get("/api/chart/age", headers=headers).status_code == 400

    def test_profile(self, client, headers):
        _upload(client, headers)
        body = client.get("/api/profile/age", headers=headers).json()
        assert body["totalCount"] == 4
        assert body["uniqueCount"] == 4
        assert (body["min"], body["max"]) == (20.0, 90.0)


class TestServiceStatusRoute:
    def test_llm_status(self):
        def handler(request):
            return httpx.Response(200, json={"models": [{"name": "other-model"}]})

        client = TextGenClient(TextGenConfig(), transport=httpx.MockTransport(handler))
        app.dependency_overrides[get_orchestrator] = lambda: QueryOrchestrator(client)
        try:
            with TestClient(app) as c:
                body = c.get("/api/llm/status").json()
        finally:
            app.dependency_overrides.clear()

        assert body["available"] is True
        assert body["model_available"] is False
        assert body["model"] == "qwen2.5-coder:7b"
