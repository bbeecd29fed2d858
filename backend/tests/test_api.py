"""API integration tests."""
from fastapi.testclient import TestClient

from api.routes import get_chat_client, get_sql_generator
from conftest import FakeLLMClient, FakeSQLGenerator, completion, tool_call
from main import app


def _upload(client: TestClient, content: bytes, filename: str = "sales.csv"):
    return client.post("/datasets/upload", files={"file": (filename, content, "text/csv")})


def test_healthcheck(client: TestClient):
    resp = client.get("/healthcheck")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_upload_and_read(client: TestClient, sales_csv: bytes):
    """Test uploading a dataset and reading its first page."""
    resp = _upload(client, sales_csv)
    assert resp.status_code == 201, resp.text
    dataset = resp.json()
    assert dataset["slug"] == "sales"
    assert dataset["columns"] == ["region", "amount"]

    resp = client.get(f"/datasets/{dataset['id']}/data")
    assert resp.status_code == 200
    body = resp.json()
    assert body["version"] == 1
    assert body["total_rows"] == 3
    assert body["columns"][0] == "___index___"
    assert [row["region"] for row in body["rows"]] == ["north", "south", "east"]

    resp = client.get(f"/datasets/slug/{dataset['slug']}")
    assert resp.json()["id"] == dataset["id"]


def test_upload_rejects_invalid_csv(client: TestClient):
    resp = _upload(client, b"region,amount\n")
    assert resp.status_code == 400
    assert "no rows" in resp.json()["detail"]


def test_transform_and_reset(client: TestClient, sales_csv: bytes):
    dataset = _upload(client, sales_csv).json()
    table = dataset["table_name"]

    resp = client.post(
        f"/datasets/{dataset['id']}/tools/create_transformation",
        json={"sql": f"SELECT region, CAST(amount AS INTEGER) * 2 AS amount FROM {table}"},
    )
    assert resp.status_code == 200
    assert resp.json()["newTableName"] == f"{table}___v2"

    versions = client.get(f"/datasets/{dataset['id']}/versions").json()
    assert [v["version"] for v in versions] == [1, 2]

    resp = client.post(f"/datasets/{dataset['id']}/versions/reset", json={"target_version": 1})
    assert resp.status_code == 200
    assert resp.json()["dropped_tables"] == [f"{table}___v2"]

    body = client.get(f"/datasets/{dataset['id']}/data").json()
    assert [row["amount"] for row in body["rows"]] == ["10", "20", "30"]


def test_tool_failure_is_structured(client: TestClient, sales_csv: bytes):
    dataset = _upload(client, sales_csv).json()

    resp = client.post(
        f"/datasets/{dataset['id']}/tools/create_transformation",
        json={"sql": f"DELETE FROM {dataset['table_name']}"},
    )

    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert [v["version"] for v in client.get(f"/datasets/{dataset['id']}/versions").json()] == [1]


def test_generate_transformation_sql_tool(client: TestClient, sales_csv: bytes):
    dataset = _upload(client, sales_csv).json()
    app.dependency_overrides[get_sql_generator] = lambda: FakeSQLGenerator("SELECT 1 AS one")

    resp = client.post(
        f"/datasets/{dataset['id']}/tools/generate_transformation_sql",
        json={"instructions": ["anything"]},
    )

    assert resp.json() == {"success": True, "sql": "SELECT 1 AS one"}


def test_chart_lifecycle(client: TestClient, sales_csv: bytes):
    dataset = _upload(client, sales_csv).json()

    result = client.post(
        f"/datasets/{dataset['id']}/tools/generate_lines_chart",
        json={
            "title": "Amount by region",
            "sql": f"SELECT region, CAST(amount AS INTEGER) AS amount FROM {dataset['table_name']}",
            "xAxisName": "region",
            "linesNames": ["amount"],
        },
    ).json()
    chart_id = result["chart"]["id"]

    assert client.get(f"/datasets/{dataset['id']}/charts").json() == []
    assert client.post(f"/charts/{chart_id}/save").json()["is_saved"] is True
    assert [c["id"] for c in client.get(f"/datasets/{dataset['id']}/charts").json()] == [chart_id]

    data = client.get(f"/charts/{chart_id}/data").json()
    assert [row["amount"] for row in data["rows"]] == [10, 20, 30]

    assert client.delete(f"/charts/{chart_id}").status_code == 200
    assert client.get(f"/charts/{chart_id}").status_code == 404


def test_messages_upsert(client: TestClient, sales_csv: bytes):
    dataset = _upload(client, sales_csv).json()
    url = f"/datasets/{dataset['id']}/messages"

    client.put(url, json={"id": "m1", "role": "assistant", "parts": [{"type": "text", "text": "draft"}]})
    client.put(url, json={"id": "m1", "role": "assistant", "parts": [{"type": "text", "text": "final"}]})

    messages = client.get(url).json()
    assert len(messages) == 1
    assert messages[0]["parts"][0]["text"] == "final"


def test_chat_endpoint(client: TestClient, sales_csv: bytes):
    dataset = _upload(client, sales_csv).json()
    fake = FakeLLMClient(
        responses=[
            completion(tool_calls=[tool_call("query_data", {"sql": f"SELECT COUNT(*) AS n FROM {dataset['table_name']}"})]),
            completion(content="There are 3 rows."),
        ]
    )
    app.dependency_overrides[get_chat_client] = lambda: fake

    resp = client.post(f"/datasets/{dataset['id']}/chat", json={"content": "How many rows?"})

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["tool_calls"][0]["result"]["data"] == [["3"]]
    assert body["assistant_message"]["parts"][-1]["text"] == "There are 3 rows."


def test_rename_blank_and_delete(client: TestClient):
    blank = client.post("/datasets/blank").json()
    assert blank["name"] == "Blank 1"

    renamed = client.patch(f"/datasets/{blank['id']}", json={"name": "Pokemon"}).json()
    assert renamed["slug"] == "pokemon"

    assert client.delete(f"/datasets/{blank['id']}").status_code == 200
    assert client.get(f"/datasets/{blank['id']}").status_code == 404


def test_not_found(client: TestClient):
    resp = client.get("/datasets/999/data")
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFoundError"
