import io
import json
import urllib.error

import pytest

from backend.workers import store_sync_agent as agent


class _Recorder:
    def __init__(self, responses=None):
        self.calls: list[tuple[str, str, dict]] = []
        self._responses = list(responses or [])

    def __call__(self, method, url, payload=None):
        self.calls.append((method, url, payload))
        return self._responses.pop(0) if self._responses else {}


@pytest.fixture
def server(monkeypatch):
    monkeypatch.setenv("SYNC_SERVER_URL", "http://coordinator:3000/")
    rec = _Recorder()
    monkeypatch.setattr(agent, "_http_json", rec)
    return rec


def test_push_sales_sends_batches(server):
    server._responses = [{"accepted": 2, "totalSales": 2}, {"accepted": 1, "totalSales": 3}]
    sales = [{"sale_number": str(i)} for i in range(3)]

    out = agent.push_sales(4, sales, batch_size=2)

    assert out == {"sent": 3, "accepted": 3, "totalSales": 3}
    assert [c[1] for c in server.calls] == ["http://coordinator:3000/sync/push"] * 2
    assert [len(c[2]["sales"]) for c in server.calls] == [2, 1]
    assert all(c[2]["storeId"] == 4 for c in server.calls)


def test_pull_sales_reads_and_advances_cursor(server, tmp_path):
    cursor = tmp_path / "cursor.txt"
    cursor.write_text("2026-03-01T00:00:00Z", encoding="utf-8")
    server._responses = [
        {"sales": [{"sale_number": "n", "created_at": "2026-03-05T00:00:00Z"}, {"sale_number": "o", "created_at": "2026-03-02T00:00:00Z"}]}
    ]

    sales = agent.pull_sales(1, cursor)

    assert len(sales) == 2
    method, url, _ = server.calls[0]
    assert method == "GET"
    assert url.startswith("http://coordinator:3000/sync/pull?")
    assert "storeId=1" in url
    assert "since=2026-03-01T00%3A00%3A00Z" in url
    assert cursor.read_text(encoding="utf-8") == "2026-03-05T00:00:00Z"


def test_pull_sales_leaves_cursor_alone_when_nothing_new(server, tmp_path):
    cursor = tmp_path / "cursor.txt"
    server._responses = [{"sales": []}]
    assert agent.pull_sales(1, cursor) == []
    assert not cursor.exists()


def test_push_catalog_flags_last_batch(server):
    products = [{"id": i} for i in range(5)]
    categories = [{"id": 1, "name": "Drinks"}]

    out = agent.push_catalog(2, products, categories, batch_size=2)

    assert out["batches"] == 3
    payloads = [c[2] for c in server.calls]
    assert [p["isLastBatch"] for p in payloads] == [False, False, True]
    assert [len(p["categories"]) for p in payloads] == [1, 0, 0]
    assert all(c[1].endswith("/sync/products/push") for c in server.calls)


def test_push_catalog_with_no_products_still_sends_one_batch(server):
    agent.push_catalog(2, [], [{"id": 1}])
    assert len(server.calls) == 1
    assert server.calls[0][2]["isLastBatch"] is True


def test_pull_catalog(server):
    server._responses = [{"products": [{"id": 1}], "categories": None}]
    assert agent.pull_catalog() == {"products": [{"id": 1}], "categories": []}
    assert server.calls[0][1] == "http://coordinator:3000/sync/products/pull"


def test_main_requires_store_id_for_pushes(server, monkeypatch, tmp_path):
    monkeypatch.delenv("SYNC_STORE_ID", raising=False)
    f = tmp_path / "sales.json"
    f.write_text("[]", encoding="utf-8")
    with pytest.raises(SystemExit):
        agent.main(["push-sales", str(f)])


def test_main_reports_http_errors(monkeypatch, tmp_path, capsys):
    def _fail(method, url, payload=None):
        raise urllib.error.HTTPError(url, 400, "Bad Request", {}, io.BytesIO(b'{"error": "storeId is required"}'))

    monkeypatch.setattr(agent, "_http_json", _fail)
    monkeypatch.setenv("SYNC_STORE_ID", "3")
    f = tmp_path / "sales.json"
    f.write_text(json.dumps([{"sale_number": "1"}]), encoding="utf-8")

    assert agent.main(["push-sales", str(f)]) == 1
    assert "storeId is required" in capsys.readouterr().err
