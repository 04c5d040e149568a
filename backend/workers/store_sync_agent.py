#!/usr/bin/env python3
"""
Store -> coordinator sync agent.

Runs on a store terminal (cron or a service timer) and speaks the coordinator's
push/pull protocol:
- push-sales: upload local sales in batches (safe to repeat, the coordinator
  drops sale_numbers it already has)
- pull-sales: download sibling stores' sales newer than the saved cursor
- push-catalog: upload products/categories in batches, flagging the last one
- pull-catalog: download the master catalog

Env:
- SYNC_SERVER_URL   e.g. "https://sync.example.com"
- SYNC_STORE_ID     this terminal's store id
"""

import argparse
import json
import os
import sys
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Any, Optional

SALES_BATCH_SIZE = 200
CATALOG_BATCH_SIZE = 500


def _base_url() -> str:
    return (os.getenv("SYNC_SERVER_URL") or "http://localhost:3000").strip().rstrip("/")


def _store_id() -> Optional[int]:
    raw = (os.getenv("SYNC_STORE_ID") or "").strip()
    return int(raw) if raw else None


def _http_json(method: str, url: str, payload: Optional[dict] = None) -> dict:
    data = json.dumps(payload, default=str).encode("utf-8") if payload is not None else None
    req = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method=method,
    )
    with urllib.request.urlopen(req, timeout=20) as resp:
        body = resp.read().decode("utf-8") if resp else ""
        if not body:
            return {}
        try:
            return json.loads(body)
        except ValueError:
            return {"raw": body}


def _batches(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start : start + size]


def push_sales(store_id: int, sales: list[dict[str, Any]], batch_size: int = SALES_BATCH_SIZE) -> dict[str, int]:
    accepted = 0
    total = 0
    for batch in _batches(sales, batch_size):
        res = _http_json("POST", _base_url() + "/sync/push", {"storeId": store_id, "sales": batch})
        accepted += int(res.get("accepted") or 0)
        total = int(res.get("totalSales") or total)
    return {"sent": len(sales), "accepted": accepted, "totalSales": total}


def _read_cursor(path: Optional[Path]) -> Optional[str]:
    if path is None or not path.exists():
        return None
    return path.read_text(encoding="utf-8").strip() or None


def pull_sales(store_id: Optional[int], cursor_path: Optional[Path] = None) -> list[dict[str, Any]]:
    """Pull sibling sales newer than the cursor and advance the cursor to the newest one."""
    params = {}
    if store_id is not None:
        params["storeId"] = str(store_id)
    since = _read_cursor(cursor_path)
    if since:
        params["since"] = since
    url = _base_url() + "/sync/pull"
    if params:
        url += "?" + urllib.parse.urlencode(params)
    res = _http_json("GET", url)
    sales = list(res.get("sales") or [])
    # Newest first, so the first sale carries the new cursor.
    if sales and cursor_path is not None:
        newest = sales[0].get("created_at") or sales[0].get("timestamp")
        if newest:
            cursor_path.write_text(str(newest), encoding="utf-8")
    return sales


def push_catalog(
    store_id: int,
    products: list[dict[str, Any]],
    categories: list[dict[str, Any]],
    batch_size: int = CATALOG_BATCH_SIZE,
) -> dict[str, Any]:
    batches = list(_batches(products, batch_size)) or [[]]
    last = {}
    for i, batch in enumerate(batches):
        payload = {
            "storeId": store_id,
            "products": batch,
            # Categories are small; they travel with the first batch only.
            "categories": categories if i == 0 else [],
            "isLastBatch": i == len(batches) - 1,
        }
        last = _http_json("POST", _base_url() + "/sync/products/push", payload)
    return {"batches": len(batches), "totalProducts": last.get("totalProducts"), "durable": last.get("durable")}


def pull_catalog(store_id: Optional[int] = None) -> dict[str, Any]:
    url = _base_url() + "/sync/products/pull"
    if store_id is not None:
        url += "?" + urllib.parse.urlencode({"storeId": str(store_id)})
    res = _http_json("GET", url)
    return {"products": res.get("products") or [], "categories": res.get("categories") or []}


def _load_json(path: str):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _write_out(obj: Any, out: Optional[str]) -> None:
    text = json.dumps(obj, indent=2, default=str)
    if out:
        Path(out).write_text(text, encoding="utf-8")
    else:
        print(text)


def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Store sync agent")
    ap.add_argument("--store-id", type=int, default=None, help="defaults to SYNC_STORE_ID")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("push-sales", help="upload a JSON array of sales")
    p.add_argument("file")

    p = sub.add_parser("pull-sales", help="download sibling stores' sales")
    p.add_argument("--cursor", default=None, help="file holding the last seen sale time")
    p.add_argument("--out", default=None)

    p = sub.add_parser("push-catalog", help='upload {"products": [...], "categories": [...]}')
    p.add_argument("file")

    p = sub.add_parser("pull-catalog", help="download the master catalog")
    p.add_argument("--out", default=None)

    args = ap.parse_args(argv)
    store_id = args.store_id if args.store_id is not None else _store_id()

    try:
        if args.cmd == "push-sales":
            if store_id is None:
                ap.error("store id is required (--store-id or SYNC_STORE_ID)")
            _write_out(push_sales(store_id, list(_load_json(args.file) or [])), None)
        elif args.cmd == "pull-sales":
            cursor = Path(args.cursor) if args.cursor else None
            _write_out(pull_sales(store_id, cursor), args.out)
        elif args.cmd == "push-catalog":
            if store_id is None:
                ap.error("store id is required (--store-id or SYNC_STORE_ID)")
            doc = _load_json(args.file) or {}
            _write_out(push_catalog(store_id, list(doc.get("products") or []), list(doc.get("categories") or [])), None)
        elif args.cmd == "pull-catalog":
            _write_out(pull_catalog(), args.out)
    except urllib.error.HTTPError as ex:
        try:
            body = ex.read().decode("utf-8")
        except OSError:
            body = ""
        msg = f"http {ex.code} {ex.reason}".strip()
        if body:
            msg = f"{msg}: {body[:1000]}"
        print(msg, file=sys.stderr)
        return 1
    except urllib.error.URLError as ex:
        print(f"coordinator unreachable: {ex.reason}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
