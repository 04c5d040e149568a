from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional, TypeVar

from ..jsonlog import json_log
from ..persistence import PersistenceAdapter

T = TypeVar("T")


@dataclass(frozen=True)
class ChunkResult:
    collection: str
    index: int
    size: int
    ok: bool
    error: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _log_crash(fut: Future) -> None:
    exc = fut.exception()
    if exc is not None:
        json_log("error", "catalog.write_behind_crashed", error=str(exc))


def summarize(chunks: list[ChunkResult]) -> str:
    if all(c.ok for c in chunks):
        return "ok"
    if not any(c.ok for c in chunks):
        return "failed"
    return "partial"


class WriteBehind:
    """
    Chunked durable upserts off the request path.

    A single worker thread keeps batches in submission order, so a later push of
    the same product always lands after an earlier one. Nothing is retried: a
    failed chunk is reported and the store resubmits on its next catalog push.
    """

    def __init__(self, persistence: PersistenceAdapter, chunk_size: int, executor: Optional[Executor] = None):
        self._persistence = persistence
        self._chunk_size = max(1, int(chunk_size))
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="write-behind")

    @property
    def enabled(self) -> bool:
        return self._persistence.enabled

    def _write(self, batches: list[tuple[str, list[dict[str, Any]]]]) -> list[ChunkResult]:
        results = []
        for collection, rows in batches:
            for index, start in enumerate(range(0, len(rows), self._chunk_size)):
                chunk = rows[start : start + self._chunk_size]
                res = self._persistence.upsert(collection, chunk)
                err = None if res.ok else str(res.error)
                results.append(ChunkResult(collection, index, len(chunk), res.ok, err))
                if err:
                    json_log("warning", "catalog.chunk_failed", collection=collection, chunk=index, rows=len(chunk), error=err)
        return results

    def submit(self, batches: list[tuple[str, list[dict[str, Any]]]]) -> Future:
        fut = self._executor.submit(self._write, batches)
        fut.add_done_callback(_log_crash)
        return fut

    def call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run fn on the writer thread after everything already queued and wait for its result."""
        return self._executor.submit(fn, *args).result()

    def write(self, batches: list[tuple[str, list[dict[str, Any]]]], *, wait: bool = False) -> dict[str, Any]:
        """
        Returns {"durable": status} and, when wait=True, the per-chunk results.
        Status is disabled | queued | ok | partial | failed.
        """
        if not self.enabled:
            return {"durable": "disabled"}
        batches = [(c, rows) for c, rows in batches if rows]
        if not batches:
            return {"durable": "ok", "chunks": []} if wait else {"durable": "ok"}
        fut = self.submit(batches)
        if not wait:
            return {"durable": "queued"}
        chunks = fut.result()
        return {"durable": summarize(chunks), "chunks": [c.as_dict() for c in chunks]}

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
