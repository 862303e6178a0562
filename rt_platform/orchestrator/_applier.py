# rt_platform/orchestrator/_applier.py
# submit sync operations in chunks and classify per-item outcomes.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from _logging import log
from ._types import ItemOutcome, ItemStatus, OperationResult, ProtocolError, SyncOperation, TransportError

_NOT_FOUND_REASONS = {"not_found", "invalid", "not found", "notfound"}
_EXISTING_REASONS = {"already_exists", "existing", "exists"}


@dataclass
class ApplyReport:
    ok: List[Any] = field(default_factory=list)
    not_found: List[Any] = field(default_factory=list)
    already_exists: List[Any] = field(default_factory=list)
    failed: List[Any] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.ok) + len(self.not_found) + len(self.already_exists) + len(self.failed)

    def bucket(self, status: ItemStatus) -> List[Any]:
        return {
            ItemStatus.OK: self.ok,
            ItemStatus.NOT_FOUND: self.not_found,
            ItemStatus.ALREADY_EXISTS: self.already_exists,
        }.get(status, self.failed)

    def extend(self, other: "ApplyReport") -> None:
        self.ok.extend(other.ok)
        self.not_found.extend(other.not_found)
        self.already_exists.extend(other.already_exists)
        self.failed.extend(other.failed)

    def counts(self) -> Dict[str, int]:
        return {
            "ok": len(self.ok),
            "not_found": len(self.not_found),
            "already_exists": len(self.already_exists),
            "failed": len(self.failed),
        }


#--- Retry wrapper with exponential backoff -----------------------------------
def _retry(fn: Callable[[], Any], *, attempts: int = 3, base_sleep: float = 0.5) -> Any:
    attempts = max(1, int(attempts))
    for i in range(attempts):
        try:
            return fn()
        except TransportError:
            if i == attempts - 1:
                raise
            if base_sleep > 0:
                time.sleep(base_sleep * (2 ** i))


def _status_for_reason(reason: Any) -> ItemStatus:
    r = str(reason or "").strip().lower()
    if r in _NOT_FOUND_REASONS:
        return ItemStatus.NOT_FOUND
    if r in _EXISTING_REASONS:
        return ItemStatus.ALREADY_EXISTS
    return ItemStatus.FAILED


#--- Normalize operation result into a report ---------------------------------
def classify(result: OperationResult, items: List[Any]) -> ApplyReport:
    rep = ApplyReport()
    if result.items is not None:
        seen: set[int] = set()
        for outcome in result.items:
            if not isinstance(outcome, ItemOutcome):
                continue
            seen.add(id(outcome.item))
            status = outcome.status if isinstance(outcome.status, ItemStatus) else _status_for_reason(outcome.status)
            rep.bucket(status).append(outcome.item)
        # items the service did not mention inherit the batch status
        rest = [it for it in items if id(it) not in seen]
        if rest:
            (rep.ok if result.ok else rep.bucket(_status_for_reason(result.reason))).extend(rest)
        return rep
    if result.ok:
        rep.ok.extend(items)
    else:
        rep.bucket(_status_for_reason(result.reason)).extend(items)
    return rep


#--- Chunked apply ------------------------------------------------------------
def apply_operation(op: SyncOperation, *, client, chunk_size: int = 100, emit=None,
                    attempts: int = 3, base_sleep: float = 0.5) -> ApplyReport:
    items = list(op.items or [])
    tag = f"apply:{op.kind.value}"
    total = len(items)
    report = ApplyReport()
    if total == 0:
        return report
    if emit:
        emit(f"{tag}:start", entity=op.entity, count=total)

    csize = int(chunk_size or 0)
    if csize <= 0:
        csize = total

    done = 0
    for i in range(0, total, csize):
        chunk = items[i:i + csize]
        sub = SyncOperation(entity=op.entity, kind=op.kind, items=chunk)
        try:
            res = _retry(lambda: client.submit(sub), attempts=attempts, base_sleep=base_sleep)
            rep = classify(res, chunk)
        except TransportError as e:
            log(f"{op.kind.value} {op.entity}: {len(chunk)} item(s) not sent: {e}", level="ERROR", module="SYNC")
            rep = ApplyReport(failed=list(chunk))
        except ProtocolError as e:
            log(f"{op.kind.value} {op.entity}: rejected ({e.reason})", level="WARN", module="SYNC")
            rep = classify(OperationResult(ok=False, status="error", reason=e.reason), chunk)
        report.extend(rep)
        done += len(chunk)
        if emit and total > csize:
            emit(f"{tag}:progress", entity=op.entity, done=done, total=total)

    if emit:
        emit(f"{tag}:done", entity=op.entity, attempted=total, **report.counts())
    return report
