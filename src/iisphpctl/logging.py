"""Structured operation logging for iisphpctl.

Every CLI command runs inside :meth:`StructuredLogger.operation`, which appends
a single JSON document per operation to ``operations.jsonl`` under the
configured logs directory. Convergence steps are recorded inside the same
document through :meth:`OperationScope.step`.

The logger never raises because of its own I/O: when the directory cannot be
created, or a write fails, it disables itself and the command carries on.
"""
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG = "operations.jsonl"


def _timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sanitize(value: object) -> object:
    """Return a JSON-safe representation of *value*."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [_sanitize(item) for item in value]
    return str(value)


@dataclass(slots=True)
class OperationScope:
    """Mutable record for a single logged operation."""

    logger: StructuredLogger
    name: str
    op_id: str
    args: dict[str, object]
    target: dict[str, object]
    started_at: str
    steps: list[dict[str, object]] = field(default_factory=list)
    result: dict[str, object] | None = None
    _started: float = field(default_factory=time.monotonic)

    def step(
        self,
        name: str,
        *,
        changed: bool,
        detail: str = "",
        warnings: Sequence[str] | None = None,
    ) -> None:
        """Record a completed sub-step of the operation."""
        self.steps.append(
            {
                "name": name,
                "changed": changed,
                "detail": detail,
                "warnings": list(warnings or []),
                "at": _timestamp(),
            }
        )

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            rc=0,
            context=context,
        )

    def warning(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        rc: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            rc=rc,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            changed=changed,
            errors=list(errors) if errors else [message],
            rc=rc,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        rc: int,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        self.result = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": list(warnings or []),
            "errors": list(errors or []),
            "rc": rc,
            "context": _sanitize(context or {}),
        }

    def to_record(self) -> dict[str, object]:
        """Return the JSON document written for this operation."""
        duration_ms = int((time.monotonic() - self._started) * 1000)
        return {
            "op_id": self.op_id,
            "name": self.name,
            "started_at": self.started_at,
            "finished_at": _timestamp(),
            "duration_ms": duration_ms,
            "pid": os.getpid(),
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "steps": self.steps,
            "result": self.result,
        }


class StructuredLogger:
    """Append-only JSONL logger for CLI operations."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare *logs_dir*, disabling the logger if it is unusable."""
        self.logs_dir = Path(logs_dir)
        self._operations_log_path = self.logs_dir / OPERATIONS_LOG
        self._enabled = True
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Operation log disabled; cannot create %s: %s", self.logs_dir, exc)
            self._enabled = False

    @property
    def operations_log_path(self) -> Path:
        """Return the path of the JSONL operations log."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        name: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Record an operation, yielding a scope for results and steps."""
        scope = OperationScope(
            logger=self,
            name=name,
            op_id=uuid.uuid4().hex,
            args=dict(args or {}),
            target=dict(target or {}),
            started_at=_timestamp(),
        )
        try:
            yield scope
        except Exception as exc:
            if scope.result is None:
                scope.error(f"Unhandled error: {exc}", errors=[str(exc)], rc=1)
            raise
        finally:
            if scope.result is None:
                scope.success("Completed.")
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        line = json.dumps(record, sort_keys=True)
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            LOGGER.warning("Operation log disabled after write failure: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
