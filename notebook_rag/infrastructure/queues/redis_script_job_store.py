"""Redis-backed script job store.

Why: The sandbox worker runs out of process; jobs are persisted as hashes
     and handed over through a stream. The worker reports completion by
     updating the hash and pushing to a per-job notification list, so the
     answering turn can block on BLPOP instead of sleeping between polls.

Keys:
- ``script_job:{id}``                  hash with the job record
- ``script_jobs:pending``              stream consumed by the worker
- ``script_jobs:succeeded:{notebook}`` zset of succeeded job ids by finish time
- ``script_jobs:notify:{id}``          list pushed once when the job finishes
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from notebook_rag.application.ports.script_job_port import (
    JobNotificationPort,
    ScriptJobStorePort,
)
from notebook_rag.domain.errors import InputError, JobStoreUnavailable
from notebook_rag.domain.models import JobStatus, ScriptJob
from notebook_rag.infrastructure.persistence.redis_client import RedisConfig, connect, iso

PENDING_STREAM = "script_jobs:pending"
MAX_CODE_CHARS = 30_000
NOTIFY_TTL_S = 3600


def job_key(job_id: str) -> str:
    return f"script_job:{job_id}"


def succeeded_key(notebook_id: str) -> str:
    return f"script_jobs:succeeded:{notebook_id}"


def notify_key(job_id: str) -> str:
    return f"script_jobs:notify:{job_id}"


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _parse_time(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def _loads(raw: str | None) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def job_to_hash(job: ScriptJob) -> dict[str, str]:
    return {
        "id": job.id,
        "notebook_id": job.notebook_id,
        "user_id": job.user_id or "",
        "code": job.code,
        "input": json.dumps(dict(job.input), ensure_ascii=False, default=str),
        "status": job.status.value,
        "output": "" if job.output is None else json.dumps(job.output, ensure_ascii=False),
        "timeout_ms": str(_clamp(job.timeout_ms, 1000, 60_000)),
        "memory_limit_mb": str(_clamp(job.memory_limit_mb, 64, 1024)),
        "label": job.label,
        "error_message": job.error_message or "",
        "created_at": iso(job.created_at),
        "finished_at": iso(job.finished_at),
    }


def job_from_hash(data: dict[str, str]) -> ScriptJob:
    try:
        status = JobStatus(data.get("status", "PENDING"))
    except ValueError:
        status = JobStatus.PENDING
    return ScriptJob(
        id=data["id"],
        notebook_id=data.get("notebook_id", ""),
        code=data.get("code", ""),
        input=_loads(data.get("input")) or {},
        status=status,
        output=_loads(data.get("output")),
        timeout_ms=int(data.get("timeout_ms") or 10_000),
        memory_limit_mb=int(data.get("memory_limit_mb") or 256),
        label=data.get("label", ""),
        user_id=data.get("user_id") or None,
        error_message=data.get("error_message") or None,
        created_at=_parse_time(data.get("created_at")),
        finished_at=_parse_time(data.get("finished_at")),
    )


class RedisScriptJobStore(ScriptJobStorePort, JobNotificationPort):
    """Job persistence + hand-off to the sandbox worker."""

    def __init__(
        self,
        cfg: RedisConfig | None = None,
        client: Any | None = None,
        stream_maxlen: int = 100_000,
    ) -> None:
        self._cfg = cfg or RedisConfig()
        self._stream_maxlen = stream_maxlen
        if client is not None:
            self._client = client
        else:
            try:
                self._client = connect(self._cfg)
            except Exception as ex:  # noqa: BLE001
                raise JobStoreUnavailable(f"Redis init failed: {ex}") from ex

    def enqueue(self, job: ScriptJob) -> str:
        if len(job.code) > MAX_CODE_CHARS:
            raise InputError(f"Script code exceeds {MAX_CODE_CHARS} characters")
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.hset(job_key(job.id), mapping=job_to_hash(job))
            pipe.xadd(
                PENDING_STREAM,
                {"job_id": job.id, "notebook_id": job.notebook_id},
                maxlen=self._stream_maxlen,
                approximate=True,
            )
            pipe.execute()
        except Exception as ex:  # noqa: BLE001
            raise JobStoreUnavailable(f"enqueue failed: {ex}") from ex
        return job.id

    def poll(self, job_ids: Sequence[str]) -> list[ScriptJob]:
        """Known jobs only; a hash that is not there yet counts as still pending."""
        if not job_ids:
            return []
        try:
            pipe = self._client.pipeline(transaction=False)
            for job_id in job_ids:
                pipe.hgetall(job_key(job_id))
            rows = pipe.execute()
        except Exception as ex:  # noqa: BLE001
            raise JobStoreUnavailable(f"poll failed: {ex}") from ex
        return [job_from_hash(row) for row in rows if row]

    def recent_succeeded(self, notebook_id: str, limit: int) -> list[ScriptJob]:
        if limit <= 0:
            return []
        try:
            job_ids = self._client.zrevrange(succeeded_key(notebook_id), 0, limit - 1)
            jobs = self.poll(list(job_ids))
        except JobStoreUnavailable:
            raise
        except Exception as ex:  # noqa: BLE001
            raise JobStoreUnavailable(f"recent_succeeded failed: {ex}") from ex
        return [j for j in jobs if j.status is JobStatus.SUCCEEDED]

    def wait_for_update(self, job_ids: Sequence[str], timeout_s: float) -> bool:
        if not job_ids or timeout_s <= 0:
            return False
        try:
            # BLPOP timeout 0 blocks forever; keep it strictly positive
            popped = self._client.blpop(
                [notify_key(i) for i in job_ids], timeout=max(timeout_s, 0.01)
            )
        except Exception as ex:  # noqa: BLE001
            raise JobStoreUnavailable(f"wait failed: {ex}") from ex
        return popped is not None

    def complete(
        self,
        job_id: str,
        status: JobStatus,
        output: Any = None,
        error_message: str | None = None,
        finished_at: datetime | None = None,
    ) -> None:
        """Worker-side completion: store the result, index successes, notify waiters."""
        finished = finished_at or datetime.now(UTC)
        try:
            notebook_id = self._client.hget(job_key(job_id), "notebook_id")
            pipe = self._client.pipeline(transaction=True)
            pipe.hset(
                job_key(job_id),
                mapping={
                    "status": status.value,
                    "output": "" if output is None else json.dumps(output, ensure_ascii=False),
                    "error_message": error_message or "",
                    "finished_at": iso(finished),
                },
            )
            if status is JobStatus.SUCCEEDED and notebook_id:
                pipe.zadd(succeeded_key(notebook_id), {job_id: finished.timestamp()})
            pipe.rpush(notify_key(job_id), status.value)
            pipe.expire(notify_key(job_id), NOTIFY_TTL_S)
            pipe.execute()
        except Exception as ex:  # noqa: BLE001
            raise JobStoreUnavailable(f"complete failed: {ex}") from ex
