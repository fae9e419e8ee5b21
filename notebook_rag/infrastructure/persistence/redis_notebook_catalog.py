"""Notebook catalog read from Redis.

Keys:
- ``notebook:{id}``          hash: owner_id, title, published
- ``notebook:{id}:sources``  hash: source id -> JSON {title, status, kind, error_message, mime}
- ``source:{id}:code``       full code of an executable source
"""

from __future__ import annotations

import json
from typing import Any

from notebook_rag.application.ports.notebook_port import NotebookAccess, NotebookCatalogPort
from notebook_rag.domain.errors import PersistenceError
from notebook_rag.domain.models import SourceInfo, SourceKind, SourceStatus
from notebook_rag.infrastructure.persistence.redis_client import RedisConfig, connect

EXECUTABLE_MIMES = frozenset({"text/x-python", "text/x-script.python", "application/x-python"})


def notebook_key(notebook_id: str) -> str:
    return f"notebook:{notebook_id}"


def sources_key(notebook_id: str) -> str:
    return f"notebook:{notebook_id}:sources"


def code_key(source_id: str) -> str:
    return f"source:{source_id}:code"


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


def _kind(record: dict[str, Any], title: str) -> SourceKind:
    try:
        return SourceKind(record.get("kind") or "")
    except ValueError:
        pass
    if record.get("mime") in EXECUTABLE_MIMES or title.lower().endswith(".py"):
        return SourceKind.EXECUTABLE
    return SourceKind.DOCUMENT


def source_from_json(source_id: str, raw: str) -> SourceInfo:
    record = json.loads(raw)
    title = str(record.get("title") or source_id)
    try:
        status = SourceStatus(str(record.get("status", "PENDING")).upper())
    except ValueError:
        status = SourceStatus.PENDING
    return SourceInfo(
        id=source_id,
        title=title,
        status=status,
        kind=_kind(record, title),
        error_message=record.get("error_message") or None,
    )


class RedisNotebookCatalog(NotebookCatalogPort):
    def __init__(self, cfg: RedisConfig | None = None, client: Any | None = None) -> None:
        if client is not None:
            self._client = client
        else:
            try:
                self._client = connect(cfg or RedisConfig())
            except Exception as ex:  # noqa: BLE001
                raise PersistenceError(f"Redis init failed: {ex}") from ex

    def access(self, notebook_id: str, user_id: str | None) -> NotebookAccess:
        try:
            row = self._client.hgetall(notebook_key(notebook_id))
        except Exception as ex:  # noqa: BLE001
            raise PersistenceError(f"notebook lookup failed: {ex}") from ex
        if not row:
            return NotebookAccess(exists=False, can_view=False, user_id=user_id)
        owner = row.get("owner_id") or None
        can_view = (user_id is not None and owner == user_id) or _truthy(row.get("published"))
        return NotebookAccess(
            exists=True, can_view=can_view, user_id=user_id, title=row.get("title") or None
        )

    def list_sources(self, notebook_id: str) -> list[SourceInfo]:
        """Sources in creation order when recorded, otherwise by id."""
        try:
            rows = self._client.hgetall(sources_key(notebook_id))
        except Exception as ex:  # noqa: BLE001
            raise PersistenceError(f"source listing failed: {ex}") from ex
        sources: list[tuple[str, SourceInfo]] = []
        for source_id, raw in rows.items():
            try:
                created = str(json.loads(raw).get("created_at") or "")
                sources.append((created, source_from_json(source_id, raw)))
            except (ValueError, AttributeError):
                continue
        sources.sort(key=lambda pair: (pair[0], pair[1].id))
        return [s for _, s in sources]

    def load_script_code(self, source_id: str) -> str | None:
        try:
            return self._client.get(code_key(source_id))
        except Exception as ex:  # noqa: BLE001
            raise PersistenceError(f"script code lookup failed: {ex}") from ex
