"""Redis conversation store.

Keys: hash ``conversation:{id}`` (notebook_id, created_at) and list
``conversation:{id}:messages`` of JSON message records.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Sequence
from typing import Any

from notebook_rag.application.ports.clock_port import ClockPort
from notebook_rag.application.ports.conversation_port import ConversationStorePort
from notebook_rag.domain.errors import PersistenceError
from notebook_rag.domain.models import ChatTurn
from notebook_rag.infrastructure.persistence.redis_client import RedisConfig, connect, iso


def conversation_key(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


def messages_key(conversation_id: str) -> str:
    return f"conversation:{conversation_id}:messages"


class RedisConversationStore(ConversationStorePort):
    def __init__(
        self,
        clock: ClockPort,
        cfg: RedisConfig | None = None,
        client: Any | None = None,
        history_limit: int = 50,
    ) -> None:
        self._clock = clock
        self._history_limit = history_limit
        if client is not None:
            self._client = client
        else:
            try:
                self._client = connect(cfg or RedisConfig())
            except Exception as ex:  # noqa: BLE001
                raise PersistenceError(f"Redis init failed: {ex}") from ex

    def resolve(self, conversation_id: str | None, notebook_id: str) -> str:
        try:
            if conversation_id:
                owner = self._client.hget(conversation_key(conversation_id), "notebook_id")
                if owner == notebook_id:
                    return conversation_id
            new_id = f"conv_{uuid.uuid4()}"
            self._client.hset(
                conversation_key(new_id),
                mapping={"notebook_id": notebook_id, "created_at": iso(self._clock.now())},
            )
        except Exception as ex:  # noqa: BLE001
            raise PersistenceError(f"conversation resolve failed: {ex}") from ex
        return new_id

    def load_history(self, conversation_id: str) -> list[ChatTurn]:
        try:
            raw = self._client.lrange(messages_key(conversation_id), -self._history_limit, -1)
        except Exception as ex:  # noqa: BLE001
            raise PersistenceError(f"history load failed: {ex}") from ex
        turns = []
        for item in raw:
            try:
                record = json.loads(item)
            except ValueError:
                continue
            role = record.get("role")
            if role in ("user", "assistant"):
                turns.append(ChatTurn(role=role, content=str(record.get("content", ""))))
        return turns

    def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        citations: Sequence[dict[str, Any]] | None = None,
    ) -> str:
        message_id = f"msg_{uuid.uuid4()}"
        record: dict[str, Any] = {
            "id": message_id,
            "role": role,
            "content": content,
            "created_at": iso(self._clock.now()),
        }
        if citations:
            record["citations"] = list(citations)
        try:
            payload = json.dumps(record, ensure_ascii=False)
            self._client.rpush(messages_key(conversation_id), payload)
        except Exception as ex:  # noqa: BLE001
            raise PersistenceError(f"message append failed: {ex}") from ex
        return message_id
