"""Skill state side table in Redis.

One hash per conversation (``skill_state:{conversation}``) holding the typed
record. Writes are optimistic: WATCH the key, compare the stored version
with the one the state was loaded at, then MULTI/EXEC the new record with
``version + 1``.
"""

from __future__ import annotations

import json
from typing import Any

from notebook_rag.application.ports.skill_state_port import SkillStateStorePort
from notebook_rag.domain.errors import PersistenceError
from notebook_rag.domain.models import SkillState
from notebook_rag.infrastructure.persistence.redis_client import RedisConfig, connect

STATE_TTL_S = 30 * 24 * 3600


def state_key(conversation_id: str) -> str:
    return f"skill_state:{conversation_id}"


def state_from_hash(data: dict[str, str]) -> SkillState:
    if not data:
        return SkillState()
    try:
        selections = json.loads(data.get("selections") or "{}")
    except ValueError:
        selections = {}
    return SkillState(
        active=data.get("active") == "1",
        skill_name=data.get("skill_name") or None,
        selections={str(k): str(v) for k, v in dict(selections).items()},
        version=int(data.get("version") or 0),
    )


def state_to_hash(state: SkillState) -> dict[str, str]:
    return {
        "active": "1" if state.active else "0",
        "skill_name": state.skill_name or "",
        "selections": json.dumps(dict(state.selections), ensure_ascii=False),
        "version": str(state.version),
    }


class RedisSkillStateStore(SkillStateStorePort):
    def __init__(self, cfg: RedisConfig | None = None, client: Any | None = None) -> None:
        if client is not None:
            self._client = client
        else:
            try:
                self._client = connect(cfg or RedisConfig())
            except Exception as ex:  # noqa: BLE001
                raise PersistenceError(f"Redis init failed: {ex}") from ex

    def load(self, conversation_id: str) -> SkillState:
        try:
            return state_from_hash(self._client.hgetall(state_key(conversation_id)))
        except Exception as ex:  # noqa: BLE001
            raise PersistenceError(f"skill state load failed: {ex}") from ex

    def save(self, conversation_id: str, state: SkillState) -> SkillState:
        key = state_key(conversation_id)
        try:
            with self._client.pipeline() as pipe:
                pipe.watch(key)
                current = int(pipe.hget(key, "version") or 0)
                if current != state.version:
                    pipe.unwatch()
                    raise PersistenceError(
                        f"skill state version conflict: stored {current}, got {state.version}"
                    )
                saved = SkillState(
                    active=state.active,
                    skill_name=state.skill_name,
                    selections=dict(state.selections),
                    version=current + 1,
                )
                pipe.multi()
                pipe.hset(key, mapping=state_to_hash(saved))
                pipe.expire(key, STATE_TTL_S)
                pipe.execute()
        except PersistenceError:
            raise
        except Exception as ex:  # noqa: BLE001
            # includes redis WatchError when another writer got in between
            raise PersistenceError(f"skill state save failed: {ex}") from ex
        return saved
