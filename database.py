"""
Redis-backed storage for the per-user Pokémon box.

Each entry is one JSON string stored under ``{identity}:pokedex:{id}``; the
box listing is a scan over ``{identity}:pokedex:*``. There is no secondary
index and no transaction across list and bulk delete, last write wins.
"""

import json
import logging
import os
import re
import uuid
from typing import Any, Dict, List, Optional

import redis

from errors import NotFound
from schemas import (
    BoxEntry,
    InsertBoxEntry,
    UpdateBoxEntry,
    entry_to_dict,
    validate_payload,
)

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
BOX_COLLECTION = "pokedex"

_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")


def connect(url: Optional[str] = None) -> redis.Redis:
    client = redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
    client.ping()
    logger.info("Connected to Redis")
    return client


def disconnect(client: redis.Redis) -> None:
    client.close()
    logger.info("Redis connection closed")


class BoxStore:
    def __init__(self, client: redis.Redis, collection: str = BOX_COLLECTION):
        self.client = client
        self.collection = collection

    # -- key space ---------------------------------------------------------

    def _prefix(self, identity: str) -> str:
        return f"{identity}:{self.collection}:"

    def _key(self, identity: str, entry_id: str) -> str:
        if not entry_id or ":" in entry_id:
            # would address a key outside this identity's own namespace
            raise NotFound("Box entry not found")
        return self._prefix(identity) + entry_id

    def _keys(self, identity: str) -> List[str]:
        prefix = self._prefix(identity)
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        keys = []
        for key in self.client.scan_iter(match=pattern):
            # "a:pokedex:*" also matches keys of identity "a:pokedex:x"
            if ":" not in key[len(prefix):]:
                keys.append(key)
        return keys

    # -- operations --------------------------------------------------------

    def list_ids(self, identity: str) -> List[str]:
        prefix_len = len(self._prefix(identity))
        return [key[prefix_len:] for key in self._keys(identity)]

    def create(self, identity: str, payload: Any) -> Dict[str, Any]:
        data = validate_payload(InsertBoxEntry, payload)
        entry_id = uuid.uuid4().hex
        entry = {"id": entry_id, **entry_to_dict(data)}
        self.client.set(self._key(identity, entry_id), json.dumps(entry))
        logger.debug("Created box entry %s for %s", entry_id, identity)
        return entry

    def get(self, identity: str, entry_id: str) -> Dict[str, Any]:
        raw = self.client.get(self._key(identity, entry_id))
        if raw is None:
            raise NotFound("Box entry not found")
        return json.loads(raw)

    def update(self, identity: str, entry_id: str, payload: Any) -> Dict[str, Any]:
        key = self._key(identity, entry_id)
        existing = self.get(identity, entry_id)
        changes = validate_payload(UpdateBoxEntry, payload)
        merged = {**existing, **entry_to_dict(changes)}
        validate_payload(BoxEntry, merged)
        self.client.set(key, json.dumps(merged))
        return merged

    def delete(self, identity: str, entry_id: str) -> None:
        key = self._key(identity, entry_id)
        if not self.client.exists(key):
            raise NotFound("Box entry not found")
        self.client.delete(key)

    def clear(self, identity: str) -> None:
        keys = self._keys(identity)
        if keys:
            self.client.delete(*keys)
        logger.debug("Cleared %d box entries for %s", len(keys), identity)
