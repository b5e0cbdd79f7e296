"""
Draft Store

Client-side persistence for application drafts and queued writes, kept in
one JSON file.

Every key lives under the ``admissions:`` namespace and is recorded in a
registry entry. Clearing a user's drafts removes exactly the registered
keys of that user; nothing is matched by substring, so unrelated data in
the same file is never touched.
"""

import json
import logging
import os
import threading
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "admissions:"
REGISTRY_KEY = f"{NAMESPACE}__registry__"


class DraftStore:
    """
    Namespaced key/value store backed by a JSON file.

    Args:
        path: File to persist to. None keeps everything in memory.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else None
        self._lock = threading.RLock()
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read draft store {self.path}, starting empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path: Path | None = None
        try:
            with NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                prefix=f".{self.path.name}-",
                suffix=".tmp",
                dir=self.path.parent,
                delete=False,
            ) as handle:
                tmp_path = Path(handle.name)
                json.dump(self._data, handle, default=str)
            os.replace(tmp_path, self.path)
        finally:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink(missing_ok=True)

    @staticmethod
    def make_key(user_id: str, name: str) -> str:
        if not user_id or not name:
            raise ValueError("user_id and name are required")
        return f"{NAMESPACE}{user_id}:{name}"

    def _registry(self) -> dict[str, list[str]]:
        return self._data.setdefault(REGISTRY_KEY, {})

    def set(self, user_id: str, name: str, value: Any) -> str:
        key = self.make_key(user_id, name)
        with self._lock:
            self._data[key] = value
            registered = self._registry().setdefault(str(user_id), [])
            if key not in registered:
                registered.append(key)
            self._save()
        return key

    def get(self, user_id: str, name: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(self.make_key(user_id, name), default)

    def delete(self, user_id: str, name: str) -> bool:
        key = self.make_key(user_id, name)
        with self._lock:
            existed = self._data.pop(key, None) is not None
            registered = self._registry().get(str(user_id), [])
            if key in registered:
                registered.remove(key)
            self._save()
        return existed

    def keys_for(self, user_id: str) -> list[str]:
        with self._lock:
            return list(self._registry().get(str(user_id), []))

    def has_drafts(self, user_id: str) -> bool:
        return bool(self.keys_for(user_id))

    def clear_drafts(self, user_id: str) -> int:
        """Remove every registered key of ``user_id``. Returns how many were removed."""
        with self._lock:
            keys = self._registry().pop(str(user_id), [])
            for key in keys:
                self._data.pop(key, None)
            self._save()
        logger.info(f"Cleared {len(keys)} draft entries for user {user_id}")
        return len(keys)
