from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any, Mapping

logger = logging.getLogger(__name__)

DESIRED_FACILITY_KEY = "desiredFacilityId"
DIRECTORY_KEY = "facilityDirectory"
DIRECTORY_TIMESTAMP_KEY = "facilityDirectoryTimestamp"


class JsonFileStore:
    """Persistent key-value store backed by one JSON object on disk.

    Every update rewrites the whole file through a temp file + os.replace,
    so a reader never observes a half-written value.
    """

    def __init__(self, path: str):
        self.path = path

    def _read_all(self) -> dict[str, Any]:
        if not os.path.exists(self.path):
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError:
            # Corrupted store shouldn't brick the tool; start fresh.
            logger.warning("Store %s is not valid JSON, ignoring its contents", self.path)
            return {}

        if not isinstance(raw, dict):
            return {}
        return raw

    def get(self, key: str, default: Any = None) -> Any:
        return self._read_all().get(key, default)

    def get_many(self, *keys: str) -> dict[str, Any]:
        data = self._read_all()
        return {k: data[k] for k in keys if k in data}

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: Mapping[str, Any]) -> None:
        data = self._read_all()
        data.update(values)

        folder = os.path.dirname(os.path.abspath(self.path))
        if folder and not os.path.exists(folder):
            os.makedirs(folder, exist_ok=True)

        # Atomic write
        with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp") as tf:
            json.dump(data, tf, ensure_ascii=False, indent=2)
            tmp_name = tf.name

        os.replace(tmp_name, self.path)
