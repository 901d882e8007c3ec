"""
Collection storage module.

Key-value persistence of whole collections as JSON files. Every save
replaces the collection atomically: readers see either the previous or
the new collection, never a partial write.
"""

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from .logging_config import get_logger

logger = get_logger(__name__)


class JsonFileStore:
    """
    Stores each collection as <data_dir>/<key>.json.

    Load and save errors propagate to the caller.
    """

    def __init__(self, data_dir: str):
        """
        Initialize store.

        Args:
            data_dir: Directory for collection files (created if missing)
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        if not key or '/' in key or key.startswith('.'):
            raise ValueError(f'Invalid collection key: {key!r}')
        return self.data_dir / f'{key}.json'

    def load(self, key: str, default: Any = None) -> Any:
        """
        Load a collection.

        Args:
            key: Collection name
            default: Returned when the collection has never been saved

        Returns:
            Decoded JSON value
        """
        path = self._path(key)
        with self._lock:
            if not path.exists():
                logger.debug(f'Collection {key} not found, using default')
                return default
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)

    def save(self, key: str, value: Any) -> None:
        """
        Replace a collection.

        Args:
            key: Collection name
            value: JSON-serializable value
        """
        path = self._path(key)
        payload = json.dumps(value, ensure_ascii=False, indent=2)

        with self._lock:
            fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f'.{key}.', suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise

        logger.debug(f'Collection {key} saved')
