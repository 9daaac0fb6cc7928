"""Local key-value storage for settings blobs."""

import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

import yaml

logger = logging.getLogger(__name__)

# Default store location
USER_STORE_DIR = Path.home() / ".promptmaster"
USER_STORE_FILE = USER_STORE_DIR / "store.yaml"


class KeyValueStore(Protocol):
    """Opaque string storage keyed by name."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    """Store that lives only as long as the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class YamlFileStore:
    """
    Store that keeps every key in a single YAML document on disk.

    The whole document is rewritten on each ``set`` so a reader never sees a
    partially updated value.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else USER_STORE_FILE

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Error loading store %s: %s", self.path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring malformed store %s", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        tmp_path.replace(self.path)
