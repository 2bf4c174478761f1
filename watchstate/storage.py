"""YAML-backed tree store for per-user watch data."""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]


class StorageError(Exception):
    """Reading or writing the store failed."""

    pass


def _split(path: str) -> List[str]:
    parts = [part for part in str(path).split("/") if part]
    if not parts:
        raise ValueError("Path cannot be empty")
    return parts


def _related(a: List[str], b: List[str]) -> bool:
    """True if one path is a prefix of the other."""
    shortest = min(len(a), len(b))
    return a[:shortest] == b[:shortest]


class TreeStore:
    """Hierarchical key-value store addressed by slash-separated paths.

    The whole tree lives in a single YAML document. ``set`` replaces the
    subtree at a path and flushes the file; a failed flush leaves the tree as
    it was before the call.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize store and load existing data."""
        if data_dir is None:
            data_dir = Path.cwd() / "data"
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.tree_path = self.data_dir / "tree.yaml"
        self._tree: Dict[str, Any] = self._load()
        self._listeners: List[Tuple[List[str], Listener]] = []

    def _load(self) -> Dict[str, Any]:
        if not self.tree_path.exists():
            return {}

        try:
            with open(self.tree_path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Cannot read {self.tree_path}: {e}")

        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        # Dump next to the file and swap it in; tree.yaml is never half written
        tmp_path = self.tree_path.with_suffix(self.tree_path.suffix + ".tmp")
        try:
            with open(tmp_path, "w") as f:
                yaml.safe_dump(
                    self._tree,
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                    indent=2,
                )
            os.replace(tmp_path, self.tree_path)
        except (OSError, yaml.YAMLError):
            tmp_path.unlink(missing_ok=True)
            raise

    def get(self, path: str, default: Any = None) -> Any:
        """Return a copy of the value at path, or default."""
        node: Any = self._tree
        for part in _split(path):
            if isinstance(node, dict) and part in node:
                node = node[part]
            elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
                node = node[int(part)]
            else:
                return default
        return copy.deepcopy(node)

    def set(self, path: str, value: Any) -> None:
        """Replace the subtree at path. None removes it."""
        parts = _split(path)
        previous = copy.deepcopy(self._tree)

        node = self._tree
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child

        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = copy.deepcopy(value)

        try:
            self._flush()
        except (OSError, yaml.YAMLError) as e:
            self._tree = previous
            raise StorageError(f"Cannot write {path}: {e}")

        logger.debug("Wrote %s", path)
        self._notify(parts, path)

    def subscribe(self, path: str, listener: Listener) -> Callable[[], None]:
        """Call listener(path, value) whenever this path or a related one changes.

        Returns a function that removes the listener.
        """
        entry = (_split(path), listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def _notify(self, parts: List[str], path: str) -> None:
        for watched_parts, listener in list(self._listeners):
            if not _related(watched_parts, parts):
                continue
            watched_path = "/".join(watched_parts)
            try:
                listener(watched_path, self.get(watched_path))
            except Exception:
                logger.exception("Listener for %s failed after write to %s", watched_path, path)
