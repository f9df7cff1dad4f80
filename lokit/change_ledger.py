"""
Persistent ledger of source-content fingerprints (``lokit.lock``).

The ledger maps ``target -> unit key -> md5 hex digest`` of the source content
a unit was last translated from. Only units whose current fingerprint differs
from the recorded one need to be sent for translation again.

Example file::

    version: 1
    checksums:
      po/ru.po:
        Hello: 8b1a9953c4611296a827abf8c47804d7
"""
import hashlib
import logging
import os
import tempfile
import threading
from pathlib import PurePath
from typing import Dict, Iterable, List, Optional, Tuple

import jsonschema
import yaml

from lokit.errors import LedgerFormatError, LedgerIOError

logger = logging.getLogger(__name__)

LEDGER_FILE_NAME = "lokit.lock"
LEDGER_VERSION = 1

LEDGER_SCHEMA = {
    "type": "object",
    "properties": {
        "version": {"type": "integer", "minimum": 1},
        "checksums": {
            "type": ["object", "null"],
            "additionalProperties": {
                "type": ["object", "null"],
                "additionalProperties": {"type": "string", "pattern": "^[0-9a-f]{32}$"},
            },
        },
    },
    "required": ["version"],
}


def compute_hash(content: str) -> str:
    """Return the md5 hex digest of ``content``."""
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def target_key(file_path: str) -> str:
    """Normalize a target file path into a ledger target identifier."""
    return PurePath(file_path).as_posix().replace("\\", "/")


def po_entry_key(msgid: str, msgctxt: Optional[str] = None) -> str:
    """Ledger key of a PO entry: ``msgctxt|msgid``, or ``msgid`` without context."""
    if msgctxt:
        return f"{msgctxt}|{msgid}"
    return msgid


def po_entry_content(msgid: str, msgid_plural: Optional[str] = None) -> str:
    """Fingerprint content of a PO entry; covers the plural msgid when present."""
    if msgid_plural:
        return f"{msgid}\x00{msgid_plural}"
    return msgid


def kv_entry_content(key: str, value: str) -> str:
    # The key is part of the content so that renaming a key re-translates it.
    return f"{key}\x00{value}"


class ChangeLedger:
    """
    Fingerprint store deciding which units need re-translation.

    A single lock guards every read, write and stat, so one ledger may be
    shared across worker threads. Callers must not hold it across an ``await``;
    no method here awaits.
    """

    def __init__(self, path: str, checksums: Optional[Dict[str, Dict[str, str]]] = None,
                 version: int = LEDGER_VERSION):
        self._path = path
        self.version = version
        self._checksums: Dict[str, Dict[str, str]] = checksums or {}
        self._lock = threading.Lock()

    # --- Persistence ---

    @classmethod
    def load(cls, directory: str) -> "ChangeLedger":
        """
        Load ``lokit.lock`` from ``directory``.

        Args:
            directory: The directory holding the ledger file.

        Returns:
            ChangeLedger: The loaded ledger, or an empty one if no file exists.

        Raises:
            LedgerFormatError: If the file is not valid YAML or not a ledger.
            LedgerIOError: If the file exists but cannot be read.
        """
        path = os.path.join(directory, LEDGER_FILE_NAME)
        if not os.path.exists(path):
            logger.debug(f"No ledger at '{path}', starting with an empty one.")
            return cls(path)

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise LedgerFormatError(f"parsing {path}: {e}") from e
        except (IOError, OSError) as e:
            raise LedgerIOError(f"reading {path}: {e}") from e

        if data is None:
            return cls(path)

        try:
            jsonschema.validate(instance=data, schema=LEDGER_SCHEMA)
        except jsonschema.ValidationError as e:
            raise LedgerFormatError(f"parsing {path}: {e.message}") from e

        if data["version"] > LEDGER_VERSION:
            raise LedgerFormatError(
                f"parsing {path}: unsupported ledger version {data['version']} "
                f"(expected at most {LEDGER_VERSION})"
            )

        checksums = {
            str(target): {str(key): digest for key, digest in (keys or {}).items()}
            for target, keys in (data.get("checksums") or {}).items()
        }
        return cls(path, checksums, data["version"])

    def save(self) -> None:
        """
        Write the whole ledger to disk atomically.

        Raises:
            LedgerIOError: If the file cannot be written.
        """
        with self._lock:
            payload = {
                "version": self.version,
                "checksums": {target: dict(keys) for target, keys in self._checksums.items()},
            }
            directory = os.path.dirname(self._path) or "."
            temp_path = None
            try:
                os.makedirs(directory, exist_ok=True)
                with tempfile.NamedTemporaryFile(mode="w", delete=False, dir=directory,
                                                 prefix=".lokit-", suffix=".lock.tmp",
                                                 encoding="utf-8") as temp_f:
                    temp_path = temp_f.name
                    yaml.safe_dump(payload, temp_f, allow_unicode=True, sort_keys=True)
                os.replace(temp_path, self._path)
                temp_path = None
            except (IOError, OSError) as e:
                raise LedgerIOError(f"writing {self._path}: {e}") from e
            finally:
                if temp_path and os.path.exists(temp_path):
                    os.remove(temp_path)
        logger.debug(f"Saved ledger to '{self._path}'.")

    @property
    def path(self) -> str:
        return self._path

    # --- Checksums ---

    def is_changed(self, target: str, key: str, content: str) -> bool:
        """True if ``key`` is new for ``target`` or its content changed."""
        with self._lock:
            recorded = self._checksums.get(target, {}).get(key)
        return recorded != compute_hash(content)

    def filter_changed(self, target: str, entries: Dict[str, str]) -> Dict[str, str]:
        """
        Keep only the entries whose content differs from the recorded fingerprint.

        Args:
            target: The ledger target identifier.
            entries: Mapping of unit key to fingerprint content.

        Returns:
            Dict[str, str]: The changed subset of ``entries``.
        """
        with self._lock:
            recorded = dict(self._checksums.get(target, {}))
        return {
            key: content for key, content in entries.items()
            if recorded.get(key) != compute_hash(content)
        }

    def update(self, target: str, key: str, content: str) -> None:
        """Record the fingerprint of ``content`` after a successful translation."""
        with self._lock:
            self._checksums.setdefault(target, {})[key] = compute_hash(content)

    def update_batch(self, target: str, entries: Dict[str, str]) -> None:
        with self._lock:
            keys = self._checksums.setdefault(target, {})
            for key, content in entries.items():
                keys[key] = compute_hash(content)

    def clean(self, target: str, live_keys: Iterable[str]) -> int:
        """
        Drop recorded keys of ``target`` that are not in ``live_keys``.

        Returns:
            int: The number of entries removed.
        """
        live = set(live_keys)
        with self._lock:
            keys = self._checksums.get(target)
            if not keys:
                return 0
            dead = [key for key in keys if key not in live]
            for key in dead:
                del keys[key]
        if dead:
            logger.debug(f"Cleaned {len(dead)} stale ledger entries for '{target}'.")
        return len(dead)

    def remove_target(self, target: str) -> None:
        with self._lock:
            self._checksums.pop(target, None)

    # --- Stats ---

    def stats(self) -> Tuple[int, int]:
        """Return (number of targets, total number of keys)."""
        with self._lock:
            return len(self._checksums), sum(len(keys) for keys in self._checksums.values())

    def targets(self) -> List[str]:
        with self._lock:
            return sorted(self._checksums)

    def summary(self) -> str:
        """Human-readable one-line summary of the ledger contents."""
        with self._lock:
            if not self._checksums:
                return "empty"
            total = sum(len(keys) for keys in self._checksums.values())
            parts = [f"{target}: {len(self._checksums[target])} keys" for target in sorted(self._checksums)]
            return f"{len(self._checksums)} targets, {total} keys ({', '.join(parts)})"
