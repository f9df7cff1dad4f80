"""
Base class shared by the resource-file format adapters.

A concrete adapter only has to turn bytes into a ``ResourceDocument`` and back.
Key listing, statistics, synchronization, new-file creation and ledger content
are implemented once here against the document model.
"""
import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from lokit.change_ledger import kv_entry_content
from lokit.errors import ResourceIOError, ResourceParseError
from lokit.resource_model import ResourceDocument, UnitKind
from lokit.synchronizer import new_translation_file, sync_keys

logger = logging.getLogger(__name__)

Translation = Union[str, List[str], Dict[str, str]]


class NonTranslatablePolicy(Enum):
    """What ``marshal_target`` does with units marked non-translatable."""

    OMIT = "omit"
    COPY = "copy"


class FormatAdapter(ABC):
    """Common base class for resource format adapters."""

    type_name: str = ""
    extensions: Tuple[str, ...] = ()
    non_translatable_policy = NonTranslatablePolicy.COPY
    # Key-value formats hash "key\x00value" so renaming a key re-translates it.
    key_value_fingerprint = True

    @abstractmethod
    def parse(self, data: bytes) -> ResourceDocument:
        """Parse raw file content. Raises ResourceParseError on malformed input."""

    @abstractmethod
    def marshal(self, document: ResourceDocument) -> bytes:
        """Serialize the source variant, non-translatable units included."""

    def marshal_target(self, document: ResourceDocument) -> bytes:
        """Serialize a per-language file, applying the non-translatable policy."""
        if self.non_translatable_policy == NonTranslatablePolicy.OMIT:
            document = document.copy()
            document.remove_units([unit.key for unit in document.units() if not unit.translatable])
        return self.marshal(document)

    def rewrite_metadata(self, document: ResourceDocument, language: str) -> None:
        """Adjust document-level metadata for a new target language."""

    # --- File I/O ---

    def parse_file(self, file_path: str) -> ResourceDocument:
        """
        Read and parse a resource file.

        Raises:
            ResourceIOError: If the file cannot be read.
            ResourceParseError: If the content is malformed, naming the path.
        """
        try:
            with open(file_path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise ResourceIOError(f"reading {file_path}: {e}") from e
        try:
            return self.parse(data)
        except ResourceParseError as e:
            if e.path:
                raise
            raise ResourceParseError(str(e), file_path) from e

    def write_file(self, document: ResourceDocument, file_path: str, target: bool = True) -> None:
        """Serialize ``document`` and write it, creating parent directories."""
        data = self.marshal_target(document) if target else self.marshal(document)
        try:
            target_dir = os.path.dirname(file_path)
            if target_dir:
                os.makedirs(target_dir, exist_ok=True)
            with open(file_path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise ResourceIOError(f"writing {file_path}: {e}") from e
        logger.debug(f"Wrote {self.type_name} file '{file_path}'.")

    # --- Document operations ---

    def keys(self, document: ResourceDocument) -> List[str]:
        return document.keys()

    def untranslated_keys(self, document: ResourceDocument) -> List[str]:
        return document.untranslated_keys()

    def get(self, document: ResourceDocument, key: str) -> Optional[str]:
        return document.get(key)

    def set(self, document: ResourceDocument, key: str, value: str) -> bool:
        return document.set(key, value)

    def stats(self, document: ResourceDocument) -> Tuple[int, int, int]:
        return document.stats()

    def new_translation_file(self, source: ResourceDocument,
                             language: Optional[str] = None) -> ResourceDocument:
        return new_translation_file(source, language, self.rewrite_metadata)

    def sync_keys(self, source: ResourceDocument, target: ResourceDocument) -> int:
        return sync_keys(source, target)

    def apply(self, document: ResourceDocument, key: str, translation: Translation) -> bool:
        """
        Store a translation of any unit kind.

        Args:
            document: The target document.
            key: The unit key.
            translation: A string for scalar and structured units, a list for
                ordered lists or a quantity mapping for quantity sets.

        Returns:
            bool: False if the key is missing or the shape does not match.
        """
        unit = document.unit(key)
        if unit is None:
            return False
        if unit.kind == UnitKind.ORDERED_LIST:
            return isinstance(translation, list) and document.set_items(key, translation)
        if unit.kind == UnitKind.QUANTITY_SET:
            return isinstance(translation, dict) and document.set_plurals(key, translation)
        return isinstance(translation, str) and document.set(key, translation)

    def ledger_entries(self, document: ResourceDocument) -> Dict[str, str]:
        """Map each translatable key to the content its fingerprint is computed from."""
        if self.key_value_fingerprint:
            return {unit.key: kv_entry_content(unit.key, unit.content())
                    for unit in document.translatable_units()}
        return document.source_values()
