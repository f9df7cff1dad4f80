"""
Common in-memory model for parsed translation resources.

Every format adapter turns its file into a ``ResourceDocument``: an ordered
list of ``TranslationUnit`` objects (the things that get translated) and
``StructuralElement`` objects (comments, blank lines and other verbatim
content), plus a free-form ``metadata`` mapping for document-level data such
as the Rails root locale key.

The model only knows about keys, kinds and values. Anything an adapter needs
to serialize a unit faithfully (CDATA markers, original separators, scalar
types) lives in ``TranslationUnit.hints`` and is never interpreted here.
"""
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union


class UnitKind(Enum):
    """Shape of a translation unit."""

    SCALAR = "scalar"
    ORDERED_LIST = "ordered_list"
    QUANTITY_SET = "quantity_set"
    STRUCTURED_BLOCK = "structured_block"


@dataclass
class TranslationUnit:
    """A single translatable item of a resource document."""

    key: str
    kind: UnitKind = UnitKind.SCALAR
    value: str = ""
    items: List[str] = field(default_factory=list)
    # Insertion order of ``plurals`` is the display order of the quantities.
    plurals: Dict[str, str] = field(default_factory=dict)
    translatable: bool = True
    hints: Dict[str, Any] = field(default_factory=dict)

    def is_translated(self) -> bool:
        """
        Check whether the unit carries a complete translation.

        Lists and quantity sets count as translated only when they have at
        least one member and no member is blank.
        """
        if self.kind == UnitKind.ORDERED_LIST:
            return bool(self.items) and all(item.strip() for item in self.items)
        if self.kind == UnitKind.QUANTITY_SET:
            return bool(self.plurals) and all(form.strip() for form in self.plurals.values())
        return bool(self.value.strip())

    def cleared(self) -> "TranslationUnit":
        """Return a copy with the same kind and shape but empty values."""
        return TranslationUnit(
            key=self.key,
            kind=self.kind,
            value="",
            items=["" for _ in self.items],
            plurals={quantity: "" for quantity in self.plurals},
            translatable=self.translatable,
            hints=copy.deepcopy(self.hints),
        )

    def copy(self) -> "TranslationUnit":
        return copy.deepcopy(self)

    def content(self) -> str:
        """Flatten the unit's value(s) into a single string for hashing."""
        if self.kind == UnitKind.ORDERED_LIST:
            return "\x00".join(self.items)
        if self.kind == UnitKind.QUANTITY_SET:
            return "\x00".join(f"{quantity}={form}" for quantity, form in self.plurals.items())
        return self.value


@dataclass
class StructuralElement:
    """Non-translatable document content kept in source order."""

    kind: str
    text: str = ""
    hints: Dict[str, Any] = field(default_factory=dict)


Element = Union[TranslationUnit, StructuralElement]


class ResourceDocument:
    """
    Ordered collection of translation units and structural elements.

    Unit keys are unique within a document. Iteration follows document order,
    which is the order in which elements were first added.
    """

    def __init__(self, elements: Optional[List[Element]] = None,
                 metadata: Optional[Dict[str, Any]] = None):
        self.elements: List[Element] = []
        self._units: Dict[str, TranslationUnit] = {}
        self.metadata: Dict[str, Any] = dict(metadata or {})
        for element in elements or []:
            self.append(element)

    # --- Structure ---

    def append(self, element: Element) -> None:
        """Append a unit or structural element at the end of the document."""
        if isinstance(element, TranslationUnit):
            if element.key in self._units:
                raise ValueError(f"Duplicate unit key '{element.key}'")
            self._units[element.key] = element
        self.elements.append(element)

    def add_unit(self, unit: TranslationUnit) -> None:
        self.append(unit)

    def remove_unit(self, key: str) -> bool:
        """Remove the unit with ``key``. Returns False if it does not exist."""
        return self.remove_units({key}) == 1

    def remove_units(self, keys: Iterable[str]) -> int:
        """Remove every unit whose key is in ``keys`` in a single pass."""
        doomed = set(keys) & self._units.keys()
        if not doomed:
            return 0
        self.elements = [
            element for element in self.elements
            if not (isinstance(element, TranslationUnit) and element.key in doomed)
        ]
        for key in doomed:
            del self._units[key]
        return len(doomed)

    def replace_unit(self, unit: TranslationUnit) -> bool:
        """Replace the unit sharing ``unit.key`` in place, keeping its position."""
        current = self._units.get(unit.key)
        if current is None:
            return False
        for i, element in enumerate(self.elements):
            if element is current:
                self.elements[i] = unit
                break
        self._units[unit.key] = unit
        return True

    def copy(self) -> "ResourceDocument":
        return ResourceDocument(copy.deepcopy(self.elements), copy.deepcopy(self.metadata))

    # --- Lookup ---

    def units(self) -> Iterator[TranslationUnit]:
        """All units, translatable or not, in document order."""
        for element in self.elements:
            if isinstance(element, TranslationUnit):
                yield element

    def translatable_units(self) -> Iterator[TranslationUnit]:
        for unit in self.units():
            if unit.translatable:
                yield unit

    def unit(self, key: str) -> Optional[TranslationUnit]:
        return self._units.get(key)

    def __len__(self) -> int:
        return sum(1 for _ in self.translatable_units())

    def __contains__(self, key: str) -> bool:
        unit = self.unit(key)
        return unit is not None and unit.translatable

    # --- Adapter contract ---

    def keys(self) -> List[str]:
        """Translatable unit keys in document order."""
        return [unit.key for unit in self.translatable_units()]

    def untranslated_keys(self) -> List[str]:
        """Translatable unit keys that have no complete translation."""
        return [unit.key for unit in self.translatable_units() if not unit.is_translated()]

    def get(self, key: str) -> Optional[str]:
        """
        Return the value of a scalar or structured unit.

        Returns None if the key is missing or the unit holds a list or
        quantity set (use ``unit()`` for those).
        """
        unit = self.unit(key)
        if unit is None or unit.kind in (UnitKind.ORDERED_LIST, UnitKind.QUANTITY_SET):
            return None
        return unit.value

    def set(self, key: str, value: str) -> bool:
        unit = self.unit(key)
        if unit is None or unit.kind in (UnitKind.ORDERED_LIST, UnitKind.QUANTITY_SET):
            return False
        unit.value = value
        return True

    def set_items(self, key: str, items: List[str]) -> bool:
        unit = self.unit(key)
        if unit is None or unit.kind != UnitKind.ORDERED_LIST:
            return False
        unit.items = list(items)
        return True

    def set_plurals(self, key: str, forms: Dict[str, str]) -> bool:
        """
        Merge plural forms into a quantity-set unit.

        Known quantities keep their display position; unknown ones are appended.
        """
        unit = self.unit(key)
        if unit is None or unit.kind != UnitKind.QUANTITY_SET:
            return False
        for quantity, form in forms.items():
            unit.plurals[quantity] = form
        return True

    def stats(self) -> Tuple[int, int, int]:
        """Return (total, translated, untranslated) over translatable units."""
        total = translated = 0
        for unit in self.translatable_units():
            total += 1
            if unit.is_translated():
                translated += 1
        return total, translated, total - translated

    def source_values(self) -> Dict[str, str]:
        """Map of key to flattened content, for use as translation source."""
        return {unit.key: unit.content() for unit in self.translatable_units()}
