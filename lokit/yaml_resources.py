"""
YAML translation files: nested mappings with string leaves.

Keys are dotted paths (``app.title``). Rails i18n files, which nest every key
under a single top-level locale code, are detected and the locale key is kept
out of the unit paths. Lists of strings become ordered-list units; numbers,
booleans, nulls and other non-string leaves are carried through unchanged as
non-translatable units.
"""
from typing import Any, Dict, List

import yaml

from lokit.adapters import FormatAdapter
from lokit.errors import ResourceParseError
from lokit.resource_model import ResourceDocument, TranslationUnit, UnitKind

ROOT_LOCALE_KEY = "root_locale_key"


def _collect_units(mapping: Dict[Any, Any], path: List[str], document: ResourceDocument) -> None:
    for raw_key, value in mapping.items():
        segments = path + [str(raw_key)]
        key = ".".join(segments)
        if document.unit(key) is not None:
            raise ResourceParseError(f"ambiguous key path '{key}'")
        hints: Dict[str, Any] = {"path": segments}

        if isinstance(value, dict) and value:
            _collect_units(value, segments, document)
        elif isinstance(value, str):
            document.add_unit(TranslationUnit(key=key, value=value, hints=hints))
        elif isinstance(value, list) and all(isinstance(item, str) for item in value):
            document.add_unit(TranslationUnit(key=key, kind=UnitKind.ORDERED_LIST,
                                              items=list(value), hints=hints))
        else:
            hints["yaml_value"] = value
            document.add_unit(TranslationUnit(key=key, value="" if value is None else str(value),
                                              translatable=False, hints=hints))


def _unit_value(unit: TranslationUnit) -> Any:
    if not unit.translatable and "yaml_value" in unit.hints:
        return unit.hints["yaml_value"]
    if unit.kind == UnitKind.ORDERED_LIST:
        return list(unit.items)
    return unit.value


class YamlAdapter(FormatAdapter):
    """Nested YAML translation files, including Rails i18n layout."""

    type_name = "yaml"
    extensions = (".yaml", ".yml")

    def parse(self, data: bytes) -> ResourceDocument:
        try:
            content = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise ResourceParseError(f"parsing YAML: {e}") from e

        document = ResourceDocument()
        if content is None:
            return document
        if not isinstance(content, dict):
            raise ResourceParseError(f"YAML root must be a mapping, got {type(content).__name__}")

        if len(content) == 1:
            root_key, root_value = next(iter(content.items()))
            if isinstance(root_value, dict):
                document.metadata[ROOT_LOCALE_KEY] = str(root_key)
                _collect_units(root_value, [], document)
                return document

        _collect_units(content, [], document)
        return document

    def marshal(self, document: ResourceDocument) -> bytes:
        tree: Dict[str, Any] = {}
        for unit in document.units():
            segments = unit.hints.get("path") or unit.key.split(".")
            node = tree
            for segment in segments[:-1]:
                child = node.get(segment)
                if not isinstance(child, dict):
                    child = node[segment] = {}
                node = child
            node[segments[-1]] = _unit_value(unit)

        root_key = document.metadata.get(ROOT_LOCALE_KEY)
        if root_key:
            tree = {root_key: tree}
        if not tree:
            return b""
        return yaml.safe_dump(tree, allow_unicode=True, sort_keys=False,
                              default_flow_style=False, width=1000).encode("utf-8")

    def rewrite_metadata(self, document: ResourceDocument, language: str) -> None:
        """Rename the Rails root locale key to the target language."""
        if document.metadata.get(ROOT_LOCALE_KEY):
            document.metadata[ROOT_LOCALE_KEY] = language
