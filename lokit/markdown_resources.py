"""
Markdown documents split into translatable segments.

Front matter fields become ``fm:<field>`` units. The body is split into
sections on headings and horizontal rules outside fenced code blocks; each
section (its heading line plus the text up to the next one) is a structured
block unit keyed ``sec:<n>``.

Per-language files carry a ``<!-- lokit:sec:<n> -->`` marker line before
every section. When a file has markers, sections are keyed by them instead
of by its headings.
"""
import re
from typing import Any, Dict, List, Tuple

import yaml

from lokit.adapters import FormatAdapter
from lokit.errors import ResourceParseError
from lokit.resource_model import ResourceDocument, TranslationUnit, UnitKind

FRONT_MATTER_PREFIX = "fm:"
SECTION_PREFIX = "sec:"
SECTION_MARKER_FORMAT = "<!-- lokit:{key} -->"

_FRONT_MATTER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_SECTION_START_RE = re.compile(r"^(#{1,6} .+|[-*_]{3,}\s*)$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_SECTION_MARKER_RE = re.compile(r"^<!-- lokit:(sec:\d+) -->[ \t]*$", re.MULTILINE)


def split_sections(body: str) -> List[Tuple[str, str]]:
    """
    Split a Markdown body into (delimiter line, text) pairs.

    The first pair has an empty delimiter when text precedes the first
    heading. Delimiters inside fenced code blocks are ignored.
    """
    sections: List[Tuple[str, List[str]]] = [("", [])]
    fence = None
    for line in body.splitlines():
        fence_match = _FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker
            elif marker == fence:
                fence = None
        elif fence is None and _SECTION_START_RE.match(line):
            sections.append((line.rstrip(), []))
            continue
        sections[-1][1].append(line)
    return [(delimiter, "\n".join(lines).strip()) for delimiter, lines in sections]


class MarkdownAdapter(FormatAdapter):
    """Markdown files with optional YAML front matter."""

    type_name = "markdown"
    extensions = (".md", ".markdown")
    # Segment keys are positional, so only the text itself is fingerprinted.
    key_value_fingerprint = False

    def parse(self, data: bytes) -> ResourceDocument:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ResourceParseError(f"not valid UTF-8: {e}") from e

        document = ResourceDocument(metadata={"front_matter": False})
        match = _FRONT_MATTER_RE.match(text)
        if match:
            try:
                fields = yaml.safe_load(match.group(1))
            except yaml.YAMLError as e:
                raise ResourceParseError(f"parsing front matter: {e}") from e
            if fields is not None and not isinstance(fields, dict):
                raise ResourceParseError("front matter must be a mapping")
            document.metadata["front_matter"] = True
            self._add_front_matter(document, fields or {})
            text = text[match.end():]

        markers = list(_SECTION_MARKER_RE.finditer(text))
        if markers:
            self._add_marked_sections(document, text, markers)
            return document

        index = 0
        for delimiter, body in split_sections(text):
            value = "\n\n".join(part for part in (delimiter, body) if part).strip()
            if not value:
                continue
            document.add_unit(TranslationUnit(key=f"{SECTION_PREFIX}{index}",
                                              kind=UnitKind.STRUCTURED_BLOCK, value=value))
            index += 1
        return document

    @staticmethod
    def _add_marked_sections(document: ResourceDocument, text: str, markers: List[re.Match]) -> None:
        if text[:markers[0].start()].strip():
            raise ResourceParseError("text before the first section marker")
        ends = [marker.start() for marker in markers[1:]] + [len(text)]
        for marker, end in zip(markers, ends):
            key = marker.group(1)
            if document.unit(key) is not None:
                raise ResourceParseError(f"duplicate section marker '{key}'")
            document.add_unit(TranslationUnit(key=key, kind=UnitKind.STRUCTURED_BLOCK,
                                              value=text[marker.end():end].strip()))

    @staticmethod
    def _add_front_matter(document: ResourceDocument, fields: Dict[Any, Any]) -> None:
        for field, value in fields.items():
            key = f"{FRONT_MATTER_PREFIX}{field}"
            if isinstance(value, str):
                document.add_unit(TranslationUnit(key=key, value=value, hints={"field": field}))
            else:
                document.add_unit(TranslationUnit(
                    key=key, value="" if value is None else str(value), translatable=False,
                    hints={"field": field, "yaml_value": value},
                ))

    def _render(self, document: ResourceDocument, with_markers: bool) -> bytes:
        parts: List[str] = []
        if document.metadata.get("front_matter"):
            fields = {}
            for unit in document.units():
                if unit.key.startswith(FRONT_MATTER_PREFIX):
                    field = unit.hints.get("field", unit.key[len(FRONT_MATTER_PREFIX):])
                    fields[field] = unit.hints["yaml_value"] if "yaml_value" in unit.hints else unit.value
            dumped = yaml.safe_dump(fields, allow_unicode=True, sort_keys=False,
                                    default_flow_style=False, width=1000).strip() if fields else ""
            parts.append(f"---\n{dumped}\n---" if dumped else "---\n---")

        for unit in document.units():
            if not unit.key.startswith(SECTION_PREFIX):
                continue
            if with_markers:
                parts.append(SECTION_MARKER_FORMAT.format(key=unit.key))
            if unit.value.strip():
                parts.append(unit.value.strip())
        return ("\n\n".join(parts) + "\n").encode("utf-8") if parts else b""

    def marshal(self, document: ResourceDocument) -> bytes:
        return self._render(document, with_markers=False)

    def marshal_target(self, document: ResourceDocument) -> bytes:
        """
        Serialize a per-language file with a marker line before every section.

        Untranslated sections are written as a bare marker, so each section
        keeps its key on the next parse whatever headings the translated
        text contains.
        """
        return self._render(document, with_markers=True)
