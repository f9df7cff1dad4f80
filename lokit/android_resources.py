"""
Android ``strings.xml`` resources.

Supports ``<string>``, ``<string-array>`` and ``<plurals>``. Resources marked
``translatable="false"`` are parsed and written back in the source file but
left out of per-language files, which inherit them from ``values/``.
"""
import logging
import re
from typing import Dict, List

from lxml import etree

from lokit.adapters import FormatAdapter, NonTranslatablePolicy
from lokit.errors import ResourceParseError
from lokit.resource_model import ResourceDocument, StructuralElement, TranslationUnit, UnitKind

logger = logging.getLogger(__name__)

CDATA_MARKER = "<![CDATA["
_XMLNS_RE = re.compile(r'\s+xmlns(:\w+)?="[^"]+"')


def unescape_apostrophes(text: str) -> str:
    return text.replace("\\'", "'")


def escape_apostrophes(text: str) -> str:
    # Normalize first so already escaped apostrophes are not escaped twice.
    return unescape_apostrophes(text).replace("'", "\\'")


def xml_escape(text: str) -> str:
    """
    Escape a value for element content.

    Values carrying inline markup (both ``<`` and ``>``, e.g. ``<xliff:g>``)
    are written as they are.
    """
    if "<" in text and ">" in text:
        return escape_apostrophes(text)
    text = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return escape_apostrophes(text)


def _marshal_value(text: str, use_cdata: bool) -> str:
    if use_cdata:
        return f"{CDATA_MARKER}{escape_apostrophes(text)}]]>"
    return xml_escape(text)


def _inner_text(node) -> str:
    """Inner content of an element, inline child markup kept as raw text."""
    parts = []
    if node.text:
        parts.append(node.text)
    for child in node:
        if child.tag is etree.Comment:
            if child.tail:
                parts.append(child.tail)
            continue
        child_str = etree.tostring(child, encoding="unicode", with_tail=True)
        parts.append(_XMLNS_RE.sub("", child_str))
    return unescape_apostrophes("".join(parts))


def _uses_cdata(node) -> bool:
    return CDATA_MARKER in etree.tostring(node, encoding="unicode", with_tail=False)


def _extra_attributes(node) -> Dict[str, str]:
    return {
        name: value for name, value in node.attrib.items()
        if name not in ("name", "translatable") and not name.startswith("{")
    }


def _format_attributes(unit: TranslationUnit) -> str:
    attrs = f'name="{unit.key}"'
    if not unit.translatable:
        attrs += ' translatable="false"'
    for name, value in unit.hints.get("attributes", {}).items():
        attrs += f' {name}="{value}"'
    return attrs


class AndroidAdapter(FormatAdapter):
    """Android ``res/values*/strings.xml`` files."""

    type_name = "android"
    extensions = (".xml",)
    non_translatable_policy = NonTranslatablePolicy.OMIT

    def parse(self, data: bytes) -> ResourceDocument:
        parser = etree.XMLParser(remove_blank_text=False, strip_cdata=False, resolve_entities=False)
        try:
            root = etree.fromstring(data, parser)
        except etree.XMLSyntaxError as e:
            raise ResourceParseError(f"invalid XML: {e}") from e
        if etree.QName(root).localname != "resources":
            raise ResourceParseError(f"expected <resources> root element, found <{root.tag}>")

        namespaces = {prefix: uri for prefix, uri in root.nsmap.items() if prefix}
        document = ResourceDocument(metadata={"namespaces": namespaces})

        for node in root:
            if node.tag is etree.Comment:
                comment = (node.text or "").strip()
                if comment:
                    document.append(StructuralElement("comment", comment))
                continue
            if not isinstance(node.tag, str):
                continue

            tag = etree.QName(node).localname
            if tag not in ("string", "string-array", "plurals"):
                raw = _XMLNS_RE.sub("", etree.tostring(node, encoding="unicode", with_tail=False))
                document.append(StructuralElement("raw", raw))
                continue

            name = node.get("name")
            if not name:
                raise ResourceParseError(f"<{tag}> on line {node.sourceline} has no name attribute")
            if document.unit(name) is not None:
                raise ResourceParseError(f"duplicate resource name '{name}' on line {node.sourceline}")
            translatable = (node.get("translatable") or "true").lower() != "false"
            hints = {"attributes": _extra_attributes(node)}

            if tag == "string":
                hints["cdata"] = _uses_cdata(node)
                unit = TranslationUnit(key=name, value=_inner_text(node),
                                       translatable=translatable, hints=hints)
            elif tag == "string-array":
                items = [item for item in node if isinstance(item.tag, str)
                         and etree.QName(item).localname == "item"]
                hints["item_cdata"] = [_uses_cdata(item) for item in items]
                unit = TranslationUnit(key=name, kind=UnitKind.ORDERED_LIST,
                                       items=[_inner_text(item) for item in items],
                                       translatable=translatable, hints=hints)
            else:
                plurals: Dict[str, str] = {}
                plural_cdata: Dict[str, bool] = {}
                for item in node:
                    if not isinstance(item.tag, str) or etree.QName(item).localname != "item":
                        continue
                    quantity = item.get("quantity")
                    if quantity:
                        plurals[quantity] = _inner_text(item)
                        plural_cdata[quantity] = _uses_cdata(item)
                hints["plural_cdata"] = plural_cdata
                unit = TranslationUnit(key=name, kind=UnitKind.QUANTITY_SET, plurals=plurals,
                                       translatable=translatable, hints=hints)
            document.add_unit(unit)
        return document

    def marshal(self, document: ResourceDocument) -> bytes:
        namespaces = document.metadata.get("namespaces", {})
        declarations = "".join(f' xmlns:{prefix}="{uri}"' for prefix, uri in sorted(namespaces.items()))
        lines: List[str] = ['<?xml version="1.0" encoding="utf-8"?>', f"<resources{declarations}>"]

        for element in document.elements:
            if isinstance(element, StructuralElement):
                if element.kind == "comment":
                    lines.append(f"    <!-- {element.text} -->")
                else:
                    lines.append(f"    {element.text}")
                continue

            attrs = _format_attributes(element)
            if element.kind == UnitKind.ORDERED_LIST:
                item_cdata = element.hints.get("item_cdata", [])
                lines.append(f"    <string-array {attrs}>")
                for i, item in enumerate(element.items):
                    use_cdata = i < len(item_cdata) and item_cdata[i]
                    lines.append(f"        <item>{_marshal_value(item, use_cdata)}</item>")
                lines.append("    </string-array>")
            elif element.kind == UnitKind.QUANTITY_SET:
                plural_cdata = element.hints.get("plural_cdata", {})
                lines.append(f"    <plurals {attrs}>")
                for quantity, form in element.plurals.items():
                    content = _marshal_value(form, plural_cdata.get(quantity, False))
                    lines.append(f'        <item quantity="{quantity}">{content}</item>')
                lines.append("    </plurals>")
            else:
                content = _marshal_value(element.value, element.hints.get("cdata", False))
                lines.append(f"    <string {attrs}>{content}</string>")

        lines.append("</resources>")
        return ("\n".join(lines) + "\n").encode("utf-8")
