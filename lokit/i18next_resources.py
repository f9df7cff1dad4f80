"""
i18next JSON translation files of the form::

    {
        "_meta": {"name": "Deutsch", "flag": "..."},
        "translations": {"Source text": "Translated text"}
    }

Keys are usually the source-language text itself; an empty value means the
string is untranslated.
"""
import json

import jsonschema

from lokit.adapters import FormatAdapter
from lokit.errors import ResourceParseError
from lokit.langmeta import resolve
from lokit.resource_model import ResourceDocument, TranslationUnit

META_KEY = "_meta"

# Every translation value must be a string.
I18NEXT_SCHEMA = {
    "type": "object",
    "properties": {
        META_KEY: {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "flag": {"type": "string"},
            },
        },
        "translations": {
            "type": "object",
            "patternProperties": {
                "^.*$": {"type": "string"}
            },
            "additionalProperties": False
        },
    },
}


class I18nextAdapter(FormatAdapter):
    """i18next ``{lang}.json`` files with a ``_meta`` header."""

    type_name = "i18next"
    extensions = (".json",)

    def parse(self, data: bytes) -> ResourceDocument:
        try:
            content = json.loads(data.decode("utf-8")) if data.strip() else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ResourceParseError(f"parsing JSON: {e}") from e
        try:
            jsonschema.validate(instance=content, schema=I18NEXT_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ResourceParseError(f"unexpected i18next structure: {e.message}") from e

        meta = content.get(META_KEY, {})
        document = ResourceDocument(metadata={
            META_KEY: {"name": meta.get("name", ""), "flag": meta.get("flag", "")},
        })
        # json.loads keeps object key order, which is the file order.
        for key, value in content.get("translations", {}).items():
            document.add_unit(TranslationUnit(key=key, value=value))
        return document

    def marshal(self, document: ResourceDocument) -> bytes:
        payload = {
            META_KEY: document.metadata.get(META_KEY, {"name": "", "flag": ""}),
            "translations": {unit.key: unit.value for unit in document.units()},
        }
        return (json.dumps(payload, ensure_ascii=False, indent=4) + "\n").encode("utf-8")

    def rewrite_metadata(self, document: ResourceDocument, language: str) -> None:
        meta = resolve(language)
        document.metadata[META_KEY] = {"name": meta.name, "flag": meta.flag}
