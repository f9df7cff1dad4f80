"""
Helpers for gettext PO/POT files built on ``polib``.

PO files keep polib's own entry model instead of ``ResourceDocument`` so that
comments, references, flags and obsolete entries survive untouched; the
reconciliation step for them is ``po_reconciler.merge``.
"""
import logging
import os
from typing import Dict, List, Tuple, Union

import polib

from lokit.change_ledger import po_entry_content, po_entry_key
from lokit.errors import ResourceIOError, ResourceParseError
from lokit.langmeta import nplurals, plural_forms_for_lang, underscore_locale
from lokit.po_reconciler import FUZZY_FLAG

logger = logging.getLogger(__name__)

PoTranslation = Union[str, Dict[int, str]]


def load_po(file_path: str) -> polib.POFile:
    """
    Load a PO or POT file.

    Raises:
        ResourceIOError: If the file does not exist.
        ResourceParseError: If polib cannot parse the file.
    """
    if not os.path.isfile(file_path):
        raise ResourceIOError(f"reading {file_path}: file not found")
    try:
        return polib.pofile(file_path, wrapwidth=78)
    except (OSError, ValueError, UnicodeDecodeError) as e:
        raise ResourceParseError(str(e), file_path) from e


def write_po(po: polib.POFile, file_path: str) -> None:
    try:
        target_dir = os.path.dirname(file_path)
        if target_dir:
            os.makedirs(target_dir, exist_ok=True)
        po.save(file_path)
    except OSError as e:
        raise ResourceIOError(f"writing {file_path}: {e}") from e


def _active_entries(po: polib.POFile) -> List[polib.POEntry]:
    return [entry for entry in po if entry.msgid and not entry.obsolete]


def is_fuzzy(entry: polib.POEntry) -> bool:
    return FUZZY_FLAG in entry.flags


def is_translated(entry: polib.POEntry) -> bool:
    """A non-fuzzy entry whose singular or every plural form is filled."""
    if not entry.msgid or entry.obsolete or is_fuzzy(entry):
        return False
    if entry.msgid_plural:
        return bool(entry.msgstr_plural) and all(entry.msgstr_plural.values())
    return bool(entry.msgstr)


def po_entries_by_key(po: polib.POFile) -> Dict[str, polib.POEntry]:
    entries: Dict[str, polib.POEntry] = {}
    for entry in _active_entries(po):
        entries.setdefault(po_entry_key(entry.msgid, entry.msgctxt), entry)
    return entries


def po_keys(po: polib.POFile) -> List[str]:
    """Ledger keys of all active entries, in file order."""
    return list(po_entries_by_key(po))


def po_fuzzy_keys(po: polib.POFile) -> List[str]:
    return [key for key, entry in po_entries_by_key(po).items() if is_fuzzy(entry)]


def po_untranslated_keys(po: polib.POFile) -> List[str]:
    """Keys of entries that have no translation and are not marked fuzzy."""
    return [
        key for key, entry in po_entries_by_key(po).items()
        if not is_translated(entry) and not is_fuzzy(entry)
    ]


def po_stats(po: polib.POFile) -> Tuple[int, int, int, int]:
    """
    Count active entries.

    Returns:
        Tuple[int, int, int, int]: (total, translated, fuzzy, untranslated).
    """
    total = translated = fuzzy = 0
    for entry in _active_entries(po):
        total += 1
        if is_fuzzy(entry):
            fuzzy += 1
        elif is_translated(entry):
            translated += 1
    return total, translated, fuzzy, total - translated - fuzzy


def po_ledger_entries(po: polib.POFile) -> Dict[str, str]:
    """Map each entry key to the content its fingerprint is computed from."""
    return {
        key: po_entry_content(entry.msgid, entry.msgid_plural)
        for key, entry in po_entries_by_key(po).items()
    }


def new_po_file(template: polib.POFile, language: str) -> polib.POFile:
    """
    Initialize a translation file from a template, like ``msginit``.

    Entries are copied with empty translations; plural entries get as many
    empty forms as the language's ``Plural-Forms`` rule declares.
    """
    po = polib.POFile(wrapwidth=template.wrapwidth, encoding=template.encoding)
    po.header = template.header
    po.metadata = dict(template.metadata)
    po.metadata["Language"] = underscore_locale(language)
    po.metadata["Plural-Forms"] = plural_forms_for_lang(language)
    po.metadata.setdefault("Content-Type", "text/plain; charset=UTF-8")
    plural_count = nplurals(po.metadata["Plural-Forms"])

    for template_entry in _active_entries(template):
        entry = polib.POEntry(
            msgctxt=template_entry.msgctxt,
            msgid=template_entry.msgid,
            msgid_plural=template_entry.msgid_plural,
            comment=template_entry.comment,
            occurrences=list(template_entry.occurrences),
            flags=[flag for flag in template_entry.flags if flag != FUZZY_FLAG],
        )
        if template_entry.msgid_plural:
            entry.msgstr_plural = dict.fromkeys(range(plural_count), "")
        po.append(entry)
    logger.debug(f"Initialized PO file for '{language}' with {len(po)} entries.")
    return po


def apply_po_translation(entry: polib.POEntry, translation: PoTranslation) -> bool:
    """
    Store a translation on an entry and clear its ``fuzzy`` flag.

    Plural entries take a mapping of form index to text; singular entries a
    string. Returns False if the shape does not match the entry.
    """
    if entry.msgid_plural:
        if not isinstance(translation, dict):
            return False
        entry.msgstr_plural = {int(index): text for index, text in sorted(translation.items())}
    else:
        if not isinstance(translation, str):
            return False
        entry.msgstr = translation
    if is_fuzzy(entry):
        entry.flags.remove(FUZZY_FLAG)
    return True
