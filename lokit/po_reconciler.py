"""
Gettext template merge, equivalent to ``msgmerge``.

Brings a translated PO file up to date with a freshly extracted POT template:
translations of surviving strings are kept, new strings are added empty and
strings that disappeared from the template are kept as obsolete entries.
"""
import copy
import logging
from typing import Dict, Iterable, List

import polib

from lokit.langmeta import nplurals

logger = logging.getLogger(__name__)

FUZZY_FLAG = "fuzzy"


def merge_flags(target_flags: Iterable[str], template_flags: Iterable[str]) -> List[str]:
    """
    Union of target and template flags.

    ``fuzzy`` comes first when present, followed by the remaining target flags
    in their order and then the template-only flags in theirs.
    """
    merged: List[str] = []
    for flag in list(target_flags) + list(template_flags):
        if flag not in merged:
            merged.append(flag)
    if FUZZY_FLAG in merged:
        merged.remove(FUZZY_FLAG)
        merged.insert(0, FUZZY_FLAG)
    return merged


def _merged_entry(existing: polib.POEntry, template_entry: polib.POEntry) -> polib.POEntry:
    """Keep the translator's work from ``existing`` and the source data from the template."""
    return polib.POEntry(
        msgctxt=template_entry.msgctxt,
        msgid=template_entry.msgid,
        msgid_plural=template_entry.msgid_plural,
        msgstr=existing.msgstr,
        msgstr_plural=dict(existing.msgstr_plural),
        tcomment=existing.tcomment,
        comment=template_entry.comment,
        occurrences=list(template_entry.occurrences),
        flags=merge_flags(existing.flags, template_entry.flags),
    )


def _new_entry(template_entry: polib.POEntry, plural_count: int) -> polib.POEntry:
    entry = polib.POEntry(
        msgctxt=template_entry.msgctxt,
        msgid=template_entry.msgid,
        msgid_plural=template_entry.msgid_plural,
        comment=template_entry.comment,
        occurrences=list(template_entry.occurrences),
        flags=list(template_entry.flags),
    )
    if template_entry.msgid_plural:
        entry.msgstr_plural = dict.fromkeys(range(plural_count), "")
    return entry


def _obsolete_copy(entry: polib.POEntry) -> polib.POEntry:
    obsolete = copy.deepcopy(entry)
    obsolete.obsolete = True
    # An obsolete string no longer has a location in the sources.
    obsolete.occurrences = []
    return obsolete


def merge(target: polib.POFile, template: polib.POFile) -> polib.POFile:
    """
    Merge a PO file with its POT template.

    Args:
        target: The existing translation file. Not modified.
        template: The freshly extracted template. Not modified.

    Returns:
        polib.POFile: A new PO file with template entries in template order,
        followed by obsolete entries in the target's original relative order.
    """
    result = polib.POFile(wrapwidth=target.wrapwidth, encoding=target.encoding)
    result.header = target.header
    result.metadata = dict(target.metadata)
    result.metadata_is_fuzzy = copy.copy(target.metadata_is_fuzzy)
    creation_date = template.metadata.get("POT-Creation-Date")
    if creation_date:
        result.metadata["POT-Creation-Date"] = creation_date

    # Keyed by msgid alone. Entries differing only in msgctxt all take the
    # first one's translation, and later duplicates are not made obsolete.
    existing: Dict[str, polib.POEntry] = {}
    for entry in target:
        if not entry.obsolete and entry.msgid not in existing:
            existing[entry.msgid] = entry

    plural_count = nplurals(target.metadata.get("Plural-Forms"))
    matched = set()
    added = 0
    for template_entry in template:
        if not template_entry.msgid or template_entry.obsolete:
            continue
        current = existing.get(template_entry.msgid)
        if current is not None:
            result.append(_merged_entry(current, template_entry))
            matched.add(template_entry.msgid)
        else:
            result.append(_new_entry(template_entry, plural_count))
            added += 1

    obsoleted = 0
    for entry in target:
        if not entry.msgid:
            continue
        if entry.obsolete:
            result.append(copy.deepcopy(entry))
        elif entry.msgid not in matched:
            result.append(_obsolete_copy(entry))
            obsoleted += 1

    logger.debug(f"Merged PO file: {len(matched)} kept, {added} new, {obsoleted} obsoleted.")
    return result
