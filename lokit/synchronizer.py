"""
Key synchronization between a source document and a per-language target.

Both functions work purely against ``ResourceDocument`` and hold no state, so
every format adapter shares the same reconciliation rules.
"""
import copy
import logging
from typing import Callable, Optional

from lokit.resource_model import ResourceDocument, TranslationUnit

logger = logging.getLogger(__name__)

MetadataRewriter = Callable[[ResourceDocument, str], None]


def sync_keys(source: ResourceDocument, target: ResourceDocument) -> int:
    """
    Make the target's translatable key set equal to the source's.

    Missing keys are appended as cleared copies of the source unit, in source
    order. A unit whose kind no longer matches the source is replaced in place
    by a cleared copy. Translatable target units absent from the source are
    removed. Non-translatable units and structural elements are left as they are.

    Args:
        source: The source-language document.
        target: The target document, mutated in place.

    Returns:
        int: Number of keys added or reset.
    """
    source_keys = set(source.keys())
    added = 0

    for source_unit in source.translatable_units():
        target_unit = target.unit(source_unit.key)
        if target_unit is None:
            target.add_unit(source_unit.cleared())
            added += 1
        elif not target_unit.translatable or target_unit.kind != source_unit.kind:
            # Same key, but the target's copy is no longer usable.
            target.replace_unit(source_unit.cleared())
            added += 1

    stale = [unit.key for unit in target.translatable_units() if unit.key not in source_keys]
    removed = target.remove_units(stale)

    if added or removed:
        logger.debug(f"Synchronized keys: {added} added, {removed} removed.")
    return added


def new_translation_file(source: ResourceDocument, language: Optional[str] = None,
                         rewrite_metadata: Optional[MetadataRewriter] = None) -> ResourceDocument:
    """
    Create an empty target document shaped like ``source``.

    Translatable units are cleared but keep their kind and shape (list length,
    quantity keys and their order). Non-translatable units and structural
    elements are copied verbatim. Document metadata is copied and then handed
    to ``rewrite_metadata`` together with the target language.
    """
    target = ResourceDocument(metadata=copy.deepcopy(source.metadata))
    for element in source.elements:
        if isinstance(element, TranslationUnit):
            target.append(element.cleared() if element.translatable else element.copy())
        else:
            target.append(copy.deepcopy(element))

    if language and rewrite_metadata is not None:
        rewrite_metadata(target, language)
    return target
