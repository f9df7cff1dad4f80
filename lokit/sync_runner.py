"""
Synchronization runner.

For every configured target and language the runner reconciles the target file
with its source, asks the change ledger which units are stale, sends only those
to the injected translator, validates what comes back and writes the result.
The ledger is updated only after the file has been written.
"""
import asyncio
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from aiolimiter import AsyncLimiter
from tqdm.asyncio import tqdm

from lokit.app_config import AppConfig, TargetConfig, load_app_config
from lokit.change_ledger import ChangeLedger, target_key
from lokit.errors import LokitError, ResourceParseError
from lokit.formats import GETTEXT_TYPE, get_adapter
from lokit.langmeta import native_name, nplurals
from lokit.po_reconciler import merge
from lokit.po_resources import (
    apply_po_translation,
    load_po,
    new_po_file,
    po_entries_by_key,
    po_fuzzy_keys,
    po_keys,
    po_ledger_entries,
    po_stats,
    po_untranslated_keys,
    write_po,
)
from lokit.resource_model import ResourceDocument, UnitKind
from lokit.translation_validator import (
    check_encoding_and_mojibake,
    check_key_coverage,
    validate_translation,
)

logger = logging.getLogger(__name__)


@dataclass
class TranslationRequest:
    """Everything a translator gets to know about one stale unit."""
    target: str
    language: str
    key: str
    kind: UnitKind
    source_value: str = ""
    source_items: List[str] = field(default_factory=list)
    source_plurals: Dict[str, str] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)


# Returns str, List[str], Dict[str, str] or, for PO plural entries, Dict[int, str].
Translator = Callable[[TranslationRequest], Awaitable[Any]]


@dataclass
class FileResult:
    target: str
    language: str
    path: str
    created: bool = False
    keys_added: int = 0
    keys_removed: int = 0
    requested: int = 0
    translated: int = 0
    failed: int = 0
    total: int = 0
    untranslated: int = 0
    written: bool = False


@dataclass
class SyncReport:
    files: List[FileResult] = field(default_factory=list)
    skipped_files: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def processed_files_count(self) -> int:
        return sum(1 for result in self.files if result.written)


@dataclass
class LanguageStatus:
    target: str
    language: str
    path: str
    exists: bool
    total: int = 0
    translated: int = 0
    untranslated: int = 0
    fuzzy: int = 0
    missing_keys: Set[str] = field(default_factory=set)
    extra_keys: Set[str] = field(default_factory=set)
    error: Optional[str] = None


class _RunContext:
    """Shared state of one run: throttling, ledger and the skipped-files record."""

    def __init__(self, app_config: AppConfig, translator: Translator, ledger: ChangeLedger,
                 retranslate: bool):
        self.config = app_config
        self.translator = translator
        self.ledger = ledger
        self.retranslate = retranslate
        # One semaphore and one limiter for all translator calls of the run.
        self.semaphore = asyncio.Semaphore(app_config.max_concurrent_api_calls)
        self.rate_limiter = AsyncLimiter(max_rate=app_config.rate_limit_max_rate,
                                         time_period=app_config.rate_limit_time_period)
        self.skipped_files: Dict[str, List[str]] = {}

    def relative(self, path: str) -> str:
        return target_key(os.path.relpath(path, self.config.project_root))

    def skip(self, path: str, errors: List[str]) -> None:
        logger.error(f"Skipping '{self.relative(path)}':")
        for error in errors:
            logger.error(f"  - {error}")
        self.skipped_files.setdefault(self.relative(path), []).extend(errors)


async def _translate_unit(context: _RunContext, request: TranslationRequest, index: int) -> Tuple[int, Any]:
    """Call the translator under the run's semaphore and rate limiter."""
    async with context.semaphore, context.rate_limiter:
        try:
            result = await context.translator(request)
        except Exception as e:
            logger.error(f"Translator failed for key '{request.key}' ({request.language}): "
                         f"{e.__class__.__name__} - {e}")
            return index, None
        logger.debug(f"Translated key '{request.key}' ({request.language}) successfully.")
        return index, result


async def _run_requests(context: _RunContext, requests: List[TranslationRequest],
                        description: str) -> List[Any]:
    """Translate all requests concurrently; results come back in request order."""
    if not requests:
        return []
    tasks = [_translate_unit(context, request, index) for index, request in enumerate(requests)]
    results: List[Any] = [None] * len(requests)
    for coro in tqdm.as_completed(tasks, desc=description, unit="translation", file=sys.stderr):
        index, result = await coro
        results[index] = result
    return results


def _stale_keys(context: _RunContext, ledger_target: str, keys: List[str],
                entries: Dict[str, str], untranslated: List[str]) -> List[str]:
    """Keys to send for translation, in document order."""
    if context.retranslate:
        return list(keys)
    changed = context.ledger.filter_changed(ledger_target, entries)
    stale = set(changed) | set(untranslated)
    return [key for key in keys if key in stale]


def _record_translations(context: _RunContext, ledger_target: str, translated_entries: Dict[str, str],
                         live_keys: List[str]) -> None:
    if translated_entries:
        context.ledger.update_batch(ledger_target, translated_entries)
    context.ledger.clean(ledger_target, live_keys)


def _unit_request(target: TargetConfig, language: str, document: ResourceDocument, key: str) -> TranslationRequest:
    unit = document.unit(key)
    return TranslationRequest(
        target=target.name,
        language=language,
        key=key,
        kind=unit.kind,
        source_value=unit.value,
        source_items=list(unit.items),
        source_plurals=dict(unit.plurals),
        context={"language_name": native_name(language), "format": target.type},
    )


def _unit_source(document: ResourceDocument, key: str) -> Any:
    unit = document.unit(key)
    if unit.kind == UnitKind.ORDERED_LIST:
        return unit.items
    if unit.kind == UnitKind.QUANTITY_SET:
        return unit.plurals
    return unit.value


async def _sync_resource_language(context: _RunContext, target: TargetConfig, source: ResourceDocument,
                                  language: str) -> Optional[FileResult]:
    adapter = get_adapter(target.type)
    target_path = context.config.resolve_path(target.target_path(language))
    ledger_target = context.relative(target_path)
    result = FileResult(target=target.name, language=language, path=ledger_target)

    if os.path.exists(target_path):
        encoding_errors = check_encoding_and_mojibake(target_path)
        if encoding_errors:
            context.skip(target_path, encoding_errors)
            return None
        try:
            document = adapter.parse_file(target_path)
        except ResourceParseError as e:
            context.skip(target_path, [str(e)])
            return None
        keys_before = set(document.keys())
        result.keys_added = adapter.sync_keys(source, document)
        result.keys_removed = len(keys_before - set(document.keys()))
    else:
        document = adapter.new_translation_file(source, language)
        result.created = True
        result.keys_added = len(document.keys())

    missing_keys, extra_keys = check_key_coverage(set(source.keys()), set(document.keys()))
    if missing_keys or extra_keys:
        # sync_keys guarantees convergence; anything else is a bug worth seeing in the log.
        logger.error(f"Key mismatch after sync in '{ledger_target}': "
                     f"{len(missing_keys)} missing, {len(extra_keys)} extra.")

    entries = adapter.ledger_entries(source)
    stale = _stale_keys(context, ledger_target, document.keys(), entries, document.untranslated_keys())
    result.requested = len(stale)
    logger.info(f"'{ledger_target}' ({language}): {len(stale)} of {len(entries)} strings need translation.")

    translated_entries: Dict[str, str] = {}
    if context.config.dry_run:
        logger.info(f"[Dry Run] Would translate {len(stale)} strings for '{ledger_target}'.")
    else:
        requests = [_unit_request(target, language, source, key) for key in stale]
        translations = await _run_requests(context, requests, f"Translating {ledger_target}")
        for key, translation in zip(stale, translations):
            if translation is None:
                result.failed += 1
                continue
            errors = validate_translation(_unit_source(source, key), translation)
            if errors:
                logger.warning(f"Discarding translation of '{key}' for '{ledger_target}': {'; '.join(errors)}")
                result.failed += 1
                continue
            if not adapter.apply(document, key, translation):
                logger.warning(f"Translation of '{key}' for '{ledger_target}' does not fit the unit; discarded.")
                result.failed += 1
                continue
            translated_entries[key] = entries[key]
        result.translated = len(translated_entries)

    result.total, _, result.untranslated = document.stats()
    needs_write = result.created or result.keys_added or result.keys_removed or translated_entries
    if not needs_write:
        logger.info(f"No changes for '{ledger_target}'.")
    elif context.config.dry_run:
        logger.info(f"[Dry Run] Would write '{ledger_target}'.")
    else:
        adapter.write_file(document, target_path)
        result.written = True
        logger.info(f"Wrote '{ledger_target}' ({result.translated} translated, {result.failed} failed).")

    if not context.config.dry_run:
        _record_translations(context, ledger_target, translated_entries, list(entries))
    return result


def _po_request(target: TargetConfig, language: str, entry, plural_forms: Optional[str],
                key: str) -> TranslationRequest:
    request = TranslationRequest(
        target=target.name,
        language=language,
        key=key,
        kind=UnitKind.QUANTITY_SET if entry.msgid_plural else UnitKind.SCALAR,
        source_value=entry.msgid,
        context={
            "language_name": native_name(language),
            "format": GETTEXT_TYPE,
            "msgctxt": entry.msgctxt,
            "comment": entry.comment,
            "flags": list(entry.flags),
        },
    )
    if entry.msgid_plural:
        request.source_plurals = {"one": entry.msgid, "other": entry.msgid_plural}
        request.context["plural_forms"] = plural_forms
        request.context["nplurals"] = nplurals(plural_forms)
    return request


async def _sync_po_language(context: _RunContext, target: TargetConfig, template, language: str) -> Optional[FileResult]:
    target_path = context.config.resolve_path(target.target_path(language))
    ledger_target = context.relative(target_path)
    result = FileResult(target=target.name, language=language, path=ledger_target)

    if os.path.exists(target_path):
        encoding_errors = check_encoding_and_mojibake(target_path)
        if encoding_errors:
            context.skip(target_path, encoding_errors)
            return None
        try:
            existing = load_po(target_path)
        except ResourceParseError as e:
            context.skip(target_path, [str(e)])
            return None
        keys_before = set(po_keys(existing))
        po = merge(existing, template)
        keys_after = set(po_keys(po))
        result.keys_added = len(keys_after - keys_before)
        result.keys_removed = len(keys_before - keys_after)
    else:
        po = new_po_file(template, language)
        result.created = True
        result.keys_added = len(po_keys(po))

    entries = po_ledger_entries(po)
    untranslated = po_untranslated_keys(po)
    if context.config.translate_fuzzy:
        untranslated += po_fuzzy_keys(po)
    stale = _stale_keys(context, ledger_target, po_keys(po), entries, untranslated)
    result.requested = len(stale)
    logger.info(f"'{ledger_target}' ({language}): {len(stale)} of {len(entries)} entries need translation.")

    translated_entries: Dict[str, str] = {}
    if context.config.dry_run:
        logger.info(f"[Dry Run] Would translate {len(stale)} entries for '{ledger_target}'.")
    else:
        by_key = po_entries_by_key(po)
        plural_forms = po.metadata.get("Plural-Forms")
        requests = [_po_request(target, language, by_key[key], plural_forms, key) for key in stale]
        translations = await _run_requests(context, requests, f"Translating {ledger_target}")
        for key, request, translation in zip(stale, requests, translations):
            if translation is None:
                result.failed += 1
                continue
            source_value = request.source_plurals if request.source_plurals else request.source_value
            errors = validate_translation(source_value, translation)
            if errors:
                logger.warning(f"Discarding translation of '{key}' for '{ledger_target}': {'; '.join(errors)}")
                result.failed += 1
                continue
            if not apply_po_translation(by_key[key], translation):
                logger.warning(f"Translation of '{key}' for '{ledger_target}' does not fit the entry; discarded.")
                result.failed += 1
                continue
            translated_entries[key] = entries[key]
        result.translated = len(translated_entries)

    result.total, _, _, result.untranslated = po_stats(po)
    needs_write = result.created or result.keys_added or result.keys_removed or translated_entries
    if not needs_write:
        logger.info(f"No changes for '{ledger_target}'.")
    elif context.config.dry_run:
        logger.info(f"[Dry Run] Would write '{ledger_target}'.")
    else:
        write_po(po, target_path)
        result.written = True
        logger.info(f"Wrote '{ledger_target}' ({result.translated} translated, {result.failed} failed).")

    if not context.config.dry_run:
        _record_translations(context, ledger_target, translated_entries, list(entries))
    return result


async def _sync_target(context: _RunContext, target: TargetConfig) -> List[FileResult]:
    languages = context.config.languages_for(target)
    if not languages:
        logger.warning(f"Target '{target.name}' has no languages to translate. Skipping.")
        return []

    source_path = context.config.resolve_path(target.source)
    logger.info(f"Processing target '{target.name}' ({target.type}) for: {', '.join(languages)}")
    try:
        if target.type == GETTEXT_TYPE:
            source = load_po(source_path)
            sync_language = _sync_po_language
        else:
            source = get_adapter(target.type).parse_file(source_path)
            sync_language = _sync_resource_language
    except ResourceParseError as e:
        context.skip(source_path, [str(e)])
        return []

    results = await asyncio.gather(*(sync_language(context, target, source, language) for language in languages))
    return [result for result in results if result is not None]


def write_skipped_files_report(report_path: str, skipped_files: Dict[str, List[str]]) -> None:
    """Write the markdown report of skipped files, or remove a stale one when nothing was skipped."""
    if skipped_files:
        logger.info(f"Some files were skipped. Writing report to {report_path}")
        report_dir = os.path.dirname(report_path)
        if report_dir:
            os.makedirs(report_dir, exist_ok=True)
        with open(report_path, 'w', encoding='utf-8') as f:
            f.write("## ⚠️ Translation Pipeline Warnings\n\n")
            f.write("The following files were skipped during synchronization due to parse or "
                    "validation errors. These issues must be addressed manually.\n\n")
            for filename, errors in skipped_files.items():
                f.write(f"### 📄 `{filename}`\n")
                for error in errors:
                    f.write(f"- {error}\n")
                f.write("\n")
    elif os.path.exists(report_path):
        # Ensure no old report file is left
        os.remove(report_path)


async def run_sync(app_config: AppConfig, translator: Translator, ledger: Optional[ChangeLedger] = None,
                   retranslate: bool = False) -> SyncReport:
    """
    Synchronize and translate every configured target.

    Args:
        app_config: The loaded configuration.
        translator: Async callable turning a TranslationRequest into a translation.
        ledger: The change ledger; loaded from ``ledger_dir`` when omitted.
        retranslate: Send every unit to the translator, ignoring the ledger.

    Returns:
        SyncReport: Per-file results and the files that were skipped.

    Raises:
        LedgerFormatError: If an existing ledger file is corrupt.
        ResourceIOError: If a resource file cannot be read or written.
    """
    if ledger is None:
        ledger = ChangeLedger.load(app_config.resolve_path(app_config.ledger_dir))
    logger.info(f"Ledger '{ledger.path}': {ledger.summary()}")

    context = _RunContext(app_config, translator, ledger, retranslate)
    report = SyncReport()
    if not app_config.targets:
        logger.info("No targets configured. Nothing to do.")

    for target in app_config.targets:
        report.files.extend(await _sync_target(context, target))

    report.skipped_files = context.skipped_files
    if app_config.dry_run:
        logger.info(f"[Dry Run] Would save ledger to '{ledger.path}'.")
    else:
        ledger.save()
        logger.info(f"Saved ledger '{ledger.path}': {ledger.summary()}")

    write_skipped_files_report(app_config.resolve_path(app_config.skipped_report_path), report.skipped_files)
    if report.processed_files_count > 0:
        logger.info(f"Completed synchronization of {report.processed_files_count} file(s).")
    else:
        logger.info("No files were written.")
    return report


def collect_status(app_config: AppConfig) -> List[LanguageStatus]:
    """
    Report per-language translation statistics without modifying any file.

    Files that are missing are reported with ``exists=False``; files that fail
    to parse carry the error message.
    """
    statuses: List[LanguageStatus] = []
    for target in app_config.targets:
        source_path = app_config.resolve_path(target.source)
        try:
            if target.type == GETTEXT_TYPE:
                source_keys = set(po_keys(load_po(source_path)))
            else:
                adapter = get_adapter(target.type)
                source_keys = set(adapter.keys(adapter.parse_file(source_path)))
        except LokitError as e:
            logger.error(f"Cannot read source of target '{target.name}': {e}")
            continue

        for language in app_config.languages_for(target):
            target_path = app_config.resolve_path(target.target_path(language))
            status = LanguageStatus(target=target.name, language=language,
                                    path=target_key(os.path.relpath(target_path, app_config.project_root)),
                                    exists=os.path.exists(target_path))
            statuses.append(status)
            if not status.exists:
                status.missing_keys = set(source_keys)
                continue
            try:
                if target.type == GETTEXT_TYPE:
                    po = load_po(target_path)
                    status.total, status.translated, status.fuzzy, status.untranslated = po_stats(po)
                    status.missing_keys, status.extra_keys = check_key_coverage(source_keys, set(po_keys(po)))
                else:
                    document = adapter.parse_file(target_path)
                    status.total, status.translated, status.untranslated = adapter.stats(document)
                    status.missing_keys, status.extra_keys = check_key_coverage(
                        source_keys, set(adapter.keys(document)))
            except LokitError as e:
                status.error = str(e)
    return statuses


async def _untranslated_passthrough(request: TranslationRequest) -> Any:
    """Placeholder translator that leaves every unit untranslated."""
    return None


async def main():
    """
    Synchronize all targets of the project in the working directory.

    No translator is wired in here; keys are synchronized and new files are
    created, but untranslated units stay empty.
    """
    app_config = load_app_config()
    report = await run_sync(app_config, _untranslated_passthrough)
    for status in collect_status(app_config):
        logger.info(f"{status.target} [{status.language}]: {status.translated}/{status.total} translated, "
                    f"{status.untranslated} untranslated")
    if report.skipped_files:
        logger.warning(f"{len(report.skipped_files)} file(s) were skipped.")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except LokitError as main_exc:
        logging.getLogger("lokit").error(f"Synchronization aborted: {main_exc}")
        sys.exit(1)
