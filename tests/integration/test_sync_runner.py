"""
End-to-end tests for the synchronization runner.

Each test builds a small project in a temporary directory (a .lokit.yaml plus
source files for several formats) and runs it against a fake translator that
prefixes every source string with the target language.
"""
import os

import polib
import pytest
import yaml

from lokit.app_config import load_app_config
from lokit.change_ledger import LEDGER_FILE_NAME, ChangeLedger
from lokit.errors import LedgerFormatError
from lokit.properties_parser import PropertiesAdapter
from lokit.android_resources import AndroidAdapter
from lokit.resource_model import UnitKind
from lokit.sync_runner import TranslationRequest, collect_status, run_sync

PROPERTIES_SOURCE = """\
# Greetings
greeting=Hello {0}
title=Lokit
"""

STRINGS_XML = """\
<?xml version="1.0" encoding="utf-8"?>
<resources>
    <string name="app_name" translatable="false">Lokit</string>
    <string name="title">Hello</string>
    <string-array name="planets">
        <item>Mercury</item>
        <item>Venus</item>
    </string-array>
    <plurals name="files">
        <item quantity="one">%d file</item>
        <item quantity="other">%d files</item>
    </plurals>
</resources>
"""

MESSAGES_POT = """\
msgid ""
msgstr ""
"Content-Type: text/plain; charset=UTF-8\\n"

msgid "Open"
msgstr ""

msgid "%d file"
msgid_plural "%d files"
msgstr[0] ""
msgstr[1] ""
"""

CONFIG = {
    "source_lang": "en",
    "languages": ["de"],
    "max_concurrent_api_calls": 2,
    "rate_limit": {"max_rate": 1000, "time_period": 1},
    "targets": [
        {"name": "bundle", "type": "properties", "source": "i18n/messages.properties",
         "path": "i18n/messages_{lang_underscore}.properties"},
        {"name": "app", "type": "android", "source": "res/values/strings.xml",
         "path": "res/values-{android_lang}/strings.xml"},
        {"name": "po", "type": "gettext", "source": "po/messages.pot", "path": "po/{lang}.po"},
    ],
}


class FakeTranslator:
    """Prefixes source text with the language; records every request."""

    def __init__(self, fail_keys=(), drop_placeholders_keys=()):
        self.requests = []
        self.fail_keys = set(fail_keys)
        self.drop_placeholders_keys = set(drop_placeholders_keys)

    async def __call__(self, request: TranslationRequest):
        self.requests.append(request)
        if request.key in self.fail_keys:
            raise RuntimeError("service unavailable")
        prefix = f"[{request.language}]"
        if request.key in self.drop_placeholders_keys:
            return f"{prefix} no placeholders"
        if request.kind == UnitKind.ORDERED_LIST:
            return [f"{prefix} {item}" for item in request.source_items]
        if request.kind == UnitKind.QUANTITY_SET:
            if request.context.get("format") == "gettext":
                return {index: f"{prefix} {request.source_plurals['other']}"
                        for index in range(request.context["nplurals"])}
            return {quantity: f"{prefix} {form}" for quantity, form in request.source_plurals.items()}
        return f"{prefix} {request.source_value}"

    def keys(self):
        return sorted(request.key for request in self.requests)


@pytest.fixture
def project(tmp_path, write_file, clean_lokit_env):
    write_file("i18n/messages.properties", PROPERTIES_SOURCE)
    write_file("res/values/strings.xml", STRINGS_XML)
    write_file("po/messages.pot", MESSAGES_POT)
    with open(tmp_path / ".lokit.yaml", "w", encoding="utf-8") as f:
        yaml.safe_dump(CONFIG, f)
    return tmp_path


def _config(project):
    return load_app_config(str(project), configure_logging=False)


@pytest.mark.asyncio
async def test_first_run_creates_and_translates_every_target(project):
    translator = FakeTranslator()
    report = await run_sync(_config(project), translator)

    assert report.skipped_files == {}
    assert report.processed_files_count == 3
    assert all(result.created and result.failed == 0 for result in report.files)

    bundle = PropertiesAdapter().parse_file(str(project / "i18n" / "messages_de.properties"))
    assert bundle.get("greeting") == "[de] Hello {0}"
    assert (project / "i18n" / "messages_de.properties").read_text(encoding="utf-8").startswith("# Greetings\n")

    strings = AndroidAdapter().parse_file(str(project / "res" / "values-de" / "strings.xml"))
    assert strings.unit("app_name") is None
    assert strings.get("title") == "[de] Hello"
    assert strings.unit("planets").items == ["[de] Mercury", "[de] Venus"]
    assert strings.unit("files").plurals == {"one": "[de] %d file", "other": "[de] %d files"}

    po = polib.pofile(str(project / "po" / "de.po"))
    assert po.metadata["Language"] == "de"
    assert po.find("Open").msgstr == "[de] Open"
    assert po.find("%d file").msgstr_plural == {0: "[de] %d files", 1: "[de] %d files"}

    ledger = ChangeLedger.load(str(project))
    assert ledger.targets() == ["i18n/messages_de.properties", "po/de.po", "res/values-de/strings.xml"]
    assert ledger.stats() == (3, 7)


@pytest.mark.asyncio
async def test_second_run_is_a_no_op(project):
    await run_sync(_config(project), FakeTranslator())
    translator = FakeTranslator()
    report = await run_sync(_config(project), translator)

    assert translator.requests == []
    assert report.processed_files_count == 0


@pytest.mark.asyncio
async def test_changed_source_string_is_retranslated(project, write_file):
    await run_sync(_config(project), FakeTranslator())
    write_file("i18n/messages.properties", PROPERTIES_SOURCE.replace("title=Lokit", "title=Lokit 2")
               + "subtitle=Sync\n")

    translator = FakeTranslator()
    report = await run_sync(_config(project), translator)

    assert translator.keys() == ["subtitle", "title"]
    bundle = PropertiesAdapter().parse_file(str(project / "i18n" / "messages_de.properties"))
    assert bundle.get("title") == "[de] Lokit 2"
    assert bundle.get("greeting") == "[de] Hello {0}"
    assert [result.path for result in report.files if result.written] == ["i18n/messages_de.properties"]


@pytest.mark.asyncio
async def test_removed_source_key_is_dropped_from_target_and_ledger(project, write_file):
    await run_sync(_config(project), FakeTranslator())
    write_file("i18n/messages.properties", "greeting=Hello {0}\n")

    report = await run_sync(_config(project), FakeTranslator())

    bundle_result = next(result for result in report.files if result.target == "bundle")
    assert bundle_result.keys_removed == 1
    content = (project / "i18n" / "messages_de.properties").read_text(encoding="utf-8")
    assert "title" not in content
    ledger = ChangeLedger.load(str(project))
    assert not ledger.is_changed("i18n/messages_de.properties", "greeting", "greeting\x00Hello {0}")
    assert ledger.filter_changed("i18n/messages_de.properties", {"title": "title\x00Lokit"}) == \
        {"title": "title\x00Lokit"}


@pytest.mark.asyncio
async def test_translator_failure_leaves_unit_untranslated(project):
    report = await run_sync(_config(project), FakeTranslator(fail_keys={"title"}))

    failed = {result.target: result.failed for result in report.files}
    # "title" exists in both the properties bundle and the Android strings.
    assert failed == {"bundle": 1, "app": 1, "po": 0}
    bundle = PropertiesAdapter().parse_file(str(project / "i18n" / "messages_de.properties"))
    assert bundle.get("title") == ""

    retry = FakeTranslator()
    await run_sync(_config(project), retry)
    assert retry.keys() == ["title", "title"]


@pytest.mark.asyncio
async def test_translation_failing_validation_is_discarded(project):
    report = await run_sync(_config(project), FakeTranslator(drop_placeholders_keys={"greeting"}))

    bundle_result = next(result for result in report.files if result.target == "bundle")
    assert bundle_result.failed == 1
    assert bundle_result.translated == 1
    bundle = PropertiesAdapter().parse_file(str(project / "i18n" / "messages_de.properties"))
    assert bundle.get("greeting") == ""


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(project, clean_lokit_env):
    clean_lokit_env.setenv("LOKIT_DRY_RUN", "1")
    translator = FakeTranslator()

    report = await run_sync(_config(project), translator)

    assert translator.requests == []
    assert report.processed_files_count == 0
    assert [result.requested for result in report.files] == [2, 3, 2]
    assert not (project / "i18n" / "messages_de.properties").exists()
    assert not (project / LEDGER_FILE_NAME).exists()


@pytest.mark.asyncio
async def test_unparsable_target_is_skipped_and_reported(project, write_file):
    write_file("res/values-de/strings.xml", "<resources><string name='title'>")

    report = await run_sync(_config(project), FakeTranslator())

    assert list(report.skipped_files) == ["res/values-de/strings.xml"]
    assert sorted(result.target for result in report.files) == ["bundle", "po"]
    report_text = (project / "logs" / "skipped_files_report.log").read_text(encoding="utf-8")
    assert "## ⚠️ Translation Pipeline Warnings" in report_text
    assert "### 📄 `res/values-de/strings.xml`" in report_text

    # Once the file is fixed the stale report is removed.
    os.remove(project / "res" / "values-de" / "strings.xml")
    await run_sync(_config(project), FakeTranslator())
    assert not (project / "logs" / "skipped_files_report.log").exists()


@pytest.mark.asyncio
async def test_corrupt_ledger_aborts_the_run(project):
    (project / LEDGER_FILE_NAME).write_text("version: [broken\n", encoding="utf-8")
    with pytest.raises(LedgerFormatError):
        await run_sync(_config(project), FakeTranslator())


@pytest.mark.asyncio
async def test_existing_po_file_is_merged(project, write_file):
    await run_sync(_config(project), FakeTranslator())
    write_file("po/messages.pot", MESSAGES_POT.replace('msgid "Open"', 'msgid "Close"'))

    translator = FakeTranslator()
    report = await run_sync(_config(project), translator)

    assert translator.keys() == ["Close"]
    po_result = next(result for result in report.files if result.target == "po")
    assert (po_result.keys_added, po_result.keys_removed) == (1, 1)
    po = polib.pofile(str(project / "po" / "de.po"))
    assert po.find("Close").msgstr == "[de] Close"
    assert po.find("Open", include_obsolete_entries=True).obsolete


@pytest.mark.asyncio
async def test_retranslate_ignores_the_ledger(project):
    await run_sync(_config(project), FakeTranslator())
    translator = FakeTranslator()

    await run_sync(_config(project), translator, retranslate=True)

    assert len(translator.requests) == 7


@pytest.mark.asyncio
async def test_collect_status(project):
    before = {status.target: status for status in collect_status(_config(project))}
    assert before["bundle"].exists is False
    assert before["bundle"].missing_keys == {"greeting", "title"}

    await run_sync(_config(project), FakeTranslator(fail_keys={"Open"}))

    after = {status.target: status for status in collect_status(_config(project))}
    assert (after["bundle"].total, after["bundle"].translated, after["bundle"].untranslated) == (2, 2, 0)
    assert (after["po"].total, after["po"].translated, after["po"].untranslated) == (2, 1, 1)
    assert after["app"].missing_keys == set()
    assert after["app"].extra_keys == set()


def _write_config(project, config):
    with open(project / ".lokit.yaml", "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f)


@pytest.mark.asyncio
async def test_failed_markdown_section_keeps_its_place(tmp_path, write_file, clean_lokit_env):
    write_file("docs/en/guide.md", "# One\n\nalpha\n\n# Two\n\nbeta\n\n# Three\n\ngamma\n")
    _write_config(tmp_path, {
        "languages": ["de"],
        "targets": [{"name": "docs", "type": "markdown", "source": "docs/en/guide.md",
                     "path": "docs/{lang}/guide.md"}],
    })

    report = await run_sync(_config(tmp_path), FakeTranslator(fail_keys={"sec:1"}))
    assert report.files[0].failed == 1

    retry = FakeTranslator()
    await run_sync(_config(tmp_path), retry)

    assert retry.keys() == ["sec:1"]
    content = (tmp_path / "docs" / "de" / "guide.md").read_text(encoding="utf-8")
    assert content == (
        "<!-- lokit:sec:0 -->\n\n[de] # One\n\nalpha\n\n"
        "<!-- lokit:sec:1 -->\n\n[de] # Two\n\nbeta\n\n"
        "<!-- lokit:sec:2 -->\n\n[de] # Three\n\ngamma\n"
    )

    again = FakeTranslator()
    await run_sync(_config(tmp_path), again)
    assert again.requests == []


def _mark_fuzzy(po_path, msgid):
    po = polib.pofile(str(po_path))
    po.find(msgid).flags.append("fuzzy")
    po.save(str(po_path))


@pytest.mark.asyncio
async def test_fuzzy_po_entry_is_retranslated(project):
    await run_sync(_config(project), FakeTranslator())
    _mark_fuzzy(project / "po" / "de.po", "Open")

    translator = FakeTranslator()
    await run_sync(_config(project), translator)

    assert translator.keys() == ["Open"]
    entry = polib.pofile(str(project / "po" / "de.po")).find("Open")
    assert entry.flags == []
    assert entry.msgstr == "[de] Open"


@pytest.mark.asyncio
async def test_fuzzy_po_entry_is_kept_when_disabled(project):
    _write_config(project, dict(CONFIG, translate_fuzzy=False))
    await run_sync(_config(project), FakeTranslator())
    _mark_fuzzy(project / "po" / "de.po", "Open")

    translator = FakeTranslator()
    await run_sync(_config(project), translator)

    assert translator.requests == []
    assert polib.pofile(str(project / "po" / "de.po")).find("Open").flags == ["fuzzy"]


@pytest.mark.asyncio
async def test_po_target_with_invalid_encoding_is_skipped(project):
    (project / "po").joinpath("de.po").write_bytes(b'msgid "Open"\nmsgstr "\xd6ffnen"\n')

    report = await run_sync(_config(project), FakeTranslator())

    assert list(report.skipped_files) == ["po/de.po"]
    assert "not a valid UTF-8 file" in report.skipped_files["po/de.po"][0]
    assert sorted(result.target for result in report.files) == ["app", "bundle"]
