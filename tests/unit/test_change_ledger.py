import os
from concurrent.futures import ThreadPoolExecutor

import pytest
import yaml

from lokit.change_ledger import (
    LEDGER_FILE_NAME,
    LEDGER_VERSION,
    ChangeLedger,
    compute_hash,
    kv_entry_content,
    po_entry_content,
    po_entry_key,
    target_key,
)
from lokit.errors import LedgerFormatError


def test_update_save_and_reload(tmp_path):
    ledger = ChangeLedger.load(str(tmp_path))
    ledger.update("po/ru.po", "Hello", "Hello")
    ledger.update("po/ru.po", "World", "World")
    ledger.save()

    reloaded = ChangeLedger.load(str(tmp_path))
    assert reloaded.stats() == (1, 2)

    changed = reloaded.filter_changed("po/ru.po", {"Hello": "Hello", "World": "World!", "New": "x"})
    assert changed == {"World": "World!", "New": "x"}


def test_saved_file_layout(tmp_path):
    ledger = ChangeLedger.load(str(tmp_path))
    ledger.update("po/ru.po", "Hello", "Hello")
    ledger.save()

    with open(os.path.join(str(tmp_path), LEDGER_FILE_NAME), encoding="utf-8") as f:
        data = yaml.safe_load(f)
    assert data == {"version": LEDGER_VERSION, "checksums": {"po/ru.po": {"Hello": compute_hash("Hello")}}}
    # No temp files are left next to the ledger.
    assert os.listdir(str(tmp_path)) == [LEDGER_FILE_NAME]


def test_missing_file_gives_empty_ledger(tmp_path):
    ledger = ChangeLedger.load(str(tmp_path))
    assert ledger.stats() == (0, 0)
    assert ledger.version == LEDGER_VERSION
    assert ledger.summary() == "empty"
    assert ledger.path == os.path.join(str(tmp_path), LEDGER_FILE_NAME)


def test_empty_file_gives_empty_ledger(tmp_path):
    (tmp_path / LEDGER_FILE_NAME).write_text("", encoding="utf-8")
    assert ChangeLedger.load(str(tmp_path)).stats() == (0, 0)


@pytest.mark.parametrize("content", [
    "version: [unclosed\n",
    "checksums: {}\n",
    "version: 1\nchecksums:\n  po/ru.po:\n    Hello: not-a-digest\n",
    "version: 99\n",
    "- just\n- a list\n",
])
def test_corrupt_file_raises(tmp_path, content):
    (tmp_path / LEDGER_FILE_NAME).write_text(content, encoding="utf-8")
    with pytest.raises(LedgerFormatError):
        ChangeLedger.load(str(tmp_path))


def test_is_changed_is_sensitive_to_content():
    ledger = ChangeLedger("unused")
    assert ledger.is_changed("t", "k", "v")
    ledger.update("t", "k", "v")
    assert not ledger.is_changed("t", "k", "v")
    assert ledger.is_changed("t", "k", "v2")
    assert ledger.is_changed("other", "k", "v")


def test_key_value_fingerprint_covers_key_and_value():
    ledger = ChangeLedger("unused")
    ledger.update("t", "a", kv_entry_content("a", "Hello"))
    assert not ledger.is_changed("t", "a", kv_entry_content("a", "Hello"))
    assert ledger.is_changed("t", "a", kv_entry_content("a", "Hello!"))
    assert kv_entry_content("a", "b") != kv_entry_content("ab", "")


def test_update_batch_then_filter_is_a_no_op():
    entries = {"one": "One", "two": "Two"}
    ledger = ChangeLedger("unused")
    ledger.update_batch("t", entries)
    assert ledger.filter_changed("t", entries) == {}


def test_shared_ledger_across_threads():
    ledger = ChangeLedger("unused")
    targets = [f"po/{n}.po" for n in range(4)]
    batches = 40
    keys_per_batch = 50

    def batch_entries(batch):
        return {f"k{batch}-{i}": f"v{batch}-{i}" for i in range(keys_per_batch)}

    def write_and_check(batch):
        target = targets[batch % len(targets)]
        entries = batch_entries(batch)
        ledger.update_batch(target, entries)
        recorded_targets, recorded_keys = ledger.stats()
        assert recorded_targets <= len(targets)
        assert keys_per_batch <= recorded_keys <= batches * keys_per_batch
        return ledger.filter_changed(target, entries)

    with ThreadPoolExecutor(max_workers=8) as executor:
        leftovers = list(executor.map(write_and_check, range(batches)))

    assert leftovers == [{}] * batches
    assert ledger.stats() == (len(targets), batches * keys_per_batch)
    for batch in range(batches):
        target = targets[batch % len(targets)]
        assert ledger.filter_changed(target, batch_entries(batch)) == {}
        assert ledger.is_changed(target, f"k{batch}-0", "something else")


def test_clean_drops_dead_keys_and_keeps_target():
    ledger = ChangeLedger("unused")
    ledger.update_batch("t", {"a": "1", "b": "2"})
    assert ledger.clean("t", ["a"]) == 1
    assert ledger.stats() == (1, 1)
    assert ledger.clean("t", []) == 1
    # An emptied target stays in the ledger.
    assert ledger.targets() == ["t"]
    assert ledger.clean("unknown", []) == 0


def test_remove_target_and_summary():
    ledger = ChangeLedger("unused")
    ledger.update("b.po", "x", "x")
    ledger.update_batch("a.po", {"x": "x", "y": "y"})
    assert ledger.targets() == ["a.po", "b.po"]
    assert ledger.summary() == "2 targets, 3 keys (a.po: 2 keys, b.po: 1 keys)"
    ledger.remove_target("a.po")
    assert ledger.targets() == ["b.po"]


def test_key_helpers():
    assert po_entry_key("Open") == "Open"
    assert po_entry_key("Open", "menu") == "menu|Open"
    assert po_entry_content("file") == "file"
    assert po_entry_content("%d file", "%d files") == "%d file\x00%d files"
    assert target_key("po\\ru.po") == "po/ru.po"
    assert compute_hash("Hello") == "8b1a9953c4611296a827abf8c47804d7"
