import logging
import os
import textwrap

import pytest

from lokit.resource_model import ResourceDocument, StructuralElement, TranslationUnit, UnitKind


@pytest.fixture(autouse=True)
def quiet_lokit_logger():
    """Keep handlers configured by one test from leaking into the next."""
    logger = logging.getLogger("lokit")
    yield
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def source_document():
    """A small source document covering every unit kind."""
    return ResourceDocument([
        StructuralElement("comment", "Main screen"),
        TranslationUnit(key="title", value="Hello"),
        TranslationUnit(key="greeting", value="Welcome, {0}!"),
        TranslationUnit(key="planets", kind=UnitKind.ORDERED_LIST, items=["Mercury", "Venus"]),
        TranslationUnit(key="files", kind=UnitKind.QUANTITY_SET,
                        plurals={"one": "%d file", "other": "%d files"}),
        TranslationUnit(key="app_id", value="com.example.app", translatable=False),
    ])


@pytest.fixture
def write_file(tmp_path):
    """Write dedented text under tmp_path and return the absolute path."""
    def _write(relative_path: str, content: str) -> str:
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
        return str(path)
    return _write


@pytest.fixture
def clean_lokit_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("LOKIT_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch
