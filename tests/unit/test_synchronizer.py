from lokit.resource_model import ResourceDocument, StructuralElement, TranslationUnit, UnitKind
from lokit.synchronizer import new_translation_file, sync_keys


def _target():
    return ResourceDocument([
        TranslationUnit(key="title", value="Hallo"),
        TranslationUnit(key="planets", kind=UnitKind.SCALAR, value="Merkur, Venus"),
        TranslationUnit(key="obsolete", value="Alt"),
        TranslationUnit(key="local_only", value="keep me", translatable=False),
        StructuralElement("comment", "Translator notes"),
    ])


class TestSyncKeys:
    def test_converges_key_sets(self, source_document):
        target = _target()
        sync_keys(source_document, target)
        assert set(target.keys()) == set(source_document.keys())

    def test_preserves_existing_values(self, source_document):
        target = _target()
        sync_keys(source_document, target)
        assert target.get("title") == "Hallo"

    def test_counts_and_appends_missing_keys_in_source_order(self, source_document):
        target = _target()
        added = sync_keys(source_document, target)
        # greeting and files are new; planets changed kind.
        assert added == 3
        assert target.keys() == ["title", "planets", "greeting", "files"]
        assert target.unit("files").plurals == {"one": "", "other": ""}

    def test_kind_change_replaces_unit_in_place(self, source_document):
        target = _target()
        sync_keys(source_document, target)
        planets = target.unit("planets")
        assert planets.kind == UnitKind.ORDERED_LIST
        assert planets.items == ["", ""]
        assert target.keys().index("planets") == 1

    def test_removes_stale_translatable_keys_only(self, source_document):
        target = _target()
        sync_keys(source_document, target)
        assert target.unit("obsolete") is None
        assert target.unit("local_only").value == "keep me"
        assert any(isinstance(element, StructuralElement) for element in target.elements)

    def test_is_idempotent(self, source_document):
        target = _target()
        sync_keys(source_document, target)
        snapshot = [(unit.key, unit.kind, unit.value, list(unit.items), dict(unit.plurals))
                    for unit in target.units()]
        assert sync_keys(source_document, target) == 0
        assert [(unit.key, unit.kind, unit.value, list(unit.items), dict(unit.plurals))
                for unit in target.units()] == snapshot

    def test_non_translatable_target_copy_is_replaced(self):
        source = ResourceDocument([TranslationUnit(key="name", value="Name")])
        target = ResourceDocument([TranslationUnit(key="name", value="fixed", translatable=False)])
        assert sync_keys(source, target) == 1
        assert target.keys() == ["name"]
        assert target.get("name") == ""

    def test_empty_inputs(self):
        assert sync_keys(ResourceDocument(), ResourceDocument()) == 0
        target = ResourceDocument([TranslationUnit(key="a", value="x")])
        assert sync_keys(ResourceDocument(), target) == 0
        assert target.keys() == []

    def test_leaves_metadata_alone(self):
        source = ResourceDocument([TranslationUnit(key="a", value="x")], metadata={"root_locale_key": "en"})
        target = ResourceDocument(metadata={"root_locale_key": "de"})
        sync_keys(source, target)
        assert target.metadata == {"root_locale_key": "de"}


class TestNewTranslationFile:
    def test_clears_translatable_units_and_keeps_shape(self, source_document):
        target = new_translation_file(source_document)
        assert target.keys() == source_document.keys()
        assert target.untranslated_keys() == target.keys()
        assert target.unit("planets").items == ["", ""]
        assert list(target.unit("files").plurals) == ["one", "other"]

    def test_copies_non_translatable_units_and_structure(self, source_document):
        target = new_translation_file(source_document)
        assert target.unit("app_id").value == "com.example.app"
        assert isinstance(target.elements[0], StructuralElement)
        assert target.elements[0] is not source_document.elements[0]

    def test_does_not_touch_source(self, source_document):
        new_translation_file(source_document)
        assert source_document.get("title") == "Hello"

    def test_rewrites_metadata_for_language(self):
        source = ResourceDocument(metadata={"root_locale_key": "en"})
        calls = []

        def rewrite(document, language):
            calls.append(language)
            document.metadata["root_locale_key"] = language

        target = new_translation_file(source, "de", rewrite)
        assert calls == ["de"]
        assert target.metadata["root_locale_key"] == "de"
        assert source.metadata["root_locale_key"] == "en"
