"""Tests for the translation cache file."""

import json

import pytest

from event_translator.errors import InvalidStructure
from event_translator.project_model import TranslationFile, TranslationStatus
from event_translator.rpgmaker_mv import EventExtractor


@pytest.fixture
def cache(map_doc):
    out = EventExtractor().extract(map_doc, "Map001.json")
    return TranslationFile.from_output(out)


class TestTranslationFile:

    def test_built_from_extraction(self, cache):
        assert cache.source_file == "Map001.json"
        assert cache.total == 6
        assert cache.translated_count == 0
        assert cache.speakers() == ["ハロルド"]
        assert cache.completion_percentage() == 0.0

    def test_set_translation(self, cache):
        assert cache.set_translation("events.1.pages.0.list.5_dialogue", "Great")
        assert not cache.set_translation("no.such.id", "x")
        assert cache.translations() == {"events.1.pages.0.list.5_dialogue": "Great"}
        assert cache.translated_count == 1

    def test_bad_status_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.set_translation("events.1.pages.0.list.5_dialogue", "Great", status="done")

    def test_skipped_units_not_injected(self, cache):
        cache.set_translation("events.1.pages.0.list.5_dialogue", "Great",
                              status=TranslationStatus.SKIPPED)
        assert cache.translations() == {}

    def test_save_and_load(self, cache, tmp_path):
        cache.set_translation("events.1.pages.0.list.3_choice_0", "Yes",
                              status=TranslationStatus.REVIEWED)
        path = tmp_path / "caches" / "Map001.translation.json"
        cache.save(str(path))

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["metadata"]["reviewed"] == 1
        assert raw["units"][0]["path"] == "events.1.pages.0.list.1"

        loaded = TranslationFile.load(str(path))
        assert [e.unit for e in loaded.entries] == [e.unit for e in cache.entries]
        assert loaded.translations() == {"events.1.pages.0.list.3_choice_0": "Yes"}

    def test_load_rejects_bad_status(self, tmp_path, cache):
        data = cache.to_dict()
        data["units"][0]["status"] = "finished"
        path = tmp_path / "bad.json"
        path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        with pytest.raises(InvalidStructure):
            TranslationFile.load(str(path))

    def test_load_rejects_non_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[", encoding="utf-8")
        with pytest.raises(InvalidStructure):
            TranslationFile.load(str(path))

    def test_from_dict_needs_units(self):
        with pytest.raises(InvalidStructure):
            TranslationFile.from_dict({"version": "1.0"})


class TestImportTranslations:

    def test_match_by_id_then_text(self, map_doc, cache):
        cache.set_translation("events.1.pages.0.list.1_dialogue", "Hello\nNice weather")
        cache.set_translation("events.1.pages.0.list.5_dialogue", "Great")

        # A new command ahead of the block moves every id on the page.
        map_doc["events"][1]["pages"][0]["list"].insert(0, {"code": 221, "indent": 0,
                                                            "parameters": []})
        newer = TranslationFile.from_output(EventExtractor().extract(map_doc, "Map001.json"))
        stats = newer.import_translations(cache)

        assert stats == {"by_id": 0, "by_text": 2, "skipped": 0, "new": 4}
        assert newer.translations() == {
            "events.1.pages.0.list.2_dialogue": "Hello\nNice weather",
            "events.1.pages.0.list.6_dialogue": "Great",
        }

    def test_same_document_matches_by_id(self, map_doc, cache):
        cache.set_translation("events.1.pages.0.list.3_choice_1", "No")
        newer = TranslationFile.from_output(EventExtractor().extract(map_doc, "Map001.json"))
        assert newer.import_translations(cache)["by_id"] == 1


class TestMalformedCache:

    def test_non_utf8_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_bytes(b'{"units": ["\xff"]}')
        with pytest.raises(InvalidStructure):
            TranslationFile.load(str(path))

    @pytest.mark.parametrize("unit", [1, "text", None, ["id"]])
    def test_unit_must_be_object(self, unit):
        with pytest.raises(InvalidStructure):
            TranslationFile.from_dict({"units": [unit]})

    def test_context_must_be_object(self, cache):
        data = cache.to_dict()
        data["units"][0]["context"] = ["村人"]
        with pytest.raises(InvalidStructure):
            TranslationFile.from_dict(data)

    def test_bad_path_in_unit(self, cache):
        data = cache.to_dict()
        data["units"][0]["path"] = "events..1"
        with pytest.raises(InvalidStructure):
            TranslationFile.from_dict(data)
