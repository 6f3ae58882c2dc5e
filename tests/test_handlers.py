"""Tests for the per-code handlers, driven one command list at a time."""

import pytest

from conftest import cmd, end
from event_translator.context import ExtractionContext, ExtractionResult
from event_translator.errors import InvalidCommand
from event_translator.event_codes import EventCode
from event_translator.event_walker import extract_page, inject_page
from event_translator.handlers import (
    ChoicesHandler, HandlerRegistry, MVPluginCommandHandler, StructuralHandler,
)
from event_translator.plugin_config import (
    PluginConfigStore, PluginExtractionConfig, PluginFieldConfig,
)
from event_translator.settings import ExtractionOptions, InjectionOptions
from event_translator.translation_path import TranslationPath

LIST = TranslationPath.parse("0.list")


def extract(commands, options=None, store=None):
    options = options or ExtractionOptions()
    registry = HandlerRegistry.with_defaults(store)
    return extract_page(commands, LIST, ExtractionContext(), registry, options)


def inject(commands, translations, options=None, inject_options=None, store=None):
    registry = HandlerRegistry.with_defaults(store)
    return inject_page(commands, LIST, ExtractionContext(), registry, translations,
                       options or ExtractionOptions(), inject_options or InjectionOptions())


class TestRegistry:

    def test_defaults_cover_text_codes(self):
        registry = HandlerRegistry.with_defaults()
        for code in (101, 102, 108, 320, 324, 325, 356, 357, 401, 402, 404, 405, 408, 657):
            assert code in registry

    def test_duplicate_registration_rejected(self):
        registry = HandlerRegistry.with_defaults()
        with pytest.raises(ValueError):
            registry.register(StructuralHandler())
        registry.register(StructuralHandler(), replace=True)

    def test_result_must_consume(self):
        with pytest.raises(ValueError):
            ExtractionResult(consumed=0)


class TestDialogue:

    def test_lines_merge_into_one_unit(self):
        found = extract([cmd(101, ["", 0, 0, 2]), cmd(401, ["Hi"]), cmd(401, ["there"]), end()])
        assert len(found.units) == 1
        unit = found.units[0]
        assert unit.id == "0.list.1_dialogue"
        assert str(unit.path) == "0.list.1"
        assert unit.original == "Hi\nthere"
        assert unit.code is EventCode.TEXT_BODY

    def test_different_indent_starts_new_block(self):
        found = extract([cmd(401, ["a"]), cmd(401, ["b"], indent=1)])
        assert [u.original for u in found.units] == ["a", "b"]
        assert [u.id for u in found.units] == ["0.list.0_dialogue", "0.list.1_dialogue"]

    def test_speaker_from_header(self):
        found = extract([cmd(101, ["", 0, 0, 2, "リード"]), cmd(401, ["やあ"])])
        assert found.units[0].speaker == "リード"

    def test_header_without_name_clears_speaker(self):
        found = extract([
            cmd(101, ["", 0, 0, 2, "リード"]), cmd(401, ["やあ"]),
            cmd(101, ["", 0, 0, 2]), cmd(401, ["……"]),
        ])
        assert found.units[1].speaker is None

    def test_namebox_speaker(self):
        found = extract([cmd(101, ["", 0, 0, 2]), cmd(401, ["\\n<ミナ>おはよう"])])
        assert found.units[0].speaker == "ミナ"

    def test_speaker_name_unit_is_opt_in(self):
        commands = [cmd(101, ["", 0, 0, 2, "リード"]), cmd(401, ["やあ"])]
        assert len(extract(commands).units) == 1
        found = extract(commands, ExtractionOptions(extract_speaker_names=True))
        assert found.units[0].id == "0.list.0_speaker"
        assert str(found.units[0].path) == "0.list.0.parameters.4"

    def test_preceding_lines_are_bounded(self):
        commands = [cmd(401, [f"line{n}"], indent=n) for n in range(4)]
        found = extract(commands, ExtractionOptions(max_preceding_lines=2))
        assert found.units[3].context.preceding_lines == ("line1", "line2")

    def test_blank_text_skipped_unless_included(self):
        commands = [cmd(401, ["  "])]
        assert extract(commands).units == []
        assert len(extract(commands, ExtractionOptions(include_empty=True)).units) == 1

    def test_require_cjk_filter(self):
        commands = [cmd(401, ["OK"]), cmd(401, ["はい"], indent=1)]
        found = extract(commands, ExtractionOptions(require_cjk=True))
        assert [u.original for u in found.units] == ["はい"]

    def test_embedded_line_break_is_flagged(self):
        found = extract([cmd(401, ["一行目\n二行目"])])
        assert "embedded_line_break" in found.units[0].context.tags
        assert found.warnings

    def test_injection_replaces_whole_run(self):
        commands = [cmd(101, ["", 0, 0, 2]), cmd(401, ["Hi"]), cmd(401, ["there"]), end()]
        done = inject(commands, {"0.list.1_dialogue": "안녕\n거기"})
        assert done.applied == 1
        assert [c["parameters"][0] for c in commands[1:3]] == ["안녕", "거기"]
        assert [c["code"] for c in commands] == [101, 401, 401, 0]

    def test_injection_shrinks_run(self):
        commands = [cmd(401, ["a"]), cmd(401, ["b"]), end()]
        done = inject(commands, {"0.list.0_dialogue": "ab"})
        assert done.applied == 1
        assert commands == [cmd(401, ["ab"]), end()]

    def test_injection_grows_run_from_last_template(self):
        commands = [cmd(401, ["a"], indent=2), end()]
        inject(commands, {"0.list.0_dialogue": "x\ny\nz"})
        assert commands[:3] == [cmd(401, ["x"], 2), cmd(401, ["y"], 2), cmd(401, ["z"], 2)]

    def test_single_line_mode(self):
        commands = [cmd(401, ["a"]), cmd(401, ["b"])]
        inject(commands, {"0.list.0_dialogue": "x\ny"},
               inject_options=InjectionOptions(single_line_mode=True))
        assert commands == [cmd(401, ["x\ny"])]

    def test_line_wrapping(self):
        commands = [cmd(401, ["a"])]
        inject(commands, {"0.list.0_dialogue": "one two three"},
               inject_options=InjectionOptions(max_line_length=7))
        assert [c["parameters"][0] for c in commands] == ["one two", "three"]


class TestScrollText:

    def test_scroll_run(self):
        found = extract([cmd(105, [2, False]), cmd(405, ["遠い昔"]), cmd(405, ["ある王国で"])])
        assert [(u.id, u.original) for u in found.units] == [
            ("0.list.1_scroll_text", "遠い昔\nある王国で")]


class TestComments:

    def test_comment_with_continuation(self):
        found = extract([cmd(108, ["演出開始"]), cmd(408, ["フェードイン"])])
        unit = found.units[0]
        assert unit.id == "0.list.0_comment"
        assert unit.original == "演出開始\nフェードイン"
        assert unit.speaker is None

    def test_skip_prefix(self):
        assert extract([cmd(108, [";memo"])]).units == []

    def test_comments_can_be_disabled(self):
        found = extract([cmd(108, ["メモ"]), cmd(408, ["続き"])],
                        ExtractionOptions(extract_comments=False))
        assert found.units == []

    def test_comment_not_counted_as_preceding_dialogue(self):
        found = extract([cmd(108, ["メモ"]), cmd(401, ["台詞"])])
        assert found.units[1].context.preceding_lines == ()


class TestChoices:

    def commands(self):
        return [
            cmd(102, [["はい", "いいえ"], 1, 0, 2, 0]),
            cmd(402, [0, "はい"]),
            cmd(0, [], indent=1),
            cmd(402, [1, "いいえ"]),
            cmd(0, [], indent=1),
            cmd(404, []),
        ]

    def test_one_unit_per_label(self):
        found = extract(self.commands())
        assert [(u.id, str(u.path)) for u in found.units] == [
            ("0.list.0_choice_0", "0.list.0.parameters.0.0"),
            ("0.list.0_choice_1", "0.list.0.parameters.0.1"),
        ]

    def test_injection_syncs_branches(self):
        commands = self.commands()
        done = inject(commands, {"0.list.0_choice_0": "Yes", "0.list.0_choice_1": "No"})
        assert done.applied == 2
        assert commands[0]["parameters"][0] == ["Yes", "No"]
        assert commands[1]["parameters"] == [0, "Yes"]
        assert commands[3]["parameters"] == [1, "No"]

    def test_branch_sync_can_be_disabled(self):
        commands = self.commands()
        inject(commands, {"0.list.0_choice_0": "Yes"},
               inject_options=InjectionOptions(sync_choice_branches=False))
        assert commands[0]["parameters"][0] == ["Yes", "いいえ"]
        assert commands[1]["parameters"] == [0, "はい"]

    def test_labels_must_be_a_list(self):
        with pytest.raises(InvalidCommand):
            ChoicesHandler().extract([cmd(102, ["はい"])], 0, 0, LIST,
                                     ExtractionContext(), ExtractionOptions())


class TestActorText:

    @pytest.mark.parametrize("code,suffix", [(320, "name"), (324, "nickname"), (325, "profile")])
    def test_actor_fields(self, code, suffix):
        found = extract([cmd(code, [1, "アレックス"])])
        unit = found.units[0]
        assert unit.id == f"0.list.0_{suffix}"
        assert str(unit.path) == "0.list.0.parameters.1"

    def test_injection(self):
        commands = [cmd(320, [1, "アレックス"])]
        inject(commands, {"0.list.0_name": "Alex"})
        assert commands[0]["parameters"] == [1, "Alex"]


class TestScriptText:

    def test_opt_in(self):
        commands = [cmd(657, ["テキスト = ようこそ"])]
        assert extract(commands).units == []
        found = extract(commands, ExtractionOptions(extract_script_text=True))
        assert found.units[0].original == "ようこそ"

    def test_injection_keeps_prefix(self):
        options = ExtractionOptions(extract_script_text=True)
        commands = [cmd(657, ["テキスト = ようこそ"])]
        inject(commands, {"0.list.0_script_text": "Welcome"}, options=options)
        assert commands[0]["parameters"] == ["テキスト = Welcome"]

    def test_script_code_never_extracted(self):
        commands = [cmd(355, ["$gameVariables.setValue(1, 'テスト')"]),
                    cmd(655, ["console.log('ログ')"])]
        assert extract(commands, ExtractionOptions(extract_script_text=True)).units == []


class TestPluginCommands:

    def store(self):
        cfg = PluginExtractionConfig(
            plugin_name="QuestSystem",
            extraction_paths=(PluginFieldConfig("QuestDatas.|ARY|.Title"),),
        )
        return PluginConfigStore([cfg])

    def quest_command(self):
        datas = '["{\\"Title\\":\\"薬草集め\\",\\"Id\\":\\"q1\\"}","{\\"Title\\":\\"竜退治\\",\\"Id\\":\\"q2\\"}"]'
        return cmd(357, ["QuestSystem", "set", "クエスト", {"QuestDatas": datas}])

    def test_configured_fields_only(self):
        found = extract([self.quest_command()], store=self.store())
        assert [(u.id, str(u.path), u.original) for u in found.units] == [
            ("0.list.0_plugin_QuestSystem_QuestDatas_0_Title",
             "0.list.0.parameters.3.QuestDatas.0.Title", "薬草集め"),
            ("0.list.0_plugin_QuestSystem_QuestDatas_1_Title",
             "0.list.0.parameters.3.QuestDatas.1.Title", "竜退治"),
        ]
        assert "plugin:QuestSystem" in found.units[0].context.tags

    def test_unconfigured_plugin_yields_nothing(self):
        found = extract([cmd(357, ["Other", "cmd", "", {"text": "テキスト"}])])
        assert found.units == []

    def test_injection_reencodes_nested_json(self):
        commands = [self.quest_command()]
        done = inject(commands, {"0.list.0_plugin_QuestSystem_QuestDatas_1_Title": "Slay the dragon"},
                      store=self.store())
        assert done.applied == 1 and done.not_found == 1
        datas = commands[0]["parameters"][3]["QuestDatas"]
        assert datas == ('["{\\"Title\\":\\"薬草集め\\",\\"Id\\":\\"q1\\"}",'
                         '"{\\"Title\\":\\"Slay the dragon\\",\\"Id\\":\\"q2\\"}"]')

    def test_plugins_can_be_disabled(self):
        found = extract([self.quest_command()], ExtractionOptions(extract_plugins=False),
                        store=self.store())
        assert found.units == []


class TestMVPluginCommands:

    def test_whitelisted_command(self):
        found = extract([cmd(356, ["ShowInfo 新しい仲間が加わった"])])
        unit = found.units[0]
        assert unit.id == "0.list.0_plugin_mv"
        assert unit.original == "新しい仲間が加わった"
        assert "plugin_mv:ShowInfo" in unit.context.tags

    def test_other_commands_ignored(self):
        assert extract([cmd(356, ["SetSwitch 3 ON"])]).units == []

    def test_injection_substitutes_capture(self):
        commands = [cmd(356, ["D_TEXT 看板 24"])]
        inject(commands, {"0.list.0_plugin_mv": "Sign"})
        assert commands[0]["parameters"] == ["D_TEXT Sign 24"]

    def test_match_returns_prefix(self):
        prefix, m = MVPluginCommandHandler._match("addLog 扉が開いた")
        assert prefix == "addLog"
        assert m.group(1) == "扉が開いた"


class TestLineMerging:

    def test_custom_separator(self):
        found = extract([cmd(401, ["Hi"]), cmd(401, ["there"])],
                        ExtractionOptions(dialogue_line_separator=" | "))
        assert found.units[0].original == "Hi | there"

    def test_visible_separator_splits_back_into_lines(self):
        options = ExtractionOptions(dialogue_line_separator=" | ")
        commands = [cmd(401, ["Hi"]), cmd(401, ["there"])]
        inject(commands, {"0.list.0_dialogue": "안녕 | 거기"}, options=options)
        assert commands == [cmd(401, ["안녕"]), cmd(401, ["거기"])]

    def test_space_separator_writes_one_line(self):
        options = ExtractionOptions.for_machine_translation()
        commands = [cmd(401, ["遠い"]), cmd(401, ["昔"])]
        found = extract(commands, options)
        assert found.units[0].original == "遠い 昔"
        inject(commands, {"0.list.0_dialogue": "Long ago"}, options=options)
        assert commands == [cmd(401, ["Long ago"])]

    def test_space_separator_identity(self, fresh):
        options = ExtractionOptions.for_machine_translation()
        commands = [cmd(401, ["遠い"]), cmd(401, ["昔"]), end()]
        before = fresh(commands)
        done = inject(commands, {"0.list.0_dialogue": "遠い 昔"}, options=options)
        assert done.applied == 1
        assert commands == before

    def test_comments_keep_line_breaks(self):
        found = extract([cmd(108, ["メモ"]), cmd(408, ["続き"])],
                        ExtractionOptions(dialogue_line_separator=" "))
        assert found.units[0].original == "メモ\n続き"

    def test_merge_off_gives_one_unit_per_line(self):
        options = ExtractionOptions(merge_dialogue_lines=False)
        commands = [cmd(101, ["", 0, 0, 2, "リード"]), cmd(401, ["一行目"]), cmd(401, ["二行目"])]
        found = extract(commands, options)
        assert [(u.id, u.original, u.speaker) for u in found.units] == [
            ("0.list.1_dialogue", "一行目", "リード"),
            ("0.list.2_dialogue", "二行目", "リード"),
        ]

    def test_merge_off_injection(self):
        options = ExtractionOptions(merge_dialogue_lines=False)
        commands = [cmd(401, ["一行目"]), cmd(401, ["二行目"])]
        done = inject(commands, {"0.list.0_dialogue": "First\nline", "0.list.1_dialogue": "Second"},
                      options=options)
        assert done.applied == 2
        assert [c["parameters"][0] for c in commands] == ["First", "line", "Second"]


class TestPluginEdgeCases:

    def store(self, *patterns):
        cfg = PluginExtractionConfig(
            plugin_name="P", extraction_paths=tuple(PluginFieldConfig(p) for p in patterns))
        return PluginConfigStore([cfg])

    def test_member_named_parameters_holding_json(self):
        store = self.store("parameters.|ARY|")
        commands = [cmd(357, ["P", "c", "", {"parameters": '["hello"]'}])]
        found = extract(commands, store=store)
        unit = found.units[0]
        assert unit.path.get([{"list": commands}], decode_json=True) == "hello"

        done = inject(commands, {unit.id: "bye"}, store=store)
        assert (done.applied, done.not_found) == (1, 0)
        assert commands[0]["parameters"][3] == {"parameters": '["bye"]'}

    def test_colliding_unit_ids_are_reported(self):
        store = self.store("A.|ARY|.B", "|OBJ|")
        commands = [cmd(357, ["P", "c", "", {"A": [{"B": "一"}], "A_0_B": "二"}])]
        found = extract(commands, store=store)
        assert [u.original for u in found.units] == ["一"]
        assert any("A_0_B" in w for w in found.warnings)
