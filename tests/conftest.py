"""Shared fixtures: small event documents in RPG Maker MV/MZ shape."""

import copy
import os

# Qt worker threads run headless under test.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest


def cmd(code, params, indent=0):
    return {"code": code, "indent": indent, "parameters": params}


def end():
    return cmd(0, [])


@pytest.fixture
def map_doc():
    """Map with one event, two pages: dialogue, choices, plugin call."""
    return {
        "displayName": "村",
        "width": 17,
        "events": [
            None,
            {
                "id": 1,
                "name": "村人",
                "note": "",
                "x": 3,
                "y": 4,
                "pages": [
                    {
                        "list": [
                            cmd(101, ["Actor1", 0, 0, 2, "ハロルド"]),
                            cmd(401, ["こんにちは"]),
                            cmd(401, ["いい天気ですね"]),
                            cmd(102, [["はい", "いいえ"], 1, 0, 2, 0]),
                            cmd(402, [0, "はい"]),
                            cmd(401, ["よかった"], indent=1),
                            cmd(0, [], indent=1),
                            cmd(402, [1, "いいえ"]),
                            cmd(0, [], indent=1),
                            cmd(404, []),
                            cmd(357, ["TorigoyaMZ_NotifyMessage", "notify", "通知",
                                      {"message": "宝箱を見つけた", "icon": "87"}]),
                            end(),
                        ],
                    },
                    {
                        "list": [
                            cmd(101, ["", 0, 0, 2]),
                            cmd(401, ["……"]),
                            end(),
                        ],
                    },
                ],
            },
        ],
    }


@pytest.fixture
def common_events_doc():
    return [
        None,
        {
            "id": 1,
            "name": "オープニング",
            "switchId": 1,
            "trigger": 0,
            "list": [
                cmd(108, ["演出開始"]),
                cmd(408, ["フェードイン"]),
                cmd(108, [";メモ: 翻訳しない"]),
                cmd(105, [2, False]),
                cmd(405, ["遠い昔"]),
                cmd(405, ["ある王国で"]),
                cmd(320, [1, "アレックス"]),
                cmd(356, ["ShowInfo 新しい仲間が加わった"]),
                end(),
            ],
        },
    ]


@pytest.fixture
def troops_doc():
    return [
        None,
        {
            "id": 1,
            "name": "スライム*2",
            "members": [],
            "pages": [
                {"conditions": {}, "span": 0, "list": [
                    cmd(101, ["", 0, 0, 2, "スライム"]),
                    cmd(401, ["ぷるぷる"]),
                    end(),
                ]},
            ],
        },
    ]


@pytest.fixture
def fresh():
    """Deep-copy helper so tests can compare before/after."""
    return copy.deepcopy
