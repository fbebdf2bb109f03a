from __future__ import annotations

import unittest

from agents.outline_agent import OutlineAgent, fallback_sections, parse_outline_reply
from fakes import ScriptedProvider, make_trend
from lib.errors import ParseError, ProviderError
from schemas.common import KeywordPreference, TargetLength
from schemas.outline import OutlineGenerationRequest


REPLY = """
見出し0（Lead）：リード文
説明：読者を惹きつける導入
推定文字数：250字

見出し1 (H2): エスプレッソマシンの選び方
説明: 選ぶときのポイント
推定文字数: 1,200

  見出し1-1 (H3): 価格帯
  説明: 価格の目安

**見出し2 (H2): お手入れのコツ**
説明: 長持ちさせる方法
推定文字数: 400字
"""


def _request(**overrides) -> OutlineGenerationRequest:
    data = {"keywords": ["エスプレッソマシン"], "trend_data": make_trend()}
    data.update(overrides)
    return OutlineGenerationRequest(**data)


class TestOutlineReplyParser(unittest.TestCase):
    def test_parses_headings_fields_and_fullwidth_punctuation(self) -> None:
        headings = parse_outline_reply(REPLY)

        self.assertEqual([h.title for h in headings], ["リード文", "エスプレッソマシンの選び方", "価格帯", "お手入れのコツ"])
        self.assertEqual([h.level for h in headings], [2, 2, 3, 2])
        self.assertEqual([h.is_lead for h in headings], [True, False, False, False])
        self.assertEqual([h.estimated_word_count for h in headings], [250, 1200, 300, 400])
        self.assertEqual(headings[0].description, "読者を惹きつける導入")
        self.assertEqual(headings[2].description, "価格の目安")

    def test_unrelated_lines_are_ignored(self) -> None:
        headings = parse_outline_reply("以下が構成案です。\n\n見出し1 (H2): 基本\nメモ: 無視される行\n推定文字数: 500")
        self.assertEqual(len(headings), 1)
        self.assertEqual(headings[0].estimated_word_count, 500)

    def test_no_headings_is_a_parse_error(self) -> None:
        with self.assertRaises(ParseError):
            parse_outline_reply("申し訳ありませんが、構成を作成できませんでした。")


class TestFallbackSections(unittest.TestCase):
    def test_medium_and_short_use_three_sections(self) -> None:
        for length in (TargetLength.short, TargetLength.medium):
            sections = fallback_sections("エスプレッソマシン", length)
            self.assertEqual(
                [s.title for s in sections],
                ["リード文", "エスプレッソマシンとは", "エスプレッソマシンの特徴"],
            )
            self.assertTrue(sections[0].is_lead)

    def test_long_uses_five_sections(self) -> None:
        sections = fallback_sections("エスプレッソマシン", TargetLength.long)
        self.assertEqual(len(sections), 5)
        self.assertEqual(sections[-1].title, "まとめ")
        self.assertEqual([s.estimated_word_count for s in sections], [300, 400, 500, 600, 300])


class TestOutlineAgent(unittest.TestCase):
    def test_builds_outline_from_reply(self) -> None:
        outline = OutlineAgent(ScriptedProvider([REPLY])).run(_request())

        self.assertEqual(len(outline.sections), 4)
        self.assertTrue(outline.sections[0].is_lead)
        self.assertEqual([s.order for s in outline.sections], [0, 1, 2, 3])
        self.assertEqual(outline.estimated_word_count, 250 + 1200 + 300 + 400)
        self.assertEqual(outline.keyword, "エスプレッソマシン")
        self.assertEqual(outline.title, "エスプレッソマシン完全ガイド：最新情報と実践的な活用法")
        outline.validate_structure()

    def test_selected_title_wins(self) -> None:
        outline = OutlineAgent(ScriptedProvider([REPLY])).run(_request(selected_title="自宅カフェ入門"))
        self.assertEqual(outline.title, "自宅カフェ入門")

    def test_short_target_is_coerced_to_lead_and_two_h2(self) -> None:
        provider = ScriptedProvider([REPLY])
        outline = OutlineAgent(provider).run(_request(target_word_count=1000))

        self.assertEqual(len(outline.sections), 3)
        self.assertTrue(outline.sections[0].is_lead)
        self.assertEqual([s.level for s in outline.sections], [2, 2, 2])
        self.assertEqual([s.title for s in outline.sections[1:]], ["エスプレッソマシンの選び方", "お手入れのコツ"])
        self.assertEqual([s.estimated_word_count for s in outline.sections], [333, 333, 333])
        self.assertEqual(outline.target_word_count, 1000)
        self.assertIn("ちょうど2つ", provider.calls[0]["prompt"])

    def test_short_target_fills_missing_sections(self) -> None:
        reply = "見出し1 (H2): エスプレッソマシンの選び方\n説明: ポイント"
        outline = OutlineAgent(ScriptedProvider([reply])).run(_request(target_word_count=1200))

        self.assertEqual(
            [s.title for s in outline.sections],
            ["リード文", "エスプレッソマシンの選び方", "エスプレッソマシンとは"],
        )
        self.assertEqual([s.estimated_word_count for s in outline.sections], [400, 400, 400])

    def test_long_target_is_redistributed_evenly(self) -> None:
        lines = ["見出し0 (Lead): 導入"] + [f"見出し{i} (H2): 見出し案{i}" for i in range(1, 6)]
        outline = OutlineAgent(ScriptedProvider(["\n".join(lines)])).run(_request(target_word_count=3000))

        self.assertEqual(len(outline.sections), 6)
        self.assertTrue(all(s.estimated_word_count == 500 for s in outline.sections))
        self.assertEqual(outline.estimated_word_count, 3000)

    def test_unparseable_reply_uses_fallback(self) -> None:
        outline = OutlineAgent(ScriptedProvider(["構成は作れませんでした"])).run(
            _request(target_length=TargetLength.long)
        )
        self.assertEqual(len(outline.sections), 5)
        self.assertTrue(outline.sections[0].is_lead)

    def test_extra_leads_are_demoted_and_lead_moves_first(self) -> None:
        reply = "見出し1 (H2): 本文A\n見出し0 (Lead): 導入\n見出し0 (Lead): もう一つの導入"
        outline = OutlineAgent(ScriptedProvider([reply])).run(_request())

        self.assertEqual([s.title for s in outline.sections], ["導入", "本文A", "もう一つの導入"])
        self.assertEqual(sum(1 for s in outline.sections if s.is_lead), 1)
        outline.validate_structure()

    def test_ng_keywords_are_scrubbed_from_headings(self) -> None:
        reply = (
            "見出し0 (Lead): 導入\n"
            "見出し1 (H2): 格安エスプレッソマシンの選び方\n説明: 格安モデルを比較\n"
            "見出し2 (H2): 格安"
        )
        prefs = {"格安": KeywordPreference.ng}
        outline = OutlineAgent(ScriptedProvider([reply])).run(_request(keyword_preferences=prefs))

        self.assertEqual(outline.sections[1].title, "エスプレッソマシンの選び方")
        self.assertEqual(outline.sections[1].description, "モデルを比較")
        self.assertEqual(outline.sections[2].title, "見出し2")
        self.assertEqual(outline.keyword_preferences, prefs)

    def test_provider_errors_propagate(self) -> None:
        with self.assertRaises(ProviderError):
            OutlineAgent(ScriptedProvider([ProviderError("down", status_code=503)])).run(_request())


if __name__ == "__main__":
    unittest.main()
