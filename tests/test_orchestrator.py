from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from app_logging.run_logger import RunLogger
from fakes import FakeTrendAnalyzer, ScriptedProvider, make_trend, pipeline_responder
from lib.errors import RateLimitError, SessionBusyError, StepFailedError
from lib.length_meter import measure_length
from pipeline.orchestrator import PipelineOrchestrator
from pipeline.session_lease import SessionLeaseRegistry
from schemas.common import KeywordPreference
from schemas.outline import OutlineOptions, OutlineSection
from schemas.pipeline import GenerationPhase, SectionOptions


def _orchestrator(provider=None, **kwargs) -> PipelineOrchestrator:
    kwargs.setdefault("trend_analyzer", FakeTrendAnalyzer())
    kwargs.setdefault("leases", SessionLeaseRegistry())
    return PipelineOrchestrator(provider or ScriptedProvider(responder=pipeline_responder), **kwargs)


class TestStepExecution(unittest.TestCase):
    def test_step1_is_a_no_op_once_trend_data_exists(self) -> None:
        analyzer = FakeTrendAnalyzer()
        orch = _orchestrator(trend_analyzer=analyzer)

        first = orch.execute_step1(["espresso machines"])
        second = orch.execute_step1(["something else"])

        self.assertIs(first, second)
        self.assertEqual(len(analyzer.calls), 1)
        self.assertEqual(len(orch.state.step_results), 1)
        self.assertEqual(orch.state.phase, GenerationPhase.analyzed)
        self.assertFalse(orch.state.is_generating)

    def test_step1_needs_a_keyword(self) -> None:
        orch = _orchestrator()
        with self.assertRaises(ValueError):
            orch.execute_step1(["  "])
        self.assertEqual(orch.state.step_results, [])

    def test_step2_results_replace_earlier_ones(self) -> None:
        orch = _orchestrator()
        orch.execute_step1("espresso machines")
        orch.execute_step2()
        titles = orch.execute_step2()

        self.assertEqual([r.step for r in orch.state.step_results], [1, 2])
        self.assertEqual(orch.state.titles, titles)
        self.assertEqual(orch.state.phase, GenerationPhase.titles_ready)
        self.assertEqual(orch.state.current_step, 2)

    def test_step2_without_trend_data_leaves_state_untouched(self) -> None:
        orch = _orchestrator()
        with self.assertRaises(ValueError):
            orch.execute_step2()
        self.assertEqual(orch.state.phase, GenerationPhase.idle)
        self.assertEqual(orch.state.step_results, [])

    def test_step3_uses_selected_title_and_snapshots_preferences(self) -> None:
        orch = _orchestrator()
        orch.add_keyword_preference("格安", KeywordPreference.ng)
        trend = orch.execute_step1("espresso machines")
        outline = orch.execute_step3(["espresso machines"], trend, OutlineOptions(selected_title="自宅カフェ入門"))

        self.assertEqual(outline.title, "自宅カフェ入門")
        self.assertEqual(outline.keyword_preferences, {"格安": KeywordPreference.ng})

        orch.toggle_keyword_preference("格安")
        self.assertEqual(outline.keyword_preferences, {"格安": KeywordPreference.ng})

    def test_step3_preconditions(self) -> None:
        orch = _orchestrator()
        with self.assertRaises(ValueError):
            orch.execute_step3([], make_trend())
        with self.assertRaises(ValueError):
            orch.execute_step3(["espresso machines"])

    def test_step3_failure_sets_error_and_keeps_prior_state(self) -> None:
        provider = ScriptedProvider([RateLimitError("too many requests", status_code=429)])
        orch = _orchestrator(provider)
        trend = orch.execute_step1("espresso machines")

        with self.assertRaises(StepFailedError) as ctx:
            orch.execute_step3(["espresso machines"])

        self.assertEqual(ctx.exception.step, 3)
        self.assertEqual(ctx.exception.message, "too many requests")
        self.assertIsInstance(ctx.exception.__cause__, RateLimitError)
        self.assertEqual(orch.state.error, "too many requests")
        self.assertFalse(orch.state.is_generating)
        self.assertIs(orch.state.trend_data, trend)
        self.assertIsNone(orch.state.outline)
        self.assertEqual(orch.state.phase, GenerationPhase.analyzed)
        self.assertEqual(orch.state.step_results[-1].status, "failed")
        self.assertEqual(orch.state.step_results[-1].step, 3)

    def test_step4_rejects_invalid_outline(self) -> None:
        orch = _orchestrator()
        trend = orch.execute_step1("espresso machines")
        outline = orch.execute_step3(["espresso machines"], trend)
        outline.sections[0].order = 10

        with self.assertRaises(ValueError):
            orch.execute_step4(outline)
        self.assertIsNone(orch.state.article)

    def test_step4_failure_restores_outline(self) -> None:
        def responder(prompt: str):
            if "【今回執筆するセクションの見出し】" in prompt:
                return RateLimitError("RATE_LIMIT_ERROR: quota exceeded", status_code=429)
            return pipeline_responder(prompt)

        orch = _orchestrator(ScriptedProvider(responder=responder))
        trend = orch.execute_step1("espresso machines")
        outline = orch.execute_step3(["espresso machines"], trend, OutlineOptions(target_word_count=1000))

        with self.assertRaises(StepFailedError) as ctx:
            orch.execute_step4()

        self.assertEqual(ctx.exception.step, 4)
        self.assertEqual(orch.state.error, "quota exceeded")
        self.assertIs(orch.state.outline, outline)
        self.assertTrue(all(s.content is None for s in orch.state.outline.sections))
        self.assertEqual(orch.state.phase, GenerationPhase.outline_ready)


class TestEndToEnd(unittest.TestCase):
    def test_auto_mode_hits_target_length(self) -> None:
        progress: list[tuple[str, int]] = []
        orch = PipelineOrchestrator(
            ScriptedProvider(responder=pipeline_responder),
            leases=SessionLeaseRegistry(),
        )

        article = orch.execute_auto(
            ["espresso machines"],
            OutlineOptions(target_word_count=1000),
            SectionOptions(on_progress=lambda title, pct: progress.append((title, pct))),
        )

        outline = orch.state.outline
        self.assertEqual(orch.state.mode, "auto")
        self.assertEqual(orch.state.trend_data.source, "heuristic")
        self.assertEqual(len(outline.sections), 3)
        self.assertTrue(outline.sections[0].is_lead)
        self.assertTrue(all(s.estimated_word_count == 333 for s in outline.sections))
        self.assertTrue(all(s.is_generated for s in outline.sections))

        self.assertEqual(article.title, "espresso machinesの選び方ガイド")
        self.assertTrue(900 <= measure_length(article.content) <= 1100)
        self.assertEqual(article.word_count, measure_length(article.content))
        self.assertFalse(article.content.startswith("#"))
        self.assertIn("## エスプレッソマシンの選び方", article.content)
        self.assertIn("## お手入れのコツ", article.content)
        self.assertNotIn("おすすめの豆", article.content)
        self.assertEqual(article.length_report.action, "within_tolerance")

        self.assertEqual([p for _, p in progress], [0, 33, 33, 67, 67, 100])
        self.assertEqual(progress[0][0], "リード文")
        self.assertEqual(orch.state.phase, GenerationPhase.assembled)
        self.assertEqual([r.step for r in orch.state.step_results], [1, 2, 3, 4])

    def test_step4_passes_previous_sections_as_context(self) -> None:
        provider = ScriptedProvider(responder=pipeline_responder)
        orch = _orchestrator(provider)
        trend = orch.execute_step1("espresso machines")
        orch.execute_step3(["espresso machines"], trend, OutlineOptions(target_word_count=900))
        orch.execute_step4()

        section_prompts = [c["prompt"] for c in provider.calls if "【今回執筆するセクションの見出し】" in c["prompt"]]
        self.assertEqual(len(section_prompts), 3)
        self.assertNotIn("【これまでに書いた本文", section_prompts[0])
        self.assertIn("【これまでに書いた本文", section_prompts[1])

    def test_run_logger_records_steps(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            orch = _orchestrator(session_id="s-log")
            orch.run_logger = RunLogger.for_session("s-log", Path(tmp))
            orch.execute_step1("espresso machines")

            lines = [json.loads(l) for l in orch.run_logger.log_path.read_text(encoding="utf-8").splitlines()]

        self.assertEqual([(l["step"], l["event"]) for l in lines], [(1, "start"), (1, "end")])
        self.assertTrue(all(l["session_id"] == "s-log" for l in lines))


class TestSessionLease(unittest.TestCase):
    def test_second_orchestrator_on_same_session_is_rejected(self) -> None:
        leases = SessionLeaseRegistry()
        a = _orchestrator(session_id="s1", leases=leases)
        b = _orchestrator(session_id="s1", leases=leases)

        a.execute_step1("espresso machines")
        with self.assertRaises(SessionBusyError):
            b.execute_step1("espresso machines")
        self.assertIsNone(b.state.trend_data)

        a.reset()
        b.execute_step1("espresso machines")
        self.assertIsNotNone(b.state.trend_data)

    def test_lease_released_after_step4(self) -> None:
        leases = SessionLeaseRegistry()
        orch = _orchestrator(session_id="s2", leases=leases)
        orch.execute_auto(["espresso machines"], OutlineOptions(target_word_count=1000))
        self.assertFalse(leases.is_held("s2"))

    def test_abandoned_step_result_is_dropped(self) -> None:
        leases = SessionLeaseRegistry()
        holder: dict[str, PipelineOrchestrator] = {}

        class _AbandoningAnalyzer(FakeTrendAnalyzer):
            def analyze(self, keyword, region, timeframe):
                holder["orch"].abandon()
                return super().analyze(keyword, region, timeframe)

        orch = _orchestrator(session_id="s3", leases=leases, trend_analyzer=_AbandoningAnalyzer())
        holder["orch"] = orch
        orch.execute_step1("espresso machines")

        self.assertIsNone(orch.state.trend_data)
        self.assertEqual(orch.state.step_results, [])
        self.assertFalse(leases.is_held("s3"))


class TestEdits(unittest.TestCase):
    def setUp(self) -> None:
        self.orch = _orchestrator()
        trend = self.orch.execute_step1("espresso machines")
        self.outline = self.orch.execute_step3(["espresso machines"], trend, OutlineOptions(target_word_count=1000))
        self.ids = [s.id for s in self.outline.ordered_sections()]

    def test_toggle_cycles_through_preferences(self) -> None:
        self.assertEqual(self.orch.toggle_keyword_preference("格安"), KeywordPreference.ng)
        self.assertEqual(self.orch.toggle_keyword_preference("格安"), KeywordPreference.essential)
        self.assertEqual(self.orch.toggle_keyword_preference("格安"), KeywordPreference.default)
        self.assertNotIn("格安", self.orch.state.keyword_preferences)

    def test_reorder_rejects_lead_not_first(self) -> None:
        bad = [self.ids[1], self.ids[0], self.ids[2]]
        with self.assertRaises(ValueError):
            self.orch.reorder_sections(bad)
        self.assertEqual([s.id for s in self.orch.state.outline.ordered_sections()], self.ids)

    def test_reorder_rejects_unknown_ids(self) -> None:
        with self.assertRaises(ValueError):
            self.orch.reorder_sections(self.ids[:2])

    def test_reorder_swaps_body_sections(self) -> None:
        outline = self.orch.reorder_sections([self.ids[0], self.ids[2], self.ids[1]])
        self.assertEqual([s.id for s in outline.ordered_sections()], [self.ids[0], self.ids[2], self.ids[1]])

    def test_update_add_remove_section(self) -> None:
        updated = self.orch.update_section(self.ids[1], title="新しい見出し", estimated_word_count=500)
        self.assertEqual(updated.title, "新しい見出し")
        self.assertEqual(self.orch.state.outline.estimated_word_count, 333 + 500 + 333)

        added = self.orch.add_section(OutlineSection(id="extra", title="追加の見出し", estimated_word_count=200))
        self.assertEqual(added.order, 3)
        self.assertEqual(self.orch.state.outline.ordered_sections()[-1].id, "extra")

        self.orch.remove_section("extra")
        self.assertEqual(len(self.orch.state.outline.sections), 3)

        with self.assertRaises(ValueError):
            self.orch.remove_section("missing")
        with self.assertRaises(ValueError):
            self.orch.add_section(OutlineSection(id=self.ids[0], title="dup"))

    def test_second_lead_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.orch.add_section(OutlineSection(id="lead2", title="もう一つの導入", is_lead=True))

    def test_navigation_is_clamped(self) -> None:
        self.orch.state.current_step = 1
        self.assertEqual(self.orch.previous_step(), 1)
        for _ in range(5):
            self.orch.next_step()
        self.assertEqual(self.orch.state.current_step, 4)

    def test_reset_clears_state(self) -> None:
        state = self.orch.reset()
        self.assertIsNone(state.outline)
        self.assertEqual(state.phase, GenerationPhase.idle)
        self.assertEqual(state.session_id, self.orch.session_id)


if __name__ == "__main__":
    unittest.main()
