"""Four-step article generation state machine.

    Step 1  trend analysis      idle -> analyzing -> analyzed
    Step 2  title candidates    -> title_generating -> titles_ready
    Step 3  outline             -> outline_generating -> outline_ready
    Step 4  section drafting    -> section_generating -> assembled

Every step runs through _run_step(), which owns the session lease, the
StepResult history and the failure bookkeeping. Preconditions are checked
before _run_step() so a rejected call leaves the state untouched.
"""

from __future__ import annotations

import threading
import uuid
from typing import Any, Callable, Optional

import config
from agents.base import CompletionProvider
from agents.length_enforcer import LengthEnforcer
from agents.outline_agent import OutlineAgent
from agents.providers import build_provider
from agents.section_agent import SectionContentAgent
from agents.title_agent import TitleSuggestionAgent
from agents.trend_agent import TrendAgent, TrendAnalyzer
from app_logging.run_logger import RunLogger
from lib.errors import SessionBusyError, StepFailedError, user_message
from lib.keywords import cycle_preference
from pipeline.assembler import ArticleAssembler
from pipeline.session_lease import DEFAULT_REGISTRY, SessionLeaseRegistry
from schemas.article import Article
from schemas.common import KeywordPreference
from schemas.outline import ArticleOutline, OutlineGenerationRequest, OutlineOptions, OutlineSection
from schemas.pipeline import GenerationPhase, GenerationState, SectionOptions, StepResult
from schemas.title import TitleGenerationInput, TitleSuggestion
from schemas.trend import TrendAnalysisResult


# Steps whose StepResult replaces earlier results for the same step.
_REPLACING_STEPS = {2, 3, 4}


def _as_keyword_list(keywords: list[str] | str | None) -> list[str]:
    if keywords is None:
        return []
    if isinstance(keywords, str):
        keywords = [keywords]
    return [k.strip() for k in keywords if k and k.strip()]


class PipelineOrchestrator:
    """
    Owns one GenerationState and drives it through the four steps.

    Collaborators (provider, trend analyzer, agents) are injected so tests
    can run the whole pipeline against fakes.
    """

    def __init__(
        self,
        provider: Optional[CompletionProvider] = None,
        *,
        trend_analyzer: Optional[TrendAnalyzer] = None,
        session_id: Optional[str] = None,
        leases: Optional[SessionLeaseRegistry] = None,
        run_logger: Optional[RunLogger] = None,
        title_count: Optional[int] = None,
        enforcer: Optional[LengthEnforcer] = None,
    ) -> None:
        self.provider = provider if provider is not None else build_provider()
        self.enforcer = enforcer or LengthEnforcer(self.provider)

        self.trend_agent = TrendAgent(trend_analyzer)
        self.title_agent = TitleSuggestionAgent(self.provider)
        self.outline_agent = OutlineAgent(self.provider)
        self.section_agent = SectionContentAgent(self.provider, enforcer=self.enforcer)
        self.assembler = ArticleAssembler(self.provider, enforcer=self.enforcer)

        self.session_id = session_id or uuid.uuid4().hex
        self.leases = leases or DEFAULT_REGISTRY
        self.run_logger = run_logger
        self.title_count = title_count or config.TITLE_CANDIDATE_COUNT

        self.state = GenerationState(session_id=self.session_id)

        self._owner = uuid.uuid4().hex
        self._flight_lock = threading.Lock()
        self._in_flight = False
        self._abandoned = False

    # -------------------------
    # Step executors
    # -------------------------

    def execute_step1(self, keywords: list[str] | str) -> TrendAnalysisResult:
        if self.state.trend_data is not None:
            return self.state.trend_data

        kws = _as_keyword_list(keywords)
        if not kws:
            raise ValueError("Step 1 needs at least one keyword")

        def store(result: TrendAnalysisResult) -> None:
            self.state.trend_data = result

        return self._run_step(
            1,
            running=GenerationPhase.analyzing,
            done=GenerationPhase.analyzed,
            agent=self.trend_agent.name,
            log_input={"keywords": kws},
            work=lambda: self.trend_agent.run(kws[0]),
            store=store,
        )

    def execute_step2(self, trend_data: Optional[TrendAnalysisResult] = None) -> list[TitleSuggestion]:
        trend = trend_data or self.state.trend_data
        if trend is None:
            raise ValueError("Step 2 needs trend data; run step 1 first")

        inp = TitleGenerationInput(
            trend_data=trend,
            count=self.title_count,
            keyword_preferences=dict(self.state.keyword_preferences),
        )

        def store(result: list[TitleSuggestion]) -> None:
            self.state.trend_data = trend
            self.state.titles = result

        return self._run_step(
            2,
            running=GenerationPhase.title_generating,
            done=GenerationPhase.titles_ready,
            agent=self.title_agent.name,
            log_input={"keyword": trend.keyword, "count": inp.count},
            work=lambda: self.title_agent.run(inp),
            store=store,
        )

    def execute_step3(
        self,
        keywords: list[str] | str | None,
        trend_data: Optional[TrendAnalysisResult] = None,
        options: Optional[OutlineOptions] = None,
    ) -> ArticleOutline:
        opts = options or OutlineOptions()
        kws = _as_keyword_list(keywords)
        if not kws and not (opts.selected_title or "").strip():
            raise ValueError("Step 3 needs keywords or a selected title")

        trend = trend_data or self.state.trend_data
        if trend is None:
            raise ValueError("Step 3 needs trend data; run step 1 first")

        prefs = dict(opts.keyword_preferences if opts.keyword_preferences is not None else self.state.keyword_preferences)
        req = OutlineGenerationRequest(
            keywords=kws,
            trend_data=trend,
            target_length=opts.target_length,
            tone=opts.tone,
            focus_topics=list(opts.focus_topics),
            keyword_preferences=prefs,
            selected_title=opts.selected_title,
            custom_instructions=opts.custom_instructions,
            target_word_count=opts.target_word_count,
        )

        def work() -> ArticleOutline:
            outline = self.outline_agent.run(req)
            if opts.selected_title and opts.selected_title.strip():
                outline.title = opts.selected_title.strip()
            outline.keyword_preferences = dict(prefs)
            return outline

        def store(result: ArticleOutline) -> None:
            self.state.trend_data = trend
            self.state.outline = result

        return self._run_step(
            3,
            running=GenerationPhase.outline_generating,
            done=GenerationPhase.outline_ready,
            agent=self.outline_agent.name,
            log_input={"keywords": kws, "selected_title": opts.selected_title, "target": opts.target_word_count},
            work=work,
            store=store,
        )

    def execute_step4(
        self,
        outline: Optional[ArticleOutline] = None,
        options: Optional[SectionOptions] = None,
    ) -> Article:
        source = outline or self.state.outline
        if source is None:
            raise ValueError("Step 4 needs an outline; run step 3 first")
        source.validate_structure()

        opts = options or SectionOptions()
        working = source.model_copy(deep=True)

        def draft() -> Article:
            sections = working.ordered_sections()
            total = len(sections)
            written: list[str] = []

            for i, section in enumerate(sections):
                self._progress(section.title, round(i * 100 / total), opts)
                content, _ = self.section_agent.generate(
                    working,
                    section,
                    previous_content="\n\n".join(written),
                    tone=opts.tone,
                    custom_instructions=opts.custom_instructions,
                )
                section.content = content
                section.is_generated = True
                written.append(content)
                self._progress(section.title, round((i + 1) * 100 / total), opts)

            return self.assembler.assemble(working, tone=opts.tone)

        def work() -> Article:
            # The state shows sections as they are written; a failed run puts the source outline back.
            self.state.outline = working
            try:
                return draft()
            except Exception:
                self.state.outline = source
                raise

        def store(result: Article) -> None:
            self.state.article = result

        article = self._run_step(
            4,
            running=GenerationPhase.section_generating,
            done=GenerationPhase.assembled,
            agent=self.section_agent.name,
            log_input={"outline_id": working.id, "sections": len(working.sections)},
            work=work,
            store=store,
        )
        self.leases.release(self.session_id, self._owner)
        return article

    def execute_auto(
        self,
        keywords: list[str] | str,
        options: Optional[OutlineOptions] = None,
        section_options: Optional[SectionOptions] = None,
    ) -> Article:
        """Steps 1-4 unattended. The first title candidate is used."""
        kws = _as_keyword_list(keywords)
        if not kws:
            raise ValueError("Auto mode needs at least one keyword")

        self.state.mode = "auto"
        trend = self.execute_step1(kws)
        titles = self.execute_step2(trend)
        selected = titles[0].title if titles else f"{kws[0]}について"

        opts = (options or OutlineOptions()).model_copy(update={"selected_title": selected})
        outline = self.execute_step3(kws, trend, opts)
        return self.execute_step4(outline, section_options)

    # -------------------------
    # Keyword preferences
    # -------------------------

    def toggle_keyword_preference(self, keyword: str) -> KeywordPreference:
        kw = (keyword or "").strip()
        if not kw:
            raise ValueError("Keyword must not be empty")
        nxt = cycle_preference(self.state.keyword_preferences.get(kw))
        self._set_preference(kw, nxt)
        return nxt

    def add_keyword_preference(self, keyword: str, preference: KeywordPreference) -> None:
        kw = (keyword or "").strip()
        if not kw:
            raise ValueError("Keyword must not be empty")
        self._set_preference(kw, KeywordPreference(preference))

    def _set_preference(self, keyword: str, preference: KeywordPreference) -> None:
        if preference == KeywordPreference.default:
            self.state.keyword_preferences.pop(keyword, None)
        else:
            self.state.keyword_preferences[keyword] = preference

    # -------------------------
    # Outline / article edits
    # -------------------------

    def _require_outline(self) -> ArticleOutline:
        if self.state.outline is None:
            raise ValueError("No outline to edit; run step 3 first")
        return self.state.outline

    def _commit_sections(self, outline: ArticleOutline, sections: list[OutlineSection]) -> ArticleOutline:
        candidate = outline.model_copy(update={"sections": sections})
        candidate.validate_structure()
        candidate.recompute_estimate()
        self.state.outline = candidate
        return candidate

    def update_outline(self, outline: ArticleOutline) -> ArticleOutline:
        outline.validate_structure()
        outline.recompute_estimate()
        self.state.outline = outline
        return outline

    def update_section(self, section_id: str, **changes: Any) -> OutlineSection:
        outline = self._require_outline()
        sections: list[OutlineSection] = []
        updated: Optional[OutlineSection] = None
        for s in outline.sections:
            if s.id == section_id:
                updated = OutlineSection.model_validate({**s.model_dump(), **changes})
                sections.append(updated)
            else:
                sections.append(s)
        if updated is None:
            raise ValueError(f"Unknown section id: {section_id}")
        self._commit_sections(outline, sections)
        return updated

    def add_section(self, section: OutlineSection) -> OutlineSection:
        outline = self._require_outline()
        if any(s.id == section.id for s in outline.sections):
            raise ValueError(f"Section id already exists: {section.id}")
        last = max((s.order for s in outline.sections), default=-1)
        added = section.model_copy(update={"order": last + 1})
        self._commit_sections(outline, list(outline.sections) + [added])
        return added

    def remove_section(self, section_id: str) -> None:
        outline = self._require_outline()
        remaining = [s for s in outline.sections if s.id != section_id]
        if len(remaining) == len(outline.sections):
            raise ValueError(f"Unknown section id: {section_id}")
        outline.sections = remaining
        outline.recompute_estimate()

    def reorder_sections(self, section_ids: list[str]) -> ArticleOutline:
        outline = self._require_outline()
        by_id = {s.id: s for s in outline.sections}
        if sorted(section_ids) != sorted(by_id):
            raise ValueError("Reorder must list every section id exactly once")
        reordered = [by_id[sid].model_copy(update={"order": i}) for i, sid in enumerate(section_ids)]
        return self._commit_sections(outline, reordered)

    def update_article(self, article: Article) -> Article:
        self.state.article = article
        return article

    # -------------------------
    # Navigation / lifecycle
    # -------------------------

    def next_step(self) -> int:
        self.state.current_step = min(4, self.state.current_step + 1)
        return self.state.current_step

    def previous_step(self) -> int:
        self.state.current_step = max(1, self.state.current_step - 1)
        return self.state.current_step

    def reset(self) -> GenerationState:
        self.leases.release(self.session_id, self._owner)
        self._abandoned = False
        self.state = GenerationState(session_id=self.session_id)
        return self.state

    def abandon(self) -> None:
        """
        Stop caring about this session. A step still running finishes, but its
        result is not written into the state.
        """
        self._abandoned = True
        self.state.is_generating = False
        self.leases.release(self.session_id, self._owner)

    # -------------------------
    # Internals
    # -------------------------

    def _progress(self, section: str, percent: int, opts: SectionOptions) -> None:
        if self.run_logger:
            self.run_logger.progress(4, self.section_agent.name, section, percent)
        if opts.on_progress:
            opts.on_progress(section, percent)

    def _begin(self, step: int, running: GenerationPhase) -> GenerationPhase:
        with self._flight_lock:
            if self._in_flight:
                raise SessionBusyError(self.session_id)
            self.leases.acquire(self.session_id, self._owner)
            self._in_flight = True
            self._abandoned = False

        previous = self.state.phase
        self.state.is_generating = True
        self.state.error = None
        self.state.current_step = step
        self.state.phase = running
        return previous

    def _record(self, result: StepResult) -> None:
        if result.status == "completed" and result.step in _REPLACING_STEPS:
            self.state.step_results = [r for r in self.state.step_results if r.step != result.step]
        self.state.step_results.append(result)

    def _run_step(
        self,
        step: int,
        *,
        running: GenerationPhase,
        done: GenerationPhase,
        agent: str,
        log_input: Any,
        work: Callable[[], Any],
        store: Callable[[Any], None],
    ) -> Any:
        previous_phase = self._begin(step, running)
        if self.run_logger:
            self.run_logger.start(step, agent, log_input)

        try:
            result = work()
        except Exception as e:
            with self._flight_lock:
                self._in_flight = False
            message = user_message(e)
            if self.run_logger:
                self.run_logger.error(step, agent, log_input, e)
            if not self._abandoned:
                self.state.error = message
                self.state.is_generating = False
                self.state.phase = previous_phase
                self._record(StepResult(step=step, status="failed", error=message))
            print(f"❌ Step {step} failed: {message}")
            raise StepFailedError(step, message) from e

        with self._flight_lock:
            self._in_flight = False

        if self._abandoned:
            print(f"⚠️ Step {step} finished after the session was abandoned; result dropped")
            return result

        store(result)
        self.state.phase = done
        self.state.is_generating = False
        self._record(StepResult(step=step, status="completed", data=result))
        if self.run_logger:
            self.run_logger.end(step, agent, {"phase": done.value})
        print(f"✅ Step {step} complete ({done.value})")
        return result
