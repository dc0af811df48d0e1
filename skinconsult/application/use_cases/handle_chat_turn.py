from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Any, Callable

from skinconsult.application.exceptions import (
    ImagePreprocessingError,
    LLMRequestError,
    LLMUpstreamError,
    SessionNotFoundError,
)
from skinconsult.application.ports.conversation_store import ConversationStorePort
from skinconsult.application.ports.image_processor import ImageProcessorPort
from skinconsult.application.ports.llm import TextCompletionPort
from skinconsult.application.ports.product_catalog import ProductCatalogPort
from skinconsult.application.ports.retrieval import RetrievalPort
from skinconsult.application.ports.session_store import SessionStorePort
from skinconsult.application.use_cases.analyze_skin_photo import SkinPhotoAnalysisUseCase
from skinconsult.application.use_cases.product_info import ProductInfoUseCase
from skinconsult.application.use_cases.repair_response import ResponseRepairUseCase
from skinconsult.application.use_cases.resolve_recommendation import (
    GENERIC_ROUTINE_BUNDLE,
    SHOP_DOMAIN,
    resolve_routine_kit,
)
from skinconsult.application.use_cases.validate_response import ResponseValidator
from skinconsult.application.utils.auto_extraction import (
    analysis_concerns,
    extract_age,
    extract_main_issue,
    extract_skin_problems,
    extract_skin_type,
    main_issue_from_analysis,
    parse_skin_analysis,
    problems_from_analysis,
)
from skinconsult.application.utils.prompts import (
    answers_summary,
    build_continuation_task,
    build_question_task,
    build_routine_task,
    build_single_product_task,
    build_system_instruction,
)
from skinconsult.application.utils.question_table import (
    QUESTION_TABLE,
    QuestionSpec,
    asked_questions,
    is_complete_routine,
    question_for,
)
from skinconsult.application.utils.templates import (
    SKIN_ISSUE_ACKNOWLEDGEMENT,
    canned_continuation,
    ensure_closing,
    photo_acknowledgement,
    routine_fallback,
    single_product_fallback,
    welcome_message,
)
from skinconsult.application.utils.text_rules import is_product_request, is_skin_complaint
from skinconsult.domain.entities.completion import CompletionRequest
from skinconsult.domain.entities.dialogue import DialogueStep, Intent
from skinconsult.domain.entities.product import ProductRecord
from skinconsult.domain.entities.reply import BotReply
from skinconsult.domain.entities.session import Answers, ChatTurn, InlineImage, SessionState
from skinconsult.domain.entities.skin_analysis import SkinAnalysisReport

CANDIDATE_LIMIT = 8


class HandleChatTurnUseCase:
    """
    Dialogue state machine for one consultation session.

    greeting -> awaiting_skin_type -> awaiting_age -> awaiting_problem -> awaiting_advice_type
    -> awaiting_additional_info -> completed, with a product-info branch available from any step
    that never moves current_step.
    """

    def __init__(
        self,
        sessions: SessionStorePort,
        conversations: ConversationStorePort,
        llm: TextCompletionPort,
        catalog: ProductCatalogPort,
        retriever: RetrievalPort,
        image_processor: ImageProcessorPort,
        validator: ResponseValidator,
        repair: ResponseRepairUseCase,
        product_info: ProductInfoUseCase,
        skin_photo_analysis: SkinPhotoAnalysisUseCase | None = None,
        assistant_name: str = "Bella",
        brand_name: str = "Beautycology",
        shop_url: str = SHOP_DOMAIN,
        rag_result_count: int = 3,
        temperature: float = 0.7,
        max_output_tokens: int = 2048,
        turn_timeout_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions = sessions
        self._conversations = conversations
        self._llm = llm
        self._catalog = catalog
        self._retriever = retriever
        self._image_processor = image_processor
        self._validator = validator
        self._repair = repair
        self._product_info = product_info
        self._skin_photo_analysis = skin_photo_analysis
        self._assistant_name = assistant_name
        self._brand_name = brand_name
        self._shop_url = shop_url
        self._rag_result_count = rag_result_count
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._turn_timeout_seconds = turn_timeout_seconds
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def start_session(self, user_name: str) -> tuple[SessionState, BotReply]:
        state = self._sessions.create(user_name.strip())
        reply = BotReply(text=welcome_message(self._assistant_name, self._brand_name, state.user_name))
        with self._sessions.lock(state.session_id):
            state = replace(
                state,
                has_introduced=True,
                history=state.history + (ChatTurn(speaker="model", text=reply.text),),
                last_seen_at=self._clock(),
            )
            self._sessions.save(state)
            self._conversations.append_message(state.session_id, "assistant", reply.text, {"step": state.current_step.value})
        self._logger.info("Session started", extra={"session_id": state.session_id})
        return state, reply

    def handle_message(
        self,
        session_id: str,
        text: str,
        image: str | bytes | None = None,
        skin_analysis: dict[str, Any] | None = None,
    ) -> BotReply:
        deadline = time.monotonic() + self._turn_timeout_seconds
        with self._sessions.lock(session_id):
            state = self._sessions.get(session_id)
            if state is None:
                raise SessionNotFoundError(session_id)

            text = (text or "").strip()
            inline_image = self._prepare_image(image, session_id)
            report = parse_skin_analysis(skin_analysis) if skin_analysis else parse_skin_analysis(text)
            if report is None and inline_image is not None and self._skin_photo_analysis is not None:
                report = self._skin_photo_analysis.analyze(inline_image, session_id=session_id, deadline=deadline)

            state = replace(state, history=state.history + (ChatTurn(speaker="user", text=text, image=inline_image),))
            self._conversations.append_message(
                session_id,
                "user",
                text,
                {"has_image": inline_image is not None, "has_skin_analysis": report is not None},
            )

            photo_sent = bool(image) or bool(skin_analysis)
            state, reply = self._dispatch(state, text, report, photo_sent, deadline)

            state = replace(
                state,
                has_introduced=True,
                history=state.history + (ChatTurn(speaker="model", text=reply.text),),
                last_seen_at=self._clock(),
            )
            self._sessions.save(state)
            self._conversations.append_message(
                session_id,
                "assistant",
                reply.text,
                {"has_choices": reply.has_choices, "choices": list(reply.choices), "step": state.current_step.value},
            )

        self._logger.info(
            "Turn handled",
            extra={"session_id": session_id, "step": state.current_step.value, "intent": state.last_intent},
        )
        return reply

    def _dispatch(
        self,
        state: SessionState,
        text: str,
        report: SkinAnalysisReport | None,
        photo_sent: bool,
        deadline: float,
    ) -> tuple[SessionState, BotReply]:
        current_spec = question_for(state.current_step) if state.is_questioning else None
        intent = self._classify(text, report, photo_sent, current_spec)

        answered_slot = None
        if intent != Intent.product_info and current_spec is not None and text:
            answer = current_spec.match_answer(text)
            if answer:
                state = self._fill(state, current_spec.slot, answer)
                answered_slot = current_spec.slot
        state = self._auto_extract(state, text, report)

        if intent == Intent.product_info:
            state = replace(state, last_intent=Intent.product_info.value)
            return state, BotReply(text=self._product_info.answer(text, session_id=state.session_id))

        if intent == Intent.skin_analysis:
            state = replace(state, last_intent=Intent.skin_analysis.value)
            if not state.structured_flow_active and state.current_step != DialogueStep.completed:
                opening = self._opening_for(report)
                state = replace(state, structured_flow_active=True, current_step=DialogueStep.awaiting_skin_type)
                self._logger.info("Questionnaire started", extra={"session_id": state.session_id})
                return self._advance(state, start=0, preface=[opening], answered_slot=None, deadline=deadline)

        if state.structured_flow_active and current_spec is not None:
            if state.answers.get(current_spec.slot) is None:
                return state, self._ask(state, current_spec, [], deadline)
            start = QUESTION_TABLE.index(current_spec)
            return self._advance(state, start=start, preface=[], answered_slot=answered_slot, deadline=deadline)

        if state.current_step == DialogueStep.completed and not state.final_recommendation_sent:
            return self._final_recommendation(state, [], deadline)

        return state, self._continuation(state, text, deadline)

    def _classify(
        self,
        text: str,
        report: SkinAnalysisReport | None,
        photo_sent: bool,
        current_spec: QuestionSpec | None,
    ) -> Intent:
        if report is not None:
            return Intent.skin_analysis
        if text:
            if self._catalog.find_mentioned(text):
                return Intent.product_info
            if current_spec is not None and current_spec.match_answer(text, allow_free_text=False):
                return Intent.continuation
            if is_product_request(text):
                return Intent.product_info
            if is_skin_complaint(text) or extract_skin_type(text) or extract_main_issue(text):
                return Intent.skin_analysis
        elif photo_sent:
            return Intent.skin_analysis
        return Intent.continuation

    def _opening_for(self, report: SkinAnalysisReport | None) -> str:
        if report is None:
            return SKIN_ISSUE_ACKNOWLEDGEMENT
        return photo_acknowledgement(analysis_concerns(report), report.scores)

    def _fill(self, state: SessionState, slot: str, value: str) -> SessionState:
        current = state.answers.get(slot)
        if current is not None:
            if current != value:
                self._logger.info(
                    "Slot already filled, keeping first value",
                    extra={"session_id": state.session_id, "reason": f"{slot}={current} ignored={value}"},
                )
            return state
        answers = replace(state.answers, **{slot: value})
        if slot == "main_issue" and value not in answers.skin_problems:
            answers = replace(answers, skin_problems=answers.skin_problems + (value,))
        return replace(state, answers=answers)

    def _auto_extract(self, state: SessionState, text: str, report: SkinAnalysisReport | None) -> SessionState:
        if text:
            skin_type = extract_skin_type(text)
            if skin_type:
                state = self._fill(state, "skin_type", skin_type)
            age = extract_age(text)
            if age:
                state = self._fill(state, "age", age)
            problems = extract_skin_problems(text)
            if problems:
                state = self._fill(state, "main_issue", problems[0])
                state = self._add_problems(state, problems)
        if report is not None:
            main_issue = main_issue_from_analysis(report)
            if main_issue:
                state = self._fill(state, "main_issue", main_issue)
            state = self._add_problems(state, problems_from_analysis(report))
        return state

    @staticmethod
    def _add_problems(state: SessionState, problems: list[str]) -> SessionState:
        merged = state.answers.skin_problems + tuple(p for p in problems if p not in state.answers.skin_problems)
        if merged == state.answers.skin_problems:
            return state
        return replace(state, answers=replace(state.answers, skin_problems=tuple(dict.fromkeys(merged))))

    def _advance(
        self,
        state: SessionState,
        start: int,
        preface: list[str],
        answered_slot: str | None,
        deadline: float,
    ) -> tuple[SessionState, BotReply]:
        """Move to the first unfilled question from `start`, acknowledging inferred slots on the way."""
        lines = list(preface)
        for spec in QUESTION_TABLE[start:]:
            value = state.answers.get(spec.slot)
            if value is None:
                state = replace(state, current_step=spec.step, structured_flow_active=True)
                return state, self._ask(state, spec, lines, deadline)
            if spec.slot == "advice_type" and not is_complete_routine(value):
                return self._specific_product(state, lines, deadline)
            if spec.slot != answered_slot:
                lines.append(spec.acknowledge(value))
        return self._final_recommendation(state, lines, deadline)

    def _ask(self, state: SessionState, spec: QuestionSpec, preface: list[str], deadline: float) -> BotReply:
        request = self._request(state, build_question_task(spec), query=None, deadline=deadline)
        generated = self._generate(request, state.session_id, purpose=spec.step.value)
        body = self._accept_question_text(generated, spec, state.answers)
        if body is None:
            body = spec.question
        text = "\n\n".join([*preface, body])
        return BotReply(text=text, choices=spec.choices, meta={"step": spec.step.value})

    def _accept_question_text(self, generated: str, spec: QuestionSpec, answers: Answers) -> str | None:
        if not generated:
            return None
        if self._validator.blocking_issues(generated):
            return None
        for asked in asked_questions(generated):
            if asked.step != spec.step and answers.get(asked.slot) is not None:
                return None
        if not spec.pattern.search(generated):
            return f"{generated}\n\n{spec.question}"
        return generated

    def _final_recommendation(
        self,
        state: SessionState,
        preface: list[str],
        deadline: float,
    ) -> tuple[SessionState, BotReply]:
        answers = state.answers
        bundle = resolve_routine_kit(answers.skin_type, answers.main_issue)
        generic = bundle is None
        if generic:
            bundle = GENERIC_ROUTINE_BUNDLE

        candidates = self._candidates(answers)
        request = self._request(
            state,
            build_routine_task(answers, bundle, candidates),
            query=answers_summary(answers),
            deadline=deadline,
        )
        draft = self._generate(request, state.session_id, purpose="final_recommendation")
        outcome = self._repair.finalize(
            draft,
            fallback=lambda: routine_fallback(self._catalog, answers, bundle, self._shop_url, generic_bundle=generic),
            bundle=bundle,
            generic_bundle=generic,
            session_id=state.session_id,
            deadline=deadline,
        )
        self._logger.info(
            "Final recommendation sent",
            extra={
                "session_id": state.session_id,
                "reason": f"bundle={bundle.name} fallback={outcome.used_fallback}",
            },
        )
        state = self._complete(state)
        return state, BotReply(text="\n\n".join([*preface, outcome.text]), meta={"bundle_url": bundle.url})

    def _specific_product(
        self,
        state: SessionState,
        preface: list[str],
        deadline: float,
    ) -> tuple[SessionState, BotReply]:
        answers = state.answers
        candidates = self._catalog.find_by_category_or_keyword(answers.advice_type or "")[:CANDIDATE_LIMIT]
        request = self._request(
            state,
            build_single_product_task(answers, candidates),
            query=answers_summary(answers),
            deadline=deadline,
        )
        draft = self._generate(request, state.session_id, purpose="specific_product")
        outcome = self._repair.finalize(
            draft,
            fallback=lambda: single_product_fallback(self._catalog, answers, self._shop_url),
            session_id=state.session_id,
            deadline=deadline,
        )
        state = self._complete(state)
        return state, BotReply(text="\n\n".join([*preface, outcome.text]))

    def _continuation(self, state: SessionState, text: str, deadline: float) -> BotReply:
        request = self._request(state, build_continuation_task(), query=text or None, deadline=deadline)
        draft = self._generate(request, state.session_id, purpose="continuation")
        outcome = self._repair.finalize(
            draft,
            fallback=lambda: ensure_closing(canned_continuation(state.current_step)),
            session_id=state.session_id,
            deadline=deadline,
        )
        return BotReply(text=outcome.text)

    @staticmethod
    def _complete(state: SessionState) -> SessionState:
        return replace(
            state,
            current_step=DialogueStep.completed,
            structured_flow_active=False,
            final_recommendation_sent=True,
        )

    def _candidates(self, answers: Answers) -> list[ProductRecord]:
        problems = [p for p in (answers.main_issue, *answers.skin_problems) if p]
        return [s.product for s in self._catalog.score_by_problem(problems, answers.skin_type)][:CANDIDATE_LIMIT]

    def _request(self, state: SessionState, task: str, query: str | None, deadline: float) -> CompletionRequest:
        snippets = self._retriever.search(query, self._rag_result_count) if query else []
        system_instruction = build_system_instruction(
            assistant_name=self._assistant_name,
            brand_name=self._brand_name,
            product_domain=self._shop_url,
            products=self._catalog.all_products(),
            snippets=snippets,
            task=task,
            has_introduced=state.has_introduced,
        )
        return CompletionRequest(
            turns=state.history,
            system_instruction=system_instruction,
            temperature=self._temperature,
            max_output_tokens=self._max_output_tokens,
            deadline=deadline,
        )

    def _generate(self, request: CompletionRequest, session_id: str, purpose: str) -> str:
        try:
            return self._llm.complete(request).strip()
        except (LLMUpstreamError, LLMRequestError) as e:
            self._logger.warning(
                "Completion failed, using canned text",
                extra={"session_id": session_id, "reason": f"{purpose}: {e}"},
            )
            return ""

    def _prepare_image(self, image: str | bytes | None, session_id: str) -> InlineImage | None:
        if not image:
            return None
        try:
            processed = self._image_processor.preprocess(image)
        except ImagePreprocessingError as e:
            self._logger.warning("Image dropped", extra={"session_id": session_id, "reason": str(e)})
            return None
        return InlineImage(mime_type=processed.mime_type, base64=processed.base64)
