"""
Tests for the consultation state machine: question order, forced choices,
product-info short-circuit and the final routine recommendation.
"""

from __future__ import annotations

import io
import time

import pytest
from fakes import FailingLLM, FunctionLLM, ScriptedLLM, build_use_case
from PIL import Image

from skinconsult.application.exceptions import SessionNotFoundError
from skinconsult.application.utils.prompts import SKIN_PHOTO_INSTRUCTION
from skinconsult.application.utils.question_table import (
    ADDITIONAL_INFO_CHOICES,
    ADVICE_CHOICES,
    PROBLEM_CHOICES,
    question_for,
)
from skinconsult.application.utils.templates import CLOSING_SENTENCE, KIT_HEADER
from skinconsult.domain.entities.dialogue import DialogueStep, QUESTION_STEPS
from skinconsult.infrastructure.store.memory_session_store import MemorySessionStore
from skinconsult.infrastructure.store.memory_store import MemoryConversationStore

AGE_CHOICES = ("16-25", "26-35", "36-45", "46-55", "56+")
SKIN_CHOICES = ("Mista", "Secca", "Grassa", "Normale", "Asfittica")
STEP_ORDER = [DialogueStep.greeting, *QUESTION_STEPS, DialogueStep.completed]


def _start(llm=None, sessions=None):
    sessions = sessions or MemorySessionStore()
    use_case = build_use_case(llm or ScriptedLLM(), sessions=sessions)
    state, _ = use_case.start_session("Giulia")
    return use_case, sessions, state.session_id


def _run(use_case, sessions, session_id, messages):
    """Send messages in order; returns [(reply, state_after)]."""
    out = []
    for message in messages:
        reply = use_case.handle_message(session_id, message)
        out.append((reply, sessions.get(session_id)))
    return out


def test_welcome_message_uses_user_name():
    use_case = build_use_case(ScriptedLLM())
    state, reply = use_case.start_session("  Giulia ")
    assert state.user_name == "Giulia"
    assert reply.text.startswith("Ciao Giulia!")
    assert not reply.has_choices
    assert state.current_step == DialogueStep.greeting


def test_free_text_skin_description_skips_to_age_question():
    """'Ho la pelle grassa e tanti brufoli' fills skin type and issue; the first question is age."""
    use_case, sessions, sid = _start()
    reply = use_case.handle_message(sid, "Ho la pelle grassa e tanti brufoli")
    state = sessions.get(sid)

    assert state.structured_flow_active
    assert state.current_step == DialogueStep.awaiting_age
    assert state.answers.skin_type == "Grassa"
    assert state.answers.main_issue == "Acne/Brufoli"
    assert "Ho capito che hai la pelle grassa." in reply.text
    assert "Che tipo di pelle hai?" not in reply.text
    assert reply.text.endswith("Quanti anni hai?")
    assert reply.choices == AGE_CHOICES


def test_full_flow_mixed_skin_acne_gets_acne_kit():
    """Mista / 26-35 / Acne / Routine completa ends with the late-acne kit link."""
    use_case, sessions, sid = _start()
    turns = _run(
        use_case,
        sessions,
        sid,
        ["Vorrei una consulenza", "Mista", "26-35", "Acne/Brufoli", "Routine completa", "Nessuna informazione aggiuntiva"],
    )

    steps = [state.current_step for _, state in turns]
    assert steps == [
        DialogueStep.awaiting_skin_type,
        DialogueStep.awaiting_age,
        DialogueStep.awaiting_problem,
        DialogueStep.awaiting_advice_type,
        DialogueStep.awaiting_additional_info,
        DialogueStep.completed,
    ]
    assert [reply.choices for reply, _ in turns[:5]] == [
        SKIN_CHOICES,
        AGE_CHOICES,
        PROBLEM_CHOICES,
        ADVICE_CHOICES,
        ADDITIONAL_INFO_CHOICES,
    ]

    final_reply, final_state = turns[-1]
    assert "https://beautycology.it/prodotto/routine-pelle-acne-tardiva/" in final_reply.text
    assert KIT_HEADER in final_reply.text
    assert final_reply.text.endswith(CLOSING_SENTENCE)
    assert not final_reply.has_choices
    assert final_state.final_recommendation_sent
    assert not final_state.structured_flow_active


def test_no_matching_kit_still_links_generic_routines():
    """Normale + Pori dilatati has no kit; the final answer links the routine collection."""
    use_case, sessions, sid = _start()
    turns = _run(
        use_case,
        sessions,
        sid,
        ["Mi serve una routine", "Normale", "36-45", "Pori dilatati", "Routine completa", "Nessuna informazione aggiuntiva"],
    )
    final_reply, final_state = turns[-1]
    assert final_state.current_step == DialogueStep.completed
    assert "https://beautycology.it/skincare-routine/" in final_reply.text
    assert final_reply.meta["bundle_url"] == "https://beautycology.it/skincare-routine/"


def test_product_question_mid_questionnaire_keeps_step():
    """A price question at awaiting_problem answers from the catalog without moving the flow."""
    use_case, sessions, sid = _start()
    _run(use_case, sessions, sid, ["Vorrei una consulenza", "Secca", "46-55"])
    assert sessions.get(sid).current_step == DialogueStep.awaiting_problem

    reply = use_case.handle_message(sid, "Quanto costa M-Eye Secret?")
    state = sessions.get(sid)

    assert state.current_step == DialogueStep.awaiting_problem
    assert state.structured_flow_active
    assert state.last_intent == "product_info"
    assert "€32,90" in reply.text
    assert "https://beautycology.it/prodotto/m-eye-secret-contorno-occhi-multipeptide/" in reply.text
    assert reply.choices == ()

    reply = use_case.handle_message(sid, "Rughe/Invecchiamento")
    assert sessions.get(sid).current_step == DialogueStep.awaiting_advice_type
    assert reply.choices == ADVICE_CHOICES


def test_failing_model_still_asks_canned_question():
    """With every completion failing, the age question is still asked with its choices."""
    llm = FailingLLM()
    use_case, sessions, sid = _start(llm)
    _run(use_case, sessions, sid, ["Ho la pelle mista"])
    assert sessions.get(sid).current_step == DialogueStep.awaiting_age

    reply = use_case.handle_message(sid, "non saprei")
    assert sessions.get(sid).current_step == DialogueStep.awaiting_age
    assert reply.text == "Quanti anni hai?"
    assert reply.choices == AGE_CHOICES
    assert llm.calls >= 2


def test_failing_model_still_completes_with_catalog_routine():
    use_case, sessions, sid = _start(FailingLLM())
    turns = _run(
        use_case,
        sessions,
        sid,
        ["Ho la pelle secca e le rughe", "56+", "Routine completa", "Nessuna informazione aggiuntiva"],
    )
    final_reply, final_state = turns[-1]
    assert final_state.current_step == DialogueStep.completed
    assert "https://beautycology.it/prodotto/routine-antirughe/" in final_reply.text
    assert "🌅 **ROUTINE MATTINA:**" in final_reply.text
    assert "🌙 **ROUTINE SERA:**" in final_reply.text


def test_steps_only_move_forward_and_choices_match_step():
    use_case, sessions, sid = _start()
    turns = _run(
        use_case,
        sessions,
        sid,
        [
            "Ho la pelle grassa",
            "non so",
            "30",
            "Che prezzo ha Hydra Gel?",
            "Pori dilatati",
            "ciao",
            "Routine completa",
            "Gravidanza o allattamento",
        ],
    )
    positions = [STEP_ORDER.index(state.current_step) for _, state in turns]
    assert positions == sorted(positions)
    for reply, state in turns:
        if reply.has_choices:
            assert state.current_step in QUESTION_STEPS
            assert reply.choices == question_for(state.current_step).choices
    assert turns[-1][1].answers.additional_info == "Gravidanza o allattamento"


def test_skin_question_never_repeated_once_known():
    """A model that keeps asking about skin type is overridden by the canned question."""
    llm = FunctionLLM(lambda request: "Dimmi, che tipo di pelle hai?")
    use_case, sessions, sid = _start(llm)
    turns = _run(use_case, sessions, sid, ["Ho la pelle mista", "26-35"])
    for reply, _ in turns:
        assert "tipo di pelle" not in reply.text.lower()
    assert turns[-1][0].text.endswith("Qual è la problematica principale che vorresti risolvere?")


def test_model_question_text_is_used_when_valid():
    llm = FunctionLLM(lambda request: "Capisco, la pelle mista va trattata con cura! Quanti anni hai?")
    use_case, sessions, sid = _start(llm)
    reply = use_case.handle_message(sid, "Ho la pelle mista")
    assert reply.text.endswith("Capisco, la pelle mista va trattata con cura! Quanti anni hai?")
    assert reply.choices == AGE_CHOICES


def test_first_value_wins_for_filled_slots():
    use_case, sessions, sid = _start()
    _run(use_case, sessions, sid, ["Ho la pelle grassa", "26-35, e comunque ho la pelle secca"])
    state = sessions.get(sid)
    assert state.answers.skin_type == "Grassa"
    assert state.answers.age == "26-35"


def test_specific_product_branch_skips_routine():
    """Asking for a single serum completes the flow with product suggestions, no routine kit."""
    use_case, sessions, sid = _start()
    turns = _run(use_case, sessions, sid, ["Ho la pelle grassa e le macchie", "26-35", "Siero"])
    reply, state = turns[-1]
    assert state.current_step == DialogueStep.completed
    assert state.final_recommendation_sent
    assert state.answers.additional_info is None
    assert KIT_HEADER not in reply.text
    assert "https://beautycology.it/prodotto/" in reply.text
    assert reply.text.endswith(CLOSING_SENTENCE)


def test_hallucinated_final_draft_falls_back_to_catalog():
    """A final draft naming a non-existent product is replaced by the catalog routine."""

    def respond(request):
        if "Crea la routine completa" in request.system_instruction or request.system_instruction.startswith("Sei un revisore"):
            return "Ti consiglio la Crema Defense mattina e sera."
        return ""

    use_case, sessions, sid = _start(FunctionLLM(respond))
    turns = _run(
        use_case,
        sessions,
        sid,
        ["Ho la pelle mista e l'acne", "26-35", "Routine completa", "Nessuna informazione aggiuntiva"],
    )
    final_reply, _ = turns[-1]
    assert "defense" not in final_reply.text.lower()
    assert "https://beautycology.it/prodotto/routine-pelle-acne-tardiva/" in final_reply.text


def test_after_completion_messages_get_continuation():
    use_case, sessions, sid = _start()
    _run(use_case, sessions, sid, ["Ho la pelle secca e le rughe", "56+", "Routine completa", "Nessuna"])
    reply = use_case.handle_message(sid, "grazie mille")
    state = sessions.get(sid)
    assert state.current_step == DialogueStep.completed
    assert not reply.has_choices
    assert reply.text.endswith(CLOSING_SENTENCE)


def test_skin_analysis_report_opens_questionnaire():
    """A photo score report sets the main issue and asks the skin type first."""
    use_case, sessions, sid = _start()
    reply = use_case.handle_message(sid, "", skin_analysis={"rossori": 88, "acne": 30, "idratazione": 75})
    state = sessions.get(sid)
    assert state.answers.main_issue == "Rosacea"
    assert state.current_step == DialogueStep.awaiting_skin_type
    assert reply.text.startswith("Ho analizzato la foto della tua pelle.")
    assert reply.choices == SKIN_CHOICES


def test_photo_is_preprocessed_and_kept_in_history():
    buffer = io.BytesIO()
    Image.new("RGB", (1600, 1200), color=(210, 170, 150)).save(buffer, format="PNG")
    use_case, sessions, sid = _start()
    reply = use_case.handle_message(sid, "", image=buffer.getvalue())
    state = sessions.get(sid)

    user_turn = state.history[-2]
    assert user_turn.image is not None
    assert user_turn.image.mime_type == "image/jpeg"
    assert state.current_step == DialogueStep.awaiting_skin_type
    assert reply.choices == SKIN_CHOICES


def test_product_request_from_greeting_stays_in_greeting():
    use_case, sessions, sid = _start()
    reply = use_case.handle_message(sid, "Cerco un prodotto per le macchie")
    state = sessions.get(sid)
    assert state.current_step == DialogueStep.greeting
    assert not state.structured_flow_active
    assert "https://beautycology.it/prodotto/" in reply.text


def test_transcript_is_logged():
    conversations = MemoryConversationStore()
    use_case = build_use_case(ScriptedLLM(), conversations=conversations)
    state, _ = use_case.start_session("Giulia")
    use_case.handle_message(state.session_id, "Ho la pelle mista")
    history = conversations.get_history(state.session_id)
    assert [m["role"] for m in history] == ["assistant", "user", "assistant"]
    assert history[-1]["meta"]["choices"] == list(AGE_CHOICES)


def test_unknown_session_raises():
    sessions = MemorySessionStore()
    use_case = build_use_case(ScriptedLLM(), sessions=sessions)
    with pytest.raises(SessionNotFoundError):
        use_case.handle_message("missing", "ciao")
    assert sessions.lock_count() == 0


def test_malformed_analysis_still_opens_questionnaire():
    """An unusable score report falls back to the generic acknowledgement and the first question."""
    use_case, sessions, sid = _start()
    reply = use_case.handle_message(sid, "", skin_analysis={"colore": "boh"})
    state = sessions.get(sid)
    assert state.structured_flow_active
    assert state.current_step == DialogueStep.awaiting_skin_type
    assert reply.text.startswith("Grazie per avermi raccontato della tua pelle!")
    assert reply.choices == SKIN_CHOICES


def test_undecodable_photo_is_dropped_without_failing_the_turn():
    use_case, sessions, sid = _start()
    reply = use_case.handle_message(sid, "", image=b"not an image")
    state = sessions.get(sid)
    assert state.history[-2].image is None
    assert state.current_step == DialogueStep.awaiting_skin_type
    assert reply.choices == SKIN_CHOICES


def test_non_finite_scores_still_open_questionnaire():
    """Infinite scores are dropped; the rest of the report is still used."""
    use_case, sessions, sid = _start()
    reply = use_case.handle_message(sid, "", skin_analysis={"acne": 1e400, "rossori": 20})
    state = sessions.get(sid)
    assert state.current_step == DialogueStep.awaiting_skin_type
    assert reply.text.startswith("Ho analizzato la foto della tua pelle.")
    assert reply.choices == SKIN_CHOICES

    use_case, sessions, sid = _start()
    reply = use_case.handle_message(sid, 'Analisi AI della pelle: {"acne": Infinity}')
    assert sessions.get(sid).current_step == DialogueStep.awaiting_skin_type
    assert reply.text.startswith("Grazie per avermi raccontato della tua pelle!")
    assert reply.choices == SKIN_CHOICES


def _photo_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (640, 480), color=(200, 160, 140)).save(buffer, format="JPEG")
    return buffer.getvalue()


def test_photo_is_scored_and_sets_main_issue():
    """The vision model's scores pick the main issue before the first question."""

    def respond(request):
        if request.system_instruction == SKIN_PHOTO_INSTRUCTION:
            return '```json\n{"acne": 85, "rossori": 30, "oleosita": 70, "idratazione": 60}\n```'
        return ""

    llm = FunctionLLM(respond)
    use_case, sessions, sid = _start(llm)
    reply = use_case.handle_message(sid, "", image=_photo_bytes())
    state = sessions.get(sid)

    photo_request = llm.requests[0]
    assert photo_request.system_instruction == SKIN_PHOTO_INSTRUCTION
    assert photo_request.turns[0].image is not None
    assert state.answers.main_issue == "Acne/Brufoli"
    assert "Pori dilatati" in state.answers.skin_problems
    assert state.current_step == DialogueStep.awaiting_skin_type
    assert reply.text.startswith("Ho analizzato la foto della tua pelle.")
    assert "- Acne: 85/100" in reply.text
    assert reply.choices == SKIN_CHOICES


def test_unreadable_photo_scores_fall_back_to_generic_opening():
    """An unusable vision reply is asked for once more, then the turn goes on without scores."""

    def respond(request):
        if request.system_instruction == SKIN_PHOTO_INSTRUCTION:
            return "Mi dispiace, la foto è troppo scura."
        return ""

    llm = FunctionLLM(respond)
    use_case, sessions, sid = _start(llm)
    reply = use_case.handle_message(sid, "", image=_photo_bytes())
    state = sessions.get(sid)

    photo_requests = [r for r in llm.requests if r.system_instruction == SKIN_PHOTO_INSTRUCTION]
    assert len(photo_requests) == 2
    assert state.answers.main_issue is None
    assert state.current_step == DialogueStep.awaiting_skin_type
    assert reply.text.startswith("Grazie per avermi raccontato della tua pelle!")
    assert reply.choices == SKIN_CHOICES


def test_photo_scoring_outage_does_not_fail_the_turn():
    llm = FailingLLM()
    use_case, sessions, sid = _start(llm)
    reply = use_case.handle_message(sid, "", image=_photo_bytes())
    assert sessions.get(sid).current_step == DialogueStep.awaiting_skin_type
    assert reply.choices == SKIN_CHOICES
    assert llm.calls >= 2


def test_draft_and_repair_share_one_turn_deadline():
    """Every completion of a turn carries the same deadline, so the repair pass gets only what is left."""

    def respond(request):
        if "Crea la routine completa" in request.system_instruction or request.system_instruction.startswith("Sei un revisore"):
            return "Ti consiglio la Crema Defense mattina e sera."
        return ""

    llm = FunctionLLM(respond)
    sessions = MemorySessionStore()
    use_case = build_use_case(llm, sessions=sessions, turn_timeout_seconds=30)
    sid = use_case.start_session("Giulia")[0].session_id
    _run(use_case, sessions, sid, ["Ho la pelle mista e l'acne", "26-35", "Routine completa"])

    llm.requests.clear()
    before = time.monotonic()
    use_case.handle_message(sid, "Nessuna informazione aggiuntiva")

    deadlines = {r.deadline for r in llm.requests}
    assert len(llm.requests) >= 2
    assert any(r.system_instruction.startswith("Sei un revisore") for r in llm.requests)
    assert len(deadlines) == 1
    (deadline,) = deadlines
    assert before < deadline <= time.monotonic() + 30
