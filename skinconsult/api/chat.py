import logging

from fastapi import APIRouter, Depends, HTTPException

from skinconsult.api.schemas import (
    ChatMessageSchema,
    EndSessionRequestSchema,
    HistoryMessageSchema,
    HistoryResponseSchema,
    SendMessageRequestSchema,
    SessionSnapshotSchema,
    StartSessionRequestSchema,
    StartSessionResponseSchema,
)
from skinconsult.application.exceptions import SessionNotFoundError
from skinconsult.application.ports.conversation_store import ConversationStorePort
from skinconsult.application.ports.session_store import SessionStorePort
from skinconsult.application.use_cases.end_session import EndSessionUseCase
from skinconsult.application.use_cases.handle_chat_turn import HandleChatTurnUseCase
from skinconsult.wiring.dependencies import (
    get_conversation_store,
    get_end_session_use_case,
    get_handle_chat_turn_use_case,
    get_session_store,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/start-session", response_model=StartSessionResponseSchema)
def start_session(
    req: StartSessionRequestSchema,
    uc: HandleChatTurnUseCase = Depends(get_handle_chat_turn_use_case),
):
    user_name = req.user_name.strip()
    if not user_name:
        raise HTTPException(status_code=400, detail="user_name must not be blank")
    state, reply = uc.start_session(user_name)
    return StartSessionResponseSchema(
        session_id=state.session_id,
        first_message=ChatMessageSchema(text=reply.text, has_choices=reply.has_choices, choices=list(reply.choices)),
    )


@router.post("/send-message", response_model=ChatMessageSchema)
def send_message(
    req: SendMessageRequestSchema,
    uc: HandleChatTurnUseCase = Depends(get_handle_chat_turn_use_case),
):
    if not req.text.strip() and not req.image and not req.skin_analysis:
        raise HTTPException(status_code=400, detail="Message must carry text, an image or a skin analysis")
    try:
        reply = uc.handle_message(
            session_id=req.session_id,
            text=req.text,
            image=req.image,
            skin_analysis=req.skin_analysis,
        )
    except SessionNotFoundError:
        logger.info("Unknown session", extra={"session_id": req.session_id})
        raise HTTPException(status_code=404, detail="Session not found")
    return ChatMessageSchema(text=reply.text, has_choices=reply.has_choices, choices=list(reply.choices))


@router.get("/history/{session_id}", response_model=HistoryResponseSchema)
def history(
    session_id: str,
    sessions: SessionStorePort = Depends(get_session_store),
    conversations: ConversationStorePort = Depends(get_conversation_store),
):
    messages = conversations.get_history(session_id)
    if not messages and sessions.get(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return HistoryResponseSchema(
        session_id=session_id,
        messages=[
            HistoryMessageSchema(role=m.get("role", ""), text=m.get("text", ""), ts=m.get("ts"), meta=m.get("meta") or {})
            for m in messages
        ],
    )


@router.post("/end-session", response_model=SessionSnapshotSchema)
def end_session(
    req: EndSessionRequestSchema,
    uc: EndSessionUseCase = Depends(get_end_session_use_case),
):
    try:
        snapshot = uc.execute(req.session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    return SessionSnapshotSchema(
        session_id=snapshot.session_id,
        user_name=snapshot.user_name,
        email=snapshot.email,
        answers=snapshot.answers,
        skin_problems=list(snapshot.skin_problems),
        final_recommendation_sent=snapshot.final_recommendation_sent,
        message_count=snapshot.message_count,
        transcript=list(snapshot.transcript),
        started_at=snapshot.started_at,
        ended_at=snapshot.ended_at,
    )
