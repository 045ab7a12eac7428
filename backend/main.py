"""
FastAPI Backend for the Nursing Study Tutor

Thin HTTP layer over the orchestration core:
- Bearer-token authentication via Supabase
- Tutor chat with persisted sessions
- Practice quiz and the two mini-games
- Material analysis, exam guide and the lecturer hub

Each user gets one workspace (chat, quiz, games, materials) held in memory
by this process; Supabase holds the durable chat history.
"""

import logging
import os
import sys
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)
package_src = os.path.join(project_root, "nursing_study_tutor", "src")
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

from lib.logger import setup_logging, get_logger

setup_logging(level=logging.INFO, use_colors=True)
logger = get_logger("backend.main")

from lib.supabase_client import get_supabase_client, supabase_configured
from lib.auth import get_current_user, require_lecturer

from nursing_study_tutor.chat_orchestrator import ChatOrchestrator
from nursing_study_tutor.config import TutorConfig, allowed_origins
from nursing_study_tutor.content_gateway import ContentGateway
from nursing_study_tutor.content_models import SubjectArea
from nursing_study_tutor.errors import (
    AuthError,
    GenerationError,
    PersistenceError,
    PreconditionError,
    SessionBusyError,
    SessionNotFoundError,
    TutorError,
    ValidationError,
)
from nursing_study_tutor.games import LabelGame, RewardLedger, SequenceGame
from nursing_study_tutor.identity import User, features_for
from nursing_study_tutor.material_lab import MaterialLab
from nursing_study_tutor.quiz_engine import QuizEngine, topic_pool_from_materials
from nursing_study_tutor.session_state import ChatMessage, ChatState, MessageView
from nursing_study_tutor.session_store import SessionStore

# ==================== Singletons ====================

_config: Optional[TutorConfig] = None
_gateway: Optional[ContentGateway] = None
_session_store: Optional[SessionStore] = None


def get_config() -> TutorConfig:
    global _config
    if _config is None:
        _config = TutorConfig.from_env()
    return _config


def get_gateway() -> ContentGateway:
    """Get or create the process-wide content gateway."""
    global _gateway
    if _gateway is None:
        _gateway = ContentGateway(config=get_config())
    return _gateway


def get_session_store() -> SessionStore:
    global _session_store
    if _session_store is None:
        client = get_supabase_client() if supabase_configured() else None
        _session_store = SessionStore(supabase_client=client)
    return _session_store


@dataclass
class UserWorkspace:
    """Per-user feature state owned by this process."""
    chat: ChatOrchestrator
    quiz: QuizEngine
    sequence_game: SequenceGame
    label_game: LabelGame
    materials: MaterialLab
    rewards: RewardLedger


_workspaces: Dict[str, UserWorkspace] = {}


def build_workspace(user: User, gateway, store, config: TutorConfig) -> UserWorkspace:
    rewards = RewardLedger(win_points=config.game_win_points)
    return UserWorkspace(
        chat=ChatOrchestrator(gateway, store, user.id, config=config),
        quiz=QuizEngine(gateway, config=config),
        sequence_game=SequenceGame(gateway, on_complete=rewards),
        label_game=LabelGame(gateway, on_complete=rewards),
        materials=MaterialLab(gateway),
        rewards=rewards,
    )


def get_workspace(user: User = Depends(get_current_user)) -> UserWorkspace:
    if user.id not in _workspaces:
        _workspaces[user.id] = build_workspace(user, get_gateway(), get_session_store(), get_config())
    return _workspaces[user.id]


def require_feature(user: User, feature: str):
    if feature not in features_for(user):
        raise HTTPException(status_code=403, detail=f"'{feature}' is not available for {user.role.value}s")


# ==================== App ====================

app = FastAPI(
    title="Nursing Study Tutor API",
    description="Tutor chat, practice quizzes, study games and lecturer tools",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_FOR_ERROR = [
    (AuthError, 401),
    (SessionNotFoundError, 404),
    (PreconditionError, 409),
    (SessionBusyError, 429),
    (GenerationError, 502),
    (PersistenceError, 503),
]


@app.exception_handler(TutorError)
async def tutor_error_handler(request: Request, exc: TutorError):
    status = next((code for cls, code in _STATUS_FOR_ERROR if isinstance(exc, cls)), 500)
    body: Dict[str, Any] = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, ValidationError):
        body["problems"] = exc.problems
    logger.warning(f"{type(exc).__name__} on {request.url.path}", data={"status": status, "detail": str(exc)})
    return JSONResponse(status_code=status, content=body)


# ==================== Request models ====================

class ChatSendRequest(BaseModel):
    content: str


class ViewRequest(BaseModel):
    message_id: str
    view: MessageView


class TopicItem(BaseModel):
    topic: str = Field(min_length=1)
    subject: str = ""


class QuizStartRequest(BaseModel):
    topics: List[TopicItem] = Field(default_factory=list)
    difficulty: Optional[str] = None


class QuizAnswerRequest(BaseModel):
    option_index: int


class GameLoadRequest(BaseModel):
    subject: SubjectArea = SubjectArea.ANATOMY


class MoveRequest(BaseModel):
    from_index: int
    to_index: int


class MatchRequest(BaseModel):
    part_id: str
    label: str


class CompleteRequest(BaseModel):
    won: Optional[bool] = None


class MaterialRequest(BaseModel):
    name: str
    mime_type: str
    data: str


class TopicRequest(BaseModel):
    topic: str


class NotesRequest(BaseModel):
    topic: str
    depth: str = "detailed"


# ==================== Serializers ====================

def message_to_dict(message: ChatMessage, state: ChatState) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "is_error": message.is_error,
    }
    if message.has_payload:
        # raw bag, so keys an older or newer schema wrote still round-trip
        payload["structured"] = message.metadata
        payload["view"] = state.view_for(message.id).value
    return payload


def chat_state_to_dict(state: ChatState) -> Dict[str, Any]:
    return {
        "session_id": state.session_id,
        "in_flight": state.in_flight,
        "warnings": state.warnings,
        "messages": [message_to_dict(m, state) for m in state.messages],
    }


def quiz_to_dict(engine: QuizEngine) -> Dict[str, Any]:
    run = engine.run
    if run is None:
        return {"started": False, "in_flight": engine.in_flight}
    question = run.current_question
    current: Dict[str, Any] = {"id": question.id, "text": question.text, "options": question.options}
    if question.id in run.explained:
        current["selected"] = run.answers[question.id]
        current["correctAnswer"] = question.correct_answer
        current["explanation"] = question.explanation
    return {
        "started": True,
        "topic": run.topic.topic,
        "subject": run.topic.subject.value,
        "index": run.current_index,
        "total": run.total,
        "score": run.score,
        "finished": run.finished,
        "accuracy": run.accuracy if run.finished else None,
        "question": current,
    }


def sequence_to_dict(game: SequenceGame) -> Dict[str, Any]:
    if game.puzzle is None:
        return {"loaded": False}
    body: Dict[str, Any] = {
        "loaded": True,
        "title": game.puzzle.title,
        "submitted": game.submitted,
        # order stays server-side until submission
        "steps": [{"id": step.id, "text": step.text} for step in game.working],
    }
    if game.submitted:
        body["accuracy"] = game.accuracy
        body["results"] = [
            {"id": r.step.id, "correct": r.correct, "correct_position": r.correct_position}
            for r in game.results()
        ]
    return body


def label_to_dict(game: LabelGame) -> Dict[str, Any]:
    if game.puzzle is None:
        return {"loaded": False}
    body: Dict[str, Any] = {
        "loaded": True,
        "title": game.puzzle.title,
        "image_url": game.puzzle.image_url,
        "has_image": game.has_image,
        "parts": [{"id": part.id, "description": part.description} for part in game.puzzle.parts],
        "labels": sorted(game.labels),
        "selections": game.selections,
        "can_submit": game.can_submit,
        "submitted": game.submitted,
    }
    if game.submitted:
        body["score"] = game.score
        body["results"] = [
            {"id": r.part.id, "chosen": r.chosen_label, "label": r.part.label, "correct": r.correct}
            for r in game.results()
        ]
    return body


# ==================== Endpoints ====================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Nursing Study Tutor API",
        "version": "1.0.0",
        "supabase_configured": supabase_configured(),
    }


@app.get("/api/me")
async def me(user: User = Depends(get_current_user), workspace: UserWorkspace = Depends(get_workspace)):
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role.value,
        "school": user.school,
        "course": user.course,
        "features": features_for(user),
        "points": workspace.rewards.points,
        "streak": workspace.rewards.streak,
    }


# ---------- chat ----------

@app.post("/api/chat/send")
async def chat_send(
    body: ChatSendRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "chat")
    start_time = time.time()
    logger.request("POST", "/api/chat/send", user_id=user.id, data={"message_length": len(body.content)})
    message = await workspace.chat.send(body.content)
    logger.response(200, "/api/chat/send", duration=time.time() - start_time)
    state = workspace.chat.state
    return {
        "reply": message_to_dict(message, state) if message else None,
        "state": chat_state_to_dict(state),
    }


@app.post("/api/chat/retry")
async def chat_retry(user: User = Depends(get_current_user), workspace: UserWorkspace = Depends(get_workspace)):
    require_feature(user, "chat")
    message = await workspace.chat.retry()
    state = workspace.chat.state
    return {"reply": message_to_dict(message, state) if message else None, "state": chat_state_to_dict(state)}


@app.post("/api/chat/new")
async def chat_new(user: User = Depends(get_current_user), workspace: UserWorkspace = Depends(get_workspace)):
    require_feature(user, "chat")
    return chat_state_to_dict(workspace.chat.start_new_session())


@app.post("/api/chat/view")
async def chat_view(
    body: ViewRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "chat")
    return chat_state_to_dict(workspace.chat.set_view(body.message_id, body.view))


@app.get("/api/sessions")
async def list_sessions(user: User = Depends(get_current_user), workspace: UserWorkspace = Depends(get_workspace)):
    require_feature(user, "chat")
    sessions = await workspace.chat.list_sessions()
    return {
        "sessions": [
            {"id": s.id, "title": s.title, "created_at": s.created_at.isoformat()}
            for s in sessions
        ]
    }


@app.post("/api/sessions/{session_id}/select")
async def select_session(
    session_id: str,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "chat")
    state = await workspace.chat.select_session(session_id)
    return chat_state_to_dict(state)


# ---------- practice quiz ----------

@app.post("/api/quiz/start")
async def quiz_start(
    body: QuizStartRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "practice")
    pool = [item.model_dump() for item in body.topics] or topic_pool_from_materials(workspace.materials.materials)
    await workspace.quiz.start(pool, difficulty=body.difficulty)
    return quiz_to_dict(workspace.quiz)


@app.post("/api/quiz/answer")
async def quiz_answer(
    body: QuizAnswerRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "practice")
    correct = workspace.quiz.answer(body.option_index)
    return {"correct": correct, "quiz": quiz_to_dict(workspace.quiz)}


@app.post("/api/quiz/advance")
async def quiz_advance(user: User = Depends(get_current_user), workspace: UserWorkspace = Depends(get_workspace)):
    require_feature(user, "practice")
    workspace.quiz.advance()
    return quiz_to_dict(workspace.quiz)


# ---------- games ----------

@app.post("/api/games/sequence/load")
async def sequence_load(
    body: GameLoadRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "games")
    await workspace.sequence_game.load(body.subject)
    return sequence_to_dict(workspace.sequence_game)


@app.post("/api/games/sequence/move")
async def sequence_move(
    body: MoveRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "games")
    workspace.sequence_game.move(body.from_index, body.to_index)
    return sequence_to_dict(workspace.sequence_game)


@app.post("/api/games/sequence/submit")
async def sequence_submit(user: User = Depends(get_current_user), workspace: UserWorkspace = Depends(get_workspace)):
    require_feature(user, "games")
    workspace.sequence_game.submit()
    return sequence_to_dict(workspace.sequence_game)


@app.post("/api/games/sequence/complete")
async def sequence_complete(
    body: CompleteRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "games")
    result = workspace.sequence_game.complete(body.won)
    return {"result": asdict(result), "points": workspace.rewards.points, "streak": workspace.rewards.streak}


@app.post("/api/games/label/load")
async def label_load(
    body: GameLoadRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "games")
    await workspace.label_game.load(body.subject)
    return label_to_dict(workspace.label_game)


@app.post("/api/games/label/match")
async def label_match(
    body: MatchRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "games")
    workspace.label_game.match(body.part_id, body.label)
    return label_to_dict(workspace.label_game)


@app.post("/api/games/label/submit")
async def label_submit(user: User = Depends(get_current_user), workspace: UserWorkspace = Depends(get_workspace)):
    require_feature(user, "games")
    workspace.label_game.submit()
    return label_to_dict(workspace.label_game)


@app.post("/api/games/label/complete")
async def label_complete(
    body: CompleteRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "games")
    result = workspace.label_game.complete(body.won)
    return {"result": asdict(result), "points": workspace.rewards.points, "streak": workspace.rewards.streak}


# ---------- materials, exam guide, lecturer hub ----------

@app.post("/api/materials/analyze")
async def analyze_material(
    body: MaterialRequest,
    user: User = Depends(get_current_user),
    workspace: UserWorkspace = Depends(get_workspace),
):
    require_feature(user, "material-lab")
    material = await workspace.materials.analyze(body.name, body.mime_type, body.data)
    return {
        "id": material.id,
        "name": material.name,
        "kind": material.kind,
        "subject": material.subject.value,
        "topics": material.topics,
        "analysis": material.analysis.to_wire(),
    }


@app.post("/api/materials/visual")
async def material_visual(user: User = Depends(get_current_user), workspace: UserWorkspace = Depends(get_workspace)):
    require_feature(user, "material-lab")
    return {"image_url": await workspace.materials.generate_visual()}


@app.post("/api/exam-guide")
async def exam_guide(body: TopicRequest, user: User = Depends(get_current_user)):
    require_feature(user, "exam-guide")
    outline = await get_gateway().generate_exam_outline(body.topic)
    return outline.to_wire()


@app.post("/api/lecturer/notes")
async def lecturer_notes(body: NotesRequest, user: User = Depends(get_current_user)):
    require_lecturer(user)
    notes = await get_gateway().generate_lecturer_notes(body.topic, body.depth)
    return notes.to_wire()


@app.post("/api/lecturer/lesson-plan")
async def lecturer_lesson_plan(body: TopicRequest, user: User = Depends(get_current_user)):
    require_lecturer(user)
    plan = await get_gateway().generate_lesson_plan(body.topic)
    return plan.to_wire()


@app.post("/api/lecturer/question-bank")
async def lecturer_question_bank(body: TopicRequest, user: User = Depends(get_current_user)):
    require_lecturer(user)
    bank = await get_gateway().generate_question_bank(body.topic)
    return bank.to_wire()


if __name__ == "__main__":
    import uvicorn

    try:
        uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
