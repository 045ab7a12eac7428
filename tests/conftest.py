"""
Shared fixtures: sample provider payloads and in-process fakes for the
OpenAI client, the content gateway and the Supabase client.
"""

import asyncio
import json
import os
import sys
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(project_root, "nursing_study_tutor", "src"))
sys.path.insert(0, os.path.join(project_root, "backend"))

from nursing_study_tutor.config import TutorConfig
from nursing_study_tutor.content_models import (
    LabelPuzzle,
    Question,
    SequencePuzzle,
    TutorReply,
)
from nursing_study_tutor.errors import GenerationError


# ==================== Sample payloads ====================

def question_payload(qid: str = "q1", correct: int = 1) -> Dict[str, Any]:
    return {
        "id": qid,
        "text": f"Which nerve is tested in {qid}?",
        "options": ["Vagus", "Phrenic", "Radial", "Ulnar"],
        "correctAnswer": correct,
        "explanation": "The phrenic nerve innervates the diaphragm.",
    }


def tutor_reply_payload(topic: str = "Cardiac Cycle", subject: str = "Physiology") -> Dict[str, Any]:
    return {
        "topicTitle": topic,
        "subject": subject,
        "simpleExplanation": f"{topic} explained simply.",
        "keyConcepts": ["Systole", "Diastole"],
        "visualGuide": "A diagram of the heart chambers during systole.",
        "examFocus": "Know the pressure changes in each phase.",
        "practiceQuestions": [question_payload("q1"), question_payload("q2", correct=0)],
        "slides": [
            {"title": "Overview", "bullets": ["Two phases"], "imageDescription": "Heart outline"}
        ],
        "flashcards": [{"front": "Systole?", "back": "Contraction phase"}],
    }


def question_set_payload(count: int = 5) -> Dict[str, Any]:
    return {"questions": [question_payload(f"q{i + 1}", correct=i % 4) for i in range(count)]}


def sequence_payload() -> Dict[str, Any]:
    return {
        "title": "Path of blood through the heart",
        "steps": [
            {"id": "a", "text": "Right atrium", "order": 0},
            {"id": "b", "text": "Right ventricle", "order": 1},
            {"id": "c", "text": "Pulmonary artery", "order": 2},
            {"id": "d", "text": "Lungs", "order": 3},
        ],
    }


def label_payload() -> Dict[str, Any]:
    return {
        "title": "Label the kidney",
        "imagePrompt": "Cross-section of a human kidney",
        "parts": [
            {"id": "p1", "label": "Cortex", "description": "Outer region"},
            {"id": "p2", "label": "Medulla", "description": "Inner region with pyramids"},
            {"id": "p3", "label": "Renal pelvis", "description": "Funnel draining urine"},
        ],
    }


@pytest.fixture
def sample_reply() -> TutorReply:
    return TutorReply.model_validate(tutor_reply_payload())


@pytest.fixture
def sample_questions() -> List[Question]:
    return [Question.model_validate(q) for q in question_set_payload()["questions"]]


@pytest.fixture
def sample_sequence() -> SequencePuzzle:
    return SequencePuzzle.model_validate(sequence_payload())


@pytest.fixture
def sample_label_puzzle() -> LabelPuzzle:
    draft = label_payload()
    return LabelPuzzle(title=draft["title"], image_url="data:image/png;base64,AAAA", parts=draft["parts"])


@pytest.fixture
def config() -> TutorConfig:
    return TutorConfig()


# ==================== Fake OpenAI client ====================

class FakeCompletions:
    """Replays queued completion texts (or raises queued exceptions)."""

    def __init__(self):
        self.queue: List[Any] = []
        self.calls: List[Dict[str, Any]] = []

    def push(self, item: Any):
        if isinstance(item, dict):
            item = json.dumps(item)
        self.queue.append(item)

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=item))])


class FakeImages:
    def __init__(self):
        self.b64_json = "iVBORw0KGgo="
        self.error = None
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=[SimpleNamespace(b64_json=self.b64_json)])


class FakeLLMClient:
    def __init__(self):
        self.completions = FakeCompletions()
        self.chat = SimpleNamespace(completions=self.completions)
        self.images = FakeImages()


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()


# ==================== Fake gateway ====================

class FakeGateway:
    """
    Stand-in for ContentGateway used by the orchestrators.

    Queue results (or GenerationError instances) per method; set `gate` to an
    asyncio.Event to hold the next tutor reply until the test releases it.
    """

    def __init__(self):
        self.replies: List[Any] = []
        self.question_sets: List[Any] = []
        self.sequences: List[Any] = []
        self.labels: List[Any] = []
        self.analyses: List[Any] = []
        self.visuals: List[Any] = []
        self.reply_calls: List[Dict[str, Any]] = []
        self.question_set_calls: List[Dict[str, Any]] = []
        self.visual_prompts: List[str] = []
        self.gate: asyncio.Event = None

    @staticmethod
    def _next(queue: List[Any]):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def generate_tutor_reply(self, question, history=()):
        self.reply_calls.append({"question": question, "history": list(history)})
        if self.gate is not None:
            await self.gate.wait()
        return self._next(self.replies)

    async def generate_question_set(self, topic, difficulty, subject):
        self.question_set_calls.append({"topic": topic, "difficulty": difficulty, "subject": subject})
        return self._next(self.question_sets)

    async def generate_sequence_puzzle(self, subject):
        return self._next(self.sequences)

    async def generate_label_puzzle(self, subject):
        return self._next(self.labels)

    async def generate_from_document(self, mime_type, data_b64, filename="material"):
        return self._next(self.analyses)

    async def generate_visual(self, prompt, aspect_ratio="1:1"):
        self.visual_prompts.append(prompt)
        return self.visuals.pop(0) if self.visuals else None


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def generation_error() -> GenerationError:
    return GenerationError("Content provider unavailable: timeout")


# ==================== Fake Supabase client ====================

class FakeQuery:
    """Records a table() call chain and returns canned rows on execute()."""

    def __init__(self, client: "FakeSupabase", table: str):
        self.client = client
        self.table = table
        self.ops: List[tuple] = []

    def __getattr__(self, name):
        if name in ("select", "insert", "eq", "order", "single"):
            def record(*args, **kwargs):
                self.ops.append((name, args, kwargs))
                return self
            return record
        raise AttributeError(name)

    def execute(self):
        self.client.executed.append((self.table, self.ops))
        if self.client.error is not None:
            raise self.client.error
        return SimpleNamespace(data=self.client.rows.get(self.table))


class FakeAuth:
    def __init__(self):
        self.user_id = "user-1"
        self.error = None
        self.signed_out = False
        self.sign_up_payloads: List[Dict[str, Any]] = []

    def _response(self):
        if self.error is not None:
            raise self.error
        user = SimpleNamespace(id=self.user_id) if self.user_id else None
        return SimpleNamespace(user=user)

    def sign_up(self, payload):
        self.sign_up_payloads.append(payload)
        return self._response()

    def sign_in_with_password(self, credentials):
        return self._response()

    def get_session(self):
        return self._response()

    def get_user(self, token):
        return self._response()

    def sign_out(self):
        self.signed_out = True


class FakeSupabase:
    def __init__(self):
        self.rows: Dict[str, Any] = {}
        self.error = None
        self.executed: List[tuple] = []
        self.auth = FakeAuth()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()
