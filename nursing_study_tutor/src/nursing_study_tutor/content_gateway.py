"""
Content Generation Gateway

Single point of contact with the generative provider. Every feature (chat,
material analysis, exam guide, lecturer hub, quiz, games) goes through here
so they all get the same schema enforcement and the same error shape:

- the request carries a system instruction, the contents, and a JSON schema
- the response must be JSON that validates against the pydantic model
- anything else raises GenerationError (ValidationError for contract breaks)

Image generation is best-effort: failures return None instead of raising.
"""

import base64
import binascii
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar, Union

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError as PydanticValidationError

from nursing_study_tutor.config import TutorConfig
from nursing_study_tutor.content_models import (
    ContentModel,
    ExamOutline,
    LabelPuzzle,
    LabelPuzzleDraft,
    LecturerNotes,
    LessonPlan,
    MaterialAnalysis,
    Question,
    QuestionBank,
    QuestionSet,
    SequencePuzzle,
    SubjectArea,
    TutorReply,
)
from nursing_study_tutor.errors import GenerationError, ValidationError
from nursing_study_tutor import prompts
from nursing_study_tutor.session_state import USER_ROLE, TurnSummary

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=ContentModel)

# gpt-image-1 only renders these three sizes
ASPECT_RATIO_SIZES = {
    "1:1": "1024x1024",
    "3:2": "1536x1024",
    "16:9": "1536x1024",
    "2:3": "1024x1536",
    "9:16": "1024x1536",
}

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def render_history(history: Sequence[TurnSummary]) -> List[str]:
    """Render turns as labeled lines ("Student: ..." / "Tutor: ...")."""
    lines = []
    for turn in history:
        label = prompts.STUDENT_LABEL if turn.role == USER_ROLE else prompts.TUTOR_LABEL
        lines.append(f"{label}: {turn.content}")
    return lines


def _subject_name(subject: Union[str, SubjectArea]) -> str:
    return subject.value if isinstance(subject, SubjectArea) else str(subject)


class ContentGateway:
    """
    Façade over the OpenAI client that returns validated content objects.

    Build one per process and pass it to the orchestrators; tests pass a
    fake `llm_client` exposing `chat.completions.create` and `images.generate`.
    """

    def __init__(self, llm_client=None, config: Optional[TutorConfig] = None):
        """
        Initialize the gateway.

        Args:
            llm_client: AsyncOpenAI-compatible client (created from env if None)
            config: Tunables (model names, history window, question count)
        """
        self.config = config or TutorConfig.from_env()
        self.llm_client = llm_client or AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY"))
        self.model = self.config.openai_model
        self.image_model = self.config.openai_image_model

    # ==================== Provider plumbing ====================

    @staticmethod
    def _response_format(model_cls: Type[ContentModel], name: str) -> Dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {
                "name": name,
                "schema": model_cls.model_json_schema(by_alias=True),
                "strict": False,
            },
        }

    @staticmethod
    def _parse_json(raw_text: Optional[str]) -> Dict[str, Any]:
        if not raw_text or not raw_text.strip():
            raise GenerationError("Provider returned an empty response")
        text = raw_text.strip()
        fenced = _FENCED_JSON.search(text)
        if fenced:
            text = fenced.group(1)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise GenerationError(f"Provider returned malformed JSON: {e}") from e
        if not isinstance(data, dict):
            raise GenerationError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    @staticmethod
    def _validate(model_cls: Type[ModelT], data: Dict[str, Any]) -> ModelT:
        try:
            return model_cls.model_validate(data)
        except PydanticValidationError as e:
            problems = [
                f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            ]
            raise ValidationError(
                f"{model_cls.__name__} failed validation ({len(problems)} problem(s))",
                problems=problems,
            ) from e

    async def _generate(
        self,
        model_cls: Type[ModelT],
        schema_name: str,
        system_instruction: str,
        contents: Union[str, List[Dict[str, Any]]],
        temperature: float = 0.4,
    ) -> ModelT:
        """Send one structured request and return the validated model."""
        messages = [
            {"role": "system", "content": system_instruction},
            {"role": "user", "content": contents},
        ]
        try:
            response = await self.llm_client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                response_format=self._response_format(model_cls, schema_name),
            )
        except OpenAIError as e:
            logger.warning(f"⚠️ [ContentGateway] Provider call failed for {schema_name}: {e}")
            raise GenerationError(f"Content provider unavailable: {e}") from e

        if not response.choices:
            raise GenerationError("Provider returned no choices")
        data = self._parse_json(response.choices[0].message.content)
        result = self._validate(model_cls, data)
        logger.debug(f"✅ [ContentGateway] {schema_name} validated")
        return result

    # ==================== Student features ====================

    async def generate_tutor_reply(
        self,
        question: str,
        history: Sequence[TurnSummary] = (),
    ) -> TutorReply:
        """
        Answer a chat question as a full tutoring unit.

        Args:
            question: The student's free-text question
            history: Prior turns; only the last `history_window` are sent

        Returns:
            Validated TutorReply

        Raises:
            GenerationError: provider failure or schema-violating response
        """
        window = list(history)[-self.config.history_window:] if self.config.history_window > 0 else []
        parts = [{"type": "text", "text": line} for line in render_history(window)]
        parts.append({"type": "text", "text": f"Question: {question}"})
        logger.info(f"🎓 [ContentGateway] Tutor reply requested (history={len(window)})")
        return await self._generate(
            TutorReply, "tutor_reply", prompts.CHAT_SYSTEM_INSTRUCTION, parts
        )

    async def generate_from_document(
        self,
        mime_type: str,
        data_b64: str,
        filename: str = "material",
    ) -> MaterialAnalysis:
        """
        Analyse an uploaded document. The document is the only context.

        Raises:
            GenerationError: undecodable upload, provider failure, or bad schema
        """
        try:
            raw = base64.b64decode(data_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise GenerationError(f"Document payload is not valid base64: {e}") from e
        if not raw:
            raise GenerationError("Document payload is empty")

        mime_type = (mime_type or "application/octet-stream").lower()
        parts: List[Dict[str, Any]] = [{"type": "text", "text": prompts.MATERIAL_PROMPT}]
        if mime_type.startswith("image/"):
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{mime_type};base64,{data_b64}"},
            })
        elif mime_type.startswith("text/"):
            parts.append({"type": "text", "text": raw.decode("utf-8", errors="replace")})
        else:
            parts.append({
                "type": "file",
                "file": {"filename": filename, "file_data": f"data:{mime_type};base64,{data_b64}"},
            })
        logger.info(f"📚 [ContentGateway] Material analysis requested ({mime_type}, {len(raw)} bytes)")
        return await self._generate(
            MaterialAnalysis, "material_analysis", prompts.MATERIAL_SYSTEM_INSTRUCTION, parts
        )

    async def generate_question_set(
        self,
        topic: str,
        difficulty: str,
        subject: Union[str, SubjectArea],
    ) -> List[Question]:
        """Return exactly `quiz_question_count` validated questions."""
        count = self.config.quiz_question_count
        question_set = await self._generate(
            QuestionSet,
            "question_set",
            prompts.QUIZ_SYSTEM_INSTRUCTION,
            prompts.QUESTION_SET_PROMPT.format(
                count=count, difficulty=difficulty, topic=topic, subject=_subject_name(subject)
            ),
        )
        if len(question_set.questions) < count:
            raise ValidationError(
                f"Expected {count} questions, got {len(question_set.questions)}",
                problems=["questions: too few"],
            )
        return question_set.questions[:count]

    async def generate_exam_outline(self, topic: str) -> ExamOutline:
        return await self._generate(
            ExamOutline,
            "exam_outline",
            prompts.CHAT_SYSTEM_INSTRUCTION,
            prompts.EXAM_OUTLINE_PROMPT.format(topic=topic),
        )

    # ==================== Games ====================

    async def generate_sequence_puzzle(self, subject: Union[str, SubjectArea]) -> SequencePuzzle:
        """Ordering puzzle whose step orders are exactly 0..n-1."""
        return await self._generate(
            SequencePuzzle,
            "sequence_puzzle",
            prompts.GAME_SYSTEM_INSTRUCTION,
            prompts.SEQUENCE_PUZZLE_PROMPT.format(subject=_subject_name(subject)),
            temperature=0.7,
        )

    async def generate_label_puzzle(self, subject: Union[str, SubjectArea]) -> LabelPuzzle:
        """
        Two-stage labeling puzzle: part metadata first, then an illustration.

        The puzzle is returned even when the image stage fails; `image_url`
        is None in that case.
        """
        draft = await self._generate(
            LabelPuzzleDraft,
            "label_puzzle",
            prompts.GAME_SYSTEM_INSTRUCTION,
            prompts.LABEL_PUZZLE_PROMPT.format(subject=_subject_name(subject)),
            temperature=0.7,
        )
        image_url = await self.generate_visual(draft.image_prompt or draft.title)
        return LabelPuzzle(
            title=draft.title or "Anatomical Labeling Challenge",
            image_url=image_url,
            parts=draft.parts,
        )

    async def generate_visual(self, prompt: str, aspect_ratio: str = "1:1") -> Optional[str]:
        """
        Render an educational illustration as a data URL.

        Returns:
            "data:image/png;base64,..." or None if generation is unavailable
        """
        if not prompt or not prompt.strip():
            return None
        size = ASPECT_RATIO_SIZES.get(aspect_ratio, ASPECT_RATIO_SIZES["1:1"])
        try:
            response = await self.llm_client.images.generate(
                model=self.image_model,
                prompt=prompts.enhance_image_prompt(prompt),
                size=size,
                n=1,
            )
        except Exception as e:
            # image output is optional for every caller
            logger.warning(f"⚠️ [ContentGateway] Image generation failed: {e}")
            return None

        data = getattr(response.data[0], "b64_json", None) if response.data else None
        if not data:
            logger.warning("⚠️ [ContentGateway] Image response carried no inline data")
            return None
        return f"data:image/png;base64,{data}"

    # ==================== Lecturer hub ====================

    async def generate_lecturer_notes(self, topic: str, depth: str = "detailed") -> LecturerNotes:
        if depth not in ("summary", "detailed"):
            depth = "detailed"
        return await self._generate(
            LecturerNotes,
            "lecturer_notes",
            prompts.LECTURER_SYSTEM_INSTRUCTION,
            prompts.LECTURER_NOTES_PROMPT.format(depth=depth, topic=topic),
        )

    async def generate_lesson_plan(self, topic: str) -> LessonPlan:
        return await self._generate(
            LessonPlan,
            "lesson_plan",
            prompts.LECTURER_SYSTEM_INSTRUCTION,
            prompts.LESSON_PLAN_PROMPT.format(topic=topic),
        )

    async def generate_question_bank(self, topic: str) -> QuestionBank:
        return await self._generate(
            QuestionBank,
            "question_bank",
            prompts.LECTURER_SYSTEM_INSTRUCTION,
            prompts.QUESTION_BANK_PROMPT.format(topic=topic),
        )
