"""
Structured Content Models

Typed shapes for everything the generative provider returns. Field names
are snake_case in Python and camelCase on the wire (the provider schema and
the persisted chat metadata both use camelCase).

Each content kind gets its own model; they share StudyContentCore. The
invariants (answer index in range, contiguous sequence order, unique part
labels) are enforced here, once, at the gateway boundary.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class SubjectArea(str, Enum):
    """Closed set of subject tags used to scope content and show badges."""
    ANATOMY = "Anatomy"
    PHYSIOLOGY = "Physiology"
    EMBRYOLOGY = "Embryology"
    MED_SURG = "Medical-Surgical Nursing"
    PHARMACOLOGY = "Pharmacology"
    PHC = "Primary Health Care"
    OTHER = "Other Nursing Science"

    @classmethod
    def coerce(cls, value: Any) -> "SubjectArea":
        """Map a free-form subject string onto the enum (case-insensitive)."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text or member.name.lower() == text:
                return member
        return cls.OTHER


class ContentModel(BaseModel):
    """Base for provider payloads: camelCase aliases, extra keys ignored."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump with camelCase keys, as stored in chat metadata."""
        return self.model_dump(mode="json", by_alias=True)


class Question(ContentModel):
    """A multiple-choice question with the index of its correct option."""
    id: str
    text: str
    options: List[str]
    correct_answer: int
    explanation: str
    difficulty: Optional[str] = None

    @model_validator(mode="after")
    def _check_answer_index(self) -> "Question":
        if len(self.options) < 2:
            raise ValueError(f"question {self.id!r} needs at least 2 options")
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(
                f"question {self.id!r} correctAnswer {self.correct_answer} "
                f"outside 0..{len(self.options) - 1}"
            )
        return self

    def is_correct(self, option_index: int) -> bool:
        return option_index == self.correct_answer


def _require_unique_ids(items: List[Any], kind: str) -> None:
    ids = [item.id for item in items]
    if len(ids) != len(set(ids)):
        raise ValueError(f"{kind} ids must be unique")


class Slide(ContentModel):
    title: str
    bullets: List[str]
    image_description: str
    notes: Optional[str] = None


class Flashcard(ContentModel):
    front: str
    back: str


class StudyContentCore(ContentModel):
    """Fields every tutoring unit carries."""
    topic_title: str
    subject: SubjectArea

    @field_validator("subject", mode="before")
    @classmethod
    def _coerce_subject(cls, value: Any) -> SubjectArea:
        return SubjectArea.coerce(value)


class TutorReply(StudyContentCore):
    """The full structured tutoring unit returned for a chat question."""
    simple_explanation: str
    key_concepts: List[str]
    visual_guide: str
    exam_focus: str
    practice_questions: List[Question]
    slides: List[Slide]
    flashcards: List[Flashcard]

    @model_validator(mode="after")
    def _check_question_ids(self) -> "TutorReply":
        _require_unique_ids(self.practice_questions, "practice question")
        return self


class MaterialAnalysis(TutorReply):
    """Same shape as a chat reply, produced from an uploaded document."""


class ExamOutline(ContentModel):
    topic: str
    subject: SubjectArea
    outline_points: List[str]

    @field_validator("subject", mode="before")
    @classmethod
    def _coerce_subject(cls, value: Any) -> SubjectArea:
        return SubjectArea.coerce(value)


class QuestionSet(ContentModel):
    """Wrapper so a question list can be requested as a JSON object."""
    questions: List[Question] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_ids(self) -> "QuestionSet":
        _require_unique_ids(self.questions, "question")
        return self


class ShortAnswer(ContentModel):
    question: str
    answer: str
    rationale: str


class CaseStudy(ContentModel):
    scenario: str
    questions: List[str]
    answers: List[str]


class QuestionBank(ContentModel):
    topic: str
    mcqs: List[Question]
    short_answers: List[ShortAnswer] = Field(default_factory=list)
    case_studies: List[CaseStudy] = Field(default_factory=list)


class LecturerNotes(ContentModel):
    title: str
    content: str
    depth: str
    key_concepts: List[str]
    clinical_pearls: List[str]
    diagram_descriptions: List[str]


class LessonSegment(ContentModel):
    time: str
    activity: str
    method: str


class LessonPlan(ContentModel):
    title: str
    duration: str
    objectives: List[str]
    structure: List[LessonSegment]
    group_activities: List[str]


class PathStep(ContentModel):
    """One step of a sequence puzzle; `order` is its correct 0-based slot."""
    id: str
    text: str
    order: int


class SequencePuzzle(ContentModel):
    title: str
    steps: List[PathStep]

    @model_validator(mode="after")
    def _check_order(self) -> "SequencePuzzle":
        if len(self.steps) < 2:
            raise ValueError("sequence puzzle needs at least 2 steps")
        _require_unique_ids(self.steps, "step")
        orders = sorted(step.order for step in self.steps)
        if orders != list(range(len(self.steps))):
            raise ValueError(
                f"step orders must be exactly 0..{len(self.steps) - 1}, got {orders}"
            )
        return self


class LabeledPart(ContentModel):
    id: str
    label: str
    description: str


class LabelPuzzleDraft(ContentModel):
    """First stage of a label puzzle: part metadata plus an image prompt."""
    title: str
    image_prompt: str = ""
    parts: List[LabeledPart]

    @model_validator(mode="after")
    def _check_parts(self) -> "LabelPuzzleDraft":
        if len(self.parts) < 2:
            raise ValueError("label puzzle needs at least 2 parts")
        _require_unique_ids(self.parts, "part")
        labels = [part.label for part in self.parts]
        if len(labels) != len(set(labels)):
            raise ValueError("part labels must be unique")
        return self


class LabelPuzzle(ContentModel):
    title: str
    image_url: Optional[str] = None
    parts: List[LabeledPart]
