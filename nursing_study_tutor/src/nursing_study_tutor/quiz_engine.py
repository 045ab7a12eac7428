"""
Practice Quiz Engine

Runs a 5-question multiple-choice quiz on a topic picked at random from a
pool. Answers are write-once: the first choice for a question is recorded,
scored and explained immediately; later choices are ignored.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from nursing_study_tutor.config import TutorConfig
from nursing_study_tutor.content_models import Question, SubjectArea
from nursing_study_tutor.errors import PreconditionError, SessionBusyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TopicEntry:
    """One candidate quiz topic with the subject it belongs to."""
    topic: str
    subject: SubjectArea


@dataclass
class QuizRun:
    """State of one quiz from start to completion."""
    topic: TopicEntry
    questions: List[Question]
    current_index: int = 0
    answers: Dict[str, int] = field(default_factory=dict)
    explained: Set[str] = field(default_factory=set)
    score: int = 0
    finished: bool = False

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question:
        return self.questions[self.current_index]

    def is_answered(self, question_id: str) -> bool:
        return question_id in self.answers

    @property
    def accuracy(self) -> int:
        """Percentage of correct answers over all questions, rounded."""
        if not self.questions:
            return 0
        return round(self.score / self.total * 100)


def _to_entry(item: Union[TopicEntry, Dict[str, Any]]) -> TopicEntry:
    if isinstance(item, TopicEntry):
        return item
    topic = str(item.get("topic") or "").strip()
    if not topic:
        raise PreconditionError(f"Topic pool entry has no topic: {item!r}")
    return TopicEntry(topic=topic, subject=SubjectArea.coerce(item.get("subject")))


def topic_pool_from_materials(materials: Iterable[Any]) -> List[TopicEntry]:
    """Flatten analysed materials into (topic, subject) entries."""
    pool = []
    for material in materials:
        for topic in material.topics:
            pool.append(TopicEntry(topic=topic, subject=material.subject))
    return pool


class QuizEngine:
    """Drives a practice quiz through start -> answer/advance -> finished."""

    def __init__(self, gateway, rng: Optional[random.Random] = None, config: Optional[TutorConfig] = None):
        self.gateway = gateway
        self.rng = rng or random.Random()
        self.config = config or TutorConfig.from_env()
        self.run: Optional[QuizRun] = None
        self.in_flight = False

    async def start(
        self,
        topic_pool: Iterable[Union[TopicEntry, Dict[str, Any]]],
        difficulty: Optional[str] = None,
    ) -> QuizRun:
        """
        Pick a topic uniformly at random and load a fresh question set.

        Raises:
            PreconditionError: empty pool or an entry without a topic (the
                current run is left untouched)
            SessionBusyError: a quiz is already being generated
            GenerationError: provider failure (the current run is left untouched)
        """
        entries = [_to_entry(item) for item in topic_pool]
        if not entries:
            raise PreconditionError("Cannot start a quiz without any topics")
        if self.in_flight:
            raise SessionBusyError("A quiz is already being generated")

        entry = self.rng.choice(entries)
        self.in_flight = True
        try:
            questions = await self.gateway.generate_question_set(
                entry.topic,
                difficulty or self.config.quiz_difficulty,
                entry.subject,
            )
        finally:
            self.in_flight = False

        self.run = QuizRun(topic=entry, questions=list(questions))
        logger.info(f"🎯 [QuizEngine] Quiz started on {entry.topic!r} ({len(questions)} questions)")
        return self.run

    def _require_run(self) -> QuizRun:
        if self.run is None:
            raise PreconditionError("No quiz has been started")
        return self.run

    def answer(self, option_index: int) -> Optional[bool]:
        """
        Record an answer for the current question.

        Returns:
            True/False for correctness, or None if the question was already
            answered or the run is finished (nothing changes in that case)
        """
        run = self._require_run()
        if run.finished:
            return None
        question = run.current_question
        if run.is_answered(question.id):
            return None
        if not 0 <= option_index < len(question.options):
            raise PreconditionError(f"Option {option_index} does not exist")

        run.answers[question.id] = option_index
        run.explained.add(question.id)
        correct = question.is_correct(option_index)
        if correct:
            run.score += 1
        return correct

    def advance(self) -> bool:
        """Move to the next question; returns False once the run is finished."""
        run = self._require_run()
        if run.finished:
            return False
        if run.current_index < run.total - 1:
            run.current_index += 1
            return True
        run.finished = True
        logger.info(f"🏁 [QuizEngine] Quiz finished: {run.score}/{run.total} ({run.accuracy}%)")
        return False
