"""
Mini-Game Engines

Two study games built on generated puzzles:

- SequenceGame ("build the path"): put shuffled steps back in order.
- LabelGame ("label it"): match each part description to its label.

Both freeze on submit and report a GameResult on complete(); rewards are
applied by whatever `on_complete` callback the caller injects.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from nursing_study_tutor.content_models import LabeledPart, LabelPuzzle, PathStep, SequencePuzzle
from nursing_study_tutor.errors import PreconditionError, SessionBusyError

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[bool], None]


@dataclass(frozen=True)
class GameResult:
    won: bool
    score: int
    total: int
    accuracy: int


@dataclass(frozen=True)
class StepResult:
    step: PathStep
    position: int
    correct: bool
    correct_position: Optional[int] = None  # 1-based, only for misplaced steps


@dataclass(frozen=True)
class PartResult:
    part: LabeledPart
    chosen_label: str
    correct: bool


class RewardLedger:
    """In-process points/streak tracker used as the default completion callback."""

    def __init__(self, points: int = 0, streak: int = 0, win_points: int = 100):
        self.points = points
        self.streak = streak
        self.win_points = win_points

    def record(self, won: bool):
        if won:
            self.points += self.win_points
            self.streak += 1

    def __call__(self, won: bool):
        self.record(won)


class _GameBase:
    def __init__(self, gateway, on_complete: Optional[CompletionCallback] = None):
        self.gateway = gateway
        self.on_complete = on_complete
        self.in_flight = False
        self.submitted = False
        self.completed = False

    def _begin_load(self):
        if self.in_flight:
            raise SessionBusyError("A puzzle is already being generated")
        self.in_flight = True

    def _require_open(self):
        if self.submitted:
            raise PreconditionError("The board is frozen after submission")

    def _finish(self, won: bool, score: int, total: int, accuracy: int) -> GameResult:
        if not self.submitted:
            raise PreconditionError("Submit the game before completing it")
        if self.completed:
            raise PreconditionError("This game has already been completed")
        self.completed = True
        if self.on_complete is not None:
            self.on_complete(won)
        return GameResult(won=won, score=score, total=total, accuracy=accuracy)


class SequenceGame(_GameBase):
    """Order the steps of a process; accuracy counts steps in their correct slot."""

    def __init__(
        self,
        gateway,
        rng: Optional[random.Random] = None,
        on_complete: Optional[CompletionCallback] = None,
    ):
        super().__init__(gateway, on_complete)
        self.rng = rng or random.Random()
        self.puzzle: Optional[SequencePuzzle] = None
        self.working: List[PathStep] = []
        self.accuracy = 0

    async def load(self, subject) -> SequencePuzzle:
        """Fetch a puzzle and shuffle it into the working order."""
        self._begin_load()
        try:
            puzzle = await self.gateway.generate_sequence_puzzle(subject)
        finally:
            self.in_flight = False
        self.start(puzzle)
        return puzzle

    def start(self, puzzle: SequencePuzzle):
        """Begin a round with an already-generated puzzle."""
        working = list(puzzle.steps)
        # shuffled blind: the authoritative order is not consulted until submit
        self.rng.shuffle(working)
        self.puzzle = puzzle
        self.working = working
        self.submitted = False
        self.completed = False
        self.accuracy = 0
        logger.info(f"🧩 [SequenceGame] Loaded {puzzle.title!r} ({len(working)} steps)")

    def move(self, from_index: int, to_index: int) -> List[PathStep]:
        """Take the step at `from_index` out and reinsert it at `to_index`."""
        if self.puzzle is None:
            raise PreconditionError("No puzzle loaded")
        self._require_open()
        size = len(self.working)
        if not (0 <= from_index < size and 0 <= to_index < size):
            raise PreconditionError(f"Move {from_index}->{to_index} is outside 0..{size - 1}")
        step = self.working.pop(from_index)
        self.working.insert(to_index, step)
        return self.working

    def submit(self) -> int:
        """Freeze the board and return accuracy as a rounded percentage."""
        if self.puzzle is None:
            raise PreconditionError("No puzzle loaded")
        self._require_open()
        correct = sum(1 for index, step in enumerate(self.working) if step.order == index)
        self.accuracy = round(correct / len(self.working) * 100)
        self.submitted = True
        return self.accuracy

    @property
    def correct_count(self) -> int:
        return sum(1 for index, step in enumerate(self.working) if step.order == index)

    def results(self) -> List[StepResult]:
        if not self.submitted:
            raise PreconditionError("Results are only available after submission")
        results = []
        for index, step in enumerate(self.working):
            correct = step.order == index
            results.append(StepResult(
                step=step,
                position=index,
                correct=correct,
                correct_position=None if correct else step.order + 1,
            ))
        return results

    def complete(self, won: Optional[bool] = None) -> GameResult:
        """Exit to the hub; by default the round is won only at 100% accuracy."""
        if won is None:
            won = self.accuracy == 100
        return self._finish(won, self.correct_count, len(self.working), self.accuracy)


class LabelGame(_GameBase):
    """Match part descriptions to labels; score counts exact matches."""

    def __init__(self, gateway, on_complete: Optional[CompletionCallback] = None):
        super().__init__(gateway, on_complete)
        self.puzzle: Optional[LabelPuzzle] = None
        self.selections: Dict[str, str] = {}
        self.score = 0

    async def load(self, subject) -> LabelPuzzle:
        self._begin_load()
        try:
            puzzle = await self.gateway.generate_label_puzzle(subject)
        finally:
            self.in_flight = False
        self.start(puzzle)
        return puzzle

    def start(self, puzzle: LabelPuzzle):
        self.puzzle = puzzle
        self.selections = {}
        self.submitted = False
        self.completed = False
        self.score = 0
        logger.info(
            f"🏷️ [LabelGame] Loaded {puzzle.title!r} ({len(puzzle.parts)} parts, "
            f"image={'yes' if puzzle.image_url else 'fallback'})"
        )

    @property
    def has_image(self) -> bool:
        return bool(self.puzzle and self.puzzle.image_url)

    @property
    def labels(self) -> List[str]:
        return [part.label for part in self.puzzle.parts] if self.puzzle else []

    def match(self, part_id: str, chosen_label: str) -> Dict[str, str]:
        """Choose a label for a part; re-choosing before submit overwrites."""
        if self.puzzle is None:
            raise PreconditionError("No puzzle loaded")
        self._require_open()
        if part_id not in {part.id for part in self.puzzle.parts}:
            raise PreconditionError(f"Unknown part {part_id!r}")
        if chosen_label not in self.labels:
            raise PreconditionError(f"Unknown label {chosen_label!r}")
        self.selections[part_id] = chosen_label
        return self.selections

    @property
    def can_submit(self) -> bool:
        return (
            self.puzzle is not None
            and not self.submitted
            and len(self.selections) == len(self.puzzle.parts)
        )

    def submit(self) -> int:
        """Freeze choices and return the number of exact label matches."""
        if self.puzzle is None:
            raise PreconditionError("No puzzle loaded")
        self._require_open()
        if not self.can_submit:
            raise PreconditionError("Every part needs a label before submitting")
        self.score = sum(
            1 for part in self.puzzle.parts if self.selections.get(part.id) == part.label
        )
        self.submitted = True
        return self.score

    def results(self) -> List[PartResult]:
        if not self.submitted:
            raise PreconditionError("Results are only available after submission")
        return [
            PartResult(
                part=part,
                chosen_label=self.selections[part.id],
                correct=self.selections[part.id] == part.label,
            )
            for part in self.puzzle.parts
        ]

    def complete(self, won: Optional[bool] = None) -> GameResult:
        total = len(self.puzzle.parts) if self.puzzle else 0
        if won is None:
            won = self.score == total
        accuracy = round(self.score / total * 100) if total else 0
        return self._finish(won, self.score, total, accuracy)
