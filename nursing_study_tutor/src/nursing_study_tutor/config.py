"""
Runtime configuration.

Values come from the environment (a local .env is loaded first).
"""

import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class TutorConfig:
    """Tunables shared by the gateway and the orchestrators."""
    openai_model: str = "gpt-4o-mini"
    openai_image_model: str = "gpt-image-1"
    history_window: int = 5
    session_title_length: int = 40
    quiz_question_count: int = 5
    quiz_difficulty: str = "Exam-level"
    game_win_points: int = 100

    @classmethod
    def from_env(cls) -> "TutorConfig":
        """Build config from environment variables, falling back to defaults."""
        return cls(
            openai_model=os.getenv("OPENAI_MODEL", cls.openai_model),
            openai_image_model=os.getenv("OPENAI_IMAGE_MODEL", cls.openai_image_model),
            history_window=_int_env("CHAT_HISTORY_WINDOW", cls.history_window),
            session_title_length=_int_env("SESSION_TITLE_LENGTH", cls.session_title_length),
            quiz_question_count=_int_env("QUIZ_QUESTION_COUNT", cls.quiz_question_count),
            quiz_difficulty=os.getenv("QUIZ_DIFFICULTY", cls.quiz_difficulty),
            game_win_points=_int_env("GAME_WIN_POINTS", cls.game_win_points),
        )


def allowed_origins() -> List[str]:
    """CORS origins for the backend."""
    raw = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
