"""
Nursing Study Tutor

Orchestration core for the study tutor: content generation gateway,
chat sessions, practice quizzes and the mini-games.
"""

__version__ = "1.0.0"
