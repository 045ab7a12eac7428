"""
Material Lab

Turns an uploaded document into study aids and a Material record whose
topics feed the practice quiz pool.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from nursing_study_tutor.content_models import MaterialAnalysis, SubjectArea
from nursing_study_tutor.errors import PreconditionError, SessionBusyError

logger = logging.getLogger(__name__)


def material_kind(mime_type: str) -> str:
    mime_type = (mime_type or "").lower()
    if mime_type == "application/pdf":
        return "pdf"
    if mime_type.startswith("image/"):
        return "image"
    if mime_type.startswith("text/"):
        return "text"
    return "doc"


@dataclass
class Material:
    id: str
    name: str
    kind: str
    subject: SubjectArea
    analysis: MaterialAnalysis
    topics: List[str] = field(default_factory=list)
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MaterialLab:
    """One analysis at a time; keeps the analysed materials for this user."""

    def __init__(self, gateway):
        self.gateway = gateway
        self.materials: List[Material] = []
        self.in_flight = False

    async def analyze(self, name: str, mime_type: str, data_b64: str) -> Material:
        if self.in_flight:
            raise SessionBusyError("A document is already being analysed")
        self.in_flight = True
        try:
            analysis = await self.gateway.generate_from_document(mime_type, data_b64, filename=name)
        finally:
            self.in_flight = False

        material = Material(
            id=str(uuid.uuid4()),
            name=name,
            kind=material_kind(mime_type),
            subject=analysis.subject,
            analysis=analysis,
            topics=[analysis.topic_title],
        )
        self.materials.append(material)
        logger.info(f"📚 [MaterialLab] Analysed {name!r} -> {analysis.topic_title!r} ({analysis.subject.value})")
        return material

    @property
    def latest(self) -> Optional[Material]:
        return self.materials[-1] if self.materials else None

    async def generate_visual(self) -> Optional[str]:
        """Illustration for the latest analysis (visual guide, else topic title)."""
        if self.latest is None:
            raise PreconditionError("Analyse a document first")
        analysis = self.latest.analysis
        return await self.gateway.generate_visual(analysis.visual_guide or analysis.topic_title)
