"""
Syllabus upload service
"""
import aiofiles
import logging
import os
import tempfile
import uuid
from typing import List, Optional

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import ValidationFailed
from app.models import Syllabus
from app.services.gemini_service import GeminiService, gemini_service

logger = logging.getLogger(__name__)


class SyllabusService:
    """Turns uploaded PDFs into immutable Syllabus rows"""

    def __init__(self, gateway: Optional[GeminiService] = None):
        self.gateway = gateway if gateway is not None else gemini_service

    async def upload_files(self, db: Session, files: List[UploadFile]) -> List[Syllabus]:
        """
        Store one syllabus per PDF

        - Subject name is the file name without ".pdf"
        - Text is extracted through the AI gateway

        Raises:
            ValidationFailed: no files, too many files, or a non-PDF file
        """
        if not files:
            raise ValidationFailed("At least one PDF is required")
        if len(files) > settings.MAX_SYLLABUS_FILES:
            raise ValidationFailed(f"At most {settings.MAX_SYLLABUS_FILES} files per upload")
        for file in files:
            if not (file.filename or "").lower().endswith(".pdf"):
                raise ValidationFailed(f"Only PDF files are allowed: {file.filename}")

        rows = []
        for file in files:
            # Save file temporarily
            temp_path = os.path.join(tempfile.gettempdir(), f"{uuid.uuid4().hex}_{os.path.basename(file.filename)}")
            try:
                async with aiofiles.open(temp_path, "wb") as f:
                    content = await file.read()
                    await f.write(content)

                raw_text = self.gateway.extract_syllabus_text(temp_path, display_name=file.filename)
            finally:
                if os.path.exists(temp_path):
                    os.remove(temp_path)

            rows.append(Syllabus(
                subject_name=file.filename[:-4],
                raw_text=raw_text,
                source_file=file.filename,
            ))
            logger.info(f"Extracted syllabus {file.filename} ({len(raw_text)} chars)")

        db.add_all(rows)
        db.commit()
        for row in rows:
            db.refresh(row)

        return rows

    def list_syllabi(self, db: Session) -> List[Syllabus]:
        return list(db.scalars(select(Syllabus).order_by(Syllabus.created_at.desc())).all())


# Global instance
syllabus_service = SyllabusService()
