"""
Gemini AI service for syllabus extraction, assessment generation and evaluation
"""
import google.generativeai as genai
from pydantic import ValidationError
from app.config import settings
from app.exceptions import UpstreamFailure
from app.schemas.assessment import AssessmentContent, EvaluationResult
import json
import logging
from typing import List, Dict, Any, Optional

logger = logging.getLogger(__name__)


class GeminiService:
    """
    Gateway for all Gemini AI operations

    With AI_OFFLINE enabled the service returns deterministic content, so
    generation and evaluation can run end to end locally. Otherwise a missing
    API key fails every call.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None, offline: Optional[bool] = None):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.offline = offline if offline is not None else settings.AI_OFFLINE
        self.model = None
        if self.api_key and not self.offline:
            genai.configure(api_key=self.api_key)
            self.model = genai.GenerativeModel(model_name or settings.AI_MODEL)

    def _require_model(self):
        if self.model is None:
            raise UpstreamFailure("GEMINI_API_KEY not configured")
        return self.model

    def extract_syllabus_text(self, file_path: str, display_name: str) -> str:
        """
        Extract the plain text of a syllabus PDF via the Gemini File API

        Args:
            file_path: Path to PDF file
            display_name: Display name for the uploaded file

        Returns:
            Extracted text
        """
        if self.offline:
            with open(file_path, "rb") as f:
                return f.read().decode("utf-8", errors="ignore")

        model = self._require_model()
        try:
            uploaded_file = genai.upload_file(path=file_path, display_name=display_name)
            logger.info(f"Uploaded syllabus to Gemini: {uploaded_file.name}")

            prompt = (
                "Extract the full plain text of this syllabus document. "
                "Return the text only, without commentary or markdown."
            )
            response = model.generate_content([uploaded_file, prompt])
            return response.text.strip()

        except Exception as e:
            logger.error(f"Failed to extract syllabus text: {str(e)}")
            raise UpstreamFailure(f"Syllabus extraction failed: {str(e)}") from e

    def generate_assessment(self, syllabi: List[Dict[str, str]]) -> Dict[str, Any]:
        """
        Generate a structured assessment from syllabus text

        Args:
            syllabi: [{"subjectName": ..., "rawText": ...}]

        Returns:
            {"subjects": [{"name", "sections": [{"title", "max_score", "questions": [...]}]}]}

        Raises:
            UpstreamFailure: call failed or output does not match the content schema
        """
        if self.offline:
            content = self._offline_assessment(syllabi)
        else:
            model = self._require_model()
            prompt = self._create_generation_prompt(syllabi)
            try:
                response = model.generate_content(prompt)
            except Exception as e:
                logger.error(f"Failed to generate assessment: {str(e)}")
                raise UpstreamFailure(f"Assessment generation failed: {str(e)}") from e
            content = self._parse_json(response.text)

        try:
            validated = AssessmentContent.model_validate(content)
        except ValidationError as e:
            logger.error(f"Generated assessment failed validation: {str(e)}")
            raise UpstreamFailure("Generated assessment does not match the expected structure") from e

        return validated.model_dump()

    def evaluate_submission(self, assessment: Dict[str, Any], answers: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Evaluate a completed submission against its assessment

        Args:
            assessment: Assessment content tree
            answers: [{"sectionId", "sectionIndex", "answers"}] in section order

        Returns:
            {"score", "feedback", "section_breakdown"}
        """
        if self.offline:
            result = self._offline_evaluation(answers)
        else:
            model = self._require_model()
            prompt = self._create_evaluation_prompt(assessment, answers)
            try:
                response = model.generate_content(prompt)
            except Exception as e:
                logger.error(f"Failed to evaluate submission: {str(e)}")
                raise UpstreamFailure(f"Evaluation failed: {str(e)}") from e
            result = self._parse_json(response.text)

        try:
            validated = EvaluationResult.model_validate(result)
        except ValidationError as e:
            logger.error(f"Evaluation result failed validation: {str(e)}")
            raise UpstreamFailure("Evaluation result does not match the expected structure") from e

        return validated.model_dump()

    def _create_generation_prompt(self, syllabi: List[Dict[str, str]]) -> str:
        """Create structured prompt for assessment generation"""

        return f"""
You are an expert examiner building a timed, multi-section assessment.

Create one subject per syllabus below. Each subject needs at least one
section and each section must have 3-5 questions drawn from the syllabus text.

Return ONLY valid JSON in this exact format (no markdown, no preamble):

{{
  "subjects": [
    {{
      "name": "Subject name",
      "sections": [
        {{
          "title": "Section title",
          "max_score": 10,
          "questions": [
            {{"id": "Q1", "question": "Question text?", "max_score": 5, "difficulty": "medium"}}
          ]
        }}
      ]
    }}
  ]
}}

Input syllabi: {json.dumps(syllabi)}
"""

    def _create_evaluation_prompt(self, assessment: Dict[str, Any], answers: List[Dict[str, Any]]) -> str:
        """Create structured prompt for evaluation"""

        return f"""
You are grading a completed assessment submission.

Score each section against its questions and max_score, then give an
overall score out of 100 and short, actionable feedback.

Return ONLY valid JSON (no markdown):
{{
  "score": 72.5,
  "feedback": "Overall feedback...",
  "section_breakdown": [{{"sectionIndex": 0, "score": 8, "max_score": 10, "feedback": "..."}}]
}}

Assessment: {json.dumps(assessment)}
Answers: {json.dumps(answers)}
"""

    def _parse_json(self, response_text: str) -> Any:
        """Parse a JSON response, tolerating markdown code fences"""
        cleaned = response_text.strip()

        # Remove markdown code blocks
        if cleaned.startswith("```json"):
            cleaned = cleaned[7:-3].strip()
        elif cleaned.startswith("```"):
            cleaned = cleaned[3:-3].strip()

        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse Gemini JSON: {str(e)}")
            logger.error(f"Response text: {response_text[:500]}")
            raise UpstreamFailure("AI response was not valid JSON") from e

    def _offline_assessment(self, syllabi: List[Dict[str, str]]) -> Dict[str, Any]:
        """Deterministic assessment used when no API key is configured"""
        subjects = []

        for idx, syllabus in enumerate(syllabi):
            name = syllabus["subjectName"]
            subjects.append({
                "name": name,
                "sections": [
                    {
                        "title": f"Core Concepts {idx + 1}",
                        "max_score": 10,
                        "questions": [
                            {
                                "id": "Q1",
                                "question": f"Explain one core concept from {name}.",
                                "max_score": 5,
                                "difficulty": "medium",
                            },
                            {
                                "id": "Q2",
                                "question": f"Solve one applied problem from {name}.",
                                "max_score": 5,
                                "difficulty": "hard",
                            },
                        ],
                    }
                ],
            })

        return {"subjects": subjects}

    def _offline_evaluation(self, answers: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Deterministic evaluation used when no API key is configured"""
        return {
            "score": 75.0,
            "feedback": "Offline evaluation result.",
            "section_breakdown": [
                {"sectionIndex": item["sectionIndex"], "sectionId": item["sectionId"], "answered": bool(item.get("answers"))}
                for item in answers
            ],
        }


# Global instance
gemini_service = GeminiService()
