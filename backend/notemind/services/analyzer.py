"""
AI Note Analysis Service using OpenAI structured outputs

Turns a note's free text into an AnalysisResult: improved title, summary,
category, type, tags, key points, action items, topics, links and candidate
calendar events. Uses a Pydantic response model so the payload is validated
against the AnalysisResult shape before anything is written.
"""

import logging
from datetime import date
from typing import List, Optional

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import EmptyInputError, ExtractionError
from .openai_provider import chat_model, resolve_client

logger = logging.getLogger(__name__)


class SuggestedEvent(BaseModel):
    """A dated event the note mentions or implies"""
    title: str = Field(description="Short event title")
    date: str = Field(description="Event date in YYYY-MM-DD format")
    description: str = Field(
        default="",
        description="Optional one-line description of the event"
    )

    @field_validator("date")
    @classmethod
    def _iso_date(cls, value: str) -> str:
        date.fromisoformat(value)
        return value


class AnalysisResult(BaseModel):
    """Structured output for note analysis"""
    improved_title: str = Field(description="A clear, specific title for the note")
    summary: str = Field(description="Two or three sentence summary of the note")
    category: str = Field(description="Broad category such as Work, Personal, Study, Development")
    note_type: str = Field(description="One of: Meeting, Idea, Study, Task, Journal, Thought")
    tags: List[str] = Field(default_factory=list, description="3-7 lowercase tags")
    key_points: List[str] = Field(default_factory=list, description="Key points made in the note")
    action_items: List[str] = Field(default_factory=list, description="Concrete to-dos found in the note")
    common_topics: List[str] = Field(default_factory=list, description="Related topics worth exploring")
    suggested_links: List[str] = Field(default_factory=list, description="Useful reference URLs or resources")
    suggested_events: List[SuggestedEvent] = Field(
        default_factory=list,
        description="Dated plans, deadlines or meetings mentioned in the note"
    )


class NoteAnalyzer:
    """
    Structured extraction client.

    Single-shot: no retries. Callers decide whether to try again.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        """
        Args:
            api_key: OpenAI API key. If None, uses the shared configured client
            model: Model to use (default: Config.OPENAI_MODEL)
            client: Pre-built client (tests inject a MagicMock here)
        """
        self.client = resolve_client(client, api_key)
        self.model = model or chat_model()

    def analyze(self, text: str, reference_date: Optional[date] = None) -> AnalysisResult:
        """
        Analyze note text.

        Args:
            text: Raw note content
            reference_date: "Today" for resolving relative dates; defaults to
                the caller's current date

        Returns:
            AnalysisResult

        Raises:
            EmptyInputError: text is blank (no request is made)
            ExtractionError: upstream failure, empty or non-conforming payload
        """
        if not text or not text.strip():
            raise EmptyInputError("Note content is empty")

        today = (reference_date or date.today()).isoformat()

        try:
            completion = self.client.beta.chat.completions.parse(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._build_system_prompt(today)},
                    {"role": "user", "content": text},
                ],
                response_format=AnalysisResult,
                temperature=0.3,
            )
        except OpenAIError as e:
            logger.error("OpenAI API error during note analysis: %s", e)
            raise ExtractionError(f"analysis request failed: {e}") from e
        except ValidationError as e:
            logger.error("Analysis payload failed validation: %s", e)
            raise ExtractionError(f"analysis payload did not match schema: {e}") from e

        try:
            result = completion.choices[0].message.parsed
        except (AttributeError, IndexError) as e:
            raise ExtractionError(f"malformed analysis response: {e}") from e

        if result is None:
            raise ExtractionError("OpenAI returned empty analysis")
        if isinstance(result, dict):
            try:
                result = AnalysisResult.model_validate(result)
            except ValidationError as e:
                raise ExtractionError(f"analysis payload did not match schema: {e}") from e
        if not isinstance(result, AnalysisResult):
            raise ExtractionError(f"unexpected analysis payload type: {type(result).__name__}")

        return result

    def _build_system_prompt(self, today: str) -> str:
        return f"""You are an advanced cognitive assistant.
Analyze the note and provide metadata.

TASK:
1. Write an improved, specific title
2. Summarize the note in 2-3 sentences
3. Choose a broad category and a note type (Meeting, Idea, Study, Task, Journal, Thought)
4. Generate 3-7 lowercase tags
5. List the key points, action items, related topics and useful links
6. If the note mentions specific dates, deadlines, or future plans, suggest them as suggested_events

DATE RESOLUTION:
- Today's date is {today}.
- Resolve relative dates ("tomorrow", "next Tuesday") against today's date.
- Event dates must use YYYY-MM-DD.

Use empty lists when there is nothing to report. Return JSON matching the AnalysisResult schema."""
