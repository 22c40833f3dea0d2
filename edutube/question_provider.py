"""
Question provider for the EduTube Quiz Bot.
Builds the generation prompt, calls Gemini and validates the returned quiz items.
"""
import json
import logging
import math
import re
import time
from typing import Any, Callable, List, Optional

from google import genai

from .models import MAX_OPTIONS, QuizItem

logger = logging.getLogger(__name__)

QUESTION_COUNT = 5
SEGMENT_FRACTIONS = (0.1, 0.3, 0.5, 0.7, 0.9)
DEFAULT_DURATION_MINUTES = 15
DEFAULT_MODEL_NAME = "gemini-3-flash-preview"

RESPONSE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "STRING"},
            "timestamp": {"type": "NUMBER", "description": "Time in seconds when video pauses"},
            "question": {"type": "STRING"},
            "options": {"type": "ARRAY", "items": {"type": "STRING"}},
            "correctAnswerIndex": {"type": "NUMBER"},
            "feedback": {"type": "STRING"},
            "verbFocus": {"type": "STRING"},
        },
        "required": ["timestamp", "question", "options", "correctAnswerIndex", "feedback", "verbFocus"],
    },
}


class QuestionProviderError(Exception):
    """Base exception for question provider errors."""
    pass


class MissingCredentialError(QuestionProviderError):
    """Raised when a generation is attempted without an API key."""
    pass


class GenerationError(QuestionProviderError):
    """Raised when the provider is unreachable or returns an unusable payload."""
    pass


def suggested_timestamps(duration_minutes: float) -> List[int]:
    """
    Spread candidate question timestamps across the estimated duration.

    Args:
        duration_minutes: Estimated video length in minutes

    Returns:
        Offsets in whole seconds at 10%, 30%, 50%, 70% and 90% of the duration
    """
    return [math.floor(duration_minutes * 60 * p) for p in SEGMENT_FRACTIONS]


def build_prompt(topic: str, transcript: str, segments: List[int]) -> str:
    """Build the generation prompt for a topic and optional transcript."""
    if transcript:
        context = f"Transcript/Content Summary: {transcript}"
    else:
        context = (
            "Note: No transcript provided. Generate plausible questions based on the topic "
            "provided, assuming standard events for this type of video (e.g., setting up camp, "
            "cooking, traveling)."
        )

    return f"""
You are an expert language teacher creating an interactive video quiz for a YouTube video.

Video Context/Topic: {topic}
{context}

Task: Create {QUESTION_COUNT} multiple-choice questions that would likely appear at different points in the video to test vocabulary (specifically verbs) and comprehension.

Target Audience: English Learners (A2/B1 level).

Output Requirements:
- Generate exactly {QUESTION_COUNT} questions.
- 'timestamp' should be an integer in seconds. I have estimated spread timestamps: {', '.join(str(s) for s in segments)}. Use these or slightly varied values close to them.
- 'verbFocus' should be the key verb related to the question.
- 'feedback' should explain why the answer is correct.

Return the response as a JSON Array.
"""


def parse_quiz_payload(text: str) -> Any:
    """
    Parse the raw response text into JSON.

    Raises:
        GenerationError: If the text is empty or not valid JSON
    """
    if not text or not text.strip():
        raise GenerationError("No response from question provider")

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)

    try:
        return json.loads(cleaned.strip())
    except json.JSONDecodeError as e:
        raise GenerationError(f"Question provider returned invalid JSON: {e}") from e


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_quiz_items(data: Any, expected_count: int = QUESTION_COUNT) -> List[QuizItem]:
    """
    Validate a parsed payload against the quiz item shape.

    Expected structure:
    [
        {
            "id": str,                  # Optional, assigned as q1..qN when missing
            "timestamp": number,        # Seconds, non-negative
            "question": str,
            "options": [str, str, ...], # 2 to 20 non-empty strings
            "correctAnswerIndex": int,  # Index into options
            "feedback": str,
            "verbFocus": str            # Optional
        }
    ]

    Args:
        data: Parsed JSON payload
        expected_count: Required number of items

    Returns:
        List of QuizItem objects in payload order

    Raises:
        GenerationError: On any structural mismatch
    """
    if not isinstance(data, list):
        raise GenerationError("Quiz payload must be a JSON array")

    if len(data) != expected_count:
        raise GenerationError(f"Expected {expected_count} questions, got {len(data)}")

    items = []
    seen_ids = set()

    for i, entry in enumerate(data):
        label = f"Question {i + 1}"

        if not isinstance(entry, dict):
            raise GenerationError(f"{label} must be an object")

        for required in ("timestamp", "question", "options", "correctAnswerIndex", "feedback"):
            if required not in entry:
                raise GenerationError(f"{label} missing '{required}' field")

        timestamp = entry["timestamp"]
        if not _is_number(timestamp) or not math.isfinite(timestamp) or timestamp < 0:
            raise GenerationError(f"{label} 'timestamp' must be a non-negative number")

        question = entry["question"]
        if not isinstance(question, str) or not question.strip():
            raise GenerationError(f"{label} 'question' must be a non-empty string")

        options = entry["options"]
        if not isinstance(options, list) or len(options) < 2:
            raise GenerationError(f"{label} 'options' must be an array of at least 2 entries")
        if len(options) > MAX_OPTIONS:
            raise GenerationError(f"{label} has {len(options)} options, at most {MAX_OPTIONS} are allowed")
        if not all(isinstance(option, str) and option.strip() for option in options):
            raise GenerationError(f"{label} 'options' must only contain non-empty strings")

        index = entry["correctAnswerIndex"]
        if not _is_number(index) or not math.isfinite(index) or float(index) != int(index):
            raise GenerationError(f"{label} 'correctAnswerIndex' must be an integer")
        index = int(index)
        if index < 0 or index >= len(options):
            raise GenerationError(
                f"{label} 'correctAnswerIndex' {index} is out of range for {len(options)} options"
            )

        feedback = entry["feedback"]
        if not isinstance(feedback, str):
            raise GenerationError(f"{label} 'feedback' must be a string")

        verb_focus = entry.get("verbFocus")
        if verb_focus is not None and not isinstance(verb_focus, str):
            raise GenerationError(f"{label} 'verbFocus' must be a string")

        item_id = entry.get("id")
        if item_id is None or (isinstance(item_id, str) and not item_id.strip()):
            item_id = f"q{i + 1}"
        elif not isinstance(item_id, str):
            raise GenerationError(f"{label} 'id' must be a string")
        if item_id in seen_ids:
            raise GenerationError(f"{label} has duplicate id '{item_id}'")
        seen_ids.add(item_id)

        items.append(QuizItem(
            id=item_id,
            timestamp=float(timestamp),
            question=question.strip(),
            options=tuple(options),
            correct_answer_index=index,
            feedback=feedback,
            verb_focus=verb_focus or None
        ))

    return items


class QuestionProvider:
    """Generates timestamped quiz items for a topic with Gemini."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = DEFAULT_MODEL_NAME,
        temperature: float = 0.4,
        client_factory: Optional[Callable[[str], Any]] = None
    ):
        """
        Initialize the provider.

        Args:
            api_key: Gemini API key; generation fails fast when missing
            model_name: Gemini model identifier
            temperature: Sampling temperature
            client_factory: Builds a client from an API key, defaults to genai.Client
        """
        self.api_key = api_key
        self.model_name = model_name
        self.temperature = temperature
        self._client_factory = client_factory or (lambda key: genai.Client(api_key=key))
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = self._client_factory(self.api_key)
        return self._client

    async def generate_questions(
        self,
        topic: str,
        transcript: str = "",
        duration_minutes: float = DEFAULT_DURATION_MINUTES
    ) -> List[QuizItem]:
        """
        Generate quiz items for a video.

        Args:
            topic: Video topic or theme, must be non-empty
            transcript: Optional transcript or summary of the video
            duration_minutes: Estimated duration used to spread timestamps

        Returns:
            Validated list of QuizItem objects

        Raises:
            ValueError: If topic is empty
            MissingCredentialError: If no API key is configured
            GenerationError: If the call fails or the payload is malformed
        """
        if not topic or not topic.strip():
            raise ValueError("Topic cannot be empty")

        if not self.api_key:
            raise MissingCredentialError("API Key is missing")

        segments = suggested_timestamps(duration_minutes)
        prompt = build_prompt(topic.strip(), (transcript or "").strip(), segments)
        request_start = time.time()

        logger.info(
            f"Requesting {QUESTION_COUNT} questions for topic '{topic}' from {self.model_name}",
            extra={
                'event_type': 'generation_requested',
                'model': self.model_name,
                'has_transcript': bool(transcript),
                'duration_minutes': duration_minutes,
                'timestamp': request_start
            }
        )

        try:
            response = await self._get_client().aio.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config={
                    "temperature": self.temperature,
                    "response_mime_type": "application/json",
                    "response_schema": RESPONSE_SCHEMA,
                },
            )
        except Exception as e:
            logger.error(
                f"Gemini API Error: {e}",
                extra={
                    'event_type': 'generation_failed',
                    'model': self.model_name,
                    'error_type': type(e).__name__,
                    'timestamp': time.time()
                }
            )
            raise GenerationError(f"Failed to reach question provider: {e}") from e

        items = validate_quiz_items(parse_quiz_payload(getattr(response, "text", None)))

        logger.info(
            f"Generated {len(items)} questions in {time.time() - request_start:.2f}s",
            extra={
                'event_type': 'generation_completed',
                'model': self.model_name,
                'question_count': len(items),
                'timestamp': time.time()
            }
        )
        return items
