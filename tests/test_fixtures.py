"""
Test fixtures and sample data for EduTube Quiz Bot tests.
"""
import json
from types import SimpleNamespace
from typing import Dict, List, Optional
from unittest.mock import Mock, AsyncMock
import discord

from edutube.config_manager import ConfigManager
from edutube.models import QuizItem, QuizSettings
from edutube.video_widget import VideoWidget, VideoWidgetError


class TestFixtures:
    """Centralized test fixtures for all test modules."""

    @staticmethod
    def create_sample_quiz_items() -> List[QuizItem]:
        """Create five quiz items spread over a 15 minute video."""
        return [
            QuizItem("q1", 90.0, "What does 'reluctant' mean?",
                     ["Eager", "Unwilling", "Angry", "Tired"], 1,
                     "'Reluctant' means unwilling or hesitant.", "reluctant"),
            QuizItem("q2", 270.0, "Which verb means 'to look at quickly'?",
                     ["Glance", "Stare", "Gaze", "Watch"], 0,
                     "A glance is a brief look.", "glance"),
            QuizItem("q3", 450.0, "What does the speaker 'emphasize'?",
                     ["Price", "Safety", "Speed", "Color"], 1,
                     "To emphasize is to give special importance.", "emphasize"),
            QuizItem("q4", 630.0, "Pick the synonym of 'abandon'.",
                     ["Keep", "Desert", "Build", "Find"], 1,
                     "To abandon is to leave behind.", "abandon"),
            QuizItem("q5", 810.0, "What does 'thrive' mean?",
                     ["Fail", "Grow well", "Shrink", "Wait"], 1,
                     "To thrive is to grow or develop well."),
        ]

    @staticmethod
    def create_sample_quiz_payload() -> List[Dict]:
        """Create the provider JSON payload matching the sample items."""
        return [item.to_dict() for item in TestFixtures.create_sample_quiz_items()]

    @staticmethod
    def create_sample_quiz_json() -> str:
        return json.dumps(TestFixtures.create_sample_quiz_payload())

    @staticmethod
    def create_sample_quiz_settings() -> QuizSettings:
        """Create sample quiz settings for testing."""
        return QuizSettings(
            poll_interval=0.5,
            match_window=1.5,
            duration_minutes=15,
            model_name="gemini-3-flash-preview"
        )

    @staticmethod
    def create_config_manager() -> ConfigManager:
        """Create a config manager with a credential that ignores the environment."""
        config_manager = ConfigManager()
        config_manager.set_api_key("test-api-key")
        return config_manager

    @staticmethod
    def create_mock_question_provider(items: Optional[List[QuizItem]] = None) -> Mock:
        """Create a question provider mock returning the given items."""
        provider = Mock()
        provider.generate_questions = AsyncMock(
            return_value=items if items is not None else TestFixtures.create_sample_quiz_items()
        )
        return provider

    @staticmethod
    def create_mock_genai_client(text: Optional[str] = None, side_effect=None) -> Mock:
        """Create a genai client mock whose async generate_content returns text."""
        client = Mock()
        client.aio.models.generate_content = AsyncMock(
            return_value=SimpleNamespace(text=text),
            side_effect=side_effect
        )
        return client


class FakeWidget(VideoWidget):
    """Video widget whose position is moved by the test."""

    def __init__(self, duration: float = 900.0, create_error: Optional[int] = None):
        self.duration = duration
        self.create_error = create_error
        self.poll_error: Optional[int] = None
        self.position = 0.0
        self.video_id: Optional[str] = None
        self.created = False
        self.destroyed = False
        self.playing = False
        self.pause_calls = 0
        self.play_calls = 0

    async def create(self, video_id: str) -> float:
        if self.create_error is not None:
            raise VideoWidgetError(self.create_error)
        self.video_id = video_id
        self.created = True
        self.playing = True
        return self.duration

    def destroy(self) -> None:
        self.destroyed = True
        self.playing = False

    def pause_video(self) -> None:
        self.pause_calls += 1
        self.playing = False

    def play_video(self) -> None:
        self.play_calls += 1
        self.playing = True

    def get_current_time(self) -> float:
        if self.poll_error is not None:
            raise VideoWidgetError(self.poll_error)
        return self.position


class MockDiscordObjects:
    """Mock Discord objects for testing bot functionality."""

    @staticmethod
    def create_mock_interaction(channel_id: int = 12345, user_id: int = 67890) -> Mock:
        """Create mock Discord interaction."""
        interaction = Mock(spec=discord.Interaction)
        interaction.channel_id = channel_id
        interaction.channel = MockDiscordObjects.create_mock_channel(channel_id)
        interaction.user = Mock()
        interaction.user.id = user_id
        interaction.response = Mock()
        interaction.response.is_done.return_value = False
        interaction.response.send_message = AsyncMock()
        interaction.response.edit_message = AsyncMock()
        interaction.response.defer = AsyncMock()
        interaction.followup = Mock()
        interaction.followup.send = AsyncMock()
        return interaction

    @staticmethod
    def create_mock_channel(channel_id: int = 12345) -> Mock:
        """Create mock Discord channel."""
        channel = Mock(spec=discord.TextChannel)
        channel.id = channel_id
        channel.send = AsyncMock()
        return channel


class AsyncTestHelpers:
    """Helper functions for async testing."""

    @staticmethod
    async def run_with_timeout(coro, timeout: float = 5.0):
        """Run coroutine with timeout."""
        import asyncio
        return await asyncio.wait_for(coro, timeout=timeout)

    @staticmethod
    async def settle(cycles: int = 5):
        """Let scheduled tasks run a few times."""
        import asyncio
        for _ in range(cycles):
            await asyncio.sleep(0)


class TestDataValidation:
    """Validation helpers for test assertions."""

    @staticmethod
    def validate_quiz_item(item: QuizItem) -> bool:
        """Validate QuizItem object structure."""
        return (
            isinstance(item.id, str) and
            isinstance(item.timestamp, float) and
            isinstance(item.question, str) and
            isinstance(item.options, tuple) and
            len(item.options) >= 2 and
            0 <= item.correct_answer_index < len(item.options) and
            isinstance(item.feedback, str)
        )

    @staticmethod
    def validate_score(score, resolved: int) -> bool:
        """Check the score invariants against the number of resolved questions."""
        return 0 <= score.correct <= score.total <= resolved


class ErrorScenarios:
    """Common error scenarios for testing."""

    @staticmethod
    def get_discord_api_errors():
        """Get Discord API error scenarios."""
        return [
            discord.HTTPException(Mock(status=500), "HTTP error"),
            discord.Forbidden(Mock(status=403), "Forbidden"),
            discord.NotFound(Mock(status=404), "Not found"),
        ]

    @staticmethod
    def get_malformed_payloads():
        """Provider payloads that must be rejected."""
        valid = TestFixtures.create_sample_quiz_payload()
        return [
            {"questions": valid},
            valid[:4],
            valid + [dict(valid[0], id="q6")],
            [dict(valid[0], options=["only one"])] + valid[1:],
            [dict(valid[0], correctAnswerIndex=7)] + valid[1:],
            [dict(valid[0], timestamp="soon")] + valid[1:],
            [dict(valid[0], timestamp=-5)] + valid[1:],
            [{k: v for k, v in valid[0].items() if k != "question"}] + valid[1:],
        ]
