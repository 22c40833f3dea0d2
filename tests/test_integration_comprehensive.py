"""
Comprehensive integration tests for the EduTube Quiz Bot.
Runs whole sessions through the real provider, controller, tracker and presentation
with a mocked Gemini client and a fake video widget.
"""
import unittest
import asyncio
import logging
from unittest.mock import AsyncMock

from edutube.models import Score, SessionState
from edutube.playback_tracker import VideoUnavailableError
from edutube.question_provider import QuestionProvider
from edutube.quiz_controller import QuizController
from edutube.quiz_presentation import QuizPresentation
from tests.test_fixtures import FakeWidget, TestDataValidation, TestFixtures

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
POLL_WAIT = 0.3


class SessionHarness:
    """Wires a controller to a fake widget and records presented questions."""

    def __init__(self, api_key="test-key", channel_id=12345):
        self.config_manager = TestFixtures.create_config_manager()
        self.config_manager.set_poll_interval(0.1)
        self.client = TestFixtures.create_mock_genai_client(TestFixtures.create_sample_quiz_json())
        self.provider = QuestionProvider(api_key=api_key, client_factory=lambda key: self.client)
        self.widgets = []
        self.presentations = []
        self.errors = []

        self.controller = QuizController(
            self.provider, self.config_manager,
            widget_factory=self._build_widget, channel_id=channel_id
        )
        self.controller.on_question_due = self._on_question_due
        self.controller.on_player_error = self._on_player_error
        self.controller.on_finished = AsyncMock()

    def _build_widget(self, seconds):
        widget = FakeWidget(duration=seconds)
        self.widgets.append(widget)
        return widget

    async def _on_question_due(self, question):
        self.presentations.append(QuizPresentation(question, self.controller.on_question_complete))

    async def _on_player_error(self, error):
        self.errors.append(error)

    @property
    def widget(self):
        return self.widgets[-1]

    async def seek(self, position):
        """Move the playhead and wait for the tracker to sample it."""
        self.widget.position = position
        await asyncio.sleep(POLL_WAIT)

    async def answer(self, index):
        presentation = self.presentations[-1]
        presentation.submit(index)
        await presentation.complete()


class TestFullSession(unittest.TestCase):
    """Test complete quiz sessions end to end."""

    def setUp(self):
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    async def test_complete_session_workflow(self):
        """Test generating, watching, answering every question and finishing."""
        harness = SessionHarness()
        controller = harness.controller

        result = await controller.generate(VIDEO_URL, "Camping vocabulary", "We set up the tent.")
        self.assertTrue(result['success'])
        await controller.start_playback()

        correct_indexes = [q.correct_answer_index for q in controller.questions]
        for number, question in enumerate(controller.questions):
            await harness.seek(question.timestamp + 0.4)

            self.assertEqual(len(harness.presentations), number + 1)
            self.assertEqual(harness.presentations[-1].question.id, question.id)
            self.assertEqual(harness.widget.pause_calls, number + 1)

            # Still paused on the question: nothing new is presented
            await asyncio.sleep(POLL_WAIT)
            self.assertEqual(len(harness.presentations), number + 1)

            # Last answer is wrong
            index = correct_indexes[number] if number < 4 else (correct_indexes[number] + 1) % 4
            await harness.answer(index)
            self.assertEqual(harness.widget.play_calls, number + 1)

        self.assertEqual(controller.score, Score(correct=4, total=5))
        self.assertEqual(controller.state, SessionState.FINISHED)
        controller.on_finished.assert_awaited_once()
        self.assertTrue(TestDataValidation.validate_score(controller.score, 5))

        # Seeking back over answered questions presents nothing
        await harness.seek(90)
        self.assertEqual(len(harness.presentations), 5)

        await controller.restart()
        self.assertTrue(harness.widget.destroyed)
        self.assertEqual(controller.state, SessionState.SETUP)

    async def test_questions_presented_in_timestamp_order(self):
        harness = SessionHarness()
        controller = harness.controller
        await controller.generate(VIDEO_URL, "Vocabulary")
        await controller.start_playback()

        for question in controller.questions:
            await harness.seek(question.timestamp)
            await harness.answer(0)

        presented = [p.question.timestamp for p in harness.presentations]
        self.assertEqual(presented, sorted(presented))
        self.assertEqual(len(presented), 5)

        await controller.restart()

    async def test_missing_credential_session(self):
        """Test a provider without credentials leaves the session in SETUP."""
        harness = SessionHarness(api_key=None)

        result = await harness.controller.generate(VIDEO_URL, "Vocabulary")

        self.assertFalse(result['success'])
        self.assertEqual(harness.controller.state, SessionState.SETUP)
        self.assertIn("API Key is missing", harness.controller.last_error)
        harness.client.aio.models.generate_content.assert_not_awaited()

    async def test_player_error_mid_session(self):
        """Test a video that disappears while playing reports once and stops tracking."""
        harness = SessionHarness()
        await harness.controller.generate(VIDEO_URL, "Vocabulary")
        await harness.controller.start_playback()

        harness.widget.poll_error = 100
        await asyncio.sleep(POLL_WAIT)

        self.assertEqual(len(harness.errors), 1)
        self.assertIsInstance(harness.errors[0], VideoUnavailableError)
        self.assertTrue(harness.widget.destroyed)
        self.assertTrue(harness.controller.tracker.is_closed)

        await harness.controller.restart()

    async def test_restart_and_new_video(self):
        """Test a restart releases the old player before the next session binds a new one."""
        harness = SessionHarness()
        controller = harness.controller
        await controller.generate(VIDEO_URL, "Vocabulary")
        await controller.start_playback()
        await harness.seek(90)
        await harness.answer(1)

        await controller.restart()
        await controller.generate("https://youtu.be/9bZkp7q19f0", "Dance vocabulary")
        await controller.start_playback()

        self.assertEqual(len(harness.widgets), 2)
        self.assertTrue(harness.widgets[0].destroyed)
        self.assertEqual(harness.widgets[1].video_id, "9bZkp7q19f0")
        self.assertEqual(controller.score, Score())

        await controller.restart()

    async def test_channels_are_isolated(self):
        first = SessionHarness(channel_id=1)
        second = SessionHarness(channel_id=2)
        await first.controller.generate(VIDEO_URL, "Vocabulary")
        await second.controller.generate(VIDEO_URL, "Vocabulary")
        await first.controller.start_playback()
        await second.controller.start_playback()

        await first.seek(90)

        self.assertEqual(len(first.presentations), 1)
        self.assertEqual(len(second.presentations), 0)
        self.assertTrue(first.controller.pause_requested)
        self.assertFalse(second.controller.pause_requested)

        await first.controller.restart()
        await second.controller.restart()


def async_test(coro):
    """Decorator to run async test methods."""
    def wrapper(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(coro(self))
        finally:
            loop.close()
    return wrapper


# Apply async_test decorator to async test methods
for _name in [name for name in vars(TestFullSession) if name.startswith('test_')]:
    setattr(TestFullSession, _name, async_test(getattr(TestFullSession, _name)))


if __name__ == '__main__':
    unittest.main()
