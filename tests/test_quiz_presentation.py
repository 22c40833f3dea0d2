"""
Unit tests for question presentation: the select, reveal and continue cycle.
"""
import asyncio
import unittest
from unittest.mock import AsyncMock

import discord

from edutube.quiz_presentation import (
    OptionStatus,
    PresentationState,
    QuizOverlayView,
    QuizPresentation,
    build_question_embed,
)
from edutube.models import MAX_OPTIONS
from tests.test_fixtures import MockDiscordObjects, TestFixtures


class TestQuizPresentation(unittest.TestCase):
    """Test cases for the presentation state machine."""

    def setUp(self):
        # q3: correct index 1
        self.question = TestFixtures.create_sample_quiz_items()[2]
        self.on_complete = AsyncMock()
        self.presentation = QuizPresentation(self.question, self.on_complete)

    def test_initial_state(self):
        self.assertEqual(self.presentation.state, PresentationState.UNANSWERED)
        self.assertIsNone(self.presentation.is_correct)
        self.assertIsNone(self.presentation.feedback)
        self.assertEqual(self.presentation.option_statuses(), [OptionStatus.SELECTABLE] * 4)

    def test_first_selection_wins(self):
        self.assertTrue(self.presentation.submit(3))
        self.assertFalse(self.presentation.submit(1))

        self.assertEqual(self.presentation.selected_index, 3)
        self.assertFalse(self.presentation.is_correct)

    def test_invalid_index(self):
        with self.assertRaises(IndexError):
            self.presentation.submit(4)
        with self.assertRaises(IndexError):
            self.presentation.submit(-1)
        self.assertFalse(self.presentation.is_submitted)

    def test_reveal_after_wrong_answer(self):
        self.presentation.submit(0)

        self.assertEqual(self.presentation.feedback, self.question.feedback)
        self.assertEqual(
            self.presentation.option_statuses(),
            [OptionStatus.INCORRECT, OptionStatus.CORRECT, OptionStatus.DIMMED, OptionStatus.DIMMED]
        )

    def test_reveal_after_right_answer(self):
        self.presentation.submit(1)

        self.assertTrue(self.presentation.is_correct)
        self.assertEqual(
            self.presentation.option_statuses(),
            [OptionStatus.DIMMED, OptionStatus.CORRECT, OptionStatus.DIMMED, OptionStatus.DIMMED]
        )

    async def test_complete_reports_once(self):
        """Test completion fires exactly once with the outcome."""
        self.presentation.submit(1)

        self.assertTrue(await self.presentation.complete())
        self.assertFalse(await self.presentation.complete())

        self.on_complete.assert_awaited_once_with(True)
        self.assertEqual(self.presentation.state, PresentationState.COMPLETED)

    async def test_complete_before_submit_is_ignored(self):
        self.assertFalse(await self.presentation.complete())
        self.on_complete.assert_not_awaited()


class TestQuestionEmbed(unittest.TestCase):
    """Test cases for embed rendering."""

    def setUp(self):
        self.question = TestFixtures.create_sample_quiz_items()[0]
        self.presentation = QuizPresentation(self.question, AsyncMock())

    def test_unanswered_embed(self):
        embed = build_question_embed(self.presentation)

        self.assertEqual(embed.title, "🧠 Quick Quiz!")
        self.assertIn(self.question.question, embed.description)
        self.assertEqual(embed.fields[0].value, "RELUCTANT")
        self.assertNotIn(self.question.feedback, str(embed.to_dict()))

    def test_correct_embed(self):
        self.presentation.submit(1)
        embed = build_question_embed(self.presentation)

        self.assertEqual(embed.fields[-1].name, "✅ Correct!")
        self.assertEqual(embed.fields[-1].value, self.question.feedback)

    def test_incorrect_embed(self):
        self.presentation.submit(0)
        embed = build_question_embed(self.presentation)

        self.assertEqual(embed.fields[-1].name, "❌ Not quite right.")
        self.assertIn("Unwilling", embed.fields[-1].value)

    def test_no_focus_field_without_verb(self):
        question = TestFixtures.create_sample_quiz_items()[4]
        embed = build_question_embed(QuizPresentation(question, AsyncMock()))
        self.assertEqual(len(embed.fields), 0)


class TestQuizOverlayView(unittest.TestCase):
    """Test cases for the Discord button view."""

    def setUp(self):
        self.question = TestFixtures.create_sample_quiz_items()[1]
        self.on_complete = AsyncMock()
        self.presentation = QuizPresentation(self.question, self.on_complete)

    async def test_buttons_before_submission(self):
        view = QuizOverlayView(self.presentation)

        labels = [item.label for item in view.children]
        self.assertEqual(labels, list(self.question.options))
        self.assertTrue(all(not item.disabled for item in view.children))

    async def test_option_click_reveals_and_offers_continue(self):
        """Test clicking an option locks the options and adds Continue Video."""
        view = QuizOverlayView(self.presentation)
        interaction = MockDiscordObjects.create_mock_interaction()

        await view.children[2].callback(interaction)

        self.assertEqual(self.presentation.selected_index, 2)
        interaction.response.edit_message.assert_awaited_once()
        self.assertEqual(view.children[-1].label, "Continue Video")
        option_buttons = view.children[:-1]
        self.assertTrue(all(button.disabled for button in option_buttons))
        self.assertEqual(option_buttons[0].style, discord.ButtonStyle.success)
        self.assertEqual(option_buttons[2].style, discord.ButtonStyle.danger)

    async def test_second_click_is_ignored(self):
        view = QuizOverlayView(self.presentation)
        first_button = view.children[0]
        await view.children[1].callback(MockDiscordObjects.create_mock_interaction())

        interaction = MockDiscordObjects.create_mock_interaction()
        await first_button.callback(interaction)

        self.assertEqual(self.presentation.selected_index, 1)
        interaction.response.defer.assert_awaited_once()

    async def test_continue_completes_presentation(self):
        view = QuizOverlayView(self.presentation)
        await view.children[0].callback(MockDiscordObjects.create_mock_interaction())

        interaction = MockDiscordObjects.create_mock_interaction()
        await view.children[-1].callback(interaction)

        self.on_complete.assert_awaited_once_with(True)
        self.assertEqual(interaction.response.edit_message.await_args.kwargs["view"], None)
        self.assertTrue(view.is_finished())

    async def test_long_labels_truncated(self):
        question = TestFixtures.create_sample_quiz_items()[0]
        long_question = question.__class__(
            question.id, question.timestamp, question.question,
            ["x" * 120, "y"], 0, question.feedback
        )
        view = QuizOverlayView(QuizPresentation(long_question, AsyncMock()))

        self.assertEqual(len(view.children[0].label), 80)

    async def test_largest_option_set_fits_with_continue(self):
        question = TestFixtures.create_sample_quiz_items()[0]
        wide_question = question.__class__(
            question.id, question.timestamp, question.question,
            [f"choice {n}" for n in range(MAX_OPTIONS)], 0, question.feedback
        )
        presentation = QuizPresentation(wide_question, AsyncMock())
        view = QuizOverlayView(presentation)
        await view.children[3].callback(MockDiscordObjects.create_mock_interaction())

        self.assertEqual(len(view.children), MAX_OPTIONS + 1)
        self.assertEqual(view.children[-1].label, "Continue Video")
        self.assertEqual(view.children[-1].row, 4)
        self.assertEqual(max(item.row for item in view.children[:-1]), 3)


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
for _cls, _names in [
    (TestQuizPresentation, [
        'test_complete_reports_once',
        'test_complete_before_submit_is_ignored',
    ]),
    (TestQuizOverlayView, [
        'test_buttons_before_submission',
        'test_option_click_reveals_and_offers_continue',
        'test_second_click_is_ignored',
        'test_continue_completes_presentation',
        'test_long_labels_truncated',
        'test_largest_option_set_fits_with_continue',
    ]),
]:
    for _name in _names:
        setattr(_cls, _name, async_test(getattr(_cls, _name)))


if __name__ == '__main__':
    unittest.main()
