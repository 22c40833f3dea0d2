"""
Question presentation for the EduTube Quiz Bot.
Runs the select / reveal / continue cycle for one question and renders it to Discord.
"""
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

import discord

from .models import QuizItem

logger = logging.getLogger(__name__)

# Discord limits button labels to 80 characters
MAX_BUTTON_LABEL = 80


class PresentationState(Enum):
    """States of a single question's display cycle."""
    UNANSWERED = "unanswered"
    SUBMITTED = "submitted"
    COMPLETED = "completed"


class OptionStatus(Enum):
    """How an option is shown."""
    SELECTABLE = "selectable"
    CORRECT = "correct"
    INCORRECT = "incorrect"
    DIMMED = "dimmed"


class QuizPresentation:
    """Display and collection cycle for one quiz item."""

    def __init__(self, question: QuizItem, on_complete: Callable[[bool], Awaitable[Any]]):
        """
        Initialize the presentation.

        Args:
            question: Question to present
            on_complete: Receives the outcome once the learner continues
        """
        self.question = question
        self._on_complete = on_complete
        self.state = PresentationState.UNANSWERED
        self.selected_index: Optional[int] = None

    def submit(self, index: int) -> bool:
        """
        Lock in a selection. The first selection wins.

        Args:
            index: Index of the chosen option

        Returns:
            True if the selection was accepted, False if one was already made

        Raises:
            IndexError: If index is not a valid option index
        """
        if self.state is not PresentationState.UNANSWERED:
            return False

        if index < 0 or index >= len(self.question.options):
            raise IndexError(f"Option {index} does not exist")

        self.selected_index = index
        self.state = PresentationState.SUBMITTED
        logger.debug(f"Option {index} submitted for question '{self.question.id}'")
        return True

    @property
    def is_submitted(self) -> bool:
        return self.state is not PresentationState.UNANSWERED

    @property
    def is_correct(self) -> Optional[bool]:
        """Correctness of the submitted option, None before submission."""
        if self.selected_index is None:
            return None
        return self.question.is_correct(self.selected_index)

    @property
    def feedback(self) -> Optional[str]:
        """Feedback text, revealed only after submission."""
        return self.question.feedback if self.is_submitted else None

    def option_statuses(self) -> List[OptionStatus]:
        """Get the display status of every option."""
        if not self.is_submitted:
            return [OptionStatus.SELECTABLE] * len(self.question.options)

        statuses = []
        for index in range(len(self.question.options)):
            if index == self.question.correct_answer_index:
                statuses.append(OptionStatus.CORRECT)
            elif index == self.selected_index:
                statuses.append(OptionStatus.INCORRECT)
            else:
                statuses.append(OptionStatus.DIMMED)
        return statuses

    async def complete(self) -> bool:
        """
        Continue past the question and report the outcome.

        Returns:
            True if the outcome was reported, False if not submitted or already completed
        """
        if self.state is not PresentationState.SUBMITTED:
            return False

        self.state = PresentationState.COMPLETED
        await self._on_complete(bool(self.is_correct))
        return True


def build_question_embed(presentation: QuizPresentation) -> discord.Embed:
    """Render the current state of a presentation as an embed."""
    question = presentation.question
    embed = discord.Embed(
        title="🧠 Quick Quiz!",
        description=f"**{question.question}**",
        color=0x059669
    )

    if question.verb_focus:
        embed.add_field(name="Focus", value=question.verb_focus.upper(), inline=True)

    if presentation.is_submitted:
        if presentation.is_correct:
            embed.add_field(name="✅ Correct!", value=question.feedback or "Well done.", inline=False)
            embed.color = 0x22c55e
        else:
            correct_option = question.options[question.correct_answer_index]
            embed.add_field(
                name="❌ Not quite right.",
                value=f"Answer: **{correct_option}**\n{question.feedback}",
                inline=False
            )
            embed.color = 0xef4444
        embed.set_footer(text="Press Continue Video when you are ready")
    else:
        embed.set_footer(text="⏸️ Pause your video and pick an answer")

    return embed


class QuizOverlayView(discord.ui.View):
    """Buttons for one question: an option row, then a continue button after submission."""

    BUTTON_STYLES = {
        OptionStatus.SELECTABLE: discord.ButtonStyle.secondary,
        OptionStatus.CORRECT: discord.ButtonStyle.success,
        OptionStatus.INCORRECT: discord.ButtonStyle.danger,
        OptionStatus.DIMMED: discord.ButtonStyle.secondary,
    }

    def __init__(self, presentation: QuizPresentation):
        super().__init__(timeout=None)
        self.presentation = presentation
        self._render_buttons()

    def _render_buttons(self) -> None:
        self.clear_items()
        statuses = self.presentation.option_statuses()

        for index, option in enumerate(self.presentation.question.options):
            button = discord.ui.Button(
                label=option[:MAX_BUTTON_LABEL],
                style=self.BUTTON_STYLES[statuses[index]],
                disabled=self.presentation.is_submitted,
                row=index // 5
            )
            button.callback = self._make_option_callback(index)
            self.add_item(button)

        if self.presentation.state is PresentationState.SUBMITTED:
            continue_button = discord.ui.Button(
                label="Continue Video",
                emoji="▶️",
                style=discord.ButtonStyle.primary,
                row=4
            )
            continue_button.callback = self._on_continue
            self.add_item(continue_button)

    def _make_option_callback(self, index: int):
        async def callback(interaction: discord.Interaction):
            if not self.presentation.submit(index):
                await interaction.response.defer()
                return
            self._render_buttons()
            await interaction.response.edit_message(
                embed=build_question_embed(self.presentation),
                view=self
            )
        return callback

    async def _on_continue(self, interaction: discord.Interaction):
        self.clear_items()
        await interaction.response.edit_message(
            embed=build_question_embed(self.presentation),
            view=None
        )
        self.stop()
        await self.presentation.complete()
