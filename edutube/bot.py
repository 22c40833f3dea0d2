import discord
from discord import app_commands
from discord.ext import commands
import logging
import asyncio
from typing import Dict, Optional
import os
from datetime import datetime

from .config_manager import ConfigManager
from .models import QuizItem, SessionState
from .playback_tracker import PlaybackError
from .question_provider import QuestionProvider
from .quiz_controller import QuestionDeliveryError, QuizController
from .quiz_presentation import QuizOverlayView, QuizPresentation, build_question_embed

logger = logging.getLogger(__name__)

TIMELINE_WIDTH = 20


def render_timeline(timeline: dict) -> str:
    """Draw the playhead and question markers as a text bar."""
    bar = ["─"] * TIMELINE_WIDTH
    for marker in timeline['markers']:
        slot = min(int(marker['percent'] / 100 * TIMELINE_WIDTH), TIMELINE_WIDTH - 1)
        bar[slot] = "●" if marker['answered'] else "○"
    playhead = min(int(timeline['position_percent'] / 100 * TIMELINE_WIDTH), TIMELINE_WIDTH - 1)
    bar[playhead] = "▶"
    return "".join(bar)


class QuizBot(commands.Bot):
    """Discord bot that runs watch-along vocabulary quizzes for YouTube videos"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.config_manager: Optional[ConfigManager] = None
        # One session per channel
        self.controllers: Dict[int, QuizController] = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()

            if self.app_config:
                await self.apply_configuration()

            health_check = self.config_manager.get_configuration_health_check()
            for problem in health_check['errors'] + health_check['warnings']:
                logger.warning(f"Configuration: {problem}")

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def apply_configuration(self):
        """Apply settings from configuration file to the config manager."""
        try:
            quiz_config = self.app_config.get('quiz', {})
            playback_config = self.app_config.get('playback', {})
            provider_config = self.app_config.get('provider', {})

            default_duration = quiz_config.get('default_duration_minutes')
            if default_duration is not None:
                self.config_manager.set_duration_minutes(default_duration)

            # The window must stay above the poll interval, so retry it once the interval is in
            match_window = playback_config.get('match_window')
            poll_interval = playback_config.get('poll_interval')
            window_result = None
            if match_window is not None:
                window_result = self.config_manager.set_match_window(match_window)
            if poll_interval is not None:
                self.config_manager.set_poll_interval(poll_interval)
            if window_result is not None and not window_result['success']:
                self.config_manager.set_match_window(match_window)

            model_name = provider_config.get('model_name')
            if model_name:
                self.config_manager.set_model_name(model_name)

            self.config_manager.set_api_key(provider_config.get('api_key'))

            logger.info("Configuration applied successfully")

        except Exception as e:
            logger.error(f"Error applying configuration: {e}")
            # Don't raise - use defaults if config fails

    async def setup_commands(self):
        """Register all slash commands"""
        try:
            @self.tree.command(name="help", description="Display available commands and their descriptions")
            async def help_command(interaction: discord.Interaction):
                await self.handle_help(interaction)

            @self.tree.command(name="watch", description="Generate a quiz for a YouTube video and start watching")
            @app_commands.describe(
                url="YouTube video URL",
                topic="Video topic or theme",
                transcript="Optional transcript or summary of the video",
                minutes="Estimated video length in minutes"
            )
            async def watch_command(
                interaction: discord.Interaction,
                url: str,
                topic: str,
                transcript: Optional[str] = None,
                minutes: Optional[int] = None
            ):
                await self.handle_watch(interaction, url, topic, transcript, minutes)

            @self.tree.command(name="status", description="Show the quiz timeline, score and questions")
            async def status_command(interaction: discord.Interaction):
                await self.handle_status(interaction)

            @self.tree.command(name="exit", description="End the current quiz and start over")
            async def exit_command(interaction: discord.Interaction):
                await self.handle_exit(interaction)

            @self.tree.command(name="set_duration", description="Set the default estimated video length (1-600 minutes)")
            async def set_duration_command(interaction: discord.Interaction, minutes: int):
                await self.handle_set_duration(interaction, minutes)

            @self.tree.command(name="settings", description="Show the current quiz settings")
            async def settings_command(interaction: discord.Interaction):
                await self.handle_settings(interaction)

            logger.info("Slash commands registered successfully")

        except Exception as e:
            logger.error(f"Error setting up commands: {e}")
            raise

    def get_controller(self, channel_id: int, channel=None) -> QuizController:
        """Get the session controller for a channel, creating it on first use."""
        controller = self.controllers.get(channel_id)
        if controller is None:
            question_provider = QuestionProvider(
                api_key=self.config_manager.get_api_key(),
                model_name=self.config_manager.get_model_name()
            )
            controller = QuizController(question_provider, self.config_manager, channel_id=channel_id)
            self.controllers[channel_id] = controller

        if channel is not None:
            self._bind_presentation(controller, channel)
        return controller

    def _bind_presentation(self, controller: QuizController, channel) -> None:
        """Route controller events to messages in a channel."""

        async def on_question_due(question: QuizItem):
            presentation = QuizPresentation(question, controller.on_question_complete)
            view = QuizOverlayView(presentation)
            sent = await self.send_to_channel(
                channel, "present_question",
                embed=build_question_embed(presentation), view=view
            )
            if not sent:
                view.stop()
                raise QuestionDeliveryError(f"Discord did not accept question '{question.id}'")

        async def on_finished():
            await self.send_to_channel(channel, "quiz_finished", embed=self.build_summary_embed(controller))

        async def on_player_error(error: PlaybackError):
            embed = discord.Embed(
                title=f"⚠️ {error.title}",
                description=str(error),
                color=0xff0000
            )
            embed.set_footer(text="Use /exit to try another video")
            await self.send_to_channel(channel, "player_error", embed=embed)

        controller.on_question_due = on_question_due
        controller.on_finished = on_finished
        controller.on_player_error = on_player_error

    async def send_to_channel(self, channel, operation: str, max_retries: int = 3, **kwargs) -> bool:
        """
        Send a message to a channel, retrying transient Discord failures.

        Returns:
            True if the message was sent, False otherwise
        """
        for attempt in range(max_retries):
            try:
                await channel.send(**kwargs)
                return True
            except (discord.HTTPException, asyncio.TimeoutError) as e:
                if not await self.handle_discord_api_error(e, operation) or attempt == max_retries - 1:
                    logger.error(f"Failed to send message for {operation} in channel {getattr(channel, 'id', None)}")
                    return False
        return False

    async def on_ready(self):
        """Sync slash commands once connected"""
        try:
            guild_count = len(self.guilds)
            logger.info(f"Connected as {self.user} to {guild_count} guild(s)")
            print(f"🎬 {self.user} online in {guild_count} server(s)")

            try:
                commands_synced = await self.tree.sync()
                logger.info(f"{len(commands_synced)} slash commands synced")
            except discord.HTTPException as e:
                logger.error(f"Slash command sync failed: {e}")
                print(f"❌ Slash command sync failed: {e}")

        except Exception as e:
            logger.error(f"on_ready failed: {e}", exc_info=True)

    async def on_error(self, event, *args, **kwargs):
        """Log errors raised from event handlers"""
        logger.error(f"Unhandled error in event {event}", exc_info=True)

    async def close(self):
        """Release every player before disconnecting"""
        for channel_id, controller in list(self.controllers.items()):
            try:
                await controller.restart()
            except Exception as e:
                logger.warning(f"Error releasing session in channel {channel_id}: {e}")
        self.controllers.clear()
        await super().close()

    async def handle_discord_api_error(self, error: Exception, operation: str, interaction: discord.Interaction = None) -> bool:
        """
        Handle Discord API errors with appropriate retry logic and user feedback.

        Args:
            error: The Discord API error
            operation: Description of the operation that failed
            interaction: Discord interaction object (optional)

        Returns:
            True if error was handled and operation should be retried, False otherwise
        """
        if isinstance(error, discord.HTTPException):
            if error.status == 429:  # Rate limited
                retry_after = getattr(error, 'retry_after', 5)
                logger.warning(f"Rate limited during {operation}, waiting {retry_after}s")
                await asyncio.sleep(retry_after)
                return True

            elif error.status in [500, 502, 503, 504]:
                logger.warning(f"Discord server error during {operation}: {error.status}")
                await asyncio.sleep(2)
                return True

            elif error.status == 403:
                logger.error(f"Permission denied during {operation}: {error}")
                if interaction:
                    await self.send_error_response(
                        interaction,
                        "I need the Send Messages and Embed Links permissions in this channel.",
                        "❌ Permission Error"
                    )
                return False

            else:
                logger.error(f"Discord API error during {operation}: {error}")
                if interaction:
                    await self.send_error_response(
                        interaction,
                        "Discord rejected the request. Please try again in a moment.",
                        "❌ Discord Error"
                    )
                return False

        elif isinstance(error, asyncio.TimeoutError):
            logger.warning(f"Timeout during {operation}")
            if interaction:
                await self.send_error_response(
                    interaction,
                    "Discord took too long to answer. Please try again.",
                    "❌ Timeout Error"
                )
            return False

        else:
            logger.error(f"Unexpected error during {operation}: {error}")
            if interaction:
                await self.send_error_response(
                    interaction,
                    "Something went wrong talking to Discord. Please try again.",
                    "❌ Unexpected Error"
                )
            return False

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🎬 EduTube Quiz Bot Commands",
                description="Watch a YouTube video and answer vocabulary questions as they come up",
                color=0x059669
            )

            help_embed.add_field(
                name="🎮 Quiz Commands",
                value=(
                    "`/watch <url> <topic> [transcript] [minutes]` - Generate a quiz and start watching\n"
                    "`/status` - Show the timeline, score and question list\n"
                    "`/exit` - End the quiz and start over"
                ),
                inline=False
            )

            help_embed.add_field(
                name="📋 Settings Commands",
                value=(
                    "`/set_duration <minutes>` - Set the default estimated video length\n"
                    "`/settings` - Show the current settings\n"
                    "`/help` - Show this help message"
                ),
                inline=False
            )

            settings_summary = self.config_manager.get_settings_summary()
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{settings_summary}\n```",
                inline=False
            )

            help_embed.set_footer(text="Start the video when the quiz is ready; the bot pauses you at each question")

            await interaction.response.send_message(embed=help_embed)

        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help information", "❌ Help Error")

    async def handle_watch(
        self,
        interaction: discord.Interaction,
        url: str,
        topic: str,
        transcript: Optional[str] = None,
        minutes: Optional[int] = None
    ):
        """Handle /watch command"""
        try:
            channel_id = interaction.channel_id

            if minutes is not None and not (
                ConfigManager.MIN_DURATION_MINUTES <= minutes <= ConfigManager.MAX_DURATION_MINUTES
            ):
                await self.send_error_response(
                    interaction,
                    f"Video length must be between {ConfigManager.MIN_DURATION_MINUTES} and "
                    f"{ConfigManager.MAX_DURATION_MINUTES} minutes",
                    "❌ Invalid Duration"
                )
                return

            # Generation can take a while
            await interaction.response.defer(thinking=True)

            controller = self.get_controller(channel_id, interaction.channel)
            result = await controller.generate(url, topic, transcript or "", minutes)

            if not result['success']:
                await self.send_error_response(
                    interaction,
                    result.get('user_message', result.get('error', 'Unknown error')),
                    "❌ Quiz Generation Failed"
                )
                return

            embed = discord.Embed(
                title="🎬 Quiz Ready!",
                description=f"**{controller.topic}**\nhttps://www.youtube.com/watch?v={controller.video_id}",
                color=0x059669
            )
            embed.add_field(
                name="📋 Lesson Plan",
                value=self.format_question_slots(controller),
                inline=False
            )
            embed.add_field(
                name="🎮 Controls",
                value="Use `/status` to check your progress or `/exit` to end the quiz",
                inline=False
            )
            embed.set_footer(text="Start the video now. You will be paused at each question.")
            await interaction.followup.send(embed=embed)

            await controller.start_playback()

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "watch", interaction)

        except Exception as e:
            logger.error(f"Error in watch command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to start the quiz", "❌ Quiz Start Error")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            controller = self.controllers.get(interaction.channel_id)

            if controller is None or controller.state is SessionState.SETUP:
                embed = discord.Embed(
                    title="ℹ️ No Active Quiz",
                    description="There is no quiz running in this channel.",
                    color=0x6699ff
                )
                if controller is not None and controller.last_error:
                    embed.add_field(name="Last Error", value=controller.last_error, inline=False)
                embed.add_field(
                    name="🎯 Start a Quiz",
                    value="Use `/watch` with a YouTube URL and a topic",
                    inline=False
                )
                await interaction.response.send_message(embed=embed, ephemeral=True)
                return

            if controller.state is SessionState.GENERATING:
                await self.send_info_response(interaction, "Generating your quiz, hang tight...", "⏳ Generating")
                return

            session_info = controller.get_session_progress()

            if session_info['player_error']:
                status_emoji, status_text, status_color = "⚠️", "Video Unavailable", 0xff0000
            elif session_info['is_paused']:
                status_emoji, status_text, status_color = "⏸️", "Paused for a Question", 0xffaa00
            elif controller.state is SessionState.FINISHED:
                status_emoji, status_text, status_color = "✅", "Quiz Complete", 0x6699ff
            else:
                status_emoji, status_text, status_color = "▶️", "Watching", 0x00ff00

            embed = discord.Embed(
                title=f"{status_emoji} Quiz Status - {status_text}",
                description=f"**{session_info['topic']}**",
                color=status_color
            )

            timeline = controller.get_timeline()
            embed.add_field(
                name="🎞️ Timeline",
                value=f"`{render_timeline(timeline)}`",
                inline=False
            )

            score = session_info['score']
            embed.add_field(
                name="📊 Score",
                value=(
                    f"{score['correct']}/{score['total']} correct\n"
                    f"Answered: {session_info['answered']}/{session_info['total_questions']}"
                ),
                inline=True
            )

            start_time = session_info['start_time']
            if start_time:
                duration = datetime.now() - start_time
                minutes = int(duration.total_seconds() // 60)
                seconds = int(duration.total_seconds() % 60)
                embed.add_field(
                    name="⏱️ Timing",
                    value=f"Running: {minutes}m {seconds}s",
                    inline=True
                )

            embed.add_field(
                name="📋 Lesson Plan",
                value=self.format_question_slots(controller),
                inline=False
            )

            if session_info['player_error']:
                embed.add_field(name="Video Error", value=session_info['player_error'], inline=False)
            elif controller.last_error:
                embed.add_field(name="Last Error", value=controller.last_error, inline=False)

            embed.set_footer(text="Use /exit to end the quiz")
            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to get quiz status", "❌ Status Error")

    async def handle_exit(self, interaction: discord.Interaction):
        """Handle /exit command"""
        try:
            controller = self.controllers.pop(interaction.channel_id, None)

            if controller is None or controller.state is SessionState.SETUP:
                await self.send_info_response(interaction, "There is no quiz running in this channel.", "ℹ️ No Active Quiz")
                return

            if controller.state is SessionState.GENERATING:
                # Keep the session; generation cannot be cancelled
                self.controllers[interaction.channel_id] = controller
                await self.send_info_response(
                    interaction,
                    "The quiz is still being generated. Try again in a moment.",
                    "⏳ Generating"
                )
                return

            result = await controller.restart()
            session_info = result['session_info']
            score = session_info['score']

            embed = discord.Embed(
                title="🛑 Quiz Ended",
                description=f"**{session_info['topic']}** has been ended",
                color=0xff6600
            )
            embed.add_field(
                name="📊 Final Score",
                value=(
                    f"{score['correct']}/{score['total']} correct\n"
                    f"Answered: {session_info['answered']}/{session_info['total_questions']} questions"
                ),
                inline=False
            )
            embed.set_footer(text="Use /watch to start a new quiz")
            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in exit command: {e}")
            await self.send_error_response(interaction, "Failed to end the quiz", "❌ Quiz Control Error")

    async def handle_set_duration(self, interaction: discord.Interaction, minutes: int):
        """Handle /set_duration command with enhanced error handling"""
        max_retries = 3
        for attempt in range(max_retries):
            try:
                result = self.config_manager.set_duration_minutes(minutes)

                if result['success']:
                    embed = discord.Embed(
                        title="✅ Video Length Updated",
                        description=f"New quizzes will assume a **{minutes} minute** video",
                        color=0x00ff00
                    )
                    embed.add_field(
                        name="⚙️ Current Settings",
                        value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                        inline=False
                    )

                    health_check = self.config_manager.get_configuration_health_check()
                    if health_check['warnings']:
                        embed.add_field(
                            name="⚠️ Warnings",
                            value="\n".join(health_check['warnings']),
                            inline=False
                        )

                    await interaction.response.send_message(embed=embed)
                else:
                    await interaction.response.send_message(
                        result.get('user_message', f"❌ Failed to set video length: {result.get('error', 'Unknown error')}"),
                        ephemeral=True
                    )

                return

            except discord.HTTPException as e:
                if await self.handle_discord_api_error(e, "set_duration", interaction):
                    if attempt < max_retries - 1:
                        continue
                return

            except Exception as e:
                logger.error(f"Error in set_duration command (attempt {attempt + 1}): {e}")
                if attempt == max_retries - 1:
                    await self.send_error_response(interaction, "Failed to set video length", "❌ Configuration Error")
                else:
                    await asyncio.sleep(1)

    async def handle_settings(self, interaction: discord.Interaction):
        """Handle /settings command"""
        try:
            embed = discord.Embed(
                title="⚙️ Quiz Settings",
                description=f"```\n{self.config_manager.get_settings_summary()}\n```",
                color=0x6699ff
            )

            health_check = self.config_manager.get_configuration_health_check()
            if health_check['errors']:
                embed.add_field(name="❌ Problems", value="\n".join(health_check['errors']), inline=False)
            if health_check['warnings']:
                embed.add_field(name="⚠️ Warnings", value="\n".join(health_check['warnings']), inline=False)
            if health_check['recommendations']:
                embed.add_field(
                    name="💡 Recommendations",
                    value="\n".join(health_check['recommendations']),
                    inline=False
                )

            await interaction.response.send_message(embed=embed, ephemeral=True)

        except Exception as e:
            logger.error(f"Error in settings command: {e}")
            await self.send_error_response(interaction, "Failed to show settings", "❌ Settings Error")

    @staticmethod
    def format_question_slots(controller: QuizController) -> str:
        """Format the question slots as one line each."""
        icons = {'completed': "✅", 'next': "▶️", 'upcoming': "⏳"}
        lines = [
            f"{icons[slot['status']]} `{slot['time']}` {slot['label']} - {slot['focus']}"
            for slot in controller.get_question_slots()
        ]
        return "\n".join(lines) or "No questions"

    @staticmethod
    def build_summary_embed(controller: QuizController) -> discord.Embed:
        """Build the end-of-quiz summary."""
        score = controller.score
        embed = discord.Embed(
            title="🎉 Quiz Complete!",
            description=f"You got **{score.correct}/{score.total}** correct",
            color=0x6699ff
        )
        if score.total and score.correct == score.total:
            embed.add_field(name="🏆 Perfect Score", value="Every answer was right!", inline=False)
        embed.set_footer(text="Keep watching, or use /exit to start a new quiz")
        return embed

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xff0000
            )
            embed.set_footer(text="Use /help to see the quiz commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0x6699ff
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting EduTube Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
