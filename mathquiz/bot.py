import discord
from discord import app_commands
from discord.ext import commands
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .config_manager import ConfigManager
from .models import GameCategory, GameDifficulty
from .quiz_controller import QuizController, QuizStatus

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO", log_directory: str = "./logs/") -> logging.Logger:
    """Set up console, file and error-only logging for the bot."""
    logs_dir = Path(log_directory)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),  # Console output
            logging.FileHandler(logs_dir / "bot.log", encoding='utf-8'),  # File output
        ]
    )

    # Errors also go to their own file
    error_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(error_handler)

    # Reduce discord.py noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)

    return logging.getLogger(__name__)


CATEGORY_CHOICES = [
    app_commands.Choice(name=category.value.replace('_', ' ').title(), value=category.value)
    for category in GameCategory
]

DIFFICULTY_CHOICES = [
    app_commands.Choice(name=difficulty.value.title(), value=difficulty.value)
    for difficulty in GameDifficulty
]


class QuizBot(commands.Bot):
    """Discord bot running timed math quizzes"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        # Slash commands only need the guilds intent
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None  # /help is a slash command
        )

        self.app_config = config or {}
        self.config_manager: Optional[ConfigManager] = None
        self.quiz_controller: Optional[QuizController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                self.apply_configuration()

            self.quiz_controller = QuizController(self.config_manager)
            self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def apply_configuration(self):
        """Apply the quiz section of config.json; bad entries fall back to defaults."""
        quiz_config = self.app_config.get('quiz', {})
        errors = self.config_manager.apply_config_dict(quiz_config)
        for error in errors:
            logger.warning(f"Invalid quiz setting in configuration: {error}")
        logger.info("Configuration applied successfully")

    def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and current settings")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        # Quiz control commands
        @self.tree.command(name="start", description="Start a math quiz with the current settings")
        async def start_command(interaction: discord.Interaction):
            await self.handle_start(interaction)

        @self.tree.command(name="stop", description="Stop the quiz in this channel")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="pause", description="Pause the quiz in this channel")
        async def pause_command(interaction: discord.Interaction):
            await self.handle_pause(interaction)

        @self.tree.command(name="resume", description="Resume the paused quiz")
        async def resume_command(interaction: discord.Interaction):
            await self.handle_resume(interaction)

        @self.tree.command(name="status", description="Show quiz progress in this channel")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="hint", description="Get a hint for the current question")
        async def hint_command(interaction: discord.Interaction):
            await self.handle_hint(interaction)

        # Configuration commands
        @self.tree.command(name="set_questions", description="Set the number of questions for the next quiz")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_set_questions(interaction, number)

        @self.tree.command(name="set_timer", description="Set the time limit for each question (5-300 seconds)")
        async def set_timer_command(interaction: discord.Interaction, seconds: int):
            await self.handle_set_timer(interaction, seconds)

        @self.tree.command(name="set_category", description="Choose the math topic for the next quiz")
        @app_commands.choices(category=CATEGORY_CHOICES)
        async def set_category_command(interaction: discord.Interaction, category: app_commands.Choice[str]):
            await self.handle_set_category(interaction, category.value)

        @self.tree.command(name="set_difficulty", description="Choose the difficulty for the next quiz")
        @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
        async def set_difficulty_command(interaction: discord.Interaction, difficulty: app_commands.Choice[str]):
            await self.handle_set_difficulty(interaction, difficulty.value)

        @self.tree.command(name="set_grade", description="Set the grade level (prek, k, 1-12 or none)")
        async def set_grade_command(interaction: discord.Interaction, grade: str, adjust_timer: bool = False):
            await self.handle_set_grade(interaction, grade, adjust_timer)

        @self.tree.command(name="set_bonus", description="Set extra points per second left when answering (0 disables)")
        async def set_bonus_command(interaction: discord.Interaction, factor: float):
            await self.handle_set_bonus(interaction, factor)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")
        print(f"🤖 {self.user} is Ready and Online!")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
            print(f"⚡ Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")
            print(f"❌ Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🧮 Math Quiz Bot Commands",
                description="Timed multiple-choice math quizzes for the whole channel",
                color=0x00ff00
            )
            help_embed.add_field(
                name="🎮 Quiz Commands",
                value=(
                    "`/start` - Start a quiz with the current settings\n"
                    "`/stop` - Stop the quiz in this channel\n"
                    "`/pause` - Pause the countdown\n"
                    "`/resume` - Resume a paused quiz\n"
                    "`/status` - Show progress and score\n"
                    "`/hint` - Get a hint for the current question"
                ),
                inline=False
            )
            help_embed.add_field(
                name="📋 Settings Commands",
                value=(
                    "`/set_questions <number>` - Questions per quiz (1-50)\n"
                    "`/set_timer <seconds>` - Time per question (5-300)\n"
                    "`/set_category <topic>` - Math topic, or mixed\n"
                    "`/set_difficulty <level>` - easy, normal, genius or quantum\n"
                    "`/set_grade <grade>` - prek, k, 1-12 or none\n"
                    "`/set_bonus <factor>` - Extra points per second left"
                ),
                inline=False
            )
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            help_embed.set_footer(text="Settings changed during a quiz apply to the next one")

            await interaction.response.send_message(embed=help_embed)

        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help", "❌ Help Error")

    async def handle_start(self, interaction: discord.Interaction):
        """Handle /start command"""
        try:
            channel_id = interaction.channel_id
            await interaction.response.defer()

            result = await self.quiz_controller.start_quiz(channel_id, interaction.channel)

            if result['success']:
                embed = discord.Embed(
                    title="🚀 Quiz Started",
                    description=result['user_message'],
                    color=0x00ff00
                )
                embed.set_footer(text="Tap an answer button under each question")
                await interaction.followup.send(embed=embed)
            else:
                await self.send_error_response(interaction, result['user_message'], "❌ Quiz Start Failed")

        except Exception as e:
            logger.error(f"Error in start command: {e}")
            await self.send_error_response(interaction, "Failed to start quiz", "❌ Quiz Start Error")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        try:
            result = await self.quiz_controller.stop_quiz(interaction.channel_id)

            if result['success']:
                embed = discord.Embed(
                    title="🛑 Quiz Stopped",
                    description=result['user_message'],
                    color=0xff6600
                )
                embed.set_footer(text="Use /start to begin a new quiz")
                await interaction.response.send_message(embed=embed)
            else:
                await self.send_info_response(interaction, result['user_message'], "ℹ️ No Active Quiz")

        except Exception as e:
            logger.error(f"Error in stop command: {e}")
            await self.send_error_response(interaction, "Failed to stop quiz", "❌ Quiz Control Error")

    async def handle_pause(self, interaction: discord.Interaction):
        """Handle /pause command"""
        try:
            result = self.quiz_controller.pause_quiz(interaction.channel_id)

            if result['success']:
                await interaction.response.send_message(result['user_message'])
            else:
                await self.send_info_response(interaction, result['user_message'], "ℹ️ No Active Quiz")

        except Exception as e:
            logger.error(f"Error in pause command: {e}")
            await self.send_error_response(interaction, "Failed to pause quiz", "❌ Quiz Control Error")

    async def handle_resume(self, interaction: discord.Interaction):
        """Handle /resume command"""
        try:
            channel_id = interaction.channel_id
            if self.quiz_controller.get_status(channel_id) != QuizStatus.PAUSED:
                result = await self.quiz_controller.resume_quiz(channel_id)
                await self.send_info_response(interaction, result['user_message'])
                return

            # Acknowledge first; resuming may post the next question
            await interaction.response.send_message("▶️ Resuming quiz...")
            await self.quiz_controller.resume_quiz(channel_id)

        except Exception as e:
            logger.error(f"Error in resume command: {e}")
            await self.send_error_response(interaction, "Failed to resume quiz", "❌ Quiz Control Error")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            channel_id = interaction.channel_id
            progress = self.quiz_controller.get_session_progress(channel_id)

            if progress is None:
                embed = discord.Embed(
                    title="ℹ️ No Quiz",
                    description=self.quiz_controller.get_session_status_summary(channel_id),
                    color=0x6699ff
                )
                embed.add_field(
                    name="⚙️ Next Quiz Settings",
                    value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                    inline=False
                )
                await interaction.response.send_message(embed=embed, ephemeral=True)
                return

            status = progress['status']
            if status == QuizStatus.PAUSED.value:
                status_color, status_emoji, status_text = 0xffaa00, "⏸️", "Paused"
            elif status == QuizStatus.ACTIVE.value:
                status_color, status_emoji, status_text = 0x00ff00, "▶️", "Active"
            else:
                status_color, status_emoji, status_text = 0x6699ff, "✅", "Completed"

            settings = progress['settings']
            embed = discord.Embed(
                title=f"{status_emoji} Quiz Status - {status_text}",
                description=self.quiz_controller.get_session_status_summary(channel_id),
                color=status_color
            )
            embed.add_field(
                name="📊 Progress",
                value=(
                    f"Question: {progress['current_question']}/{progress['total_questions']}\n"
                    f"Correct: {progress['correct']}/{progress['answered']}"
                ),
                inline=True
            )
            embed.add_field(
                name="⭐ Score",
                value=(
                    f"Score: {progress['score']}\n"
                    f"Streak: {progress['streak']} (best {progress['best_streak']})"
                ),
                inline=True
            )
            embed.add_field(
                name="⚙️ Settings",
                value=(
                    f"Topic: {settings['category'].replace('_', ' ')}\n"
                    f"Difficulty: {settings['difficulty']}\n"
                    f"Grade: {settings['grade_level'] or 'any'}\n"
                    f"Timer: {settings['time_limit']}s per question"
                ),
                inline=True
            )
            embed.set_footer(text="Use /help to see all available commands")

            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to get quiz status", "❌ Status Error")

    async def handle_hint(self, interaction: discord.Interaction):
        """Handle /hint command"""
        try:
            result = self.quiz_controller.get_hint(interaction.channel_id)
            if result['success']:
                await self.send_info_response(interaction, result['user_message'], "💡 Hint")
            else:
                await self.send_info_response(interaction, result['user_message'], "ℹ️ No Active Quiz")

        except Exception as e:
            logger.error(f"Error in hint command: {e}")
            await self.send_error_response(interaction, "Failed to get a hint", "❌ Hint Error")

    async def handle_setting_result(self, interaction: discord.Interaction, result: Dict[str, Any], title: str):
        """Reply to a settings command and push successful changes to the quiz controller."""
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")
            return

        applied = self.quiz_controller.apply_config(self.config_manager.get_session_config())
        embed = discord.Embed(
            title=title,
            description=result['user_message'],
            color=0x00ff00
        )
        if applied.get(interaction.channel_id) is False:
            embed.add_field(
                name="⏳ Quiz In Progress",
                value="The running quiz keeps its settings; the change applies to the next quiz.",
                inline=False
            )
        await interaction.response.send_message(embed=embed)

    async def handle_set_questions(self, interaction: discord.Interaction, number: int):
        """Handle /set_questions command"""
        try:
            result = self.config_manager.set_question_count(number)
            await self.handle_setting_result(interaction, result, "✅ Question Count Updated")
        except Exception as e:
            logger.error(f"Error in set_questions command: {e}")
            await self.send_error_response(interaction, "Failed to update question count", "❌ Configuration Error")

    async def handle_set_timer(self, interaction: discord.Interaction, seconds: int):
        """Handle /set_timer command"""
        try:
            result = self.config_manager.set_timer_duration(seconds)
            await self.handle_setting_result(interaction, result, "⏱️ Timer Updated")
        except Exception as e:
            logger.error(f"Error in set_timer command: {e}")
            await self.send_error_response(interaction, "Failed to update timer", "❌ Configuration Error")

    async def handle_set_category(self, interaction: discord.Interaction, category: str):
        """Handle /set_category command"""
        try:
            result = self.config_manager.set_category(category)
            await self.handle_setting_result(interaction, result, "📚 Category Updated")
        except Exception as e:
            logger.error(f"Error in set_category command: {e}")
            await self.send_error_response(interaction, "Failed to update category", "❌ Configuration Error")

    async def handle_set_difficulty(self, interaction: discord.Interaction, difficulty: str):
        """Handle /set_difficulty command"""
        try:
            result = self.config_manager.set_difficulty(difficulty)
            await self.handle_setting_result(interaction, result, "🎚️ Difficulty Updated")
        except Exception as e:
            logger.error(f"Error in set_difficulty command: {e}")
            await self.send_error_response(interaction, "Failed to update difficulty", "❌ Configuration Error")

    async def handle_set_grade(self, interaction: discord.Interaction, grade: str, adjust_timer: bool = False):
        """Handle /set_grade command"""
        try:
            result = self.config_manager.set_grade_level(grade, adjust_timer=adjust_timer)
            await self.handle_setting_result(interaction, result, "🎓 Grade Level Updated")
        except Exception as e:
            logger.error(f"Error in set_grade command: {e}")
            await self.send_error_response(interaction, "Failed to update grade level", "❌ Configuration Error")

    async def handle_set_bonus(self, interaction: discord.Interaction, factor: float):
        """Handle /set_bonus command"""
        try:
            result = self.config_manager.set_bonus_factor(factor)
            # Scoring is read when a quiz starts, not part of the session config
            if result['success']:
                embed = discord.Embed(
                    title="⚡ Time Bonus Updated",
                    description=result['user_message'],
                    color=0x00ff00
                )
                embed.set_footer(text="Applies from the next quiz")
                await interaction.response.send_message(embed=embed)
            else:
                await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")
        except Exception as e:
            logger.error(f"Error in set_bonus command: {e}")
            await self.send_error_response(interaction, "Failed to update time bonus", "❌ Configuration Error")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xff0000
            )
            embed.set_footer(text="If this error persists, try using /help for available commands")

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
    # Fall back to environment variable if no token provided
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Math Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
