import discord
from discord.ext import commands
import logging
from typing import Any, Dict, Optional
from pathlib import Path

from .clock import SystemClock
from .config_manager import ConfigManager
from .orchestrator import QuestionOrchestrator
from .network import NetworkStatus
from .practice_controller import PracticeController
from .question_generator import OllamaQuestionGenerator
from .score_store import InMemoryScoreStore, JsonScoreStore
from .streak_tracker import StreakTracker


OPTION_LABELS = "ABCD"

logger = logging.getLogger(__name__)


def setup_logging(log_directory: str = "./logs/", level: int = logging.INFO):
    """Set up console, file and error-file logging."""
    logs_dir = Path(log_directory)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(logs_dir / "bot.log", encoding='utf-8'),
        ]
    )

    error_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s\n%(exc_info)s'
    ))
    logging.getLogger().addHandler(error_handler)

    # Reduce discord.py noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)

    return logging.getLogger(__name__)


def resolve_choice(question: Optional[Dict[str, Any]], answer: str) -> str:
    """Map an option letter or number to the option text; other input is returned as typed."""
    answer = answer.strip()
    options = (question or {}).get('options') or []
    if not options or len(answer) != 1:
        return answer

    if answer.upper() in OPTION_LABELS[:len(options)]:
        return options[OPTION_LABELS.index(answer.upper())]
    if answer.isdigit() and 1 <= int(answer) <= len(options):
        return options[int(answer) - 1]
    return answer


def build_question_embed(question: Dict[str, Any], title: str, color: int = 0x00ff00) -> discord.Embed:
    """Render a question dictionary as an embed."""
    embed = discord.Embed(title=title, description=question['question'], color=color)

    if question.get('codeSnippet'):
        language = (question.get('language') or '').lower().replace('+', 'p')
        embed.add_field(name="Code", value=f"```{language}\n{question['codeSnippet']}\n```", inline=False)

    if question.get('sampleInputs') or question.get('sampleOutputs'):
        embed.add_field(
            name="Sample",
            value=f"Input: `{question.get('sampleInputs') or '-'}`\nOutput: `{question.get('sampleOutputs') or '-'}`",
            inline=False
        )

    options = question.get('options') or []
    if options:
        embed.add_field(
            name="Options",
            value="\n".join(f"**{OPTION_LABELS[i]}.** {option}" for i, option in enumerate(options)),
            inline=False
        )

    tags = question.get('companyTags') or []
    if tags:
        embed.set_footer(text="Asked at: " + ", ".join(tags))
    return embed


def build_practice_embed(snapshot: Dict[str, Any]) -> discord.Embed:
    """Render a practice session snapshot."""
    phase = snapshot['phase']
    config = snapshot.get('config') or {}

    if phase == 'complete':
        embed = discord.Embed(
            title=f"🏁 {config.get('category_name')} complete",
            description=f"You scored **{snapshot['score']}/{snapshot['total_questions']}**",
            color=0x6699ff
        )
        if snapshot.get('perfect_score_popup'):
            embed.add_field(name="🏆 Perfect score!", value="Every answer was correct.", inline=False)
        if not snapshot.get('completion_saved', True):
            embed.add_field(name="⚠️ Warning", value="Your completion could not be saved.", inline=False)
        return embed

    if phase == 'active':
        if snapshot['endless']:
            progress = f"Question {snapshot['question_number']}"
        else:
            progress = f"Question {snapshot['question_number']}/{snapshot['total_questions']}"
        title = f"{config.get('category_name')} • {progress} • Score {snapshot['score']}"
        embed = build_question_embed(snapshot['question'], title)

        feedback = snapshot.get('feedback')
        if feedback:
            verdict = "✅ Correct" if feedback['is_correct'] else "❌ Incorrect"
            embed.add_field(
                name=verdict,
                value=f"Answer: {snapshot['question']['correctAnswer']}\n{feedback['explanation']}"[:1024],
                inline=False
            )
        return embed

    if phase == 'loading':
        return discord.Embed(title="⏳ Generating question...", color=0xffaa00)

    description = "Use `/practice` to start a session."
    if snapshot.get('error'):
        description = f"{snapshot['error']}\n\n{description}"
    return discord.Embed(title="ℹ️ No Active Practice", description=description, color=0x6699ff)


def build_daily_embed(snapshot: Dict[str, Any]) -> discord.Embed:
    """Render a daily quiz snapshot."""
    phase = snapshot['phase']

    if phase == 'active':
        title = f"🧠 Daily Quiz • Question {snapshot['current_index'] + 1}/{snapshot['total_questions']}"
        embed = build_question_embed(snapshot['question'], title)
        if snapshot.get('user_answer'):
            embed.add_field(name="Your answer", value=snapshot['user_answer'], inline=False)
        return embed

    if phase == 'results':
        embed = discord.Embed(
            title="📊 Daily Quiz Results",
            description=(
                f"Score: **{snapshot['score']}/{snapshot['total_questions']}** "
                f"({snapshot['accuracy']}%)\n{snapshot['summary_message']}"
            ),
            color=0x6699ff
        )
        if snapshot.get('streak') is not None:
            embed.add_field(name="🔥 Streak", value=f"{snapshot['streak']} day(s)", inline=True)
        if snapshot.get('warning'):
            embed.add_field(name="⚠️ Warning", value=snapshot['warning'], inline=False)

        reviews = snapshot.get('reviews') or []
        missed = [r for r in reviews if not r['is_correct']]
        if missed:
            lines = [f"• {r['question'][:80]} → **{r['correct_answer']}**" for r in missed[:5]]
            embed.add_field(name="Review", value="\n".join(lines)[:1024], inline=False)
        elif not reviews:
            embed.set_footer(text="You've already taken today's quiz. Come back tomorrow!")
        return embed

    if phase == 'generating':
        progress = snapshot.get('progress') or {}
        return discord.Embed(
            title="⏳ Generating your daily quiz...",
            description=f"{progress.get('generated', 0)}/{progress.get('total', 0)} questions ready",
            color=0xffaa00
        )

    description = "Use `/daily` to start today's quiz."
    if snapshot.get('error'):
        description = f"{snapshot['error']}\n\n{description}"
    return discord.Embed(title="🧠 Daily Quiz", description=description, color=0x6699ff)


class PrepZoneBot(commands.Bot):
    """Discord bot for interview practice sessions and the daily quiz"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.config_manager: Optional[ConfigManager] = None
        self.generator: Optional[OllamaQuestionGenerator] = None
        self.controller: Optional[PracticeController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                result = self.config_manager.apply_config(self.app_config)
                for error in result['errors']:
                    logger.warning(f"Configuration value rejected: {error}")

            self.controller = self.build_controller()
            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def build_controller(self) -> PracticeController:
        """Wire the generator, store and tracker from the current settings."""
        settings = self.config_manager.get_settings()
        network_status = NetworkStatus()

        self.generator = OllamaQuestionGenerator(
            host=settings.generator_host,
            model=settings.generator_model,
            timeout=float(settings.generator_timeout),
            network_status=network_status,
        )
        orchestrator = QuestionOrchestrator(self.generator, batch_delay_ms=settings.batch_delay_ms)

        if settings.storage_backend == "memory":
            store = InMemoryScoreStore()
        else:
            store = JsonScoreStore(settings.data_directory)
        tracker = StreakTracker(store, SystemClock())

        logger.info(self.config_manager.get_settings_summary())
        return PracticeController(orchestrator, tracker, network_status)

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="practice", description="Start a practice session (dsa, coding, aptitude, tips-and-tricks)")
        async def practice_command(
            interaction: discord.Interaction,
            category: str,
            difficulty: Optional[str] = None,
            language: Optional[str] = None
        ):
            await self.handle_practice(interaction, category, difficulty, language)

        @self.tree.command(name="answer", description="Submit an answer to the current practice question")
        async def answer_command(interaction: discord.Interaction, answer: str):
            await self.handle_answer(interaction, answer)

        @self.tree.command(name="next", description="Move to the next practice question")
        async def next_command(interaction: discord.Interaction):
            await self.handle_practice_call(interaction, self.controller.next_question)

        @self.tree.command(name="language", description="Show the current DSA question in another language")
        async def language_command(interaction: discord.Interaction, language: str):
            await self.handle_practice_call(
                interaction, lambda user_id: self.controller.change_language(user_id, language)
            )

        @self.tree.command(name="retry", description="Retry the last failed question request")
        async def retry_command(interaction: discord.Interaction):
            await self.handle_practice_call(interaction, self.controller.retry)

        @self.tree.command(name="restart", description="Abandon the current practice session")
        async def restart_command(interaction: discord.Interaction):
            result = self.controller.restart_practice(str(interaction.user.id))
            await self.send_info_response(interaction, result['user_message'], "🔄 Restarted")

        @self.tree.command(name="daily", description="Start or view today's daily quiz")
        async def daily_command(interaction: discord.Interaction):
            await self.handle_daily(interaction)

        @self.tree.command(name="daily_answer", description="Answer the current daily quiz question (A-D)")
        async def daily_answer_command(interaction: discord.Interaction, answer: str):
            await self.handle_daily_answer(interaction, answer)

        @self.tree.command(name="daily_next", description="Go to the next daily quiz question")
        async def daily_next_command(interaction: discord.Interaction):
            await self.handle_daily_navigation(interaction, "go to the next question", lambda quiz: quiz.next())

        @self.tree.command(name="daily_prev", description="Go back to the previous daily quiz question")
        async def daily_prev_command(interaction: discord.Interaction):
            await self.handle_daily_navigation(interaction, "go to the previous question", lambda quiz: quiz.previous())

        @self.tree.command(name="daily_goto", description="Jump to a daily quiz question by number")
        async def daily_goto_command(interaction: discord.Interaction, number: int):
            await self.handle_daily_navigation(interaction, "jump to a question", lambda quiz: quiz.go_to(number - 1))

        @self.tree.command(name="daily_finish", description="Finish the daily quiz and see your results")
        async def daily_finish_command(interaction: discord.Interaction):
            await self.handle_daily_finish(interaction)

        @self.tree.command(name="daily_cancel", description="Abandon the daily quiz in progress")
        async def daily_cancel_command(interaction: discord.Interaction):
            result = await self.controller.cancel_daily_quiz(str(interaction.user.id))
            await self.send_result(interaction, result, build_daily_embed)

        @self.tree.command(name="progress", description="Show your streak and today's completed categories")
        async def progress_command(interaction: discord.Interaction):
            await self.handle_progress(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")

        if self.generator is not None and not await self.generator.probe():
            logger.warning("Question generator is not reachable; sessions will report offline")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.controller is not None:
            self.controller.shutdown()
        if self.generator is not None:
            await self.generator.close()
        await super().close()

    async def send_result(self, interaction: discord.Interaction, result: Dict[str, Any], render) -> None:
        """Send a controller result, rendering its state snapshot when present."""
        if not result['success'] and 'state' not in result:
            await self.send_error_response(interaction, result['user_message'])
            return

        embed = render(result['state'])
        if not result['success']:
            embed.color = 0xff0000
            embed.add_field(name="❌ Error", value=result['user_message'], inline=False)
        await self._send(interaction, embed=embed, ephemeral=True)

    async def _send(self, interaction: discord.Interaction, **kwargs) -> None:
        try:
            if interaction.response.is_done():
                await interaction.followup.send(**kwargs)
            else:
                await interaction.response.send_message(**kwargs)
        except discord.HTTPException as e:
            logger.error(f"Failed to send response to user {interaction.user.id}: {e}")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        help_embed = discord.Embed(
            title="🎯 PrepZone Commands",
            description="Interview practice sessions and a daily quiz",
            color=0x00ff00
        )
        help_embed.add_field(
            name="📋 Practice",
            value=(
                "`/practice <category> [difficulty] [language]` - Start a session\n"
                "`/answer <text>` - Submit an answer (A-D for multiple choice)\n"
                "`/next` - Next question\n"
                "`/language <name>` - Switch a DSA question's language\n"
                "`/retry` - Retry a failed request\n"
                "`/restart` - Abandon the session"
            ),
            inline=False
        )
        help_embed.add_field(
            name="🧠 Daily Quiz",
            value=(
                "`/daily` - Start or view today's quiz\n"
                "`/daily_answer <A-D>` - Answer the current question\n"
                "`/daily_next`, `/daily_prev`, `/daily_goto <n>` - Navigate\n"
                "`/daily_finish` - Submit and see results\n"
                "`/daily_cancel` - Abandon the quiz\n"
                "`/progress` - Streak and today's completions"
            ),
            inline=False
        )
        help_embed.add_field(
            name="⚙️ Current Settings",
            value=f"```\n{self.config_manager.get_settings_summary()}\n```",
            inline=False
        )
        await self._send(interaction, embed=help_embed)

    async def handle_practice(self, interaction: discord.Interaction, category: str, difficulty: Optional[str], language: Optional[str]):
        """Handle /practice command"""
        self.controller.cleanup_inactive_sessions()
        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await self.controller.start_practice(str(interaction.user.id), category, difficulty, language)
        await self.send_result(interaction, result, build_practice_embed)

    async def handle_answer(self, interaction: discord.Interaction, answer: str):
        user_id = str(interaction.user.id)
        question = self.controller.get_practice_session(user_id).snapshot().get('question')
        result = await self.controller.submit_answer(user_id, resolve_choice(question, answer))
        await self.send_result(interaction, result, build_practice_embed)

    async def handle_practice_call(self, interaction: discord.Interaction, call):
        """Run a practice operation that may call the question generator."""
        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await call(str(interaction.user.id))
        await self.send_result(interaction, result, build_practice_embed)

    async def handle_daily(self, interaction: discord.Interaction):
        """Handle /daily command"""
        self.controller.cleanup_inactive_sessions()
        user_id = str(interaction.user.id)
        await interaction.response.defer(ephemeral=True, thinking=True)

        result = await self.controller.open_daily_quiz(user_id)
        if result['success'] and result['state']['phase'] == 'idle':
            result = await self.controller.start_daily_quiz(user_id)
        await self.send_result(interaction, result, build_daily_embed)

    async def handle_daily_answer(self, interaction: discord.Interaction, answer: str):
        user_id = str(interaction.user.id)
        question = self.controller.get_daily_quiz(user_id).snapshot().get('question')
        choice = resolve_choice(question, answer)
        await self.handle_daily_navigation(interaction, "answer the question", lambda quiz: quiz.select_answer(choice))

    async def handle_daily_navigation(self, interaction: discord.Interaction, operation: str, action):
        result = await self.controller.daily_action(str(interaction.user.id), operation, action)
        await self.send_result(interaction, result, build_daily_embed)

    async def handle_daily_finish(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await self.controller.finish_daily_quiz(str(interaction.user.id))
        await self.send_result(interaction, result, build_daily_embed)

    async def handle_progress(self, interaction: discord.Interaction):
        """Handle /progress command"""
        result = await self.controller.get_progress(str(interaction.user.id))
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'])
            return

        embed = discord.Embed(title="📈 Your Progress", color=0x6699ff)
        embed.add_field(name="🔥 Daily Quiz Streak", value=str(result['streak']), inline=True)
        todays_score = result['todays_score']
        embed.add_field(
            name="🧠 Today's Quiz",
            value=f"{todays_score}" if todays_score is not None else "Not taken yet",
            inline=True
        )
        completed = ", ".join(result['completed_categories']) or "None yet"
        embed.add_field(name="✅ Completed Today", value=completed, inline=False)
        await self._send(interaction, embed=embed, ephemeral=True)

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        embed = discord.Embed(title=title, description=message, color=0xff0000)
        embed.set_footer(text="If this error persists, try using /help for available commands")
        await self._send(interaction, embed=embed, ephemeral=True)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        embed = discord.Embed(title=title, description=message, color=0x6699ff)
        await self._send(interaction, embed=embed, ephemeral=True)


async def run_bot(token, config=None):
    """Run the bot with proper error handling"""
    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = PrepZoneBot(config)

    try:
        logger.info("Starting PrepZone bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
