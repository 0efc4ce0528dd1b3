import asyncio
import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from brutal_coach.completion import CompletionClient
from brutal_coach.processor import CommandProcessor
from brutal_coach.settings import Settings, load_settings

# ─── Configuration ───

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")

intents = discord.Intents.default()
activity = discord.CustomActivity(name="Watching you procrastinate")
discord_bot = commands.Bot(command_prefix=commands.when_mentioned, intents=intents, activity=activity)

settings: Optional[Settings] = None
processor: Optional[CommandProcessor] = None


# ═══════════════════════════════════════════════════
#  SLASH COMMANDS
# ═══════════════════════════════════════════════════

@discord_bot.tree.command(name="start-session", description="Commit to a goal for a fixed number of hours.")
@app_commands.describe(duration="How long, in hours (0.5 to 12)", goal="What you are going to finish")
async def start_session_command(interaction: discord.Interaction, duration: float, goal: str):
    await processor.start_session(interaction, duration, goal)


@discord_bot.tree.command(name="complete", description="Report that you finished your goal.")
async def complete_command(interaction: discord.Interaction):
    await processor.complete(interaction)


@discord_bot.tree.command(name="fail", description="Admit that you failed your goal.")
async def fail_command(interaction: discord.Interaction):
    await processor.fail(interaction)


@discord_bot.tree.command(name="cant-focus", description="Get a punishment to reset your focus.")
async def cant_focus_command(interaction: discord.Interaction):
    await processor.cant_focus(interaction)


@discord_bot.tree.command(name="status", description="Show your active session.")
async def status_command(interaction: discord.Interaction):
    await processor.status(interaction)


# ═══════════════════════════════════════════════════
#  ERROR HANDLERS
# ═══════════════════════════════════════════════════

@discord_bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
    logging.error(f"Command error: {error}", exc_info=error)
    try:
        send = interaction.followup.send if interaction.response.is_done() else interaction.response.send_message
        await send("An error occurred.", ephemeral=True)
    except discord.HTTPException as e:
        logging.warning(f"Could not report command error to user {interaction.user.id}: {e}")


@discord_bot.event
async def on_error(event: str, *args, **kwargs):
    # Gateway-level failures have no interaction to answer.
    logging.exception(f"Unhandled error in event {event}")


def register_loop_exception_handler(loop: asyncio.AbstractEventLoop) -> None:
    def _loop_exception_handler(active_loop: asyncio.AbstractEventLoop, context: dict) -> None:
        message = context.get("message", "Unhandled asyncio loop exception")
        exception = context.get("exception")
        if exception is not None:
            logging.error(f"Loop exception: {message}", exc_info=exception)
        else:
            logging.error(f"Loop exception: {message} context={context!r}")

    loop.set_exception_handler(_loop_exception_handler)


# ═══════════════════════════════════════════════════
#  STARTUP
# ═══════════════════════════════════════════════════

@discord_bot.event
async def on_ready():
    logging.info(f"Brutal Coach bot online: {discord_bot.user} (ID: {discord_bot.user.id})")
    if settings and settings.client_id:
        logging.info(
            f"Invite: https://discord.com/oauth2/authorize?client_id={settings.client_id}"
            f"&permissions=2048&scope=bot%20applications.commands"
        )
    synced = await discord_bot.tree.sync()
    logging.info(f"Synced {len(synced)} slash command(s)")


def check_environment(current: Settings) -> bool:
    """Log which credentials are present. Returns False if the bot can't start."""
    logging.info(
        f"Env check: has_{current.provider}_key={bool(current.api_key)} "
        f"has_discord_token={bool(current.bot_token)}"
    )
    missing = current.missing_credentials()
    if missing:
        logging.critical(f"Missing required configuration: {', '.join(missing)}")
        return False
    return True


async def main(current: Settings) -> None:
    global settings, processor
    settings = current
    register_loop_exception_handler(asyncio.get_running_loop())

    completions = CompletionClient.from_settings(current)
    processor = CommandProcessor.from_settings(current, completions)
    logging.info(f"Using model {current.provider}/{current.model}")

    async with discord_bot:
        await discord_bot.start(current.bot_token)


def run() -> None:
    current = load_settings()
    logging.getLogger().setLevel(current.log_level)
    if not check_environment(current):
        raise SystemExit(1)
    try:
        asyncio.run(main(current))
    except KeyboardInterrupt:
        logging.info("Brutal Coach bot shutting down.")


if __name__ == "__main__":
    run()
