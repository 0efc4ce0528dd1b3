import functools
import logging
import math
from datetime import timedelta
from typing import Optional

import discord

from brutal_coach import prompts
from brutal_coach.completion import CompletionClient
from brutal_coach.errors import CompletionFailed, SessionNotFound, ValidationError
from brutal_coach.sessions import SessionStore
from brutal_coach.settings import DEFAULT_MAX_HOURS, DEFAULT_MIN_HOURS

MESSAGE_MAX_LEN = 2000

AI_UNAVAILABLE = "⚠️ The AI service is unavailable right now. Try again in a minute."
GENERIC_FAILURE = "⚠️ Something went wrong handling that command."
NO_SESSION = "❌ No active session found. Start one with `/start-session`."


def format_remaining(delta: timedelta) -> str:
    """Render as "Xh Ym", rounding partial minutes up and flooring at 0h 0m."""
    total_minutes = max(math.ceil(delta.total_seconds() / 60), 0)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def _clip(text: str) -> str:
    if len(text) <= MESSAGE_MAX_LEN:
        return text
    return text[: MESSAGE_MAX_LEN - 3] + "..."


async def reply(interaction: discord.Interaction, content: str, ephemeral: bool = False) -> None:
    """Send the single reply, editing the deferred response if one is pending."""
    content = _clip(content)
    if interaction.response.is_done():
        await interaction.edit_original_response(content=content)
    else:
        await interaction.response.send_message(content, ephemeral=ephemeral)


def guarded(handler):
    """Catch-all around a command body so every invocation ends with exactly one reply."""

    @functools.wraps(handler)
    async def wrapper(self, interaction: discord.Interaction, *args, **kwargs):
        try:
            await handler(self, interaction, *args, **kwargs)
        except ValidationError as e:
            await reply(interaction, f"❌ {e}", ephemeral=True)
        except SessionNotFound:
            await reply(interaction, NO_SESSION, ephemeral=True)
        except CompletionFailed as e:
            logging.warning(f"{handler.__name__} for user {interaction.user.id}: AI unavailable ({e.last_error})")
            await reply(interaction, AI_UNAVAILABLE)
        except Exception:
            logging.exception(f"Unhandled error in {handler.__name__} for user {interaction.user.id}")
            await reply(interaction, GENERIC_FAILURE)

    return wrapper


class CommandProcessor:
    """Runs the per-user session state machine behind the slash commands.

    Store mutations always happen before the first await on the completion
    client, so a failed AI call never brings a closed session back.
    """

    def __init__(
        self,
        completions: CompletionClient,
        sessions: Optional[SessionStore] = None,
        min_hours: float = DEFAULT_MIN_HOURS,
        max_hours: float = DEFAULT_MAX_HOURS,
    ):
        self.completions = completions
        self.sessions = sessions if sessions is not None else SessionStore()
        self.min_hours = min_hours
        self.max_hours = max_hours

    @classmethod
    def from_settings(cls, settings, completions: CompletionClient) -> "CommandProcessor":
        return cls(completions, min_hours=settings.min_hours, max_hours=settings.max_hours)

    def validate_start(self, duration: float, goal: str) -> str:
        goal = (goal or "").strip()
        if not goal:
            raise ValidationError("Your goal can't be empty.")
        # NaN fails both comparisons, so it lands here too
        if not (self.min_hours <= duration <= self.max_hours):
            raise ValidationError(
                f"Duration must be between {self.min_hours:g} and {self.max_hours:g} hours."
            )
        return goal

    @guarded
    async def start_session(self, interaction: discord.Interaction, duration: float, goal: str) -> None:
        goal = self.validate_start(duration, goal)
        user_id = interaction.user.id

        previous = self.sessions.get(user_id)
        self.sessions.put(user_id, goal, duration)

        content = f"🧠 **Session Started**\nGoal: **{goal}**\nDuration: **{duration:g} hour(s)**"
        if previous:
            logging.info(f"User {user_id} replaced active session '{previous.goal}'")
            content += f"\n_(Replaced your previous session: {previous.goal})_"
        await reply(interaction, content)

    @guarded
    async def complete(self, interaction: discord.Interaction) -> None:
        session = self.sessions.remove(interaction.user.id)
        if session is None:
            raise SessionNotFound()

        elapsed = session.elapsed(self.sessions.clock())
        await interaction.response.defer(thinking=True)
        praise = await self.completions.complete_template(prompts.COMPLETE, session.goal)
        minutes = int(elapsed.total_seconds() // 60)
        await reply(
            interaction,
            f"✅ **Session Complete**\nGoal: **{session.goal}**\nTime spent: **{minutes} min**\n\n{praise}",
        )

    @guarded
    async def fail(self, interaction: discord.Interaction) -> None:
        session = self.sessions.remove(interaction.user.id)
        if session is None:
            raise SessionNotFound()

        await interaction.response.defer(thinking=True)
        verdict = await self.completions.complete_template(prompts.FAIL, session.goal)
        await reply(interaction, f"💀 **Session Failed**\nGoal: **{session.goal}**\n\n{verdict}")

    @guarded
    async def cant_focus(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(thinking=True)
        punishment = await self.completions.complete_template(prompts.CANT_FOCUS)
        await reply(interaction, f"🎯 **Focus Reset**\n{punishment}")

    @guarded
    async def status(self, interaction: discord.Interaction) -> None:
        session = self.sessions.get(interaction.user.id)
        if session is None:
            await reply(interaction, "📭 No active session.", ephemeral=True)
            return

        remaining = session.remaining(self.sessions.clock())
        await reply(
            interaction,
            f"⏳ **Active Session**\nGoal: **{session.goal}**\nTime remaining: **{format_remaining(remaining)}**",
            ephemeral=True,
        )
