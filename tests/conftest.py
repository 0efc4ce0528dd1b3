"""Shared fakes for discord interactions, the OpenAI client and the clock."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from brutal_coach.completion import CompletionClient
from brutal_coach.processor import CommandProcessor
from brutal_coach.sessions import SessionStore


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeResponse:
    """Mimics InteractionResponse: the first send or defer marks it done."""

    def __init__(self) -> None:
        self._done = False
        self.send_message = AsyncMock(side_effect=self._mark_done)
        self.defer = AsyncMock(side_effect=self._mark_done)

    async def _mark_done(self, *args, **kwargs) -> None:
        if self._done:
            raise RuntimeError("interaction already responded to")
        self._done = True

    def is_done(self) -> bool:
        return self._done


class FakeInteraction:
    def __init__(self, user_id: int = 1001) -> None:
        self.user = SimpleNamespace(id=user_id)
        self.response = FakeResponse()
        self.edit_original_response = AsyncMock()
        self.followup = SimpleNamespace(send=AsyncMock())

    def replies(self) -> list[tuple[str, bool]]:
        """All (content, ephemeral) pairs sent through either reply path."""
        sent = [
            (call.args[0], call.kwargs.get("ephemeral", False))
            for call in self.response.send_message.await_args_list
        ]
        sent += [(call.kwargs["content"], False) for call in self.edit_original_response.await_args_list]
        return sent

    @property
    def content(self) -> str:
        replies = self.replies()
        assert len(replies) == 1, f"expected exactly one reply, got {replies!r}"
        return replies[0][0]

    @property
    def ephemeral(self) -> bool:
        return self.replies()[0][1]


def _chat_response(text: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


@pytest.fixture
def chat_response():
    """Factory for chat.completions.create results carrying one choice."""
    return _chat_response


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> SessionStore:
    return SessionStore(clock=clock)


@pytest.fixture
def openai_client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_chat_response("Generated text."))
    return client


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def completions(openai_client: MagicMock, sleep: AsyncMock) -> CompletionClient:
    return CompletionClient(openai_client, "test-model", sleep=sleep)


@pytest.fixture
def processor(completions: CompletionClient, store: SessionStore) -> CommandProcessor:
    return CommandProcessor(completions, store)


@pytest.fixture
def make_interaction():
    return FakeInteraction
