"""Interactive reply sessions.

A session owns the buttons on one posted reply. Every button's custom id is an
ActionId: the session id zero-padded to a fixed width, a colon, and an action
tag. The bot's interaction handler publishes component presses to the
InteractionRouter, which hands each one to the queue of the session it
belongs to. The session consumes its queue in a single loop until an action
ends it or no press arrives within its timeout, at which point the buttons are
stripped from the message.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from enum import StrEnum
from typing import Any, NamedTuple

import discord
from pydantic import BaseModel, ConfigDict

from tabletbot.embeds import hide_bodies, interaction_err, page_embed

logger = logging.getLogger(__name__)

SESSION_ID_WIDTH = 20  # digits in a u64 snowflake


class Action(StrEnum):
    NEXT = "next"
    PREVIOUS = "prev"
    DELETE = "delete"
    HIDE_BODY = "hide_body"
    CONFIRM = "confirm"
    CANCEL = "cancel"


# Only the original author or members with MANAGE_MESSAGES may use these.
RESTRICTED_ACTIONS = frozenset({Action.DELETE, Action.HIDE_BODY, Action.CONFIRM, Action.CANCEL})


class SessionStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


class ActionId(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: int
    tag: str

    @classmethod
    def encode(cls, session_id: int, action: Action) -> str:
        return str(cls(session_id=session_id, tag=action.value))

    @classmethod
    def parse(cls, custom_id: str) -> "ActionId | None":
        """Decode a custom id, or None if it was not issued by a session."""
        session_part, sep, tag = custom_id.partition(":")
        if not sep or len(session_part) != SESSION_ID_WIDTH:
            return None
        if not (session_part.isascii() and session_part.isdigit()):
            return None
        return cls(session_id=int(session_part), tag=tag)

    @property
    def action(self) -> Action | None:
        try:
            return Action(self.tag)
        except ValueError:
            return None

    def __str__(self) -> str:
        return f"{self.session_id:0{SESSION_ID_WIDTH}d}:{self.tag}"


class ViewState(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int = 0
    page_count: int = 1
    body_hidden: bool = False
    status: SessionStatus = SessionStatus.ACTIVE


def transition(state: ViewState, action: Action) -> ViewState:
    match action:
        case Action.NEXT:
            return state.model_copy(update={"page": (state.page + 1) % state.page_count})
        case Action.PREVIOUS:
            return state.model_copy(update={"page": (state.page - 1) % state.page_count})
        case Action.HIDE_BODY:
            return state.model_copy(update={"body_hidden": True})
        case Action.DELETE | Action.CONFIRM | Action.CANCEL:
            return state.model_copy(update={"status": SessionStatus.COMPLETED})


class ControlEvent(NamedTuple):
    action_id: ActionId
    interaction: discord.Interaction


class InteractionRouter:
    """Routes component presses to the queue of the session that issued the button."""

    def __init__(self) -> None:
        self._queues: dict[int, asyncio.Queue[ControlEvent]] = {}

    @contextmanager
    def subscribe(self, session_id: int) -> Iterator[asyncio.Queue[ControlEvent]]:
        if session_id in self._queues:
            raise ValueError(f"Session {session_id} is already active")
        queue: asyncio.Queue[ControlEvent] = asyncio.Queue()
        self._queues[session_id] = queue
        try:
            yield queue
        finally:
            del self._queues[session_id]

    def publish(self, custom_id: str, interaction: discord.Interaction) -> bool:
        """Queue the press for its session. Returns False if no live session owns it."""
        action_id = ActionId.parse(custom_id)
        if action_id is None:
            return False
        queue = self._queues.get(action_id.session_id)
        if queue is None:
            return False
        queue.put_nowait(ControlEvent(action_id, interaction))
        return True

    def __contains__(self, session_id: int) -> bool:
        return session_id in self._queues


SendFn = Callable[..., Awaitable[discord.Message]]


class InteractiveSession(ABC):
    timeout: float = 60
    actions: frozenset[Action] = frozenset()

    def __init__(self, router: InteractionRouter, session_id: int, author_id: int) -> None:
        self.router = router
        self.session_id = session_id
        self.author_id = author_id
        self.state = self.initial_state()
        self.message: discord.Message | None = None
        self._view: discord.ui.View | None = None

    def initial_state(self) -> ViewState:
        return ViewState()

    @abstractmethod
    def render(self, state: ViewState) -> dict[str, Any]:
        """Message kwargs (content/embeds) for state, without components."""

    @abstractmethod
    def buttons(self, state: ViewState) -> list[discord.ui.Button]: ...

    @abstractmethod
    async def apply(self, interaction: discord.Interaction, action: Action, previous: ViewState) -> None:
        """Perform the side effects of action; self.state already holds the new state."""

    def action_id(self, action: Action) -> str:
        return ActionId.encode(self.session_id, action)

    def button(self, action: Action, **kwargs: Any) -> discord.ui.Button:
        return discord.ui.Button(custom_id=self.action_id(action), **kwargs)

    def controls(self, state: ViewState) -> discord.ui.View | None:
        """Build the view for state, retiring the previous one."""
        self._stop_view()
        buttons = self.buttons(state)
        if not buttons:
            return None
        # timeout=None: the session loop, not the view, decides when controls expire
        self._view = discord.ui.View(timeout=None)
        for button in buttons:
            self._view.add_item(button)
        return self._view

    def _stop_view(self) -> None:
        if self._view is not None:
            self._view.stop()
            self._view = None

    def authorized(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id == self.author_id:
            return True
        permissions = interaction.permissions
        return bool(permissions and permissions.manage_messages)

    async def _call(self, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except discord.HTTPException as exc:
            logger.warning("Discord call failed in session %d: %s", self.session_id, exc)

    async def attach(self, send: SendFn) -> SessionStatus:
        """Send the reply through send and process its controls until the session ends."""
        with self.router.subscribe(self.session_id) as events:
            view = self.controls(self.state)
            kwargs = self.render(self.state)
            if view is not None:
                kwargs["view"] = view
            try:
                self.message = await send(**kwargs)
                if view is None:
                    self.state = self.state.model_copy(update={"status": SessionStatus.COMPLETED})
                else:
                    await self._run(events)
            finally:
                self._stop_view()
        return self.state.status

    async def _run(self, events: asyncio.Queue[ControlEvent]) -> None:
        while self.state.status is SessionStatus.ACTIVE:
            try:
                event = await asyncio.wait_for(events.get(), timeout=self.timeout)
            except TimeoutError:
                self.state = self.state.model_copy(update={"status": SessionStatus.TIMED_OUT})
                await self.on_timeout()
                return
            await self.handle(event)

    async def handle(self, event: ControlEvent) -> None:
        action = event.action_id.action
        if action not in self.actions:
            logger.debug("Ignoring action '%s' for session %d", event.action_id.tag, self.session_id)
            return

        if action in RESTRICTED_ACTIONS and not self.authorized(event.interaction):
            await interaction_err(
                event.interaction,
                "Unable to use interaction because you are missing `MANAGE_MESSAGES`.",
            )
            return

        previous = self.state
        self.state = transition(previous, action)
        await self.apply(event.interaction, action, previous)

    async def on_timeout(self) -> None:
        self._stop_view()
        if self.message is not None:
            await self._call(self.message.edit(**self.render(self.state), view=None))


class IssueSession(InteractiveSession):
    """Delete and hide-body controls on a reference reply."""

    timeout = 60
    actions = frozenset({Action.DELETE, Action.HIDE_BODY})

    def __init__(self, router: InteractionRouter, session_id: int, author_id: int, embeds: list[discord.Embed]) -> None:
        super().__init__(router, session_id, author_id)
        self.embeds = embeds

    def render(self, state: ViewState) -> dict[str, Any]:
        return {"embeds": hide_bodies(self.embeds) if state.body_hidden else self.embeds}

    def buttons(self, state: ViewState) -> list[discord.ui.Button]:
        buttons = [self.button(Action.DELETE, label="delete", style=discord.ButtonStyle.danger)]
        if not state.body_hidden:
            buttons.append(self.button(Action.HIDE_BODY, label="hide body"))
        return buttons

    async def apply(self, interaction: discord.Interaction, action: Action, previous: ViewState) -> None:
        match action:
            case Action.DELETE:
                await self._call(interaction.response.defer())
                if self.message is not None:
                    await self._call(self.message.delete())
            case Action.HIDE_BODY if previous.body_hidden:
                await self._call(interaction.response.defer())
            case Action.HIDE_BODY:
                view = self.controls(self.state)
                await self._call(interaction.response.edit_message(**self.render(self.state), view=view))


class PaginatorSession(InteractiveSession):
    """Previous/next controls over a list split into embed pages."""

    timeout = 180
    actions = frozenset({Action.NEXT, Action.PREVIOUS})

    def __init__(
        self,
        router: InteractionRouter,
        session_id: int,
        author_id: int,
        title: str,
        pages: list[list[tuple[str, str, bool]]],
    ) -> None:
        if not pages:
            raise ValueError("PaginatorSession needs at least one page")
        self.title = title
        self.pages = pages
        super().__init__(router, session_id, author_id)

    def initial_state(self) -> ViewState:
        return ViewState(page_count=len(self.pages))

    def render(self, state: ViewState) -> dict[str, Any]:
        return {"embeds": [page_embed(self.title, self.pages, state.page)]}

    def buttons(self, state: ViewState) -> list[discord.ui.Button]:
        if state.page_count <= 1:
            return []
        return [self.button(Action.PREVIOUS, emoji="◀"), self.button(Action.NEXT, emoji="▶")]

    async def apply(self, interaction: discord.Interaction, action: Action, previous: ViewState) -> None:
        view = self.controls(self.state)
        await self._call(interaction.response.edit_message(**self.render(self.state), view=view))


class ConfirmSession(InteractiveSession):
    """Confirm/cancel dialog guarding a destructive command."""

    timeout = 60
    actions = frozenset({Action.CONFIRM, Action.CANCEL})

    def __init__(
        self,
        router: InteractionRouter,
        session_id: int,
        author_id: int,
        prompt: discord.Embed,
        confirm: Callable[[], discord.Embed],
        cancelled: discord.Embed,
    ) -> None:
        super().__init__(router, session_id, author_id)
        self.current = prompt
        self._confirm = confirm
        self._cancelled = cancelled

    def render(self, state: ViewState) -> dict[str, Any]:
        return {"embeds": [self.current]}

    def buttons(self, state: ViewState) -> list[discord.ui.Button]:
        return [
            self.button(Action.CONFIRM, label="Confirm", style=discord.ButtonStyle.success),
            self.button(Action.CANCEL, label="Cancel", style=discord.ButtonStyle.secondary),
        ]

    async def apply(self, interaction: discord.Interaction, action: Action, previous: ViewState) -> None:
        self.current = self._confirm() if action is Action.CONFIRM else self._cancelled
        self._stop_view()
        await self._call(interaction.response.edit_message(**self.render(self.state), view=None))
