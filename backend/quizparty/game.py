from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from . import machine
from .content import build_rounds_config, regenerate_question
from .db import db, settings
from .evaluator import Answer
from .events import event_store
from .models import GamePhase, Player, RoundConfig, Session
from .provider import QuestionProvider
from .transfer import (
    CategoryContent,
    ImportFormatError,
    export_rounds_to_csv,
    fetch_google_sheet,
    parse_import_data,
)
from .utils import sort_leaderboard

logger = logging.getLogger(__name__)

GENERATION_ERROR = "Failed to generate game content."


class SessionNotFound(LookupError):
    pass


def rounds_from_import(grouped: Dict[str, CategoryContent]) -> List[RoundConfig]:
    """One round per imported category, trimmed to the shortest category."""
    per_round = min(len(c.questions) for c in grouped.values())
    return [
        RoundConfig(round_number=n, category=c.category, questions=c.questions[:per_round])
        for n, c in enumerate(grouped.values(), start=1)
    ]


class GameController:
    """Owns every session and drives it through the state machine.

    Each transition is read-reduce-save under a per-session lock. While a
    question is being played a countdown task feeds one tick per
    ``TICK_INTERVAL_SEC``; while a host waits in a thin lobby a ticker adds
    bots. Both tasks re-check phase and question identity whenever they fire,
    so a late fire after the phase moved on changes nothing.

    With ``auto_timers=False`` no background tasks are started and callers
    drive the clock through :meth:`tick`.
    """

    def __init__(
        self,
        provider: Optional[QuestionProvider] = None,
        rng: Optional[random.Random] = None,
        auto_timers: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.locks: Dict[str, asyncio.Lock] = {}
        self.provider = provider or QuestionProvider()
        self.http_client = http_client
        self.rng = rng or random.Random()
        self.auto_timers = auto_timers
        self._countdowns: Dict[str, asyncio.Task] = {}
        self._countdown_keys: Dict[str, Tuple[int, int]] = {}
        self._bot_tickers: Dict[str, asyncio.Task] = {}

    def _lock(self, session_id: str) -> asyncio.Lock:
        self.locks.setdefault(session_id, asyncio.Lock())
        return self.locks[session_id]

    async def get_session(self, session_id: str) -> Session | None:
        doc = await db.sessions.find_one({"id": session_id})
        return Session(**doc) if doc else None

    async def save_session(self, s: Session):
        await db.sessions.update_one({"id": s.id}, {"$set": s.model_dump()}, upsert=True)

    async def require_session(self, session_id: str) -> Session:
        s = await self.get_session(session_id)
        if s is None:
            raise SessionNotFound(session_id)
        return s

    async def create_session(self, session_id: str) -> Session:
        async with self._lock(session_id):
            s = await self.get_session(session_id)
            if s is not None:
                return s
            s = Session(id=session_id)
            await self.save_session(s)
        await event_store.reset(session_id)
        return s

    async def _apply(self, session_id: str, reducer: Callable[..., Session], *args: Any) -> Tuple[Session, bool]:
        async with self._lock(session_id):
            before = await self.require_session(session_id)
            after = reducer(before, *args)
            if after is before:
                logger.debug("%s ignored in phase %s", reducer.__name__, before.phase.value)
                return before, False
            await self.save_session(after)

        if after.phase != before.phase:
            logger.info("Session %s: %s -> %s", session_id, before.phase.value, after.phase.value)
        await self._publish(before, after)
        self._sync_timers(after)
        return after, True

    async def _transition(self, session_id: str, reducer: Callable[..., Session], *args: Any) -> Session:
        s, _ = await self._apply(session_id, reducer, *args)
        return s

    # -- setup -------------------------------------------------------------

    async def init_host(self, session_id: str) -> Session:
        return await self._transition(session_id, machine.init_host)

    async def init_join(self, session_id: str) -> Session:
        return await self._transition(session_id, machine.init_join)

    async def update_config(self, session_id: str, rounds: int, questions_per_round: int) -> Session:
        return await self._transition(session_id, machine.update_config, rounds, questions_per_round)

    async def generate_content(self, session_id: str, rounds: int, questions_per_round: int) -> Session:
        generation_id = uuid.uuid4().hex
        s, started = await self._apply(
            session_id, machine.begin_loading, rounds, questions_per_round, generation_id
        )
        if not started:
            return s

        # A restart or a newer request while the provider works leaves this
        # result stale; the reducers drop it on the id mismatch.
        try:
            plan = await build_rounds_config(self.provider, rounds, questions_per_round, self.rng)
        except Exception:
            logger.exception("Generating content for session %s failed", session_id)
            return await self._transition(session_id, machine.content_failed, GENERATION_ERROR, generation_id)
        return await self._transition(session_id, machine.content_ready, plan, generation_id)

    async def import_content(self, session_id: str, csv_data: str) -> Session:
        try:
            plan = rounds_from_import(parse_import_data(csv_data))
        except ImportFormatError as exc:
            await self._transition(session_id, machine.import_failed, str(exc))
            raise
        return await self._transition(session_id, machine.content_imported, plan)

    async def import_sheet(self, session_id: str, url: str) -> Session:
        """Import questions from a public Google Sheet."""
        await self.require_session(session_id)
        try:
            csv_data = await fetch_google_sheet(url, client=self.http_client)
        except ImportFormatError as exc:
            await self._transition(session_id, machine.import_failed, str(exc))
            raise
        return await self.import_content(session_id, csv_data)

    async def export_content(self, session_id: str) -> str:
        s = await self.require_session(session_id)
        return export_rounds_to_csv(s.rounds_config)

    async def regenerate_question(self, session_id: str, category_id: str, index: int) -> Session:
        s = await self.require_session(session_id)
        if s.phase != GamePhase.REVIEW:
            return s
        updated = await regenerate_question(s.rounds_config, self.provider, category_id, index)
        if updated is None:
            return s

        def _swap(current: Session, plan: List[RoundConfig]) -> Session:
            # The plan may have been replaced while the provider was working.
            if current.rounds_config != s.rounds_config:
                logger.warning("Regenerate: plan changed for session %s, dropping result", session_id)
                return current
            return machine.replace_rounds(current, plan)

        return await self._transition(session_id, _swap, updated)

    async def back_to_config(self, session_id: str) -> Session:
        return await self._transition(session_id, machine.back_to_config)

    async def confirm_content(self, session_id: str) -> Session:
        return await self._transition(session_id, machine.confirm_content, self.rng)

    # -- roster ------------------------------------------------------------

    async def join(
        self,
        session_id: str,
        name: str,
        avatar: str,
        color: str = "",
        accessory: str = "",
        pin: Optional[str] = None,
    ) -> Session:
        name = name.strip()
        if not name:
            raise ValueError("A player name is required")
        s = await self.require_session(session_id)
        if pin is not None and s.game_pin is not None and pin != s.game_pin:
            raise ValueError("Invalid game PIN")

        player = Player(id=f"user-{uuid.uuid4().hex[:8]}", name=name, avatar=avatar, color=color, accessory=accessory)
        return await self._transition(session_id, machine.join, player)

    async def host_join_as_player(
        self, session_id: str, name: str = "", avatar: str = "", color: str = "", accessory: str = ""
    ) -> Session:
        player = Player(
            id=f"host-{uuid.uuid4().hex[:8]}",
            name=name.strip(),
            avatar=avatar,
            color=color,
            accessory=accessory,
        )
        return await self._transition(session_id, machine.host_join_as_player, player)

    async def add_bot(self, session_id: str) -> Session:
        return await self._transition(session_id, machine.add_bot, self.rng)

    # -- play --------------------------------------------------------------

    async def start_game(self, session_id: str) -> Session:
        return await self._transition(session_id, machine.start_game)

    async def select_category(self, session_id: str, category_id: Optional[str] = None) -> Session:
        return await self._transition(
            session_id, machine.select_category, category_id, settings.TIMER_DURATION_SEC
        )

    async def submit_answer(self, session_id: str, answer: Answer) -> Session:
        return await self._transition(session_id, machine.submit_answer, answer, self.rng)

    async def tick(
        self,
        session_id: str,
        expected_round: Optional[int] = None,
        expected_index: Optional[int] = None,
    ) -> Session:
        """One second of question clock.

        When ``expected_round``/``expected_index`` are given the tick only
        applies to that question; a tick meant for an earlier question is
        dropped.
        """

        def _tick(s: Session, rng: random.Random) -> Session:
            if expected_round is not None and s.current_round != expected_round:
                return s
            if expected_index is not None and s.current_question_index != expected_index:
                return s
            return machine.tick(s, rng)

        _tick.__name__ = "tick"
        return await self._transition(session_id, _tick, self.rng)

    async def next_question(self, session_id: str) -> Session:
        return await self._transition(session_id, machine.next_question, settings.TIMER_DURATION_SEC)

    async def next_round(self, session_id: str) -> Session:
        return await self._transition(session_id, machine.next_round)

    async def restart(self, session_id: str) -> Session:
        self._stop_countdown(session_id)
        self._cancel(self._bot_tickers, session_id)
        async with self._lock(session_id):
            s = machine.restart(await self.require_session(session_id))
            await self.save_session(s)
        await event_store.reset(session_id)
        await self._publish_players(session_id, [])
        return s

    async def leaderboard(self, session_id: str) -> List[Player]:
        s = await self.require_session(session_id)
        return sort_leaderboard(s.players)

    # -- events ------------------------------------------------------------

    async def _publish(self, before: Session, after: Session):
        if after.phase != before.phase:
            await event_store.append(
                after.id,
                {
                    "type": "phase",
                    "phase": after.phase.value,
                    "current_round": after.current_round,
                    "total_rounds": after.total_rounds,
                    "current_question_index": after.current_question_index,
                    "time_left": after.time_left,
                    "error": after.error,
                },
            )
        elif after.time_left != before.time_left:
            await event_store.append(after.id, {"type": "tick", "time_left": after.time_left})

        if after.players != before.players:
            await self._publish_players(after.id, after.players)

    async def _publish_players(self, session_id: str, players: List[Player]):
        await event_store.append(
            session_id,
            {
                "type": "players_update",
                "players": [p.model_dump() for p in players],
            },
        )

    # -- timers ------------------------------------------------------------

    def _sync_timers(self, s: Session):
        if not self.auto_timers:
            return

        if s.phase == GamePhase.PLAYING:
            key = (s.current_round, s.current_question_index)
            task = self._countdowns.get(s.id)
            if task is None or task.done() or self._countdown_keys.get(s.id) != key:
                self._cancel(self._countdowns, s.id)
                self._countdowns[s.id] = asyncio.create_task(self._run_countdown(s.id, *key))
                self._countdown_keys[s.id] = key
        else:
            self._stop_countdown(s.id)

        wants_bots = s.phase == GamePhase.LOBBY and s.is_host and len(s.players) < settings.MIN_LOBBY_PLAYERS
        if wants_bots:
            task = self._bot_tickers.get(s.id)
            if task is None or task.done():
                self._bot_tickers[s.id] = asyncio.create_task(self._run_bot_ticker(s.id))
        else:
            self._cancel(self._bot_tickers, s.id)

    @staticmethod
    def _cancel(tasks: Dict[str, asyncio.Task], session_id: str):
        task = tasks.pop(session_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _stop_countdown(self, session_id: str):
        self._cancel(self._countdowns, session_id)
        self._countdown_keys.pop(session_id, None)

    async def _run_countdown(self, session_id: str, round_no: int, index: int):
        while True:
            await asyncio.sleep(settings.TICK_INTERVAL_SEC)
            s = await self.tick(session_id, round_no, index)
            if (
                s.phase != GamePhase.PLAYING
                or s.current_round != round_no
                or s.current_question_index != index
            ):
                return

    async def _run_bot_ticker(self, session_id: str):
        while True:
            await asyncio.sleep(settings.BOT_JOIN_INTERVAL_SEC)
            s = await self.get_session(session_id)
            if (
                s is None
                or s.phase != GamePhase.LOBBY
                or not s.is_host
                or len(s.players) >= settings.MIN_LOBBY_PLAYERS
            ):
                return
            s, added = await self._apply(session_id, machine.add_bot, self.rng)
            if not added:
                return


controller = GameController()
