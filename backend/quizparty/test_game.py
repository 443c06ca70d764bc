from __future__ import annotations

import asyncio
import random
import uuid
from unittest import IsolatedAsyncioTestCase, mock

import httpx

from . import game as game_module
from .events import event_store
from .game import GENERATION_ERROR, GameController, SessionNotFound
from .models import GamePhase
from .test_content import ExplodingProvider, StaticProvider
from .test_transfer import SAMPLE
from .transfer import ImportFormatError


class GatedProvider(StaticProvider):
    """Blocks every call until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def generate(self, category: str, count: int):
        await self.release.wait()
        return await super().generate(category, count)


class ControllerTestCase(IsolatedAsyncioTestCase):
    auto_timers = False

    async def asyncSetUp(self):
        self.provider = StaticProvider()
        self.controller = GameController(provider=self.provider, rng=random.Random(4), auto_timers=self.auto_timers)
        self.sid = f"test-{uuid.uuid4().hex[:8]}"
        await self.controller.create_session(self.sid)

    async def asyncTearDown(self):
        await self.controller.restart(self.sid)

    async def lobby(self, rounds: int = 2, per_round: int = 2):
        c = self.controller
        await c.init_host(self.sid)
        await c.generate_content(self.sid, rounds, per_round)
        return await c.confirm_content(self.sid)


class SetupFlowTests(ControllerTestCase):
    async def test_unknown_session(self):
        with self.assertRaises(SessionNotFound):
            await self.controller.start_game("missing")

    async def test_generate_then_confirm(self):
        await self.controller.init_host(self.sid)
        s = await self.controller.generate_content(self.sid, 3, 2)

        self.assertEqual(s.phase, GamePhase.REVIEW)
        self.assertFalse(s.loading)
        self.assertEqual(len(s.rounds_config), 3)
        self.assertEqual(len(self.provider.calls), 3)

        s = await self.controller.confirm_content(self.sid)
        self.assertEqual(s.phase, GamePhase.LOBBY)
        self.assertRegex(s.game_pin, r"^[1-9]\d{3}$")

    async def test_generation_failure_sets_error(self):
        self.controller.provider = ExplodingProvider()
        await self.controller.init_host(self.sid)
        s = await self.controller.generate_content(self.sid, 2, 2)

        self.assertEqual(s.phase, GamePhase.HOST_CONFIG)
        self.assertFalse(s.loading)
        self.assertEqual(s.error, GENERATION_ERROR)
        self.assertEqual(s.rounds_config, [])

    async def test_duplicate_generation_is_ignored_while_loading(self):
        gated = GatedProvider()
        self.controller.provider = gated
        await self.controller.init_host(self.sid)

        first = asyncio.create_task(self.controller.generate_content(self.sid, 2, 1))
        while not (await self.controller.require_session(self.sid)).loading:
            await asyncio.sleep(0)
        second = await self.controller.generate_content(self.sid, 5, 5)
        self.assertTrue(second.loading)

        gated.release.set()
        s = await first
        self.assertEqual(s.phase, GamePhase.REVIEW)
        self.assertEqual(len(s.rounds_config), 2)
        self.assertEqual(len(gated.calls), 2)

    async def test_generation_from_before_restart_is_discarded(self):
        stale, fresh = GatedProvider(), GatedProvider()
        self.controller.provider = stale
        await self.controller.init_host(self.sid)
        first = asyncio.create_task(self.controller.generate_content(self.sid, 4, 1))
        while not (await self.controller.require_session(self.sid)).loading:
            await asyncio.sleep(0)

        await self.controller.restart(self.sid)
        await self.controller.init_host(self.sid)
        self.controller.provider = fresh
        second = asyncio.create_task(self.controller.generate_content(self.sid, 2, 3))
        while not (await self.controller.require_session(self.sid)).loading:
            await asyncio.sleep(0)

        stale.release.set()
        s = await first
        self.assertEqual(s.phase, GamePhase.HOST_CONFIG)
        self.assertTrue(s.loading)

        fresh.release.set()
        s = await second
        self.assertEqual(s.phase, GamePhase.REVIEW)
        self.assertEqual(len(s.rounds_config), 2)
        self.assertTrue(all(len(rc.questions) == 3 for rc in s.rounds_config))

    async def test_import_from_sheet(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, text=SAMPLE)

        self.controller.http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.addAsyncCleanup(self.controller.http_client.aclose)
        await self.controller.init_host(self.sid)
        s = await self.controller.import_sheet(
            self.sid, "https://docs.google.com/spreadsheets/d/abc-123_X/edit#gid=42"
        )

        self.assertEqual(seen, ["https://docs.google.com/spreadsheets/d/abc-123_X/export?format=csv&gid=42"])
        self.assertEqual(s.phase, GamePhase.REVIEW)
        self.assertEqual(s.total_rounds, 4)

    async def test_sheet_fetch_failure_reports_error(self):
        self.controller.http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(403))
        )
        self.addAsyncCleanup(self.controller.http_client.aclose)
        await self.controller.init_host(self.sid)

        with self.assertRaisesRegex(ImportFormatError, "Status: 403"):
            await self.controller.import_sheet(self.sid, "https://docs.google.com/spreadsheets/d/abc/edit")
        s = await self.controller.require_session(self.sid)
        self.assertEqual(s.phase, GamePhase.HOST_CONFIG)
        self.assertIn("Status: 403", s.error)

    async def test_import_builds_equal_sized_rounds(self):
        await self.controller.init_host(self.sid)
        s = await self.controller.import_content(self.sid, SAMPLE)

        self.assertEqual(s.phase, GamePhase.REVIEW)
        self.assertEqual(s.total_rounds, 4)
        self.assertEqual(s.questions_per_round, 1)
        self.assertTrue(all(len(rc.questions) == 1 for rc in s.rounds_config))

        csv_text = await self.controller.export_content(self.sid)
        self.assertTrue(csv_text.startswith("type,category,question"))

    async def test_bad_import_reports_error_and_commits_nothing(self):
        await self.controller.init_host(self.sid)
        with self.assertRaises(ImportFormatError):
            await self.controller.import_content(self.sid, "category,question\nArt,Who?\n")

        s = await self.controller.require_session(self.sid)
        self.assertEqual(s.phase, GamePhase.HOST_CONFIG)
        self.assertIn("Missing required column", s.error)
        self.assertEqual(s.rounds_config, [])

    async def test_regenerate_in_review(self):
        await self.controller.init_host(self.sid)
        before = await self.controller.generate_content(self.sid, 2, 2)
        cat = before.rounds_config[1].category.id

        after = await self.controller.regenerate_question(self.sid, cat, 0)
        self.assertNotEqual(after.rounds_config[1].questions[0].id, before.rounds_config[1].questions[0].id)
        self.assertEqual(after.rounds_config[0], before.rounds_config[0])

        self.controller.provider = ExplodingProvider()
        unchanged = await self.controller.regenerate_question(self.sid, cat, 1)
        self.assertEqual(unchanged.rounds_config, after.rounds_config)


class RosterFlowTests(ControllerTestCase):
    async def test_join_validates_name_and_pin(self):
        await self.controller.init_join(self.sid)
        with self.assertRaises(ValueError):
            await self.controller.join(self.sid, "   ", "🐼")

        s = await self.controller.join(self.sid, " Ana ", "🐼", pin="1234")
        self.assertEqual(s.phase, GamePhase.LOBBY)
        self.assertEqual(s.player(s.current_player_id).name, "Ana")

    async def test_wrong_pin_rejected(self):
        s = await self.lobby()
        wrong = "1000" if s.game_pin != "1000" else "1001"
        with self.assertRaises(ValueError):
            await self.controller.join(self.sid, "Ana", "🐼", pin=wrong)

    async def test_leaderboard_sorted_by_score(self):
        await self.lobby(rounds=1, per_round=1)
        await self.controller.host_join_as_player(self.sid, "Ana", "🐼")
        await self.controller.add_bot(self.sid)
        await self.controller.start_game(self.sid)
        await self.controller.select_category(self.sid, None)
        await self.controller.submit_answer(self.sid, 0)

        board = await self.controller.leaderboard(self.sid)
        self.assertEqual([p.score for p in board], sorted((p.score for p in board), reverse=True))
        self.assertEqual(board[0].name, "Ana")


class PlayFlowTests(ControllerTestCase):
    async def test_ticks_drive_the_clock_and_ignore_stale_questions(self):
        await self.lobby(rounds=1, per_round=2)
        await self.controller.host_join_as_player(self.sid, "Ana", "🐼")
        await self.controller.start_game(self.sid)
        s = await self.controller.select_category(self.sid, None)
        full = s.time_left

        s = await self.controller.tick(self.sid, expected_round=1, expected_index=0)
        self.assertEqual(s.time_left, full - 1)
        s = await self.controller.tick(self.sid, expected_round=1, expected_index=1)
        self.assertEqual(s.time_left, full - 1)

        for _ in range(full - 1):
            s = await self.controller.tick(self.sid, 1, 0)
        self.assertEqual(s.phase, GamePhase.ROUND_RESULT)
        me = s.player(s.current_player_id)
        self.assertEqual((me.score, me.streak, me.last_answer_correct), (0, 0, False))

        # late submission after the clock resolved the question
        late = await self.controller.submit_answer(self.sid, 0)
        self.assertEqual(late, s)

    async def test_events_follow_phase_changes(self):
        await self.lobby(rounds=1, per_round=1)
        await self.controller.start_game(self.sid)

        events = await event_store.list(self.sid)
        types = [e["payload"]["type"] for e in events]
        self.assertEqual(types[0], "session_reset")
        phases = [e["payload"]["phase"] for e in events if e["payload"]["type"] == "phase"]
        self.assertEqual(phases, ["HOST_CONFIG", "REVIEW", "LOBBY", "CATEGORY_SELECT"])

        seqs = [e["seq"] for e in events]
        self.assertEqual(seqs, sorted(seqs))
        newer = await event_store.list(self.sid, after=seqs[-2])
        self.assertEqual([e["seq"] for e in newer], [seqs[-1]])

    async def test_restart_clears_everything(self):
        await self.lobby()
        await self.controller.add_bot(self.sid)
        s = await self.controller.restart(self.sid)
        again = await self.controller.restart(self.sid)

        self.assertEqual(s, again)
        self.assertEqual(s.phase, GamePhase.START)
        self.assertEqual(s.players, [])
        self.assertIsNone(s.game_pin)


class TimerTests(ControllerTestCase):
    auto_timers = True

    async def asyncSetUp(self):
        patcher = mock.patch.multiple(
            game_module.settings,
            TICK_INTERVAL_SEC=0.01,
            BOT_JOIN_INTERVAL_SEC=0.01,
            TIMER_DURATION_SEC=3,
        )
        patcher.start()
        self.addCleanup(patcher.stop)
        await super().asyncSetUp()

    async def wait_for(self, predicate, timeout: float = 2.0):
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            s = await self.controller.require_session(self.sid)
            if predicate(s) or asyncio.get_running_loop().time() > deadline:
                return s
            await asyncio.sleep(0.01)

    async def test_countdown_resolves_question(self):
        await self.lobby(rounds=1, per_round=1)
        await self.controller.host_join_as_player(self.sid, "Ana", "🐼")
        await self.controller.start_game(self.sid)
        await self.controller.select_category(self.sid, None)

        s = await self.wait_for(lambda s: s.phase == GamePhase.ROUND_RESULT)
        self.assertEqual(s.phase, GamePhase.ROUND_RESULT)
        self.assertEqual(s.time_left, 0)
        self.assertFalse(s.player(s.current_player_id).last_answer_correct)

        await asyncio.sleep(0.05)
        self.assertNotIn(self.sid, self.controller._countdowns)
        self.assertNotIn(self.sid, self.controller._countdown_keys)

    async def test_bots_fill_a_thin_lobby_then_stop(self):
        await self.lobby()
        s = await self.wait_for(lambda s: len(s.players) >= 3)
        await asyncio.sleep(0.1)
        s = await self.controller.require_session(self.sid)

        self.assertEqual(len(s.players), 3)
        self.assertTrue(all(p.is_bot for p in s.players))
