"""Session state machine.

Every transition is a pure function ``(session, ...) -> session``: it returns
a new :class:`Session` and never mutates its input. A transition invoked in a
phase that does not allow it returns the session unchanged (the very same
object), so duplicate or late UI events (a timer tick racing a submission,
a double click on "next") are harmless. Callers can detect a no-op with
``new is old``.

Randomness (pins, bot answers, bot avatars) comes from an injected
``random.Random`` so tests can seed it.
"""

from __future__ import annotations

import logging
import random
import uuid
from typing import List, Optional

from .catalog import AVATAR_COLORS, AVATARS, BOT_NAMES
from .evaluator import Answer, evaluate_answer
from .models import TIMER_DURATION, GamePhase, Player, RoundConfig, Session
from .scoring import (
    BOT_ACCURACY_ON_SUBMIT,
    BOT_ACCURACY_ON_TIMEOUT,
    apply_result,
    human_points,
    resolve_bots,
)

logger = logging.getLogger(__name__)

PIN_RANGE = (1000, 9999)

# Phases in which the host is still shaping the content set.
SETUP_PHASES = (GamePhase.START, GamePhase.HOST_CONFIG)


def _update(s: Session, **changes) -> Session:
    return s.model_copy(update=changes)


# -- setup -----------------------------------------------------------------


def init_host(s: Session) -> Session:
    if s.phase != GamePhase.START:
        return s
    return _update(s, is_host=True, phase=GamePhase.HOST_CONFIG)


def init_join(s: Session) -> Session:
    if s.phase != GamePhase.START:
        return s
    return _update(s, is_host=False, phase=GamePhase.JOIN)


def update_config(s: Session, rounds: int, questions_per_round: int) -> Session:
    if s.phase not in SETUP_PHASES or rounds < 1 or questions_per_round < 1:
        return s
    return _update(s, total_rounds=rounds, questions_per_round=questions_per_round)


def begin_loading(s: Session, rounds: int, questions_per_round: int, generation_id: str) -> Session:
    """Mark a content generation as in flight.

    Rejected (unchanged) while another generation is loading, outside the
    host config screen, or for non-positive sizes. ``generation_id`` tags the
    request; only a result carrying the same id may land.
    """
    if s.loading or s.phase != GamePhase.HOST_CONFIG or rounds < 1 or questions_per_round < 1:
        return s
    return _update(
        s,
        loading=True,
        generation_id=generation_id,
        error=None,
        total_rounds=rounds,
        questions_per_round=questions_per_round,
    )


def _awaiting(s: Session, generation_id: str) -> bool:
    return s.loading and s.phase == GamePhase.HOST_CONFIG and s.generation_id == generation_id


def content_ready(s: Session, rounds_config: List[RoundConfig], generation_id: str) -> Session:
    if not _awaiting(s, generation_id) or not rounds_config:
        return s
    return _to_review(s, rounds_config)


def content_imported(s: Session, rounds_config: List[RoundConfig]) -> Session:
    if s.loading or s.phase != GamePhase.HOST_CONFIG or not rounds_config:
        return s
    return _to_review(s, rounds_config)


def _to_review(s: Session, rounds_config: List[RoundConfig]) -> Session:
    return _update(
        s,
        loading=False,
        generation_id=None,
        error=None,
        rounds_config=rounds_config,
        total_rounds=len(rounds_config),
        questions_per_round=len(rounds_config[0].questions),
        phase=GamePhase.REVIEW,
    )


def content_failed(s: Session, message: str, generation_id: str) -> Session:
    if not _awaiting(s, generation_id):
        return s
    return _update(s, loading=False, generation_id=None, error=message)


def import_failed(s: Session, message: str) -> Session:
    """Report a rejected import; an in-flight generation is left alone."""
    if s.loading or s.phase != GamePhase.HOST_CONFIG:
        return s
    return _update(s, error=message)


def replace_rounds(s: Session, rounds_config: List[RoundConfig]) -> Session:
    """Swap in an edited plan of the same shape (single question regeneration)."""
    if s.phase != GamePhase.REVIEW or len(rounds_config) != len(s.rounds_config):
        return s
    return _update(s, rounds_config=rounds_config)


def back_to_config(s: Session) -> Session:
    if s.phase != GamePhase.REVIEW:
        return s
    return _update(s, rounds_config=[], error=None, phase=GamePhase.HOST_CONFIG)


def confirm_content(s: Session, rng: random.Random) -> Session:
    if s.phase != GamePhase.REVIEW or not s.rounds_config:
        return s
    pin = s.game_pin or str(rng.randint(*PIN_RANGE))
    logger.info("Session %s open with pin %s", s.id, pin)
    return _update(s, game_pin=pin, phase=GamePhase.LOBBY)


# -- roster ----------------------------------------------------------------


def join(s: Session, player: Player) -> Session:
    """Add the local human player and make them the viewer."""
    if s.current_player_id is not None:
        return s
    if s.phase == GamePhase.JOIN or (s.phase == GamePhase.LOBBY and not s.is_host):
        player = player.model_copy(update={"score": 0, "streak": 0, "is_bot": False, "is_host": False})
        return _update(
            s,
            players=[*s.players, player],
            current_player_id=player.id,
            phase=GamePhase.LOBBY,
        )
    return s


def host_join_as_player(s: Session, player: Player) -> Session:
    """Let a spectating host take a seat as a player."""
    if not s.is_host or s.current_player_id is not None or s.phase != GamePhase.LOBBY:
        return s
    player = player.model_copy(
        update={
            "name": player.name or "Host",
            "avatar": player.avatar or AVATARS[0],
            "score": 0,
            "streak": 0,
            "is_bot": False,
            "is_host": True,
        }
    )
    return _update(s, players=[*s.players, player], current_player_id=player.id)


def add_bot(s: Session, rng: random.Random) -> Session:
    if s.phase != GamePhase.LOBBY:
        return s
    taken = {p.name for p in s.bots}
    name = next((n for n in BOT_NAMES if n not in taken), None)
    if name is None:
        return s
    bot = Player(
        id=f"bot-{uuid.uuid4().hex[:8]}",
        name=name,
        avatar=rng.choice(AVATARS),
        color=rng.choice(AVATAR_COLORS),
        is_bot=True,
    )
    return _update(s, players=[*s.players, bot])


# -- play ------------------------------------------------------------------


def start_game(s: Session) -> Session:
    if s.phase != GamePhase.LOBBY or not s.rounds_config:
        return s
    return _update(
        s,
        current_round=1,
        current_question_index=0,
        questions_queue=[],
        current_question=None,
        selected_category=None,
        phase=GamePhase.CATEGORY_SELECT,
    )


def current_round_config(s: Session) -> Optional[RoundConfig]:
    idx = s.current_round - 1
    return s.rounds_config[idx] if 0 <= idx < len(s.rounds_config) else None


def select_category(s: Session, category_id: Optional[str], duration: int = TIMER_DURATION) -> Session:
    """Load the current round's questions and start the clock.

    The round's category was fixed when content was generated; the wheel's
    pick is informational only and never changes which questions load.
    """
    if s.phase != GamePhase.CATEGORY_SELECT:
        return s
    rc = current_round_config(s)
    if rc is None or not rc.questions:
        logger.error("No config for round %d in session %s", s.current_round, s.id)
        return s
    if category_id and category_id != rc.category.id:
        logger.warning(
            "Category %s selected but round %d is %s; using %s",
            category_id,
            s.current_round,
            rc.category.id,
            rc.category.id,
        )
    return _update(
        s,
        questions_queue=list(rc.questions),
        current_question_index=0,
        current_question=rc.questions[0],
        selected_category=rc.category.id,
        time_left=duration,
        loading=False,
        phase=GamePhase.PLAYING,
    )


def submit_answer(s: Session, answer: Answer, rng: random.Random) -> Session:
    """Resolve the current question on the local player's answer.

    A spectator (no player identity) cannot submit; the question then
    resolves on the clock instead.
    """
    if s.phase != GamePhase.PLAYING or s.current_question is None:
        return s
    me = s.player(s.current_player_id)
    if me is None:
        return s

    is_correct = evaluate_answer(s.current_question, answer)
    points = human_points(is_correct, s.time_left)
    players = [
        apply_result(p, is_correct, points) if p.id == me.id else p for p in s.players
    ]
    players = resolve_bots(players, BOT_ACCURACY_ON_SUBMIT, rng)
    return _update(s, players=players, phase=GamePhase.ROUND_RESULT)


def timer_expired(s: Session, rng: random.Random) -> Session:
    if s.phase != GamePhase.PLAYING or s.time_left > 0:
        return s
    players = [
        apply_result(p, False, 0) if p.id == s.current_player_id and not p.is_bot else p
        for p in s.players
    ]
    players = resolve_bots(players, BOT_ACCURACY_ON_TIMEOUT, rng)
    return _update(s, players=players, phase=GamePhase.ROUND_RESULT)


def tick(s: Session, rng: random.Random) -> Session:
    """Advance the question clock by one second, resolving it at zero."""
    if s.phase != GamePhase.PLAYING:
        return s
    s = _update(s, time_left=max(s.time_left - 1, 0))
    if s.time_left == 0:
        return timer_expired(s, rng)
    return s


def next_question(s: Session, duration: int = TIMER_DURATION) -> Session:
    if s.phase != GamePhase.ROUND_RESULT:
        return s
    nxt = s.current_question_index + 1
    if nxt < len(s.questions_queue):
        return _update(
            s,
            current_question_index=nxt,
            current_question=s.questions_queue[nxt],
            time_left=duration,
            phase=GamePhase.PLAYING,
        )
    return _update(s, phase=GamePhase.ROUND_END)


def next_round(s: Session) -> Session:
    if s.phase != GamePhase.ROUND_END:
        return s
    if s.current_round < s.total_rounds:
        return _update(
            s,
            current_round=s.current_round + 1,
            current_question_index=0,
            current_question=None,
            questions_queue=[],
            selected_category=None,
            phase=GamePhase.CATEGORY_SELECT,
        )
    return _update(s, phase=GamePhase.GAME_OVER)


def restart(s: Session) -> Session:
    """Back to the start screen with an empty roster and no content."""
    return Session(id=s.id, created_at=s.created_at)
