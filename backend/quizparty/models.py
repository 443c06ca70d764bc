from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

TIMER_DURATION = 15  # seconds per question


class GamePhase(str, Enum):
    START = "START"
    HOST_CONFIG = "HOST_CONFIG"
    REVIEW = "REVIEW"
    JOIN = "JOIN"
    LOBBY = "LOBBY"
    CATEGORY_SELECT = "CATEGORY_SELECT"
    PLAYING = "PLAYING"
    ROUND_RESULT = "ROUND_RESULT"
    ROUND_END = "ROUND_END"
    GAME_OVER = "GAME_OVER"


class GameMode(str, Enum):
    STANDARD = "STANDARD"
    SURVIVAL = "SURVIVAL"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    TYPE_ANSWER = "TYPE_ANSWER"
    SLIDER = "SLIDER"
    PUZZLE = "PUZZLE"


class Player(BaseModel):
    id: str
    name: str
    avatar: str
    color: str = ""
    accessory: str = ""
    score: int = Field(default=0, ge=0)
    is_bot: bool = False
    is_host: bool = False
    streak: int = Field(default=0, ge=0)
    last_answer_correct: Optional[bool] = None


class Category(BaseModel):
    model_config = {"frozen": True}

    id: str
    name: str
    icon: str
    color: str


class Question(BaseModel):
    """A single trivia question.

    ``options`` is read differently per ``type``:

    * MULTIPLE_CHOICE / TRUE_FALSE: the choices, ``correct_index`` points at the answer
    * TYPE_ANSWER: every accepted answer
    * SLIDER: ``[min, max, step, correct_low, correct_high]`` as strings
    * PUZZLE: the items in their correct order
    """

    id: str
    category: str
    text: str
    options: List[str]
    correct_index: int = 0
    explanation: str = "No explanation provided."
    type: QuestionType = QuestionType.MULTIPLE_CHOICE


class RoundConfig(BaseModel):
    round_number: int = Field(ge=1)
    category: Category
    questions: List[Question] = Field(default_factory=list)


# Phases: START -> HOST_CONFIG -> REVIEW -> LOBBY -> CATEGORY_SELECT -> PLAYING
#   -> ROUND_RESULT -> (PLAYING | ROUND_END) -> (CATEGORY_SELECT | GAME_OVER)
class Session(BaseModel):
    id: str
    phase: GamePhase = GamePhase.START
    mode: GameMode = GameMode.STANDARD
    players: List[Player] = Field(default_factory=list)
    current_player_id: Optional[str] = None
    is_host: bool = False
    game_pin: Optional[str] = None

    total_rounds: int = 3
    questions_per_round: int = 5
    rounds_config: List[RoundConfig] = Field(default_factory=list)

    current_round: int = 0
    current_question_index: int = 0
    questions_queue: List[Question] = Field(default_factory=list)
    current_question: Optional[Question] = None
    selected_category: Optional[str] = None

    time_left: int = TIMER_DURATION
    loading: bool = False
    generation_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def player(self, player_id: Optional[str]) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)

    @property
    def bots(self) -> List[Player]:
        return [p for p in self.players if p.is_bot]
