
from pydantic import BaseModel, Field
from typing import List, Optional, Union
from .models import Category


class SessionIn(BaseModel):
    session_id: str


class CreateSessionIn(SessionIn):
    pass


class ConfigIn(SessionIn):
    rounds: int = Field(ge=1)
    questions_per_round: int = Field(ge=1)


class GenerateIn(ConfigIn):
    pass


class ImportIn(SessionIn):
    csv: str


class ImportSheetIn(SessionIn):
    url: str


class RegenerateIn(SessionIn):
    category_id: str
    index: int = Field(ge=0)


class JoinIn(SessionIn):
    name: str
    avatar: str
    color: str = ""
    accessory: str = ""
    pin: Optional[str] = None


class HostPlayerIn(SessionIn):
    name: str = ""
    avatar: str = ""
    color: str = ""
    accessory: str = ""


class SelectCategoryIn(SessionIn):
    category_id: Optional[str] = None


class AnswerIn(SessionIn):
    # option index, free text, slider value or a puzzle ordering
    answer: Union[int, float, str, List[str]]


class CatalogOut(BaseModel):
    categories: List[Category]
    avatars: List[str]
    avatar_colors: List[str]
    avatar_accessories: List[str]
    bot_names: List[str]
    timer_duration: int
