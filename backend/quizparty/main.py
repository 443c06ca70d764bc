from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from typing import List, Optional

from .catalog import AVATAR_ACCESSORIES, AVATAR_COLORS, AVATARS, BOT_NAMES, CATEGORIES
from .db import settings
from .events import event_store
from .game import SessionNotFound, controller
from .models import Player, Session
from .schemas import (
    AnswerIn,
    CatalogOut,
    ConfigIn,
    CreateSessionIn,
    GenerateIn,
    HostPlayerIn,
    ImportIn,
    ImportSheetIn,
    JoinIn,
    RegenerateIn,
    SelectCategoryIn,
    SessionIn,
)
from .utils import configure_logging

configure_logging(settings.LOG_LEVEL)

app = FastAPI(title="Quiz Party API")

origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
origin_regex = settings.CORS_ORIGIN_REGEX or None

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_origin_regex=origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SessionNotFound)
async def session_not_found(request: Request, exc: SessionNotFound):
    return JSONResponse(status_code=404, content={"detail": "Session not found"})


def require_admin(x_admin_key: Optional[str] = Header(default=None)):
    if x_admin_key != settings.ADMIN_KEY:
        raise HTTPException(status_code=401, detail="Invalid admin key")


@app.get("/api/catalog", response_model=CatalogOut)
async def catalog():
    return CatalogOut(
        categories=CATEGORIES,
        avatars=AVATARS,
        avatar_colors=AVATAR_COLORS,
        avatar_accessories=AVATAR_ACCESSORIES,
        bot_names=BOT_NAMES,
        timer_duration=settings.TIMER_DURATION_SEC,
    )


@app.post("/api/session", response_model=Session)
async def create_or_get_session(payload: CreateSessionIn):
    return await controller.create_session(payload.session_id)


@app.get("/api/session/{session_id}", response_model=Session)
async def get_session(session_id: str):
    return await controller.require_session(session_id)


@app.get("/api/session/{session_id}/events")
async def list_events(session_id: str, after: int | None = None, limit: int = 200):
    events = await event_store.list(session_id, after=after, limit=limit)
    latest_seq = events[-1]["seq"] if events else after
    return {"events": events, "latest_seq": latest_seq}


@app.get("/api/session/{session_id}/leaderboard", response_model=List[Player])
async def leaderboard(session_id: str):
    return await controller.leaderboard(session_id)


@app.post("/api/session/{session_id}/host", response_model=Session)
async def host(session_id: str, _: None = Depends(require_admin)):
    return await controller.init_host(session_id)


@app.post("/api/session/{session_id}/join-screen", response_model=Session)
async def join_screen(session_id: str):
    return await controller.init_join(session_id)


@app.post("/api/join", response_model=Session)
async def join(payload: JoinIn):
    try:
        return await controller.join(
            payload.session_id,
            payload.name,
            payload.avatar,
            color=payload.color,
            accessory=payload.accessory,
            pin=payload.pin,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/answer", response_model=Session)
async def answer(payload: AnswerIn):
    return await controller.submit_answer(payload.session_id, payload.answer)


@app.get("/api/admin/verify")
async def verify(_: None = Depends(require_admin)):
    return {"ok": True}


@app.post("/api/admin/config", response_model=Session)
async def update_config(payload: ConfigIn, _: None = Depends(require_admin)):
    return await controller.update_config(payload.session_id, payload.rounds, payload.questions_per_round)


@app.post("/api/admin/generate", response_model=Session)
async def generate(payload: GenerateIn, _: None = Depends(require_admin)):
    return await controller.generate_content(payload.session_id, payload.rounds, payload.questions_per_round)


@app.post("/api/admin/import", response_model=Session)
async def import_questions(payload: ImportIn, _: None = Depends(require_admin)):
    try:
        return await controller.import_content(payload.session_id, payload.csv)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/admin/import-sheet", response_model=Session)
async def import_sheet(payload: ImportSheetIn, _: None = Depends(require_admin)):
    try:
        return await controller.import_sheet(payload.session_id, payload.url)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/admin/export/{session_id}", response_class=PlainTextResponse)
async def export_questions(session_id: str, _: None = Depends(require_admin)):
    csv_text = await controller.export_content(session_id)
    return PlainTextResponse(
        csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="quiz-{session_id}.csv"'},
    )


@app.post("/api/admin/regenerate", response_model=Session)
async def regenerate(payload: RegenerateIn, _: None = Depends(require_admin)):
    return await controller.regenerate_question(payload.session_id, payload.category_id, payload.index)


@app.post("/api/admin/back", response_model=Session)
async def back_to_config(payload: SessionIn, _: None = Depends(require_admin)):
    return await controller.back_to_config(payload.session_id)


@app.post("/api/admin/confirm", response_model=Session)
async def confirm(payload: SessionIn, _: None = Depends(require_admin)):
    return await controller.confirm_content(payload.session_id)


@app.post("/api/admin/host-player", response_model=Session)
async def host_player(payload: HostPlayerIn, _: None = Depends(require_admin)):
    return await controller.host_join_as_player(
        payload.session_id, payload.name, payload.avatar, payload.color, payload.accessory
    )


@app.post("/api/admin/bots", response_model=Session)
async def add_bot(payload: SessionIn, _: None = Depends(require_admin)):
    return await controller.add_bot(payload.session_id)


@app.post("/api/admin/start", response_model=Session)
async def start(payload: SessionIn, _: None = Depends(require_admin)):
    return await controller.start_game(payload.session_id)


@app.post("/api/admin/category", response_model=Session)
async def select_category(payload: SelectCategoryIn, _: None = Depends(require_admin)):
    return await controller.select_category(payload.session_id, payload.category_id)


@app.post("/api/admin/next-question", response_model=Session)
async def next_question(payload: SessionIn, _: None = Depends(require_admin)):
    return await controller.next_question(payload.session_id)


@app.post("/api/admin/next-round", response_model=Session)
async def next_round(payload: SessionIn, _: None = Depends(require_admin)):
    return await controller.next_round(payload.session_id)


@app.post("/api/admin/restart", response_model=Session)
async def restart(payload: SessionIn, _: None = Depends(require_admin)):
    return await controller.restart(payload.session_id)
