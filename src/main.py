# src/main.py
# Главная точка входа FastAPI для Pals.
#  • Роутеры: друзья, пользователи, сообщества, переписка, письма, уведомления, лента, загрузка картинок.
#  • Ошибки бизнес-переходов (src/services/errors.py) превращаются в {"detail": {"code", "message"}}.
#  • Фоновая доставка отложенных писем стартует на startup (выключается LETTER_SWEEP_ENABLED=0).

from __future__ import annotations

import asyncio
import contextlib
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dotenv import load_dotenv
load_dotenv()

from src.db import engine  # инициализация БД/пула соединений

from src.routers.users import router as users_router
from src.routers.friends import router as friends_router
from src.routers.communities import router as communities_router
from src.routers.conversations import router as conversations_router
from src.routers.letters import router as letters_router
from src.routers.notifications import router as notifications_router
from src.routers.feed import router as feed_router
from src.routers.upload import router as upload_router

from src.services.errors import DomainError
from src.jobs.letter_delivery import start_letter_delivery_loop

log = logging.getLogger(__name__)

app = FastAPI(
    title="Pals Backend",
    description="Backend для Pals: друзья, сообщества, переписка, отложенные письма и уведомления (Telegram WebApp).",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ] + [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def _domain_error_handler(request: Request, exc: DomainError):
    # сессия закрывается в get_db без commit - всё, что сервис успел сделать, откатывается
    log.info("%s %s -> %s %s", request.method, request.url.path, exc.http_status, exc.code)
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_detail()})


app.include_router(users_router,          prefix="/api/users",          tags=["Пользователи"])
app.include_router(friends_router,        prefix="/api/friends",        tags=["Друзья"])
app.include_router(communities_router,    prefix="/api/communities",    tags=["Сообщества"])
app.include_router(conversations_router,  prefix="/api/conversations",  tags=["Переписка"])
app.include_router(letters_router,        prefix="/api/letters",        tags=["Письма"])
app.include_router(notifications_router,  prefix="/api/notifications",  tags=["Уведомления"])
app.include_router(feed_router,           prefix="/api/feed",           tags=["Лента"])
app.include_router(upload_router,         prefix="/api",                tags=["Загрузка"])


@app.get("/")
def root():
    """Простой healthcheck."""
    return {"message": "Pals backend работает!", "docs": "/docs"}


# фоновая задача доставки писем; отменяется на shutdown
_sweep_task = None


@app.on_event("startup")
async def _startup_jobs():
    global _sweep_task
    if os.getenv("LETTER_SWEEP_ENABLED", "1") == "1":
        _sweep_task = start_letter_delivery_loop()


@app.on_event("shutdown")
async def _shutdown_jobs():
    global _sweep_task
    task, _sweep_task = _sweep_task, None
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("src.main:app", host="0.0.0.0", port=8000, reload=False)
