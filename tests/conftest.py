"""Общие фикстуры: отдельная SQLite-база на каждый тест, фейковый push-канал, TestClient.

- DATABASE_URL / TELEGRAM_BOT_TOKEN выставляются ДО импорта src.*:
  src.db и src.utils.telegram_dep без них падают на импорте.
- время в сервисах идёт по TickingClock (секунда на вызов).
- push уходит синхронно (InlineExecutor) в RecordingChannel, чтобы проверять,
  что ушло и что push не ушёл при откате.
- get_db и get_current_telegram_user подменены: пользователь выбирается через client.login(user).
"""

import itertools
import os
import tempfile
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.setdefault("PALS_MEDIA_ROOT", tempfile.mkdtemp(prefix="pals-media-"))
os.environ["LETTER_SWEEP_ENABLED"] = "0"

import pytest
import requests
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.db import Base, get_db
from src.models.friend import Friend
from src.models.user import User
from src.services import push
from src.services.push import PushChannel
from src.utils.clock import utc_now
from src.utils.telegram_dep import get_current_telegram_user


class RecordingChannel(PushChannel):
    """Канал доставки push для тестов: запоминает отправленное, умеет «падать»."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, device_token, title, body, data):
        if self.fail:
            raise requests.ConnectionError("push channel is down")
        self.sent.append({"device_token": device_token, "title": title, "body": body, "data": data})


class InlineExecutor:
    def submit(self, fn, *args, **kwargs):
        fn(*args, **kwargs)


class TickingClock:
    """Каждый вызов на секунду позже предыдущего: порядок created_at в тестах однозначен."""

    def __init__(self, start):
        self.current = start

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current

    def advance(self, **delta):
        self.current += timedelta(**delta)
        return self.current


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'pals.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def push_channel(monkeypatch):
    channel = RecordingChannel()
    monkeypatch.setattr(push, "_executor", InlineExecutor())
    push.set_channel(channel)
    yield channel
    push.set_channel(None)


CLOCKED_MODULES = (
    "src.services.notifications",
    "src.services.friends",
    "src.services.communities",
    "src.services.discussions",
    "src.services.conversations",
    "src.services.letters",
    "src.services.feed",
)


@pytest.fixture(autouse=True)
def clock(monkeypatch):
    ticking = TickingClock(datetime(2026, 10, 19, 12, 0, 0))
    for module in CLOCKED_MODULES:
        monkeypatch.setattr(f"{module}.utc_now", ticking)
    return ticking


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(name=None, gender=None, allows_write_to_pm=True):
        n = next(counter)
        now = utc_now()
        user = User(
            telegram_id=100000 + n,
            name=name or f"user{n}",
            gender=gender,
            allows_write_to_pm=allows_write_to_pm,
            is_premium=False,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def befriend(db):
    def _befriend(a, b):
        lo, hi = sorted((a.id, b.id))
        db.add(Friend(user_min=lo, user_max=hi, created_at=utc_now()))
        db.commit()

    return _befriend


@pytest.fixture
def client(session_factory):
    from src.main import app

    current = {"user_id": None}

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_current_user(session: Session = Depends(get_db)):
        return session.get(User, current["user_id"])

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_telegram_user] = override_current_user

    with TestClient(app) as c:
        c.login = lambda user: current.update(user_id=user.id)
        yield c

    app.dependency_overrides.clear()
