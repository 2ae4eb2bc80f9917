# src/services/push.py
# -----------------------------------------------------------------------------
# Push-оповещения (best effort) через Telegram Bot API.
#
# Как работает:
#   • Бизнес-код в транзакции только кладёт PushMessage в «исходящие» сессии
#     (session.info["push_outbox"]) - никаких сетевых вызовов под транзакцией.
#   • После успешного commit слушатель after_commit отдаёт сообщения в пул потоков.
#   • При rollback исходящие выбрасываются: нет перехода - нет push.
#   • Ошибки доставки логируются и глотаются: упавший push никогда не ломает
#     принятие заявки, отправку сообщения и т.п. Ретраи - забота канала.
# -----------------------------------------------------------------------------

from __future__ import annotations

import html
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, NamedTuple, Optional

import requests
from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.orm import Session

load_dotenv()
log = logging.getLogger(__name__)

TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
PUSH_ENABLED = os.getenv("PUSH_ENABLED", "1") == "1"

_OUTBOX_KEY = "push_outbox"


class PushMessage(NamedTuple):
    device_token: str
    title: str
    body: str
    data: Dict[str, Any]


class PushChannel:
    """Канал доставки push. device_token зависит от канала."""

    def send(self, device_token: str, title: str, body: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class TelegramPushChannel(PushChannel):
    """
    Канал доставки: сообщение от бота в личку пользователя.
    device_token - это telegram_id (chat_id личного чата с ботом).
    """

    def __init__(self, bot_token: str, timeout: float = 10):
        self.bot_token = bot_token
        self.timeout = timeout

    def send(self, device_token: str, title: str, body: str, data: Dict[str, Any]) -> None:
        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        text = f"<b>{html.escape(title)}</b>\n{html.escape(body)}"
        payload = {
            "chat_id": device_token,
            "text": text,
            "parse_mode": "HTML",
            "disable_notification": False,
        }
        response = requests.post(url, data=payload, timeout=self.timeout)
        response.raise_for_status()


_channel: Optional[PushChannel] = TelegramPushChannel(TELEGRAM_BOT_TOKEN) if (PUSH_ENABLED and TELEGRAM_BOT_TOKEN) else None
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="push")


def set_channel(channel: Optional[PushChannel]) -> None:
    """Подменить канал доставки (None - выключить push)."""
    global _channel
    _channel = channel


def queue_push(db: Session, *, user, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> None:
    """
    Положить push в исходящие текущей транзакции.
    Пользователи, запретившие боту писать в личку, пропускаются.
    """
    if user is None or not getattr(user, "allows_write_to_pm", True) or not user.telegram_id:
        return
    db.info.setdefault(_OUTBOX_KEY, []).append(
        PushMessage(device_token=str(user.telegram_id), title=title, body=body, data=data or {})
    )


def _deliver(msg: PushMessage) -> None:
    channel = _channel
    if channel is None:
        return
    try:
        channel.send(msg.device_token, msg.title, msg.body, msg.data)
    except requests.exceptions.RequestException as e:
        log.warning("push: delivery to %s failed: %s", msg.device_token, e)
    except Exception:
        log.exception("push: unexpected error while delivering to %s", msg.device_token)


@event.listens_for(Session, "after_commit")
def _dispatch_outbox(session: Session) -> None:
    outbox = session.info.pop(_OUTBOX_KEY, None)
    if not outbox or _channel is None:
        return
    for msg in outbox:
        _executor.submit(_deliver, msg)


@event.listens_for(Session, "after_rollback")
def _drop_outbox(session: Session) -> None:
    dropped = session.info.pop(_OUTBOX_KEY, None)
    if dropped:
        log.debug("push: dropped %d queued alerts after rollback", len(dropped))
