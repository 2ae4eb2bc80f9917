# src/jobs/letter_delivery.py
# ДОСТАВКА ОТЛОЖЕННЫХ ПИСЕМ (РАЗ В МИНУТУ)
# -----------------------------------------------------------------------------
# Что делает этот модуль:
#   • Находит письма со status = 'scheduled' и deliver_at <= now.
#   • Каждое переводит в delivered отдельной транзакцией через
#     compare-and-swap (src.services.letters.deliver_letter) и пишет
#     уведомление получателю.
#
# Несколько инстансов / наложение прогонов:
#   • Блокировок нет. Письмо, взятое двумя прогонами, переведёт только один,
#     второй получит rowcount = 0 и молча пропустит его.
#
# Как запускать:
#   Вариант А) Одноразовый прогон:
#       >>> from src.jobs.letter_delivery import deliver_due_letters_once
#       >>> deliver_due_letters_once()
#
#   Вариант Б) Фоновая задача на событии FastAPI startup (main.py),
#   включена по умолчанию, выключается LETTER_SWEEP_ENABLED=0.
#   Интервал: LETTER_SWEEP_INTERVAL_SEC (по умолчанию 60).

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from src.db import SessionLocal  # создаёт новую сессию БД
from src.services.letters import deliver_letter, due_letter_ids
from src.utils.clock import utc_now

log = logging.getLogger(__name__)

SWEEP_INTERVAL_SEC = int(os.getenv("LETTER_SWEEP_INTERVAL_SEC", "60"))


def deliver_due_letters_once(
    session_factory: Callable[[], Session] = SessionLocal,
    now: Optional[datetime] = None,
) -> dict:
    """
    Одноразовый прогон:
      - выбирает id писем к доставке,
      - каждое доставляет в своей транзакции (ошибка одного не откатывает остальные),
      - возвращает сводку.
    """
    now = now or utc_now()

    with session_factory() as db:
        candidates = due_letter_ids(db, now)

    delivered_ids: list[int] = []
    skipped_ids: list[int] = []
    failed_ids: list[int] = []

    for letter_id in candidates:
        with session_factory() as db:
            try:
                ok = deliver_letter(db, letter_id, now)
                db.commit()
            except Exception:
                db.rollback()
                log.exception("letter-delivery: failed to deliver letter %s", letter_id)
                failed_ids.append(letter_id)
                continue
        # проигравший гонку - не ошибка
        (delivered_ids if ok else skipped_ids).append(letter_id)

    summary = {
        "delivered_count": len(delivered_ids),
        "delivered_ids": delivered_ids,
        "skipped_count": len(skipped_ids),
        "skipped_ids": skipped_ids,
        "failed_count": len(failed_ids),
        "failed_ids": failed_ids,
    }
    if candidates:
        log.info("letter-delivery summary: %s", summary)
    return summary


async def _loop_every(interval_sec: int) -> None:
    """
    Бесконечный цикл:
      - прогон в рабочем потоке (сессии SQLAlchemy синхронные),
      - исключения логируем и продолжаем,
      - ждём interval_sec.
    """
    while True:
        try:
            await asyncio.to_thread(deliver_due_letters_once)
        except Exception:
            log.exception("letter-delivery loop iteration failed")
        await asyncio.sleep(interval_sec)


def start_letter_delivery_loop(interval_sec: int = SWEEP_INTERVAL_SEC) -> Optional[asyncio.Task]:
    """Запускает фоновую задачу в текущем asyncio-цикле (из @app.on_event('startup'))."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # Нет активного event loop - ничего не делаем
        return None
    return loop.create_task(_loop_every(interval_sec))
