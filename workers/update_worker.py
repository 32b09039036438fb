"""
workers/update_worker.py

Worker assíncrono que consome os eventos enfileirados pelo webhook.

Fluxo:
1. Consome eventos da fila (update_queue)
2. Entrega cada evento ao Dispatcher
3. Erros em um evento são logados e o worker segue para o próximo

Vários workers rodam em paralelo; eventos de usuários diferentes são
independentes entre si.
"""

import asyncio
import logging

from app.bot.events import ButtonPress, TextMessage
from app.services.queue import update_queue

log = logging.getLogger(__name__)


async def handle_update(dispatcher, event: TextMessage | ButtonPress) -> None:
    log.info(f"handle_update: {type(event).__name__} de {event.user_id}")
    try:
        await dispatcher.handle(event)
    except Exception as e:
        log.error(f"Erro ao processar {event!r}: {e}", exc_info=True)


async def run_worker(dispatcher, queue: asyncio.Queue = update_queue) -> None:
    log.info("Worker de updates iniciado")
    while True:
        try:
            event = await asyncio.wait_for(queue.get(), timeout=5.0)
        except asyncio.TimeoutError:
            continue
        try:
            await handle_update(dispatcher, event)
        finally:
            queue.task_done()
