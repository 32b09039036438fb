import asyncio
import hmac
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as UpdateValidationError

from app.bot.dispatcher import build_dispatcher
from app.bot.events import TelegramUpdate
from app.config import load_bot_config, settings
from app.services.queue import update_queue
from app.services.telegram import TelegramClient

logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


@asynccontextmanager
async def lifespan(app):
    import app.database
    import workers.update_worker

    await app.database.init_db()

    dispatcher = build_dispatcher(
        load_bot_config(),
        app.database.async_session_factory,
        TelegramClient(),
    )
    worker_tasks = [
        asyncio.create_task(workers.update_worker.run_worker(dispatcher))
        for _ in range(int(settings.worker_count))
    ]
    log.info(f"{len(worker_tasks)} workers de updates iniciados")
    yield
    for task in worker_tasks:
        task.cancel()


api = FastAPI(lifespan=lifespan)


@api.post("/telegram/webhook")
async def telegram_webhook(request: Request):
    secret = settings.webhook_secret
    if secret and not hmac.compare_digest(request.headers.get(SECRET_HEADER, ""), secret):
        log.warning("Webhook recusado: secret token inválido")
        return JSONResponse({"ok": False}, status_code=403)

    try:
        update = TelegramUpdate.model_validate(await request.json())
    except (ValueError, UpdateValidationError) as e:
        # Telegram reenvia updates não confirmados: update inválido é descartado
        log.warning(f"Update inválido descartado: {e}")
        return {"ok": True}

    event = update.to_event()
    if event is None:
        log.info(f"Update {update.update_id} sem evento tratável")
    else:
        await update_queue.put(event)
    return {"ok": True}


@api.get("/health")
async def health():
    return {"status": "ok"}
