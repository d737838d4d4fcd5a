"""
FastAPI Application — webhook triggers, status and health.

Provides:
- POST /webhooks/{trigger} for the scheduler (or a human) to seed jobs
- GET /status with per-queue job counts and the runtime environment
- GET /admin/queues/{queue} with the most recent jobs on one queue
- GET /health with liveness and SMS channel diagnostics
- One consumer per queue, started and stopped with the app
"""
from __future__ import annotations

import asyncio
import json
import structlog
from datetime import datetime, timezone
from typing import Optional
from contextlib import asynccontextmanager

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from config.settings import Settings, load_settings
from core.context import AppContext, build_context
from core.dispatcher import Dispatcher
from core.triggers import TriggerError, UnknownTriggerError, trigger_message
from job_queue.consumer import ConsumerPool
from models.schemas import JobState, Queues
from scheduler.client import register_default_schedules

logger = structlog.get_logger()


# ──────────────────────────────────────────────────────────────
#  App factory
# ──────────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    context: Optional[AppContext] = None,
    start_workers: bool = True,
) -> FastAPI:
    if context is None:
        context = build_context(settings or load_settings())
    dispatcher = Dispatcher(context).register_defaults()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx: AppContext = app.state.context
        await ctx.queue.connect()

        pool = None
        if start_workers:
            pool = ConsumerPool(ctx.queue, Queues.ALL, dispatcher.handle_job,
                                poll_timeout=ctx.settings.queue.poll_timeout)
            await pool.start()
        app.state.consumers = pool

        registration = None
        if ctx.settings.scheduler.enabled:
            registration = asyncio.create_task(register_default_schedules(ctx.settings.scheduler))
        app.state.schedule_registration = registration

        logger.info("locci_farm_started",
                    farm_id=ctx.farm_id,
                    port=ctx.settings.port,
                    queue_backend=type(ctx.queue).__name__,
                    sms_provider=ctx.sms.provider.name,
                    webhook_base=ctx.settings.scheduler.webhook_base_url)
        yield

        if registration is not None and not registration.done():
            registration.cancel()
            try:
                await registration
            except asyncio.CancelledError:
                pass
        if pool is not None:
            await pool.stop()
        await ctx.sms.shutdown()
        await ctx.queue.close()
        logger.info("locci_farm_stopped")

    app = FastAPI(
        title="Locci Farm API",
        description="Queue-driven farm operations and farmer SMS alerts",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.context = context
    app.state.dispatcher = dispatcher
    app.state.consumers = None
    app.state.schedule_registration = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ══════════════════════════════════════════════════════════════
    #  HEALTH & STATUS
    # ══════════════════════════════════════════════════════════════

    @app.get("/health")
    async def health():
        pool = app.state.consumers
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "consumers": pool.stats() if pool else {},
            "sms": await context.sms.health_check(),
        }

    @app.get("/status")
    async def status():
        return await dispatcher.status()

    @app.get("/admin/queues/{queue_name}")
    async def queue_jobs(
        queue_name: str,
        state: Optional[JobState] = None,
        limit: int = Query(50, ge=1, le=500),
    ):
        if queue_name not in Queues.ALL:
            raise HTTPException(404, f"Unknown queue: {queue_name}")
        jobs = await context.queue.list_jobs(queue_name, state=state, limit=limit)
        return {
            "queue": queue_name,
            "counts": await context.queue.depth_by_state(queue_name),
            "jobs": [job.model_dump(mode="json") for job in jobs],
        }

    # ══════════════════════════════════════════════════════════════
    #  WEBHOOKS
    # ══════════════════════════════════════════════════════════════

    @app.post("/webhooks/{trigger}")
    async def webhook(trigger: str, request: Request):
        raw = await request.body()
        try:
            body = json.loads(raw) if raw.strip() else {}
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise HTTPException(400, "Malformed JSON body")

        try:
            job_ids = await dispatcher.trigger(trigger, body)
        except UnknownTriggerError as e:
            raise HTTPException(404, str(e))
        except TriggerError as e:
            logger.warning("trigger_rejected", trigger=trigger, error=str(e))
            raise HTTPException(400, str(e))

        return {
            "status": "success",
            "message": trigger_message(trigger),
            "jobIds": job_ids,
        }

    return app


app = create_app()


# ══════════════════════════════════════════════════════════════
#  Entry Point
# ══════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.context.settings.port)
