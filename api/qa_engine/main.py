from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI

from qa_engine.config import settings
from qa_engine.logging_config import configure_logging
from qa_engine.metrics import metrics_endpoint
from qa_engine.middleware.logging_middleware import RequestLoggingMiddleware
from qa_engine.routers import admin, answers, auth, expertise, leaderboard, questions


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    app.state.redis = aioredis.from_url(
        settings.redis_url, encoding="utf-8", decode_responses=True
    )
    try:
        yield
    finally:
        await app.state.redis.aclose()


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(auth.router)
app.include_router(answers.router)
app.include_router(questions.router)
app.include_router(expertise.router)
app.include_router(leaderboard.router)
app.include_router(admin.router)

app.get("/metrics")(metrics_endpoint)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
