from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db, init_models, engine
from .api import links
from .redis import redis_client
from .errors import LinkNotFound, register_exception_handlers
from .services.clicks import click_dispatcher
from .services.resolver import resolve_target
from .middleware import RequestIdMiddleware
from .observability import PrometheusMiddleware, metrics_endpoint, REDIRECT_TOTAL, REDIRECT_404_TOTAL
from .logging_config import setup_logging

setup_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    await init_models()
    await redis_client.connect()
    yield
    # Shutdown logic: let accepted clicks land before the pool goes away
    await click_dispatcher.drain()
    await redis_client.close()
    await engine.dispose()

app = FastAPI(
    title="URL Shortener",
    description="Short codes that redirect to target URLs, with click counts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(PrometheusMiddleware)
app.add_middleware(RequestIdMiddleware)
register_exception_handlers(app)

app.add_route("/metrics", metrics_endpoint)

app.include_router(links.router, prefix="/api")

@app.get("/health")
async def health():
    return {"status": "ok"}

@app.get("/{code}")
async def redirect_to_target(
    code: str,
    db: AsyncSession = Depends(get_db)
):
    try:
        target_url = await resolve_target(db, code)
    except LinkNotFound:
        REDIRECT_404_TOTAL.inc()
        raise

    # Accounting runs on its own task; the redirect never waits on it
    click_dispatcher.dispatch(code)
    REDIRECT_TOTAL.inc()
    return RedirectResponse(url=target_url, status_code=status.HTTP_302_FOUND)
