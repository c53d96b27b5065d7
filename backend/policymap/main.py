"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from policymap.adapters.base import PersistenceError
from policymap.adapters.remote import SqlProposalAdapter
from policymap.config import get_settings
from policymap.dependencies import get_store
from policymap.routers import admin, auth, proposals

logger = logging.getLogger(__name__)


def _check_storage_backend() -> None:
    """Verify the configured backend is reachable before serving traffic."""

    store = get_store()
    adapter = store.adapter
    if not isinstance(adapter, SqlProposalAdapter):
        logger.info("startup.storage_backend adapter=%s", adapter.name)
        return
    settings = get_settings()
    try:
        adapter.wait_until_ready(
            attempts=settings.remote_connect_attempts,
            base_delay=settings.remote_connect_backoff_seconds,
        )
    except PersistenceError:
        logger.exception("startup.remote_unreachable; continuing, reads will return empty results.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    _check_storage_backend()
    yield


settings = get_settings()
app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    max_age=settings.session_timeout_seconds,
    same_site="strict",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:8000", "http://127.0.0.1:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, tags=["auth"])
app.include_router(proposals.router, tags=["proposals"])
app.include_router(admin.router, tags=["admin"])


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}
