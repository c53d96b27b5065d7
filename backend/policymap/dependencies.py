"""FastAPI dependencies wiring the configured store, gate and migration."""

from functools import lru_cache

from fastapi import Depends, HTTPException, Request, Response

from policymap.adapters.base import ProposalAdapter
from policymap.adapters.keyvalue import JsonFileKeyValueStore, KeyValueStore
from policymap.adapters.local import LocalProposalAdapter
from policymap.adapters.static_files import JsonFileAdapter
from policymap.config import Settings, get_settings
from policymap.services.access_gate import AccessGate
from policymap.services.history import HistoryLog
from policymap.services.migration import LocalToRemoteMigration
from policymap.services.record_store import ProposalStore

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
}


def build_adapter(settings: Settings, kv: KeyValueStore) -> ProposalAdapter:
    """Adapter selected by ``Settings.storage_backend``."""

    if settings.storage_backend == "remote":
        from policymap.adapters.remote import SqlProposalAdapter
        from policymap.db.session import SessionLocal

        return SqlProposalAdapter(SessionLocal)
    if settings.storage_backend == "static":
        return JsonFileAdapter(settings.resolved_data_dir / "proposals.json")
    return LocalProposalAdapter(kv)


@lru_cache
def get_kv_store() -> KeyValueStore:
    return JsonFileKeyValueStore(get_settings().local_store_path)


@lru_cache
def get_store() -> ProposalStore:
    settings = get_settings()
    kv = get_kv_store()
    return ProposalStore(
        build_adapter(settings, kv),
        history=HistoryLog(kv, cap=settings.history_cap),
    )


@lru_cache
def get_access_gate() -> AccessGate:
    settings = get_settings()
    return AccessGate(
        settings.admin_username,
        settings.admin_password,
        settings.session_timeout_seconds,
        max_attempts=settings.max_login_attempts,
        lockout_seconds=settings.lockout_seconds,
    )


def get_migration() -> LocalToRemoteMigration:
    from policymap.adapters.remote import SqlProposalAdapter
    from policymap.db.session import SessionLocal

    settings = get_settings()
    kv = get_kv_store()
    return LocalToRemoteMigration(
        kv,
        LocalProposalAdapter(kv),
        SqlProposalAdapter(SessionLocal),
        batch_size=settings.remote_batch_size,
        batch_delay=settings.remote_batch_delay_seconds,
        mode=settings.migration_mode,
    )


def require_admin(
    request: Request,
    response: Response,
    gate: AccessGate = Depends(get_access_gate),
) -> None:
    """Reject requests without a live admin session; admin responses are never cached."""

    response.headers.update(NO_CACHE_HEADERS)
    if not gate.is_authorized(request.session):
        raise HTTPException(status_code=401, detail="Authentication required", headers=NO_CACHE_HEADERS)
