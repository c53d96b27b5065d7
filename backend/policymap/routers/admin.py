"""Session-protected admin routes for editing proposals."""

from fastapi import APIRouter, Depends, HTTPException, Path

from policymap.dependencies import get_migration, get_store, require_admin
from policymap.schemas.admin import DeleteResult, HistoryEntry, MigrationResult
from policymap.schemas.common import ApiResponse
from policymap.schemas.proposal import Proposal, ProposalDraft, ProposalPatch
from policymap.services.migration import LocalToRemoteMigration
from policymap.services.record_store import ProposalStore

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


@router.post("/proposals", response_model=ApiResponse[Proposal], status_code=201)
def create_proposal(
    payload: ProposalDraft,
    store: ProposalStore = Depends(get_store),
) -> ApiResponse[Proposal]:
    created = store.create(payload)
    if created is None:
        raise HTTPException(status_code=503, detail="Proposal storage unavailable")
    return ApiResponse(data=created)


@router.patch("/proposals/{proposal_id}", response_model=ApiResponse[Proposal])
def patch_proposal(
    payload: ProposalPatch,
    proposal_id: str = Path(..., min_length=1),
    store: ProposalStore = Depends(get_store),
) -> ApiResponse[Proposal]:
    """Edit one proposal; changing the city moves it to a new slug."""

    updated = store.update(proposal_id, payload)
    if updated is None:
        raise HTTPException(status_code=404, detail="Proposal not found")
    return ApiResponse(data=updated)


@router.delete("/proposals/{proposal_id}", response_model=ApiResponse[DeleteResult])
def remove_proposal(
    proposal_id: str = Path(..., min_length=1),
    store: ProposalStore = Depends(get_store),
) -> ApiResponse[DeleteResult]:
    existing = store.get(proposal_id)
    if existing is None or not store.delete(proposal_id):
        raise HTTPException(status_code=404, detail="Proposal not found")
    deleted_id = existing.id if existing.id is not None else existing.slug
    return ApiResponse(data=DeleteResult(id=deleted_id, deleted=True))


@router.get("/history", response_model=ApiResponse[list[HistoryEntry]])
def list_history(store: ProposalStore = Depends(get_store)) -> ApiResponse[list[HistoryEntry]]:
    entries = store.history_entries()
    return ApiResponse(data=[HistoryEntry.model_validate(entry) for entry in entries if "action" in entry])


@router.post("/history/{history_index}/undo", response_model=ApiResponse[Proposal])
def undo_history_entry(
    history_index: int = Path(..., ge=0),
    store: ProposalStore = Depends(get_store),
) -> ApiResponse[Proposal]:
    """Restore the proposal removed by the delete entry at ``history_index``."""

    restored = store.undo_delete(history_index)
    if restored is None:
        raise HTTPException(status_code=409, detail="Nothing to restore for this history entry")
    return ApiResponse(data=restored)


@router.post("/migrate", response_model=ApiResponse[MigrationResult])
def migrate_local_to_remote(
    migration: LocalToRemoteMigration = Depends(get_migration),
) -> ApiResponse[MigrationResult]:
    report = migration.run()
    if not report.success:
        raise HTTPException(status_code=502, detail=report.error or "Migration failed")
    return ApiResponse(
        data=MigrationResult(
            status=report.status,
            inserted=report.inserted,
            skipped=report.skipped,
            failed=report.failed,
            batches=report.batches,
            error=report.error,
        )
    )
