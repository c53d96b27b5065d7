"""Public read-only proposal routes."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from policymap.dependencies import get_store
from policymap.schemas.common import ApiResponse
from policymap.schemas.proposal import Proposal
from policymap.services.record_store import ProposalStore

router = APIRouter(prefix="/api/proposals")


@router.get("", response_model=ApiResponse[list[Proposal]])
def list_proposals(store: ProposalStore = Depends(get_store)) -> ApiResponse[list[Proposal]]:
    return ApiResponse(data=store.list())


@router.get("/latest", response_model=ApiResponse[list[Proposal]])
def latest_proposals(
    count: int = Query(default=3, ge=1, le=100),
    store: ProposalStore = Depends(get_store),
) -> ApiResponse[list[Proposal]]:
    """Newest proposals first, by creation timestamp."""

    return ApiResponse(data=store.get_latest(count))


@router.get("/by-slug/{slug}", response_model=ApiResponse[Proposal])
def proposal_by_slug(
    slug: str = Path(..., min_length=1),
    store: ProposalStore = Depends(get_store),
) -> ApiResponse[Proposal]:
    proposal = store.get_by_slug(slug)
    if proposal is None:
        raise HTTPException(status_code=404, detail="Proposal not found")
    return ApiResponse(data=proposal)


@router.get("/{proposal_id}", response_model=ApiResponse[Proposal])
def proposal_by_id(
    proposal_id: str = Path(..., min_length=1),
    store: ProposalStore = Depends(get_store),
) -> ApiResponse[Proposal]:
    proposal = store.get(proposal_id)
    if proposal is None:
        raise HTTPException(status_code=404, detail="Proposal not found")
    return ApiResponse(data=proposal)
