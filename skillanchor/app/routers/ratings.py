"""Read-only anchoring status endpoints."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..deps import rating_store
from ..domain.models import RatingSessionRead
from ..domain.schemas import RatingStatusOut
from ..services.rating_store import RatingStoreGateway

router = APIRouter()


@router.get("/unanchored", response_model=List[RatingSessionRead])
def list_unanchored(store: RatingStoreGateway = Depends(rating_store)):
    return store.list_unanchored_sessions()


@router.get("/{rating_id}", response_model=RatingStatusOut)
def get_rating_status(rating_id: str, store: RatingStoreGateway = Depends(rating_store)):
    status = store.anchoring_status(rating_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Rating not found")
    return status
