from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from shared.core.database import get_leasing_db as get_db
from shared.helpers.client_context import get_client_context
from ...crud.leasing import signing_crud as crud
from ...schemas.leasing.signing_schemas import SignResult, SignSubmission, SigningSessionOut

# Public: the signing token in the path is the only credential.
router = APIRouter(
    prefix="/api/leases",
    tags=["lease signing"],
)


@router.get("/sign/{token}", response_model=SigningSessionOut)
def get_signing_session(
    token: str,
    request: Request,
    db: Session = Depends(get_db),
):
    return crud.get_lease_signing_session(db, token, get_client_context(request))


@router.post("/sign/{token}", response_model=SignResult)
def submit_signature(
    token: str,
    payload: SignSubmission,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    return crud.submit_lease_signature(
        db, token, payload, get_client_context(request), background_tasks)


@router.get("/addendum/sign/{token}", response_model=SigningSessionOut)
def get_addendum_signing_session(
    token: str,
    request: Request,
    db: Session = Depends(get_db),
):
    return crud.get_addendum_signing_session(db, token, get_client_context(request))


@router.post("/addendum/sign/{token}", response_model=SignResult)
def submit_addendum_signature(
    token: str,
    payload: SignSubmission,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    return crud.submit_addendum_signature(
        db, token, payload, get_client_context(request), background_tasks)
