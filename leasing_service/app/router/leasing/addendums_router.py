from typing import List
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from shared.core.auth import allow_staff, validate_current_token
from shared.core.database import get_leasing_db as get_db
from shared.core.schemas import UserToken
from shared.helpers.client_context import get_client_context
from ...crud.leasing import addendums_crud as crud
from ...schemas.leasing.addendums_schemas import (
    AddendumCreate, AddendumOut, AddendumUpdate, VoidRequest,
)
from ...schemas.leasing.leases_schemas import ResendResult, SendResult
from ...schemas.leasing.signing_schemas import CountersignResult, CountersignSubmission
from ...schemas.leasing.verification_schemas import VerificationReport

router = APIRouter(
    prefix="/api/leases/{lease_id}/addendums",
    tags=["lease addendums"],
    dependencies=[Depends(validate_current_token)]
)


@router.get("", response_model=List[AddendumOut])
def get_addendums(
    lease_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.get_list(db, lease_id, current_user)


@router.post("", response_model=AddendumOut)
def create_addendum(
    lease_id: UUID,
    payload: AddendumCreate,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.create(db, lease_id, payload, current_user)


@router.get("/{addendum_id}", response_model=AddendumOut)
def get_addendum(
    lease_id: UUID,
    addendum_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.get_addendum(db, lease_id, addendum_id, current_user)


@router.patch("/{addendum_id}", response_model=AddendumOut)
def update_addendum(
    lease_id: UUID,
    addendum_id: UUID,
    payload: AddendumUpdate,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.update(db, lease_id, addendum_id, payload, current_user)


@router.post("/{addendum_id}/send", response_model=SendResult)
def send_addendum(
    lease_id: UUID,
    addendum_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.send_for_signature(db, lease_id, addendum_id, current_user, background_tasks)


@router.post("/{addendum_id}/resend", response_model=ResendResult)
def resend_addendum(
    lease_id: UUID,
    addendum_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.resend(db, lease_id, addendum_id, current_user, background_tasks)


@router.post("/{addendum_id}/void", response_model=AddendumOut)
def void_addendum(
    lease_id: UUID,
    addendum_id: UUID,
    payload: VoidRequest,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.void(db, lease_id, addendum_id, payload, current_user)


@router.post("/{addendum_id}/countersign", response_model=CountersignResult)
def countersign_addendum(
    lease_id: UUID,
    addendum_id: UUID,
    payload: CountersignSubmission,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.countersign(
        db, lease_id, addendum_id, payload, current_user, get_client_context(request), background_tasks)


@router.get("/{addendum_id}/verify-signatures", response_model=VerificationReport)
def verify_addendum_signatures(
    lease_id: UUID,
    addendum_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.verify(db, lease_id, addendum_id, current_user)
