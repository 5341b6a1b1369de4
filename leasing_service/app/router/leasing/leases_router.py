from typing import List
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from sqlalchemy.orm import Session

from shared.core.auth import allow_staff, validate_current_token
from shared.core.database import get_leasing_db as get_db
from shared.core.schemas import UserToken
from shared.helpers.client_context import get_client_context
from ...crud.leasing import leases_crud as crud
from ...schemas.leasing.leases_schemas import (
    DocumentPointerOut, LeaseClause, LeaseCreate, LeaseOut, LeaseUpdate, ResendResult, SendResult,
    TerminateRequest,
)
from ...schemas.leasing.signing_schemas import (
    CountersignResult, CountersignSubmission, SignResult, SignSubmission,
)
from ...schemas.leasing.verification_schemas import VerificationReport

router = APIRouter(
    prefix="/api/leases",
    tags=["leases"],
    dependencies=[Depends(validate_current_token)]
)


@router.post("/", response_model=LeaseOut)
def create_lease(
    payload: LeaseCreate,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.create(db, payload, current_user)


@router.get("/default-clauses", response_model=List[LeaseClause])
def get_default_clauses(
    current_user: UserToken = Depends(allow_staff)
):
    return crud.get_default_clauses()


@router.get("/{lease_id}", response_model=LeaseOut)
def get_lease(
    lease_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.get_lease(db, lease_id, current_user)


@router.patch("/{lease_id}", response_model=LeaseOut)
def update_lease(
    lease_id: UUID,
    payload: LeaseUpdate,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.update(db, lease_id, payload, current_user)


@router.delete("/{lease_id}", response_model=None)
def delete_lease(
    lease_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.delete(db, lease_id, current_user)


@router.post("/{lease_id}/send-for-signature", response_model=SendResult)
def send_for_signature(
    lease_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.send_for_signature(db, lease_id, current_user, background_tasks)


@router.post("/{lease_id}/resend", response_model=ResendResult)
def resend_signing_links(
    lease_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.resend(db, lease_id, current_user, background_tasks)


@router.post("/{lease_id}/sign", response_model=SignResult)
def sign_lease(
    lease_id: UUID,
    payload: SignSubmission,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.sign_as_tenant(
        db, lease_id, payload, current_user, get_client_context(request), background_tasks)


@router.post("/{lease_id}/countersign", response_model=CountersignResult)
def countersign_lease(
    lease_id: UUID,
    payload: CountersignSubmission,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.countersign(
        db, lease_id, payload, current_user, get_client_context(request), background_tasks)


@router.post("/{lease_id}/terminate", response_model=LeaseOut)
def terminate_lease(
    lease_id: UUID,
    payload: TerminateRequest,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.terminate(db, lease_id, payload, current_user)


@router.post("/{lease_id}/regenerate-document", response_model=DocumentPointerOut)
def regenerate_document(
    lease_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(allow_staff)
):
    return crud.regenerate_document(db, lease_id, current_user)


@router.get("/{lease_id}/document")
def download_document(
    lease_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    content, filename = crud.get_document(db, lease_id, current_user, get_client_context(request))
    return Response(
        content=content,
        media_type="text/html; charset=utf-8",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.get("/{lease_id}/verify-signatures", response_model=VerificationReport)
def verify_signatures(
    lease_id: UUID,
    db: Session = Depends(get_db),
    current_user: UserToken = Depends(validate_current_token)
):
    return crud.verify(db, lease_id, current_user)
