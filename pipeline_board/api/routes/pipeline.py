from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status

from pipeline_board.api import deps
from pipeline_board.core.auth import require_roles
from pipeline_board.core.roles import Role
from pipeline_board.core.transition_rules import (
    ActionValidationError,
    PermissionDeniedError,
    TransitionValidationError,
)
from pipeline_board.core.uploads import (
    DOC_EXTENSIONS,
    SUPPORTING_DOC_EXTENSIONS,
    Attachment,
    AttachmentKind,
    UnsupportedAttachmentError,
    build_attachment,
)
from pipeline_board.schemas.board import BoardOut, DestinationsOut, MutationOut, RecruiterAssignmentIn
from pipeline_board.schemas.client import ClientDetails
from pipeline_board.schemas.user import UserContext
from pipeline_board.services.backend_client import BackendError
from pipeline_board.services.board import ClientNotFoundError, MutationResult, PipelineBoard

router = APIRouter(prefix="/pipeline", tags=["pipeline"])


@contextmanager
def _board_errors() -> Iterator[None]:
    try:
        yield
    except ClientNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except (TransitionValidationError, ActionValidationError, UnsupportedAttachmentError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _mutation_out(board: PipelineBoard, result: MutationResult) -> MutationOut:
    if result == MutationResult.IGNORED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Another action is in progress")
    if result == MutationResult.FAILED:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=board.error or "Backend request failed")
    return MutationOut(result=result.value, error=board.error)


async def _read_upload(
    upload: Optional[UploadFile],
    *,
    allowed_extensions: set[str] = DOC_EXTENSIONS,
) -> Attachment | None:
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    if not content:
        return None
    return build_attachment(upload.filename, content, upload.content_type, allowed_extensions=allowed_extensions)


@router.get("/board", response_model=BoardOut)
async def get_board(
    search: Optional[str] = Query(default=None),
    board: PipelineBoard = Depends(deps.get_board),
):
    await board.load()
    if search is not None:
        board.set_search(search)
    return board.view()


@router.post("/board/refresh", response_model=BoardOut)
async def refresh_board(board: PipelineBoard = Depends(deps.get_board)):
    await board.load(force=True)
    return board.view()


@router.delete("/board/error", status_code=status.HTTP_204_NO_CONTENT)
async def clear_board_error(board: PipelineBoard = Depends(deps.get_board)):
    board.clear_error()


@router.get("/clients/{client_id}", response_model=ClientDetails)
async def get_client(client_id: int, board: PipelineBoard = Depends(deps.get_board)):
    try:
        details = await board.select_client(client_id)
    except BackendError as exc:
        code = status.HTTP_404_NOT_FOUND if exc.status_code == 404 else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail=exc.message)
    if details is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Another action is in progress")
    return details


@router.get("/clients/{client_id}/destinations", response_model=DestinationsOut)
async def get_destinations(client_id: int, board: PipelineBoard = Depends(deps.get_board)):
    await board.load()
    with _board_errors():
        destinations = board.allowed_destinations(client_id)
        client = board.roster.get(client_id)
    return DestinationsOut(
        client_id=client_id,
        current_department=client.department,
        destinations=destinations,
    )


@router.post("/clients/{client_id}/transition", response_model=MutationOut)
async def transition_client(
    client_id: int,
    department: str = Form(...),
    notes: Optional[str] = Form(default=None),
    back_out_reason: Optional[str] = Form(default=None),
    resume_file: Optional[UploadFile] = File(default=None),
    cover_letter_file: Optional[UploadFile] = File(default=None),
    updated_resume_file: Optional[UploadFile] = File(default=None),
    offer_letter_file: Optional[UploadFile] = File(default=None),
    board: PipelineBoard = Depends(deps.get_board),
):
    await board.load()
    with _board_errors():
        uploads = {
            AttachmentKind.RESUME: resume_file,
            AttachmentKind.COVER_LETTER: cover_letter_file,
            AttachmentKind.UPDATED_RESUME: updated_resume_file,
            AttachmentKind.OFFER_LETTER: offer_letter_file,
        }
        attachments: dict[AttachmentKind, Attachment] = {}
        for kind, upload in uploads.items():
            attachment = await _read_upload(upload)
            if attachment is not None:
                attachments[kind] = attachment
        result = await board.request_transition(
            client_id,
            department,
            attachments=attachments,
            notes=notes,
            back_out_reason=back_out_reason,
        )
    return _mutation_out(board, result)


@router.post("/clients/{client_id}/actions", response_model=MutationOut)
async def perform_action(
    client_id: int,
    action: str = Form(...),
    department: Optional[str] = Form(default=None),
    notes: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    board: PipelineBoard = Depends(deps.get_board),
):
    await board.load()
    with _board_errors():
        attachment = await _read_upload(file, allowed_extensions=SUPPORTING_DOC_EXTENSIONS)
        result = await board.perform_named_action(
            client_id,
            action,
            department=department,
            notes=notes,
            file=attachment,
        )
    return _mutation_out(board, result)


@router.post("/clients/{client_id}/senior-recruiter", response_model=MutationOut)
async def assign_senior_recruiter(
    client_id: int,
    payload: RecruiterAssignmentIn,
    board: PipelineBoard = Depends(deps.get_board),
    _user: UserContext = Depends(require_roles([Role.MARKETING_MANAGER, Role.ADMIN])),
):
    await board.load()
    with _board_errors():
        result = await board.assign_senior_recruiter(client_id, payload.recruiter_id)
    return _mutation_out(board, result)


@router.post("/clients/{client_id}/recruiter", response_model=MutationOut)
async def assign_recruiter(
    client_id: int,
    payload: RecruiterAssignmentIn,
    board: PipelineBoard = Depends(deps.get_board),
    _user: UserContext = Depends(require_roles([Role.SENIOR_RECRUITER])),
):
    await board.load()
    with _board_errors():
        result = await board.assign_recruiter(client_id, payload.recruiter_id)
    return _mutation_out(board, result)
