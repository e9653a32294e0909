"""FastAPI routes for papers, blocks, collaborators, and annotations."""

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from paer.blocks.errors import (
    BlockNotFoundError,
    CannotDeleteRootError,
    DuplicateBlockIdError,
    InvalidChildTypeError,
    InvalidFieldError,
    PathNotFoundError,
)
from paer.papers.schemas import (
    AddAnnotationRequest,
    AnnotationResponse,
    BlockLocationResponse,
    BlockResponse,
    CollaboratorsResponse,
    CreatePaperRequest,
    EditHistoryResponse,
    InsertBlockRequest,
    PaperDetailResponse,
    PaperSummary,
    StructuralResponse,
    UpdateBlockFieldRequest,
)
from paer.papers.service import (
    AnnotationNotFoundError,
    CollaboratorNotFoundError,
    NotPaperAuthorError,
    PaperAccessDeniedError,
    PaperNotFoundError,
    PaperService,
)

router = APIRouter(prefix="/api/papers", tags=["papers"])

# First match wins: PathNotFoundError must precede BlockNotFoundError.
_ERROR_STATUS: dict[type[Exception], tuple[int, str]] = {
    PaperNotFoundError: (404, "paper_not_found"),
    PathNotFoundError: (404, "path_not_found"),
    BlockNotFoundError: (404, "block_not_found"),
    AnnotationNotFoundError: (404, "annotation_not_found"),
    CollaboratorNotFoundError: (404, "collaborator_not_found"),
    InvalidChildTypeError: (400, "invalid_child_type"),
    InvalidFieldError: (400, "invalid_field"),
    CannotDeleteRootError: (400, "cannot_delete_root"),
    DuplicateBlockIdError: (400, "duplicate_block_id"),
    PaperAccessDeniedError: (403, "access_denied"),
    NotPaperAuthorError: (403, "not_author"),
}
_HANDLED = tuple(_ERROR_STATUS)


def _http_error(exc: Exception) -> HTTPException:
    """Structured error body: a stable code, the message, and the error's fields."""
    for exc_type, (status_code, code) in _ERROR_STATUS.items():
        if isinstance(exc, exc_type):
            detail = {"code": code, "message": str(exc), **vars(exc)}
            return HTTPException(status_code=status_code, detail=detail)
    raise exc


def get_paper_service() -> PaperService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("PaperService not initialized")


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """The acting user. Authentication happens upstream; the id is trusted."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "missing_user", "message": "X-User-Id header required"},
        )
    return x_user_id


# -- Papers --


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_paper(
    request: CreatePaperRequest,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> PaperDetailResponse:
    try:
        return await service.create_paper(request, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.get("")
async def list_papers(
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> list[PaperSummary]:
    return await service.list_papers(user_id)


@router.get("/{paper_id}")
async def get_paper(
    paper_id: str,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> PaperDetailResponse:
    try:
        return await service.get_paper(paper_id, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.delete("/{paper_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_paper(
    paper_id: str,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> None:
    try:
        await service.delete_paper(paper_id, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


# -- Blocks --


@router.post("/{paper_id}/blocks", status_code=status.HTTP_201_CREATED)
async def insert_block(
    paper_id: str,
    request: InsertBlockRequest,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> StructuralResponse:
    try:
        return await service.insert_block(paper_id, request, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.patch("/{paper_id}/blocks/{block_id}")
async def update_block_field(
    paper_id: str,
    block_id: str,
    request: UpdateBlockFieldRequest,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> BlockResponse:
    try:
        return await service.update_block_field(
            paper_id, block_id, request.field, request.value, user_id,
        )
    except _HANDLED as e:
        raise _http_error(e) from e


@router.delete("/{paper_id}/blocks/{block_id}")
async def delete_block(
    paper_id: str,
    block_id: str,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> StructuralResponse:
    try:
        return await service.delete_block(paper_id, block_id, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.get("/{paper_id}/blocks/{block_id}")
async def locate_block(
    paper_id: str,
    block_id: str,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> BlockLocationResponse:
    try:
        return await service.locate_block(paper_id, block_id, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.get("/{paper_id}/resolve")
async def resolve_block_path(
    paper_id: str,
    path: list[int] = Query(default=[]),
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> BlockLocationResponse:
    try:
        return await service.resolve_block_path(paper_id, path, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.get("/{paper_id}/blocks/{block_id}/edit-history")
async def get_edit_history(
    paper_id: str,
    block_id: str,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> EditHistoryResponse:
    try:
        return await service.get_edit_history(paper_id, block_id, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


# -- Collaborators --


@router.post("/{paper_id}/collaborators/{collaborator_id}")
async def add_collaborator(
    paper_id: str,
    collaborator_id: str,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> CollaboratorsResponse:
    try:
        return await service.add_collaborator(paper_id, collaborator_id, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.delete("/{paper_id}/collaborators/{collaborator_id}")
async def remove_collaborator(
    paper_id: str,
    collaborator_id: str,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> CollaboratorsResponse:
    try:
        return await service.remove_collaborator(paper_id, collaborator_id, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


# -- Annotations --


@router.post(
    "/{paper_id}/blocks/{block_id}/annotations",
    status_code=status.HTTP_201_CREATED,
)
async def add_annotation(
    paper_id: str,
    block_id: str,
    request: AddAnnotationRequest,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> AnnotationResponse:
    try:
        return await service.add_annotation(paper_id, block_id, request, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.get("/{paper_id}/blocks/{block_id}/annotations")
async def get_block_annotations(
    paper_id: str,
    block_id: str,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> list[AnnotationResponse]:
    try:
        return await service.get_block_annotations(paper_id, block_id, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.delete(
    "/{paper_id}/annotations/{annotation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_annotation(
    paper_id: str,
    annotation_id: str,
    user_id: str = Depends(get_user_id),
    service: PaperService = Depends(get_paper_service),
) -> None:
    try:
        await service.remove_annotation(paper_id, annotation_id, user_id)
    except _HANDLED as e:
        raise _http_error(e) from e
