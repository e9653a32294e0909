"""Client side of the authoritative store: the persistence contract and its
HTTP implementation against the paper API."""

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from paer.blocks.errors import (
    BlockNotFoundError,
    BlockTreeError,
    CannotDeleteRootError,
    DuplicateBlockIdError,
    InvalidChildTypeError,
    InvalidFieldError,
    PathNotFoundError,
    PersistenceUnavailableError,
)
from paer.blocks.nodes import Block, PaperBlock, load_block, load_paper


@dataclass(frozen=True)
class StructuralResult:
    """Server answer to an insert or delete."""

    block_id: str
    parent: Block  # authoritative copy of the parent, subtree included


class PersistenceService(Protocol):
    async def get_tree(self, paper_id: str) -> PaperBlock: ...

    async def save_field(
        self, paper_id: str, block_id: str, field: str, value: str,
    ) -> Block: ...

    async def insert_node(
        self,
        paper_id: str,
        parent_block_id: str,
        after_block_id: str | None,
        block_type: str,
    ) -> StructuralResult: ...

    async def delete_node(self, paper_id: str, block_id: str) -> StructuralResult: ...


class PersistenceRejectedError(BlockTreeError):
    """The server refused the request for a reason that is not a tree error
    (missing paper, no access, malformed request)."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Rejected ({status_code}): {message}")


_ERRORS_BY_CODE = {
    "block_not_found": lambda d: BlockNotFoundError(d["block_id"]),
    "path_not_found": lambda d: PathNotFoundError(d["path"]),
    "invalid_child_type": lambda d: InvalidChildTypeError(d["parent_type"], d["child_type"]),
    "invalid_field": lambda d: InvalidFieldError(d["block_type"], d["field"]),
    "cannot_delete_root": lambda d: CannotDeleteRootError(d["block_id"]),
    "duplicate_block_id": lambda d: DuplicateBlockIdError(d["block_id"]),
}


class HttpPersistence:
    """PersistenceService over the REST API.

    The caller owns the ``httpx.AsyncClient`` (base URL, timeouts, transport).
    Tree errors come back as the matching BlockTreeError; transport failures
    and 5xx responses as PersistenceUnavailableError.
    """

    def __init__(self, client: httpx.AsyncClient, user_id: str) -> None:
        self._client = client
        self._user_id = user_id

    async def get_tree(self, paper_id: str) -> PaperBlock:
        response = await self._request("GET", f"/api/papers/{paper_id}")
        return load_paper(response.json()["root"])

    async def save_field(
        self, paper_id: str, block_id: str, field: str, value: str,
    ) -> Block:
        response = await self._request(
            "PATCH",
            f"/api/papers/{paper_id}/blocks/{block_id}",
            json={"field": field, "value": value},
        )
        return load_block(response.json()["block"])

    async def insert_node(
        self,
        paper_id: str,
        parent_block_id: str,
        after_block_id: str | None,
        block_type: str,
    ) -> StructuralResult:
        response = await self._request(
            "POST",
            f"/api/papers/{paper_id}/blocks",
            json={
                "parent_block_id": parent_block_id,
                "after_block_id": after_block_id,
                "block_type": block_type,
            },
        )
        return self._structural(response.json())

    async def delete_node(self, paper_id: str, block_id: str) -> StructuralResult:
        response = await self._request(
            "DELETE", f"/api/papers/{paper_id}/blocks/{block_id}",
        )
        return self._structural(response.json())

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(
                method, url, headers={"X-User-Id": self._user_id}, **kwargs,
            )
        except httpx.TransportError as e:
            raise PersistenceUnavailableError(str(e) or type(e).__name__) from e

        if response.status_code >= 500:
            raise PersistenceUnavailableError(f"HTTP {response.status_code}")
        if response.is_error:
            raise self._error_from(response)
        return response

    @staticmethod
    def _error_from(response: httpx.Response) -> BlockTreeError:
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = None

        if isinstance(detail, dict):
            build = _ERRORS_BY_CODE.get(detail.get("code"))
            if build is not None:
                return build(detail)
            message = str(detail.get("message", detail))
        else:
            message = str(detail) if detail else response.text
        return PersistenceRejectedError(response.status_code, message)

    @staticmethod
    def _structural(data: dict[str, Any]) -> StructuralResult:
        return StructuralResult(
            block_id=data["block_id"], parent=load_block(data["parent"]),
        )
