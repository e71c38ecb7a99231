"""
Access policy for the results resource.

Every operation resolves the caller's scope from an ordered role table
(admin first, then user), runs its lookup through that scope and returns a
Reply carrying the HTTP status and body. Admins see every result; regular
users only see results they own, and anything they do not own looks exactly
like a missing record. The role check always runs before the request body
is examined, so a caller with no recognised role gets 403 even when the
payload is incomplete.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Any, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from models.result import Result
from models.user import ROLE_ADMIN, ROLE_USER, User

logger = logging.getLogger(__name__)

# Non-standard success status: the mutated resource is returned in the body
HTTP_CONTENT_RETURNED = 209

# Bounds of the 32-bit integer columns
INT4_MIN = -(2**31)
INT4_MAX = 2**31 - 1

FORBIDDEN_MESSAGE = "`Forbidden`: you don't have permission to access"

# Reason phrases used in error bodies
STATUS_TEXTS: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
}


def status_text(code: int) -> str:
    return STATUS_TEXTS.get(int(code)) or HTTPStatus(code).phrase


class ResultStore(Protocol):
    async def find_all(self) -> Sequence[Result]: ...

    async def find_by_owner(self, user_id: int) -> Sequence[Result]: ...

    async def find_by_id(self, result_id: int, for_update: bool = False) -> Optional[Result]: ...

    async def find_user(self, user_id: int) -> Optional[User]: ...

    async def persist(self, result: Result) -> Result: ...

    async def remove(self, result: Result) -> None: ...


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    user_id: int
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class Message:
    """Status code and text shaping an error body."""

    code: int
    message: str

    @classmethod
    def for_status(cls, code: int, text: Optional[str] = None) -> Message:
        return cls(code=int(code), message=text if text is not None else status_text(code))

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class Reply:
    """HTTP status plus the body to render (None for an empty body)."""

    status_code: int
    payload: Optional[dict[str, Any]] = None

    @classmethod
    def error(cls, code: int, text: Optional[str] = None) -> Reply:
        return cls(int(code), {"message": Message.for_status(code, text).to_dict()})

    @classmethod
    def result(cls, code: int, data: Result | Sequence[Result]) -> Reply:
        if isinstance(data, Result):
            return cls(int(code), {"result": data.to_dict()})
        return cls(int(code), {"result": [item.to_dict() for item in data]})


class ResultPayload(BaseModel):
    """
    Optional-field patch for a result.

    A field left as None was either omitted or sent as null; both mean
    "not supplied". Booleans and numeric strings are rejected, and values
    must fit the 32-bit integer columns.
    """

    model_config = ConfigDict(extra="ignore")

    result: Optional[StrictInt] = Field(default=None, ge=INT4_MIN, le=INT4_MAX)
    user: Optional[StrictInt] = Field(default=None, ge=1, le=INT4_MAX)


def parse_payload(data: Any) -> Optional[ResultPayload]:
    """
    Build a patch from a decoded request body.

    Anything that is not a JSON object counts as an empty patch. Returns
    None when a supplied field has the wrong type.
    """
    if not isinstance(data, dict):
        return ResultPayload()
    try:
        return ResultPayload.model_validate(data)
    except ValidationError as e:
        logger.info("Rejected result payload: %s", e.errors())
        return None


class AdminScope:
    """Unrestricted access; ownership is never checked."""

    name = "admin"

    async def visible_results(self, store: ResultStore, principal: Principal) -> Sequence[Result]:
        return await store.find_all()

    async def find_result(
        self, store: ResultStore, principal: Principal, result_id: int, for_update: bool = False
    ) -> Optional[Result]:
        return await store.find_by_id(result_id, for_update=for_update)

    async def resolve_owner(self, store: ResultStore, principal: Principal, user_id: int) -> Optional[User]:
        return await store.find_user(user_id)


class OwnerScope:
    """Access restricted to the caller's own results."""

    name = "owner"

    async def visible_results(self, store: ResultStore, principal: Principal) -> Sequence[Result]:
        return await store.find_by_owner(principal.user_id)

    async def find_result(
        self, store: ResultStore, principal: Principal, result_id: int, for_update: bool = False
    ) -> Optional[Result]:
        result = await store.find_by_id(result_id, for_update=for_update)
        if result is not None and result.user_id != principal.user_id:
            return None
        return result

    async def resolve_owner(self, store: ResultStore, principal: Principal, user_id: int) -> Optional[User]:
        if user_id != principal.user_id:
            return None
        return await store.find_user(user_id)


AccessScope = AdminScope | OwnerScope

# Evaluated in order; the first role the principal holds wins.
ROLE_SCOPES: tuple[tuple[str, AccessScope], ...] = (
    (ROLE_ADMIN, AdminScope()),
    (ROLE_USER, OwnerScope()),
)


def resolve_scope(principal: Principal) -> Optional[AccessScope]:
    for role, scope in ROLE_SCOPES:
        if principal.has_role(role):
            return scope
    return None


def _forbidden(principal: Principal, operation: str) -> Reply:
    logger.warning(
        "Denied results access",
        extra={"user_id": principal.user_id, "operation": operation},
    )
    return Reply.error(HTTPStatus.FORBIDDEN, FORBIDDEN_MESSAGE)


async def list_results(store: ResultStore, principal: Principal) -> Reply:
    scope = resolve_scope(principal)
    if scope is None:
        return _forbidden(principal, "list")

    results = await scope.visible_results(store, principal)
    logger.info(
        "Listed results",
        extra={"user_id": principal.user_id, "scope": scope.name, "count": len(results)},
    )
    if not results:
        return Reply.error(HTTPStatus.NOT_FOUND)
    return Reply.result(HTTPStatus.OK, results)


async def get_result(store: ResultStore, principal: Principal, result_id: int) -> Reply:
    scope = resolve_scope(principal)
    if scope is None:
        return _forbidden(principal, "get")

    result = await scope.find_result(store, principal, result_id)
    if result is None:
        return Reply.error(HTTPStatus.NOT_FOUND)
    return Reply.result(HTTPStatus.OK, result)


async def create_result(store: ResultStore, principal: Principal, data: Any) -> Reply:
    scope = resolve_scope(principal)
    if scope is None:
        return _forbidden(principal, "create")

    payload = parse_payload(data)
    if payload is None or payload.result is None or payload.user is None:
        return Reply.error(HTTPStatus.UNPROCESSABLE_ENTITY)

    owner = await scope.resolve_owner(store, principal, payload.user)
    if owner is None:
        return Reply.error(HTTPStatus.BAD_REQUEST)

    result = await store.persist(
        Result(result=payload.result, user=owner, time=datetime.utcnow())
    )
    logger.info(
        "Created result",
        extra={"user_id": principal.user_id, "result_id": result.id, "owner_id": owner.id},
    )
    return Reply.result(HTTPStatus.CREATED, result)


async def update_result(store: ResultStore, principal: Principal, result_id: int, data: Any) -> Reply:
    """
    Apply a partial update to a result.

    Only the fields present in the payload change. The target row is
    locked for the rest of the transaction so concurrent updates of the
    same result are applied one after the other.
    """
    scope = resolve_scope(principal)
    if scope is None:
        return _forbidden(principal, "update")

    patch = parse_payload(data)
    if patch is None:
        return Reply.error(HTTPStatus.UNPROCESSABLE_ENTITY)

    owner: Optional[User] = None
    if patch.user is not None:
        owner = await scope.resolve_owner(store, principal, patch.user)
        if owner is None:
            return Reply.error(HTTPStatus.BAD_REQUEST)

    result = await scope.find_result(store, principal, result_id, for_update=True)
    if result is None:
        return Reply.error(HTTPStatus.BAD_REQUEST)

    if patch.result is not None:
        result.result = patch.result
    if owner is not None:
        result.user = owner
    result = await store.persist(result)

    logger.info(
        "Updated result",
        extra={
            "user_id": principal.user_id,
            "result_id": result_id,
            "fields": sorted(patch.model_dump(exclude_none=True)),
        },
    )
    return Reply.result(HTTP_CONTENT_RETURNED, result)


async def delete_result(store: ResultStore, principal: Principal, result_id: int) -> Reply:
    scope = resolve_scope(principal)
    if scope is None:
        return _forbidden(principal, "delete")

    result = await scope.find_result(store, principal, result_id)
    if result is None:
        return Reply.error(HTTPStatus.NOT_FOUND)

    await store.remove(result)
    logger.info(
        "Deleted result",
        extra={"user_id": principal.user_id, "result_id": result_id},
    )
    return Reply(HTTPStatus.NO_CONTENT.value)


def allowed_methods(result_id: int) -> list[str]:
    """HTTP methods supported on the collection (id 0) or on one result."""
    if result_id:
        return ["GET", "PUT", "DELETE"]
    return ["GET", "POST"]
