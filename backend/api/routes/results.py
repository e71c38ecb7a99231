"""
Results endpoints.

Endpoints (each also accepts a `.json` / `.xml` suffix):
- GET /api/v1/results - List the results visible to the caller
- POST /api/v1/results - Create a result
- GET /api/v1/results/{result_id} - Fetch one result
- PUT /api/v1/results/{result_id} - Partially update a result
- DELETE /api/v1/results/{result_id} - Delete a result
- OPTIONS /api/v1/results[/{result_id}] - List supported methods
"""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from api.auth_middleware import AuthContext, get_current_auth
from api.responses import SUPPORTED_FORMATS, negotiate_format, render_reply
from db.queries import ResultRepository
from models.database import get_session
from services import result_policy

router = APIRouter()
logger = logging.getLogger(__name__)


async def get_result_store() -> AsyncGenerator[ResultRepository, None]:
    """Request-scoped repository over a fresh database session."""
    async with get_session() as session:
        yield ResultRepository(session)


def response_format(request: Request) -> str:
    """Resolve the response format, rejecting unknown path suffixes."""
    fmt = request.path_params.get("fmt")
    if fmt is not None and fmt not in SUPPORTED_FORMATS:
        raise HTTPException(status_code=404, detail=result_policy.status_text(404))
    return negotiate_format(request)


async def read_json_body(request: Request) -> Any:
    """Decode the request body; anything that is not valid JSON reads as None."""
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        logger.info("Ignoring non-JSON request body on %s", request.url.path)
        return None


@router.get("")
@router.get(".{fmt}")
async def list_results(
    output_format: str = Depends(response_format),
    auth: AuthContext = Depends(get_current_auth),
    store: ResultRepository = Depends(get_result_store),
) -> Response:
    """Return every result the caller has access to."""
    reply = await result_policy.list_results(store, auth.principal)
    return render_reply(reply, output_format)


@router.post("")
@router.post(".{fmt}")
async def create_result(
    request: Request,
    output_format: str = Depends(response_format),
    auth: AuthContext = Depends(get_current_auth),
    store: ResultRepository = Depends(get_result_store),
) -> Response:
    """Create a result for the user named in the payload."""
    data = await read_json_body(request)
    reply = await result_policy.create_result(store, auth.principal, data)
    return render_reply(reply, output_format)


@router.options("")
@router.options(".{fmt}")
async def options_results(_: str = Depends(response_format)) -> Response:
    """Advertise the methods supported on the collection."""
    return _allow_response(0)


@router.get("/{result_id:int}")
@router.get("/{result_id:int}.{fmt}")
async def get_result(
    result_id: int,
    output_format: str = Depends(response_format),
    auth: AuthContext = Depends(get_current_auth),
    store: ResultRepository = Depends(get_result_store),
) -> Response:
    """Return a single result if the caller has access to it."""
    reply = await result_policy.get_result(store, auth.principal, result_id)
    return render_reply(reply, output_format)


@router.put("/{result_id:int}")
@router.put("/{result_id:int}.{fmt}")
async def update_result(
    result_id: int,
    request: Request,
    output_format: str = Depends(response_format),
    auth: AuthContext = Depends(get_current_auth),
    store: ResultRepository = Depends(get_result_store),
) -> Response:
    """Update the supplied fields of a result."""
    data = await read_json_body(request)
    reply = await result_policy.update_result(store, auth.principal, result_id, data)
    return render_reply(reply, output_format)


@router.delete("/{result_id:int}")
@router.delete("/{result_id:int}.{fmt}")
async def delete_result(
    result_id: int,
    output_format: str = Depends(response_format),
    auth: AuthContext = Depends(get_current_auth),
    store: ResultRepository = Depends(get_result_store),
) -> Response:
    """Delete a result the caller has access to."""
    reply = await result_policy.delete_result(store, auth.principal, result_id)
    return render_reply(reply, output_format)


@router.options("/{result_id:int}")
@router.options("/{result_id:int}.{fmt}")
async def options_result(result_id: int, _: str = Depends(response_format)) -> Response:
    """Advertise the methods supported on a single result."""
    return _allow_response(result_id)


def _allow_response(result_id: int) -> Response:
    methods = result_policy.allowed_methods(result_id)
    return JSONResponse(content=None, status_code=200, headers={"Allow": ", ".join(methods)})
