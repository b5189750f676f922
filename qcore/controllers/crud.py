"""
CRUD controller: HTTP request -> service call -> response envelope.

Handlers take the raw Starlette `Request`, so one controller instance can be
bound to any path by `CRUDRouter`. Errors are not caught here; the router's
`ErrorCatchingRoute` hands them to the error pipeline.

List query parameters (each optionally JSON-encoded):

    GET /users?filter={"email":"a@b.c"}&limit=10&skip=20&sort={"email":"desc"}
    GET /users?sort=-email
"""

import json
from typing import Any, Mapping, Optional

from fastapi import Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from qcore.core.errors import BadRequestError, MalformedJSONError
from qcore.core.events import EventBus
from qcore.core.responses import send_response
from qcore.services.crud import CRUDService

LIST_QUERY_PARAMS = ("filter", "limit", "skip", "sort")

# Accepted as a bare string when not JSON, e.g. ?sort=-created_at
RAW_STRING_PARAMS = frozenset({"sort"})


def _decode_query_value(name: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        if name in RAW_STRING_PARAMS:
            return raw
        raise MalformedJSONError(f"Invalid JSON in query parameter '{name}'", path=f"query.{name}")


def parse_list_query(params: Mapping[str, str]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split list query parameters into (filter, options)."""
    decoded = {
        name: _decode_query_value(name, params[name])
        for name in LIST_QUERY_PARAMS
        if params.get(name) not in (None, "")
    }
    filter = decoded.pop("filter", {})
    if not isinstance(filter, dict):
        raise BadRequestError("filter must be a JSON object", path="query.filter")
    return filter, decoded


async def read_json_body(request: Request) -> Optional[Any]:
    """Decoded JSON body, or None when the body is empty."""
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise MalformedJSONError()


class CRUDController:
    """
    With an `EventBus`, successful writes emit `<resource>.created`,
    `<resource>.updated` and `<resource>.deleted` carrying the response data.
    """

    def __init__(
        self,
        service: CRUDService,
        events: Optional[EventBus] = None,
        resource: Optional[str] = None,
    ):
        self.service = service
        self.events = events
        self.resource = resource or type(service).__name__.removesuffix("Service").lower()

    async def _publish(self, action: str, data: Any) -> None:
        if self.events is not None and isinstance(data, Mapping):
            await self.events.emit(f"{self.resource}.{action}", data)

    async def list(self, request: Request) -> JSONResponse:
        filter, options = parse_list_query(request.query_params)
        data = await run_in_threadpool(self.service.find_all, filter, options)
        return send_response(status.HTTP_200_OK, "Successfully fetched data", data)

    async def get_by_id(self, request: Request) -> JSONResponse:
        data = await run_in_threadpool(self.service.find_by_id, request.path_params["id"])
        return send_response(status.HTTP_200_OK, "Successfully fetched data", data)

    async def create(self, request: Request) -> JSONResponse:
        body = await read_json_body(request)
        data = await run_in_threadpool(self.service.create, body)
        await self._publish("created", data)
        return send_response(status.HTTP_201_CREATED, "Successfully created data", data)

    async def update(self, request: Request) -> JSONResponse:
        body = await read_json_body(request)
        data = await run_in_threadpool(self.service.update, request.path_params["id"], body)
        await self._publish("updated", data)
        return send_response(status.HTTP_200_OK, "Successfully updated data", data)

    async def delete(self, request: Request) -> JSONResponse:
        data = await run_in_threadpool(self.service.delete, request.path_params["id"])
        await self._publish("deleted", data)
        return send_response(status.HTTP_200_OK, "Successfully deleted data", data)

    async def restore(self, request: Request) -> JSONResponse:
        """Not routed by default; register it for resources with soft delete."""
        data = await run_in_threadpool(self.service.restore, request.path_params["id"])
        await self._publish("restored", data)
        return send_response(status.HTTP_200_OK, "Successfully restored data", data)
