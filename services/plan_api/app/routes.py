"""HTTP routes for plans under ``/api/v1/plans``."""

from __future__ import annotations

import json
from typing import Any, Dict

import structlog
from aiohttp import web

from shared.utils.errors import DataProcessingError, ValidationError

from .concurrency import quote_etag
from .plans import PlanService

logger = structlog.get_logger(__name__)

PLANS_PATH = "/api/v1/plans"


def error_response(error: DataProcessingError) -> web.Response:
    """Render an error as ``{"error", "message", "details"}`` with its status."""
    return web.json_response(
        {"error": error.error_code, "message": error.message, "details": error.details},
        status=error.http_status,
    )


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Translate domain errors raised by handlers into JSON responses."""
    try:
        return await handler(request)
    except DataProcessingError as e:
        log = logger.warning if e.http_status < 500 else logger.error
        log("Request failed", method=request.method, path=request.path, **e.to_dict())
        return error_response(e)


async def _read_body(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Invalid request body: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", value=body)
    return body


class PlanRoutes:
    """Request handlers bound to a ``PlanService``."""

    def __init__(self, plans: PlanService) -> None:
        self.plans = plans

    def register(self, app: web.Application) -> None:
        app.middlewares.append(error_middleware)
        app.router.add_post(PLANS_PATH, self.create_plan)
        app.router.add_get(PLANS_PATH, self.list_plans)
        app.router.add_get(PLANS_PATH + "/{id}", self.get_plan)
        app.router.add_patch(PLANS_PATH + "/{id}", self.patch_plan)
        app.router.add_delete(PLANS_PATH + "/{id}", self.delete_plan)

    async def create_plan(self, request: web.Request) -> web.Response:
        body = await _read_body(request)
        plan, etag = await self.plans.create(body)
        return web.json_response(
            {"message": "Plan created successfully", "objectId": plan.object_id},
            status=201,
            headers={"ETag": quote_etag(etag)},
        )

    async def list_plans(self, request: web.Request) -> web.Response:
        plans = await self.plans.list()
        return web.json_response([plan.to_dict() for plan in plans])

    async def get_plan(self, request: web.Request) -> web.Response:
        result = await self.plans.get(
            request.match_info["id"], request.headers.get("If-None-Match")
        )
        headers = {"ETag": quote_etag(result.etag)}
        if result.not_modified:
            return web.Response(status=304, headers=headers)
        return web.json_response(result.plan.to_dict(), headers=headers)

    async def patch_plan(self, request: web.Request) -> web.Response:
        object_id = request.match_info["id"]
        if_match = request.headers.get("If-Match")
        # Precondition errors take priority over a malformed body; the write re-checks
        await self.plans.concurrency.check_precondition(object_id, if_match)

        body = await _read_body(request)
        plan, etag = await self.plans.patch(object_id, body, if_match)
        return web.json_response(plan.to_dict(), headers={"ETag": quote_etag(etag)})

    async def delete_plan(self, request: web.Request) -> web.Response:
        keys = await self.plans.delete(request.match_info["id"])
        return web.json_response(
            {"message": "Plan and all related components deleted successfully", "deletedKeys": keys}
        )
