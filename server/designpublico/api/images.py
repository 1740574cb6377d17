"""Image proxy endpoint.

Admission control happens in ImageAdmissionMiddleware before the request
reaches this route.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from designpublico.services import Services, get_services


def create_router(route_prefix: str = "/proxy-image") -> APIRouter:
    router = APIRouter(prefix=route_prefix.rstrip("/"))

    @router.get("/{path:path}")
    async def proxy_image(path: str, request: Request,
                          services: Services = Depends(get_services)) -> Response:
        """GET <prefix>/<upstream path>?width=&height=&format=&quality="""
        result = await services.proxy.handle(
            "/" + path,
            request.query_params,
            accept=request.headers.get("accept"),
            if_none_match=request.headers.get("if-none-match"),
        )
        return Response(content=result.body, status_code=result.status_code, headers=result.headers)

    return router
