# duf-serve/duf_backend/server.py

from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import PlainTextResponse, Response

from duf_backend.archive import zip_response
from duf_backend.cache import send_file
from duf_backend.dispatch import Action, parse_query, select_action
from duf_backend.listing import list_dir, render_index, search_dir
from duf_backend.paths import probe, resolve_path
from duf_backend.upload import handle_delete, handle_upload
from duf_shared.auth import require_auth
from duf_shared.config import Settings
from duf_shared.errors import Forbidden, NotFound
from duf_shared.logging_config import setup_logger

# Set up logger
logger = setup_logger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "range, content-type, accept, origin, www-authenticate",
}


def request_target(request: Request) -> str:
    """The request path still percent-encoded, without the query string."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.decode("latin-1").split("?", 1)[0]
    return quote(request.url.path)


async def dispatch(request: Request, settings: Settings) -> Response:
    url_path = request_target(request)
    path = resolve_path(settings.root, url_path)
    state = await probe(path)
    query = parse_query(request.url.query)
    action = select_action(request.method, state, query, url_path.endswith("/"), settings.readonly)
    logger.debug(f"{request.method} {url_path} -> {action.value} ({path})")

    if action is Action.ZIP_DIR:
        return zip_response(path)
    if action is Action.SEARCH_DIR:
        items = await search_dir(path, query.term)
        return render_index(settings.root, path, items, settings.readonly)
    if action is Action.SEND_FILE:
        return await send_file(path, request.headers)
    if action is Action.LIST_EMPTY:
        return render_index(settings.root, path, [], settings.readonly)
    if action is Action.LIST_DIR:
        items = await list_dir(path) if state.is_dir else []
        return render_index(settings.root, path, items, settings.readonly)
    if action is Action.NO_CONTENT:
        return Response(status_code=204)
    if action is Action.UPLOAD:
        await handle_upload(path, request.stream(), unzip=query.unzip)
        return Response()
    if action is Action.DELETE:
        if path == settings.root:
            raise Forbidden("Refusing to delete the served root.")
        await handle_delete(path, state.is_dir)
        return Response()
    if action is Action.FORBIDDEN:
        logger.warning(f"Read-only mode: refused {request.method} {url_path}")
        raise Forbidden("Server is read-only.")
    raise NotFound()


def create_app(settings: Settings) -> FastAPI:
    """Build the application around one immutable Settings value."""
    # No docs routes: every path belongs to the served tree
    app = FastAPI(title="duf-serve", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        response = await call_next(request)
        if settings.cors:
            response.headers.update(CORS_HEADERS)
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        logger.info(f'"{request.method} {target}" - {response.status_code}')
        return response

    @app.api_route("/{path:path}", methods=ALL_METHODS, dependencies=[Depends(require_auth)])
    async def serve(request: Request):
        try:
            return await dispatch(request, settings)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error handling {request.method} {request.url.path}: {str(e)}", exc_info=True)
            return PlainTextResponse(str(e), status_code=500)

    logger.info(f"Application created for root {settings.root}")
    return app
