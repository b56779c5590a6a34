import traceback

import orjson
from aiohttp import web

from .config import Config, load_config
from .formatting import (
    format_friend_search,
    format_region_scan,
    format_servers,
    friend_search_payload,
    region_scan_payload,
)
from .regions import resolve_regions
from .servers import collect_servers, find_friend_servers
from .upstream import RobloxClient, create_client, encode_json

CONFIG_KEY = web.AppKey("config", Config)
CLIENT_KEY = web.AppKey("client", RobloxClient)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,HEAD,PUT,PATCH,POST,DELETE",
    "Access-Control-Allow-Headers": "Content-Type",
}

routes = web.RouteTableDef()


def json_response(data, *, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=encode_json)


def text_response(text: str) -> web.Response:
    return web.Response(text=text, content_type="text/plain")


def bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=encode_json({"error": message}), content_type="application/json"
    )


def parse_int(raw: str | None, name: str, *, default=None, minimum: int = 0):
    if raw is None or raw == "":
        return default
    # int() would also take "+1", " 1" and "1_0"
    if not (raw.isascii() and raw.isdigit()):
        raise bad_request(f"{name} must be an integer, got {raw!r}")
    value = int(raw)
    if value < minimum:
        raise bad_request(f"{name} must be at least {minimum}")
    return value


def parse_place_id(request: web.Request) -> int:
    return parse_int(request.match_info["placeId"], "placeId", minimum=1)


def is_true(value) -> bool:
    if isinstance(value, str):
        return value.lower() in ("true", "1")
    return value is True


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as err:
        err.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as err:
        traceback.print_exc()
        return json_response({"error": str(err) or type(err).__name__}, status=500)


@routes.get("/api/servers/{placeId}")
async def list_servers(request: web.Request) -> web.Response:
    place_id = parse_place_id(request)
    limit = parse_int(request.query.get("limit"), "limit", minimum=1)
    parsed = is_true(request.query.get("parsed"))
    client = request.app[CLIENT_KEY]

    servers = await collect_servers(client, place_id, limit=limit)

    if parsed:
        return text_response(
            format_servers(servers, place_id, client.config.deep_link_scheme)
        )
    return json_response({"servers": servers, "totalServers": len(servers)})


@routes.get("/api/test-auth")
async def test_auth(request: web.Request) -> web.Response:
    status, body = await request.app[CLIENT_KEY].get_authenticated_user()
    return json_response(body, status=status)


@routes.post("/api/servers/filtered/{placeId}")
async def list_friend_servers(request: web.Request) -> web.Response:
    place_id = parse_place_id(request)
    try:
        body = await request.json(loads=orjson.loads)
    except ValueError:
        # undecodable text as well as malformed JSON
        raise bad_request("body must be JSON") from None
    if not isinstance(body, dict):
        raise bad_request("body must be a JSON object")
    friend_ids = body.get("friendIds")
    if not friend_ids or not isinstance(friend_ids, list):
        raise bad_request("friendIds required for filtered endpoint")
    for friend_id in friend_ids:
        if isinstance(friend_id, bool) or not isinstance(friend_id, (int, str)):
            raise bad_request(f"invalid friend id {friend_id!r}")
        if not str(friend_id).strip():
            raise bad_request("friend ids must not be empty")
    client = request.app[CLIENT_KEY]

    search = await find_friend_servers(client, place_id, friend_ids)

    if is_true(body.get("parsed")):
        return text_response(
            format_friend_search(search, place_id, client.config.deep_link_scheme)
        )
    return json_response(friend_search_payload(search))


@routes.get("/api/servers/{placeId}/regions")
async def list_server_regions(request: web.Request) -> web.Response:
    place_id = parse_place_id(request)
    limit = parse_int(request.query.get("limit"), "limit", default=1, minimum=1)
    offset = parse_int(request.query.get("offset"), "offset", default=0)
    region = request.query.get("region") or None
    if region is not None and not region.isalpha():
        raise bad_request(f"region must be a country code, got {region!r}")
    parsed = is_true(request.query.get("parsed"))
    client = request.app[CLIENT_KEY]

    scan = await resolve_regions(
        client, place_id, limit=limit, region=region, offset=offset
    )

    if parsed:
        return text_response(
            format_region_scan(scan, place_id, client.config.deep_link_scheme)
        )
    return json_response(region_scan_payload(scan))


async def upstream_client(app: web.Application):
    app[CLIENT_KEY] = client = create_client(app[CONFIG_KEY])
    try:
        yield
    finally:
        await client.close()


def create_app(config: Config) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[CONFIG_KEY] = config
    app.add_routes(routes)
    app.cleanup_ctx.append(upstream_client)
    return app


def start():
    config = load_config()
    print(f"Server is running on port {config.port}")
    web.run_app(create_app(config), host=config.host, port=config.port, print=None)
