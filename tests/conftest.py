import orjson
import pytest
from aiohttp import web

from roblox_server_proxy.app import create_app
from roblox_server_proxy.config import Config
from roblox_server_proxy.upstream import create_client

PLACE_ID = 123


def make_servers(count: int, *, start: int = 0, prefix: str = "server") -> list[dict]:
    return [
        {
            "id": f"{prefix}-{i}",
            "maxPlayers": 12,
            "playing": i % 12,
            "playerTokens": [f"token-{i}-{n}" for n in range(i % 12)],
            "players": [],
            "fps": 59.95,
            "ping": 40 + i % 7,
        }
        for i in range(start, start + count)
    ]


def chunk(servers: list[dict], size: int = 100) -> list[list[dict]]:
    return [servers[i : i + size] for i in range(0, len(servers), size)]


def joined(ip: str, status: int = 2) -> dict:
    return {
        "jobId": "job",
        "status": status,
        "joinScript": {"MachineAddress": ip, "UdmuxEndpoints": None},
    }


def located(country_code: str, city: str = "Somewhere") -> dict:
    return {
        "status": "success",
        "country": country_code,
        "countryCode": country_code,
        "region": "XX",
        "regionName": "Region",
        "city": city,
        "lat": 1.5,
        "lon": -2.5,
        "query": "",
    }


class FakeRoblox:
    """
    In-process stand-in for the Roblox web API and the geolocation service.
    """

    def __init__(self):
        self.pages = {"Desc": [], "Asc": []}
        # a listing that hands out a cursor forever
        self.endless = False
        self.fail_listing = False
        self.presences = []
        self.join_responses = {}
        self.geo = {}
        self.csrf_token = "csrf-1"
        self.auth = (200, {"id": 1, "name": "builder", "displayName": "Builder"})
        self.requests = []

    def set_pages(self, sort_order: str, servers: list[dict], size: int = 100):
        self.pages[sort_order] = chunk(servers, size)

    def calls(self, name: str) -> list[dict]:
        return [info for kind, info in self.requests if kind == name]

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/v1/games/{placeId}/servers/0", self.server_page)
        app.router.add_get("/v1/users/authenticated", self.authenticated)
        app.router.add_post("/v2/logout", self.logout)
        app.router.add_post("/v1/presence/users", self.presence)
        app.router.add_post("/v1/join-game-instance", self.join)
        app.router.add_get("/json/{ip}", self.geolocate)
        return app

    async def server_page(self, request: web.Request) -> web.Response:
        sort_order = request.query.get("sortOrder", "Desc")
        self.requests.append(
            (
                "page",
                {
                    "placeId": request.match_info["placeId"],
                    "sortOrder": sort_order,
                    "cursor": request.query.get("cursor"),
                    "limit": request.query.get("limit"),
                    "excludeFullGames": request.query.get("excludeFullGames"),
                    "cookie": request.headers.get("Cookie"),
                },
            )
        )
        if self.fail_listing:
            return web.json_response({"errors": [{"message": "down"}]}, status=503)
        cursor = request.query.get("cursor")
        index = int(cursor.split("-")[1]) if cursor else 0
        pages = self.pages.get(sort_order, [])
        data = pages[index] if index < len(pages) else []
        next_cursor = None
        if self.endless or index + 1 < len(pages):
            next_cursor = f"{sort_order}-{index + 1}"
        return web.json_response(
            {
                "previousPageCursor": cursor,
                "nextPageCursor": next_cursor,
                "data": data,
            }
        )

    async def authenticated(self, request: web.Request) -> web.Response:
        self.requests.append(("auth", {"cookie": request.headers.get("Cookie")}))
        status, body = self.auth
        return web.json_response(body, status=status)

    async def logout(self, request: web.Request) -> web.Response:
        self.requests.append(("logout", {}))
        return web.json_response(
            {"errors": [{"code": 0, "message": "Token Validation Failed"}]},
            status=403,
            headers={"x-csrf-token": self.csrf_token},
        )

    def check_token(self, request: web.Request):
        if request.headers.get("x-csrf-token") != self.csrf_token:
            raise web.HTTPForbidden(text="Token Validation Failed")

    async def presence(self, request: web.Request) -> web.Response:
        self.check_token(request)
        body = await request.json()
        self.requests.append(("presence", body))
        return web.json_response({"userPresences": self.presences})

    async def join(self, request: web.Request) -> web.Response:
        self.check_token(request)
        body = await request.json()
        self.requests.append(("join", body))
        responses = self.join_responses.get(body["gameId"])
        if not responses:
            return web.json_response(
                {"status": 12, "message": "Unknown game", "joinScript": None}
            )
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if response == "error":
            return web.json_response({"errors": []}, status=500)
        return web.json_response(response)

    async def geolocate(self, request: web.Request) -> web.Response:
        ip = request.match_info["ip"]
        self.requests.append(("geo", {"ip": ip, "cookie": request.headers.get("Cookie")}))
        geo = self.geo.get(ip, {"status": "fail", "message": "reserved range"})
        return web.Response(body=orjson.dumps({**geo, "query": ip}), content_type="application/json")


@pytest.fixture
def roblox():
    return FakeRoblox()


@pytest.fixture
async def upstream(aiohttp_server, roblox):
    return await aiohttp_server(roblox.make_app())


@pytest.fixture
def config(upstream):
    url = str(upstream.make_url("")).rstrip("/")
    return Config(
        cookie="secret",
        games_url=url,
        presence_url=url,
        users_url=url,
        auth_url=url,
        gamejoin_url=url,
        geo_url=url,
        join_poll_attempts=3,
        join_poll_delay=0,
        region_max_attempts=5,
    )


@pytest.fixture
async def client(config):
    client = create_client(config)
    try:
        yield client
    finally:
        await client.close()


@pytest.fixture
async def proxy(aiohttp_client, config):
    return await aiohttp_client(create_app(config))
