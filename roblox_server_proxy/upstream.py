import aiohttp
import orjson

from .config import Config

GEO_FIELDS = "status,message,country,countryCode,region,regionName,city,lat,lon,query"


class UpstreamError(Exception):
    """
    The upstream answered, but not with something we can use.
    """


def encode_json(obj) -> str:
    return orjson.dumps(obj).decode("utf-8")


async def read_json(resp: aiohttp.ClientResponse):
    body = await resp.read()
    try:
        return orjson.loads(body)
    except orjson.JSONDecodeError as err:
        raise UpstreamError(
            f"{resp.method} {resp.url} returned invalid JSON (HTTP {resp.status})"
        ) from err


class RobloxClient:
    """
    Authenticated access to the Roblox web API, plus the unauthenticated IP
    geolocation lookup.

    One session per host, each opened with its `base_url`. Only the Roblox
    sessions carry the session cookie.
    """

    def __init__(
        self,
        config: Config,
        *,
        games_session: aiohttp.ClientSession,
        presence_session: aiohttp.ClientSession,
        users_session: aiohttp.ClientSession,
        auth_session: aiohttp.ClientSession,
        gamejoin_session: aiohttp.ClientSession,
        geo_session: aiohttp.ClientSession,
    ):
        self.config = config
        self.games_session = games_session
        self.presence_session = presence_session
        self.users_session = users_session
        self.auth_session = auth_session
        self.gamejoin_session = gamejoin_session
        self.geo_session = geo_session

    async def close(self):
        for session in (
            self.games_session,
            self.presence_session,
            self.users_session,
            self.auth_session,
            self.gamejoin_session,
            self.geo_session,
        ):
            await session.close()

    async def get_server_page(
        self,
        place_id: int,
        *,
        sort_order: str = "Desc",
        cursor: str | None = None,
        exclude_full_games: bool | None = None,
    ) -> dict:
        params = {"sortOrder": sort_order, "limit": self.config.page_size}
        if exclude_full_games is not None:
            params["excludeFullGames"] = "true" if exclude_full_games else "false"
        if cursor:
            params["cursor"] = cursor
        async with self.games_session.get(
            f"/v1/games/{place_id}/servers/0", params=params
        ) as resp:
            body = await read_json(resp)
        if not isinstance(body, dict):
            raise UpstreamError("server list response is not an object")
        return body

    async def get_authenticated_user(self) -> tuple[int, dict]:
        async with self.users_session.get(
            "/v1/users/authenticated", raise_for_status=False
        ) as resp:
            return resp.status, await read_json(resp)

    async def get_csrf_token(self) -> str:
        # the logout endpoint rejects token-less posts with a 403 that carries
        # a fresh token, without ending the session
        async with self.auth_session.post(
            "/v2/logout", raise_for_status=False
        ) as resp:
            token = resp.headers.get("x-csrf-token")
        if not token:
            raise UpstreamError(
                f"no x-csrf-token in logout response (HTTP {resp.status})"
            )
        return token

    async def get_presences(self, user_ids: list[int | str]) -> list[dict]:
        csrf_token = await self.get_csrf_token()
        async with self.presence_session.post(
            "/v1/presence/users",
            headers={"x-csrf-token": csrf_token},
            json={"userIds": user_ids},
        ) as resp:
            body = await read_json(resp)
        presences = body.get("userPresences") if isinstance(body, dict) else None
        if not isinstance(presences, list):
            raise UpstreamError("presence response has no userPresences")
        return presences

    async def join_game_instance(self, place_id: int, game_id: str) -> dict:
        csrf_token = await self.get_csrf_token()
        async with self.gamejoin_session.post(
            "/v1/join-game-instance",
            headers={"x-csrf-token": csrf_token},
            json={"placeId": place_id, "gameId": game_id, "isTeleport": False},
        ) as resp:
            body = await read_json(resp)
        if not isinstance(body, dict):
            raise UpstreamError("join response is not an object")
        return body

    async def geolocate(self, ip: str) -> dict:
        async with self.geo_session.get(
            f"/json/{ip}", params={"fields": GEO_FIELDS}
        ) as resp:
            body = await read_json(resp)
        if not isinstance(body, dict):
            raise UpstreamError("geolocation response is not an object")
        return body


def create_client(config: Config) -> RobloxClient:
    def roblox_session(base_url: str) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            base_url=base_url,
            headers={"Cookie": config.cookie_header},
            json_serialize=encode_json,
            raise_for_status=True,
        )

    return RobloxClient(
        config,
        games_session=roblox_session(config.games_url),
        presence_session=roblox_session(config.presence_url),
        users_session=roblox_session(config.users_url),
        auth_session=roblox_session(config.auth_url),
        gamejoin_session=roblox_session(config.gamejoin_url),
        geo_session=aiohttp.ClientSession(
            base_url=config.geo_url, raise_for_status=True
        ),
    )
