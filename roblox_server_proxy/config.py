import os
import sys
from dataclasses import dataclass

from dotenv import load_dotenv

COOKIE_NAME = ".ROBLOSECURITY"

GAMES_URL = "https://games.roblox.com"
PRESENCE_URL = "https://presence.roblox.com"
USERS_URL = "https://users.roblox.com"
AUTH_URL = "https://auth.roblox.com"
GAMEJOIN_URL = "https://gamejoin.roblox.com"
GEO_URL = "http://ip-api.com"

PAGE_SIZE = 100
MAX_LIST_PAGES = 100
MAX_PAGES_PER_SORT = 20
JOIN_POLL_ATTEMPTS = 5
JOIN_POLL_DELAY = 1.0
REGION_MAX_ATTEMPTS = 25
DEEP_LINK_SCHEME = "roblox"


@dataclass(frozen=True)
class Config:
    cookie: str
    games_url: str = GAMES_URL
    presence_url: str = PRESENCE_URL
    users_url: str = USERS_URL
    auth_url: str = AUTH_URL
    gamejoin_url: str = GAMEJOIN_URL
    geo_url: str = GEO_URL
    page_size: int = PAGE_SIZE
    max_list_pages: int = MAX_LIST_PAGES
    max_pages_per_sort: int = MAX_PAGES_PER_SORT
    join_poll_attempts: int = JOIN_POLL_ATTEMPTS
    join_poll_delay: float = JOIN_POLL_DELAY
    region_max_attempts: int = REGION_MAX_ATTEMPTS
    deep_link_scheme: str = DEEP_LINK_SCHEME
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False

    @property
    def cookie_header(self) -> str:
        # accept either the bare token or a full "name=value" pair
        if "=" in self.cookie:
            return self.cookie
        return f"{COOKIE_NAME}={self.cookie}"


def load_config() -> Config:
    """
    Builds the config from the environment (and a .env file, if present).
    Exits the process when the session cookie is missing.
    """
    load_dotenv(override=True)

    cookie = os.getenv("ROBLOX_COOKIE")
    if not cookie:
        print("Need to pass in ROBLOX_COOKIE")
        sys.exit(1)
    port = os.getenv("PORT", "3000")
    if not port.isdigit():
        print(f"PORT must be a number, got {port!r}")
        sys.exit(1)

    return Config(
        cookie=cookie,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(port),
        debug=os.getenv("PROXY_DEBUG") is not None,
    )
