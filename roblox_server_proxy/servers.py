from dataclasses import dataclass, field

from .formatting import join_link
from .upstream import RobloxClient

SORT_ORDERS = ("Desc", "Asc")


def get_server_id(server: dict) -> str | None:
    server_id = server.get("id")
    return str(server_id) if server_id is not None else None


async def collect_servers(
    client: RobloxClient,
    place_id: int,
    *,
    limit: int | None = None,
    sort_order: str = "Desc",
    dedupe: bool = False,
    max_pages: int | None = None,
) -> list[dict]:
    """
    Follows the server list cursor until `limit` servers are gathered, the
    upstream runs out of pages, or `max_pages` pages have been read.
    """
    if max_pages is None:
        max_pages = client.config.max_list_pages
    debug = client.config.debug
    servers = []
    seen = set()
    cursor = None
    pages = 0
    while pages < max_pages:
        page = await client.get_server_page(
            place_id, sort_order=sort_order, cursor=cursor
        )
        pages += 1
        for server in page.get("data") or []:
            if dedupe:
                server_id = get_server_id(server)
                if server_id in seen:
                    continue
                seen.add(server_id)
            servers.append(server)
        if debug:
            print(f"Page {pages} ({sort_order}): {len(servers)} servers so far")
        if limit is not None and len(servers) >= limit:
            return servers[:limit]
        cursor = page.get("nextPageCursor")
        if not cursor:
            break
    else:
        print(f"Stopped listing {place_id} after {pages} pages, cursor still open")
    return servers


@dataclass
class FriendSearch:
    servers: list[dict] = field(default_factory=list)
    presences: list[dict] = field(default_factory=list)
    join_links: list[dict] = field(default_factory=list)
    looking_for: list[str] = field(default_factory=list)
    pages_searched: int = 0
    servers_searched: int = 0

    @property
    def unique_servers(self) -> int:
        return self.servers_searched


def normalize_friend_ids(friend_ids) -> list[int | str]:
    """
    Deduplicates and sorts friend IDs so the presence lookup does not depend
    on input order. Numeric IDs are sent as numbers.
    """
    ids = sorted({str(friend_id).strip() for friend_id in friend_ids})
    return [int(friend_id) if friend_id.isdigit() else friend_id for friend_id in ids]


def is_in_place(presence: dict, place_id: int) -> bool:
    return bool(presence.get("gameId")) and str(presence.get("placeId")) == str(
        place_id
    )


async def find_friend_servers(
    client: RobloxClient,
    place_id: int,
    friend_ids,
    *,
    sort_orders=SORT_ORDERS,
    max_pages_per_order: int | None = None,
) -> FriendSearch:
    """
    Finds the servers of `place_id` that the given friends are playing on.

    Public server lists are capped and shuffled, so each sort order is walked
    separately and the results are merged by server ID.
    """
    if max_pages_per_order is None:
        max_pages_per_order = client.config.max_pages_per_sort
    config = client.config
    search = FriendSearch()
    search.presences = await client.get_presences(normalize_friend_ids(friend_ids))

    game_ids = set()
    for presence in search.presences:
        if not is_in_place(presence, place_id):
            continue
        game_id = str(presence["gameId"])
        game_ids.add(game_id)
        search.join_links.append(
            {
                "userId": presence.get("userId"),
                "joinUrl": join_link(config.deep_link_scheme, place_id, game_id),
            }
        )
    search.looking_for = sorted(game_ids)
    if not game_ids:
        print(f"No friends in place {place_id}, skipping server search")
        return search

    seen = set()
    found = set()
    for sort_order in sort_orders:
        if config.debug:
            print(f"--- Searching with sortOrder: {sort_order} ---")
        cursor = None
        for _ in range(max_pages_per_order):
            page = await client.get_server_page(
                place_id,
                sort_order=sort_order,
                cursor=cursor,
                exclude_full_games=False,
            )
            search.pages_searched += 1
            data = page.get("data") or []
            for server in data:
                server_id = get_server_id(server)
                if server_id in seen:
                    continue
                seen.add(server_id)
                search.servers_searched += 1
                if server_id in game_ids:
                    found.add(server_id)
                    search.servers.append(server)
                    print(f"Server with friend found: {server_id}")
            if config.debug:
                print(
                    f"Page {search.pages_searched} ({sort_order}): {len(data)} servers, unique total: {len(seen)}"
                )
            if found == game_ids:
                break
            cursor = page.get("nextPageCursor")
            if not cursor:
                break
        if found == game_ids:
            print(f"Found all {len(game_ids)} friend servers")
            break

    print(
        f"Searched {search.servers_searched} servers across {search.pages_searched} pages"
    )
    return search
