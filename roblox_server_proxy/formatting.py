def join_link(scheme: str, place_id, game_id) -> str:
    return f"{scheme}://experiences/start?placeId={place_id}&gameInstanceId={game_id}"


def format_fps(fps) -> str:
    if isinstance(fps, (int, float)):
        return f"{fps:.2f}"
    return "?"


def format_region(region: dict) -> str:
    parts = [region.get("city"), region.get("regionName"), region.get("countryCode")]
    place = ", ".join(part for part in parts if part) or "Unknown"
    return f"{place} ({region.get('ip')})"


def format_servers(servers: list[dict], place_id, scheme: str) -> str:
    """
    Renders servers as an indented plain text listing with join links.
    """
    text = f"Total Servers: {len(servers)}\n\n"
    for index, server in enumerate(servers, start=1):
        text += f"Server {index}:\n"
        text += f"  ID: {server.get('id')}\n"
        text += f"  Players: {server.get('playing', 0)}/{server.get('maxPlayers', 0)}\n"
        text += f"  FPS: {format_fps(server.get('fps'))}\n"
        ping = server.get("ping")
        text += f"  Ping: {'?' if ping is None else ping}ms\n"
        text += f"  Player Tokens: {len(server.get('playerTokens') or [])}\n"
        region = server.get("region")
        if region:
            text += f"  Region: {format_region(region)}\n"
        text += f"  Join Link: {join_link(scheme, place_id, server.get('id'))}\n"
        text += "\n"
    return text


def format_friend_search(search, place_id, scheme: str) -> str:
    text = format_servers(search.servers, place_id, scheme)
    text += "\nFriend Presences:\n"
    for presence in search.presences:
        text += f"  User {presence.get('userId')}: {presence.get('lastLocation') or 'Unknown'}\n"
        game_id = presence.get("gameId")
        if game_id:
            text += f"    Game ID: {game_id}\n"
            link = join_link(scheme, presence.get("placeId"), game_id)
            text += f"    Join Link: {link}\n"
    text += f"\nDebug: Searched {search.servers_searched} servers across {search.pages_searched} pages\n"
    return text


def format_region_scan(scan, place_id, scheme: str) -> str:
    text = format_servers(scan.servers, place_id, scheme)
    wanted = f" in {scan.region}" if scan.region else ""
    text += (
        f"Matched {len(scan.servers)}{wanted}: attempted {scan.attempted}, "
        f"resolved {scan.resolved}, checked {scan.checked_total} servers total\n"
    )
    return text


def friend_search_payload(search) -> dict:
    return {
        "servers": search.servers,
        "presences": search.presences,
        "joinLinks": search.join_links,
        "debug": {
            "totalServersSearched": search.servers_searched,
            "uniqueServers": search.unique_servers,
            "pagesSearched": search.pages_searched,
            "lookingFor": search.looking_for,
        },
    }


def region_scan_payload(scan) -> dict:
    return {
        "servers": scan.servers,
        "matched": len(scan.servers),
        "attempted": scan.attempted,
        "resolved": scan.resolved,
        "checkedTotal": scan.checked_total,
        "offset": scan.offset,
        "nextOffset": scan.next_offset,
        "region": scan.region,
    }
