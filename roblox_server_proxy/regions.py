import asyncio
import traceback
from dataclasses import dataclass, field

from .servers import collect_servers, get_server_id
from .upstream import RobloxClient

# join statuses that mean "still placing you", ask again
IN_PROGRESS_STATUSES = {0, 1}


def extract_ip(join_payload: dict) -> str | None:
    join_script = join_payload.get("joinScript")
    if not isinstance(join_script, dict):
        return None
    udmux = join_script.get("UdmuxEndpoints")
    if isinstance(udmux, list):
        for endpoint in udmux:
            if isinstance(endpoint, dict) and endpoint.get("Address"):
                return endpoint["Address"]
    return join_script.get("MachineAddress") or None


def to_region(ip: str, geo: dict) -> dict:
    return {
        "ip": ip,
        "country": geo.get("country"),
        "countryCode": geo.get("countryCode"),
        "region": geo.get("region"),
        "regionName": geo.get("regionName"),
        "city": geo.get("city"),
        "lat": geo.get("lat"),
        "lon": geo.get("lon"),
    }


async def resolve_server_region(
    client: RobloxClient, place_id: int, server_id: str
) -> dict | None:
    """
    Simulates joining a server to learn its address, then geolocates it.
    Every join request, polls included, goes out with a freshly fetched CSRF
    token. Returns None on any failure, so a batch of lookups keeps going.
    """
    config = client.config
    try:
        payload = await client.join_game_instance(place_id, server_id)
        for _ in range(config.join_poll_attempts):
            if payload.get("status") not in IN_PROGRESS_STATUSES:
                break
            await asyncio.sleep(config.join_poll_delay)
            payload = await client.join_game_instance(place_id, server_id)
        ip = extract_ip(payload)
        if not ip:
            print(
                f"No address for {server_id}: status={payload.get('status')} {payload.get('message') or ''}"
            )
            return None
        geo = await client.geolocate(ip)
        if geo.get("status") != "success":
            print(f"Geolocation failed for {ip}: {geo.get('message')}")
            return None
        return to_region(ip, geo)
    except Exception:
        traceback.print_exc()
        return None


@dataclass
class RegionScan:
    servers: list[dict] = field(default_factory=list)
    region: str | None = None
    offset: int = 0
    attempted: int = 0
    resolved: int = 0
    next_offset: int | None = None

    @property
    def checked_total(self) -> int:
        return self.offset + self.attempted


async def resolve_regions(
    client: RobloxClient,
    place_id: int,
    *,
    limit: int = 1,
    region: str | None = None,
    offset: int = 0,
) -> RegionScan:
    """
    Walks the server list from `offset`, resolving regions one server at a
    time until `limit` servers match `region` (a country code, any if None)
    or the attempt ceiling is reached.
    """
    max_attempts = client.config.region_max_attempts
    wanted = region.upper() if region else None
    scan = RegionScan(region=wanted, offset=offset)

    servers = await collect_servers(client, place_id, limit=offset + max_attempts)
    candidates = servers[offset:]
    for server in candidates:
        if scan.attempted >= max_attempts or len(scan.servers) >= limit:
            break
        server_id = get_server_id(server)
        scan.attempted += 1
        if server_id is None:
            continue
        found = await resolve_server_region(client, place_id, server_id)
        if found is None:
            continue
        scan.resolved += 1
        if wanted and (found.get("countryCode") or "").upper() != wanted:
            continue
        scan.servers.append({**server, "region": found})

    # a full listing means the upstream may still have more past it
    if scan.checked_total < len(servers) or len(servers) >= offset + max_attempts:
        scan.next_offset = scan.checked_total
    print(
        f"Resolved {scan.resolved}/{scan.attempted} servers of {place_id}, {len(scan.servers)} matched"
    )
    return scan
