from datetime import datetime, timezone, tzinfo

from loguru import logger

from .normalize import NormalizedActivity, normalize_activity
from .strava import StravaClient
from .utils_time import to_epoch

PAGE_SIZE = 50

async def fetch_activities_since(
    client: StravaClient,
    access_token: str,
    since: datetime | None,
    page_size: int = PAGE_SIZE,
    tz: tzinfo = timezone.utc,
) -> list[NormalizedActivity]:
    """
    Walk /athlete/activities from page 1 until a short page comes back.
    Any failed page raises ActivityFetchError and nothing fetched so far is
    returned.
    """
    after_ts = to_epoch(since) if since else None
    raw: list[dict] = []
    page = 1
    while True:
        batch = await client.list_activities(access_token, after_ts, page, page_size)
        raw.extend(batch)
        if len(batch) < page_size:
            break
        page += 1

    logger.debug(f"[STRAVA_API] fetched {len(raw)} activities in {page} page(s) after={after_ts}")
    return [normalize_activity(a, tz=tz) for a in raw]
