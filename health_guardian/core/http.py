import json
import logging
from typing import Any

import httpx

from health_guardian.errors import UpstreamFetchError, upstream_error

logger = logging.getLogger(__name__)


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    stage: str,
    error_prefix: str,
    **kwargs: Any,
) -> Any:
    """
    Send one request and decode its JSON body.

    Any httpx failure (transport or non-2xx) becomes an UpstreamFetchError
    tagged with ``stage``. An empty body decodes to None.
    """
    try:
        resp = await client.request(method, url, **kwargs)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("%s (%s %s): %s", error_prefix, method, url, e)
        raise upstream_error(error_prefix, e, stage=stage) from e

    if not resp.content:
        return None
    try:
        return resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise UpstreamFetchError(
            f"{error_prefix}: response was not valid JSON",
            stage=stage,
        ) from e
