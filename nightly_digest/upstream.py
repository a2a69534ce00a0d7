from __future__ import annotations

import httpx

from nightly_digest.errors import ERROR_HTTP, ERROR_RATE_LIMITED, NonRetryableError, UpstreamError
from nightly_digest.utils import redact_detail


def raise_for_upstream_status(resp: httpx.Response, what: str) -> None:
    """Map an HTTP status onto the retry taxonomy.

    429, 408 and 5xx are transient; any other 4xx is deterministic and is not
    worth retrying.
    """
    status = resp.status_code
    if status < 400:
        return
    detail = redact_detail(f"{what}: {status} {resp.text or ''}")
    if status == 429:
        raise UpstreamError(ERROR_RATE_LIMITED, detail)
    if status == 408 or status >= 500:
        raise UpstreamError(ERROR_HTTP, detail)
    raise NonRetryableError(ERROR_HTTP, detail)
