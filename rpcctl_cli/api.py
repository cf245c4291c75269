"""
HTTP request layer for the discovery gateway.

Only the HTTP(S) gateway topology talks HTTP: it asks the gateway which
gRPC endpoints exist before any channel is opened.
"""

import json
import re
import sys
import time
import urllib.error
import urllib.request
import uuid

from rpcctl_cli import config
from rpcctl_cli.exceptions import CliError, ConnectivityError, HTTPError
from rpcctl_cli.models import SCHEME_TLS

_RETRYABLE_HTTP_CODES = frozenset({429, 502, 503, 504})


# ---------------------------------------------------------------------------
# Security helpers
# ---------------------------------------------------------------------------


def _mask_token(token):
    """Show only first 6 chars of a token for safe logging."""
    return token[:6] + "..." if len(token) > 6 else token


def _sanitize_error(body, max_len=500):
    """Truncate and clean error body for safe display."""
    if not body:
        return ""
    cleaned = re.sub(r"<[^>]+>", "", body)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    if len(cleaned) > max_len:
        return cleaned[:max_len] + "... [truncated]"
    return cleaned


# ---------------------------------------------------------------------------
# HTTP request layer
# ---------------------------------------------------------------------------


def _log_http_event(**fields):
    """Emit structured HTTP logs to stderr when enabled."""
    if not config.HTTP_LOG_ENABLED:
        return
    print("[HTTP] " + json.dumps(fields, ensure_ascii=False, sort_keys=True), file=sys.stderr)


def _error_envelope(message, status=None, request_id=None, retryable=None, detail=None):
    """Build a consistent CLI-safe HTTP error message."""
    meta = []
    if status is not None:
        meta.append(f"status={status}")
    if request_id:
        meta.append(f"request_id={request_id}")
    if retryable is not None:
        meta.append(f"retryable={'yes' if retryable else 'no'}")
    suffix = f" ({', '.join(meta)})" if meta else ""
    body = f"[ERROR] {message}{suffix}"
    if detail:
        body += f"\n{detail}"
    return body


def _expect_object_response(result, operation):
    """Ensure gateway helpers only return JSON objects (dict)."""
    if isinstance(result, dict):
        return result
    raise CliError(
        f"[ERROR] Unexpected {operation} response shape: "
        f"expected JSON object, got {type(result).__name__}."
    )


def _parse_retry_after(headers):
    """Return Retry-After seconds from response headers, or None."""
    if not headers:
        return None
    value = headers.get("Retry-After")
    if value is None:
        return None
    try:
        secs = int(str(value).strip())
    except ValueError:
        return None
    return max(0, secs)


def _decode_body(raw, content_type):
    try:
        return json.loads(raw.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        if content_type and "json" not in content_type.lower():
            raise CliError(
                f"[ERROR] Discovery gateway answered with {content_type}, not JSON. "
                "Is the endpoint an API gateway?"
            ) from None
        raise CliError("[ERROR] Discovery gateway reply is not valid JSON.") from None


def _backoff(attempt, retry_after=None):
    if retry_after is not None:
        return retry_after
    return config.HTTP_RETRY_BASE_SECONDS * (2**attempt)


def _http_request(url, data=None, headers=None, idempotent=False):
    """POST *data* as JSON and return the decoded reply.

    Raises HTTPError for HTTP status errors (callers map them) and
    ConnectivityError once network failures have exhausted the retries.
    """
    headers = headers or {}
    payload = json.dumps(data).encode("utf-8") if data is not None else None
    request_id = headers.get("X-Request-Id")
    attempts = 1 + (max(0, config.HTTP_MAX_RETRIES) if idempotent else 0)
    timeout = max(1, config.HTTP_TIMEOUT_SECONDS)
    limit = config.HTTP_MAX_RESPONSE_BYTES
    failure = None

    for attempt in range(attempts):
        last_attempt = attempt == attempts - 1
        started = time.perf_counter()
        _log_http_event(phase="request", url=url, attempt=attempt + 1, request_id=request_id)
        req = urllib.request.Request(url, data=payload, headers=headers, method="POST")
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                raw = resp.read(limit + 1)
                if len(raw) > limit:
                    raise CliError(
                        f"[ERROR] Response too large from discovery gateway (>{limit} bytes)."
                    )
                _log_http_event(
                    phase="response",
                    url=url,
                    status=getattr(resp, "status", 200),
                    bytes=len(raw),
                    latency_ms=round((time.perf_counter() - started) * 1000, 2),
                )
                return _decode_body(raw, resp.headers.get("Content-Type", ""))
        except urllib.error.HTTPError as e:
            retry = idempotent and not last_attempt and e.code in _RETRYABLE_HTTP_CODES
            _log_http_event(phase="response", url=url, status=e.code, will_retry=retry)
            if retry:
                time.sleep(_backoff(attempt, _parse_retry_after(e.headers)))
                continue
            text = e.read(limit).decode("utf-8", errors="replace") if e.fp else ""
            raise HTTPError(e.code, e.reason, text, headers=e.headers) from e
        except (TimeoutError, urllib.error.URLError) as e:
            failure = e
            retry = idempotent and not last_attempt
            _log_http_event(phase="network_error", url=url, error=str(e), will_retry=retry)
            if not retry:
                break
            time.sleep(_backoff(attempt))

    if isinstance(failure, TimeoutError):
        message = f"Request to {url} timed out after {timeout} seconds."
    else:
        message = f"Cannot reach discovery gateway {url}: {getattr(failure, 'reason', failure)}"
    raise ConnectivityError(_error_envelope(message, request_id=request_id, retryable=False))


def gateway_request(gateway_url, path, data=None):
    """POST *data* to the gateway and return the decoded JSON object."""
    url = gateway_url.rstrip("/") + path
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "X-Request-Id": str(uuid.uuid4()),
    }
    try:
        result = _http_request(url, data if data is not None else {}, headers, idempotent=True)
    except HTTPError as e:
        server_req_id = e.headers.get("X-Request-Id") if e.headers else None
        raise ConnectivityError(
            _error_envelope(
                f"Discovery gateway returned HTTP {e.code}: {e.reason}",
                status=e.code,
                request_id=server_req_id,
                retryable=e.code in _RETRYABLE_HTTP_CODES,
                detail=_sanitize_error(e.body),
            )
        ) from e
    return _expect_object_response(result, "discovery gateway")


# ---------------------------------------------------------------------------
# Endpoint discovery
# ---------------------------------------------------------------------------


def fetch_endpoints_map(gateway_url):
    """Return {service: endpoint} as published by the gateway."""
    result = gateway_request(gateway_url, config.ENDPOINT_LIST_PATH)
    endpoints = {}
    for item in result.get("results") or []:
        if not isinstance(item, dict):
            continue
        service = item.get("service")
        endpoint = item.get("endpoint")
        if service and endpoint:
            endpoints[str(service)] = str(endpoint)
    return endpoints


def discover_bootstrap_endpoint(gateway_url):
    """Return (secure address, True) for the bootstrap service, or ("", False)."""
    endpoint = fetch_endpoints_map(gateway_url).get(config.BOOTSTRAP_SERVICE, "")
    if endpoint.startswith(f"{SCHEME_TLS}://"):
        return endpoint, True
    return "", False
