from __future__ import annotations

import urllib.parse


def sanitize_return_path(path: str | None, default: str = "/") -> str:
    """Keep only same-site relative paths such as ``/inbox?tab=2``."""
    candidate = (path or "").strip()
    if not candidate.startswith("/") or candidate.startswith("//"):
        return default
    if "\\" in candidate or "\r" in candidate or "\n" in candidate:
        return default

    parsed = urllib.parse.urlparse(candidate)
    if parsed.scheme or parsed.netloc:
        return default
    return candidate


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))
