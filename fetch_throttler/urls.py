"""Target resolution and routing keys.

Parsing itself is delegated to httpx.URL; this module only decides which
value in a call is the target and how a URL maps onto routing keys.
"""
from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional, Tuple

import httpx

from fetch_throttler.exceptions import InvalidURLError


def extract_target(args: Tuple[Any, ...], kwargs: Optional[Mapping[str, Any]] = None) -> Any:
    """Return the request target: the first positional argument, else ``url=``."""
    if args:
        return args[0]
    if kwargs and kwargs.get("url") is not None:
        return kwargs["url"]
    raise InvalidURLError("Missing request target")


def to_url(target: Any, base_url: Optional[str] = None) -> httpx.URL:
    """
    Resolve a request target to an absolute httpx.URL.

    Accepts an httpx.URL, a string, or an object with a ``url`` attribute
    holding either (httpx.Request, for one). A string starting with "/" is
    joined onto base_url.

    Raises:
        InvalidURLError: Unsupported target type, unparseable string, or a
            URL without scheme and host.
    """
    if not isinstance(target, (str, httpx.URL)):
        inner = getattr(target, "url", None)
        if not isinstance(inner, (str, httpx.URL)):
            raise InvalidURLError(f"Invalid input: {target!r}")
        target = inner

    if isinstance(target, str):
        try:
            if target.startswith("/") and not target.startswith("//"):
                if not base_url:
                    raise InvalidURLError(
                        f"Invalid URL: {target} (relative URL without a base_url)",
                        url=target,
                    )
                url = httpx.URL(base_url).join(target)
            else:
                url = httpx.URL(target)
        except httpx.InvalidURL as exc:
            raise InvalidURLError(f"Invalid URL: {target}", url=target) from exc
    else:
        url = target

    if not url.scheme or not url.host:
        raise InvalidURLError(f"Invalid URL: {target}", url=target)
    return url


def host_key(url: httpx.URL) -> str:
    # httpx drops default ports, so "a.com:443" and "a.com" share a key.
    return url.netloc.decode("ascii")


def origin(url: httpx.URL) -> str:
    return f"{url.scheme}://{host_key(url)}"


def pathname(url: httpx.URL) -> str:
    """Percent-encoded path without the query string."""
    path = url.raw_path.decode("ascii").split("?", 1)[0]
    return path or "/"


def routing_key(url: httpx.URL, scope: str) -> str:
    """
    Key a URL for the given scope.

    global -> ""; domain -> host[:port]; path -> origin + path with any
    trailing slash stripped.
    """
    if scope == "global":
        return ""
    if scope == "domain":
        return host_key(url)
    if scope == "path":
        return origin(url) + pathname(url).rstrip("/")
    raise ValueError(f"Invalid scope: {scope}")


def folder_key(path_key: str) -> str:
    """Key under which a subpath-enabled path rule is found by folder_keys()."""
    return path_key + "/"


def folder_keys(url: httpx.URL) -> Iterator[str]:
    """
    Folder keys from the deepest path segment up to the origin root.

    https://a.com/api/v1 yields https://a.com/api/v1/, https://a.com/api/,
    https://a.com/.
    """
    base = origin(url)
    segments = pathname(url).rstrip("/").split("/")
    for depth in range(len(segments), 0, -1):
        yield base + "/".join(segments[:depth]) + "/"
