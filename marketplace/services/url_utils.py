from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def with_query_params(url: str, params: dict[str, str | int | None]) -> str:
    """Set query parameters on URL, dropping ``None`` values and keeping the fragment."""
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in params.items():
        if value is None:
            query.pop(key, None)
        else:
            query[key] = str(value)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
