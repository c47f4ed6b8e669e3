import re
import urllib.parse
import typing as t

# pylint: disable=missing-function-docstring

PARAM_PREFIX = ":"
WSGI_ENCODING = "latin-1"  # PEP 3333 native strings


class PatternError(ValueError):
    """A route pattern is not a valid regular expression."""


def compile_pattern(val: str) -> re.Pattern[str]:
    """Compile a raw regex route pattern; no template syntax is applied."""
    try:
        return re.compile(val)
    except re.error as ex:
        raise PatternError(f"invalid route pattern {val!r}: {ex}") from ex


def group_names(pattern: re.Pattern[str]) -> list[str]:
    """Name of every group by index, "" for index 0 and unnamed groups."""
    names = [""] * (pattern.groups + 1)
    for name, index in pattern.groupindex.items():
        names[index] = name
    return names


def match_params(match: re.Match[str]) -> list[tuple[str, str]]:
    """Parameter pairs for a match, one per group including the whole match.

    Groups that did not take part in the match yield an empty value.
    """
    return [(PARAM_PREFIX + name, match.group(i) or "")
            for i, name in enumerate(group_names(match.re))]


def wsgi_bytes(val: str) -> bytes:
    """Bytes behind a WSGI native string.

    Some servers hand over already-decoded text instead; anything outside
    latin-1 is taken to be such text and sent as UTF-8.
    """
    try:
        return val.encode(WSGI_ENCODING)
    except UnicodeEncodeError:
        return val.encode("utf-8")


def encode_params(params: t.Iterable[tuple[str, str]]) -> str:
    # sorted by key; sort is stable so repeated keys keep group order
    ordered = sorted(params, key=lambda kv: kv[0])
    return urllib.parse.urlencode(
        [(wsgi_bytes(k), wsgi_bytes(v)) for k, v in ordered])


def prepend_query(encoded: str, query: str) -> str:
    return f"{encoded}&{query}"


def request_target(environ: t.Mapping[str, t.Any]) -> str:
    """The raw request target of a WSGI request, query string included."""
    for key in ("REQUEST_URI", "RAW_URI"):
        if target := environ.get(key):
            return target
    # PEP 3333 URL reconstruction
    target = urllib.parse.quote(wsgi_bytes(
        environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")))
    if query := environ.get("QUERY_STRING"):
        target += "?" + query
    return target

