from tests.util import wsgi
from tests import _config

import typing as t
import remux


def basic_handler(content: t.Any):
    def handler(request: remux.Request, response: remux.Response):
        return content
    return handler


def recording_handler(seen: list, content: t.Any = "OK"):
    """Like basic_handler, but keeps every request it's handed."""
    def handler(request: remux.Request, response: remux.Response):
        seen.append(request)
        return content
    return handler


def make_request(target: str, method: str | None = None, **argv) -> remux.Request:
    return remux.Request.from_wsgi(wsgi.environ_for(target, method, **argv))


def assert_response(reply: wsgi.Reply,
                    code: int,
                    content: None | str | bytes | dict | list = None,
                    headers: None | dict[str, str] = None):
    __tracebackhide__ = True
    faults = []
    if code != reply.code:
        faults.append(f"code: expected={code!r}, got={reply.code!r}")
    match content:
        case None:
            got = content
        case bytes():
            got = reply.body
        case str():
            got = reply.text()
        case dict() | list():
            got = reply.json()
        case _:
            raise ValueError(f"content is unknown type: ({type(content)})")
    if content != got:
        faults.append(f"content: expected={content!r}, got={got!r}")
    for name, want in (headers or {}).items():
        if want != (found := reply.header(name)):
            faults.append(f"header[{name}]: expected={want!r}, got={found!r}")

    if faults:
        details = [repr(reply), *(f">> {f}" for f in faults)]
        if _config.verbose:
            details.extend(f">|{line}" for line in reply.dump().splitlines())
        raise AssertionError("\n".join(details))


def assert_produces_response(
        app: wsgi.WSGIApplication,
        target: str,
        code: int,
        content: str | bytes | dict | list | None = None,
        headers: None | dict[str, str] = None,
        **argv):
    __tracebackhide__ = True
    assert_response(wsgi.call(app, target, **argv), code, content, headers)
