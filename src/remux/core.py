import http
import json
import logging
import re
import socketserver
import urllib.parse
import wsgiref.headers
import wsgiref.simple_server
import wsgiref.types
from dataclasses import dataclass, field

from . import util
from .util import PatternError

import typing as t
_O = t.Optional
_T = t.TypeVar("_T")
Headers = wsgiref.headers.Headers
_Wrapper = t.Callable[[_T], _T]

log = logging.getLogger(__name__)

__all__ = [
    "HandlerFn", "Handler", "AnyHandler", "HttpError", "PatternError",
    "RouteMatch", "Request", "Response", "FuncHandler", "Route", "Router",
    "RawTargetRequestHandler", "not_found",
]


class HandlerFn(t.Protocol):
    def __call__(self, request: "Request", response: "Response",
                 /) -> t.Any: ...


@t.runtime_checkable
class Handler(t.Protocol):
    def handle_request(self, request: "Request", **kwargs) -> "Response": ...


AnyHandler = HandlerFn | Handler


@dataclass
class Response:
    """Status, headers and body chunks of a reply.

    Handlers either fill in the response they're given or return content
    for it: text and bytes are appended to the body, dicts and lists are
    sent as JSON.
    """
    DEFAULT_TEXT_TYPE: t.ClassVar[str] = "text/html; charset=utf-8"

    code: int = 200
    headers: Headers = field(default_factory=Headers)
    body: list[bytes] = field(default_factory=list)

    @property
    def status(self) -> str:
        try:
            return f"{self.code} {http.HTTPStatus(self.code).phrase}"
        except ValueError:
            return f"{self.code} Unknown"

    def write(self, data: str | bytes) -> None:
        if isinstance(data, str):
            self.headers.setdefault("Content-Type", self.DEFAULT_TEXT_TYPE)
            data = data.encode("utf-8")
        self.body.append(data)

    def set_content(self, content: t.Any) -> None:
        match content:
            case str() | bytes():
                self.write(content)
            case dict() | list():
                self.headers.setdefault("Content-Type", "application/json")
                self.write(json.dumps(content).encode("utf-8"))
            case _:
                raise TypeError(
                    f"handler returned unsupported content {type(content).__name__}")


@dataclass(eq=False)
class HttpError(Exception):
    """Raised by a handler to answer with an error status instead.

    The reply is plain text, one line: `message`, or the status phrase.
    """
    code: int = 500
    message: str | None = None

    def __post_init__(self):
        super().__init__(self.code, self.message)

    def response(self) -> Response:
        resp = Response(self.code)
        resp.headers["Content-Type"] = "text/plain; charset=utf-8"
        resp.headers["X-Content-Type-Options"] = "nosniff"
        text = self.message or resp.status.partition(" ")[2]
        resp.write(f"{text}\n".encode("utf-8"))
        return resp


def not_found(request: "Request") -> Response:
    """The reply when no route matches and no fallback is set."""
    del request  # unused param
    return HttpError(404, "404 page not found").response()


def method_not_allowed(allowed: t.Iterable[str]) -> Response:
    """405 with no body, naming the methods the route does accept."""
    return Response(405, Headers([("Allow", ",".join(sorted(allowed)))]))


@dataclass
class RouteMatch:
    route: "Route"
    match: re.Match[str]


@dataclass
class Request:
    """An incoming request.

    `target` is the raw request target exactly as it appeared on the request
    line, query string included; it is what routes are matched against.
    The query string lives in the WSGI environ, so parameters injected by
    the router are visible through every query accessor.
    """
    environ: wsgiref.types.WSGIEnvironment
    target: str
    path: str
    method: str
    headers: Headers
    route_match: RouteMatch | None = None

    @classmethod
    def from_wsgi(cls, environ: wsgiref.types.WSGIEnvironment):
        hlist = [(k[5:].replace("_", "-").title(), v)
                 for k, v in environ.items() if k.startswith("HTTP_")]
        return cls(environ, util.request_target(environ),
                   environ.get('PATH_INFO', ''), environ['REQUEST_METHOD'],
                   Headers(hlist))

    @property
    def query_string(self) -> str:
        return self.environ.get("QUERY_STRING", "")

    def inject_params(self, encoded: str) -> None:
        """Prepend encoded parameters to the query string, in place."""
        self.environ["QUERY_STRING"] = util.prepend_query(
            encoded, self.query_string)

    @property
    def query_list(self) -> list[tuple[str, str]]:
        return urllib.parse.parse_qsl(self.query_string, keep_blank_values=True)

    @property
    def args(self) -> dict[str, list[str]]:
        """All query values by key, in query string order."""
        args: dict[str, list[str]] = {}
        for k, v in self.query_list:
            args.setdefault(k, []).append(v)
        return args

    def param(self, key: str, default: _O[str] = None) -> _O[str]:
        """First value of a query parameter; route parameters come first."""
        for k, v in self.query_list:
            if k == key:
                return v
        return default

    @property
    def query_vars(self) -> dict[str, str]:
        return {k: v[0] for k, v in self.args.items()}

    @property
    def route_vars(self) -> dict[str, str | None]:
        if self.route_match is None:
            return {}
        return self.route_match.match.groupdict()

    def body_bytes(self) -> bytes:
        length = int(self.environ.get("CONTENT_LENGTH") or 0)
        return self.environ["wsgi.input"].read(length) if length else b""


@dataclass
class FuncHandler:
    """Adapts a bare `fn(request, response)` to the Handler protocol."""
    handlerfn: HandlerFn

    def handle_request(self, request: Request, **kwargs) -> Response:
        response = Response()
        content = self.handlerfn(request, response)
        if isinstance(content, Response):
            return content
        if content is not None:
            response.set_content(content)
        return response


def as_handler(handler: AnyHandler) -> Handler:
    return handler if isinstance(handler, Handler) else FuncHandler(handler)


@dataclass
class Route:
    """A registered pattern, its handler, and the methods it accepts.

    Method restrictions chain: ``router.handle(...).get().head()``.
    No restriction means every method is accepted.
    """
    path: str
    handler: Handler
    allowed_methods: set[str] | None = None
    pattern: re.Pattern[str] = field(init=False)

    def __post_init__(self):
        self.pattern = util.compile_pattern(self.path)

    def match(self, target: str) -> re.Match[str] | None:
        return self.pattern.search(target)

    def allows(self, method: str) -> bool:
        return not self.allowed_methods or method in self.allowed_methods

    def restrict_to(self, method: str) -> t.Self:
        if self.allowed_methods is None:
            self.allowed_methods = set()
        self.allowed_methods.add(method.upper())
        return self

    def get(self): return self.restrict_to("GET")
    def head(self): return self.restrict_to("HEAD")
    def post(self): return self.restrict_to("POST")
    def put(self): return self.restrict_to("PUT")
    def delete(self): return self.restrict_to("DELETE")
    def options(self): return self.restrict_to("OPTIONS")


class RawTargetRequestHandler(wsgiref.simple_server.WSGIRequestHandler):
    """wsgiref handler that passes the request line target on as REQUEST_URI.

    wsgiref only provides the percent-decoded PATH_INFO, which can't tell
    `/a%2Fb` from `/a/b`.
    """

    def get_environ(self):
        env = super().get_environ()
        env["REQUEST_URI"] = self.path
        return env

    def log_message(self, format, *args):  # pylint: disable=redefined-builtin
        log.info("%s - %s", self.address_string(), format % args)


class ThreadedWSGIServer(socketserver.ThreadingMixIn,
                         wsgiref.simple_server.WSGIServer):
    daemon_threads = True


class Router:
    """Dispatches requests to the first route whose regex matches the raw target.

    Routes are tried in registration order. Register every route before
    serving; the route table is not locked against concurrent changes.
    """

    def __init__(self, not_found_handler: _O[AnyHandler] = None):
        self.routes: list[Route] = []
        self.not_found_handler = not_found_handler

    @property
    def not_found_handler(self) -> Handler | None:
        return self._not_found_handler

    @not_found_handler.setter
    def not_found_handler(self, handler: _O[AnyHandler]):
        self._not_found_handler = None if handler is None else as_handler(handler)

    # Registration --------------------------------------------------------

    def handle(self, pattern: str, handler: AnyHandler) -> Route:
        """Add a route; raises PatternError if `pattern` doesn't compile."""
        route = Route(pattern, as_handler(handler))
        self.routes.append(route)
        log.debug("registered route %r", pattern)
        return route

    def handle_func(self, pattern: str, handlerfn: HandlerFn) -> Route:
        return self.handle(pattern, FuncHandler(handlerfn))

    def route(self, pattern: str,
              methods: _O[t.Iterable[str]] = None) -> _Wrapper[HandlerFn]:
        def decorator(handlerfn: HandlerFn):
            route = self.handle_func(pattern, handlerfn)
            for method in methods or ():
                route.restrict_to(method)
            return handlerfn
        return decorator

    # Dispatch ------------------------------------------------------------

    def handle_request(self, request: Request, **kwargs) -> Response:
        for route in self.routes:
            if (match := route.match(request.target)) is None:
                continue
            if not route.allows(request.method):
                log.debug("%s %s: method not allowed by %r",
                          request.method, request.target, route.path)
                return method_not_allowed(route.allowed_methods or ())
            request.inject_params(util.encode_params(util.match_params(match)))
            request.route_match = RouteMatch(route, match)
            log.debug("%s %s: matched %r",
                      request.method, request.target, route.path)
            return route.handler.handle_request(request)
        log.debug("%s %s: no route matched", request.method, request.target)
        if self.not_found_handler is not None:
            return self.not_found_handler.handle_request(request)
        return not_found(request)

    # WSGI ----------------------------------------------------------------

    def __call__(self, environ, start_response):
        """WSGI entrypoint; the only place handler errors are turned into replies."""
        request = Request.from_wsgi(environ)
        try:
            response = self.handle_request(request)
        except HttpError as err:
            response = err.response()
        except Exception:  # pylint: disable=broad-exception-caught
            log.exception("%s %s: handler failed", request.method, request.target)
            response = HttpError(500).response()
        start_response(response.status, response.headers.items())
        return response.body

    def make_server(self, port=8080, host='', threaded=True):
        server_class = (ThreadedWSGIServer if threaded
                        else wsgiref.simple_server.WSGIServer)
        return wsgiref.simple_server.make_server(
            host, port, self, server_class=server_class,
            handler_class=RawTargetRequestHandler)

    def serve_forever(self, port=8080, host='', threaded=True):
        server = self.make_server(port, host, threaded)
        log.info("Serving on %s:%s -- ctrl+c to quit.", *server.server_address[:2])
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
        finally:
            server.server_close()
