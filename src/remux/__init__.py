"""Remux is a regular-expression request router for Python WSGI.

Unlike path routers, remux matches each pattern against the raw request
target, exactly as it arrived on the request line and before any percent
decoding. That makes it possible to route requests that embed a whole URL
in their path, as proxies do.

Routes are tried in the order they were registered and the first match
wins. Named groups in the matching pattern are handed to the handler as
query parameters prefixed with ":", so `/hello/(?P<name>.+)` makes
`request.param(":name")` available.

    router = remux.Router()

    @router.route(r"^/hello/(?P<name>[^/?]+)")
    def hello(request, response):
        return f"Hello {request.param(':name')}"

    router.serve_forever()
"""

from . import core as _core
from .core import *  # this is redundant, but placates some static analyzers.

__all__ = list(_core.__all__)

del _core
