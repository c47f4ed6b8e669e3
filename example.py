import logging

import remux

router = remux.Router()


@router.route(r"^/hello/(?P<name>[^/?]+)", methods=["GET", "HEAD"])
def hello(request: remux.Request, response: remux.Response):
    return f"<h1>Hello {request.param(':name')}</h1>"


@router.route(r"^/proxy/(?P<url>https?://.+)$")
def proxy(request: remux.Request, response: remux.Response):
    # the embedded URL arrives exactly as sent, query string and all
    return {"url": request.param(":url"), "args": request.args}


def main():
    """Program entry point."""
    logging.basicConfig(level=logging.DEBUG)
    router.serve_forever()


if __name__ == "__main__":
    main()
