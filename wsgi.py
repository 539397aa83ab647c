"""Web Server Gateway Interface entry-point."""

import os

from herit.factory import create_web_app

__flask_app__ = None


def application(environ, start_response):    # type: ignore
    """WSGI application."""
    for key, value in environ.items():
        # In some deployment scenarios (e.g. uWSGI on k8s), uWSGI will pass in
        # configuration as part of the request environ. ``SERVER_NAME`` is
        # usually just a container ID there, so it is not carried over.
        if key == 'SERVER_NAME' or not isinstance(value, str):
            continue
        os.environ[key] = value

    global __flask_app__
    if __flask_app__ is None:
        __flask_app__ = create_web_app()
    return __flask_app__(environ, start_response)
