"""
WSGI config for the chat backend.

The project is served over ASGI (see asgi.py) so WebSockets work; this
entry point serves the REST API alone under a WSGI server.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
