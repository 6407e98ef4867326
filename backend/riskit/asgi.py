import os
import django
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "riskit.settings")
django.setup()

# Import websocket routes
import crash.routing

application = ProtocolTypeRouter({
    "http": get_asgi_application(),

    # Players are identified by wallet address, not by Django session
    "websocket": AllowedHostsOriginValidator(
        URLRouter(crash.routing.websocket_urlpatterns)
    ),
})
