#Marks backend as a package.
#Everything this side knows about the external collaborators lives here:
#settings (.env), the REST client, the push channels and logging config.
#No tracking logic.

from .client import BackendClient, BackendError
from .channels import InMemoryChannel, PushChannel, RedisChannel

__all__ = [
    "BackendClient",
    "BackendError",
    "InMemoryChannel",
    "PushChannel",
    "RedisChannel",
]
