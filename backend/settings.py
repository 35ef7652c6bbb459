#Purpose: Connection settings for the external collaborators.
#Read from the environment (and a local .env file) once at import.
#Example .env:
#API_URL=http://localhost:5000
#SOCKET_URL=http://localhost:5000
#REDIS_URL=redis://localhost:6379/0
#REQUEST_TIMEOUT=10

import os

from dotenv import load_dotenv

load_dotenv()

API_URL = os.getenv("API_URL", "http://localhost:5000").rstrip("/")
API_BASE_URL = API_URL + "/api"

# the push channel historically lives next to the REST API
SOCKET_URL = os.getenv("SOCKET_URL", API_URL)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CHANNEL_PREFIX = os.getenv("CHANNEL_PREFIX", "delivery")

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))
