#Purpose: The REST backend "adapter/client".
#Sole responsibility: talk to the delivery backend over HTTP and return
#normalized outputs (LocationSample, DeliveryRequest, AvailableDriver).
#Encapsulates backend specific details:
#URL construction (/users/{id}/location, /drivers/available, /requests/...)
#bearer token header
#timeouts and error normalization (everything becomes BackendError)
#It should not contain tracking rules, retries or rate limiting.
#All calls are blocking (requests). Async callers go through asyncio.to_thread.

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from backend import settings
from drivers.models import AvailableDriver
from location.models import LocationSample
from orders.models import DeliveryRequest, DeliveryStatus

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Custom exception for backend client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendClient:
    """
    Backend Adapter / Client

    Sole responsibility:
    - Talk to the REST API via HTTP
    - Attach the session bearer token (issued elsewhere, never refreshed here)
    - Return normalized outputs
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.token = token
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self.session = session or requests.Session()

        if not self.base_url:
            raise ValueError("Backend base URL not set. Please set API_URL in the .env file.")

    #----------------
    # Internal helpers for URL construction, headers, error handling
    #----------------
    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise BackendError(f"{method} {endpoint} failed: {e}") from e

        if response.status_code >= 400:
            raise BackendError(
                f"{method} {endpoint} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"{method} {endpoint} returned invalid JSON", status_code=response.status_code) from e

    #----------------
    # Locations
    #----------------
    def get_user_location(self, user_id: str, requested_at: Optional[datetime] = None) -> Optional[LocationSample]:
        """
        GET /users/{id}/location

        Args:
            user_id: driver or customer id
            requested_at: timestamp for the sample when the backend sends none

        Returns:
            the user's last known sample, or None if the backend has none yet
        """
        data = self._request("GET", f"/users/{user_id}/location")
        if data is not None and not isinstance(data, dict):
            raise BackendError(f"Unexpected location body for user {user_id}: {type(data).__name__}")
        location = (data or {}).get("location")
        if not location:
            return None

        try:
            return LocationSample.from_payload(location, default_timestamp=requested_at)
        except (KeyError, TypeError, ValueError) as e:
            raise BackendError(f"Invalid location for user {user_id}: {e}") from e

    def update_user_location(self, user_id: str, sample: LocationSample) -> None:
        """PATCH /users/{id}/location with the sample's coordinate and address."""
        self._request(
            "PATCH",
            f"/users/{user_id}/location",
            json={
                "latitude": sample.latitude,
                "longitude": sample.longitude,
                "address": sample.address,
            },
        )

    #----------------
    # Drivers
    #----------------
    def get_available_drivers(self, latitude: float, longitude: float, radius_km: float = 30) -> List[AvailableDriver]:
        """
        GET /drivers/available?lat=..&lng=..&radius=..

        Malformed driver documents are skipped, not fatal.
        """
        data = self._request(
            "GET",
            "/drivers/available",
            params={"lat": latitude, "lng": longitude, "radius": radius_km},
        )

        drivers = []
        for item in data or []:
            try:
                drivers.append(AvailableDriver.from_api(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed driver document: %s", e)
        return drivers

    #----------------
    # Delivery requests
    #----------------
    def get_my_requests(self, user_id: str) -> List[DeliveryRequest]:
        """GET /requests/my/{user_id}"""
        data = self._request("GET", f"/requests/my/{user_id}")

        requests_ = []
        for item in data or []:
            try:
                requests_.append(DeliveryRequest.from_api(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed request document: %s", e)
        return requests_

    def get_request(self, user_id: str, request_id: str) -> Optional[DeliveryRequest]:
        """
        The backend has no single-request endpoint for customers, the request
        is picked out of the user's list.
        """
        for request in self.get_my_requests(user_id):
            if request.id == request_id:
                return request
        return None

    def accept_request(self, request_id: str, driver_id: str) -> Optional[DeliveryRequest]:
        """POST /requests/{id}/accept"""
        data = self._request("POST", f"/requests/{request_id}/accept", json={"driverId": driver_id})
        return self._maybe_request(data)

    def update_request_status(self, request_id: str, status: DeliveryStatus) -> Optional[DeliveryRequest]:
        """PATCH /requests/{id}/status"""
        data = self._request("PATCH", f"/requests/{request_id}/status", json={"status": DeliveryStatus(status).value})
        return self._maybe_request(data)

    def _maybe_request(self, data: Any) -> Optional[DeliveryRequest]:
        # mutation endpoints echo the updated document, but not always
        if not isinstance(data, dict) or "status" not in data:
            return None
        try:
            return DeliveryRequest.from_api(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Could not parse request echoed by backend: %s", e)
            return None
