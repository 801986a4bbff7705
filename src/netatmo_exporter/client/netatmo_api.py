"""
Client for the Netatmo Weather API. Logs in with the OAuth2 password
grant, keeps the access token fresh with the refresh token, and maps
/api/getstationsdata into Station objects.

Sensors a device doesn't have are simply missing from its dashboard_data,
so they come out as None rather than zero.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from netatmo_exporter.client.base import StationClient
from netatmo_exporter.metrics import Measurements, Module, Station

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.netatmo.com"
TOKEN_PATH = "/oauth2/token"
STATIONS_PATH = "/api/getstationsdata"

# Renew this many seconds before the token actually expires
TOKEN_EXPIRY_MARGIN = 60.0
DEFAULT_TOKEN_LIFETIME = 10800.0

# API error codes that mean "log in again"
_TOKEN_ERROR_CODES = {2, 3}

# dashboard_data key -> Measurements field
_DASHBOARD_FIELDS = {
    "Temperature": "temperature",
    "Humidity": "humidity",
    "CO2": "co2",
    "Noise": "noise",
    "Pressure": "pressure",
    "WindStrength": "wind_strength",
    "WindAngle": "wind_direction",
    "Rain": "rain",
}


class NetatmoError(Exception):
    """The API answered, but with an error."""

    def __init__(self, message: str, code: Optional[int] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


@dataclass(frozen=True)
class Credentials:
    client_id: str
    client_secret: str
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(client_id={self.client_id!r}, username={self.username!r})"


class NetatmoClient(StationClient):

    def __init__(
        self,
        credentials: Credentials,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._credentials = credentials
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=timeout_seconds,
            transport=transport,
        )
        self._clock = clock
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._expires_at = 0.0

    def read(self) -> List[Station]:
        """Fetch getstationsdata and return the parsed stations."""
        token = self._ensure_token()
        response = self._client.get(
            STATIONS_PATH,
            headers={"Authorization": f"Bearer {token}"},
        )
        try:
            payload = _decode(response)
        except NetatmoError as e:
            if e.code in _TOKEN_ERROR_CODES:
                # Force a fresh login on the next cycle
                self._access_token = None
            raise

        stations = parse_stations(payload)
        log.debug("Read %d station(s) from %s", len(stations), self._base_url)
        return stations

    def name(self) -> str:
        return f"Netatmo ({self._credentials.username})"

    def close(self):
        self._client.close()

    # -- OAuth2 --

    def _ensure_token(self) -> str:
        if self._access_token and self._clock() < self._expires_at - TOKEN_EXPIRY_MARGIN:
            return self._access_token

        if self._refresh_token:
            try:
                self._request_token({
                    "grant_type": "refresh_token",
                    "refresh_token": self._refresh_token,
                })
                return self._access_token
            except NetatmoError as e:
                if e.status_code is None or not 400 <= e.status_code < 500:
                    raise
                log.warning("Token refresh rejected (%s), logging in again", e)
                self._refresh_token = None

        log.info("Login as %s", self._credentials.username)
        self._request_token({
            "grant_type": "password",
            "username": self._credentials.username,
            "password": self._credentials.password,
            "scope": "read_station",
        })
        return self._access_token

    def _request_token(self, grant: Dict[str, str]):
        data = dict(grant)
        data["client_id"] = self._credentials.client_id
        data["client_secret"] = self._credentials.client_secret

        payload = _decode(self._client.post(TOKEN_PATH, data=data))
        token = payload.get("access_token")
        if not token:
            raise NetatmoError("token response has no access_token")

        self._access_token = token
        self._refresh_token = payload.get("refresh_token") or self._refresh_token
        lifetime = _number(payload.get("expires_in")) or DEFAULT_TOKEN_LIFETIME
        self._expires_at = self._clock() + lifetime


def _decode(response: httpx.Response) -> Dict[str, Any]:
    """Return the JSON body, raising NetatmoError for API-level failures."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if not isinstance(payload, dict):
        if response.is_error:
            raise NetatmoError(
                f"HTTP {response.status_code} from {response.request.url.path}",
                status_code=response.status_code,
            )
        raise NetatmoError("response body is not a JSON object", status_code=response.status_code)

    error = payload.get("error")
    if error is not None or response.is_error:
        # Two shapes: {"error": {"code": 2, "message": ...}} from the API,
        # {"error": "invalid_grant"} from the token endpoint.
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message") or "unknown error"
        else:
            code = None
            message = str(error or f"HTTP {response.status_code}")
        raise NetatmoError(
            message,
            code=code if isinstance(code, int) else None,
            status_code=response.status_code,
        )

    return payload


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _measurements(
    dashboard: Optional[Dict[str, Any]],
    battery: Any = None,
    wifi: Any = None,
    rf: Any = None,
) -> Measurements:
    dashboard = dashboard if isinstance(dashboard, dict) else {}

    captured = _number(dashboard.get("time_utc"))
    values = {
        attr: _number(dashboard.get(key))
        for key, attr in _DASHBOARD_FIELDS.items()
    }
    return Measurements(
        captured_at=int(captured) if captured is not None else None,
        battery_percent=_number(battery),
        wifi_signal=_number(wifi),
        rf_signal=_number(rf),
        **values,
    )


def parse_stations(payload: Dict[str, Any]) -> List[Station]:
    """Map a getstationsdata response body into Station objects."""
    body = payload.get("body") or {}
    stations = []

    for device in body.get("devices") or []:
        station_name = device.get("station_name") or device.get("home_name") or device.get("_id", "")

        modules = []
        for module in device.get("modules") or []:
            modules.append(Module(
                name=module.get("module_name") or module.get("_id", ""),
                measurements=_measurements(
                    module.get("dashboard_data"),
                    battery=module.get("battery_percent"),
                    rf=module.get("rf_status"),
                ),
            ))

        stations.append(Station(
            name=station_name,
            measurements=_measurements(
                device.get("dashboard_data"),
                wifi=device.get("wifi_status"),
            ),
            modules=tuple(modules),
        ))

    return stations
