import asyncio
import json
import logging
from typing import Any

import aiohttp

from energypredict.config import Settings
from energypredict.errors import TransportError
from energypredict.forms import PredictionRequest
from energypredict.polling import PollOutcome
from energypredict.timeseries import date_prefix, points_from_records

_LOGGER = logging.getLogger(__name__)

PREDICT_PATH = '/model/predict'
HOUR_DATA_PATH = '/model/load/hour-data'
USER_FIND_PATH = '/user/find'
USER_EXIST_PATH = '/user/exist'
USER_MODIFY_PATH = '/user/modify'


class ApiClient:
    """
    Async JSON client for the prediction and user services.

    Implements both the PredictionService and ProfileService protocols. Every
    failure (connection error, timeout, non-2xx status, unreadable body) is
    raised as TransportError; if the server sent a JSON body with a 'message'
    it becomes the error message.
    """

    def __init__(self, base_url: str, timeout_s: float = 30.0, session: aiohttp.ClientSession | None = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: Settings, session: aiohttp.ClientSession | None = None) -> 'ApiClient':
        return cls(settings.api_base_url, timeout_s=settings.request_timeout_s, session=session)

    async def __aenter__(self) -> 'ApiClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _post(self, path: str, payload: dict) -> Any:
        url = f"{self.base_url}{path}"
        _LOGGER.debug("POST %s %s", url, payload)
        try:
            async with self._get_session().post(url, json=payload, timeout=self.timeout) as response:
                body = await response.text()
                if response.status >= 400:
                    server_message = _extract_message(body)
                    message = server_message or f"Request failed with status code {response.status}"
                    _LOGGER.error("POST %s returned %s: %s", url, response.status, message)
                    raise TransportError(message, status=response.status, server_message=server_message)
        except asyncio.TimeoutError as e:
            _LOGGER.error("POST %s timed out", url)
            raise TransportError(f"Request to {path} timed out") from e
        except aiohttp.ClientError as e:
            _LOGGER.error("POST %s failed: %s", url, e)
            raise TransportError(str(e) or "Network Error") from e

        if not body:
            raise TransportError("No response data received", status=response.status)
        try:
            return json.loads(body)
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {path}", status=response.status) from e

    # --- PredictionService ---

    async def submit_job(self, request: PredictionRequest) -> dict:
        response = await self._post(PREDICT_PATH, request.to_payload())
        if not isinstance(response, dict):
            raise TransportError(f"Unexpected response from {PREDICT_PATH}")
        return response

    async def fetch_status(self, username: str, token: str) -> PollOutcome:
        response = await self._post(HOUR_DATA_PATH, {'username': username, 'token': token})
        if not isinstance(response, dict):
            raise TransportError("No response data received")
        try:
            points = points_from_records(response.get('data') or [])
            for point in points:
                date_prefix(point.timestamp)
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed prediction data: {e}") from e
        if response.get('end') is True:
            return PollOutcome.complete(points)
        return PollOutcome.partial(points)

    # --- ProfileService ---

    async def find_user(self, username: str) -> dict:
        return await self._post(USER_FIND_PATH, {'username': username})

    async def find_existing(self, email: str, phone_no: str) -> dict:
        response = await self._post(USER_EXIST_PATH, {'email': email, 'phoneNo': phone_no})
        return response or {}

    async def modify_user(self, user_id: str, changes: dict) -> dict:
        return await self._post(USER_MODIFY_PATH, {'id': user_id, 'changes': changes})


def _extract_message(body: str) -> str | None:
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get('message'), str) and data['message']:
        return data['message']
    return None
