"""Heroku Platform API client -- apps, dynos, formation scaling.

Thin wrapper over the v3 REST API. Every failure (network error or
non-2xx response) surfaces as RemoteActionError carrying the API's
message when one is available.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .config import (
    DEFAULT_PROCESS_TYPE,
    HEROKU_API_ACCEPT,
    HEROKU_API_BASE,
    HEROKU_API_TIMEOUT,
)
from .errors import RemoteActionError
from .models import AppStatus, Dyno

logger = logging.getLogger(__name__)


def _error_message(resp: requests.Response) -> str:
    """Pull the ``message`` field out of a Heroku error body, falling back to the reason."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {resp.status_code} {resp.reason or ''}".strip()


class HerokuClient:
    """Heroku Platform API v3 client."""

    def __init__(
        self,
        api_token: str,
        base_url: str = HEROKU_API_BASE,
        timeout: int = HEROKU_API_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_token}",
            "Accept": HEROKU_API_ACCEPT,
            "Content-Type": "application/json",
        })

    def _request(self, method: str, path: str, what: str, **kwargs):
        try:
            resp = self.session.request(
                method,
                f"{self.base_url}{path}",
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            logger.error("Failed to %s: %s", what, e)
            raise RemoteActionError(f"Failed to {what}: {e}") from e

        if not resp.ok:
            message = _error_message(resp)
            logger.error("Failed to %s: %s", what, message)
            raise RemoteActionError(
                f"Failed to {what}: {message}", status_code=resp.status_code
            )
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteActionError(
                f"Failed to {what}: invalid JSON response", status_code=resp.status_code
            ) from e

    # --- Resources ---

    def get_app(self, app_name: str) -> dict:
        """App info (``web_url``, ``region``, ``stack``...)."""
        return self._request("GET", f"/apps/{app_name}", f"get app {app_name}")

    def get_dynos(self, app_name: str) -> list[Dyno]:
        data = self._request("GET", f"/apps/{app_name}/dynos", f"get dynos for {app_name}")
        return [Dyno.model_validate(d) for d in data or []]

    def get_formation(self, app_name: str) -> list[dict]:
        """Process types and their scaled quantities."""
        return self._request(
            "GET", f"/apps/{app_name}/formation", f"get formation for {app_name}"
        ) or []

    def scale_app(
        self, app_name: str, quantity: int, process_type: str = DEFAULT_PROCESS_TYPE
    ) -> dict:
        return self._request(
            "PATCH",
            f"/apps/{app_name}/formation/{process_type}",
            f"scale {app_name}",
            json={"quantity": quantity},
        )

    # --- Scheduler collaborator interface ---

    def turn_on_app(self, app_name: str, process_type: str = DEFAULT_PROCESS_TYPE) -> None:
        logger.info("Turning on app: %s", app_name)
        self.scale_app(app_name, 1, process_type)
        logger.info("Successfully turned on app: %s", app_name)

    def turn_off_app(self, app_name: str, process_type: str = DEFAULT_PROCESS_TYPE) -> None:
        logger.info("Turning off app: %s", app_name)
        self.scale_app(app_name, 0, process_type)
        logger.info("Successfully turned off app: %s", app_name)

    def get_app_status(self, app_name: str) -> AppStatus:
        """Running iff at least one dyno is ``up``."""
        dynos = self.get_dynos(app_name)
        return AppStatus(
            name=app_name,
            running=any(d.state == "up" for d in dynos),
            dynos=dynos,
        )

    def validate_app(self, app_name: str) -> bool:
        """True if the app exists and the token can read it."""
        try:
            self.get_app(app_name)
            return True
        except RemoteActionError:
            return False
