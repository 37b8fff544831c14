"""UniFi controller client.

Session login, the site REST endpoints the bridge needs and the controller's
websocket event stream. Every REST response carries an envelope of the form
``{"meta": {"rc": "ok" | "error", "msg": ...}, "data": [...]}``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp
from pydantic import BaseModel, ValidationError

from unifi2mqtt.const import CONTROLLER_CONN_DELAY, CONTROLLER_TIMEOUT
from unifi2mqtt.exceptions import (
    ControllerAuthError,
    ControllerConnectionError,
    ControllerRequestError,
)
from unifi2mqtt.instrumentation import timed_async
from unifi2mqtt.logging_abstraction import get_logger
from unifi2mqtt.structs import ClientSession, ControllerEvent, Device, LedOverride, WirelessNetwork

logger = get_logger(__name__)

type EventHandler = Callable[[ControllerEvent], Awaitable[object]]


class UnifiAPI:
    """aiohttp client for a single controller site."""

    lp: str = "unifi:"
    http_session: aiohttp.ClientSession | None = None

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        site: str = "default",
        insecure: bool = False,
        api_timeout: float = CONTROLLER_TIMEOUT,
        reconnect_delay: float = CONTROLLER_CONN_DELAY,
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.username: str = username
        self.password: str = password
        self.site: str = site
        self.insecure: bool = insecure
        self.api_timeout: float = api_timeout
        self.reconnect_delay: float = reconnect_delay
        self.logged_in: bool = False
        self._running: bool = False

    @property
    def base_url(self) -> str:
        return f"https://{self.host}:{self.port}"

    @property
    def site_url(self) -> str:
        return f"{self.base_url}/api/s/{self.site}"

    @property
    def events_url(self) -> str:
        return f"wss://{self.host}:{self.port}/wss/s/{self.site}/events"

    @property
    def _ssl(self) -> bool | None:
        # None keeps aiohttp's default certificate validation
        return False if self.insecure else None

    async def close(self) -> None:
        """Close the aiohttp session if it exists and is not closed."""
        lp = f"{self.lp}close:"
        self._running = False
        if self.http_session and not self.http_session.closed:
            logger.debug("%s Closing aiohttp ClientSession", lp)
            await self.http_session.close()
        self.http_session = None
        self.logged_in = False

    async def _check_session(self) -> aiohttp.ClientSession:
        if not self.http_session or self.http_session.closed:
            logger.debug("%s_check_session: Creating new aiohttp ClientSession", self.lp)
            # controllers are usually addressed by IP, the session cookie must be kept anyway
            self.http_session = aiohttp.ClientSession(cookie_jar=aiohttp.CookieJar(unsafe=True))
            self.logged_in = False
        return self.http_session

    async def login(self) -> None:
        lp = f"{self.lp}login:"
        session = await self._check_session()
        logger.debug("%s logging in to %s as %s", lp, self.base_url, self.username)
        try:
            async with session.post(
                f"{self.base_url}/api/login",
                json={"username": self.username, "password": self.password},
                ssl=self._ssl,
                timeout=aiohttp.ClientTimeout(total=self.api_timeout),
            ) as r:
                if r.status in (400, 401, 403):
                    raise ControllerAuthError(self.username, r.status)
                r.raise_for_status()
        except (aiohttp.ClientError, TimeoutError) as e:
            self.logged_in = False
            raise ControllerConnectionError(f"login to {self.base_url} failed: {e}") from e
        self.logged_in = True
        logger.info("%s logged in to %s", lp, self.base_url)

    @timed_async("controller_request")
    async def request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Call a site endpoint and return the envelope's ``data`` list.

        An expired session (401) triggers a single re-login and retry.
        """
        if not self.logged_in:
            await self.login()
        status, body = await self._send(method, path, payload)
        if status == 401:
            logger.info("%s session expired, logging in again", f"{self.lp}request:")
            self.logged_in = False
            await self.login()
            status, body = await self._send(method, path, payload)
        return self._unwrap(path, status, body)

    async def _send(self, method: str, path: str, payload: dict[str, Any] | None) -> tuple[int, Any]:
        session = await self._check_session()
        url = f"{self.site_url}/{path}"
        logger.debug("%s %s %s", f"{self.lp}send:", method, url)
        try:
            async with session.request(
                method,
                url,
                json=payload,
                ssl=self._ssl,
                timeout=aiohttp.ClientTimeout(total=self.api_timeout),
            ) as r:
                status = r.status
                if status == 401:
                    return status, None
                try:
                    body = await r.json(content_type=None)
                except (json.JSONDecodeError, aiohttp.ContentTypeError) as e:
                    raise ControllerRequestError(path, f"invalid JSON response: {e}", status) from e
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ControllerConnectionError(f"{method} {path} failed: {e}") from e
        return status, body

    @staticmethod
    def _unwrap(path: str, status: int, body: Any) -> list[dict[str, Any]]:
        if status == 401:
            raise ControllerRequestError(path, "unauthorized after re-login", status)
        if not isinstance(body, dict):
            raise ControllerRequestError(path, "response is not an object", status)
        meta = body.get("meta") or {}
        if meta.get("rc") != "ok":
            raise ControllerRequestError(path, str(meta.get("msg") or "request failed"), status)
        if status >= 400:
            raise ControllerRequestError(path, f"HTTP {status}", status)
        data = body.get("data")
        return data if isinstance(data, list) else []

    async def get(self, path: str) -> list[dict[str, Any]]:
        return await self.request("GET", path)

    async def put(self, path: str, payload: dict[str, Any]) -> list[dict[str, Any]]:
        return await self.request("PUT", path, payload)

    async def post(self, path: str, payload: dict[str, Any]) -> list[dict[str, Any]]:
        return await self.request("POST", path, payload)

    @staticmethod
    def _parse_records[M: BaseModel](path: str, model: type[M], items: list[dict[str, Any]]) -> list[M]:
        try:
            return [model.model_validate(item) for item in items]
        except ValidationError as e:
            raise ControllerRequestError(path, f"malformed {model.__name__} record: {e.error_count()} errors") from e

    async def get_wireless_networks(self) -> list[WirelessNetwork]:
        return self._parse_records("rest/wlanconf", WirelessNetwork, await self.get("rest/wlanconf"))

    async def get_devices(self) -> list[Device]:
        return self._parse_records("stat/device", Device, await self.get("stat/device"))

    async def get_client_sessions(self) -> list[ClientSession]:
        return self._parse_records("stat/sta", ClientSession, await self.get("stat/sta"))

    async def set_device_led(self, device_id: str, mode: LedOverride) -> None:
        _ = await self.put(f"rest/device/{device_id}", {"led_override": mode.value})

    async def set_wireless_enabled(self, wifi_id: str, enabled: bool) -> None:
        _ = await self.post(f"upd/wlanconf/{wifi_id}", {"enabled": enabled})

    @staticmethod
    def decode_frame(raw: str) -> list[ControllerEvent]:
        """Decode one websocket text frame into events; non-event frames yield nothing."""
        frame = json.loads(raw)
        if not isinstance(frame, dict):
            return []
        meta = frame.get("meta") or {}
        if meta.get("message") != "events":
            return []
        return [ControllerEvent.from_controller(item) for item in frame.get("data") or [] if isinstance(item, dict)]

    async def run_event_stream(self, handler: EventHandler) -> None:
        """Forward controller events to ``handler`` until cancelled or closed.

        Emits ``ctrl.connect`` once the socket is open and ``ctrl.disconnect``
        when it drops, then reconnects after the reconnect delay.
        """
        lp = f"{self.lp}events:"
        self._running = True
        while self._running:
            connected = False
            try:
                await self.login()
                session = await self._check_session()
                async with session.ws_connect(self.events_url, ssl=self._ssl, heartbeat=30) as ws:
                    connected = True
                    logger.info("%s connected to %s", lp, self.events_url)
                    await handler(ControllerEvent("ctrl.connect"))
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            try:
                                events = self.decode_frame(msg.data)
                            except json.JSONDecodeError as e:
                                logger.warning("%s undecodable frame: %s", lp, e)
                                continue
                            for event in events:
                                try:
                                    await handler(event)
                                except Exception:
                                    logger.exception("%s handling %s failed", lp, event.name)
                        elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                            break
            except asyncio.CancelledError:
                raise
            except (ControllerAuthError, ControllerConnectionError, aiohttp.ClientError, TimeoutError) as e:
                logger.warning("%s %s", lp, e)
                await handler(ControllerEvent("ctrl.error", {"error": str(e)}))
            if connected:
                logger.warning("%s event stream closed", lp)
                await handler(ControllerEvent("ctrl.disconnect"))
            if not self._running:
                break
            logger.info("%s reconnecting in %s seconds", lp, self.reconnect_delay)
            await asyncio.sleep(self.reconnect_delay)
