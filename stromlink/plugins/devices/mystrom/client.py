"""HTTP client for the local REST API of a myStrom switch."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from .exceptions import InvalidResponseError, TransportError


class MyStromSwitchClient:
    """
    Handle for one myStrom WiFi switch.

    Endpoints:
        GET /report             -> {"relay": bool, "power": float, ...}
        GET /relay?state=0|1    -> switch off / on
        GET /toggle             -> toggle the relay
    """

    def __init__(
        self,
        device_id: str,
        host: str,
        name: str,
        session: aiohttp.ClientSession,
        timeout: float = 5.0,
    ):
        self.device_id = device_id
        self.host = host
        self.name = name
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

        self._logger = logging.getLogger(f"device.{device_id}")
        self._logger.info(f"New device: {device_id} / {name} / {host}")

    @property
    def base_url(self) -> str:
        return f"http://{self.host}"

    async def _request(self, path: str, params: Optional[Dict[str, str]] = None) -> bytes:
        """Issue a GET request and return the raw body of a 200 answer."""
        url = f"{self.base_url}{path}"

        try:
            async with self.session.get(url, params=params, timeout=self.timeout) as response:
                body = await response.read()
                if response.status != 200:
                    raise TransportError(
                        self.device_id,
                        f"{response.status} {response.reason}",
                        status=response.status,
                    )
                return body

        except asyncio.TimeoutError:
            raise TransportError(self.device_id, f"request to {url} timed out")
        except aiohttp.ClientError as e:
            raise TransportError(self.device_id, str(e))

    async def get_report(self) -> Dict[str, Any]:
        """Read the raw state report of the switch."""
        body = await self._request("/report")

        try:
            report = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise InvalidResponseError(self.device_id, f"report is not JSON: {e}")

        if not isinstance(report, dict):
            raise InvalidResponseError(self.device_id, "report is not an object")

        self._logger.debug(
            f"State: {'On' if report.get('relay') is True else 'Off'}, {report.get('power')} W"
        )
        return report

    async def power_on(self) -> None:
        await self._request("/relay", {"state": "1"})

    async def power_off(self) -> None:
        await self._request("/relay", {"state": "0"})

    async def toggle(self) -> None:
        await self._request("/toggle")

    async def set_power_state(self, on: bool) -> None:
        if on:
            await self.power_on()
        else:
            await self.power_off()
