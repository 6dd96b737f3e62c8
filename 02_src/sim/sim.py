"""SIM implementation - scripted purchase scenario driven over HTTP."""

import asyncio
from typing import Protocol

import httpx

from economy.logging_config import get_logger

logger = get_logger(__name__)

DELIVERED_MARKER = "Tokens delivered! Transaction complete."


class ISim(Protocol):
    """Drive the control surface like an operator would."""

    async def start(self) -> None:
        """Start the scenario in the background."""
        ...

    async def stop(self) -> None:
        """Stop the scenario."""
        ...


class Sim:
    """Reset, initialize, purchase, then watch the log until delivery."""

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        token_counts: list[int] | None = None,
        poll_seconds: float = 1.0,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_url = api_url
        self._token_counts = token_counts or [5, 3]
        self._poll_seconds = poll_seconds
        self._timeout_seconds = timeout_seconds
        self._external_client = client
        self._client: httpx.AsyncClient | None = client
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start scenario."""
        if self._running:
            return

        self._running = True
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._api_url, timeout=10.0)

        # Start background task
        self._task = asyncio.create_task(self._run_scenario())

    async def stop(self) -> None:
        """Stop scenario."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client and self._client is not self._external_client:
            await self._client.aclose()
            self._client = None

    async def _run_scenario(self) -> None:
        try:
            await self.run()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            self._running = False

    async def run(self) -> list[dict]:
        """
        Run every purchase in sequence and return the final log.

        Each purchase waits until one more delivery has been logged, or until
        the timeout expires.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._api_url, timeout=10.0)

        await self._post("/api/reset")
        await self._post("/api/agents/initialize")

        logs: list[dict] = []
        for delivered, token_count in enumerate(self._token_counts, start=1):
            await self._post("/api/agents/purchase", {"token_count": token_count})
            logger.info("SIM: purchase of %s tokens triggered", token_count)
            logs = await self._wait_for_deliveries(delivered)

        logger.info("SIM: scenario finished with %d log entries", len(logs))
        return logs

    async def _post(self, path: str, body: dict | None = None) -> dict:
        response = await self._client.post(path, json=body)
        data = response.json()
        if response.status_code != 200 or not data.get("success"):
            raise RuntimeError(f"{path} failed ({response.status_code}): {data.get('error')}")
        logger.info("SIM: %s -> %s", path, data.get("message"))
        return data

    async def _wait_for_deliveries(self, expected: int) -> list[dict]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout_seconds
        logs: list[dict] = []

        while loop.time() < deadline:
            response = await self._client.get("/api/logs")
            logs = response.json().get("logs", [])
            delivered = sum(1 for entry in logs if entry["message"] == DELIVERED_MARKER)
            if delivered >= expected:
                return logs
            await asyncio.sleep(self._poll_seconds)

        logger.warning("SIM: timed out waiting for delivery #%d", expected)
        return logs
