"""HTTP adapter for a tool executor hosted in another process."""

import os
from typing import Any

import httpx

from maestro.exceptions import ToolExecutionError
from maestro.models.llm import ComputerToolOptions, ToolExecutionResult
from maestro.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_EXECUTOR_URL = "http://127.0.0.1:9002"


class HttpToolExecutor:
    """Tool executor that forwards every call to the host over HTTP.

    The host exposes ``POST /execute/{tool}``, ``GET /screen-size`` and
    ``GET /computer-options``.
    """

    def __init__(self, base_url: str | None = None, timeout: float = 120.0, client: httpx.AsyncClient | None = None):
        self.base_url = (base_url or os.getenv("MAESTRO_EXECUTOR_URL", DEFAULT_EXECUTOR_URL)).rstrip("/")
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def execute(self, name: str, args: dict[str, Any]) -> ToolExecutionResult:
        logger.debug(f"Dispatching {name} to {self.base_url}")
        try:
            response = await self.client.post(f"/execute/{name}", json=args)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ToolExecutionError(name, f"host returned {e.response.status_code}: {e.response.text}") from e
        except httpx.HTTPError as e:
            raise ToolExecutionError(name, f"host unreachable: {e}") from e
        return ToolExecutionResult.model_validate(response.json())

    async def get_screen_size(self) -> tuple[int, int]:
        response = await self.client.get("/screen-size")
        response.raise_for_status()
        width, height = response.json()
        return int(width), int(height)

    async def get_computer_tool_capabilities(self, width: int, height: int) -> ComputerToolOptions:
        response = await self.client.get("/computer-options", params={"width": width, "height": height})
        response.raise_for_status()
        return ComputerToolOptions.model_validate(response.json())

    async def aclose(self) -> None:
        await self.client.aclose()
