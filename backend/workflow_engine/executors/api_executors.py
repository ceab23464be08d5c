"""
API Node Executors - External HTTP requests
"""

from typing import Any, Dict, Literal, Optional, Union
import asyncio
import json

import httpx
from pydantic import Field

from ..expressions import render_template
from ..models import NodeResult
from .base import NodeConfig, NodeExecutor, ExecutionContext, as_mapping

MAX_RETRY_AFTER = 10.0
DEFAULT_RATE_LIMIT_WAIT = 5.0
MAX_BACKOFF = 8.0


class HttpRequestConfig(NodeConfig):
    url: str = Field(..., min_length=1)
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"] = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Union[str, Dict[str, Any], list]] = None
    timeout: float = Field(30000, gt=0)  # Milliseconds
    retries: int = Field(0, ge=0, le=10)


class HttpRequestExecutor(NodeExecutor):
    """Make HTTP request"""

    node_type = "http_request"
    display_name = "HTTP Request"
    category = "api"
    description = "Make HTTP requests to external APIs"
    config_model = HttpRequestConfig

    def _build_request(self, input_data: Any):
        data = as_mapping(input_data)
        url = render_template(self.config.url, data, dotted=True)

        body = self.config.body
        if isinstance(body, str):
            content = render_template(body, data, dotted=True)
        elif body is not None:
            content = json.dumps(body, default=str)
        else:
            content = None

        headers = dict(self.config.headers)
        if content is not None and isinstance(body, (dict, list)):
            headers.setdefault("Content-Type", "application/json")

        return url, content, headers

    async def _send(self, client: httpx.AsyncClient, url: str, content: Optional[str], headers: Dict[str, str]):
        method = self.config.method
        return await client.request(
            method,
            url,
            content=content if method != "GET" else None,
            headers=headers,
            timeout=self.config.timeout / 1000,
        )

    async def execute(self, input_data: Any, context: ExecutionContext) -> NodeResult:
        url, content, headers = self._build_request(input_data)
        max_retries = self.config.retries

        context.log(f"HTTP {self.config.method} {url}")

        shared_client = self.services.http_client
        client = shared_client or httpx.AsyncClient()
        last_error = "HTTP request failed"

        try:
            for attempt in range(max_retries + 1):
                try:
                    response = await self._send(client, url, content, headers)
                except httpx.HTTPError as e:
                    last_error = str(e) or e.__class__.__name__
                    context.log(f"HTTP attempt {attempt + 1} failed: {last_error}", level="warning")
                    if attempt < max_retries:
                        await asyncio.sleep(min(2 ** attempt, MAX_BACKOFF))
                        continue
                    break

                if response.status_code == 429 and attempt < max_retries:
                    retry_after = response.headers.get("Retry-After")
                    try:
                        wait = min(float(retry_after), MAX_RETRY_AFTER) if retry_after else DEFAULT_RATE_LIMIT_WAIT
                    except ValueError:
                        wait = DEFAULT_RATE_LIMIT_WAIT
                    context.log(f"Rate limited, retrying in {wait}s", level="warning")
                    await asyncio.sleep(wait)
                    continue

                try:
                    parsed = response.json()
                except ValueError:
                    parsed = response.text

                if response.is_success:
                    return NodeResult.ok(parsed)
                return NodeResult.fail(f"HTTP {response.status_code}", output=parsed)
        finally:
            if shared_client is None:
                await client.aclose()

        return NodeResult.fail(last_error)
