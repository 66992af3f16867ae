"""Readiness probes for a freshly started node.

Both probes only need the JSON-RPC endpoint URL, so they work the same whether
the node runs as a bare process or inside docker compose.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from chaingate.config import ReadinessConfig
from chaingate.errors import ReadinessTimeout
from chaingate.poller import PollOutcome, poll

logger = logging.getLogger(__name__)

_RETRYABLE = (httpx.HTTPError, ValueError)


class RpcError(Exception):
    """The endpoint answered, but not with a JSON-RPC success envelope."""


class JsonRpcClient:
    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self._client = httpx.Client(timeout=timeout, transport=transport)
        self._next_id = 1

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> JsonRpcClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def call(self, method: str, params: list[Any] | None = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._next_id,
        }
        self._next_id += 1
        response = self._client.post(self.url, json=payload)
        if not response.is_success:
            msg = f"{method} returned HTTP {response.status_code}"
            raise RpcError(msg)
        body = response.json()
        if not isinstance(body, dict):
            msg = f"{method} response is not a JSON-RPC object"
            raise RpcError(msg)
        if "error" in body:
            msg = f"{method} failed: {body['error']}"
            raise RpcError(msg)
        if "result" not in body:
            msg = f"{method} response has no result"
            raise RpcError(msg)
        return body["result"]

    def block_number(self) -> int:
        """Current block height, decoded from the hex quantity."""
        result = self.call("eth_blockNumber")
        if not isinstance(result, str):
            msg = f"eth_blockNumber returned {result!r}, expected a hex quantity"
            raise RpcError(msg)
        return int(result, 16)

    def client_version(self) -> str:
        result = self.call("web3_clientVersion")
        if not isinstance(result, str):
            msg = f"web3_clientVersion returned {result!r}"
            raise RpcError(msg)
        return result


class ReadinessGate:
    """Confirms the node is reachable, producing blocks and speaking JSON-RPC."""

    def __init__(
        self,
        client: JsonRpcClient,
        config: ReadinessConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.config = config
        self._sleep = sleep

    def _poll(self, action: Callable[[], Any], attempts: int, delay: float, label: str) -> PollOutcome:
        return poll(
            action,
            max_attempts=attempts,
            delay=delay,
            multiplier=self.config.backoff_multiplier,
            max_delay=self.config.max_delay_seconds or None,
            sleep=self._sleep,
            retry_on=(*_RETRYABLE, RpcError),
            label=label,
        )

    def wait_for_progress(self, min_blocks: int | None = None) -> int:
        """Wait until the chain height advances by *min_blocks*.

        The first successful sample is the baseline. Returns the height that
        satisfied the condition.
        """
        delta = self.config.min_blocks if min_blocks is None else min_blocks
        heights: list[int] = []

        def sample() -> bool:
            height = self.client.block_number()
            if not heights:
                logger.info("Baseline block height %d", height)
            heights.append(height)
            advanced = height - heights[0]
            logger.debug("Block height %d (advanced %d/%d)", height, advanced, delta)
            return advanced >= delta

        outcome = self._poll(
            sample,
            self.config.progress_attempts,
            self.config.progress_delay_seconds,
            "progress",
        )
        if not outcome.success:
            raise ReadinessTimeout("progress", outcome.attempts, outcome.last_error)
        logger.info("Node advanced %d blocks, height now %d", delta, heights[-1])
        return heights[-1]

    def wait_for_protocol(self) -> str:
        """Wait for a successful ``web3_clientVersion`` exchange."""
        outcome = self._poll(
            self.client.client_version,
            self.config.protocol_attempts,
            self.config.protocol_delay_seconds,
            "protocol",
        )
        if not outcome.success:
            raise ReadinessTimeout("protocol", outcome.attempts, outcome.last_error)
        logger.info("Node client version: %s", outcome.value)
        return outcome.value

    def wait(self) -> None:
        self.wait_for_progress()
        self.wait_for_protocol()

    def node_status(self) -> int | None:
        """Sample the block height once; None if the node does not answer."""
        try:
            height = self.client.block_number()
        except (*_RETRYABLE, RpcError) as exc:
            logger.warning("Node status check failed: %s", exc)
            return None
        logger.info("Node status: block height %d", height)
        return height
