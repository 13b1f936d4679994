"""HTTP client for the remote moderation (guardrail) service."""

import logging
from typing import Any

import httpx

from guardrail_mcp import config
from guardrail_mcp.errors import UpstreamFailure
from guardrail_mcp.models.moderation import Direction, ModerationVerdict, Verdict

logger = logging.getLogger(__name__)


class ModerationClient:
    """Classifies text against a moderation policy.

    One client is built per session from the caller's credential. Each
    ``classify`` call opens its own ``httpx.AsyncClient`` so no connection pool
    outlives the request.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Credential for the moderation service. A leading
                "Bearer " is accepted and stripped.
            base_url: Service root; defaults to GUARDRAIL_API_BASE_URL.
            timeout: Per-call timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        if api_key.lower().startswith("bearer "):
            api_key = api_key[7:].strip()
        self._api_key = api_key
        self._base_url = base_url or config.GUARDRAIL_API_BASE_URL
        self._timeout = timeout if timeout is not None else config.GUARDRAIL_TIMEOUT_SECONDS
        self._transport = transport

    def _path_for(self, direction: Direction) -> str:
        if direction == Direction.INPUT:
            return config.GUARDRAIL_INPUT_PATH
        return config.GUARDRAIL_OUTPUT_PATH

    async def classify(
        self,
        text: str,
        policy_key: str,
        direction: Direction = Direction.INPUT,
    ) -> ModerationVerdict:
        """Classify text with the given policy.

        Args:
            text: Content to check.
            policy_key: Policy (strategy) selector.
            direction: Whether this is user input or model output.

        Returns:
            The service's verdict.

        Raises:
            UpstreamFailure: If the call fails or the service reports an error.
        """
        path = self._path_for(direction)
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    path,
                    json={"content": text, "strategyKey": policy_key},
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
        except httpx.TimeoutException as e:
            raise UpstreamFailure(f"Moderation service timed out: {e}")
        except httpx.HTTPError as e:
            raise UpstreamFailure(f"Moderation service unreachable: {e}")

        if response.status_code >= 400:
            raise UpstreamFailure(
                f"Moderation service returned HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError:
            raise UpstreamFailure("Moderation service returned invalid JSON")

        return self._parse_verdict(body)

    @staticmethod
    def _parse_verdict(body: Any) -> ModerationVerdict:
        if not isinstance(body, dict):
            raise UpstreamFailure("Moderation service returned an unexpected body")

        code = body.get("code", 0)
        if code != 0:
            message = body.get("message") or f"error code {code}"
            raise UpstreamFailure(f"Moderation service error: {message}")

        # Verdict fields may be nested under "data" or sit at the top level
        payload = body.get("data") if isinstance(body.get("data"), dict) else body

        suggestion = payload.get("suggestion")
        try:
            verdict = Verdict(str(suggestion).lower())
        except ValueError:
            raise UpstreamFailure(f"Moderation service returned unknown suggestion: {suggestion}")

        try:
            score = float(payload.get("score") or 0)
        except (TypeError, ValueError):
            raise UpstreamFailure("Moderation service returned a non-numeric score")

        return ModerationVerdict(
            verdict=verdict,
            score=score,
            matched_category=payload.get("label") or None,
            matched_category_label=payload.get("labelName") or None,
        )
