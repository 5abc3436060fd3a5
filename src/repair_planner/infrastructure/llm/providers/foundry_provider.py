"""
Foundry agent provider implementation.

Invokes a named prompt agent through the project's OpenAI-compatible
responses endpoint, requesting JSON-schema constrained output.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import aiohttp

from repair_planner.exceptions import PlanningTransportError

from .base import BasePlanningProvider, PlanningRequest, PlanningResponse, ProviderConfig


class FoundryPlanningProvider(BasePlanningProvider):
    """Planning provider backed by an agent registered in an AI project"""

    @property
    def provider_name(self) -> str:
        return "foundry"

    def is_available(self) -> bool:
        """Check if the provider is properly configured"""
        return bool(self.config.base_url)

    def _build_payload(self, request: PlanningRequest) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = [
            {"role": "user", "content": json.dumps(request.input, indent=2)}
        ]
        for feedback in request.feedback:
            messages.append({"role": "user", "content": feedback})

        payload: Dict[str, Any] = {
            "agent": {"name": request.agent_name, "type": "agent_reference"},
            "model": request.model_deployment,
            "input": messages,
            "temperature": self.config.temperature,
            "max_output_tokens": self.config.max_output_tokens,
        }

        if request.response_schema:
            payload["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": "repair_plan",
                    "schema": request.response_schema,
                }
            }
        return payload

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> Optional[str]:
        """Pull the generated text out of a responses-API body"""
        if isinstance(data.get("output_text"), str) and data["output_text"]:
            return data["output_text"]

        output = data.get("output")
        chunks = []
        for item in output if isinstance(output, list) else []:
            if not isinstance(item, dict) or item.get("type") != "message":
                continue
            content = item.get("content")
            for part in content if isinstance(content, list) else []:
                if (
                    isinstance(part, dict)
                    and part.get("type") == "output_text"
                    and isinstance(part.get("text"), str)
                    and part["text"]
                ):
                    chunks.append(part["text"])
        return "".join(chunks) if chunks else None

    async def invoke(self, request: PlanningRequest) -> PlanningResponse:
        """Invoke the agent through the responses API

        Args:
            request: Planning request with agent reference and structured input
        """

        started = self._start_timing()

        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        payload = self._build_payload(request)
        url = f"{self.config.base_url.rstrip('/')}/openai/responses"

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    headers=headers,
                    params={"api-version": self.config.api_version},
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                ) as response:

                    if response.status != 200:
                        error_text = await response.text()
                        raise PlanningTransportError(
                            f"Planning service error {response.status}: {error_text[:500]}"
                        )

                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PlanningTransportError(f"Planning service unreachable: {e}")
        except ValueError as e:
            raise PlanningTransportError(f"Planning service returned an undecodable body: {e}")

        if not isinstance(data, dict):
            raise PlanningTransportError(
                f"Planning service returned {type(data).__name__} instead of a JSON object"
            )

        try:
            content = self._validate_response_content(self._extract_text(data))
        except ValueError as e:
            raise PlanningTransportError(str(e))

        usage = data.get("usage")
        tokens_used = usage.get("total_tokens", 0) if isinstance(usage, dict) else 0

        return PlanningResponse(
            content=content,
            provider=self.provider_name,
            model=request.model_deployment,
            tokens_used=tokens_used,
            response_time_ms=self._get_response_time_ms(started),
        )
