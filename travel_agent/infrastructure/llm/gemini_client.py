"""
Async transport client for the Gemini ``generateContent`` REST endpoint.

The client owns one ``httpx.AsyncClient``. Every failure is raised as the
collaborator error type chosen by the caller, so analysis and generation
failures stay distinguishable for the turn router.
"""

from typing import Any, Dict, Optional, Type

import httpx
import structlog

from travel_agent.domain.errors import CollaboratorError

logger = structlog.get_logger(__name__)


class GeminiClient:
    """Thin wrapper around Gemini's text generation API"""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        temperature: float = 0.7,
        max_output_tokens: int = 4000,
        timeout_s: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.http = http_client or httpx.AsyncClient(timeout=timeout_s)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_payload(self, prompt: str, json_output: bool = False) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {
            "temperature": self.temperature,
            "topK": 40,
            "topP": 0.95,
            "maxOutputTokens": self.max_output_tokens,
        }
        if json_output:
            generation_config["responseMimeType"] = "application/json"

        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    async def generate_text(
        self,
        prompt: str,
        error_type: Type[CollaboratorError],
        json_output: bool = False,
    ) -> str:
        """Send one prompt and return the concatenated candidate text"""

        try:
            response = await self.http.post(
                self.endpoint,
                headers={"x-goog-api-key": self.api_key},
                json=self.build_payload(prompt, json_output=json_output),
            )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise error_type(f"Gemini request timed out: {e}", timed_out=True) from e
        except httpx.HTTPStatusError as e:
            raise error_type(f"Gemini HTTP error ({e.response.status_code})") from e
        except (httpx.HTTPError, ValueError) as e:
            raise error_type(f"Gemini request failed: {e}") from e

        text = self.extract_text(body)
        if not text.strip():
            finish_reason = None
            candidates = body.get("candidates") or []
            if candidates:
                finish_reason = candidates[0].get("finishReason")
            raise error_type(f"Gemini returned no text (finishReason={finish_reason})")

        logger.debug("Gemini response received", model=self.model, chars=len(text))
        return text

    @staticmethod
    def extract_text(body: Dict[str, Any]) -> str:
        candidates = body.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    async def close(self) -> None:
        await self.http.aclose()
