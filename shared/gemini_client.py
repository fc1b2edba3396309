"""
Async client for the Google Gemini REST API.

This client wraps the three endpoints the generator needs:
- generateContent: single-shot text / JSON responses, optionally grounded
  with Google Search
- streamGenerateContent (SSE): incremental body text
- predict (Imagen): image generation

The client is constructed explicitly and passed to the services that use it.
It never retries; retry policy lives with the callers.

API docs: https://ai.google.dev/gemini-api/docs/text-generation
"""
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import structlog

from .config import GeminiSettings

logger = structlog.get_logger()


class GeminiAPIError(Exception):
    """
    Raised for HTTP and transport failures talking to Gemini.

    str() renders as "<code> <STATUS>: <message>" so downstream error
    classification can match on status codes and provider status names.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        status: Optional[str] = None,
        payload: Optional[Any] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.status = status
        self.payload = payload
        super().__init__(self._render())

    def _render(self) -> str:
        prefix = " ".join(str(p) for p in (self.status_code, self.status) if p)
        return f"{prefix}: {self.message}" if prefix else self.message


@dataclass
class GeminiResponse:
    """Text extracted from a generateContent response."""
    text: str
    sources: List[Dict[str, str]] = field(default_factory=list)
    finish_reason: Optional[str] = None


@dataclass
class ImagePrediction:
    """A single generated image."""
    mime_type: str
    data: str  # base64

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


def _error_from_response(response: httpx.Response, body: Optional[bytes] = None) -> GeminiAPIError:
    """Build a GeminiAPIError from an error response body."""
    raw = body if body is not None else response.content
    payload: Any = None
    message = response.reason_phrase or "Request failed"
    status = None
    try:
        payload = json.loads(raw) if raw else None
    except (ValueError, UnicodeDecodeError):
        payload = raw.decode("utf-8", errors="replace") if raw else None

    # Gemini errors: {"error": {"code": 429, "message": "...", "status": "RESOURCE_EXHAUSTED"}}
    if isinstance(payload, list) and payload:
        payload = payload[0]
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        message = error.get("message") or message
        status = error.get("status")
    elif payload is not None:
        # Non-JSON bodies (proxy or gateway pages) stay on payload and in the log.
        logger.warning(
            "gemini_error_body_not_json",
            status_code=response.status_code,
            body_preview=str(payload)[:500],
        )

    return GeminiAPIError(message, status_code=response.status_code, status=status, payload=payload)


def _extract_text(data: Dict[str, Any]) -> str:
    """Join the text parts of the first candidate."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


def _extract_sources(data: Dict[str, Any]) -> List[Dict[str, str]]:
    """Collect web sources from search grounding metadata, unique by uri."""
    candidates = data.get("candidates") or []
    if not candidates:
        return []
    chunks = (candidates[0].get("groundingMetadata") or {}).get("groundingChunks") or []

    sources: List[Dict[str, str]] = []
    seen = set()
    for chunk in chunks:
        web = chunk.get("web") if isinstance(chunk, dict) else None
        if not web or not web.get("uri"):
            continue
        if web["uri"] in seen:
            continue
        seen.add(web["uri"])
        sources.append({"uri": web["uri"], "title": web.get("title") or ""})
    return sources


class GeminiClient:
    """
    Thin async wrapper over the Gemini REST API.

    Usage:
        async with GeminiClient(settings) as client:
            response = await client.generate_content("Hello")

    An httpx.AsyncClient may be injected (tests use httpx.MockTransport);
    an injected client is not closed by this wrapper.
    """

    def __init__(
        self,
        settings: GeminiSettings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.timeout)

    async def __aenter__(self) -> "GeminiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _url(self, model: str, method: str) -> str:
        return f"{self.settings.base_url}/models/{model}:{method}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.settings.api_key,
        }

    async def _post_json(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(url, headers=self._headers(), json=body)
        except httpx.TimeoutException as e:
            raise GeminiAPIError(f"Deadline exceeded waiting for Gemini: {e}") from e
        except httpx.TransportError as e:
            raise GeminiAPIError(f"Network error contacting Gemini: {e}") from e

        if response.status_code >= 400:
            raise _error_from_response(response)

        try:
            return response.json()
        except ValueError as e:
            logger.warning(
                "gemini_body_not_json",
                status_code=response.status_code,
                body_preview=response.text[:500],
            )
            raise GeminiAPIError(
                "Gemini returned a non-JSON body",
                status_code=response.status_code,
                payload=response.text,
            ) from e

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def generate_content(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        json_mode: bool = False,
        response_schema: Optional[Dict[str, Any]] = None,
        use_search: bool = False,
        temperature: Optional[float] = None,
    ) -> GeminiResponse:
        """
        Call generateContent and return the concatenated text.

        Args:
            prompt: User prompt.
            model: Model override (defaults to settings.text_model).
            json_mode: Request application/json output.
            response_schema: Gemini responseSchema (only sent with json_mode).
            use_search: Enable the Google Search grounding tool.
            temperature: Sampling temperature override.

        Raises:
            GeminiAPIError: On HTTP or transport failure.
        """
        model = model or self.settings.text_model

        request_body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        }

        generation_config: Dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
            if response_schema:
                generation_config["responseSchema"] = response_schema
        if generation_config:
            request_body["generationConfig"] = generation_config

        if use_search:
            request_body["tools"] = [{"google_search": {}}]

        logger.info(
            "calling_gemini",
            model=model,
            prompt_len=len(prompt),
            json_mode=json_mode,
            has_response_schema=response_schema is not None,
            use_search=use_search,
        )

        data = await self._post_json(self._url(model, "generateContent"), request_body)

        text = _extract_text(data)
        candidates = data.get("candidates") or []
        finish_reason = candidates[0].get("finishReason") if candidates else None

        logger.info(
            "gemini_response",
            content_len=len(text),
            content_preview=text[:200] if text else "EMPTY",
            finish_reason=finish_reason,
        )

        return GeminiResponse(
            text=text,
            sources=_extract_sources(data) if use_search else [],
            finish_reason=finish_reason,
        )

    async def stream_content(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Stream text chunks from streamGenerateContent (server-sent events).

        Yields chunks in arrival order. Empty chunks are skipped.

        Raises:
            GeminiAPIError: On HTTP or transport failure, including mid-stream.
        """
        model = model or self.settings.text_model
        url = self._url(model, "streamGenerateContent") + "?alt=sse"
        request_body = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        logger.info("streaming_gemini", model=model, prompt_len=len(prompt))

        chunk_count = 0
        try:
            async with self._client.stream("POST", url, headers=self._headers(), json=request_body) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise _error_from_response(response, body)

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data:"):
                        continue
                    payload = line[len("data:"):].strip()
                    if not payload or payload == "[DONE]":
                        continue
                    try:
                        event = json.loads(payload)
                    except ValueError as e:
                        logger.warning("gemini_stream_event_not_json", event_preview=payload[:500])
                        raise GeminiAPIError("Malformed stream event from Gemini", payload=payload) from e

                    if isinstance(event, dict) and isinstance(event.get("error"), dict):
                        error = event["error"]
                        raise GeminiAPIError(
                            error.get("message") or "Stream failed",
                            status_code=error.get("code"),
                            status=error.get("status"),
                            payload=event,
                        )

                    text = _extract_text(event)
                    if text:
                        chunk_count += 1
                        yield text
        except httpx.TimeoutException as e:
            raise GeminiAPIError(f"Deadline exceeded while streaming from Gemini: {e}") from e
        except httpx.TransportError as e:
            raise GeminiAPIError(f"Network error while streaming from Gemini: {e}") from e

        logger.info("gemini_stream_complete", model=model, chunk_count=chunk_count)

    async def generate_image(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        aspect_ratio: str = "16:9",
        mime_type: str = "image/jpeg",
    ) -> List[ImagePrediction]:
        """
        Generate one image with Imagen via the predict endpoint.

        Returns the list of predictions (empty if the service returned none).

        Raises:
            GeminiAPIError: On HTTP or transport failure.
        """
        model = model or self.settings.image_model
        request_body = {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "sampleCount": 1,
                "aspectRatio": aspect_ratio,
                "outputOptions": {"mimeType": mime_type},
            },
        }

        logger.info("calling_imagen", model=model, prompt=prompt[:50])

        data = await self._post_json(self._url(model, "predict"), request_body)

        predictions: List[ImagePrediction] = []
        for item in data.get("predictions") or []:
            if not isinstance(item, dict) or not item.get("bytesBase64Encoded"):
                continue
            predictions.append(ImagePrediction(
                mime_type=item.get("mimeType") or mime_type,
                data=item["bytesBase64Encoded"],
            ))

        logger.info("imagen_response", model=model, prediction_count=len(predictions))
        return predictions
