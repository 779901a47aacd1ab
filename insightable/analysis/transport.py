from typing import Any, Dict, Optional
import logging
import httpx

from insightable.analysis.config import Config
from insightable.analysis.errors import APIStatusError, AuthError, ParseError, TransportError

LOGGER = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    """Pull the server's error message out of a failed response, falling back to the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.text


class Transport:
    """
    Issues authenticated JSON and multipart requests against the Assistants API.
    Every request carries the bearer credential and the protocol-version header.
    """

    def __init__(self, config: Config, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=config.request_timeout)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "OpenAI-Beta": self.config.beta_header,
        }

    async def request(self, method: str, path: str, *, json: Any = None, files: Any = None,
                      data: Optional[Dict[str, str]] = None, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.config.has_api_key():
            raise AuthError("No API key configured. Set OPENAI_API_KEY.")

        url = f"{self.config.base_url}{path}"
        try:
            response = await self.http_client.request(
                method, url, headers=self._headers(), json=json, files=files, data=data, params=params)
        except httpx.TimeoutException as e:
            LOGGER.error(f"{method} {path} timed out: {e}")
            raise TransportError(f"{method} {path} timed out") from e
        except httpx.RequestError as e:
            LOGGER.error(f"{method} {path} failed: {e}")
            raise TransportError(f"{method} {path} failed: {e}") from e

        if response.status_code in (401, 403):
            detail = _error_detail(response)
            LOGGER.error(f"{method} {path} rejected credential ({response.status_code}): {detail}")
            raise AuthError(f"Credential rejected ({response.status_code}): {detail}")
        if not response.is_success:
            detail = _error_detail(response)
            LOGGER.error(f"{method} {path} returned {response.status_code}: {detail}")
            raise APIStatusError(f"{method} {path} returned {response.status_code}",
                                 status_code=response.status_code, detail=detail)

        try:
            payload = response.json()
        except ValueError as e:
            raise ParseError(f"{method} {path} returned a body that is not JSON") from e
        if not isinstance(payload, dict):
            raise ParseError(f"{method} {path} returned {type(payload).__name__}, expected an object")
        LOGGER.debug(f"{method} {path} -> {response.status_code}")
        return payload

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
