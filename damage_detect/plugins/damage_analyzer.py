"""HTTP client for the damage analysis boundary."""

import logging
import time
from typing import Dict, Optional

import httpx

from ..models.assessment import UnitAnalysisResult
from ..utils.errors import AnalysisClientError
from ..utils.payload_parser import fallback_result, normalize_payload, parse_analysis_payload

logger = logging.getLogger(__name__)


class DamageAnalysisClient:
    """
    Submits one image per call to the analysis boundary.

    Exactly one POST per ``analyze`` call and no retries. The client holds no
    per-call state, so a single instance can be shared by a whole session.
    """

    def __init__(
        self,
        endpoint_url: str,
        timeout: float = 120.0,
        api_key: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize analysis client.

        Args:
            endpoint_url: URL of the analyze-damage function
            timeout: Transport timeout in seconds
            api_key: Optional bearer token sent with each request
            transport: Optional httpx transport (tests pass a MockTransport)
            http_client: Optional shared AsyncClient; when omitted a client is
                opened per call so the instance survives event-loop changes
        """
        self.endpoint_url = endpoint_url
        self.timeout = timeout
        self.transport = transport
        self.http_client = http_client
        self.headers: Dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
            self.headers["apikey"] = api_key

    @classmethod
    def from_config(cls, config) -> "DamageAnalysisClient":
        return cls(
            endpoint_url=config.boundary.url,
            timeout=config.boundary.timeout,
            api_key=config.boundary.api_key,
        )

    async def analyze(self, image_data_uri: str) -> UnitAnalysisResult:
        """
        Analyze one encoded image.

        Args:
            image_data_uri: Image as a base64 data URI

        Returns:
            Normalized UnitAnalysisResult; the fallback result when the
            boundary answered 2xx with a body that is not a JSON object

        Raises:
            AnalysisClientError: Non-2xx status, a 2xx body carrying an
                ``error`` field, or a transport failure
        """
        start_time = time.time()
        body = {"imageBase64": image_data_uri}

        try:
            if self.http_client is not None:
                response = await self.http_client.post(self.endpoint_url, json=body, headers=self.headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                    response = await client.post(self.endpoint_url, json=body, headers=self.headers)
        except httpx.HTTPError as e:
            logger.error(f"Analysis request failed: {str(e) or type(e).__name__}")
            raise AnalysisClientError.transport_failed(e)

        elapsed = time.time() - start_time
        logger.debug(f"Analysis boundary answered {response.status_code} in {elapsed:.3f}s")

        if not response.is_success:
            message = self._error_message(response)
            logger.warning(f"Analysis boundary returned {response.status_code}: {message}")
            raise AnalysisClientError.from_status(response.status_code, message)

        parsed = parse_analysis_payload(response.text)
        if not parsed.ok:
            logger.warning(f"Unreadable analysis payload, using fallback: {parsed.error}")
            return fallback_result()

        if parsed.payload.get("error"):
            raise AnalysisClientError.rejected(str(parsed.payload["error"]))

        result = normalize_payload(parsed.payload)
        logger.info(
            f"Analysis complete: damage={result.has_damage}, "
            f"severity={result.overall_severity.label}, "
            f"{len(result.observations)} observation(s) in {elapsed:.3f}s"
        )
        return result

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        parsed = parse_analysis_payload(response.text)
        if parsed.ok and parsed.payload.get("error"):
            return str(parsed.payload["error"])
        text = response.text.strip()
        return text[:200] if text else f"Analysis service returned HTTP {response.status_code}"
