"""AWS Bedrock Converse client used by the analysis boundary."""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError
from dotenv import load_dotenv

from .errors import BedrockAPIError, ErrorContext, ErrorType

load_dotenv()

logger = logging.getLogger(__name__)

# Vendor codes worth another attempt after a backoff
RETRYABLE_CODES = frozenset({
    "ThrottlingException",
    "TooManyRequestsException",
    "ServiceUnavailableException",
    "InternalServerException",
    "RequestTimeout",
    "RequestTimeoutException",
})


def _runtime_client(region: str, timeout: int) -> Any:
    options: Dict[str, Any] = {
        "region_name": region,
        "connect_timeout": timeout,
        "read_timeout": timeout,
        "retries": {"max_attempts": 0},
    }
    api_key = os.getenv("AWS_BEARER_TOKEN_BEDROCK") or os.getenv("BEDROCK_API_KEY")
    if api_key:
        # botocore reads the bearer token from this variable
        os.environ.setdefault("AWS_BEARER_TOKEN_BEDROCK", api_key)
        options["signature_version"] = "bearer"
        logger.info("Bedrock runtime using API key authentication")
    else:
        logger.info("Bedrock runtime using IAM credentials (SigV4)")
    return boto3.client("bedrock-runtime", config=BotoConfig(**options))


class BedrockClient:
    """
    Thin async wrapper around ``bedrock-runtime`` Converse calls.

    Throttling and transient service codes are retried with exponential
    backoff (1s, 2s, 4s, ...); any other failure surfaces immediately as a
    BedrockAPIError whose type tells the boundary which status to return.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        model_id: str = "amazon.nova-pro-v1:0",
        timeout: int = 120,
        max_retries: int = 3,
        runtime: Optional[Any] = None
    ):
        """
        Args:
            region: AWS region hosting the model
            model_id: Vision-capable model identifier
            timeout: Connect and read timeout in seconds
            max_retries: Attempts per call, at least one
            runtime: Pre-built ``bedrock-runtime`` client (tests pass a fake)
        """
        self.model_id = model_id
        self.max_retries = max(1, max_retries)
        self.runtime = runtime if runtime is not None else _runtime_client(region, timeout)
        logger.info(f"BedrockClient ready: region={region}, model={model_id}, attempts={self.max_retries}")

    @classmethod
    def from_config(cls, config) -> "BedrockClient":
        """Build a client from a loaded ``Config``."""
        return cls(
            region=config.aws_region,
            model_id=config.bedrock.model_id,
            timeout=config.bedrock.timeout,
            max_retries=config.bedrock.max_retries,
        )

    async def converse(
        self,
        messages: List[Dict[str, Any]],
        system_prompts: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096
    ) -> Dict[str, Any]:
        """
        Send one Converse request and return the flattened reply.

        Args:
            messages: Converse messages (``role`` plus content blocks)
            system_prompts: Optional system content blocks
            temperature: Sampling temperature
            max_tokens: Response token budget

        Returns:
            Dict with ``text`` (all text blocks joined), ``content``,
            ``stop_reason`` and ``usage``

        Raises:
            BedrockAPIError: If the call fails
        """
        request: Dict[str, Any] = {
            "modelId": self.model_id,
            "messages": messages,
            "inferenceConfig": {"temperature": temperature, "maxTokens": max_tokens},
        }
        if system_prompts:
            request["system"] = system_prompts

        response = await self._call_with_retry(request)
        logger.info(f"Converse finished: stop_reason={response.get('stopReason')}, usage={response.get('usage')}")
        return self._flatten(response)

    async def _call_with_retry(self, request: Dict[str, Any]) -> Dict[str, Any]:
        for attempt in range(1, self.max_retries + 1):
            try:
                # boto3 blocks; keep the event loop free
                return await asyncio.to_thread(self.runtime.converse, **request)
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code", "Unknown")
                logger.warning(f"Converse attempt {attempt}/{self.max_retries} failed: {code}")
                if code in RETRYABLE_CODES and attempt < self.max_retries:
                    await asyncio.sleep(2 ** (attempt - 1))
                    continue
                raise BedrockAPIError.from_client_error(error=e, operation="converse")
            except Exception as e:
                logger.error(f"Unexpected Converse failure: {str(e)}")
                raise BedrockAPIError(ErrorContext(
                    error_type=ErrorType.BEDROCK_SERVICE_ERROR,
                    message=f"Unexpected error calling the vision model: {str(e)}",
                    recoverable=False,
                    original_exception=e
                ))
        raise BedrockAPIError(ErrorContext(
            error_type=ErrorType.BEDROCK_SERVICE_ERROR,
            message=f"Vision model call failed after {self.max_retries} attempts",
            recoverable=False
        ))

    @staticmethod
    def _flatten(response: Dict[str, Any]) -> Dict[str, Any]:
        content = response.get("output", {}).get("message", {}).get("content", [])
        return {
            "text": "\n".join(block["text"] for block in content if "text" in block),
            "content": content,
            "stop_reason": response.get("stopReason", "unknown"),
            "usage": response.get("usage", {}),
        }
