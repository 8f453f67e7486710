"""Vision-model damage assessment behind the analyze-damage endpoint.

Sends the photo to Nova Pro through the Bedrock Converse API, parses the
model's JSON answer and, when damage was found, draws numbered call-outs on
the photo. Produces the same wire payload the DamageAnalysisClient consumes.
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple

from .plugins.damage_annotator import DamageAnnotator
from .utils.bedrock_client import BedrockClient
from .utils.data_uri import decode_data_uri, detect_image_format
from .utils.errors import DamageDetectError, ErrorType, InvalidRequestError
from .utils.logging import with_context
from .utils.payload_parser import fallback_payload, parse_analysis_payload

logger = logging.getLogger(__name__)

USER_PROMPT = (
    "Analyze this image carefully. First check if it contains a vehicle. "
    "If yes, examine it for any visible damage. Be accurate and only report "
    "real damage you can see."
)

SYSTEM_PROMPT = """You are an expert AI vehicle damage detection system. Your job is to carefully analyze vehicle images.

CRITICAL RULES:
1. If the image does NOT contain a vehicle (car, truck, motorcycle, etc.), set hasVehicle to false
2. If the vehicle is in PERFECT condition with NO visible damage, set hasDamage to false and damages to empty array
3. Only report damage that is ACTUALLY VISIBLE in the image - do not assume or guess damage
4. Be very accurate - false positives are worse than false negatives

When analyzing an image:
1. First determine if there is a vehicle in the image
2. If there is a vehicle, carefully examine for ACTUAL visible damage (dents, scratches, cracks, broken parts, rust, paint damage)
3. Only report damage you can clearly see - not potential or possible damage
4. If the car looks clean and undamaged, report no damage
5. For each damage, give a bounding box in relative coordinates (x, y, w, h between 0.0 and 1.0, origin at top-left)

Respond ONLY with a valid JSON object in this exact format:
{
  "hasVehicle": boolean,
  "hasDamage": boolean,
  "overallSeverity": "None" | "Minor" | "Moderate" | "Severe",
  "confidenceScore": number (0-100),
  "damages": [
    {
      "type": "string (dent/scratch/crack/broken/missing/rust/paint_damage)",
      "location": "string (specific part like front bumper, left door, hood, etc.)",
      "severity": "Minor" | "Moderate" | "Severe",
      "description": "string",
      "bbox": {"x": number, "y": number, "w": number, "h": number}
    }
  ],
  "affectedAreas": ["string"],
  "estimatedRepairCost": {
    "min": number,
    "max": number,
    "currency": "INR"
  },
  "recommendations": ["string"],
  "summary": "string (2-3 sentence summary)"
}

If no vehicle is detected, respond with:
{
  "hasVehicle": false,
  "hasDamage": false,
  "overallSeverity": "None",
  "confidenceScore": 95,
  "damages": [],
  "affectedAreas": [],
  "estimatedRepairCost": { "min": 0, "max": 0, "currency": "INR" },
  "recommendations": ["Please upload a clear image of a vehicle for damage analysis."],
  "summary": "No vehicle detected in the image. Please upload a clear photo of a car, truck, or motorcycle."
}

If vehicle is detected but has NO damage:
{
  "hasVehicle": true,
  "hasDamage": false,
  "overallSeverity": "None",
  "confidenceScore": 90,
  "damages": [],
  "affectedAreas": [],
  "estimatedRepairCost": { "min": 0, "max": 0, "currency": "INR" },
  "recommendations": ["Vehicle appears to be in good condition.", "Regular maintenance recommended."],
  "summary": "Vehicle analyzed. No visible damage detected. The vehicle appears to be in good condition."
}

IMPORTANT: Always estimate repair costs in Indian Rupees (INR). Typical ranges:
- Minor damage: ₹5,000 - ₹25,000
- Moderate damage: ₹25,000 - ₹1,00,000
- Severe damage: ₹1,00,000 - ₹5,00,000+"""

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
QUOTA_MESSAGE = "AI credits exhausted. Please add more credits."


class DamageAssessor:
    """
    Runs one damage assessment per image.

    Model failures propagate as BedrockAPIError; unreadable model text is
    replaced with the fallback payload. Annotation is best effort.
    """

    def __init__(
        self,
        bedrock_client: BedrockClient,
        annotator: Optional[DamageAnnotator] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096
    ):
        """
        Initialize assessor.

        Args:
            bedrock_client: Configured BedrockClient instance
            annotator: Call-out renderer; a default one is built when omitted
            temperature: Sampling temperature for the vision model
            max_tokens: Response token budget
        """
        self.bedrock = bedrock_client
        self.annotator = annotator or DamageAnnotator()
        self.temperature = temperature
        self.max_tokens = max_tokens
        logger.info("Initialized DamageAssessor")

    @with_context(component="assessor")
    async def assess(self, image_data_uri: Any) -> Dict[str, Any]:
        """
        Assess one vehicle photo.

        Args:
            image_data_uri: Base64 data URI of the photo

        Returns:
            Wire payload (camelCase keys) including ``annotatedImage``

        Raises:
            InvalidRequestError: If no image or an unreadable data URI was sent
            BedrockAPIError: If the model call fails
        """
        if not image_data_uri:
            raise InvalidRequestError.no_image()
        if not isinstance(image_data_uri, str):
            raise InvalidRequestError.invalid_image(TypeError("imageBase64 must be a string"))

        try:
            _, image_bytes = decode_data_uri(image_data_uri)
        except ValueError as e:
            raise InvalidRequestError.invalid_image(e)
        if not image_bytes:
            raise InvalidRequestError.no_image()

        start_time = time.time()
        image_format = detect_image_format(image_bytes)
        logger.info(f"Assessing {image_format} image ({len(image_bytes)} bytes)")

        # boto3's converse API takes raw bytes and handles encoding
        messages = [
            {
                "role": "user",
                "content": [
                    {"text": USER_PROMPT},
                    {"image": {"format": image_format, "source": {"bytes": image_bytes}}},
                ],
            }
        ]

        response = await self.bedrock.converse(
            messages=messages,
            system_prompts=[{"text": SYSTEM_PROMPT}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        response_text = response.get("text", "")
        logger.debug(f"Model response preview: {response_text[:200]}")

        parsed = parse_analysis_payload(response_text)
        if parsed.ok:
            payload = parsed.payload
        else:
            logger.error(f"Failed to parse model response: {parsed.error}")
            payload = fallback_payload()

        annotated_image = None
        damages = payload.get("damages")
        if payload.get("hasVehicle") and payload.get("hasDamage") and isinstance(damages, list) and damages:
            annotated_image = self._annotate(image_bytes, damages)

        logger.info(
            f"Assessment complete in {time.time() - start_time:.3f}s: "
            f"vehicle={payload.get('hasVehicle')}, damage={payload.get('hasDamage')}, "
            f"annotated={annotated_image is not None}"
        )
        return {**payload, "annotatedImage": annotated_image}

    def _annotate(self, image_bytes: bytes, damages: list) -> Optional[str]:
        try:
            return self.annotator.annotate(
                image_bytes, [d for d in damages if isinstance(d, dict)]
            )
        except Exception as e:
            logger.error(f"Error generating annotated image: {str(e)}")
            return None


def boundary_error_response(error: Exception) -> Tuple[int, Dict[str, str]]:
    """
    Map an assessment failure to an HTTP status and ``{"error": ...}`` body.

    Args:
        error: Exception raised by ``DamageAssessor.assess``

    Returns:
        Tuple of (status_code, body)
    """
    if isinstance(error, InvalidRequestError):
        return 400, {"error": error.context.message}
    if isinstance(error, DamageDetectError):
        if error.error_type == ErrorType.BEDROCK_RATE_LIMIT:
            return 429, {"error": RATE_LIMIT_MESSAGE}
        if error.error_type == ErrorType.BEDROCK_QUOTA_EXHAUSTED:
            return 402, {"error": QUOTA_MESSAGE}
        return 500, {"error": error.context.message}
    return 500, {"error": str(error) or "An unexpected error occurred"}
