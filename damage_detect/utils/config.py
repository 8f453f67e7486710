"""Configuration management for the damage assessment pipeline."""

import os
import yaml
from dataclasses import dataclass
from dotenv import load_dotenv


@dataclass
class BoundaryConfig:
    """Analysis boundary (HTTP endpoint) configuration."""
    url: str
    timeout: float
    api_key: str = ""


@dataclass
class BedrockConfig:
    """AWS Bedrock configuration for the boundary service."""
    model_id: str
    timeout: int
    max_retries: int
    temperature: float = 0.0
    max_tokens: int = 4096


@dataclass
class ExtractionConfig:
    """Video frame extraction configuration."""
    max_frames: int
    jpeg_quality: int


@dataclass
class ReportConfig:
    """Report export configuration."""
    brand: str
    single_filename_prefix: str
    combined_filename_prefix: str


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str
    format: str
    file: str


@dataclass
class Config:
    """Main configuration class."""
    aws_region: str
    boundary: BoundaryConfig
    bedrock: BedrockConfig
    extraction: ExtractionConfig
    report: ReportConfig
    logging: LoggingConfig

    @classmethod
    def load(cls, config_path: str = "config.yaml") -> "Config":
        """
        Load configuration from file and environment variables.

        Environment variables (also read from a ``.env`` file) override
        config file values:
        - DAMAGE_BOUNDARY_URL
        - DAMAGE_BOUNDARY_TIMEOUT
        - DAMAGE_BOUNDARY_API_KEY
        - AWS_REGION
        - BEDROCK_MODEL_ID
        - LOG_LEVEL
        - LOG_FILE

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings
        """
        load_dotenv()

        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f)

        aws_region = os.getenv("AWS_REGION", config_data["aws"]["region"])

        bedrock_data = config_data["aws"]["bedrock"]
        bedrock_config = BedrockConfig(
            model_id=os.getenv("BEDROCK_MODEL_ID", bedrock_data["model_id"]),
            timeout=bedrock_data["timeout"],
            max_retries=bedrock_data["max_retries"],
            temperature=float(bedrock_data.get("temperature", 0.0)),
            max_tokens=int(bedrock_data.get("max_tokens", 4096)),
        )

        boundary_data = config_data["boundary"]
        boundary_config = BoundaryConfig(
            url=os.getenv("DAMAGE_BOUNDARY_URL", boundary_data["url"]),
            timeout=float(os.getenv("DAMAGE_BOUNDARY_TIMEOUT", boundary_data["timeout"])),
            api_key=os.getenv("DAMAGE_BOUNDARY_API_KEY", boundary_data.get("api_key") or ""),
        )

        extraction_data = config_data.get("extraction", {}) or {}
        extraction_config = ExtractionConfig(
            max_frames=int(extraction_data.get("max_frames", 6)),
            jpeg_quality=int(extraction_data.get("jpeg_quality", 90)),
        )

        report_data = config_data.get("report", {}) or {}
        report_config = ReportConfig(
            brand=report_data.get("brand", "DamageDetect AI"),
            single_filename_prefix=report_data.get("single_filename_prefix", "damage-report"),
            combined_filename_prefix=report_data.get(
                "combined_filename_prefix", "comprehensive-damage-report"
            ),
        )

        logging_config = LoggingConfig(
            level=os.getenv("LOG_LEVEL", config_data["logging"]["level"]),
            format=config_data["logging"]["format"],
            file=os.getenv("LOG_FILE", config_data["logging"].get("file") or "")
        )

        return cls(
            aws_region=aws_region,
            boundary=boundary_config,
            bedrock=bedrock_config,
            extraction=extraction_config,
            report=report_config,
            logging=logging_config,
        )
