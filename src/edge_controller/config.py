"""Configuration management with validation.

Configuration is validated at load time so a misconfigured run fails
before any AWS API call is made.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_SERVICE_FILE = "serverless.yml"
DEFAULT_TEMPLATE_FILE = ".serverless/cloudformation-template-update-stack.json"

# Lambda@Edge functions must live in us-east-1
DEFAULT_REGION = "us-east-1"

# CloudFront convergence takes minutes, polling faster only burns API quota
DEFAULT_DEPLOY_POLL_INTERVAL_SECONDS = 60
MIN_DEPLOY_POLL_INTERVAL_SECONDS = 5
MAX_DEPLOY_POLL_INTERVAL_SECONDS = 600

DEFAULT_PROGRESS_INTERVAL_SECONDS = 2.0
DEFAULT_PROGRESS_INITIAL_DELAY_SECONDS = 1.0

# Security constraints - enforced limits to prevent abuse
MAX_SERVICE_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max service file
MAX_TEMPLATE_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB max CloudFormation template
MAX_STACK_NAME_LENGTH = 128

# Input validation patterns
VALID_STACK_NAME_PATTERN = r"^[A-Za-z][A-Za-z0-9-]*$"
VALID_REGION_PATTERN = r"^[a-z]{2}(-gov)?-[a-z]+-\d$"
VALID_STAGE_PATTERN = r"^[A-Za-z0-9-_]+$"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Paths
    service_file: Path = field(default_factory=lambda: Path(DEFAULT_SERVICE_FILE))
    template_file: Path = field(default_factory=lambda: Path(DEFAULT_TEMPLATE_FILE))

    # Stack identity overrides (default to the service file's values)
    stage: str | None = None
    stack_name: str | None = None

    # AWS
    region: str = DEFAULT_REGION
    profile: str | None = None

    # Timing
    deploy_poll_interval_seconds: int = DEFAULT_DEPLOY_POLL_INTERVAL_SECONDS
    progress_interval_seconds: float = DEFAULT_PROGRESS_INTERVAL_SECONDS
    progress_initial_delay_seconds: float = DEFAULT_PROGRESS_INITIAL_DELAY_SECONDS

    # Behavior
    dry_run: bool = False
    json_logs: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        import re

        errors: list[str] = []

        if not self.region:
            errors.append("AWS_REGION is required")
        elif not re.match(VALID_REGION_PATTERN, self.region):
            errors.append(f"AWS_REGION must be a valid AWS region: {self.region}")

        if self.stage is not None and not re.match(VALID_STAGE_PATTERN, self.stage):
            errors.append(f"EDGE_STAGE must match pattern {VALID_STAGE_PATTERN}: {self.stage}")

        if self.stack_name is not None:
            if not re.match(VALID_STACK_NAME_PATTERN, self.stack_name):
                errors.append(
                    f"EDGE_STACK_NAME must match pattern {VALID_STACK_NAME_PATTERN}: "
                    f"{self.stack_name}"
                )
            elif len(self.stack_name) > MAX_STACK_NAME_LENGTH:
                errors.append(f"EDGE_STACK_NAME exceeds maximum length of {MAX_STACK_NAME_LENGTH}")

        # Timing validation
        if not (
            MIN_DEPLOY_POLL_INTERVAL_SECONDS
            <= self.deploy_poll_interval_seconds
            <= MAX_DEPLOY_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"DEPLOY_POLL_INTERVAL must be between {MIN_DEPLOY_POLL_INTERVAL_SECONDS} "
                f"and {MAX_DEPLOY_POLL_INTERVAL_SECONDS} seconds"
            )

        if self.progress_interval_seconds <= 0:
            errors.append("PROGRESS_INTERVAL must be greater than 0")

        if self.progress_initial_delay_seconds < 0:
            errors.append("progress_initial_delay_seconds cannot be negative")

        # Path validation
        if not self.service_file.is_file():
            errors.append(f"Service file does not exist: {self.service_file}")

        if not self.template_file.is_file():
            errors.append(f"Template file does not exist: {self.template_file}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            EDGE_SERVICE_FILE: Service declaration YAML (default: serverless.yml)
            EDGE_TEMPLATE_FILE: Compiled CloudFormation template JSON
                (default: .serverless/cloudformation-template-update-stack.json)
            EDGE_STAGE: Overrides the provider stage of the service file
            EDGE_STACK_NAME: Overrides the derived "<service>-<stage>" stack name
            AWS_REGION: Region of the CloudFormation stack (default: us-east-1)
            AWS_PROFILE: Named credentials profile (default: boto3 resolution chain)
            DEPLOY_POLL_INTERVAL: Seconds between distribution status polls (default: 60)
            PROGRESS_INTERVAL: Seconds between progress dots (default: 2)
            DRY_RUN: If "true", compute changes without updating distributions
            JSON_LOGS: If "false", log plain text instead of JSON (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            service_file=Path(os.environ.get("EDGE_SERVICE_FILE", DEFAULT_SERVICE_FILE)),
            template_file=Path(os.environ.get("EDGE_TEMPLATE_FILE", DEFAULT_TEMPLATE_FILE)),
            stage=os.environ.get("EDGE_STAGE") or None,
            stack_name=os.environ.get("EDGE_STACK_NAME") or None,
            region=os.environ.get("AWS_REGION", DEFAULT_REGION),
            profile=os.environ.get("AWS_PROFILE") or None,
            deploy_poll_interval_seconds=get_int(
                "DEPLOY_POLL_INTERVAL", DEFAULT_DEPLOY_POLL_INTERVAL_SECONDS
            ),
            progress_interval_seconds=get_float(
                "PROGRESS_INTERVAL", DEFAULT_PROGRESS_INTERVAL_SECONDS
            ),
            dry_run=get_bool("DRY_RUN", False),
            json_logs=get_bool("JSON_LOGS", True),
        )
