"""Service declaration and template loading with validation.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SERVICE_FILE_SIZE_BYTES, MAX_TEMPLATE_FILE_SIZE_BYTES
from .models import ServiceDeclaration

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when a declaration or template cannot be loaded."""

    pass


def _read_bounded(path: Path, max_bytes: int, kind: str) -> str:
    if not path.exists():
        raise SpecLoadError(f"{kind} file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat {kind.lower()} file {path}: {e}") from e

    if file_size > max_bytes:
        raise SpecLoadError(f"{kind} file exceeds maximum size of {max_bytes} bytes: {path}")

    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read {kind.lower()} file {path}: {e}") from e


def load_service(service_file: Path) -> ServiceDeclaration:
    """Load and validate a service declaration from YAML.

    Args:
        service_file: Path to the serverless.yml-shaped declaration.

    Returns:
        Validated service declaration.

    Raises:
        SpecLoadError: If the file cannot be loaded or fails validation.
    """
    content = _read_bounded(service_file, MAX_SERVICE_FILE_SIZE_BYTES, "Service")

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {service_file}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Service file must contain a YAML mapping: {service_file}")

    try:
        declaration = ServiceDeclaration.model_validate(raw_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {service_file}:\n{error_list}") from e

    logger.info(
        "Loaded service '%s' from %s (%d edge functions)",
        declaration.service,
        service_file,
        len(declaration.edge_functions),
    )
    return declaration


def load_template(template_file: Path) -> dict[str, Any]:
    """Load a compiled CloudFormation template.

    Raises:
        SpecLoadError: If the template cannot be loaded or has no Resources.
    """
    content = _read_bounded(template_file, MAX_TEMPLATE_FILE_SIZE_BYTES, "Template")

    try:
        template = json.loads(content)
    except json.JSONDecodeError as e:
        raise SpecLoadError(f"Invalid JSON in {template_file}: {e}") from e

    if not isinstance(template, dict):
        raise SpecLoadError(f"Template must be a JSON object: {template_file}")

    if not isinstance(template.get("Resources"), dict):
        raise SpecLoadError(f"Template has no Resources mapping: {template_file}")

    logger.info("Loaded template from %s", template_file)
    return template


def write_template(template: dict[str, Any], template_file: Path) -> None:
    """Write a prepared template back to disk.

    Raises:
        SpecLoadError: If the file cannot be written.
    """
    try:
        template_file.parent.mkdir(parents=True, exist_ok=True)
        template_file.write_text(json.dumps(template, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to write template file {template_file}: {e}") from e

    logger.info("Wrote template to %s", template_file)
