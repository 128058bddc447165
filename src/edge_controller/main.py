"""Main entry point for the Lambda@Edge association operator.

Two operations are exposed, matching the deployment lifecycle:

- prepare: patch the compiled template for Lambda@Edge before it is deployed
- reconcile: after deployment, converge CloudFront distributions to the
  declared associations

Exit codes: 0 success, 1 failure, 3 concurrent modification of a
distribution (safe to re-run the pass).
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from .backend import AwsEdgeBackend, ConcurrencyError, EdgeBackend
from .config import Config, ConfigurationError
from .naming import ServiceNaming
from .reconciler import EdgeAssociationReconciler
from .resolver import ResolutionError
from .spec_loader import SpecLoadError, load_service, load_template, write_template
from .template import patch_execution_role
from .validator import AssociationValidationError, validate_associations

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONCURRENT_MODIFICATION = 3

LOG_HANDLER_NAME = "edge-operator"

# LogRecord attributes that are not user supplied extra fields
_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(json_logs: bool = True) -> None:
    """Configure logging, JSON for pipelines or plain text for terminals.

    Safe to call repeatedly: the operator's handler is installed once and
    only its formatter is replaced on later calls.
    """
    root_logger = logging.getLogger()
    handler = next((h for h in root_logger.handlers if h.get_name() == LOG_HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(LOG_HANDLER_NAME)
        root_logger.addHandler(handler)

    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))

    root_logger.setLevel(logging.INFO)

    # Reduce noise from the AWS SDK
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def run_prepare(config: Config, output_file: Path | None = None) -> int:
    """Patch the compiled template for Lambda@Edge and write it out.

    Args:
        config: Validated operator configuration.
        output_file: Where to write the template (default: in place).

    Returns:
        Exit code.
    """
    logger = logging.getLogger(__name__)
    target = output_file or config.template_file

    try:
        declaration = load_service(config.service_file)
        template = load_template(config.template_file)
        naming = ServiceNaming.from_declaration(declaration, config.stage, config.stack_name)

        pending = validate_associations(declaration.functions, template, naming)
        if pending:
            patch_execution_role(template)

        write_template(template, target)
    except SpecLoadError as e:
        logger.error("Failed to load declarations", extra={"error": str(e)})
        return EXIT_FAILURE
    except AssociationValidationError as e:
        logger.error(
            "Invalid Lambda@Edge association",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return EXIT_FAILURE

    logger.info(
        "Template prepared",
        extra={"associations": len(pending), "template_file": str(target)},
    )
    return EXIT_OK


async def run_reconcile(config: Config, backend: EdgeBackend | None = None) -> int:
    """Validate declarations and converge distributions.

    Args:
        config: Validated operator configuration.
        backend: AWS access; built from config when omitted.

    Returns:
        Exit code.
    """
    logger = logging.getLogger(__name__)

    try:
        declaration = load_service(config.service_file)
        template = load_template(config.template_file)
        naming = ServiceNaming.from_declaration(declaration, config.stage, config.stack_name)

        if backend is None:
            backend = AwsEdgeBackend.from_session(config.region, config.profile)

        reconciler = EdgeAssociationReconciler.from_config(config, backend, naming)
        reconciler.validate_and_register(declaration.functions, template)
        await reconciler.reconcile()

    except SpecLoadError as e:
        logger.error("Failed to load declarations", extra={"error": str(e)})
        return EXIT_FAILURE

    except AssociationValidationError as e:
        logger.error(
            "Invalid Lambda@Edge association",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return EXIT_FAILURE

    except ResolutionError as e:
        logger.error(
            "Failed to resolve Lambda@Edge associations",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return EXIT_FAILURE

    except ConcurrencyError as e:
        # Stale read: the distribution changed under us, re-running is safe
        logger.error("Distribution modified concurrently", extra={"error": str(e)})
        return EXIT_CONCURRENT_MODIFICATION

    except (ClientError, BotoCoreError) as e:
        logger.error(
            "AWS error",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return EXIT_FAILURE

    return EXIT_OK


async def main() -> int:
    """Run reconciliation configured from the environment.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error("Configuration error", extra={"error": str(e)})
        return EXIT_FAILURE

    setup_logging(config.json_logs)
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting Lambda@Edge association operator",
        extra={
            "service_file": str(config.service_file),
            "region": config.region,
            "dry_run": config.dry_run,
        },
    )
    return await run_reconcile(config)


def run() -> None:
    """Entry point for environment-driven runs."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
