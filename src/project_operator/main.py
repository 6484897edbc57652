"""Main entry point for the project operator.

The operator reconciles the sub-resources of every project declared in the
specs directory against the remote API until it receives SIGTERM or SIGINT.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import UTC

from .client import AtlasClient
from .config import Config, ConfigurationError
from .models import ResourceRef
from .reconciler import Controller, ProjectReconciler
from .retry import RetryPolicy
from .secret_store import DirectorySecretStore, SecretError
from .security import InlineCredentialError, load_api_credential
from .spec_loader import SpecLoadError
from .store import ProjectStore

# LogRecord attributes that are not structured extra fields
_RESERVED_RECORD_FIELDS = frozenset(
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


def setup_logging(level: int = logging.INFO) -> None:
    """Configure structured logging with JSON output for production."""
    import json
    from datetime import datetime

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
                if key not in _RESERVED_RECORD_FIELDS:
                    log_data[key] = value

            # Add exception info if present
            if record.exc_info:
                log_data["exception"] = self.formatException(record.exc_info)

            return json.dumps(log_data, default=str)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from the HTTP pipeline
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_controller(config: Config, logger: logging.Logger) -> tuple[Controller, AtlasClient]:
    """Wire the controller from configuration.

    Raises:
        InlineCredentialError: If credentials are present in the environment.
        SecretError: If the API token secret cannot be read.
    """
    secret_store = DirectorySecretStore(config.secrets_dir)
    credential = load_api_credential(
        secret_store,
        ResourceRef(name=config.credentials_name, namespace=config.credentials_namespace),
    )
    client = AtlasClient(config.atlas_base_url, credential)
    reconciler = ProjectReconciler(
        client,
        secret_store,
        retry_policy=RetryPolicy(
            short_delay_seconds=config.short_requeue_seconds,
            backoff_base_seconds=config.backoff_base_seconds,
            backoff_max_seconds=config.backoff_max_seconds,
        ),
        max_parallel_calls=config.max_parallel_calls,
    )
    store = ProjectStore(config.specs_dir, config.state_dir)
    return Controller(config, store, reconciler, logger), client


async def main() -> int:
    """Run the operator.

    Returns:
        Exit code (0 for success, 1 for configuration errors, 2 for security
        violations).
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    logger.info(
        "Starting project operator",
        extra={
            "atlas_base_url": config.atlas_base_url,
            "specs_dir": str(config.specs_dir),
            "state_dir": str(config.state_dir),
        },
    )

    try:
        controller, client = build_controller(config, logger)
    except InlineCredentialError as e:
        # SECURITY: Credential detected in environment - fatal security error
        logger.critical(
            "Security violation: credentials detected in environment",
            extra={"error": str(e)},
        )
        return 2
    except SecretError as e:
        logger.error("Failed to read API credentials", extra={"error": str(e)})
        return 1

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal", extra={"signal": sig.name})
        controller.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        await controller.run()
    except SpecLoadError as e:
        logger.error("Failed to scan specs directory", extra={"error": str(e)})
        return 1
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return 1
    finally:
        client.close()

    logger.info("Operator stopped")
    return 0


def run() -> None:
    """Entry point for the operator."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
