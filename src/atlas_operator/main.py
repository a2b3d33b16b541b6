"""Main entry point for the Atlas Operator."""

from __future__ import annotations

import logging
from typing import Any

import kopf

from . import health
from . import logging as structured_logging
from .config import OperatorConfig
from .handlers import controller
from .tracing import initialize_tracing

logger = logging.getLogger(__name__)


@kopf.on.startup()
async def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator and start the reconciliation runtime."""
    config = OperatorConfig.from_environment()
    structured_logging.setup_structured_logging(config.log_level, config.log_encoder)

    settings.posting.level = logging.WARNING
    settings.networking.request_timeout = config.request_timeout
    # Watch handlers only feed the work queue; reconciles run on its own workers.
    settings.execution.max_workers = 1

    initialize_tracing()
    health.start_metrics_server(config.metrics_port)

    runtime = controller.build_runtime(config)
    await runtime.start()
    controller.install_runtime(runtime)
    health.set_ready(True)
    logger.info(
        f"Atlas operator started (namespaces={list(config.watch_namespaces) or 'all'}, "
        f"dry_run={config.dry_run}, subobject_deletion_protection={config.subobject_deletion_protection})"
    )


@kopf.on.cleanup()
async def shutdown(**_: Any) -> None:
    """Drain in-flight reconciles; no new passes start."""
    health.set_ready(False)
    runtime = controller.current_runtime()
    if runtime is None:
        return
    controller.install_runtime(None)
    await runtime.stop()


def main() -> None:
    """Run the operator against the configured namespaces."""
    config = OperatorConfig.from_environment()
    if config.watch_namespaces:
        kopf.run(namespaces=list(config.watch_namespaces))
    else:
        kopf.run(clusterwide=True)


if __name__ == "__main__":
    main()
