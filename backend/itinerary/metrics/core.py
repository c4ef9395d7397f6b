"""Metrics façade for pipeline event tracking."""

import logging

logger = logging.getLogger(__name__)


def record_generation(
    itinerary_id: str,
    user_id: str,
    latency_ms: int,
    success: bool,
    recovery_rounds: int,
    from_cache: bool,
    error_code: str | None = None,
) -> None:
    """Record metrics for a generation call.

    This is a simple stub implementation that logs metrics.
    In production, this would emit to Prometheus/OpenTelemetry.

    Args:
        itinerary_id: Id of the returned plan.
        user_id: Owner of the request.
        latency_ms: Wall-clock generation time in milliseconds.
        success: False when the fallback plan was returned.
        recovery_rounds: Number of recovery strategies applied.
        from_cache: Whether the plan came from the generation cache.
        error_code: Classification of the last error, if any.
    """
    logger.info(
        "generation_metric",
        extra={
            "itinerary_id": itinerary_id,
            "user_id": user_id,
            "latency_ms": latency_ms,
            "success": success,
            "recovery_rounds": recovery_rounds,
            "from_cache": from_cache,
            "error_code": error_code,
        },
    )


def record_storage_op(
    tier: str,
    operation: str,
    ok: bool,
    attempt: int = 1,
    latency_ms: int | None = None,
) -> None:
    """Record metrics for a single storage tier operation."""
    logger.debug(
        "storage_op_metric",
        extra={
            "tier": tier,
            "operation": operation,
            "ok": ok,
            "attempt": attempt,
            "latency_ms": latency_ms,
        },
    )


def record_update(
    itinerary_id: str,
    update_type: str,
    path: str,
    version: int,
    persisted: bool,
) -> None:
    """Record metrics for an applied itinerary update."""
    logger.info(
        "update_metric",
        extra={
            "itinerary_id": itinerary_id,
            "update_type": update_type,
            "path": path,
            "version": version,
            "persisted": persisted,
        },
    )
