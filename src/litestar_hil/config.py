"""Configuration for the execution engine and its background workers.

This module provides the dataclasses the engine, the SLA sweeper and the
resume-signal outbox are tuned with. The Litestar plugin takes them through
:class:`~litestar_hil.plugin.HilPluginConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from litestar_hil.core.business_hours import BusinessHours

__all__ = ["EngineConfig", "ResumeSignalConfig", "SweepConfig"]


@dataclass
class EngineConfig:
    """Behavioural settings of the task state engine.

    Attributes:
        max_retries: Retries granted to a task whose blueprint does not set one.
        confidence_threshold: Completions reported with a lower confidence are
            redirected to an interrupt for human review.
        at_risk_fraction: Fraction of the SLA after which a task is AT_RISK
            when its template configures no alert offsets.
        business_hours: Working window for business-hours-only templates.
        fallback_operators: Recipients of engine notifications for workflows
            without an assigned operator.
        check_sla_on_read: Re-classify a task's SLA when it is read.

    Example:
        >>> config = EngineConfig(
        ...     confidence_threshold=0.9,
        ...     fallback_operators=["ops-lead"],
        ...     business_hours=BusinessHours(timezone="America/New_York"),
        ... )
    """

    max_retries: int = 3
    confidence_threshold: float = 0.8
    at_risk_fraction: float = 0.8
    business_hours: BusinessHours = field(default_factory=BusinessHours)
    fallback_operators: list[str] = field(default_factory=list)
    check_sla_on_read: bool = False

    def __post_init__(self) -> None:
        if not 0 < self.at_risk_fraction < 1:
            msg = "at_risk_fraction must be between 0 and 1"
            raise ValueError(msg)
        if self.max_retries < 0:
            msg = "max_retries must not be negative"
            raise ValueError(msg)


@dataclass
class SweepConfig:
    """Settings of the periodic SLA sweep.

    Attributes:
        enabled: Run the sweeper as a background task of the application.
        interval_seconds: Pause between two sweeps.
        batch_size: Open tasks read per batch.
    """

    enabled: bool = True
    interval_seconds: float = 300.0
    batch_size: int = 500


@dataclass
class ResumeSignalConfig:
    """Settings of the outbound resume-signal webhook.

    Delays follow ``initial_delay * backoff_multiplier ** (attempt - 1)``,
    capped at ``max_delay_seconds``.

    Attributes:
        url: Orchestrator endpoint signals are posted to. Signals stay pending
            while this is unset.
        enabled: Run the delivery worker as a background task.
        timeout_seconds: HTTP timeout of one delivery attempt.
        max_attempts: Attempts before a signal is marked failed and escalated.
        initial_delay_seconds: Delay before the second attempt.
        max_delay_seconds: Upper bound of the delay between attempts.
        backoff_multiplier: Growth factor of the delay.
        poll_interval_seconds: Pause between two delivery rounds.
        headers: Extra headers sent with every signal, e.g. authentication.
    """

    url: str | None = None
    enabled: bool = True
    timeout_seconds: float = 10.0
    max_attempts: int = 5
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 300.0
    backoff_multiplier: float = 2.0
    poll_interval_seconds: float = 5.0
    headers: dict[str, str] = field(default_factory=dict)

    def delay_for_attempt(self, attempt: int) -> float | None:
        """Delay before the attempt following ``attempt``.

        Args:
            attempt: The attempt that just failed (1-indexed).

        Returns:
            Seconds to wait, or None when no attempts are left.
        """
        if attempt >= self.max_attempts:
            return None
        delay = self.initial_delay_seconds * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_delay_seconds)
