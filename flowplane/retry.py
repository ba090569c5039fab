"""Bounded retry loop around step dispatch."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from pydantic import JsonValue

from .contracts import BackoffStrategy, RetryPolicy, StepDefinition, WorkflowConfig
from .dispatch import StepDispatcher
from .errors import StepExecutionError
from .utils.retry import Sleep, compute_backoff, schedule_retry, wait_or_cancel

logger = logging.getLogger(__name__)

OnRetry = Callable[[int], Awaitable[None]]


@dataclass
class RetryOutcome:
    output: JsonValue
    attempts: int


def effective_policy(
    step: StepDefinition,
    config: WorkflowConfig,
    default_backoff: Union[BackoffStrategy, str] = BackoffStrategy.EXPONENTIAL,
    default_base_delay_ms: int = 100,
) -> RetryPolicy:
    """The step's own policy, or one derived from ``config.max_retries``."""
    if step.retry is not None:
        return step.retry
    return RetryPolicy(
        max_attempts=config.max_retries + 1,
        backoff=BackoffStrategy(default_backoff),
        base_delay=default_base_delay_ms,
    )


class RetryController:
    """Run dispatch attempts until one succeeds or the policy gives up.

    Stops on success, on a non-retryable error, when ``max_attempts`` is
    exhausted, or when ``cancel_event`` is set. The backoff delay is applied
    before each retry and never after the final attempt.
    """

    def __init__(
        self,
        dispatcher: StepDispatcher,
        sleep: Sleep = asyncio.sleep,
        jitter_ms: float = 0.0,
    ) -> None:
        self._dispatcher = dispatcher
        self._sleep = sleep
        self._jitter_ms = jitter_ms

    async def run(
        self,
        step: StepDefinition,
        params: JsonValue,
        policy: RetryPolicy,
        cancel_event: Optional[asyncio.Event] = None,
        on_retry: Optional[OnRetry] = None,
    ) -> RetryOutcome:
        attempt = 0
        while True:
            attempt += 1
            try:
                output = await wait_or_cancel(
                    self._dispatcher.dispatch(step, copy.deepcopy(params), attempt),
                    cancel_event,
                )
                return RetryOutcome(output=output, attempts=attempt)
            except StepExecutionError as exc:
                if not exc.retryable:
                    logger.warning(f"Step {step.name} failed with a non-retryable error: {exc}")
                    raise
                if attempt >= policy.max_attempts:
                    logger.error(f"Step {step.name} failed after {attempt} attempt(s): {exc}")
                    raise

                delay = compute_backoff(
                    policy.backoff, attempt, policy.base_delay, self._jitter_ms
                )
                logger.info(
                    f"Retrying step {step.name} in {delay:.3f}s "
                    f"(attempt {attempt + 1}/{policy.max_attempts})",
                    extra={"step": step.name, "attempt": attempt + 1},
                )
                if on_retry is not None:
                    await on_retry(attempt + 1)
                await schedule_retry(delay, cancel_event, self._sleep)
