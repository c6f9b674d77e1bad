"""
Parallel fan-out of a query to every applicable matching strategy.

Each dispatch runs the synchronous strategy on a thread of its own,
driven from asyncio. A strategy that overruns its timeout is abandoned:
its thread is left to finish in the background and never holds back
later dispatches. An exception or timeout becomes an empty outcome for
that strategy only; the orchestrator waits for every dispatch to settle
(or for the overall deadline) before fusion runs. There is no
first-match shortcut: lower-priority strategies can still corroborate.
"""

import asyncio
import logging
import threading
import time
from typing import Collection, Optional, Sequence

from counsel.reference.models import CanonicalEntity
from counsel.resolution.models import Query, StrategyOutcome, StrategyStatus
from counsel.resolution.strategies.base import MatchingStrategy

logger = logging.getLogger(__name__)


def _settle(future: asyncio.Future, result=None, error: Optional[BaseException] = None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


def _deliver(loop: asyncio.AbstractEventLoop, future: asyncio.Future, result=None, error=None) -> None:
    """Hand a thread's result back to the event loop that is waiting for it."""
    try:
        loop.call_soon_threadsafe(_settle, future, result, error)
    except RuntimeError:
        # The loop closed after the caller abandoned this dispatch
        logger.debug("Dropping strategy result for a closed event loop")


def _run_strategy(
    loop: asyncio.AbstractEventLoop,
    strategy: MatchingStrategy,
    query: Query,
    candidates: Sequence[CanonicalEntity],
    started: asyncio.Future,
    finished: asyncio.Future,
) -> None:
    _deliver(loop, started, time.perf_counter())
    try:
        matches = strategy.match(query, candidates)
    except Exception as e:
        _deliver(loop, finished, error=e)
    else:
        _deliver(loop, finished, matches)


class ParallelOrchestrator:
    """
    Runs strategies concurrently with per-strategy timeouts.

    Args:
        strategies: Strategies in dispatch order
        strategy_timeout: Seconds allowed for each strategy, counted from
            the moment it starts running
    """

    def __init__(
        self,
        strategies: Sequence[MatchingStrategy],
        strategy_timeout: float = 0.2,
    ):
        names = [s.name for s in strategies]
        if len(set(names)) != len(names):
            raise ValueError(f"Strategy names must be unique: {names}")
        self.strategies = tuple(strategies)
        self.strategy_timeout = strategy_timeout

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.strategies]

    async def run(
        self,
        query: Query,
        candidates: Sequence[CanonicalEntity],
        deadline: Optional[float] = None,
        only: Optional[Collection[str]] = None,
    ) -> list[StrategyOutcome]:
        """
        Dispatch the query to all applicable strategies and collect outcomes.

        Args:
            query: Parsed query
            candidates: Entities of the query's type from one store snapshot
            deadline: Seconds left for the whole fan-out; when it expires,
                unfinished strategies are recorded as timeouts
            only: Names of the strategies allowed to run; the others are
                recorded as skipped

        Returns:
            One outcome per strategy, in dispatch order
        """
        if deadline is not None:
            deadline = max(0.0, deadline)
        timeout = self.strategy_timeout
        if deadline is not None:
            timeout = min(timeout, deadline)

        outcomes: dict[str, StrategyOutcome] = {}
        tasks: dict[asyncio.Task, MatchingStrategy] = {}
        for strategy in self.strategies:
            selected = only is None or strategy.name in only
            if not selected or not strategy.applies_to(query):
                outcomes[strategy.name] = StrategyOutcome(
                    name=strategy.name, status=StrategyStatus.SKIPPED
                )
                continue
            task = asyncio.create_task(self._dispatch(strategy, query, candidates, timeout))
            tasks[task] = strategy

        if tasks:
            started = time.perf_counter()
            done, pending = await asyncio.wait(tasks, timeout=deadline)

            for task in done:
                outcome = task.result()
                outcomes[outcome.name] = outcome

            for task in pending:
                task.cancel()
                strategy = tasks[task]
                logger.warning(
                    f"Strategy '{strategy.name}' unfinished at deadline for query "
                    f"'{query.raw_text}'"
                )
                outcomes[strategy.name] = StrategyOutcome(
                    name=strategy.name,
                    status=StrategyStatus.TIMEOUT,
                    elapsed_ms=(time.perf_counter() - started) * 1000,
                    error="deadline exceeded",
                )
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        return [outcomes[s.name] for s in self.strategies]

    async def _dispatch(
        self,
        strategy: MatchingStrategy,
        query: Query,
        candidates: Sequence[CanonicalEntity],
        timeout: float,
    ) -> StrategyOutcome:
        loop = asyncio.get_running_loop()
        started = loop.create_future()
        finished = loop.create_future()
        thread = threading.Thread(
            target=_run_strategy,
            args=(loop, strategy, query, candidates, started, finished),
            name=f"counsel-{strategy.name}",
            daemon=True,
        )
        thread.start()

        # The overall deadline bounds the wait for the thread to start
        started_at = await started
        remaining = max(0.0, timeout - (time.perf_counter() - started_at))

        try:
            matches = await asyncio.wait_for(finished, timeout=remaining)
        except asyncio.TimeoutError:
            elapsed = (time.perf_counter() - started_at) * 1000
            logger.warning(
                f"Strategy '{strategy.name}' timed out after {elapsed:.0f}ms "
                f"for query '{query.raw_text}'"
            )
            return StrategyOutcome(
                name=strategy.name,
                status=StrategyStatus.TIMEOUT,
                elapsed_ms=elapsed,
                error=f"timed out after {timeout * 1000:.0f}ms",
            )
        except Exception as e:
            elapsed = (time.perf_counter() - started_at) * 1000
            logger.warning(
                f"Strategy '{strategy.name}' failed for query '{query.raw_text}': {e}"
            )
            return StrategyOutcome(
                name=strategy.name,
                status=StrategyStatus.FAILED,
                elapsed_ms=elapsed,
                error=str(e) or type(e).__name__,
            )

        elapsed = (time.perf_counter() - started_at) * 1000
        logger.debug(
            f"Strategy '{strategy.name}' returned {len(matches)} candidates in {elapsed:.1f}ms"
        )
        return StrategyOutcome(
            name=strategy.name,
            status=StrategyStatus.OK,
            candidates=list(matches),
            elapsed_ms=elapsed,
        )
