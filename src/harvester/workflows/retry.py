"""Bounded retry rounds over the parallel batch runner.

Round 0 processes every target; each following round processes only the
targets that failed in the previous one, until nothing fails or the round
limit is reached. Rounds run strictly one after the other.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .harvest_config import DEFAULT_CONCURRENCY, DEFAULT_MAX_ROUNDS, DEFAULT_RETRY_DELAY
from .web_fetch import Extractor, FetchOutcome, ProgressHook, SupportsFetch, run_batch

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class TerminalState(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"


@dataclass(frozen=True)
class Round:
    index: int
    targets: Tuple[str, ...]
    outcomes: Mapping[str, FetchOutcome]
    elapsed: float = 0.0

    @property
    def failed(self) -> Tuple[str, ...]:
        return tuple(t for t in self.targets if not self.outcomes[t].ok)

    @property
    def succeeded(self) -> Tuple[str, ...]:
        return tuple(t for t in self.targets if self.outcomes[t].ok)


@dataclass
class BatchResult:
    """Last outcome per target plus the full round history."""

    targets: Tuple[str, ...]
    outcomes: Dict[str, FetchOutcome]
    rounds: Tuple[Round, ...]
    terminal_state: TerminalState
    elapsed: float = 0.0
    max_rounds: int = DEFAULT_MAX_ROUNDS

    @property
    def succeeded(self) -> List[str]:
        return [t for t in self.targets if self.outcomes[t].ok]

    @property
    def unresolved(self) -> List[str]:
        return [t for t in self.targets if not self.outcomes[t].ok]

    def attempts(self, target: str) -> int:
        return sum(1 for r in self.rounds if target in r.outcomes)


@dataclass
class RetryOrchestrator:
    client: SupportsFetch
    max_rounds: int = DEFAULT_MAX_ROUNDS
    concurrency: int = DEFAULT_CONCURRENCY
    retry_delay: float = DEFAULT_RETRY_DELAY
    extract: Optional[Extractor] = None
    progress_hook: Optional[ProgressHook] = None
    sleep: Sleep = field(default=asyncio.sleep, repr=False)

    async def run(self, targets: Iterable[str]) -> BatchResult:
        ordered = tuple(dict.fromkeys(targets))
        outcomes: Dict[str, FetchOutcome] = {}
        rounds: List[Round] = []
        working = ordered
        started = time.perf_counter()

        while working and len(rounds) < self.max_rounds:
            index = len(rounds)
            if index > 0 and self.retry_delay > 0:
                await self.sleep(self.retry_delay)
            logger.info("Attempt #%d - scraping %d products", index + 1, len(working))
            round_started = time.perf_counter()
            round_outcomes = await run_batch(
                working,
                self.client,
                concurrency=self.concurrency,
                extract=self.extract,
                attempt=index,
                progress_hook=self.progress_hook,
            )
            current = Round(
                index=index,
                targets=working,
                outcomes=MappingProxyType(dict(round_outcomes)),
                elapsed=time.perf_counter() - round_started,
            )
            rounds.append(current)
            # Merge only after the whole round has finished.
            outcomes.update(round_outcomes)
            working = current.failed
            self._log_round(current)
            if working and len(rounds) < self.max_rounds:
                logger.info("retrying %d failed targets on the next round", len(working))

        state = TerminalState.SUCCESS if not working else TerminalState.PARTIAL_FAILURE
        if working:
            logger.warning(
                "%d targets still failing after %d rounds", len(working), len(rounds)
            )
        return BatchResult(
            targets=ordered,
            outcomes=outcomes,
            rounds=tuple(rounds),
            terminal_state=state,
            elapsed=time.perf_counter() - started,
            max_rounds=self.max_rounds,
        )

    @staticmethod
    def _log_round(current: Round) -> None:
        logger.info("success: %d/%d", len(current.succeeded), len(current.targets))
        for target in current.failed:
            logger.info("  - %s: %s", target, current.outcomes[target].error)


__all__ = ["TerminalState", "Round", "BatchResult", "RetryOrchestrator"]
