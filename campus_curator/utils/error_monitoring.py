import asyncio
import json
import logging
import traceback
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import aiohttp


class ErrorCategory(Enum):
    """How a failure affects the current run."""
    TRANSIENT = "transient"                    # retried with backoff, then fallback
    FATAL = "fatal"                            # aborts the run, store untouched
    PARTIAL = "partial"                        # isolated, run continues
    FALLBACK_EXHAUSTED = "fallback_exhausted"  # run continues with what it has


class CriticalError(Exception):
    """Errors that must abort the current pipeline run."""
    pass


class NonCriticalError(Exception):
    """Errors that are logged and allow the run to continue."""
    pass


@dataclass
class ErrorContext:
    """Context for one error occurrence"""
    error_type: str
    error_message: str
    stack_trace: str
    timestamp: datetime
    service: str
    operation: str
    category: str
    recovery_action: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


_TRANSIENT_MARKERS = ('rate limit', 'too many requests', 'overloaded', 'unavailable', 'timed out', 'timeout')


def classify_error(error: Exception) -> ErrorCategory:
    if isinstance(error, CriticalError):
        return ErrorCategory.FATAL
    if isinstance(error, (asyncio.TimeoutError, ConnectionError, aiohttp.ClientConnectionError)):
        return ErrorCategory.TRANSIENT
    if isinstance(error, aiohttp.ClientResponseError):
        if error.status == 429 or error.status >= 500:
            return ErrorCategory.TRANSIENT
        if error.status in (401, 403):
            return ErrorCategory.FATAL
        return ErrorCategory.PARTIAL
    message = str(error).lower()
    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return ErrorCategory.TRANSIENT
    return ErrorCategory.PARTIAL


class ErrorHandler:
    """
    Records failures from every stage with a consistent structured log line.

    The handler never raises. Callers decide whether to abort by checking
    ``should_abort_run`` on the returned context.
    """

    def __init__(self, history_size: int = 100) -> None:
        self.error_history: Deque[ErrorContext] = deque(maxlen=history_size)
        self.error_counts: Dict[str, int] = defaultdict(int)
        self.category_counts: Dict[str, int] = defaultdict(int)

        self.recovery_strategies: Dict[ErrorCategory, Callable[[Exception], str]] = {
            ErrorCategory.TRANSIENT: self._suggest_transient_recovery,
            ErrorCategory.FATAL: self._suggest_fatal_recovery,
            ErrorCategory.FALLBACK_EXHAUSTED: self._suggest_supply_recovery,
        }

        self.logger = logging.getLogger(__name__)

    def handle_error(
        self,
        error: Exception,
        service: str,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        category: Optional[ErrorCategory] = None
    ) -> ErrorContext:
        resolved = category or classify_error(error)
        timestamp = datetime.now(timezone.utc)
        strategy = self.recovery_strategies.get(resolved)

        error_context = ErrorContext(
            error_type=type(error).__name__,
            error_message=str(error),
            stack_trace=''.join(traceback.format_exception(type(error), error, error.__traceback__)),
            timestamp=timestamp,
            service=service,
            operation=operation,
            category=resolved.value,
            recovery_action=strategy(error) if strategy else None,
            metadata=context or {},
        )

        self.error_history.append(error_context)
        self.error_counts[error_context.error_type] += 1
        self.category_counts[resolved.value] += 1

        payload = json.dumps({
            'event': 'error',
            'service': service,
            'operation': operation,
            'category': resolved.value,
            'error_type': error_context.error_type,
            'error_message': error_context.error_message,
            'timestamp': timestamp.isoformat(),
        }, default=str)
        if resolved in (ErrorCategory.FATAL, ErrorCategory.PARTIAL):
            self.logger.error(payload)
        else:
            self.logger.warning(payload)

        return error_context

    @staticmethod
    def should_abort_run(error_context: ErrorContext) -> bool:
        return error_context.category == ErrorCategory.FATAL.value

    def _suggest_transient_recovery(self, error: Exception) -> str:
        return "Provider is throttling or unavailable. Backoff was applied; the next run will retry."

    def _suggest_fatal_recovery(self, error: Exception) -> str:
        return "Verify API keys and environment variables. Stored content was left untouched."

    def _suggest_supply_recovery(self, error: Exception) -> str:
        return "Not enough fresh or stored items to reach the target. Check provider queries and sources."

    def detect_error_patterns(self) -> List[str]:
        patterns: List[str] = []
        tuple_counts: Dict[Tuple[str, str], int] = defaultdict(int)
        for ctx in self.error_history:
            tuple_counts[(ctx.error_type, ctx.service)] += 1

        for (etype, service), count in tuple_counts.items():
            if count >= 3:
                patterns.append(f"Repeated pattern: {etype} in {service} occurred {count} times recently")
        return patterns

    def get_error_statistics(self) -> Dict[str, Any]:
        return {
            'total_errors': sum(self.error_counts.values()),
            'error_types': dict(self.error_counts),
            'categories': dict(self.category_counts),
            'patterns': self.detect_error_patterns(),
        }
