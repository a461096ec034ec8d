"""
Execution context for payment operations.

Every core operation receives an ExecutionContext instead of reading the
clock, a random source, or a "demo mode" flag from ambient state. Live and
simulated contexts drive the same service code; the simulated one swaps in a
frozen clock, seeded codes, a simulated card processor, and writes to the
segregated simulated ledger through its `mode`.
"""

import random
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from django.utils.module_loading import import_string

from apps.credits.models import ExecutionMode
from apps.payments.models import PendingTransaction
from apps.payments.realtime import TransactionChangeNotifier, transaction_notifier
from apps.payments.services.processors import SimulatedCardProcessor


DIGITS = string.digits
TOKEN_ALPHABET = string.ascii_letters + string.digits


class SystemClock:
    def now(self) -> datetime:
        return timezone.now()


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, instant: datetime):
        self._now = instant

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta = None, **kwargs) -> datetime:
        self._now += delta if delta is not None else timedelta(**kwargs)
        return self._now


class SecureCodeGenerator:
    """Human-relayable codes from the OS CSPRNG."""

    def choice(self, length: int, alphabet: str) -> str:
        return ''.join(secrets.choice(alphabet) for _ in range(length))

    def digits(self, length: int) -> str:
        return self.choice(length, DIGITS)

    def token(self, length: int) -> str:
        return self.choice(length, TOKEN_ALPHABET)


class SeededCodeGenerator(SecureCodeGenerator):
    """Deterministic codes for simulated runs and tests."""

    def __init__(self, seed: int = 0):
        self._random = random.Random(seed)

    def choice(self, length: int, alphabet: str) -> str:
        return ''.join(self._random.choice(alphabet) for _ in range(length))


def simulated_epoch() -> datetime:
    instant = parse_datetime(settings.SIMULATED_CLOCK_EPOCH)
    if instant is None:
        raise ValueError(f"Invalid SIMULATED_CLOCK_EPOCH: {settings.SIMULATED_CLOCK_EPOCH!r}")
    return instant


@dataclass
class ExecutionContext:
    mode: str
    clock: Any
    codes: Any
    notifier: TransactionChangeNotifier = field(default=transaction_notifier)
    card_processor: Any = None

    @property
    def is_simulated(self) -> bool:
        return self.mode == ExecutionMode.SIMULATED

    @classmethod
    def live(cls, notifier: TransactionChangeNotifier = None) -> 'ExecutionContext':
        processor_class = import_string(settings.CARD_PROCESSOR)
        return cls(
            mode=ExecutionMode.LIVE,
            clock=SystemClock(),
            codes=SecureCodeGenerator(),
            notifier=notifier or transaction_notifier,
            card_processor=processor_class(),
        )

    @classmethod
    def simulated(
        cls,
        seed: int = 0,
        start: datetime = None,
        notifier: TransactionChangeNotifier = None
    ) -> 'ExecutionContext':
        return cls(
            mode=ExecutionMode.SIMULATED,
            clock=FrozenClock(start or simulated_epoch()),
            codes=SeededCodeGenerator(seed),
            notifier=notifier or transaction_notifier,
            card_processor=SimulatedCardProcessor(),
        )


def simulated_request_context() -> ExecutionContext:
    """
    Simulated context for one HTTP request.

    Seed and start instant follow the number of simulated transactions so
    far, so successive requests draw fresh codes and simulated time moves
    forward one second per transaction. Replaying the same sequence of
    requests against the same data reproduces the same codes.
    """
    count = PendingTransaction.objects.filter(mode=ExecutionMode.SIMULATED).count()
    return ExecutionContext.simulated(
        seed=count,
        start=simulated_epoch() + timedelta(seconds=count),
    )


def context_for_request(request) -> ExecutionContext:
    """
    Resolve the execution mode for an HTTP request from `?mode=`.

    Raises:
        ValueError: If the mode is not a known ExecutionMode
    """
    mode = request.GET.get('mode') or ExecutionMode.LIVE
    if mode == ExecutionMode.LIVE:
        return ExecutionContext.live()
    if mode == ExecutionMode.SIMULATED:
        return simulated_request_context()
    raise ValueError(f"Unknown execution mode: {mode!r}")
