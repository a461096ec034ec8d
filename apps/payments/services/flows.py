"""Per-deployment payment flow policy, read from settings.PAYMENT_FLOWS."""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings

from .exceptions import FlowDisabledError


@dataclass(frozen=True)
class FlowPolicy:
    flow: str
    ttl: timedelta
    credit_cap: Optional[Decimal]
    capture_on_confirm: bool


def is_flow_enabled(flow: str) -> bool:
    return flow in settings.ENABLED_PAYMENT_FLOWS and flow in settings.PAYMENT_FLOWS


def get_flow_policy(flow: str) -> FlowPolicy:
    """
    Raises:
        FlowDisabledError: If the flow is unknown or not enabled
    """
    if not is_flow_enabled(flow):
        raise FlowDisabledError(f"Payment flow '{flow}' is not enabled")

    config = settings.PAYMENT_FLOWS[flow]
    cap = config.get('credit_cap')
    return FlowPolicy(
        flow=flow,
        ttl=timedelta(seconds=config['ttl_seconds']),
        credit_cap=Decimal(str(cap)) if cap not in (None, '') else None,
        capture_on_confirm=bool(config.get('capture_on_confirm', False)),
    )
