"""
Payments app services layer.

The pending transaction state machine and the operations that drive it,
plus flow policy, codes, merchant notifications and the card processor seam.
"""

from .exceptions import (
    PaymentsServiceError,
    TransactionNotFoundError,
    TransactionExpiredError,
    TransactionClosedError,
    InvalidStateError,
    InvalidCodeError,
    TokenRequiredError,
    FlowDisabledError,
    CardDeclinedError,
    InternalProcessingError,
    CodeExhaustedError,
)

from .flows import (
    FlowPolicy,
    is_flow_enabled,
    get_flow_policy,
)

from .state_machine import (
    ALLOWED_TRANSITIONS,
    can_transition,
    snapshot,
)

from .processors import (
    ChargeResult,
    CardProcessor,
    MockCardProcessor,
    SimulatedCardProcessor,
)

from .notifications import (
    notify_merchant,
    list_notifications,
    mark_notifications_read,
)

from .transactions import (
    LaneCandidate,
    TerminalMatch,
    CreditSelection,
    ConfirmationResult,
    CompletionResult,
    VoidResult,
    get_transaction,
    get_transaction_status,
    create_pending_transaction,
    find_pending_for_terminal,
    claim_with_token,
    select_credits,
    confirm_transaction,
    complete_transaction,
    void_transaction,
    expire_stale_transactions,
)


__all__ = [
    # Exceptions
    'PaymentsServiceError',
    'TransactionNotFoundError',
    'TransactionExpiredError',
    'TransactionClosedError',
    'InvalidStateError',
    'InvalidCodeError',
    'TokenRequiredError',
    'FlowDisabledError',
    'CardDeclinedError',
    'InternalProcessingError',
    'CodeExhaustedError',

    # Flow policy
    'FlowPolicy',
    'is_flow_enabled',
    'get_flow_policy',

    # State machine
    'ALLOWED_TRANSITIONS',
    'can_transition',
    'snapshot',

    # Card processing
    'ChargeResult',
    'CardProcessor',
    'MockCardProcessor',
    'SimulatedCardProcessor',

    # Notifications
    'notify_merchant',
    'list_notifications',
    'mark_notifications_read',

    # Transactions
    'LaneCandidate',
    'TerminalMatch',
    'CreditSelection',
    'ConfirmationResult',
    'CompletionResult',
    'VoidResult',
    'get_transaction',
    'get_transaction_status',
    'create_pending_transaction',
    'find_pending_for_terminal',
    'claim_with_token',
    'select_credits',
    'confirm_transaction',
    'complete_transaction',
    'void_transaction',
    'expire_stale_transactions',
]
