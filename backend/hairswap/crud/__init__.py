"""CRUD 操作模块：所有读写都经过 JsonStore，写操作各自是一次 mutate"""
from .points import DebitResult, credit_points, debit_points, get_balance, list_ledger
from .recharge import (
    ALLOWED_AMOUNTS,
    EXCHANGE_RATE,
    approve_order,
    attach_payment_session,
    create_order as create_recharge_order,
    get_order as get_recharge_order,
    list_orders as list_recharge_orders,
    reject_order,
    settle as settle_recharge_order,
)
from .user import (
    create as create_user,
)
from .user import (
    create_session,
    delete_session,
    normalize_email,
    store_email_code,
    verify_email_code,
)
from .user import (
    get_by_email as get_user_by_email,
)
from .user import (
    get_by_id as get_user_by_id,
)
from .user import (
    get_by_session_token as get_user_by_session_token,
)

__all__ = [
    "DebitResult",
    "credit_points",
    "debit_points",
    "get_balance",
    "list_ledger",
    "ALLOWED_AMOUNTS",
    "EXCHANGE_RATE",
    "approve_order",
    "attach_payment_session",
    "create_recharge_order",
    "get_recharge_order",
    "list_recharge_orders",
    "reject_order",
    "settle_recharge_order",
    "create_user",
    "create_session",
    "delete_session",
    "normalize_email",
    "store_email_code",
    "verify_email_code",
    "get_user_by_email",
    "get_user_by_id",
    "get_user_by_session_token",
]
