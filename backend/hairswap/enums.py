"""
枚举类型定义模块

所有枚举都继承自 str 和 Enum，既可以直接当字符串写入 JSON 文档，又具有枚举的类型约束。
"""
from enum import Enum


class RechargeOrderStatus(str, Enum):
    """
    充值订单状态

    - pending: 待处理（新建订单的唯一初始状态）
    - approved: 已通过（已入账积分，终态）
    - rejected: 已拒绝（不入账，终态）
    """
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class PaymentProvider(str, Enum):
    """支付网关：目前只接入易支付"""
    epay = "epay"


class PaymentChannel(str, Enum):
    """支付渠道"""
    wechat = "wechat"
    alipay = "alipay"


class SettleAction(str, Enum):
    """订单结算动作（管理员审核或网关自动回调）"""
    approve = "approve"
    reject = "reject"


class EmailCodePurpose(str, Enum):
    register = "register"
