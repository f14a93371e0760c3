"""
充值订单模型

一笔订单对应一次金钱交易：创建时为 pending，之后恰好一次转为 approved（入账）或 rejected。
"""
from datetime import datetime

from sqlmodel import Field, SQLModel

from hairswap.enums import PaymentChannel, PaymentProvider, RechargeOrderStatus

from .base import utc_now


class RechargeOrder(SQLModel):
    """
    充值订单

    字段说明：
    - id: 订单号（不透明随机串，同时作为网关侧的 out_trade_no）
    - user_id: 下单用户
    - amount: 充值金额（货币单位，限定在允许的档位内）
    - points: 应入账积分，创建时按汇率计算后固定，之后不再重算
    - status: pending / approved / rejected
    - created_at / reviewed_at: 创建与结算时间
    - note: 结算备注（管理员填写，或自动回调的 auto_<channel>）
    - provider / channel / provider_trade_no / pay_url / qr_code_url: 网关支付会话信息
    """
    id: str = Field(max_length=64)
    user_id: int
    amount: int = Field(gt=0)
    points: int = Field(gt=0)
    status: RechargeOrderStatus = RechargeOrderStatus.pending
    created_at: datetime = Field(default_factory=utc_now)
    reviewed_at: datetime | None = None
    note: str | None = None
    provider: PaymentProvider | None = None
    channel: PaymentChannel | None = None
    provider_trade_no: str | None = None
    pay_url: str | None = None
    qr_code_url: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != RechargeOrderStatus.pending
