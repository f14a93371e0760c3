"""
API 请求/响应数据模型（Schema）

定义所有 API 接口的请求和响应数据结构。
这些模型不落盘，只用于 API 数据交换；落盘的文档模型在 hairswap/models/ 下。

请求体里部分字段同时接受前端习惯的 camelCase（orderId、userImage 等）。
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hairswap.enums import PaymentChannel, PaymentProvider, RechargeOrderStatus
from hairswap.models import PointsLedgerEntry, RechargeOrder, User

# ============================================================
# 通用响应模型
# ============================================================


class Message(BaseModel):
    """简单文本消息"""
    message: str


class ApiEnvelope(BaseModel):
    """
    API 统一响应格式

    - code: 状态码（0 表示成功，非 0 表示错误）
    - message: 消息（成功时为 "success"，错误时为错误描述）
    - data: 业务数据（错误时为 None）

    示例响应：
        {"code": 0, "message": "success", "data": {...}}
        {"code": 402001, "message": "Insufficient points (balance: 3)", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


# ============================================================
# 认证
# ============================================================


class RequestCodeRequest(BaseModel):
    """发送注册验证码"""
    email: str = Field(max_length=255)


class RegisterRequest(BaseModel):
    """邮箱 + 验证码 + 密码注册"""
    email: str = Field(max_length=255)
    code: str
    password: str = Field(max_length=128)


class LoginRequest(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(max_length=128)


class UserPublic(BaseModel):
    """对外展示的用户信息（不含密码哈希）"""
    id: int
    email: str
    points_balance: int
    is_admin: bool = False
    created_at: datetime

    @classmethod
    def from_user(cls, user: User, *, is_admin: bool = False) -> UserPublic:
        return cls(
            id=user.id,
            email=user.email,
            points_balance=user.points_balance,
            is_admin=is_admin,
            created_at=user.created_at,
        )


class SessionData(BaseModel):
    """
    登录/注册成功的响应数据

    token 同时以 HttpOnly Cookie 下发，这里返回一份供非浏览器客户端使用。
    """
    token: str
    expires_at: datetime
    user: UserPublic


# ============================================================
# 积分
# ============================================================


class PointsBalanceData(BaseModel):
    balance: int


class PointsLedgerEntryPublic(BaseModel):
    id: int
    delta: int
    reason: str
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: PointsLedgerEntry) -> PointsLedgerEntryPublic:
        return cls(id=entry.id, delta=entry.delta, reason=entry.reason, created_at=entry.created_at)


class PointsLedgerData(BaseModel):
    """积分流水分页数据"""
    data: list[PointsLedgerEntryPublic]
    count: int


# ============================================================
# 充值
# ============================================================


class RechargeCreateRequest(BaseModel):
    """
    创建充值订单

    amount 保持原始类型，由服务端统一校验（允许 5、"5"、5.0）。
    """
    amount: Any = None
    channel: PaymentChannel | None = None


class RechargeOrderPublic(BaseModel):
    """用户查看自己的订单"""
    id: str
    amount: int
    points: int
    status: RechargeOrderStatus
    created_at: datetime
    reviewed_at: datetime | None = None
    note: str | None = None
    channel: PaymentChannel | None = None
    pay_url: str | None = None
    qr_code_url: str | None = None

    @classmethod
    def from_order(cls, order: RechargeOrder) -> RechargeOrderPublic:
        return cls(
            id=order.id,
            amount=order.amount,
            points=order.points,
            status=order.status,
            created_at=order.created_at,
            reviewed_at=order.reviewed_at,
            note=order.note,
            channel=order.channel,
            pay_url=order.pay_url,
            qr_code_url=order.qr_code_url,
        )


class RechargeOrderData(BaseModel):
    order: RechargeOrderPublic


class AdminRechargeOrder(BaseModel):
    """管理员视图：完整订单字段 + 下单用户邮箱"""
    id: str
    user_id: int
    user_email: str
    amount: int
    points: int
    status: RechargeOrderStatus
    created_at: datetime
    reviewed_at: datetime | None = None
    note: str | None = None
    provider: PaymentProvider | None = None
    channel: PaymentChannel | None = None
    provider_trade_no: str | None = None
    pay_url: str | None = None
    qr_code_url: str | None = None

    @classmethod
    def from_order(cls, order: RechargeOrder, *, user_email: str) -> AdminRechargeOrder:
        return cls(user_email=user_email, **order.model_dump())


class AdminRechargeListData(BaseModel):
    orders: list[AdminRechargeOrder]


class AdminSettleRequest(BaseModel):
    """管理员审核：action 保持字符串，非法取值返回 400 而不是 422"""
    model_config = ConfigDict(populate_by_name=True)

    order_id: str | None = Field(default=None, alias="orderId")
    action: str | None = None
    note: str | None = Field(default=None, max_length=500)


class AdminSettleData(BaseModel):
    order: AdminRechargeOrder


# ============================================================
# 发型生成
# ============================================================


class GenerateRequest(BaseModel):
    """图片均为 data:<mime>;base64,<data> 格式"""
    model_config = ConfigDict(populate_by_name=True)

    user_image: str | None = Field(default=None, alias="userImage")
    hairstyle_image: str | None = Field(default=None, alias="hairstyleImage")
    prompt: str | None = Field(default=None, max_length=2000)


class GenerateData(BaseModel):
    output: list[str]
