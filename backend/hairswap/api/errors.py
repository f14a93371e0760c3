"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有业务异常都继承自 AppError，在 main.py 中有统一的异常处理器，
返回 {"code": ..., "message": ..., "data": null} 格式的响应。

错误分类与默认 HTTP 状态码：
- InvalidArgument (400): 输入格式/取值不合法
- InvalidAmount (400): 充值金额不在允许档位内
- Unauthenticated (401): 未登录或会话失效
- Forbidden (403): 已登录但无权限
- NotFound (404): 订单/用户不存在（包括不属于当前用户的订单）
- Conflict (409): 与当前状态冲突（如邮箱已注册、回调金额不一致）
- GatewayError (500/502): 支付网关配置缺失、调用失败或响应无法解析
"""
from __future__ import annotations


class AppError(Exception):
    """
    应用自定义异常类

    用于业务逻辑中的错误处理，包含：
    - code: 业务错误码（用于前端区分不同错误）
    - message: 错误消息（简短、面向用户，不包含签名或网关原始报文）
    - status_code: HTTP 状态码（400, 404, 500 等）

    使用示例：
        raise AppError(code=402001, message="Insufficient points", status_code=402)
    """

    default_code = 500000
    default_message = "Internal server error"
    default_status = 500

    def __init__(
        self,
        *,
        code: int | None = None,
        message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.code = code if code is not None else self.default_code
        self.message = message if message is not None else self.default_message
        self.status_code = status_code if status_code is not None else self.default_status
        super().__init__(self.message)


class InvalidArgument(AppError):
    default_code = 400000
    default_message = "Invalid argument"
    default_status = 400


class InvalidAmount(InvalidArgument):
    default_code = 400101
    default_message = "Invalid recharge amount"


class Unauthenticated(AppError):
    default_code = 401000
    default_message = "Not authenticated"
    default_status = 401


class Forbidden(AppError):
    default_code = 403000
    default_message = "Forbidden"
    default_status = 403


class NotFound(AppError):
    default_code = 404000
    default_message = "Not found"
    default_status = 404


class Conflict(AppError):
    default_code = 409000
    default_message = "Conflict"
    default_status = 409


class GatewayError(AppError):
    """支付网关错误：配置缺失默认 500，上游调用失败时由调用方指定 502"""
    default_code = 500201
    default_message = "Payment gateway error"
    default_status = 500


def insufficient_points(balance: int) -> AppError:
    """
    创建"积分不足"异常（便捷函数）

    Args:
        balance: 当前余额，附在消息里方便前端提示

    Returns:
        AppError: 402 积分不足
    """
    return AppError(code=402001, message=f"Insufficient points (balance: {balance})", status_code=402)


def too_frequent() -> AppError:
    """验证码请求过于频繁"""
    return AppError(code=429001, message="Code requested too frequently", status_code=429)


def user_not_found() -> NotFound:
    return NotFound(code=404001, message="User not found")


def order_not_found() -> NotFound:
    return NotFound(code=404201, message="Order not found")
