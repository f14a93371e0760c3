"""
用户与身份相关的文档模型

- User: 用户，余额 points_balance 冗余保存在用户记录上，O(1) 读取
- AuthSession: 登录会话（令牌 -> 用户）
- EmailCode: 注册邮箱验证码（只保存哈希）
"""
from datetime import datetime

from sqlmodel import Field, SQLModel

from hairswap.core.snowflake import generate_id
from hairswap.enums import EmailCodePurpose

from .base import utc_now


class User(SQLModel):
    """
    用户模型

    字段说明：
    - id: Snowflake ID
    - email: 登录邮箱（规范化为小写，唯一）
    - password_hash: bcrypt 密码哈希
    - points_balance: 积分余额，始终等于该用户全部流水 delta 之和，且不为负
    - created_at: 注册时间
    """
    id: int = Field(default_factory=generate_id)
    email: str = Field(max_length=255)
    password_hash: str
    points_balance: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)


class AuthSession(SQLModel):
    """登录会话：token 为 64 位十六进制随机串，过期后在下一次解析时删除"""
    token: str
    user_id: int
    expires_at: datetime


class EmailCode(SQLModel):
    """
    邮箱验证码

    每个邮箱 + 用途只保留一条记录；cooldown_until 之前不允许重新发送。
    """
    email: str
    code_hash: str
    purpose: EmailCodePurpose = EmailCodePurpose.register
    expires_at: datetime
    cooldown_until: datetime
