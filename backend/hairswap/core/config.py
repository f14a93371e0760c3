"""
配置模块

所有配置（存储目录、会话、管理员白名单、支付网关、生成接口、SMTP）都集中在 Settings 中，
进程启动时从环境变量和 ../.env 构建一次。配置组合不合法（例如网关只配了一半）时启动即失败，
各模块只读取 settings，不再直接读环境变量。
"""
import secrets
import warnings
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, HttpUrl, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_list(v: Any) -> list[str] | str:
    """
    解析列表类配置（CORS 源、管理员邮箱）

    "a@x.com, b@x.com" 按逗号拆分并去掉空项；JSON 列表字符串和 list 原样交给 pydantic。
    """
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """环境变量优先于 ../.env，二者都没有时使用默认值"""
    model_config = SettingsConfigDict(env_file="../.env", env_ignore_empty=True, extra="ignore")
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Hair Studio"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: HttpUrl | None = None

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_list)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        """CORS 允许的源（去除尾部斜杠）"""
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Snowflake
    SNOWFLAKE_NODE_ID: int = 0

    # 持久化存储：DATA_DIR/db.json
    DATA_DIR: Path = Path("data")

    # 会话与邮箱验证码
    SESSION_TTL_DAYS: int = 7  # 会话有效期（天）
    SESSION_COOKIE_NAME: str = "hair_session"
    AUTH_CODE_SECRET: str = secrets.token_urlsafe(32)  # 验证码哈希盐（默认随机生成）
    EMAIL_CODE_TTL_MINUTES: int = 10  # 验证码有效期（分钟）
    EMAIL_CODE_COOLDOWN_SECONDS: int = 60  # 重复发送冷却时间（秒）

    # 管理员邮箱白名单（逗号分隔），ADMIN_EMAIL 作为单个地址的兼容写法
    ADMIN_EMAILS: Annotated[list[str] | str, BeforeValidator(parse_list)] = []
    ADMIN_EMAIL: str | None = None
    FIRST_ADMIN_EMAIL: str | None = None
    FIRST_ADMIN_PASSWORD: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def admin_emails(self) -> list[str]:
        """规范化（去空格、小写）后的管理员邮箱列表"""
        raw = list(self.ADMIN_EMAILS) if isinstance(self.ADMIN_EMAILS, list) else [self.ADMIN_EMAILS]
        if not raw and self.ADMIN_EMAIL:
            raw = parse_list(self.ADMIN_EMAIL)  # type: ignore[assignment]
        return [e.strip().lower() for e in raw if e and e.strip()]

    # 站点公开地址，用于拼接支付回调地址（notify_url / return_url）
    APP_BASE_URL: str | None = None

    # 易支付（Epay）网关配置
    EPAY_BASE_URL: str | None = None  # 网关地址
    EPAY_PID: str | None = None  # 商户 ID
    EPAY_MD5_KEY: str | None = None  # 商户密钥
    EPAY_API_PATH: str = "/api.php"  # 下单接口路径
    EPAY_ACT: str = "pay"
    EPAY_WECHAT_TYPE: str = "wxpay"  # 微信渠道在网关侧的 type 值
    EPAY_ALIPAY_TYPE: str = "alipay"  # 支付宝渠道在网关侧的 type 值
    EPAY_SIGN_STYLE: Literal["plain", "key"] = "plain"  # 下单签名方式
    EPAY_TIMEOUT_SECONDS: float = 15.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def epay_enabled(self) -> bool:
        return bool(self.EPAY_BASE_URL and self.EPAY_PID and self.EPAY_MD5_KEY)

    # 发型生成（nano-banana）API 配置
    NANO_API_URL: str | None = None
    NANO_API_KEY: str | None = None
    NANO_MODEL: str = "nano-banana"
    NANO_RESPONSE_FORMAT: str = "url"
    NANO_ASPECT_RATIO: str = "1:1"
    NANO_IMAGE_SIZE: str | None = None
    NANO_TIMEOUT_SECONDS: float = 120.0
    GENERATION_COST: int = 5  # 每次生成消耗的积分

    # SMTP 邮件服务器配置（用于发送验证码）
    SMTP_SSL: bool = True  # 是否使用 SSL（465 端口）
    SMTP_PORT: int = 465  # SMTP 端口
    SMTP_HOST: str | None = None  # SMTP 服务器地址
    SMTP_USER: str | None = None  # SMTP 用户名
    SMTP_PASSWORD: str | None = None  # SMTP 密码
    EMAILS_FROM_EMAIL: str | None = None  # 发件人邮箱

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """值为 "changethis" 时：local 环境警告，其他环境启动失败"""
        if value != "changethis":
            return
        message = f"{var_name} is still \"changethis\"; set a real value before deploying."
        if self.ENVIRONMENT != "local":
            raise ValueError(message)
        warnings.warn(message, stacklevel=1)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("AUTH_CODE_SECRET", self.AUTH_CODE_SECRET)
        self._check_default_secret("EPAY_MD5_KEY", self.EPAY_MD5_KEY)
        return self

    @model_validator(mode="after")
    def _enforce_complete_epay_config(self) -> Self:
        """
        支付网关配置必须“全有或全无”

        只配置了一部分（例如有网关地址但没有密钥）时，启动即失败，
        而不是等到第一笔充值时才发现。
        """
        required = {
            "EPAY_BASE_URL": self.EPAY_BASE_URL,
            "EPAY_PID": self.EPAY_PID,
            "EPAY_MD5_KEY": self.EPAY_MD5_KEY,
        }
        missing = [name for name, value in required.items() if not value]
        if missing and len(missing) < len(required):
            raise ValueError(f"Incomplete Epay configuration, missing: {', '.join(missing)}")
        return self


# 创建全局配置实例，整个应用共享
settings = Settings()  # type: ignore
