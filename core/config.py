"""
配置文件 - 项目配置管理
"""
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    url: str = "sqlite+aiosqlite:///./guidee.db"
    echo: bool = False


class RefundTierSettings(BaseModel):
    name: str
    min_hours_before_service: float
    refund_percentage: Decimal = Field(ge=0, le=100)
    processing_fee: Decimal = Field(default=Decimal("0"), ge=0)


class OrderSettings(BaseModel):
    """订单/结算相关配置；费率与退款档位属于配置而非写死的业务常量"""

    currency: str = "TWD"
    platform_fee_rate: Decimal = Field(default=Decimal("0.05"), ge=0, le=1)
    commission_rate: Decimal = Field(default=Decimal("0.15"), ge=0, le=1)

    order_number_prefix: str = "GD"
    order_number_max_attempts: int = Field(default=5, ge=1)

    service_timezone: str = "Asia/Taipei"
    max_participants: int = Field(default=20, ge=1)

    # 下单时快照到订单上的退款政策名称；refund_policies 可覆盖或新增政策
    cancellation_policy: str = "standard"
    refund_policies: dict[str, list[RefundTierSettings]] = Field(default_factory=dict)

    # reject: 早于预定时间开始服务时报错；warn: 记录警告后放行
    premature_start: Literal["reject", "warn"] = "reject"

    # 乐观锁冲突时的重试次数
    transition_max_retries: int = Field(default=3, ge=1)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        return u


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="Guidee Orders")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=True)
    ENVIRONMENT: str = Field(default="development")

    # 日志：LOG_JSON 未设置时 DEBUG 用彩色控制台，否则输出 JSON
    LOG_LEVEL: Optional[str] = Field(default=None)
    LOG_JSON: Optional[bool] = Field(default=None)

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    order: OrderSettings = Field(default_factory=OrderSettings)

    # CORS配置
    CORS_ORIGINS: list = Field(default=["http://localhost:3000", "http://localhost:8000"])

    # 分页配置
    DEFAULT_PAGE_SIZE: int = Field(default=20)
    MAX_PAGE_SIZE: int = Field(default=100)

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """允许 JSON 字符串或逗号分隔字符串两种格式。"""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                import json
                try:
                    arr = json.loads(s)
                except ValueError:
                    arr = None
                if isinstance(arr, list):
                    return arr
            if "," in s:
                return [item.strip() for item in s.split(",") if item.strip()]
            return [s]
        return v


settings = Settings()
