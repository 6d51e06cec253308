"""
Application settings and configuration management.
"""
from pydantic_settings import BaseSettings
from typing import Optional
from pydantic import model_validator


SUPPORTED_PROVIDERS = ("openai", "anthropic")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # 服务配置
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # CORS配置
    ALLOWED_ORIGINS: list = ["*"]

    # 生成服务配置
    # 支持 OpenAI 兼容接口或 Anthropic Messages 接口
    GENERATION_PROVIDER: str = "openai"
    GENERATION_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    GENERATION_BASE_URL: Optional[str] = None
    GENERATION_MODEL: str = "gpt-3.5-turbo"
    GENERATION_TIMEOUT: float = 20.0  # 秒

    # Facilitator 配置
    FACILITATOR_NAME: str = "Sage"
    READY_MESSAGE_DELAY: float = 1.5
    INTERVENTION_DELAY: float = 1.0
    STRATEGIC_DELAY_MIN: float = 2.0
    STRATEGIC_DELAY_MAX: float = 4.0
    GENERIC_DELAY_MIN: float = 2.0
    GENERIC_DELAY_MAX: float = 5.0

    # 会话配置
    PAUSE_BLOCKS_MESSAGES: bool = False  # False: pause 仅为提示状态
    MAX_MESSAGE_LENGTH: int = 4000
    WS_SEND_TIMEOUT: float = 5.0  # 单个连接发送超时（秒）

    @model_validator(mode='after')
    def validate_facilitator_timing(self):
        """Reject unknown providers and inverted delay ranges."""
        self.GENERATION_PROVIDER = self.GENERATION_PROVIDER.lower()
        if self.GENERATION_PROVIDER not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported GENERATION_PROVIDER: {self.GENERATION_PROVIDER} "
                f"(expected one of: {', '.join(SUPPORTED_PROVIDERS)})"
            )
        if self.STRATEGIC_DELAY_MIN > self.STRATEGIC_DELAY_MAX:
            raise ValueError("STRATEGIC_DELAY_MIN must not exceed STRATEGIC_DELAY_MAX")
        if self.GENERIC_DELAY_MIN > self.GENERIC_DELAY_MAX:
            raise ValueError("GENERIC_DELAY_MIN must not exceed GENERIC_DELAY_MAX")
        return self

    @property
    def generation_api_key(self) -> Optional[str]:
        """API key for the generation backend, falling back to OPENAI_API_KEY."""
        return self.GENERATION_API_KEY or self.OPENAI_API_KEY

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# 创建全局settings实例
settings = Settings()


def get_settings() -> Settings:
    """
    获取设置实例

    Returns:
        Settings 实例
    """
    return settings
