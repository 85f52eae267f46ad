"""核心配置模块

处理环境变量读取、数据库URL的异步转换以及文件传输策略
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ALLOWED_CONTENT_TYPES = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "application/json",
]


class Settings(BaseSettings):
    """应用配置类

    自动从环境变量读取配置，并将注入的同步数据库URL转换为异步URL
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # 数据库配置
    database_url: Optional[str] = Field(
        default=None,
        description="数据库连接URL（PostgreSQL同步URL会被转换为asyncpg URL）"
    )

    # Redis配置
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis连接URL，用于分配审计日志序号"
    )

    # S3兼容对象存储配置
    service_name: str = Field(default="s3", description="S3兼容服务名称")
    endpoint_url: Optional[str] = Field(
        default=None,
        description="对象存储端点URL，为空时使用AWS默认端点"
    )
    aws_access_key_id: Optional[str] = Field(default=None, description="访问密钥ID")
    aws_secret_access_key: Optional[str] = Field(default=None, description="秘密访问密钥")
    region_name: str = Field(default="us-east-1", description="存储区域名称")
    bucket_name: str = Field(default="filebroker-uploads", description="存储桶名称")

    # 文件传输策略
    max_file_size: int = Field(
        default=10 * 1024 * 1024,
        description="单个文件允许的最大字节数"
    )
    allowed_content_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_CONTENT_TYPES),
        description="允许上传的MIME类型白名单"
    )
    credential_ttl: int = Field(default=3600, description="预签名URL有效期（秒）")

    # 分页配置
    files_page_size: int = Field(default=20, description="文件列表默认每页数量")
    audit_page_size: int = Field(default=50, description="审计日志默认每页数量")
    max_page_size: int = Field(default=100, description="每页数量上限")

    # 应用配置
    app_name: str = Field(default="FileBroker", description="应用名称")
    app_version: str = Field(default="1.0.0", description="应用版本")
    debug: bool = Field(default=False, description="调试模式")
    host: str = Field(default="0.0.0.0", description="服务器主机")
    port: int = Field(default=8000, description="服务器端口")
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
        ],
        description="允许跨域访问的来源"
    )
    run_migrations_on_startup: bool = Field(
        default=True,
        description="启动时是否运行Alembic迁移"
    )

    @computed_field
    @property
    def async_database_url(self) -> Optional[str]:
        """将同步PostgreSQL URL转换为异步URL

        部署平台注入的DATABASE_URL通常使用postgresql://前缀，
        但asyncpg需要postgresql+asyncpg://前缀。其他方案（如sqlite+aiosqlite）原样返回

        Returns:
            Optional[str]: 异步数据库连接URL，如果未配置则返回None
        """
        if not self.database_url:
            return None

        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif self.database_url.startswith("postgres://"):
            return self.database_url.replace("postgres://", "postgresql+asyncpg://", 1)
        return self.database_url

    @computed_field
    @property
    def async_redis_url(self) -> Optional[str]:
        """处理Redis URL确保兼容性

        Returns:
            Optional[str]: Redis连接URL，如果未配置则返回None
        """
        if not self.redis_url:
            return None

        if not self.redis_url.startswith(("redis://", "rediss://")):
            return f"redis://{self.redis_url}"
        return self.redis_url

    @computed_field
    @property
    def s3_config(self) -> dict[str, Optional[str]]:
        """boto3客户端配置字典

        未提供完整密钥时不传入凭证，交由boto3默认凭证链解析

        Returns:
            dict: S3客户端配置参数
        """
        config: dict[str, Optional[str]] = {
            "service_name": self.service_name,
            "endpoint_url": self.endpoint_url,
            "region_name": self.region_name,
        }
        if self.aws_access_key_id and self.aws_secret_access_key:
            config["aws_access_key_id"] = self.aws_access_key_id
            config["aws_secret_access_key"] = self.aws_secret_access_key
        return config


@lru_cache
def get_settings() -> Settings:
    """获取应用配置单例

    使用lru_cache确保配置只被加载一次

    Returns:
        Settings: 应用配置实例
    """
    return Settings()
