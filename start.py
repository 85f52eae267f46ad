#!/usr/bin/env python3
"""服务启动脚本

从环境变量读取端口并启动uvicorn，同时配置loguru文件日志
"""

import os

from loguru import logger


def main():
    """启动FastAPI应用

    从环境变量获取端口号，默认使用8000
    """
    import uvicorn

    from filebroker.core.config import get_settings

    settings = get_settings()

    logger.add(
        "logs/app_{time:YYYY-MM-DD}.log",
        rotation="1 day",
        retention="30 days",
        level="INFO",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
        serialize=True
    )

    port = int(os.getenv("PORT", settings.port))
    logger.info(f"启动服务: {settings.app_name} v{settings.app_version} (端口 {port})")

    uvicorn.run(
        "filebroker.main:app",
        host=settings.host,
        port=port,
        reload=settings.debug,
        workers=1,
        log_level="debug" if settings.debug else "info",
        access_log=True
    )


if __name__ == "__main__":
    main()
