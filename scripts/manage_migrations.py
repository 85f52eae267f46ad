#!/usr/bin/env python3
"""数据库迁移管理脚本

直接调用 Alembic 命令API管理 file_records 和 file_audit 表的迁移
"""

import argparse
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from loguru import logger


PROJECT_ROOT = Path(__file__).resolve().parent.parent


def load_config() -> Config:
    """加载 alembic.ini

    Raises:
        FileNotFoundError: 找不到 alembic.ini 时
    """
    alembic_ini = PROJECT_ROOT / "alembic.ini"
    if not alembic_ini.exists():
        raise FileNotFoundError(f"找不到 alembic.ini 文件: {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="数据库迁移管理")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="根据模型变更生成新迁移")
    create.add_argument("message", nargs="+", help="迁移描述信息")

    upgrade = subparsers.add_parser("upgrade", help="升级数据库（默认到最新版本）")
    upgrade.add_argument("revision", nargs="?", default="head")

    downgrade = subparsers.add_parser("downgrade", help="降级数据库到指定版本")
    downgrade.add_argument("revision")

    stamp = subparsers.add_parser("stamp", help="标记数据库版本（不执行迁移）")
    stamp.add_argument("revision")

    subparsers.add_parser("current", help="显示当前数据库版本")
    subparsers.add_parser("history", help="显示迁移历史")
    return parser


def main() -> int:
    logger.remove()
    logger.add(
        sys.stdout,
        level="INFO",
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
    )

    args = build_parser().parse_args()

    try:
        config = load_config()

        if args.command == "create":
            message = " ".join(args.message)
            logger.info(f"创建新迁移: {message}")
            command.revision(config, message=message, autogenerate=True)
        elif args.command == "upgrade":
            logger.info(f"升级数据库到版本: {args.revision}")
            command.upgrade(config, args.revision)
        elif args.command == "downgrade":
            logger.info(f"降级数据库到版本: {args.revision}")
            command.downgrade(config, args.revision)
        elif args.command == "stamp":
            logger.info(f"标记数据库版本为: {args.revision}")
            command.stamp(config, args.revision)
        elif args.command == "current":
            command.current(config, verbose=True)
        elif args.command == "history":
            command.history(config, verbose=True)

    except Exception as e:
        logger.error(f"执行失败: {e}")
        return 1

    logger.info("操作完成")
    return 0


if __name__ == "__main__":
    sys.exit(main())
