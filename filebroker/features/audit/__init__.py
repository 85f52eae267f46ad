"""审计日志功能模块

提供只追加的审计账本及查询接口
"""
