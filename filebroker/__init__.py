"""直传对象存储的文件传输服务"""

__version__ = "1.0.0"
