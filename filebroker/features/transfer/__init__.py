"""传输凭证功能模块

封装对象存储协作方并签发限时上传/下载凭证
"""
