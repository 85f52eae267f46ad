"""文件元数据功能模块

提供文件记录的生命周期管理和相关接口
"""
