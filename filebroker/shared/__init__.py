"""共享组件"""
