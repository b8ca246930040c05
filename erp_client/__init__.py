"""
erp-client: 离线优先的 ERP 弹性请求客户端

变更类请求携带幂等键，内联重试耗尽后写入持久化队列，
在恢复连通、手动 flush 或 resume 时按插入顺序重放。
"""

__version__ = "1.0.0"
