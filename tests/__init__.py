"""
erp-client 测试套件

测试目录结构:
    tests/
    ├── __init__.py
    ├── conftest.py              # pytest fixtures (脚本化传输层等)
    ├── test_cli.py              # CLI 入口测试
    ├── test_config.py           # 配置加载测试
    ├── test_models.py           # 数据模型测试
    ├── control/                 # 控制面 HTTP 接口测试
    ├── core/                    # 退避、分类、分发、队列处理、客户端门面
    └── store/                   # 持久化存储后端测试
"""
