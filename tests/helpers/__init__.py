"""测试辅助工具模块

提供测试专用的辅助函数，避免在核心代码中添加测试专用方法。
"""

from .clock import FakeClock
from .sample_data import (
    ROLE_EDITOR,
    ROLE_VIEWER,
    ROLE_AUDITOR,
    ROLE_SALES_MANAGER,
    ROLE_DISABLED,
    build_sample_tree,
    build_sample_store,
)
from .cache_helpers import get_generation

__all__ = [
    # 时钟
    'FakeClock',
    # 示例数据
    'ROLE_EDITOR',
    'ROLE_VIEWER',
    'ROLE_AUDITOR',
    'ROLE_SALES_MANAGER',
    'ROLE_DISABLED',
    'build_sample_tree',
    'build_sample_store',
    # 缓存
    'get_generation',
]
