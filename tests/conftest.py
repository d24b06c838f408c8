"""
Pytest 公共配置和 Fixtures

提供测试所需的公共资源：
- 可控时钟
- 内存缓存后端
- 示例部门树与角色存储
- 令牌配置
"""

import os
import tempfile

import pytest

from yauthz.cache import MemoryBackend
from yauthz.config import PermissionSettings, TokenSettings
from yauthz.permission import PermissionCache

from tests.helpers import FakeClock, build_sample_store, build_sample_tree


# ==================== 基础 Fixtures ====================

@pytest.fixture(scope="session")
def temp_dir():
    """创建临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def temp_file(temp_dir):
    """创建临时文件的工厂函数"""
    created_files = []

    def _create_file(filename: str, content: str = "") -> str:
        filepath = os.path.join(temp_dir, filename)
        if os.path.dirname(filepath):
            os.makedirs(os.path.dirname(filepath), exist_ok=True)
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(content)
        created_files.append(filepath)
        return filepath

    yield _create_file

    for filepath in created_files:
        if os.path.exists(filepath):
            os.remove(filepath)


@pytest.fixture
def clock():
    """从固定时间点开始、可手动推进的时钟"""
    return FakeClock(1_700_000_000.0)


# ==================== 缓存 Fixtures ====================

@pytest.fixture
def memory_backend():
    """不启动清理线程的内存后端"""
    backend = MemoryBackend(maxsize=1000, ttl=10 ** 7, sweep_interval=None)
    yield backend
    backend.close()


@pytest.fixture
def permission_cache(memory_backend):
    return PermissionCache(memory_backend, ttl=300)


# ==================== 领域 Fixtures ====================

@pytest.fixture
def dept_tree():
    """示例部门树

    1 总公司
    ├── 2 研发部
    │   ├── 4 前端组
    │   └── 5 后端组
    │       └── 7 存储小组
    └── 3 销售部
        └── 6 华东区
    """
    return build_sample_tree()


@pytest.fixture
def role_store():
    return build_sample_store()


@pytest.fixture
def permission_settings():
    return PermissionSettings()


@pytest.fixture
def token_settings():
    return TokenSettings(
        secret_key="test-secret-key-for-testing-only",
        access_token_expire_seconds=1800,
        refresh_token_expire_seconds=7 * 86400,
    )
