"""YAML 配置加载

配置文件中的字符串可以用 ${ENV_NAME} 或 ${ENV_NAME:default} 引用环境变量，
加载时展开，未设置且无默认值的变量替换为空字符串。

使用示例:
    from yauthz.config import ConfigLoader, load_yaml_config, AuthzSettings

    raw = ConfigLoader.load("config/authz.yaml")
    settings = load_yaml_config("config/authz.yaml", AuthzSettings, token={"secret_key": "..."})
"""

import os
import re
from typing import Any, Dict, Optional, Type, TypeVar

import yaml

T = TypeVar("T")

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::([^}]*))?\}")


def _env_value(match: "re.Match") -> str:
    name, default = match.group(1), match.group(2)
    return os.environ.get(name, default or "")


def expand_env(value: Any) -> Any:
    """递归展开 dict / list / str 中的环境变量引用"""
    if isinstance(value, str):
        return _ENV_REF.sub(_env_value, value)
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    return value


class ConfigLoader:
    """YAML 配置读取器，解析结果按文件绝对路径缓存在进程内"""

    _cache: Dict[str, Dict[str, Any]] = {}

    @staticmethod
    def resolve(config_path: str, base_dir: Optional[str] = None) -> str:
        if os.path.isabs(config_path):
            return config_path
        return os.path.abspath(os.path.join(base_dir or os.getcwd(), config_path))

    @classmethod
    def load(
        cls,
        config_path: str,
        base_dir: Optional[str] = None,
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        """读取并解析配置文件，空文件返回 {}

        Raises:
            FileNotFoundError: 文件不存在
            yaml.YAMLError: 文件不是合法的 YAML
        """
        path = cls.resolve(config_path, base_dir)
        cached = cls._cache.get(path) if use_cache else None
        if cached is not None:
            return cached

        if not os.path.isfile(path):
            raise FileNotFoundError(f"配置文件不存在: {path}")
        with open(path, encoding="utf-8") as stream:
            data = expand_env(yaml.safe_load(stream) or {})

        if use_cache:
            cls._cache[path] = data
        return data

    @classmethod
    def reload(cls, config_path: str, base_dir: Optional[str] = None) -> Dict[str, Any]:
        """丢弃该文件的缓存后重新读取"""
        cls._cache.pop(cls.resolve(config_path, base_dir), None)
        return cls.load(config_path, base_dir)

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()


def load_yaml_config(
    config_path: str,
    settings_class: Type[T],
    base_dir: Optional[str] = None,
    **overrides: Any
) -> T:
    """读取 YAML 并实例化 pydantic-settings 配置类

    overrides 按顶层键覆盖文件内容（整段替换，不做深合并）。
    """
    values = {**ConfigLoader.load(config_path, base_dir), **overrides}
    return settings_class(**values)
