"""
yauthz 日志配置

会话、缓存、权限引擎等模块都通过 get_logger() 取得 "yauthz.*" 命名空间下的日志器，
应用启动时调用一次 setup_root_logger() 即可统一输出格式和去向。
"""

import inspect
import logging
import os
import time
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

PACKAGE_LOGGER = "yauthz"

DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s"

_DEFAULT_MAX_BYTES = 10 * 1024 * 1024
_DEFAULT_BACKUP_COUNT = 5


class MicrosecondFormatter(logging.Formatter):
    """时间戳精确到微秒，便于排查同一秒内的会话刷新与注销顺序"""

    def formatTime(self, record, datefmt=None):
        stamp = time.strftime(datefmt or DEFAULT_DATE_FORMAT, self.converter(record.created))
        micros = int((record.created % 1) * 1_000_000)
        return f"{stamp}.{micros:06d}"


def create_formatter(
    log_format: Optional[str] = None,
    datefmt: str = DEFAULT_DATE_FORMAT,
    use_microseconds: bool = True,
) -> logging.Formatter:
    formatter_cls = MicrosecondFormatter if use_microseconds else logging.Formatter
    return formatter_cls(fmt=log_format or DEFAULT_LOG_FORMAT, datefmt=datefmt)


def _file_handler(path: str, max_bytes: int, backup_count: int, encoding: str) -> logging.Handler:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding=encoding)


def setup_logger(
    name: Optional[str] = None,
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    console: bool = True,
    use_microseconds: bool = True,
    propagate: bool = True,
    max_bytes: int = _DEFAULT_MAX_BYTES,
    backup_count: int = _DEFAULT_BACKUP_COUNT,
    encoding: str = "utf-8",
) -> logging.Logger:
    """配置一个日志器并返回

    重复调用会替换掉已有的处理器，不会叠加输出。

    Args:
        name: 日志器名称，None 表示根日志器
        level: DEBUG / INFO / WARNING / ERROR / CRITICAL，无法识别时按 INFO
        log_file: 日志文件路径，按大小轮转；不指定则只输出到控制台
        log_format: 自定义格式，默认 DEFAULT_LOG_FORMAT
        console: 是否输出到 stderr
        use_microseconds: 时间戳是否带微秒
        propagate: 是否继续交给父日志器处理
        max_bytes: 单个文件的轮转阈值
        backup_count: 保留的历史文件个数
        encoding: 文件编码

    使用示例:
        from yauthz.log import setup_logger

        logger = setup_logger("yauthz.auth", level="DEBUG", log_file="logs/auth.log")
    """
    target = logging.getLogger(name)
    target.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    target.propagate = propagate

    for handler in list(target.handlers):
        target.removeHandler(handler)

    handlers = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file:
        handlers.append(_file_handler(log_file, max_bytes, backup_count, encoding))

    formatter = create_formatter(log_format, use_microseconds=use_microseconds)
    for handler in handlers:
        handler.setFormatter(formatter)
        target.addHandler(handler)
    return target


def setup_root_logger(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    use_microseconds: bool = True,
    config: Any = None,
) -> logging.Logger:
    """配置根日志器，yauthz.* 日志器沿用它的处理器

    传入 config（LoggingSettings）时，级别、文件与轮转参数都取自配置。

    使用示例:
        setup_root_logger(config=settings.logging)
    """
    file_options = {}
    if config is not None:
        level = config.level
        log_file = config.file_path or None
        console = config.console
        file_options = {
            "max_bytes": config.file_max_bytes,
            "backup_count": config.file_backup_count,
            "encoding": config.file_encoding,
        }

    return setup_logger(
        level=level,
        log_file=log_file,
        console=console,
        use_microseconds=use_microseconds,
        propagate=False,
        **file_options
    )


def _caller_module() -> str:
    # 跳过 _caller_module 与 get_logger 两层
    frame = inspect.currentframe()
    for _ in range(2):
        if frame is None:
            break
        frame = frame.f_back
    if frame is None:
        return PACKAGE_LOGGER
    return frame.f_globals.get("__name__", PACKAGE_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """取得日志器

    - 不传 name：使用调用方模块的 __name__
    - 不含点号的短名：挂到 "yauthz." 下，如 "cache" -> "yauthz.cache"
    - 其余名称原样使用

    使用示例:
        logger = get_logger()          # yauthz/auth/session.py 中得到 "yauthz.auth.session"
        logger = get_logger("cache")   # "yauthz.cache"
    """
    if name is None:
        return logging.getLogger(_caller_module())
    if name != PACKAGE_LOGGER and "." not in name:
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


logger = logging.getLogger(PACKAGE_LOGGER)
