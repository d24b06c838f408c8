"""版本信息"""

__version__ = "0.1.0"
__author__ = "yauthz"
__description__ = "Department tree, role-permission inheritance, data scope and session snapshot core"
