# CogniLab/cognilab/tools/base.py
import functools
import inspect
from types import ModuleType
from typing import Dict, Any, Callable, Awaitable, Union

# 这个模块提供编辑器命令注册的装饰器


def register_command(description: str, parameters: Dict[str, Any]):
    """
    一个装饰器，用于将一个函数注册为可通过 CommandExecutor 调用的编辑器命令。

    被装饰的函数会被添加一个 `_is_command` 属性 (设为 True) 和一个
    `_command_schema` 属性，其中包含命令描述和参数规范。

    Args:
        description (str): 命令功能的描述。
        parameters (Dict[str, Any]): 一个符合 JSON Schema 规范的字典，描述命令接受的参数。

    Returns:
        Callable: 保留原函数同步/异步调用方式的包装器。
    """
    if not isinstance(description, str) or not description.strip():
        raise ValueError("命令描述 (description) 必须是一个有效的非空字符串。")
    if not isinstance(parameters, dict):
        raise ValueError("命令参数规范 (parameters) 必须是一个字典。")

    def decorator(func: Callable[..., Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]) -> Callable:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> Dict[str, Any]:
                return await func(*args, **kwargs)
            wrapper = async_wrapper
        else:
            @functools.wraps(func)
            def sync_wrapper(*args, **kwargs) -> Dict[str, Any]:
                return func(*args, **kwargs)
            wrapper = sync_wrapper

        wrapper._command_schema = {"name": func.__name__, "description": description, "parameters": parameters}
        wrapper._is_command = True
        return wrapper

    return decorator


def collect_commands(module: ModuleType) -> Dict[str, Callable]:
    """收集模块中所有被 @register_command 标记的函数，按函数名索引。"""
    return {
        name: member
        for name, member in vars(module).items()
        if callable(member) and getattr(member, '_is_command', False)
    }
