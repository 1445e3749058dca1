"""
工具函数模块
"""

import asyncio
from typing import Awaitable, Dict, Hashable, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


def describe_error(error: BaseException) -> str:
    """把异常转换为简短描述（部分 httpx 异常的 str() 为空）"""
    message = str(error)
    if message:
        return f"{type(error).__name__}: {message}"
    return type(error).__name__


async def gather_with_deadline(
    calls: Dict[K, Awaitable[T]],
    deadline: float,
) -> Tuple[Dict[K, T], Dict[K, str]]:
    """
    并发执行一批请求，所有请求共享同一个截止时间

    每个请求各自产出结果或错误，互不影响；截止时间到达时仍未完成的请求
    会被取消并记为失败。结果在所有任务结束后由调用方一次性合并。

    Args:
        calls: 请求标识 -> 待执行的协程
        deadline: 整批请求的总时长上限（秒）

    Returns:
        (成功结果, 失败原因)，两者的键互不重叠
    """
    if not calls:
        return {}, {}

    tasks = {asyncio.ensure_future(call): key for key, call in calls.items()}
    try:
        _, pending = await asyncio.wait(list(tasks), timeout=deadline)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    if pending:
        # 等待被取消的任务真正结束
        await asyncio.gather(*pending, return_exceptions=True)

    results: Dict[K, T] = {}
    failures: Dict[K, str] = {}
    for task, key in tasks.items():
        if task in pending or task.cancelled():
            failures[key] = f"timed out after {deadline}s"
        elif task.exception() is not None:
            failures[key] = describe_error(task.exception())
        else:
            results[key] = task.result()
    return results, failures
