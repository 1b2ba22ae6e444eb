"""
实例目录互斥锁

同一实例目录上的同步与检查必须串行执行。
"""

import asyncio
import os
import weakref
from typing import Dict

# 事件循环 -> {实例目录真实路径: 锁}
_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[str, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def instance_lock(instance_dir: str) -> asyncio.Lock:
    """获取实例目录对应的锁（按当前事件循环隔离）"""
    loop = asyncio.get_running_loop()
    per_loop = _locks.setdefault(loop, {})
    key = os.path.realpath(instance_dir)
    lock = per_loop.get(key)
    if lock is None:
        lock = per_loop[key] = asyncio.Lock()
    return lock
