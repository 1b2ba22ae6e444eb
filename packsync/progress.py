"""
进度上报

进度接收端由调用方（界面）持有，核心流程只通过回调上报百分比。
"""

from typing import Callable, Dict, Optional

from loguru import logger

# (标签, 百分比 0-100)
ProgressCallback = Callable[[str, int], None]


def percent_of(done: int, total: int) -> int:
    """min(100, floor(100 * done / total))，total 为 0 时视为已完成"""
    if total <= 0:
        return 100
    return max(0, min(100, (100 * done) // total))


class ProgressReporter:
    """
    单调进度上报器

    对每个标签单独记录已上报的最大值，丢弃倒退或重复的数值，保证回调看到的序列单调不减。
    """

    def __init__(self, callback: Optional[ProgressCallback] = None, step: int = 1):
        self._callback = callback
        self._step = max(1, step)
        self._last: Dict[str, int] = {}

    def report(self, label: str, percent: int):
        percent = max(0, min(100, int(percent)))
        last = self._last.get(label)
        if last is not None:
            if percent <= last:
                return
            # 100 总是上报
            if percent < 100 and percent - last < self._step:
                return
        self._last[label] = percent
        if self._callback:
            self._callback(label, percent)

    def reset(self, label: str):
        self._last.pop(label, None)

    def __call__(self, label: str, percent: int):
        self.report(label, percent)


def log_progress(label: str, percent: int):
    """默认的日志进度接收端"""
    logger.info(f"[进度] {label}: {percent}%")
