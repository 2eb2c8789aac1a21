__all__ = ["SwapExecutor"]

from rawmove.engine.executor import SwapExecutor
