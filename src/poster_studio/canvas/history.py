from __future__ import annotations

from collections import deque

from poster_studio.canvas.surface import RasterSurface


class MaskHistory:
    """Bounded undo stack of surface snapshots; the oldest snapshot is evicted first."""

    def __init__(self, capacity: int = 10) -> None:
        if capacity <= 0:
            raise ValueError(f"history capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._snapshots: deque[RasterSurface] = deque(maxlen=capacity)

    def push(self, surface: RasterSurface) -> None:
        self._snapshots.append(surface.clone())

    def pop(self) -> RasterSurface | None:
        if not self._snapshots:
            return None
        return self._snapshots.pop()

    def clear(self) -> None:
        self._snapshots.clear()

    def __len__(self) -> int:
        return len(self._snapshots)

    def __bool__(self) -> bool:
        return bool(self._snapshots)
