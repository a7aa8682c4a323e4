import threading
import time
from dataclasses import dataclass
from dataclasses import field


@dataclass
class IndexStats:
    total: int = 0
    indexed: int = 0
    failed: int = 0
    cache_hits: int = 0
    packages: int = 0
    start_time: float = field(default_factory=time.time)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def inc_indexed(self, packages: int = 0):
        with self._lock:
            self.indexed += 1
            self.packages += packages

    def inc_failed(self, count: int = 1):
        with self._lock:
            self.failed += count

    def inc_cache_hits(self, count: int = 1):
        with self._lock:
            self.cache_hits += count

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time
