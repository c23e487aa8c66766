"""
Compute backend utilities.

Provides a unified NumPy/CuPy array module for the FFT-heavy parts of PSF
synthesis, plus helpers to split star lists across worker threads.
"""

from __future__ import annotations

import os
from typing import Optional, Any

from .logging import get_logger


# =============================================================================
# Backend State
# =============================================================================

class Backend:
    """
    Unified compute backend for CPU/GPU array operations.

    Provides a consistent interface regardless of whether NumPy or CuPy
    is being used underneath. Kernels leave the backend as NumPy arrays.
    """

    def __init__(self):
        self.xp = None           # NumPy or CuPy module
        self.np = None           # Always NumPy (for CPU operations)
        self.gpu = False
        self._initialized = False
        self._device_id = None

    def init(self, compute_mode: str = "CPU", device_id: Optional[int] = None) -> 'Backend':
        """
        Initialize the computation backend.

        Args:
            compute_mode: "GPU" or "CPU"
            device_id: Specific GPU device ID (default 0)

        Returns:
            Self for chaining
        """
        import numpy as np
        self.np = np
        logger = get_logger()

        if compute_mode.upper() == "CPU":
            self.xp = np
            self.gpu = False
            self._device_id = None
            logger.debug("[BACKEND] Using CPU (NumPy)")
        else:
            try:
                import cupy as cp

                n_devices = cp.cuda.runtime.getDeviceCount()
                if n_devices == 0:
                    raise RuntimeError("No CUDA devices available")
                self._device_id = device_id if device_id is not None else 0
                cp.cuda.Device(self._device_id).use()
                self.xp = cp
                self.gpu = True
                logger.info(f"[BACKEND] Using GPU {self._device_id}/{n_devices} (CuPy)")
            except Exception as e:
                logger.warning(f"[BACKEND] CuPy unavailable ({e}), falling back to CPU")
                self.xp = np
                self.gpu = False
                self._device_id = None

        self._initialized = True
        return self

    def ensure_initialized(self):
        """Initialize with defaults if not already done."""
        if not self._initialized:
            self.init()

    @property
    def device_id(self) -> Optional[int]:
        """Current GPU device ID, or None for CPU."""
        return self._device_id if self.gpu else None

    def to_numpy(self, array) -> Any:
        """Convert array to NumPy (from GPU if necessary)."""
        if hasattr(array, 'get'):
            return array.get()
        return self.np.asarray(array)

    def to_device(self, array) -> Any:
        """Convert NumPy array to device array."""
        self.ensure_initialized()
        return self.xp.asarray(array)

    def zeros(self, shape, dtype=None):
        """Create zero array on current device."""
        self.ensure_initialized()
        dtype = dtype or self.xp.float64
        return self.xp.zeros(shape, dtype=dtype)


# Global singleton backend
_backend = Backend()


def init_backend(compute_mode: str = "CPU", device_id: Optional[int] = None) -> Backend:
    """Initialize the global backend."""
    return _backend.init(compute_mode, device_id)


def get_backend() -> Backend:
    """Get the global backend instance."""
    _backend.ensure_initialized()
    return _backend


def get_xp():
    """Get the array module (NumPy or CuPy)."""
    _backend.ensure_initialized()
    return _backend.xp


def is_gpu() -> bool:
    """Check if GPU is being used."""
    _backend.ensure_initialized()
    return _backend.gpu


# =============================================================================
# Parallel Execution Utilities
# =============================================================================

def split_work(items: list, n_workers: int) -> list:
    """
    Split work items across workers evenly.

    Args:
        items: List of work items
        n_workers: Number of workers

    Returns:
        List of lists, one per worker (contiguous, order preserving)
    """
    n_workers = max(1, int(n_workers))
    k, m = divmod(len(items), n_workers)
    return [items[i*k + min(i, m):(i+1)*k + min(i+1, m)] for i in range(n_workers)]


def get_cpu_count() -> int:
    """Get number of CPU cores."""
    return os.cpu_count() or 1


def resolve_n_workers(n_workers: Optional[int], n_items: int) -> int:
    """
    Pick a worker count for a job of ``n_items``.

    None means one worker per core; the result never exceeds the item count.
    """
    if n_workers is None or n_workers <= 0:
        n_workers = get_cpu_count()
    return max(1, min(int(n_workers), max(n_items, 1)))
