"""
Utility modules.
"""

from .compute import (
    Backend,
    init_backend,
    get_backend,
    get_xp,
    is_gpu,
    split_work,
    get_cpu_count,
    resolve_n_workers,
)

from .logging import (
    get_logger,
    set_level,
    Timer,
    ProgressTracker,
)

__all__ = [
    'Backend',
    'init_backend',
    'get_backend',
    'get_xp',
    'is_gpu',
    'split_work',
    'get_cpu_count',
    'resolve_n_workers',
    'get_logger',
    'set_level',
    'Timer',
    'ProgressTracker',
]
