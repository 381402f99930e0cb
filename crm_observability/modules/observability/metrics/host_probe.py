"""Host resource introspection.

Every probe returns None when the host refuses to answer, so threshold
evaluation can skip the check instead of failing.
"""

import os
import platform
import time
from typing import Any, Dict, Optional

import psutil

from crm_observability.logger import logger


def get_memory_usage_percent() -> Optional[float]:
    """Percentage of host memory in use, as reported by psutil.

    psutil derives it from available memory, so reclaimable caches do not count
    as used.

    Returns:
        Memory usage (0-100) or None if unavailable
    """
    try:
        memory = psutil.virtual_memory()
    except (psutil.Error, OSError) as e:
        logger.debug(f"Memory introspection unavailable: {e}")
        return None

    return float(memory.percent)


def get_system_metrics() -> Optional[Dict[str, Any]]:
    """Process and host snapshot for the health dashboard.

    Returns:
        Dictionary with uptime, memory, cpu and platform info, or None
    """
    try:
        process = psutil.Process(os.getpid())
        memory_info = process.memory_info()
        cpu_times = process.cpu_times()
        uptime = time.time() - process.create_time()
    except (psutil.Error, OSError) as e:
        logger.warning(f"System metrics unavailable: {e}")
        return None

    return {
        "uptime": uptime,
        "memory": {
            "rss": memory_info.rss,
            "vms": memory_info.vms,
            "percent": get_memory_usage_percent(),
        },
        "cpu": {
            "user": cpu_times.user,
            "system": cpu_times.system,
        },
        "version": platform.python_version(),
        "platform": platform.system().lower(),
        "arch": platform.machine(),
    }
