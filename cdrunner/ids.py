"""
Run identifiers, used to name run directories and temporary STS sessions.
"""

import random
import re
import string
from datetime import datetime
from typing import Optional

RUN_ID_PATTERN = re.compile(r"r-\d{8}-\d{6}-[a-z0-9]{4}")


def new_run_id(now: Optional[datetime] = None) -> str:
    """
    Generate a run ID of the form r-YYYYMMDD-hhmmss-xxxx.

    Args:
        now: Timestamp to embed, the current local time by default

    Returns:
        str: Run ID
    """
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=4))
    return f"r-{stamp}-{suffix}"


def is_valid_run_id(run_id: str) -> bool:
    return RUN_ID_PATTERN.fullmatch(run_id) is not None
