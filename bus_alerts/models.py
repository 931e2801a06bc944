from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class Alert:
    summary: Optional[str]
    description: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    created_at: Optional[datetime] = None
    # route ids in feed order, without repeats
    routes: Tuple[str, ...] = ()
