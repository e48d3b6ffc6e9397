from __future__ import annotations

import uuid


def new_id() -> str:
    """Opaque primary key for catalog rows."""
    return uuid.uuid4().hex
