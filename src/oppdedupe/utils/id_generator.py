import uuid
from datetime import datetime, timezone


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d")


def new_opportunity_id() -> str:
    return f"OPP-{_stamp()}-{uuid.uuid4().hex[:8]}"


def new_link_id() -> str:
    return f"DUP-{_stamp()}-{uuid.uuid4().hex[:8]}"


def new_source_id() -> str:
    return f"SRC-{_stamp()}-{uuid.uuid4().hex[:8]}"
