import io, re, uuid, base64
from datetime import datetime, timezone

import qrcode

from config import MAX_PAGE_SIZE

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
# Opaque ids issued by external auth providers
OPAQUE_ID_RE = re.compile(r"^[a-zA-Z0-9]{20,}$")


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC now, the form every timestamp column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_iso(value: datetime) -> str:
    value = as_utc_naive(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


def is_valid_uuid(value) -> bool:
    return isinstance(value, str) and bool(UUID_RE.match(value))


def is_valid_user_id(value) -> bool:
    return is_valid_uuid(value) or (isinstance(value, str) and bool(OPAQUE_ID_RE.match(value)))


def clamp_limit(limit: int) -> int:
    return min(limit, MAX_PAGE_SIZE)


LIKE_ESCAPE = "\\"


def like_pattern(search: str) -> str:
    """Substring pattern for ilike(..., escape=LIKE_ESCAPE) with % and _ taken literally."""
    escaped = search.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def field_code(name: str) -> str:
    """unlockDate -> UNLOCK_DATE"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).upper()


def make_qr_data_url(link: str) -> str:
    img = qrcode.make(link)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("utf-8")
