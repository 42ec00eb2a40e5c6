# --- Global log sanitizer: hide credentials and trim payload dumps -------------
import logging, re

_SECRET_RE = re.compile(
    r'(?i)(["\']?(?:password|access[_-]?token|x-shopify-access-token)["\']?\s*[:=]\s*["\']?)([^"\',\s}]+)'
)
_JSON_DUMP_RE = re.compile(r'[\[{]\s*"')

MAX_MESSAGE_CHARS = 2000


def _mask_secrets(s: str) -> str:
    return _SECRET_RE.sub(lambda m: f"{m.group(1)}***", s)


def _trim_payload(s: str, limit: int = MAX_MESSAGE_CHARS) -> str:
    if len(s) <= limit:
        return s
    return f"{s[:limit]} [{len(s) - limit} chars trimmed]"


class _PayloadScrubFilter(logging.Filter):
    """Mask credentials in log messages and shorten very large JSON dumps."""
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
        except (TypeError, ValueError):
            return True
        if not isinstance(msg, str):
            return True
        cleaned = _mask_secrets(msg)
        if len(cleaned) > MAX_MESSAGE_CHARS and _JSON_DUMP_RE.search(cleaned):
            cleaned = _trim_payload(cleaned)
        if cleaned != msg:
            record.msg = cleaned
            record.args = ()
        return True


def install() -> None:
    # install once on common loggers (root + uvicorn family)
    for _name in ("", "uvicorn", "uvicorn.error"):
        lg = logging.getLogger(_name)
        if not any(isinstance(f, _PayloadScrubFilter) for f in lg.filters):
            lg.addFilter(_PayloadScrubFilter())
