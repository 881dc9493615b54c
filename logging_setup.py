import logging
import sys
from pathlib import Path


def setup_logging(level="INFO", log_file=None):
    """
    Configure root logging with:
    - Console handler on stderr
    - File handler when ``log_file`` is given

    Call this once, before the first request is served.
    """
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path), encoding="utf-8")
        fh.setFormatter(fmt)
        root.addHandler(fh)

    # SQL echo and per-request lines from the dev server stay out of INFO.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
