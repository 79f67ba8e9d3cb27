import os
import logging
from logging.handlers import RotatingFileHandler

from app.medtrack.config import load_settings

FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# logger name -> (handler tag, file name)
LOG_FILES = {
    "mt.request": ("req", "medtrack-requests.log"),
    "app.medtrack": ("engine", "medtrack-engine.log"),
    "uvicorn.error": ("uvicorn", "medtrack-uvicorn.log"),
}


def _mk_handler(path, tag):
    h = RotatingFileHandler(path, maxBytes=5_000_000, backupCount=5, encoding="utf-8")
    h.setFormatter(logging.Formatter(FORMAT))
    h.setLevel(logging.INFO)
    h._mt_tag = tag
    return h


def configure_logging(log_dir: str | None = None):
    outdir = log_dir or load_settings().log_dir
    try:
        os.makedirs(outdir, exist_ok=True)
    except OSError:
        # unwritable log dir: keep console logging only
        logging.getLogger(__name__).warning("log dir %s not writable", outdir)
        return

    for name, (tag, filename) in LOG_FILES.items():
        lg = logging.getLogger(name)
        if any(getattr(h, "_mt_tag", "") == tag for h in lg.handlers):
            continue
        lg.addHandler(_mk_handler(os.path.join(outdir, filename), tag))
        lg.setLevel(logging.INFO)
        lg.propagate = True  # still print to console
