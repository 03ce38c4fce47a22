import logging
import time

from esports_rollup.core.config import get_settings

def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter('%(asctime)s | %(levelname)s | %(name)s | %(message)s')
        handler.setFormatter(fmt)
        logger.addHandler(handler)
        logger.setLevel(get_settings().LOG_LEVEL.upper())
    return logger

class timeblock:
    def __init__(self, logger: logging.Logger, msg: str):
        self.logger = logger
        self.msg = msg
    def __enter__(self):
        self.start = time.perf_counter()
        return self
    def __exit__(self, exc_type, exc, tb):
        dt = (time.perf_counter() - self.start)*1000
        self.logger.info(f"{self.msg} took {dt:.1f} ms")

def log_stage(logger: logging.Logger, stage: str, rows_in: int, rows_out: int) -> None:
    dropped = rows_in - rows_out
    if dropped > 0:
        logger.info(f"{stage}: {rows_in} -> {rows_out} rows ({dropped} dropped)")
    else:
        logger.info(f"{stage}: {rows_in} -> {rows_out} rows")
