import logging
import taichi as ti

logger = logging.getLogger("taichi_march")


def march_assert(expr: bool, log_str: str):
    assert expr, ">>>> [MARCH]: " + log_str


def march_log(log_str: str, level=logging.INFO):
    logger.log(level, ">> [MARCH]: {}".format(log_str))


def configure_logging(level=logging.INFO, logfile=None):
    """Set up the taichi_march logger with a console handler and an optional log file."""
    logger.setLevel(level)

    formatter = logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S")
    if not logger.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if logfile is not None:
        file_handler = logging.FileHandler(logfile)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


## @param arch The taichi backend, defaults to cpu. TI_ARCH in the environment still takes precedence in taichi.
#  @param debug Enables taichi's bound and assertion checks inside kernels
#  @param log_level The level of the taichi_march logger
def init_marching(arch=None, debug=False, log_level=logging.INFO, **kwargs):
    configure_logging(log_level)
    if arch is None:
        arch = ti.cpu
    kwargs.setdefault("offline_cache", True)
    ti.init(arch=arch, debug=debug, **kwargs)
