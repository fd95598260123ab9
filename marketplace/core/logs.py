import logging
import sys

FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

def setup_logging(level: str = "INFO"):
    """Configure the ``marketplace`` logger tree once; later calls only adjust the level."""
    root = logging.getLogger("marketplace")
    root.setLevel(level.upper())
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(FORMAT))
        root.addHandler(handler)
    return root
