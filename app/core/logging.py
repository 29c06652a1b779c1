import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure le logging racine une seule fois (console).
    Un second appel ne fait que changer le niveau.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))

    if any(getattr(h, "_flashcards_handler", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler._flashcards_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # SQLAlchemy est bavard en DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
