import logging
import os

# Child loggers whose level can be tuned apart from the package default.
_CHILD_LEVEL_ENV = {
    "companion.relay": "COMPANION_RELAY_LOG_LEVEL",
    "companion.llm": "COMPANION_LLM_LOG_LEVEL",
}


def _level(name, default):
    value = getattr(logging, name.upper(), None) if name else None
    return value if isinstance(value, int) else default


def _configure_logging() -> None:
    root = logging.getLogger("companion")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[COMPANION][%(levelname)s] %(name)s: %(message)s"))
        root.addHandler(handler)
    base = _level(os.getenv("COMPANION_LOG_LEVEL"), logging.INFO)
    root.setLevel(base)
    for name, env in _CHILD_LEVEL_ENV.items():
        logging.getLogger(name).setLevel(_level(os.getenv(env), base))


_configure_logging()
