from __future__ import annotations

"""Central logging configuration for the DLMS toolkit.

Import and call :func:`setup_logging` at application start-up.
"""

import logging
import logging.config
import os

import yaml

from dlms_toolkit.config import ConfigManager

__all__ = ["setup_logging"]

_MOVEMENT_LOGGERS = (
    'dlms_toolkit.core.services.structure_editing_service',
    'dlms_toolkit.core.tree',
)


def setup_logging() -> None:
    """Configure logging for the application using configuration from YAML files."""
    log_dir = os.environ.get("DLMS_LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "app.log")

    try:
        logging_config = ConfigManager().get_logging_config()

        if logging_config and isinstance(logging_config, dict) and logging_config.get("version"):
            if "handlers" in logging_config and "file" in logging_config["handlers"]:
                logging_config["handlers"]["file"]["filename"] = log_file

            logging.config.dictConfig(logging_config)
            logging.info("===== Logging initialised from config files =====")
        else:
            _setup_minimal_logging()
    except (OSError, ValueError, TypeError, yaml.YAMLError) as exc:
        _setup_minimal_logging()
        logging.error("Error loading logging config: %s", exc)

    _apply_debug_overrides()


def _setup_minimal_logging() -> None:
    """Set up minimal console-only logging when config is unavailable."""
    minimal_config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'simple': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'simple',
                'level': 'INFO',
            },
        },
        'root': {
            'level': 'INFO',
            'handlers': ['console'],
        },
        'loggers': {
            _MOVEMENT_LOGGERS[0]: {
                'handlers': ['console'],
                'level': 'INFO',
                'propagate': False,
            }
        }
    }

    logging.config.dictConfig(minimal_config)
    logging.warning("===== Logging initialised with minimal fallback =====")


def _apply_debug_overrides() -> None:
    """Apply environment-driven module-specific debug overrides.

    Supports:
    - DLMS_DEBUG_MOVEMENT=true  -> DEBUG for the move engine and tree reindexing
    - DLMS_DEBUG_MODULES=comma,separated,logger,names -> DEBUG for listed loggers
    """
    debug_movement = os.environ.get('DLMS_DEBUG_MOVEMENT', '').strip().lower() in {'1', 'true', 'yes', 'on'}
    extra_modules = os.environ.get('DLMS_DEBUG_MODULES', '').strip()
    targets = []
    if debug_movement:
        targets.extend(_MOVEMENT_LOGGERS)
    if extra_modules:
        targets.extend([m.strip() for m in extra_modules.split(',') if m.strip()])

    for name in targets:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        has_debug_handler = any(
            h.level == logging.NOTSET or h.level <= logging.DEBUG for h in logger.handlers
        )
        if not has_debug_handler:
            h = logging.StreamHandler()
            h.setLevel(logging.DEBUG)
            h.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            logger.addHandler(h)
        logger.info("Debug override active for logger '%s'", name)
