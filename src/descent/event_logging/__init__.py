import datetime
import logging.config
import os
import uuid
from typing import Optional

import structlog
import yaml

_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")

_PRE_CHAIN = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),  # lift ``extra={...}`` fields into the event dict
    structlog.processors.TimeStamper(fmt="iso"),
]


def init_logging(log_dir: Optional[str] = None, level: Optional[str] = None) -> str:
    """
    Configure stdlib logging from ``config.yaml`` and route structlog
    through it. Records end up as JSON lines in ``<log_dir>/<run_id>/``.

    Returns the per-run folder.
    """
    # --- Pick a per-run folder ---
    run_id = f"{datetime.datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"
    if log_dir is None:
        log_dir = os.path.join(os.getcwd(), "logs")
    run_dir = os.path.join(log_dir, run_id)
    os.makedirs(run_dir, exist_ok=True)

    # --- Load standard logging config from YAML ---
    with open(_CONFIG_PATH) as f:
        cfg = yaml.safe_load(f)

    # Replace placeholder path with the real run folder
    for handler in cfg["handlers"].values():
        if "filename" in handler:
            handler["filename"] = handler["filename"].replace("logs/current_run", run_dir)

    # Processor objects cannot be expressed in YAML
    for formatter in cfg["formatters"].values():
        if formatter.get("()") == "structlog.stdlib.ProcessorFormatter":
            formatter["foreign_pre_chain"] = _PRE_CHAIN
            formatter["processors"] = [
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ]

    if level is not None:
        cfg["loggers"]["descent"]["level"] = level

    logging.config.dictConfig(cfg)

    # --- Configure structlog to hand its event dicts to stdlib logging ---
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_PRE_CHAIN[:2],
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    return run_dir
