# main.py
import sys
import signal
import logging
import threading


def setup_logging(config=None):
    """Configures console and rotating file logging before anything else runs"""
    from core.config_manager import get_app_data_dir
    from logging.handlers import RotatingFileHandler

    logging_config = config.get('logging', {}) if config else {}

    logs_dir = get_app_data_dir() / "logs"
    logs_dir.mkdir(exist_ok=True)

    log_file = logs_dir / "dms_dashboard.log"

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=logging_config.get('max_bytes', 5 * 1024 * 1024),
        backupCount=logging_config.get('backup_count', 5),
        encoding='utf-8'
    )
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    # force: a second call replaces the defaults installed before config was read
    logging.basicConfig(
        level=getattr(logging, str(logging_config.get('level', 'INFO')).upper(), logging.INFO),
        handlers=[console_handler, file_handler],
        force=True
    )


logger = logging.getLogger(__name__)


def setup_exception_handler():
    """Logs uncaught exceptions as critical"""

    def exception_handler(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.critical("Uncaught exception:",
                        exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = exception_handler


def main():
    from core.config_manager import get_config
    from core.dashboard_server import DashboardServer

    # Defaults first, so config load errors reach the log
    setup_logging()
    setup_exception_handler()

    config = get_config()
    setup_logging(config)

    logger.info("🚀 Starting DMS dashboard")

    server = DashboardServer(config)
    if not server.start():
        logger.error(f"❌ Startup failed: {server.last_error_details or 'unknown error'}")
        return 1

    stop_event = threading.Event()

    def request_stop(signum, frame):
        logger.info(f"🛑 Signal {signum} received, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    while not stop_event.wait(1):
        pass
    server.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
