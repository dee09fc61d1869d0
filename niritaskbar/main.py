import asyncio
import logging
import os
import sys
import threading

from niritaskbar.core.log_setup import setup_logging
from niritaskbar.core.taskbar import SnapshotUpdate, TaskbarState, UrgencyUpdate
from niritaskbar.errors import ConfigError
from niritaskbar.shared.concurrency_helper import shutdown_shared_executor
from niritaskbar.shared.config_handler import ConfigHandler

logger = logging.getLogger("niritaskbar")


def global_exception_handler(exc_type, exc_value, exc_traceback):
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    logging.getLogger("niritaskbar").error(
        "Uncaught exception",
        exc_info=(exc_type, exc_value, exc_traceback),
        extra={"thread_name": threading.current_thread().name},
    )


def describe(update) -> str:
    if isinstance(update, SnapshotUpdate):
        snapshot = update.snapshot
        focused = snapshot.focused_window
        return (
            f"{len(snapshot.windows)} windows on {len(snapshot.workspaces)} workspaces, "
            f"focused: {focused.app_id if focused else None}"
        )
    if isinstance(update, UrgencyUpdate):
        return f"window {update.window_id} needs attention"
    return repr(update)


async def run(taskbar: TaskbarState) -> None:
    updates = taskbar.subscribe()
    await taskbar.start()
    try:
        while True:
            update = await updates.get()
            logger.info(describe(update))
    finally:
        taskbar.unsubscribe(updates)
        await taskbar.stop()


def main():
    level = logging.DEBUG if os.getenv("NIRITASKBAR_DEBUG") else logging.INFO
    setup_logging(level=level)
    sys.excepthook = global_exception_handler

    config_handler = ConfigHandler()
    try:
        config = config_handler.taskbar_config()
    except ConfigError as e:
        logger.critical(f"Invalid configuration in {config_handler.config_file}: {e}")
        sys.exit(1)

    taskbar = TaskbarState(config)
    if len(sys.argv) > 1:
        taskbar.output_filter.only = sys.argv[-1].strip() or None
    if not taskbar.output_filter.shows_all:
        logger.info(f"Only showing windows on {taskbar.output_filter.only}")

    try:
        asyncio.run(run(taskbar))
    except KeyboardInterrupt:
        logger.info("Exiting.")
    finally:
        shutdown_shared_executor()


if __name__ == "__main__":
    main()
