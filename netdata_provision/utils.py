"""Utility functions for the provisioning tool."""
import os
import sys
import shutil
import logging


class ProvisioningError(RuntimeError):
    """A fatal condition that stops the provisioning run."""


def command_exists(command: str) -> bool:
    """Check if a command exists in the system PATH."""
    return shutil.which(command) is not None


def is_root() -> bool:
    """Check if the script is running as root."""
    return os.geteuid() == 0


def log_info(message: str) -> None:
    """Log an informational message."""
    print(f"[INFO] {message}")


def log_action(message: str) -> None:
    """Log an action being performed."""
    print(f"  -> {message}")


def log_warning(message: str) -> None:
    """Log a non-fatal problem."""
    print(f"[WARN] {message}")


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration.

    External commands are logged at DEBUG, so ``verbose`` turns on a
    command trace on stderr.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="+ %(message)s" if verbose else "%(levelname)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )
