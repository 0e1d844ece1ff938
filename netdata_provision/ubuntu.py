"""Ubuntu system interfaces: apt/dpkg, systemd and UFW."""
import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import sh

from netdata_provision.utils import command_exists, log_action

logger = logging.getLogger(__name__)

APT_ENV = {**os.environ, "DEBIAN_FRONTEND": "noninteractive"}


class Apt:
    """Package manager operations."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def _apt_get(self, *args: str) -> None:
        if self.dry_run:
            log_action(f"[DRY RUN] Would run apt-get {' '.join(args)}")
            return
        logger.debug("apt-get %s", " ".join(args))
        sh.apt_get(*args, _env=APT_ENV)

    def is_installed(self, package: str) -> bool:
        """Check the dpkg database for any package whose name contains ``package``."""
        logger.debug("dpkg -l")
        try:
            output = str(sh.dpkg("-l"))
        except sh.ErrorReturnCode:
            return False
        for line in output.splitlines():
            fields = line.split()
            # Package rows start with a two or three letter state, e.g. "ii" or "rc".
            if len(fields) >= 2 and len(fields[0]) <= 3 and package in fields[1]:
                return True
        return False

    def update(self) -> None:
        """Refresh the package index."""
        self._apt_get("update")

    def install(self, *packages: str) -> None:
        """Install packages without prompting."""
        self._apt_get("install", "-y", *packages)

    def remove(self, package: str) -> None:
        """Uninstall a package, keeping its config files."""
        self._apt_get("remove", "-y", package)

    def purge(self, package: str) -> None:
        """Uninstall a package and its config files."""
        self._apt_get("purge", "-y", package)

    def autoremove(self) -> None:
        """Remove dependencies nothing needs anymore."""
        self._apt_get("autoremove", "-y")

    def add_signing_key(self, url: str, keyring: Union[str, Path]) -> None:
        """Download an armored key and store it as a binary keyring."""
        if self.dry_run:
            log_action(f"[DRY RUN] Would install signing key from {url} to {keyring}")
            return
        logger.debug("curl -fsSL %s | gpg --dearmor -o %s", url, keyring)
        key = sh.curl("-fsSL", url)
        sh.gpg("--batch", "--yes", "--dearmor", "-o", str(keyring), _in=str(key))

    def release_codename(self) -> str:
        """Get the distribution codename, e.g. ``noble``."""
        logger.debug("lsb_release -cs")
        return str(sh.lsb_release("-cs")).strip()


class Systemd:
    """Service supervisor operations for a single unit."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def _systemctl(self, *args: str) -> None:
        if self.dry_run:
            log_action(f"[DRY RUN] Would run systemctl {' '.join(args)}")
            return
        logger.debug("systemctl %s", " ".join(args))
        sh.systemctl(*args)

    def daemon_reload(self) -> None:
        """Reload unit files."""
        self._systemctl("daemon-reload")

    def enable(self, service: str) -> None:
        """Start the service at boot."""
        self._systemctl("enable", service)

    def start(self, service: str) -> None:
        """Start the service now."""
        self._systemctl("start", service)

    def restart(self, service: str) -> None:
        """Restart the service."""
        self._systemctl("restart", service)

    def is_active(self, service: str) -> bool:
        """Check whether systemd reports the service as active."""
        logger.debug("systemctl is-active --quiet %s", service)
        try:
            sh.systemctl("is-active", "--quiet", service)
        except sh.ErrorReturnCode:
            return False
        return True

    def status(self, service: str) -> str:
        """Get the human-readable unit status."""
        logger.debug("systemctl status %s --no-pager", service)
        # systemctl status exits non-zero for stopped or failed units
        return str(sh.systemctl("status", service, "--no-pager", _ok_code=[0, 1, 2, 3, 4]))

    def journal(self, service: str, lines: int = 50) -> str:
        """Get the most recent journal lines for the service."""
        logger.debug("journalctl -u %s --no-pager -n %d", service, lines)
        return str(sh.journalctl("-u", service, "--no-pager", "-n", str(lines)))


class Ufw:
    """Firewall operations."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def available(self) -> bool:
        """Check if the ufw command is installed."""
        return command_exists("ufw")

    def allow_port(self, port: int, comment: str, protocol: str = "tcp") -> None:
        """Allow inbound traffic on a port, tagged with a comment."""
        rule = f"{port}/{protocol}"
        if self.dry_run:
            log_action(f"[DRY RUN] Would allow {rule} in UFW")
            return
        logger.debug("ufw allow %s comment %r", rule, comment)
        sh.ufw("allow", rule, "comment", comment)


def set_owner(path: Union[str, Path], owner: str, dry_run: bool = False) -> None:
    """Recursively change ownership of ``path``."""
    if dry_run:
        log_action(f"[DRY RUN] Would chown -R {owner} {path}")
        return
    logger.debug("chown -R %s %s", owner, path)
    sh.chown("-R", owner, str(path))


def primary_ip_address() -> Optional[str]:
    """Get the first address reported by ``hostname -I``."""
    logger.debug("hostname -I")
    try:
        addresses = str(sh.hostname("-I")).split()
    except sh.ErrorReturnCode:
        return None
    return addresses[0] if addresses else None


@dataclass
class Host:
    """The external subsystems a provisioning run talks to."""
    apt: Apt = field(default_factory=Apt)
    systemd: Systemd = field(default_factory=Systemd)
    ufw: Ufw = field(default_factory=Ufw)

    @classmethod
    def local(cls, dry_run: bool = False) -> "Host":
        """Interfaces to the machine we are running on."""
        return cls(apt=Apt(dry_run), systemd=Systemd(dry_run), ufw=Ufw(dry_run))
