"""Paths, names and thresholds used while provisioning Netdata."""
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Tuple


# Checkpoints at which the service is verified after a (re)start.
CHECKPOINT_INSTALL = "install"
CHECKPOINT_ALERTS = "alerts"
CHECKPOINT_CONFIGS = "configs"
ALL_CHECKPOINTS = frozenset({CHECKPOINT_INSTALL, CHECKPOINT_ALERTS, CHECKPOINT_CONFIGS})


@dataclass(frozen=True)
class Settings:
    """Everything a provisioning run needs to know about the host layout."""
    package: str = "netdata"
    service: str = "netdata"
    binary: str = "netdata"
    owner: str = "netdata:netdata"

    prerequisites: Tuple[str, ...] = (
        "curl", "wget", "apt-transport-https", "ca-certificates", "gnupg", "lsb-release",
    )
    required_commands: Tuple[str, ...] = ("curl", "wget")
    stress_tools: Tuple[str, ...] = ("stress-ng",)
    install_stress_tools: bool = True

    state_directories: Tuple[Path, ...] = (
        Path("/var/lib/netdata"),
        Path("/etc/netdata"),
        Path("/var/cache/netdata"),
        Path("/var/log/netdata"),
        Path("/usr/lib/netdata"),
        Path("/usr/share/netdata"),
    )
    # Directories handed back to the service user when activation fails.
    remediation_chown: Tuple[Path, ...] = (Path("/var/lib/netdata"), Path("/var/cache/netdata"))
    remediation_chmod: Tuple[Path, ...] = (Path("/var/cache/netdata"),)

    gpg_key_url: str = "https://packagecloud.io/netdata/netdata/gpgkey"
    repository_url: str = "https://packagecloud.io/netdata/netdata/ubuntu/"
    keyring_path: Path = Path("/usr/share/keyrings/netdata-keyring.gpg")
    sources_list_path: Path = Path("/etc/apt/sources.list.d/netdata.list")

    config_dir: Path = Path("/etc/netdata")
    # Relative to the working directory the tool is run from.
    configs_source_dir: Path = Path("configs")

    health_rule_name: str = "cpu_usage"
    warn_threshold: int = 80
    crit_threshold: int = 90
    lookup_window: str = "3s"
    evaluation_interval: str = "10s"

    port: int = 19999
    firewall_comment: str = "Netdata web interface"

    poll_interval: float = 1.0
    poll_timeout: float = 30.0
    remediate_at: FrozenSet[str] = frozenset({CHECKPOINT_INSTALL})
    journal_lines: int = 50

    dry_run: bool = False

    @property
    def health_dir(self) -> Path:
        return self.config_dir / "health.d"

    @property
    def health_rule_path(self) -> Path:
        return self.health_dir / f"{self.health_rule_name}.conf"

    @property
    def python_d_dir(self) -> Path:
        return self.config_dir / "python.d"

    @property
    def custom_charts_dir(self) -> Path:
        return self.config_dir / "custom-charts.d"

    def config_files(self) -> Tuple[Tuple[Path, Path], ...]:
        """(source, destination) pairs for the custom monitoring configs."""
        return (
            (self.configs_source_dir / "apps_groups.conf", self.config_dir / "apps_groups.conf"),
            (self.configs_source_dir / "python.d" / "apps.conf", self.python_d_dir / "apps.conf"),
        )

    def health_rule(self) -> str:
        """Render the CPU usage alarm definition."""
        return (
            f"alarm: {self.health_rule_name}\n"
            "on: system.cpu\n"
            f"lookup: average -{self.lookup_window} percentage\n"
            f"every: {self.evaluation_interval}\n"
            f"warn: $this > {self.warn_threshold}\n"
            f"crit: $this > {self.crit_threshold}\n"
            "info: CPU usage is high\n"
        )

    def sources_list_entry(self, codename: str) -> str:
        """Render the apt source line for the Netdata repository."""
        return f"deb [signed-by={self.keyring_path}] {self.repository_url} {codename} main\n"
