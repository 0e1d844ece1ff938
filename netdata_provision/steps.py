"""Provisioning workflow steps."""
import time
import shutil

import sh

from netdata_provision.settings import (
    Settings, CHECKPOINT_INSTALL, CHECKPOINT_ALERTS, CHECKPOINT_CONFIGS,
)
from netdata_provision.ubuntu import Host, Systemd, set_owner, primary_ip_address
from netdata_provision.utils import (
    ProvisioningError, command_exists, log_info, log_action, log_warning,
)


def check_config_sources(settings: Settings) -> None:
    """Fail early when the custom monitoring configs are not where we expect them."""
    missing = [str(source) for source, _ in settings.config_files() if not source.is_file()]
    if missing:
        raise ProvisioningError(f"Missing configuration files: {', '.join(missing)}")


def install_prerequisites(settings: Settings, host: Host) -> None:
    """Refresh the package index and install the command-line tools we rely on."""
    log_info("Updating package lists and installing prerequisites...")
    host.apt.update()
    host.apt.install(*settings.prerequisites)

    if settings.dry_run:
        return
    for command in settings.required_commands:
        if not command_exists(command):
            raise ProvisioningError(f"{command} is not installed. Installation attempt failed.")


def install_stress_tools(settings: Settings, host: Host) -> None:
    """Install the load generator used by the dashboard smoke test."""
    if not settings.install_stress_tools:
        log_info("Skipping stress testing tools.")
        return
    log_info("Installing stress testing tools...")
    host.apt.install(*settings.stress_tools)


def remove_existing_installation(settings: Settings, host: Host) -> None:
    """Uninstall any previous Netdata and delete everything it left behind."""
    log_info("Checking for existing Netdata installation...")
    if not host.apt.is_installed(settings.package):
        log_info("No existing Netdata installation found.")
        return

    log_action("Existing Netdata installation found. Removing...")
    host.apt.remove(settings.package)
    host.apt.purge(settings.package)
    host.apt.autoremove()

    for directory in settings.state_directories:
        if not (directory.exists() or directory.is_symlink()):
            continue
        if settings.dry_run:
            log_action(f"[DRY RUN] Would delete {directory}")
            continue
        log_action(f"Deleting {directory}")
        if directory.is_dir() and not directory.is_symlink():
            shutil.rmtree(directory)
        else:
            directory.unlink()


def register_repository(settings: Settings, host: Host) -> None:
    """Add the Netdata package repository and its signing key."""
    log_info("Adding the Netdata package repository...")
    host.apt.add_signing_key(settings.gpg_key_url, settings.keyring_path)

    entry = settings.sources_list_entry(host.apt.release_codename())
    if settings.dry_run:
        log_action(f"[DRY RUN] Would write {settings.sources_list_path}: {entry.strip()}")
    else:
        log_action(f"Writing {settings.sources_list_path}")
        settings.sources_list_path.parent.mkdir(parents=True, exist_ok=True)
        settings.sources_list_path.write_text(entry)

    host.apt.update()


def install_agent(settings: Settings, host: Host) -> None:
    """Install the Netdata package and check the binary landed on PATH."""
    log_info("Installing Netdata...")
    host.apt.install(settings.package)

    if not settings.dry_run and not command_exists(settings.binary):
        raise ProvisioningError("Netdata installation failed. Please check the installation logs.")


def wait_until_active(settings: Settings, systemd: Systemd) -> bool:
    """Poll the service until it is active or the timeout expires."""
    deadline = time.monotonic() + settings.poll_timeout
    while True:
        if systemd.is_active(settings.service):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(settings.poll_interval)


def dump_diagnostics(settings: Settings, systemd: Systemd, journal: bool = True) -> None:
    """Print the unit status and, optionally, its recent journal."""
    print(systemd.status(settings.service))
    if journal:
        print(systemd.journal(settings.service, settings.journal_lines))


def remediate_service(settings: Settings, host: Host) -> None:
    """Hand the state directories back to the service user and restart."""
    log_action("Attempting to fix common issues...")
    for path in settings.remediation_chown:
        if not settings.dry_run and not path.exists():
            log_warning(f"{path} does not exist, skipping ownership fix.")
            continue
        try:
            set_owner(path, settings.owner, dry_run=settings.dry_run)
        except sh.ErrorReturnCode as e:
            log_warning(f"Could not change ownership of {path}: {e.stderr.decode(errors='replace').strip()}")
    for path in settings.remediation_chmod:
        if settings.dry_run:
            log_action(f"[DRY RUN] Would chmod 755 {path}")
        elif path.exists():
            path.chmod(0o755)
    host.systemd.restart(settings.service)


def verify_service(settings: Settings, host: Host, checkpoint: str) -> None:
    """Require the service to be active, remediating once where allowed."""
    if settings.dry_run:
        log_action(f"[DRY RUN] Would verify {settings.service} is active ({checkpoint})")
        return

    if wait_until_active(settings, host.systemd):
        log_info(f"{settings.service} service is running.")
        return

    log_warning(f"{settings.service} service is not active after {checkpoint}. Checking status...")
    dump_diagnostics(settings, host.systemd)

    if checkpoint not in settings.remediate_at:
        raise ProvisioningError(f"{settings.service} service failed to start after {checkpoint}.")

    remediate_service(settings, host)
    if not wait_until_active(settings, host.systemd):
        dump_diagnostics(settings, host.systemd, journal=False)
        raise ProvisioningError(
            f"{settings.service} service still failed to start. Manual intervention may be required."
        )
    log_info(f"{settings.service} service recovered and is running.")


def activate_service(settings: Settings, host: Host) -> None:
    """Enable and start the service under systemd."""
    log_info("Starting Netdata service...")
    host.systemd.daemon_reload()
    host.systemd.enable(settings.service)
    host.systemd.start(settings.service)
    verify_service(settings, host, CHECKPOINT_INSTALL)


def configure_alerts(settings: Settings, host: Host) -> None:
    """Write the CPU usage health rule and restart."""
    log_info("Configuring CPU usage alert...")
    if settings.dry_run:
        log_action(f"[DRY RUN] Would write {settings.health_rule_path}")
    else:
        settings.health_dir.mkdir(parents=True, exist_ok=True)
        settings.health_rule_path.write_text(settings.health_rule())
        log_action(f"Wrote {settings.health_rule_path}")

    host.systemd.restart(settings.service)
    verify_service(settings, host, CHECKPOINT_ALERTS)


def deploy_custom_configs(settings: Settings, host: Host) -> None:
    """Copy the custom process monitoring configs into /etc/netdata."""
    log_info("Setting up custom process monitoring...")
    check_config_sources(settings)
    files = settings.config_files()

    directories = (settings.python_d_dir, settings.custom_charts_dir)
    if settings.dry_run:
        for source, destination in files:
            log_action(f"[DRY RUN] Would copy {source} to {destination}")
    else:
        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)
            directory.chmod(0o755)
        for source, destination in files:
            log_action(f"Copying {source} to {destination}")
            # copyfile does not carry over the source mode
            shutil.copyfile(source, destination)
            destination.chmod(0o644)

    for path in (*directories, *(destination for _, destination in files)):
        set_owner(path, settings.owner, dry_run=settings.dry_run)

    host.systemd.restart(settings.service)
    verify_service(settings, host, CHECKPOINT_CONFIGS)


def configure_firewall(settings: Settings, host: Host) -> None:
    """Open the dashboard port in UFW when it is installed."""
    log_info("Configuring UFW firewall to allow Netdata access...")
    if not host.ufw.available():
        log_warning(
            f"UFW not installed. Please manually configure your firewall "
            f"to allow port {settings.port}/tcp."
        )
        return
    try:
        host.ufw.allow_port(settings.port, settings.firewall_comment)
    except sh.ErrorReturnCode as e:
        log_warning(f"UFW rule could not be added: {e.stderr.decode(errors='replace').strip()}")
        return
    log_info("UFW firewall configured to allow Netdata web interface access.")


def render_summary(settings: Settings, status_line: str, address: str) -> str:
    """Build the completion banner."""
    rule = "================================="
    return "\n".join([
        rule,
        "Installation Complete!",
        rule,
        f"Netdata Status: {status_line}",
        "",
        "You can access the Netdata dashboard at:",
        f"http://localhost:{settings.port}",
        "Or from another machine:",
        f"http://{address}:{settings.port}",
        "",
        "CPU usage alerts have been configured for:",
        f"- Warning: > {settings.warn_threshold}%",
        f"- Critical: > {settings.crit_threshold}%",
        "",
        "To view Netdata logs, use:",
        f"journalctl -u {settings.service} --no-pager -n {settings.journal_lines}",
        "",
        "To test your monitoring dashboard, run:",
        "chmod +x test_dashboard.sh",
        "sudo ./test_dashboard.sh",
        rule,
    ])


def report_summary(settings: Settings, host: Host) -> None:
    """Print the final status and how to reach the dashboard."""
    if settings.dry_run:
        status_line = "(dry run)"
    else:
        status = host.systemd.status(settings.service)
        active = [line.strip() for line in status.splitlines() if line.strip().startswith("Active:")]
        status_line = active[0] if active else "unknown"
    address = primary_ip_address() or "<server-ip>"
    print(render_summary(settings, status_line, address))


def provision_netdata(settings: Settings, host: Host) -> None:
    """Main provisioning workflow. Stops at the first fatal stage."""
    # Phase 0: Inputs the later stages copy onto the host
    check_config_sources(settings)

    # Phase 1: Prerequisites
    install_prerequisites(settings, host)

    # Phase 2: Remove previous installs
    remove_existing_installation(settings, host)
    install_stress_tools(settings, host)

    # Phase 3: Repository and agent
    register_repository(settings, host)
    install_agent(settings, host)
    activate_service(settings, host)

    # Phase 4: Configuration
    configure_alerts(settings, host)
    deploy_custom_configs(settings, host)
    configure_firewall(settings, host)

    # Phase 5: Summary
    report_summary(settings, host)
