"""Sequence the provisioning steps for one chroot."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from alpine_chroot.bootstrap import HOST_RESOLV_CONF, PackageBootstrapper
from alpine_chroot.config import Configuration
from alpine_chroot.emulation import EmulationProvisioner
from alpine_chroot.errors import PrivilegeError
from alpine_chroot.fetch import Fetcher, Transport, artifact_name, detect_transport, file_sha256
from alpine_chroot.host.base import HostSystem
from alpine_chroot.keys import ALPINE_KEYS, TrustAnchor
from alpine_chroot.mounts import NamespaceBinder
from alpine_chroot.observability import StructuredLogger
from alpine_chroot.report import ProvisionReport
from alpine_chroot.scripts import DESTROY_SCRIPT_NAME, ENTER_SCRIPT_NAME, write_scripts


@dataclass(slots=True)
class Orchestrator:
    """Provision an Alpine chroot from a resolved :class:`Configuration`.

    The run stops at the first error. Nothing is rolled back: mounts made so
    far stay in place and are removed by the generated ``destroy`` script.
    Only the downloaded apk.static (or the whole scratch directory, when the
    configuration created it) is removed once the base system is installed.
    """

    host: HostSystem
    transport: Transport | None = None
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    emulation: EmulationProvisioner | None = None
    resolv_conf: Path = HOST_RESOLV_CONF
    anchors: tuple[TrustAnchor, ...] = ALPINE_KEYS

    def run(self, config: Configuration) -> ProvisionReport:
        if not self.host.is_superuser():
            raise PrivilegeError(
                "Provisioning must run as root.",
                hint="Re-run with sudo.",
                context={"operation": "run", "target_dir": str(config.target_dir)},
            )
        target = config.target_dir
        arch = config.arch or self.host.machine()
        bootstrapper = PackageBootstrapper(
            self.host,
            config.temp_dir / artifact_name(config.apk_tools_uri),
            logger=self.logger,
            anchors=self.anchors,
            resolv_conf=self.resolv_conf,
        )
        bootstrapper.require_signing_keys(arch)
        target.mkdir(parents=True, exist_ok=True)

        emulation = self.emulation or EmulationProvisioner(self.host, logger=self.logger)
        emulator = emulation.provision(config)

        try:
            self._log("Downloading static apk-tools")
            fetcher = Fetcher(self.transport or detect_transport(self.host))
            apk = fetcher.download(
                config.apk_tools_uri,
                sha256=config.apk_tools_sha256,
                dest_dir=config.temp_dir,
            )
            apk.path.chmod(0o755)

            self._log(f"Installing Alpine Linux {config.branch} ({arch}) into chroot")
            bootstrapper.bootstrap(target, config)
        finally:
            self._remove_scratch(config, bootstrapper.apk)
        anchors = {
            path.name: file_sha256(path)
            for path in sorted((target / "etc" / "apk" / "keys").glob("*.rsa.pub"))
        }

        scripts = write_scripts(target, config, emulator)

        self._log("Binding filesystems into chroot")
        binder = NamespaceBinder(self.host, logger=self.logger)
        mounts = tuple(str(binding.target) for binding in binder.bind(target, config.bind_dir))

        bootstrapper.install_packages(target, config)

        self._log(
            f"Alpine installation is complete. Run {target / ENTER_SCRIPT_NAME} [-u <user>] "
            f"[command] to enter the chroot and {target / DESTROY_SCRIPT_NAME} [--remove] "
            "to destroy it."
        )
        return ProvisionReport(
            target_dir=str(target),
            branch=config.branch,
            arch=config.arch,
            apk_tools_uri=apk.uri,
            apk_tools_sha256=apk.sha256,
            emulator=str(emulator) if emulator is not None else None,
            trust_anchors=anchors,
            scripts={name: file_sha256(path) for name, path in scripts.items()},
            mounts=mounts,
        )

    def _remove_scratch(self, config: Configuration, apk: Path) -> None:
        if config.owns_temp_dir:
            if config.temp_dir.exists():
                shutil.rmtree(config.temp_dir)
        else:
            apk.unlink(missing_ok=True)

    def _log(self, message: str) -> None:
        self.logger.log(operation="run", component="orchestrator", message=message)
