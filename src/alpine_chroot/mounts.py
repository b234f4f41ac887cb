"""Bind host pseudo-filesystems into the chroot with private propagation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from alpine_chroot.host.base import HostSystem
from alpine_chroot.observability import StructuredLogger

SHM_LINK = Path("/dev/shm")
SHM_DIR = Path("/run/shm")


@dataclass(frozen=True, slots=True)
class MountBinding:
    """One mount inside the target tree.

    ``guards`` are ``(test, path)`` pairs (``-d``, ``-L``) that must hold on
    the host for the binding to apply.
    """

    source: str
    target: Path
    fstype: str | None = None
    recursive: bool = False
    private: bool = True
    guards: tuple[tuple[str, str], ...] = ()

    @property
    def is_bind(self) -> bool:
        return self.fstype is None


def chroot_path(target_dir: Path, host_path: Path) -> Path:
    """Return where *host_path* lives inside the tree rooted at *target_dir*."""
    return target_dir / host_path.relative_to(host_path.anchor)


def binding_plan(
    target_dir: Path,
    bind_dir: Path | None = None,
    *,
    shm_dir: Path | None = SHM_DIR,
) -> tuple[MountBinding, ...]:
    """Return the ordered bindings for a chroot at *target_dir*.

    Pass ``shm_dir=None`` when the host has no symlinked /dev/shm.
    """
    plan = [
        MountBinding(source="none", target=target_dir / "proc", fstype="proc", private=False),
        MountBinding(source="/sys", target=target_dir / "sys", recursive=True),
        MountBinding(source="/dev", target=target_dir / "dev", recursive=True),
    ]
    if shm_dir is not None:
        plan.append(
            MountBinding(
                source=str(shm_dir),
                target=chroot_path(target_dir, shm_dir),
                guards=(("-L", str(SHM_LINK)), ("-d", str(shm_dir))),
            )
        )
    if bind_dir is not None:
        plan.append(
            MountBinding(
                source=str(bind_dir),
                target=chroot_path(target_dir, bind_dir),
                guards=(("-d", str(bind_dir)),),
            )
        )
    return tuple(plan)


@dataclass(slots=True)
class NamespaceBinder:
    host: HostSystem
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def plan(self, target_dir: Path, bind_dir: Path | None = None) -> tuple[MountBinding, ...]:
        """Return the bindings for *target_dir* with symlinks resolved."""
        target_dir = target_dir.resolve()
        if bind_dir is not None and not bind_dir.is_dir():
            self.logger.log(
                operation="bind",
                component="mounts",
                level="warning",
                message=f"Bind directory {bind_dir} does not exist on the host, skipping",
            )
            bind_dir = None
        elif bind_dir is not None:
            bind_dir = bind_dir.resolve()
        return binding_plan(target_dir, bind_dir, shm_dir=self.host.shm_backing_dir())

    def bind(self, target_dir: Path, bind_dir: Path | None = None) -> list[MountBinding]:
        """Mount every planned binding that is not mounted yet.

        Returns the bindings that were mounted by this call. Failures leave
        earlier mounts in place for the destroy script to remove.
        """
        mounted = self.host.mounted_paths()
        applied: list[MountBinding] = []
        for binding in self.plan(target_dir, bind_dir):
            if binding.target in mounted:
                continue
            binding.target.mkdir(parents=True, exist_ok=True)
            self.host.mount(
                binding.source,
                binding.target,
                fstype=binding.fstype,
                bind=binding.is_bind,
                recursive=binding.recursive,
            )
            if binding.private:
                self.host.make_private(binding.target, recursive=binding.recursive)
            self.logger.log(
                operation="bind",
                component="mounts",
                message=f"Mounted {binding.source} at {binding.target}",
            )
            applied.append(binding)
        return applied


__all__ = ["MountBinding", "NamespaceBinder", "binding_plan", "chroot_path"]
