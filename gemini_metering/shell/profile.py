"""Shell profile wiring.

Keeps one marked block in the user's shell profile that sources the
generated config file:

    # >>> revenium-gemini-cli-metering >>>
    ...source snippet...
    # <<< revenium-gemini-cli-metering <<<

An update always removes the old block and appends a fresh one; the block
is never edited in place. The profile is backed up before every write and
only the newest backups are kept.
"""

import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from gemini_metering.config.constants import (
    PROFILE_BACKUP_SUFFIX,
    PROFILE_MARKER_END,
    PROFILE_MARKER_START,
)
from gemini_metering.config.settings import get_settings
from gemini_metering.config.store import ConfigStore
from gemini_metering.logging.audit import get_audit_logger
from gemini_metering.shell.detector import (
    ShellType,
    detect_shell,
    get_profile_path,
    get_source_command,
)


@dataclass
class ShellUpdateResult:
    success: bool
    shell_type: ShellType
    message: str
    profile_path: Path | None = None
    backup_path: Path | None = None


def remove_config_block(content: str) -> str:
    """Strip every marked block, joining the remainder without blank-line drift."""
    while True:
        start = content.find(PROFILE_MARKER_START)
        if start == -1:
            return content
        end = content.find(PROFILE_MARKER_END, start)
        if end == -1:
            # Unterminated block: drop only the start marker line
            line_end = content.find("\n", start)
            tail = "" if line_end == -1 else content[line_end + 1:]
            content = content[:start] + tail
            continue

        before = content[:start].rstrip()
        after = content[end + len(PROFILE_MARKER_END):].lstrip()
        content = before + ("\n" + after if after else "")


class ShellProfileManager:
    """Inserts or refreshes the sourcing block in the active shell's profile."""

    def __init__(self, store: ConfigStore, shell_type: ShellType | None = None,
                 home: Path | None = None, backup_retention: int | None = None):
        self._store = store
        self._home = home
        self._shell_type = shell_type
        self._retention = backup_retention if backup_retention is not None else get_settings().backup_retention

    @property
    def shell_type(self) -> ShellType:
        if self._shell_type is None:
            self._shell_type = detect_shell(home=self._home)
        return self._shell_type

    def profile_path(self, shell_type: ShellType | None = None) -> Path | None:
        return get_profile_path(shell_type or self.shell_type, home=self._home)

    def build_block(self, shell_type: ShellType) -> str:
        source_cmd = get_source_command(shell_type, self._store.env_path, self._store.fish_path)
        return f"{PROFILE_MARKER_START}\n{source_cmd}\n{PROFILE_MARKER_END}\n"

    def manual_instructions(self, shell_type: ShellType | None = None) -> str:
        """Text telling the user what to paste when the automatic update is skipped."""
        shell_type = shell_type or self.shell_type
        target = self.profile_path(shell_type) if shell_type != ShellType.UNKNOWN else None
        block = self.build_block(shell_type)
        return f"Add the following to {target or 'your shell profile'}:\n\n{block}"

    async def update(self) -> ShellUpdateResult:
        """Add or refresh the sourcing block. Never raises for an unknown shell."""
        return self._update_sync()

    def _update_sync(self) -> ShellUpdateResult:
        shell_type = self.shell_type
        logger = get_audit_logger()

        if shell_type == ShellType.UNKNOWN:
            return ShellUpdateResult(
                success=False,
                shell_type=shell_type,
                message=(
                    "Could not detect shell type. Please manually add the source "
                    "command to your shell profile.\n\n" + self.manual_instructions(shell_type)
                ),
            )

        profile_path = self.profile_path(shell_type)
        if profile_path is None:
            return ShellUpdateResult(
                success=False,
                shell_type=shell_type,
                message=f"Could not determine profile path for {shell_type.value}.",
            )

        content = ""
        backup_path = None
        if profile_path.exists():
            # Profiles are user-owned; undecodable bytes are carried through as-is
            content = profile_path.read_text(encoding="utf-8", errors="surrogateescape")
            backup_path = self._backup(profile_path)

        had_block = PROFILE_MARKER_START in content
        body = remove_config_block(content).rstrip()
        new_content = (body + "\n\n" if body else "") + self.build_block(shell_type)

        profile_path.parent.mkdir(parents=True, exist_ok=True)
        profile_path.write_text(new_content, encoding="utf-8", errors="surrogateescape")

        self._prune_backups(profile_path)

        action = "Updated existing configuration in" if had_block else "Added configuration to"
        logger.info(
            "Shell profile updated",
            extra={"audit_data": {
                "shell": shell_type.value,
                "profile_path": str(profile_path),
                "replaced_block": had_block,
                "backup_path": str(backup_path) if backup_path else None,
            }},
        )
        return ShellUpdateResult(
            success=True,
            shell_type=shell_type,
            profile_path=profile_path,
            backup_path=backup_path,
            message=f"{action} {profile_path}",
        )

    def _backup(self, profile_path: Path) -> Path:
        stamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        backup = profile_path.with_name(f"{profile_path.name}{PROFILE_BACKUP_SUFFIX}{stamp}")
        # copyfile, not copy2: backups are ranked by their own mtime
        shutil.copyfile(profile_path, backup)
        return backup

    def list_backups(self, profile_path: Path) -> list[Path]:
        """Backups of profile_path, newest first."""
        pattern = f"{profile_path.name}{PROFILE_BACKUP_SUFFIX}*"
        backups = [p for p in profile_path.parent.glob(pattern) if p.is_file()]
        return sorted(backups, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)

    def _prune_backups(self, profile_path: Path) -> None:
        # The profile is already written; cleanup problems are only logged
        try:
            stale = self.list_backups(profile_path)[self._retention:]
        except OSError as exc:
            get_audit_logger().debug("Backup listing failed", extra={"audit_data": {"error": str(exc)}})
            return

        for backup in stale:
            try:
                backup.unlink()
            except OSError as exc:
                get_audit_logger().debug(
                    "Backup cleanup failed",
                    extra={"audit_data": {"path": str(backup), "error": str(exc)}},
                )
