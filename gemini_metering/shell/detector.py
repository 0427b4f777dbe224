"""Shell detection and per-shell profile locations."""

import os
from collections.abc import Mapping
from enum import Enum
from pathlib import Path


class ShellType(str, Enum):
    BASH = "bash"
    ZSH = "zsh"
    FISH = "fish"
    UNKNOWN = "unknown"


def detect_shell(environ: Mapping[str, str] | None = None, home: Path | None = None) -> ShellType:
    """Guess the user's shell from $SHELL, then from which rc files exist."""
    env = os.environ if environ is None else environ
    shell = env.get("SHELL", "")

    # Order matters: zsh is checked before bash
    for candidate in (ShellType.ZSH, ShellType.FISH, ShellType.BASH):
        if candidate.value in shell:
            return candidate

    home = home or Path.home()
    if (home / ".zshrc").exists():
        return ShellType.ZSH
    if (home / ".config" / "fish" / "config.fish").exists():
        return ShellType.FISH
    if (home / ".bashrc").exists():
        return ShellType.BASH

    return ShellType.UNKNOWN


def get_profile_path(shell_type: ShellType, home: Path | None = None) -> Path | None:
    home = home or Path.home()

    if shell_type == ShellType.ZSH:
        return home / ".zshrc"
    if shell_type == ShellType.BASH:
        # Prefer .bashrc, fall back to .bash_profile
        bashrc = home / ".bashrc"
        return bashrc if bashrc.exists() else home / ".bash_profile"
    if shell_type == ShellType.FISH:
        return home / ".config" / "fish" / "config.fish"
    return None


def get_source_command(shell_type: ShellType, env_path: Path, fish_path: Path) -> str:
    """Snippet that sources the config file matching the shell's dialect."""
    if shell_type == ShellType.FISH:
        return (
            "# Source Revenium Gemini CLI metering config\n"
            f'if test -f "{fish_path}"\n'
            f'    source "{fish_path}"\n'
            "end"
        )
    return (
        "# Source Revenium Gemini CLI metering config\n"
        f'if [ -f "{env_path}" ]; then\n'
        f'    source "{env_path}"\n'
        "fi"
    )
