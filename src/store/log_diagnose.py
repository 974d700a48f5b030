"""
Log Diagnose - Classify a failed install log.

A failed log is run through an ordered bank of regex rules. Every rule that
matches contributes a caption for the user, and the error type of the last
matching rule wins. The error type decides whether the failure is the user's
system, a broken package, the network, or something the app maintainers
should hear about.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple, Pattern, TextIO

from .system import system_bits

logger = logging.getLogger(__name__)


class ErrorType(Enum):
    """Who is to blame for a failure."""
    SYSTEM = "system"      # user's OS or configuration
    PACKAGE = "package"    # broken package on the system
    INTERNET = "internet"  # network trouble
    UNKNOWN = "unknown"    # probably the app; reportable


@dataclass
class ErrorDiagnosis:
    """Result of diagnosing a log."""
    error_type: ErrorType = ErrorType.UNKNOWN
    captions: List[str] = field(default_factory=list)

    @property
    def blocks_error_report(self) -> bool:
        """Errors the app maintainers cannot fix are not worth reporting."""
        return self.error_type != ErrorType.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.error_type.value,
            "captions": list(self.captions),
        }


@dataclass
class DiagnosisRule:
    """One regex in the diagnosis bank."""
    pattern: str
    caption: str
    error_type: ErrorType
    backends: Tuple[str, ...] = ()  # empty applies to every backend
    regex: Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self.regex = re.compile(self.pattern)

    def applies_to(self, backend: Optional[str]) -> bool:
        return not self.backends or backend is None or backend in self.backends

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None


_S = ErrorType.SYSTEM
_P = ErrorType.PACKAGE
_I = ErrorType.INTERNET

_APT = ("apt",)
_PACMAN = ("pacman",)
_APK = ("apk",)

_SOURCES_HELP = (
    "To delete the repository:\n"
    "Remove the relevant line from /etc/apt/sources.list file or delete one file in\n"
    "the /etc/apt/sources.list.d folder.\n\n"
    "sources.list requires root permissions to edit: sudo mousepad /path/to/file"
)

APT_RULES = [
    DiagnosisRule(
        r"E: The repository|sources\.list entry misspelt|component misspelt in",
        "APT reported a faulty repository, and you must fix it before Pi-Apps will work.\n\n"
        + _SOURCES_HELP,
        _S, _APT,
    ),
    DiagnosisRule(
        r"NO_PUBKEY| is no longer signed\.",
        "APT reported an unsigned repository. This has to be solved before APT or Pi-Apps will work.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"Could not resolve|Failed to fetch|Temporary failure resolving|Internal Server Error|404 .*Not Found",
        "APT reported an unresolvable repository.\n\nCheck your Internet connection and try again.",
        _I, _APT,
    ),
    DiagnosisRule(
        r"is configured multiple times in",
        "APT reported a double-configured repository, and you must fix it to fix Pi-Apps.\n\n"
        + _SOURCES_HELP,
        _S, _APT,
    ),
    DiagnosisRule(
        r"W: Conflicting distribution: ",
        "APT reported a conflicting repository.\n\n"
        "Read the installation errors, then look through /etc/apt/sources.list and "
        "/etc/apt/sources.list.d, making changes as necessary.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"Release file for .* is not valid yet",
        "APT reported a repository whose release file becomes valid in the future.\n\n"
        "This is probably because your system time is set incorrectly.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"Release file for .* is expired",
        "APT reported a repository whose release file was invalidated in the past.\n"
        "Please check that your system clock is set correctly, and if it is, check if the "
        "repository is kept updated or if its developers abandoned it.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"E: The package cache file is corrupted",
        "APT reported that its package cache is corrupted.\n\n"
        "Try running: sudo rm -rf /var/lib/apt/lists/* && sudo apt update",
        _S, _APT,
    ),
    DiagnosisRule(
        r"E: Repository .* changed its 'Suite' value",
        "APT reported a repository that changed its Suite value.\n\n"
        "Run sudo apt update and accept the change, then try again.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"--fix-broken|needs to be reinstalled",
        "APT reported a broken package.\n\nPlease run this command: sudo apt --fix-broken install",
        _P, _APT,
    ),
    DiagnosisRule(
        r"dpkg --configure -a",
        "Before dpkg, apt, or Pi-Apps will work, dpkg needs to repair your system.\n\n"
        "Please run this command: sudo dpkg --configure -a",
        _S, _APT,
    ),
    DiagnosisRule(
        r"package is in a very bad inconsistent state;",
        "Something is wrong with another package on your system.\n\n"
        "Refer to this information while troubleshooting: https://askubuntu.com/questions/148715",
        _S, _APT,
    ),
    DiagnosisRule(
        r"dpkg: error: fgets gave an empty string from",
        "Something strange is going on with your system and dpkg won't work.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"lzma error: compressed data is corrupt",
        "A package failed to install because it appears corrupted. (buggy download?)",
        _I, _APT,
    ),
    DiagnosisRule(
        r"E: Could not get lock",
        "Some other apt-get/dpkg process is running. Wait for that one to finish, then try again.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"dpkg: error: cannot scan updates directory",
        "dpkg cannot scan its updates directory. Your package database may be damaged.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"E: Failed to fetch .* File has unexpected size .* Mirror sync in progress\?",
        "APT reported a repository mirror that is in the middle of syncing. Wait a while and try again.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"dpkg: error processing package .*-dkms",
        "A dkms kernel module failed to build. This is a problem with your kernel headers, not with this app.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"trying to overwrite shared .*, which is different from other instances of package",
        "Two architectures of the same package disagree about a shared file. "
        "Reinstall the packages named above, or remove the foreign-architecture copy.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"unable to securely remove '.*': Bad message",
        "Your filesystem is corrupted. Run fsck on it, or reflash your SD card.",
        _S, _APT,
    ),
    DiagnosisRule(
        r"installed .* post-installation script subprocess returned error exit status",
        "A package failed to configure itself. Look above this message for the package name.",
        _P, _APT,
    ),
    DiagnosisRule(
        r"files list file for package .* is missing final newline",
        "A dpkg files list is damaged. Reinstall the package named above to repair it.",
        _P, _APT,
    ),
    DiagnosisRule(
        r"E: Unable to correct problems, you have held broken packages\.",
        "APT refused to continue because of held broken packages. Check 'apt-mark showhold'.",
        _P, _APT,
    ),
]

# Downgrades are only a system problem when nothing was listed to be downgraded
_DOWNGRADE = re.compile(r"E: Packages were downgraded and -y was used without --allow-downgrades\.")
_DOWNGRADE_LIST = re.compile(r"The following packages will be DOWNGRADED:")

PACMAN_RULES = [
    DiagnosisRule(
        r"error: failed to synchronize all databases|error: failed retrieving file.*from"
        r"|error: failed to update|error: failed to download",
        "Pacman failed to synchronize its databases.\n\nCheck your Internet connection and try again.",
        _I, _PACMAN,
    ),
    DiagnosisRule(
        r"error:.*repository.*not found|error:.*404.*Not Found|error:.*failed to retrieve.*404",
        "Pacman reported a repository that does not exist. Check /etc/pacman.conf and your mirrorlist.",
        _S, _PACMAN,
    ),
    DiagnosisRule(
        r"error:.*signature from.*is unknown trust|error:.*signature.*is invalid"
        r"|error:.*key.*is unknown|error:.*required signature missing",
        "Pacman reported a signature problem.\n\nTry: sudo pacman -Sy archlinux-keyring && sudo pacman-key --populate",
        _S, _PACMAN,
    ),
    DiagnosisRule(
        r"error:.*failed to lock database|error:.*could not lock database|error:.*database.*locked",
        "Another pacman process is running. If none is, remove /var/lib/pacman/db.lck.",
        _S, _PACMAN,
    ),
    DiagnosisRule(
        r"error: failed to commit transaction.*conflicting files|error:.*conflicts with|error:.*file conflicts",
        "Pacman found conflicting files from another package.",
        _P, _PACMAN,
    ),
    DiagnosisRule(
        r"error: failed to prepare transaction.*could not satisfy dependencies"
        r"|error:.*unresolvable package conflicts",
        "Pacman could not satisfy the dependencies of this app.",
        _P, _PACMAN,
    ),
    DiagnosisRule(
        r"error:.*target not found|error:.*no package found",
        "Pacman could not find a package this app needs. Your repositories may be out of date.",
        _P, _PACMAN,
    ),
    DiagnosisRule(
        r"warning:.*partial upgrade|error:.*partial upgrade",
        "Your system is partially upgraded. Run sudo pacman -Syu before installing apps.",
        _P, _PACMAN,
    ),
    DiagnosisRule(
        r"error:.*database.*corrupt|error:.*invalid.*database|error:.*failed to read.*database",
        "A pacman database is corrupted. Try: sudo pacman -Syy",
        _S, _PACMAN,
    ),
    DiagnosisRule(
        r"error:.*not enough.*space|error:.*insufficient.*space",
        "Pacman ran out of disk space.",
        _S, _PACMAN,
    ),
]

APK_RULES = [
    DiagnosisRule(
        r"ERROR:.*fetch.*failed|ERROR:.*: temporary error|ERROR:.*: Network unreachable"
        r"|ERROR:.*: Connection timed out",
        "APK failed to fetch from a repository.\n\nCheck your Internet connection and try again.",
        _I, _APK,
    ),
    DiagnosisRule(
        r"ERROR:.*cache|ERROR:.*APKINDEX",
        "The APK package index is damaged. Try: sudo apk update",
        _S, _APK,
    ),
    DiagnosisRule(
        r"ERROR:.*[Pp]ermission denied|ERROR:.*Operation not permitted",
        "APK was denied permission. Make sure you can use sudo.",
        _S, _APK,
    ),
    DiagnosisRule(
        r"ERROR:.*broken|Use --force-broken-world",
        "APK reported broken packages in your world file. Try: sudo apk fix",
        _P, _APK,
    ),
    DiagnosisRule(
        r"ERROR:.*architecture.*not supported|ERROR:.*wrong architecture",
        "A package is not available for your CPU architecture.",
        _S, _APK,
    ),
    DiagnosisRule(
        r"ERROR:.*corrupted|ERROR:.*checksum.*failed|ERROR:.*integrity.*failed",
        "A downloaded package appears corrupted. (buggy download?)",
        _I, _APK,
    ),
    DiagnosisRule(
        r"ERROR:.*\.(post|pre)-(install|upgrade|deinstall)",
        "A package install script failed. Look above this message for the package name.",
        _P, _APK,
    ),
]

COMMON_RULES = [
    DiagnosisRule(
        r"error: failed to select a version for the requirement.*version conflict",
        "Cargo could not pick compatible crate versions.",
        _P,
    ),
    DiagnosisRule(
        r"Could not resolve host: github\.com|Failed to connect to github\.com port 443: Connection timed out",
        "Failed to reach GitHub. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"fetch-pack: unexpected disconnect while reading sideband packet",
        "Git was disconnected while downloading. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"fatal: did not receive expected object",
        "Git failed to download a repository. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"fatal: the remote end hung up unexpectedly",
        "The remote server hung up. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"SSL/TLS handshake failure|total length mismatch|connection reset by peer"
        r"|name resolution failed|[Tt]emporary failure in name resolution",
        "A download failed partway through. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"curl: \(.*\) HTTP/2 stream .* was not closed cleanly: INTERNAL_ERROR",
        "curl failed to download a file. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"errorCode=24 Authorization failed\.",
        "A download was refused by the server. Try again later.",
        _I,
    ),
    DiagnosisRule(
        r"flathub: Error resolving .dl\.flathub\.org.",
        "Failed to reach Flathub. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"The TLS connection was non-properly terminated\.|Can't load uri .* Unacceptable TLS certificate",
        "A secure connection failed. Check your system clock and Internet connection.",
        _I,
    ),
    DiagnosisRule(
        r"GnuTLS recv error \(-54\): Error in the pull function\.",
        "Git failed to download a repository. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"java\.net\.ConnectException: Connection refused",
        "A Java program could not connect to its server. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"error: failed to fetch from.*could not connect to server|error: failed to fetch.*Network is unreachable",
        "Cargo could not download crates. Check your Internet connection and try again.",
        _I,
    ),
    DiagnosisRule(
        r"modprobe: FATAL: Module .* not found in directory",
        "A kernel module could not be loaded. Did you recently update your kernel? Reboot and try again.",
        _S,
    ),
    DiagnosisRule(
        r'Failed to load module "appmenu-gtk-module"',
        "The appmenu-gtk-module is missing. Install appmenu-gtk2-module and appmenu-gtk3-module.",
        _S,
    ),
    DiagnosisRule(
        r"error: Unable to connect to system bus|Failed to connect to bus: Host is down",
        "Your system bus is not running. Are you in a chroot or container?",
        _S,
    ),
    DiagnosisRule(
        r"cat: /usr/share/i18n/SUPPORTED: No such file or directory",
        "Your system is missing locale data. Install the 'locales' package.",
        _S,
    ),
    DiagnosisRule(
        r"is not in the sudoers file\.  This incident will be reported\.",
        "Your user account is not allowed to use sudo. Pi-Apps needs sudo to install apps.",
        _S,
    ),
    DiagnosisRule(
        r"sudo: .* incorrect password attempts",
        "You entered the wrong password too many times.",
        _S,
    ),
    DiagnosisRule(
        r"sudo: unable to resolve host|sudo: no valid sudoers sources found, quitting",
        "sudo is misconfigured on your system. Check /etc/hosts and /etc/sudoers.",
        _S,
    ),
    DiagnosisRule(
        r"cpp\.o: file not recognized: file truncated",
        "A compiled file was truncated. Your storage may be failing or full.",
        _S,
    ),
    DiagnosisRule(
        r"tar: Unexpected EOF in archive|xz: \(stdin\): Unexpected end of input"
        r"|xz: \(stdin\): Compressed data is corrupt|xz: \(stdin\): File format not recognized",
        "A downloaded archive was incomplete. Your storage may be full, or the download was interrupted.",
        _S,
    ),
    DiagnosisRule(
        r"xz: Cannot exec: No such file or directory",
        "The xz program is missing. Install the 'xz-utils' package.",
        _S,
    ),
    DiagnosisRule(
        r"Reinstallation of .* is not possible, it cannot be downloaded\.",
        "A package that needs reinstalling is no longer available from your repositories.",
        _S,
    ),
    DiagnosisRule(
        r"Structure needs cleaning",
        "Your filesystem is corrupted. Run fsck on it, or reflash your SD card.",
        _S,
    ),
    DiagnosisRule(
        r"VCHI initialization failed",
        "The Raspberry Pi video driver is not available to this user. Add yourself to the 'video' group.",
        _S,
    ),
    DiagnosisRule(
        r"No space left on device|Not enough disk space to complete this operation"
        r"|You don't have enough free space in",
        "Your system has insufficient disk space. Free some space and try again.",
        _S,
    ),
    DiagnosisRule(
        r": line .*: \$HOME/\.config/autostart/.*\.desktop: Permission denied",
        "Your ~/.config/autostart folder is owned by another user. Fix it with: sudo chown -R $USER:$USER ~/.config",
        _S,
    ),
    DiagnosisRule(
        r"The directory '(\$HOME|\$\{HOME\}|/home/[^/]+)/\.cache/pip' or its parent directory is not owned by the current user",
        "Your pip cache is owned by another user. Fix it with: sudo chown -R $USER:$USER ~/.cache/pip",
        _S,
    ),
    DiagnosisRule(
        r"mkdir: cannot create directory .*/home/[^/]+/pi-apps-.*: Permission denied"
        r"|rm: cannot remove .*/home/[^/]+/.*: Permission denied",
        "Files in your home folder are owned by another user. Fix it with: sudo chown -R $USER:$USER ~",
        _S,
    ),
    DiagnosisRule(
        r"collect2: fatal error: ld terminated with signal 11 \[Segmentation fault\]",
        "The linker crashed. This usually means your system ran out of memory. Add more swap and try again.",
        _S,
    ),
    DiagnosisRule(
        r"ModuleNotFoundError: No module named 'lsb_release'|lsb_release: command not found",
        "The lsb_release tool is broken. Reinstall the 'lsb-release' package.",
        _S,
    ),
    DiagnosisRule(
        r"c\+\+: fatal error: Killed signal terminated program cc1plus",
        "The compiler was killed because your system ran out of memory. Add more swap and try again.",
        _S,
    ),
    DiagnosisRule(
        r"error: system does not fully support snapd: cannot mount squashfs image|Failed to mount squashfs image",
        "Your kernel cannot mount squashfs images, so snaps will not work.",
        _S,
    ),
    DiagnosisRule(
        r"error: the current.*rustc .* is older than the minimum version required",
        "Your Rust compiler is too old. Update it with: rustup update",
        _S,
    ),
    DiagnosisRule(
        r"LLVM ERROR: out of memory|rustc.*internal compiler error.*out of memory|killed by the OOM killer",
        "Your system ran out of memory. Add more swap and try again.",
        _S,
    ),
]

DIAGNOSIS_RULES: List[DiagnosisRule] = APT_RULES + PACMAN_RULES + APK_RULES + COMMON_RULES

USER_ERROR_PREFIX = "User error: "
USER_ERROR_REPORTABLE_PREFIX = "User error (reporting allowed): "

# Footer lines written by the installer after a script fails
_FOOTER_MARKERS = (
    "Failed to install",
    "Failed to uninstall",
    "Failed to update",
    "Need help?",
    "Please ask on Github:",
    "Or on Discord:",
)

_UNMET_DEPS_HEADER = "The following packages have unmet dependencies:"


def _user_error_message(text: str, prefix: str) -> Optional[str]:
    """Collect the message after a 'User error' line, up to the failure footer."""
    lines = text.splitlines()
    for i, line in enumerate(lines):
        if not line.startswith(prefix):
            continue
        message = [line[len(prefix):]]
        for follow in lines[i + 1:]:
            if follow.startswith(_FOOTER_MARKERS):
                break
            message.append(follow)
        return "\n".join(message).strip()
    return None


def _unmet_section(text: str) -> Optional[str]:
    """The unmet-dependencies block of an APT error, header included."""
    if _UNMET_DEPS_HEADER not in text:
        return None
    section = []
    capturing = False
    for line in text.splitlines():
        if _UNMET_DEPS_HEADER in line:
            capturing = True
            section = [line]
            continue
        if capturing:
            if not line or "E:" in line:
                capturing = False
            else:
                section.append(line)
    return "\n".join(section)


def _unmet_dependency_caption(text: str) -> Optional[str]:
    section = _unmet_section(text)
    if section is None:
        return None
    if "not going to be installed" in text:
        return (
            "Packages failed to install because the package manager requires you "
            f"to install some dependencies manually.\n\n{section}\n\n"
            "Either your APT repositories are broken, or you need to run:\n"
            "sudo apt update && sudo apt full-upgrade"
        )
    if "but it is not installable" in text:
        return (
            "Packages failed to install because at least one dependency is not "
            f"available in your repositories:\n\n{section}\n\n"
            "This might be fixed by enabling additional repositories or by running:\n"
            "sudo apt update && sudo apt full-upgrade"
        )
    if "has no installation candidate" in text:
        return (
            "Packages failed to install because one or more packages are not "
            f"available in your repositories:\n\n{section}\n\n"
            "This might be fixed by enabling additional repositories."
        )
    if "is to be installed" in text or "Depends:" in text:
        return (
            f"Packages failed to install due to unmet dependencies:\n\n{section}\n\n"
            "This might be fixed by running:\nsudo apt --fix-broken install"
        )
    return (
        f"Packages failed to install due to unresolved dependency issues:\n\n{section}\n\n"
        "Try running these commands to resolve the issue:\n"
        "sudo apt update\nsudo apt --fix-broken install\nsudo apt full-upgrade"
    )


def diagnose_text(text: str, backend: Optional[str] = None) -> ErrorDiagnosis:
    """
    Diagnose the content of a log.

    Args:
        text: Log content
        backend: Package manager in use (apt, pacman, apk). None runs every rule.

    Returns:
        ErrorDiagnosis with captions in rule order.
    """
    diagnosis = ErrorDiagnosis()
    error_type: Optional[ErrorType] = None

    for rule in DIAGNOSIS_RULES:
        if rule.applies_to(backend) and rule.matches(text):
            diagnosis.captions.append(rule.caption)
            error_type = rule.error_type

    if backend in (None, "apt"):
        if _DOWNGRADE.search(text) and not _DOWNGRADE_LIST.search(text):
            diagnosis.captions.append(
                "APT wanted to downgrade packages but did not say which. "
                "Your distro is probably using repositories Pi-Apps does not support."
            )
            error_type = ErrorType.SYSTEM

        unmet = _unmet_dependency_caption(text)
        if unmet is not None:
            diagnosis.captions.append(unmet)
            error_type = ErrorType.SYSTEM

    user_error = _user_error_message(text, USER_ERROR_PREFIX)
    if user_error is not None:
        diagnosis.captions.append(user_error)
        error_type = ErrorType.SYSTEM

    reportable = _user_error_message(text, USER_ERROR_REPORTABLE_PREFIX)
    if reportable is not None:
        diagnosis.captions.append(reportable)
        error_type = ErrorType.UNKNOWN

    diagnosis.error_type = error_type or ErrorType.UNKNOWN
    return diagnosis


def diagnose_log(path: Path, backend: Optional[str] = None) -> ErrorDiagnosis:
    """Diagnose a log file. Raises OSError if it cannot be read."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    diagnosis = diagnose_text(text, backend)
    logger.info(f"Diagnosed {Path(path).name} as {diagnosis.error_type.value}")
    return diagnosis


# =============================================================================
# Log cleanup
# =============================================================================

_ANSI_PATTERNS = [
    re.compile(r"\x1b\[?[0-9;]*[a-zA-Z]"),
    re.compile(r"\x1b\[[0-9;]*"),
]
# wget's dot progress bar
_PROGRESS_BAR = re.compile(r"\.{10} \.{10} \.{10} \.{10} \.{9}")


def strip_ansi(text: str) -> str:
    """Remove terminal escape codes and carriage returns from script output."""
    text = text.replace("\r", "\n")
    for pattern in _ANSI_PATTERNS:
        text = pattern.sub("", text)
    return "\n".join(
        line for line in text.split("\n") if not _PROGRESS_BAR.search(line)
    )


class AnsiStrippingWriter:
    """File-like wrapper that writes text with escape codes removed."""

    def __init__(self, stream: TextIO):
        self.stream = stream

    def write(self, text: str) -> int:
        cleaned = text
        for pattern in _ANSI_PATTERNS:
            cleaned = pattern.sub("", cleaned)
        self.stream.write(cleaned)
        return len(text)

    def flush(self) -> None:
        self.stream.flush()


def _run(cmd: List[str]) -> Optional[str]:
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def _os_pretty_name(os_release: Path) -> str:
    try:
        for line in os_release.read_text(encoding="utf-8").splitlines():
            if line.startswith("PRETTY_NAME="):
                return line.split("=", 1)[1].strip().strip('"')
    except OSError:
        pass
    return "Unknown"


MODEL_PATHS = [
    Path("/sys/firmware/devicetree/base/model"),
    Path("/sys/firmware/devicetree/base/banner-name"),
    Path("/sys/devices/virtual/dmi/id/product_name"),
]


def get_device_model() -> str:
    for path in MODEL_PATHS:
        try:
            model = path.read_text(encoding="utf-8", errors="replace").replace("\x00", "").strip()
        except OSError:
            continue
        if model:
            return model
    return "Unknown"


def _cpu_name() -> Optional[str]:
    try:
        for line in Path("/proc/cpuinfo").read_text(encoding="utf-8").splitlines():
            if line.lower().startswith(("model name", "hardware")):
                return line.split(":", 1)[1].strip()
    except OSError:
        pass
    return None


def _ram_gb() -> Optional[float]:
    try:
        for line in Path("/proc/meminfo").read_text(encoding="utf-8").splitlines():
            if line.startswith("MemTotal:"):
                return int(line.split()[1]) / 1024 / 1024
    except (OSError, ValueError, IndexError):
        pass
    return None


def get_device_info(
    directory: Optional[Path] = None,
    os_release: Path = Path("/etc/os-release"),
    bits: Optional[int] = None,
) -> str:
    """
    Describe the device for the top of a log file.

    The first line always starts with 'OS: ', which is how an
    already-formatted log is recognised.
    """
    lines = [f"OS: {_os_pretty_name(os_release)}"]
    lines.append(f"OS architecture: {bits or system_bits()}-bit")

    if directory is not None and Path(directory).is_dir():
        date = _run(["git", "-C", str(directory), "show", "-s", "--format=%ad", "--date=short"])
        if date:
            lines.append(f"Last updated Pi-Apps on: {date}")

    lines.append(f"Kernel: {platform.machine()} {platform.release()}")
    lines.append(f"Device model: {get_device_model()}")

    cpu = _cpu_name()
    if cpu:
        lines.append(f"CPU name: {cpu}")
    ram = _ram_gb()
    if ram:
        lines.append(f"RAM size: {ram:.2f} GB")

    lang = os.environ.get("LANG") or os.environ.get("LC_ALL")
    if lang:
        lines.append(f"Language: {lang}")

    return "\n".join(lines)


def format_logfile(path: Path, device_info: Optional[str] = None) -> None:
    """
    Clean up a finished log and prepend device information.

    Logs that already start with 'OS: ' only have their escape codes removed.
    """
    path = Path(path)
    content = strip_ansi(path.read_text(encoding="utf-8", errors="replace"))

    if content.startswith("OS: "):
        path.write_text(content, encoding="utf-8")
        return

    if device_info is None:
        try:
            device_info = get_device_info()
        except Exception as e:
            logger.warning(f"Failed to get device info: {e}")
            device_info = "Failed to get device info"

    header = f"{device_info}\n\nBEGINNING OF LOG FILE:\n-----------------------\n\n"
    path.write_text(header + content, encoding="utf-8")
