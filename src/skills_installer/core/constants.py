"""Core constants for the skills installer.

This module defines constants used throughout the application:
- Package name rules and the blocked file-type denylist
- Supported agents and scopes
- Manifest file names and schema version
- Lock timing defaults
"""

# ============================================================================
# Package Validation
# ============================================================================

#: Maximum length of a package name
MAX_NAME_LENGTH = 128

#: Characters permitted in a package name
NAME_ALLOWED_CHARS: frozenset[str] = frozenset("abcdefghijklmnopqrstuvwxyz0123456789-_")

#: File suffixes that are never installed (matched case-insensitively).
#: Native binaries, shared libraries and shell/OS script launchers. This is a
#: denylist against careless payloads, not a sandbox: an unlisted extension
#: passes.
BLOCKED_EXTENSIONS: tuple[str, ...] = (
    ".exe",
    ".dll",
    ".dylib",
    ".so",
    ".bin",
    ".bat",
    ".cmd",
    ".com",
    ".msi",
    ".scr",
    ".pif",
    ".cpl",
    ".vbs",
    ".wsf",
    ".hta",
    ".ps1",
    ".psm1",
    ".sh",
    ".bash",
    ".zsh",
    ".jar",
    ".js.map",
)

#: Marker file that identifies a package directory
SKILL_FILENAME = "SKILL.md"

#: Directories never descended into during discovery
DISCOVERY_SKIP_DIRS: frozenset[str] = frozenset({".git", "node_modules"})

# ============================================================================
# Agents and Scopes
# ============================================================================

#: Agents a package can be installed for
SUPPORTED_AGENTS: tuple[str, ...] = ("roo", "copilot", "claude-code")

#: Install scopes
SCOPES: tuple[str, ...] = ("project", "user")

# ============================================================================
# Manifest
# ============================================================================

#: Current manifest schema version. Bump only together with a migration.
MANIFEST_SCHEMA_VERSION = 1

#: Manifest file name (project root, or ~/.config/skills for user scope)
MANIFEST_FILENAME = ".skills-manifest.json"

#: Suffix appended to the manifest path to form the lock file path
LOCK_SUFFIX = ".lock"

# ============================================================================
# Lock Timing (seconds)
# ============================================================================

#: Give up acquiring the manifest lock after this long
DEFAULT_LOCK_TIMEOUT = 10.0

#: A lock file older than this is presumed abandoned by a crashed process
DEFAULT_LOCK_STALE_AFTER = 30.0

#: First backoff delay between acquisition attempts
DEFAULT_LOCK_INITIAL_DELAY = 0.05

#: Upper bound for a single backoff delay
DEFAULT_LOCK_MAX_DELAY = 1.0
