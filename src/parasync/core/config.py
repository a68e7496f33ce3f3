"""
Configuration management for parasync.
Handles run options, size parsing, validation and saved profiles.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
import json
import logging
import os
import re
import shlex
from typing import Optional, List, Dict

logger = logging.getLogger(__name__)

DEFAULT_JOBS = 8
DEFAULT_MIN_SIZE = "10M"
DEFAULT_MAX_DEPTH = 10
DEFAULT_BATCH_SIZE = 100
DEFAULT_RSYNC_OPTIONS = "-avz --progress --partial"

SIZE_UNITS = {
    "": 1,
    "B": 1,
    "K": 1024,
    "KB": 1024,
    "M": 1024 ** 2,
    "MB": 1024 ** 2,
    "G": 1024 ** 3,
    "GB": 1024 ** 3,
}

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*([A-Za-z]*)\s*$")


class ConfigError(Exception):
    """Raised when run options are invalid"""

    pass


def parse_size(size: str) -> int:
    """
    Convert a human readable size to bytes

    Args:
        size: Size string such as "500K", "10M", "1.5G" or "2GB"

    Returns:
        int: Size in bytes, fractions truncated

    Raises:
        ConfigError: If the string is not a valid size
    """
    match = _SIZE_RE.match(str(size))
    if not match:
        raise ConfigError(f"Invalid size: {size!r}")

    number, unit = match.groups()
    unit = unit.upper()
    if unit not in SIZE_UNITS:
        raise ConfigError(
            f"Invalid size unit in {size!r}. Use K/KB, M/MB or G/GB."
        )
    return int(float(number) * SIZE_UNITS[unit])


def format_size(size: float) -> str:
    """Format size in bytes to human readable string"""
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} PB"


def get_config_dir() -> Path:
    """Directory holding profiles and run history"""
    override = os.environ.get("PARASYNC_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "parasync"


@dataclass
class SyncConfig:
    """Options for a single sync run"""

    source: Optional[Path] = None
    destination: Optional[Path] = None
    jobs: int = DEFAULT_JOBS
    min_size: int = parse_size(DEFAULT_MIN_SIZE)  # LARGE threshold in bytes
    max_depth: int = DEFAULT_MAX_DEPTH
    batch_size: int = DEFAULT_BATCH_SIZE  # small files per batch
    sort_by_size: bool = False
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    rsync_options: str = DEFAULT_RSYNC_OPTIONS
    resume: bool = False
    log_dir: Optional[Path] = None
    dry_run: bool = False
    verbose: bool = False

    @property
    def rsync_args(self) -> List[str]:
        """Rsync options split into an argument list"""
        try:
            args = shlex.split(self.rsync_options)
        except ValueError as e:
            raise ConfigError(f"Invalid rsync options {self.rsync_options!r}: {e}")
        if self.resume and "--partial" not in args:
            args.append("--partial")
        return args

    def validate(self):
        """
        Check every option before any work starts

        Raises:
            ConfigError: On the first invalid option found
        """
        if self.source is None or self.destination is None:
            raise ConfigError("Both source and destination are required")

        source = Path(self.source)
        if not source.exists():
            raise ConfigError(f"Source directory does not exist: {source}")
        if not source.is_dir():
            raise ConfigError(f"Source is not a directory: {source}")
        if not os.access(source, os.R_OK | os.X_OK):
            raise ConfigError(f"Source directory is not readable: {source}")

        destination = Path(self.destination)
        parent = destination.absolute().parent
        if not parent.is_dir():
            raise ConfigError(f"Destination parent directory does not exist: {parent}")
        if not destination.exists() and not os.access(parent, os.W_OK):
            raise ConfigError(f"Destination parent directory is not writable: {parent}")
        if destination.exists() and not destination.is_dir():
            raise ConfigError(f"Destination is not a directory: {destination}")

        if not isinstance(self.jobs, int) or self.jobs < 1:
            raise ConfigError("Jobs parameter must be a positive integer")
        if not isinstance(self.batch_size, int) or self.batch_size < 1:
            raise ConfigError("Batch size must be a positive integer")
        if not isinstance(self.max_depth, int) or self.max_depth < 0:
            raise ConfigError("Max depth must be a non-negative integer")
        if self.min_size < 0:
            raise ConfigError("Minimum size must not be negative")

        try:
            shlex.split(self.rsync_options)
        except ValueError as e:
            raise ConfigError(f"Invalid rsync options {self.rsync_options!r}: {e}")


# Options a profile may carry; paths and one-off flags stay on the command line
PROFILE_FIELDS = (
    "jobs",
    "min_size",
    "max_depth",
    "batch_size",
    "sort_by_size",
    "include",
    "exclude",
    "rsync_options",
    "resume",
    "log_dir",
)


@dataclass
class Profile:
    """A named set of saved option values"""

    name: str
    options: Dict[str, object] = field(default_factory=dict)

    def apply(self, config: SyncConfig, explicit: Optional[set] = None) -> SyncConfig:
        """
        Copy profile values onto a config

        Args:
            config: Config to update in place
            explicit: Option names given on the command line, left untouched

        Returns:
            SyncConfig: The updated config
        """
        explicit = explicit or set()
        for key, value in self.options.items():
            if key not in PROFILE_FIELDS or key in explicit:
                continue
            if key == "min_size" and isinstance(value, str):
                value = parse_size(value)
            if key == "log_dir" and value is not None:
                value = Path(value).expanduser()
            setattr(config, key, value)
        return config


class ConfigManager:
    """Manages saved parasync profiles"""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration manager"""
        self.config_dir = Path(config_dir) if config_dir else get_config_dir()
        self.config_file = self.config_dir / "config.json"
        self.profiles: Dict[str, Profile] = {}
        self._load_config()

    def _load_config(self):
        """Load configuration from file"""
        if not self.config_file.exists():
            return
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load config %s: %s", self.config_file, e)
            return

        for name, options in data.get("profiles", {}).items():
            self.profiles[name] = Profile(name=name, options=dict(options))

    def _save_config(self):
        """Save configuration to file"""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        data = {
            "profiles": {
                name: profile.options
                for name, profile in sorted(self.profiles.items())
            }
        }
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=4)

    def get_profile(self, name: str) -> Profile:
        """Get a profile by name"""
        if name not in self.profiles:
            raise ConfigError(f"Unknown profile: {name}")
        return self.profiles[name]

    def save_profile(self, name: str, config: SyncConfig, keys=None) -> Profile:
        """
        Store option values from a config under a profile name

        Args:
            name: Profile name
            config: Config to read values from
            keys: Option names to store (default: all profile options)

        Returns:
            Profile: The saved profile
        """
        values = asdict(config)
        options = {}
        for key in keys or PROFILE_FIELDS:
            value = values[key]
            if isinstance(value, Path):
                value = str(value)
            options[key] = value
        profile = Profile(name=name, options=options)
        self.profiles[name] = profile
        self._save_config()
        return profile

    def remove_profile(self, name: str):
        """Remove a saved profile"""
        if name not in self.profiles:
            raise ConfigError(f"Unknown profile: {name}")
        del self.profiles[name]
        self._save_config()

    def list_profiles(self) -> List[Profile]:
        """Get saved profiles sorted by name"""
        return [self.profiles[name] for name in sorted(self.profiles)]
