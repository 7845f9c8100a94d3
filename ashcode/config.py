"""
Configuration: YAML file plus environment, with per-field validation.

Loading priority (first existing file wins):
  1. Explicit --config path
  2. Project dir .ashcode.yml
  3. Git root .ashcode.yml
  4. $XDG_CONFIG_HOME/ashcode/config.yml
  5. ~/.ashcode/config.yml

Environment variables override file values; CLI flags override both.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Callable, Any

import yaml
from dotenv import load_dotenv

from .context_window import Budget
from .errors import ConfigError
from .logger import get_logger

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".ashcode"
CONFIG_FILE = CONFIG_DIR / "config.yml"
HISTORY_FILE = CONFIG_DIR / "history.txt"
PROJECT_CONFIG_NAME = ".ashcode.yml"

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_AUTO_APPROVE = [
    "read_file",
    "list_directory",
    "list_tools",
    "git_ls_files",
    "git_grep",
]
DEFAULT_BLOCKED_COMMANDS = [
    "rm -rf /", "rm -rf /*", "mkfs", "dd if=", "> /dev/sda",
    "sudo ", "chmod 777", "curl|sh", "curl|bash", "wget|sh",
    ":(){:|:&};:",  # fork bomb
]


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    section: Optional[str]
    field_name: str
    description: str
    value_type: str  # "str", "int", "float", "bool", "list"
    default: Any
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)
    secret: bool = False


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, int, str]:
    """Validate integer within range."""
    if isinstance(value, bool):
        return False, min_val, "Must be an integer"
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, min_val, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_float_range(value: Any, min_val: float, max_val: float) -> tuple[bool, float, str]:
    """Validate float within range."""
    if isinstance(value, bool):
        return False, min_val, "Must be a number"
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return False, min_val, "Must be a number"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
    """Validate boolean value."""
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_str_list(value: Any) -> tuple[bool, List[str], str]:
    """Validate a list of names; a comma-separated string is accepted too."""
    if isinstance(value, str):
        raw_values = value.split(",")
    elif isinstance(value, (list, tuple)):
        raw_values = [str(item) for item in value]
    else:
        return False, [], "Must be a list of strings"
    cleaned = []
    for item in raw_values:
        item = str(item or "").strip()
        if item and item not in cleaned:
            cleaned.append(item)
    return True, cleaned, ""


def _validate_url(value: Any) -> tuple[bool, str, str]:
    text = str(value or "").strip().rstrip("/")
    if not text.startswith(("http://", "https://")):
        return False, DEFAULT_BASE_URL, "Must start with http:// or https://"
    return True, text, ""


# Configuration field registry with validation
CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "api.base-url": ConfigFieldSpec(
        key="base-url", section="api", field_name="base_url",
        description="Base URL of the OpenAI-compatible service",
        value_type="str", default=DEFAULT_BASE_URL,
        validator=_validate_url,
    ),
    "api.api-key": ConfigFieldSpec(
        key="api-key", section="api", field_name="api_key",
        description="Bearer token for the completion service",
        value_type="str", default="", secret=True,
    ),
    "api.model": ConfigFieldSpec(
        key="model", section="api", field_name="model",
        description="Model name sent with each request",
        value_type="str", default=DEFAULT_MODEL,
    ),
    "api.max-tokens": ConfigFieldSpec(
        key="max-tokens", section="api", field_name="max_tokens",
        description="Maximum tokens per completion",
        value_type="int", default=4096,
        validator=lambda v: _validate_int_range(v, 1, 1_000_000),
    ),
    "api.temperature": ConfigFieldSpec(
        key="temperature", section="api", field_name="temperature",
        description="Sampling temperature",
        value_type="float", default=0.7,
        validator=lambda v: _validate_float_range(v, 0.0, 2.0),
    ),
    "api.timeout": ConfigFieldSpec(
        key="timeout", section="api", field_name="timeout",
        description="Request timeout in seconds",
        value_type="int", default=60,
        validator=lambda v: _validate_int_range(v, 1, 3600),
    ),
    "tools.auto-approve-tools": ConfigFieldSpec(
        key="auto-approve-tools", section="tools", field_name="auto_approve_tools",
        description="Tools that run without asking",
        value_type="list", default=list(DEFAULT_AUTO_APPROVE),
        validator=_validate_str_list,
    ),
    "tools.max-output-size": ConfigFieldSpec(
        key="max-output-size", section="tools", field_name="max_output_size",
        description="Maximum bytes of tool output kept",
        value_type="int", default=50000,
        validator=lambda v: _validate_int_range(v, 1024, 10_000_000),
    ),
    "tools.command-timeout": ConfigFieldSpec(
        key="command-timeout", section="tools", field_name="command_timeout",
        description="Shell command timeout in seconds",
        value_type="int", default=600,
        validator=lambda v: _validate_int_range(v, 1, 86400),
    ),
    "tools.blocked-commands": ConfigFieldSpec(
        key="blocked-commands", section="tools", field_name="blocked_commands",
        description="Substrings that block a shell command",
        value_type="list", default=list(DEFAULT_BLOCKED_COMMANDS),
        validator=_validate_str_list,
    ),
    "context.max-messages": ConfigFieldSpec(
        key="max-messages", section="context", field_name="max_messages",
        description="Compact when history holds more messages than this",
        value_type="int", default=50,
        validator=lambda v: _validate_int_range(v, 4, 10000),
    ),
    "context.max-tokens": ConfigFieldSpec(
        key="max-tokens", section="context", field_name="max_tokens",
        description="Context token budget",
        value_type="int", default=100000,
        validator=lambda v: _validate_int_range(v, 1000, 10_000_000),
    ),
    "context.compaction-ratio": ConfigFieldSpec(
        key="compaction-ratio", section="context", field_name="compaction_ratio",
        description="Fraction of max-tokens that triggers compaction",
        value_type="float", default=0.5,
        validator=lambda v: _validate_float_range(v, 0.05, 1.0),
    ),
    "context.auto-compact": ConfigFieldSpec(
        key="auto-compact", section="context", field_name="auto_compact",
        description="Compact automatically before sending",
        value_type="bool", default=True,
        validator=_validate_bool,
    ),
    "max-iterations": ConfigFieldSpec(
        key="max-iterations", section=None, field_name="max_iterations",
        description="Maximum model round-trips per user message",
        value_type="int", default=30,
        validator=lambda v: _validate_int_range(v, 1, 100),
    ),
    "verbose": ConfigFieldSpec(
        key="verbose", section=None, field_name="verbose",
        description="Verbose logging",
        value_type="bool", default=False,
        validator=_validate_bool,
    ),
}


def validate_config_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """
    Validate a configuration value.

    Returns:
        (is_valid, coerced_value, error_message)
    """
    if key not in CONFIG_FIELDS:
        return False, value, f"Unknown configuration key: {key}"

    spec = CONFIG_FIELDS[key]
    if spec.validator:
        return spec.validator(value)

    if value is None:
        return False, spec.default, "Must not be empty"
    return True, str(value).strip(), ""


@dataclass
class ApiConfig:
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    temperature: float = 0.7
    timeout: int = 60


@dataclass
class ToolsConfig:
    auto_approve_tools: List[str] = field(default_factory=lambda: list(DEFAULT_AUTO_APPROVE))
    max_output_size: int = 50000
    command_timeout: int = 600
    blocked_commands: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_COMMANDS))
    working_dir: str = "."


@dataclass
class ContextConfig:
    max_messages: int = 50
    max_tokens: int = 100000
    compaction_ratio: float = 0.5
    auto_compact: bool = True

    def to_budget(self) -> Budget:
        return Budget(
            max_messages=self.max_messages,
            max_tokens=self.max_tokens,
            compaction_ratio=self.compaction_ratio,
            auto_compact=self.auto_compact,
        )


@dataclass
class Config:
    api: ApiConfig = field(default_factory=ApiConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    max_iterations: int = 30
    verbose: bool = False
    project_root: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".", config_path: Optional[str] = None) -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        if config_path:
            explicit = Path(config_path).expanduser()
            if not explicit.exists():
                raise ConfigError(f"Config file not found: {explicit}")
            config._load_yaml(explicit)
            config._config_source = str(explicit)
        else:
            for candidate in cls.candidate_paths(project_path):
                if candidate.exists():
                    config._load_yaml(candidate)
                    config._config_source = str(candidate)
                    break

        config._apply_env()
        config.project_root = str(project_path)
        config.tools.working_dir = str(project_path)
        return config

    @classmethod
    def candidate_paths(cls, project_path: Path) -> List[Path]:
        git_root = cls._find_git_root(project_path)
        xdg_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
        candidates = [project_path / PROJECT_CONFIG_NAME]
        if git_root and git_root != project_path:
            candidates.append(git_root / PROJECT_CONFIG_NAME)
        candidates.append(Path(xdg_home) / "ashcode" / "config.yml")
        candidates.append(CONFIG_FILE)
        return candidates

    def _section(self, name: Optional[str]):
        return getattr(self, name) if name else self

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config {filepath}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {filepath} must be a mapping")

        for full_key, spec in CONFIG_FIELDS.items():
            source = data.get(spec.section, {}) if spec.section else data
            if not isinstance(source, dict) or spec.key not in source:
                continue
            raw = source[spec.key]
            valid, coerced, msg = validate_config_value(full_key, raw)
            if not valid:
                _log.warning("Config %s: %s (%r); using %r", full_key, msg, raw, coerced)
            setattr(self._section(spec.section), spec.field_name, coerced)

    def _apply_env(self):
        env_map = [
            ("OPENAI_API_KEY", "api_key"),
            ("ASHCODE_API_KEY", "api_key"),
            ("ASHCODE_API_BASE_URL", "base_url"),
            ("ASHCODE_API_MODEL", "model"),
        ]
        for env_var, attr in env_map:
            val = os.environ.get(env_var)
            if val:
                setattr(self.api, attr, val.strip())

    def apply_overrides(self, api_key: Optional[str] = None, model: Optional[str] = None,
                        base_url: Optional[str] = None):
        if api_key:
            self.api.api_key = api_key
        if model:
            self.api.model = model
        if base_url:
            self.api.base_url = base_url.rstrip("/")

    def validate(self):
        if not self.api.api_key:
            raise ConfigError("API key is required")
        if not self.api.model:
            raise ConfigError("Model name is required")

    @property
    def budget(self) -> Budget:
        return self.context.to_budget()

    @property
    def config_source(self) -> str:
        return self._config_source

    def summary(self) -> dict:
        return {
            "Model": self.api.model,
            "API base": self.api.base_url,
            "API key": "set" if self.api.api_key else "not set",
            "Timeout": f"{self.api.timeout}s",
            "Auto-approve": ", ".join(self.tools.auto_approve_tools) or "(none)",
            "Command timeout": f"{self.tools.command_timeout}s",
            "Max output": f"{self.tools.max_output_size} bytes",
            "Context": (f"{self.context.max_messages} msgs / {self.context.max_tokens} tokens"
                        f" @ {self.context.compaction_ratio:g}"),
            "Auto-compact": "ON" if self.context.auto_compact else "OFF",
            "Max iterations": self.max_iterations,
            "Project": self.project_root,
            "Config": self._config_source or "(defaults)",
        }

    @staticmethod
    def _find_git_root(path: Path) -> Optional[Path]:
        current = path
        while current != current.parent:
            if (current / ".git").exists():
                return current
            current = current.parent
        return None

    def get_config_value(self, key: str) -> Any:
        """Get configuration value by key."""
        if key not in CONFIG_FIELDS:
            return None
        spec = CONFIG_FIELDS[key]
        return getattr(self._section(spec.section), spec.field_name, spec.default)

    def set_config_value(self, key: str, value: Any) -> tuple[bool, str]:
        """
        Set a configuration value for this session with validation.

        Returns:
            (success, error_message)
        """
        is_valid, coerced_value, error_msg = validate_config_value(key, value)
        if not is_valid:
            return False, error_msg
        spec = CONFIG_FIELDS[key]
        setattr(self._section(spec.section), spec.field_name, coerced_value)
        return True, ""
