"""Agent argument parsing and collector descriptor models using Pydantic for validation."""
from typing import Dict, Iterator, List, Optional, Tuple
from pydantic import BaseModel, Field, ValidationError, field_validator
import logging
import os
import re

from pushagent.errors import MalformedArgument

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"

USAGE = (
    "Usage: pushagent [host:]<port>:<yaml configuration file>:<interval>[:<extra option>...]\n"
    "Usage example:   pushagent 127.0.0.1:9091:config.yml:55:jvmLabels=true:"
    "allowedJVMLabelPrefixes=python,os:extraTrueLabels=staging,openstack\n"
    "In example:\n"
    "    Push GW address and port: 127.0.0.1:9091 (only HTTP is supported now!)\n"
    "    Path to the config file: config.yml\n"
    "    Interval between sending data: 55\n"
    "    jvmLabels option set to true is adding runtime properties as labels\n"
    "    allowedJVMLabelPrefixes option filters jvmLabels, in this example only properties "
    "starting with 'python' or 'os' are allowed\n"
    "    extraTrueLabels option adds labels 'staging' and 'openstack' with value 'true'"
)

_BARE_HOST = re.compile(r"[A-Za-z0-9_.]+")
_NUMBER = re.compile(r"[0-9]{1,5}")


class AgentConfig(BaseModel):
    """Configuration parsed from the agent argument string."""
    host: Optional[str] = None
    port: int = Field(ge=1, le=65535)
    config_file: str = Field(min_length=1)
    interval: int = Field(gt=0)
    extra_options: Dict[str, str] = Field(default_factory=dict)

    class Config:
        frozen = True

    def address(self, default_host: str = DEFAULT_HOST) -> str:
        """Gateway address as host:port, falling back to default_host."""
        return f"{self.host or default_host}:{self.port}"

    def option(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.extra_options.get(name, default)


def parse_extra_options(text: str) -> Dict[str, str]:
    """
    Parse ':'-separated option tokens.

    Each token is either ``name`` or ``name=value``. A missing or empty value
    means ``"true"``. Empty tokens are ignored.
    """
    options: Dict[str, str] = {}
    for token in text.split(":"):
        name, _, value = token.partition("=")
        if not name:
            continue
        options[name] = value or "true"
    return options


def _host_candidates(argument: str) -> Iterator[Tuple[Optional[str], str]]:
    """Yield (host, remainder) readings of the argument, host-present readings first."""
    if argument.startswith("["):
        # A bracketed literal may close at any ']' directly followed by ':'; longest first
        end = len(argument)
        while True:
            close = argument.rfind("]:", 0, end)
            if close < 2:
                break
            yield argument[:close + 1], argument[close + 2:]
            end = close + 1
    else:
        head, sep, rest = argument.partition(":")
        if sep and _BARE_HOST.fullmatch(head):
            yield head, rest
    yield None, argument


def _split_endpoint(rest: str) -> Optional[Tuple[str, str, str, str]]:
    """Split '<port>:<file>:<interval>[:options]' into its parts, or None."""
    port_text, sep, tail = rest.partition(":")
    if not sep or not _NUMBER.fullmatch(port_text):
        return None

    # The file may contain ':' itself, so anchor the interval on the rightmost numeric field
    colon = tail.rfind(":")
    while colon > 0:
        interval_text, _, options = tail[colon + 1:].partition(":")
        if _NUMBER.fullmatch(interval_text):
            return port_text, tail[:colon], interval_text, options
        colon = tail.rfind(":", 0, colon)
    return None


def parse_agent_argument(argument: str) -> AgentConfig:
    """
    Parse ``[host:]<port>:<configFile>:<interval>[:option...]``.

    Readings with an explicit host are tried before the host-less reading.
    The first reading that matches the grammar is validated and returned.

    Raises:
        MalformedArgument: if no reading matches the grammar, or the matching
            reading has an out-of-range port or interval
    """
    if argument is None:
        raise MalformedArgument("", "no agent argument given")

    for host, rest in _host_candidates(argument):
        parts = _split_endpoint(rest)
        if parts is None:
            continue

        # The first reading that matches the grammar is final, even if its values are out of range
        port_text, config_file, interval_text, options = parts
        try:
            config = AgentConfig(
                host=host,
                port=int(port_text),
                config_file=config_file,
                interval=int(interval_text),
                extra_options=parse_extra_options(options),
            )
        except ValidationError as e:
            reason = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise MalformedArgument(argument, reason) from e

        logger.debug(
            f"Parsed agent argument: host={config.host} port={config.port} "
            f"file={config.config_file} interval={config.interval}s "
            f"options={config.extra_options}"
        )
        return config

    raise MalformedArgument(argument)


class DescriptorConfig(BaseModel):
    """Runtime collector descriptor loaded from the agent's YAML configuration file."""
    prefix: str = "python"
    lowercase_output_name: bool = Field(False, alias="lowercaseOutputName")
    include_beans: List[str] = Field(default_factory=list, alias="includeBeans")
    exclude_beans: List[str] = Field(default_factory=list, alias="excludeBeans")

    class Config:
        populate_by_name = True

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v):
        """Prefix must be usable as the start of a metric name."""
        if not re.fullmatch(r"[a-zA-Z_:][a-zA-Z0-9_:]*", v):
            raise ValueError(f"Invalid metric name prefix '{v}'")
        return v

    def bean_enabled(self, bean: str) -> bool:
        if self.include_beans and bean not in self.include_beans:
            return False
        return bean not in self.exclude_beans


def load_descriptor(descriptor_path: str) -> DescriptorConfig:
    """Load and validate the collector descriptor from a YAML file."""
    import yaml

    if not os.path.exists(descriptor_path):
        raise FileNotFoundError(f"Configuration file not found: {descriptor_path}")

    with open(descriptor_path, 'r') as f:
        raw_config = yaml.safe_load(f)

    # An empty descriptor means defaults for everything
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError(f"Configuration file {descriptor_path} must contain a mapping")

    try:
        return DescriptorConfig(**raw_config)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
