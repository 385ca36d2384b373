"""Configuration parsing and normalization helpers for splitdns.

Brief:
  This module contains the configuration-parsing utilities used by the CLI
  entrypoint. It centralizes:
    - reading YAML config files
    - merging variables from config/env/CLI and expanding ``${KEY}`` references
    - validating the result with pydantic models

Inputs:
  - YAML config files and mappings

Outputs:
  - SplitDNSConfig instances
"""

from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

_VAR_KEY = re.compile(r"[A-Z_][A-Z0-9_]*")
_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


class ListenConfig(BaseModel):
    """Brief: UDP listener address."""

    host: str = "127.0.0.1"
    port: int = Field(default=5353, ge=1, le=65535)


class ForwardRule(BaseModel):
    """Brief: One forwarding rule.

    Inputs:
      - dns: Upstream target (udp://, doh://, ipv4://, ipv6://, tcp://, dot://).
      - domain: Domain or list of domains the rule applies to (subdomains
        included).
      - https_proxy: Optional proxy URL used by doh:// upstreams.

    Outputs:
      - ForwardRule instance with domain normalized to a list.
    """

    dns: str
    domain: List[str] = Field(default_factory=list)
    https_proxy: Optional[str] = None

    @field_validator("domain", mode="before")
    @classmethod
    def _domain_as_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class SplitDNSConfig(BaseModel):
    """Brief: Typed top-level configuration.

    Inputs:
      - listen: ListenConfig.
      - timeout_ms: Per-request upstream timeout in milliseconds.
      - logging: Mapping consumed by init_logging().
      - forward: Ordered list of ForwardRule.

    Outputs:
      - SplitDNSConfig instance.
    """

    listen: ListenConfig = Field(default_factory=ListenConfig)
    timeout_ms: int = Field(default=2000, ge=1)
    logging: Dict[str, Any] = Field(default_factory=dict)
    forward: List[ForwardRule] = Field(default_factory=list)


def _is_var_key(key: str) -> bool:
    """Brief: Validate whether a string is a supported variable key name.

    Inputs:
      - key: Candidate variable name.

    Outputs:
      - bool: True when the name matches [A-Z_][A-Z0-9_]*.
    """

    return bool(key) and bool(_VAR_KEY.fullmatch(key))


def _parse_yaml_value(text: str) -> Any:
    """Brief: Parse a CLI/environment variable value as YAML.

    Inputs:
      - text: String containing a YAML scalar/list/dict.

    Outputs:
      - Any: Parsed value (falls back to the original string on parse errors).
    """

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['vars'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['vars'].

    Precedence:
      - CLI (-v/--var) overrides environment overrides config-file variables.
      - Environment variables only override names already declared in the
        config file, so unrelated process variables never leak in.

    Example:
      >>> cfg = {'vars': {'UPSTREAM': 'udp://1.1.1.1'}}
      >>> parse_config_variables(cfg, cli_vars=['UPSTREAM=udp://9.9.9.9'], environ={})
      {'UPSTREAM': 'udp://9.9.9.9'}
    """

    base = cfg.get("vars")
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ValueError("config.vars must be a mapping when present")

    for k in merged:
        if not isinstance(k, str) or not _is_var_key(k):
            raise ValueError(f"config.vars key {k!r} must match [A-Z_][A-Z0-9_]*")

    env = os.environ if environ is None else environ
    for k in list(merged):
        if k in env:
            merged[k] = _parse_yaml_value(str(env[k]))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ValueError(
                "Invalid -v/--var value (expected KEY=YAML), got: %r" % assignment
            )
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not _is_var_key(k):
            raise ValueError(
                "Invalid variable name %r (must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*)"
                % k
            )
        merged[k] = _parse_yaml_value(raw)

    cfg["vars"] = merged
    return merged


def expand_variables(obj: Any, variables: Dict[str, Any]) -> Any:
    """Brief: Replace ``${KEY}`` references inside string values.

    Inputs:
      - obj: Config node (dict/list/scalar).
      - variables: Mapping of variable name to value.

    Outputs:
      - A new node with references substituted. A string that is exactly
        ``${KEY}`` is replaced by the variable's value itself (which may be a
        list or mapping); unknown names are left untouched.

    Example:
      >>> expand_variables({'dns': 'udp://${HOST}:53'}, {'HOST': '10.0.0.1'})
      {'dns': 'udp://10.0.0.1:53'}
      >>> expand_variables(['${DOMAINS}'], {'DOMAINS': ['a.', 'b.']})
      [['a.', 'b.']]
    """

    if isinstance(obj, str):
        whole = _VAR_PATTERN.fullmatch(obj)
        if whole and whole.group(1) in variables:
            return variables[whole.group(1)]

        def _repl(match: re.Match[str]) -> str:
            name = match.group(1)
            return str(variables[name]) if name in variables else match.group(0)

        return _VAR_PATTERN.sub(_repl, obj)
    if isinstance(obj, list):
        return [expand_variables(item, variables) for item in obj]
    if isinstance(obj, dict):
        return {k: expand_variables(v, variables) for k, v in obj.items()}
    return obj


def build_config(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> SplitDNSConfig:
    """Brief: Expand variables in a parsed mapping and validate it.

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI `KEY=YAML` assignments.
      - environ: Optional environment mapping.

    Outputs:
      - SplitDNSConfig.

    Raises:
      - ValueError: When variables are invalid or validation fails.
    """

    variables = parse_config_variables(cfg, cli_vars=cli_vars, environ=environ)
    body = {k: v for k, v in cfg.items() if k != "vars"}
    expanded = expand_variables(body, variables)
    try:
        return SplitDNSConfig.model_validate(expanded)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def parse_config_file(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
) -> SplitDNSConfig:
    """Brief: Read, variable-merge, and validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - cli_vars: Optional list of CLI `KEY=YAML` assignments (from -v/--var).

    Outputs:
      - SplitDNSConfig.

    Raises:
      - ValueError: When the YAML is malformed, the root is not a mapping, or
        validation fails.
      - OSError: When the file cannot be read.
    """

    with open(config_path, "r") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    return build_config(cfg, cli_vars=list(cli_vars or []))
