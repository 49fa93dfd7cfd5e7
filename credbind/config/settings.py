"""
Configuration system using Pydantic for type-safe settings management.

Example ``credbind.yaml``::

    bindings:
      - variable: AUTH
        credentials_id: deploy
        type: usernameColonPasswordBase64
      - variable: REGISTRY
        credentials_id: registry
        type: usernamePassword
        options:
          username_suffix: USER
          password_suffix: PASS
    masking:
      placeholder: "****"
    store:
      backend: environment
    usage:
      ledger_directory: ${CREDBIND_HOME:-.credbind}/fingerprints
    bind_timeout: 30
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from credbind.credentials.environment_store import EnvironmentCredentialStore
from credbind.credentials.keyring_store import KeyringCredentialStore
from credbind.credentials.store import CredentialStore
from credbind.exceptions import ConfigurationError
from credbind.masking.masker import DEFAULT_PLACEHOLDER
from credbind.models import Binding
from credbind.usage.ledger import FingerprintLedger, InMemoryFingerprintLedger, JsonFingerprintLedger


class MaskingConfig(BaseModel):
    """Output masking configuration."""

    placeholder: str = Field(default=DEFAULT_PLACEHOLDER, min_length=1, description="Replacement text")


class StoreConfig(BaseModel):
    """Credential store selection."""

    backend: Literal["environment", "keyring"] = Field(default="environment")
    env_prefix: str = Field(default="CREDBIND_", description="Prefix of environment store variables")
    keyring_namespace: str = Field(default="credbind", description="Keyring service namespace")


class UsageConfig(BaseModel):
    """Usage tracking configuration."""

    ledger_directory: str | None = Field(
        default=".credbind/fingerprints",
        description="Directory of the JSON fingerprint ledger (None keeps usage in memory)",
    )


class CredbindSettings(BaseSettings):
    """Main credbind settings."""

    model_config = SettingsConfigDict(
        env_prefix="CREDBIND_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    bindings: list[Binding] = Field(default_factory=list)
    masking: MaskingConfig = Field(default_factory=MaskingConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    bind_timeout: float | None = Field(default=30.0, gt=0, description="Seconds allowed for binding")

    @model_validator(mode="after")
    def validate_unique_variables(self) -> CredbindSettings:
        """Reject configurations binding the same variable twice."""
        seen: set[str] = set()
        for binding in self.bindings:
            if binding.variable in seen:
                raise ValueError(f"Variable bound more than once: {binding.variable}")
            seen.add(binding.variable)
        return self

    def create_ledger(self) -> FingerprintLedger:
        if self.usage.ledger_directory is None:
            return InMemoryFingerprintLedger()
        return JsonFingerprintLedger(self.usage.ledger_directory)

    def create_store(self, ledger: FingerprintLedger | None = None) -> CredentialStore:
        ledger = ledger or self.create_ledger()
        if self.store.backend == "keyring":
            return KeyringCredentialStore(namespace=self.store.keyring_namespace, ledger=ledger)
        return EnvironmentCredentialStore(prefix=self.store.env_prefix, ledger=ledger)

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> CredbindSettings:
        """Load settings from YAML file with environment variable interpolation.

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} and ${VAR_NAME:-default} placeholders.

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
