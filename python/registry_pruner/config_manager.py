#!/usr/bin/env python3
"""
Configuration Manager for the registry tag pruner

This module loads the cleanup YAML file, applies environment variable
overrides, validates the result and freezes it into a PruneConfig that is
passed to the pruning run.

Example cleanup.yml:

    registry_url: https://registry.example.com
    repos:
      - app
      - worker
    cleanup:
      - "date:<-30"
    except:
      - "equal:latest"
    auth:
      username: ci
      password: secret
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import yaml

DEFAULT_CONFIG_FILE = "./cleanup.yml"
CONFIG_FILE_ENV = "REGISTRY_CLEANUP_CONFIG"


class ConfigValidationError(Exception):
    """Raised when configuration loading or validation fails"""


@dataclass(frozen=True)
class RegistryAuth:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"RegistryAuth(username={self.username!r}, password='****')"


@dataclass(frozen=True)
class PruneConfig:
    """Immutable settings for one pruning run."""

    registry_url: str
    repositories: Tuple[str, ...]
    select_rules: Tuple[str, ...]
    except_rules: Tuple[str, ...]
    auth: Optional[RegistryAuth] = None


def resolve_config_path(cli_value: Optional[str] = None) -> str:
    """Pick the config file path.

    Priority: REGISTRY_CLEANUP_CONFIG env var -> CLI value -> ./cleanup.yml
    """
    return os.environ.get(CONFIG_FILE_ENV) or cli_value or DEFAULT_CONFIG_FILE


class ConfigManager:
    """Loads and validates the pruner configuration"""

    def __init__(self, config_file: Optional[str] = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to ./cleanup.yml or REGISTRY_CLEANUP_CONFIG env var)
            validate: If True, validate configuration on initialization

        Raises:
            ConfigValidationError: If the file is missing, unreadable, not YAML, or invalid
        """
        self.config_file = resolve_config_path(config_file)
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from the YAML file"""
        try:
            with open(self.config_file, "r") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigValidationError(f"Config file {self.config_file} not found") from e
        except OSError as e:
            raise ConfigValidationError(f"Could not read config file {self.config_file}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Config file {self.config_file} is not valid YAML: {e}") from e

        if data is None:
            raise ConfigValidationError(f"Config file {self.config_file} is empty")
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"Config file {self.config_file} must contain a mapping, got {type(data).__name__}"
            )
        return data

    # Registry configuration
    def get_registry_url(self) -> str:
        """Get registry URL from environment or config"""
        return os.environ.get("REGISTRY_URL") or self.config.get("registry_url") or ""

    def _get_auth_section(self) -> Dict[str, Any]:
        auth = self.config.get("auth")
        return auth if isinstance(auth, dict) else {}

    def get_registry_username(self) -> Optional[str]:
        """Get registry username from environment or the auth section"""
        return os.environ.get("REGISTRY_USERNAME") or self._get_auth_section().get("username")

    def get_registry_password(self) -> Optional[str]:
        """Get registry password from environment or the auth section"""
        return os.environ.get("REGISTRY_PASSWORD") or self._get_auth_section().get("password")

    def get_auth(self) -> Optional[RegistryAuth]:
        username = self.get_registry_username()
        password = self.get_registry_password()
        if username is None and password is None:
            return None
        return RegistryAuth(username=str(username or ""), password=str(password or ""))

    # Rules and repositories
    def _get_list(self, key: str) -> List[Any]:
        value = self.config.get(key)
        if value is None:
            return []
        return value

    def get_repositories(self) -> List[str]:
        return self._get_list("repos")

    def get_select_rules(self) -> List[str]:
        return self._get_list("cleanup")

    def get_except_rules(self) -> List[str]:
        return self._get_list("except")

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        registry_url = self.get_registry_url()
        if not isinstance(registry_url, str) or not registry_url.strip():
            errors.append("registry_url is required and cannot be empty")
        elif not self._is_valid_registry_url(registry_url):
            errors.append(
                f"registry_url '{registry_url}' is invalid (expected format: [http[s]://]hostname[:port][/path])"
            )

        for key in ("repos", "cleanup", "except"):
            value = self.config.get(key)
            if value is None:
                continue
            if not isinstance(value, list):
                errors.append(f"'{key}' must be a list of strings, got: {type(value).__name__}")
                continue
            for i, item in enumerate(value):
                if not isinstance(item, str) or not item.strip():
                    errors.append(f"'{key}[{i}]' must be a non-empty string, got: {item!r}")

        repositories = self.config.get("repos")
        if isinstance(repositories, list):
            for i, repository in enumerate(repositories):
                if isinstance(repository, str) and repository.strip() and not self._is_valid_repository_name(repository):
                    warnings.append(
                        f"'repos[{i}]' repository name '{repository}' does not look like a registry repository path"
                    )

        auth = self.config.get("auth")
        if auth is not None and not isinstance(auth, dict):
            errors.append(f"'auth' must be a mapping with username and password, got: {type(auth).__name__}")
        username = self.get_registry_username()
        password = self.get_registry_password()
        if (username is None) != (password is None):
            errors.append("auth requires both username and password")

        if not self.get_repositories():
            warnings.append("No repositories configured ('repos'), nothing will be pruned")
        if not self.get_select_rules():
            warnings.append("No cleanup rules configured ('cleanup'), nothing will be selected")

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def _is_valid_registry_url(self, url: str) -> bool:
        """Validate registry URL format"""
        pattern = r"^(https?://)?[a-zA-Z0-9]([a-zA-Z0-9\-\.]*[a-zA-Z0-9])?(:[0-9]{1,5})?(/[^\s]*)?$"
        return bool(re.match(pattern, url.strip()))

    def _is_valid_repository_name(self, name: str) -> bool:
        """Validate repository name format (lowercase path components)"""
        component = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
        pattern = rf"^{component}(?:/{component})*$"
        return bool(re.match(pattern, name))

    def get_prune_config(self) -> PruneConfig:
        """Freeze the loaded configuration for a pruning run"""
        return PruneConfig(
            registry_url=self.get_registry_url(),
            repositories=tuple(self.get_repositories()),
            select_rules=tuple(self.get_select_rules()),
            except_rules=tuple(self.get_except_rules()),
            auth=self.get_auth(),
        )

    def print_config(self) -> None:
        """Log current configuration with credentials redacted"""
        logging.info("Current Configuration:")
        logging.info(f"  Config File: {self.config_file}")
        logging.info(f"  Registry URL: {self.get_registry_url()}")
        logging.info(f"  Repositories: {', '.join(self.get_repositories()) or 'None'}")
        logging.info(f"  Cleanup Rules: {', '.join(self.get_select_rules()) or 'None'}")
        logging.info(f"  Except Rules: {', '.join(self.get_except_rules()) or 'None'}")

        username = self.get_registry_username()
        password = self.get_registry_password()
        if username is not None:
            logging.info(f"  Registry Username: {username}")
            logging.info(f"  Registry Password: {'*' * len(str(password or ''))}")
        else:
            logging.info("  Registry Auth: Not set")
