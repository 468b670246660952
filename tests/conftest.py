"""
Pytest configuration file.

Puts python/ on sys.path so tests can import registry_pruner and prune_tags
without installing the package, and provides shared fixtures.
"""
import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

_python_dir = Path(__file__).parent.parent / "python"
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

_CONFIG_ENV_VARS = ("REGISTRY_CLEANUP_CONFIG", "REGISTRY_URL", "REGISTRY_USERNAME", "REGISTRY_PASSWORD")


@pytest.fixture(autouse=True)
def clean_environment():
    """Keep config overrides from the developer's shell out of the tests"""
    env = {k: v for k, v in os.environ.items() if k not in _CONFIG_ENV_VARS}
    with patch.dict(os.environ, env, clear=True):
        yield


@pytest.fixture
def write_config(tmp_path):
    """Return a helper that writes a cleanup config and returns its path"""

    def _write(data, name="cleanup.yml"):
        path = tmp_path / name
        if isinstance(data, str):
            path.write_text(data)
        else:
            path.write_text(yaml.safe_dump(data))
        return str(path)

    return _write
