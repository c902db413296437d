"""
Unit tests for the declared package metadata.
"""

import re
import tomllib
from pathlib import Path

import pytest

PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


@pytest.fixture
def project():
    with PYPROJECT.open("rb") as f:
        return tomllib.load(f)["project"]


def requirement_names(requirements):
    return {re.split(r"[<>=!~\[; ]", requirement, maxsplit=1)[0].lower() for requirement in requirements}


class TestDependencies:
    """Every imported third-party distribution is declared."""

    def test_direct_imports_declared(self, project):
        """boto3 is imported for its type (de)serializers and must be declared directly."""
        assert {"aiobotocore", "boto3", "botocore", "json-log-formatter"} <= requirement_names(
            project["dependencies"]
        )

    def test_test_extra(self, project):
        """Test tools live in the test extra."""
        assert {"pytest", "pytest-asyncio"} <= requirement_names(project["optional-dependencies"]["test"])

    def test_python_version(self, project):
        """ISO 8601 TTL parsing needs the 3.11 fromisoformat."""
        assert project["requires-python"] == ">=3.11"
