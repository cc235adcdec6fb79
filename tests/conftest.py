from __future__ import annotations

import json
import pathlib
import sys
from typing import Any

import pytest

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
FIXTURES_DIR = REPO_ROOT / "tests" / "fixtures"

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from apps.mcp_gateway.config import DEFAULT_TOOLPACKS_DIR, GatewaySettings  # noqa: E402
from apps.mcp_gateway.service.gateway import McpGateway  # noqa: E402


@pytest.fixture(scope="session")
def repo_root() -> pathlib.Path:
    return REPO_ROOT


@pytest.fixture(scope="session")
def toolpacks_dir() -> pathlib.Path:
    return DEFAULT_TOOLPACKS_DIR


@pytest.fixture(scope="session")
def fixture_toolpacks_dir() -> pathlib.Path:
    return FIXTURES_DIR / "toolpacks"


@pytest.fixture(scope="session")
def response_schema() -> dict[str, Any]:
    with (FIXTURES_DIR / "jsonrpc_response.schema.json").open("r", encoding="utf-8") as handle:
        return json.load(handle)


@pytest.fixture
def settings(toolpacks_dir: pathlib.Path) -> GatewaySettings:
    return GatewaySettings(toolpacks_dir=toolpacks_dir, keepalive_seconds=0.05)


@pytest.fixture
def gateway(settings: GatewaySettings) -> McpGateway:
    return McpGateway.create(settings)
