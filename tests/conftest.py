from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

from ghcontrib.env import load_dotenv


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests against the real GitHub GraphQL API (needs GITHUB_TOKEN).",
    )


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parent.parent
    load_dotenv(repo_root / ".env")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--live") and os.environ.get("GITHUB_TOKEN"):
        return
    skip = pytest.mark.skip(reason="Live API disabled (use --live with GITHUB_TOKEN set).")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def _reset_ghcontrib_logger():
    yield
    logger = logging.getLogger("ghcontrib")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
