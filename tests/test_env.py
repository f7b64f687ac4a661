from __future__ import annotations

import os
from pathlib import Path

import pytest

from ghcontrib.env import load_dotenv

KEYS = ("GHC_TEST_TOKEN", "GHC_TEST_QUOTED")


@pytest.fixture(autouse=True)
def _clean_env():
    saved = {k: os.environ.pop(k) for k in KEYS if k in os.environ}
    yield
    for k in KEYS:
        os.environ.pop(k, None)
    os.environ.update(saved)


def test_load_dotenv_reads_key_values(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\n"
        "export GHC_TEST_TOKEN=abc123\n"
        'GHC_TEST_QUOTED="with spaces"\n'
        "not a pair\n",
        encoding="utf-8",
    )

    loaded = load_dotenv(env_file)

    assert loaded == ["GHC_TEST_TOKEN", "GHC_TEST_QUOTED"]
    assert os.environ["GHC_TEST_TOKEN"] == "abc123"
    assert os.environ["GHC_TEST_QUOTED"] == "with spaces"


def test_existing_variables_are_kept(tmp_path: Path) -> None:
    os.environ["GHC_TEST_TOKEN"] = "from-shell"
    env_file = tmp_path / "a.env"
    env_file.write_text("GHC_TEST_TOKEN=from-file\n", encoding="utf-8")

    assert load_dotenv(env_file) == []
    assert os.environ["GHC_TEST_TOKEN"] == "from-shell"

    assert load_dotenv(env_file, override=True) == ["GHC_TEST_TOKEN"]
    assert os.environ["GHC_TEST_TOKEN"] == "from-file"


def test_first_file_wins_and_missing_files_are_skipped(tmp_path: Path) -> None:
    first = tmp_path / "first.env"
    second = tmp_path / "second.env"
    first.write_text("GHC_TEST_TOKEN=first\n", encoding="utf-8")
    second.write_text("GHC_TEST_TOKEN=second\n", encoding="utf-8")

    load_dotenv(tmp_path / "missing.env", first, second, override=True)

    assert os.environ["GHC_TEST_TOKEN"] == "first"
