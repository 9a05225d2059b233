from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterator

import pytest

from nativevault.config import default_vault_config
from nativevault.env import reset_dotenv_state
from nativevault.runtime.executor_boot import build_executor


@pytest.fixture
def restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    configured = getattr(root, "_nativevault_configured", False)
    yield
    root.handlers = handlers
    root.setLevel(level)
    setattr(root, "_nativevault_configured", configured)


def test_build_executor_from_config_path(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, restore_root_logging: None
) -> None:
    cfg_path = tmp_path / "vault.json"
    cfg_path.write_text(
        json.dumps({"mode": "test", "genesis_unix_timestamp": 500, "log_level": "WARNING"}),
        encoding="utf-8",
    )
    monkeypatch.setenv("NATIVEVAULT_CONFIG_PATH", str(cfg_path))
    monkeypatch.setenv("NATIVEVAULT_DOTENV_PATH", str(tmp_path / "absent.env"))
    reset_dotenv_state()
    try:
        ex = build_executor()
    finally:
        reset_dotenv_state()

    assert ex.clock.unix_timestamp == 500
    assert logging.getLogger().level == logging.WARNING


def test_build_executor_with_explicit_config(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, restore_root_logging: None
) -> None:
    monkeypatch.setenv("NATIVEVAULT_DOTENV_PATH", str(tmp_path / "absent.env"))
    cfg = replace(default_vault_config(), db_path=str(tmp_path / "vault.db"), lamports_per_byte_year=1)
    reset_dotenv_state()
    try:
        ex = build_executor(cfg)
    finally:
        reset_dotenv_state()

    assert ex.rent.minimum_balance(0) == 256
    assert str(ex.program_id) == cfg.program_id
    assert ex.recent_transactions() == []
