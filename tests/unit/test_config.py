from pathlib import Path

import pytest
from pydantic import ValidationError

from ui_resolver.utils.config import Settings


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("AUDIT_DIR", "LOG_FILE", "LOCATORS_PATH"):
        monkeypatch.delenv(name, raising=False)


def test_blank_paths_fall_back_to_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("AUDIT_DIR", "")
    monkeypatch.setenv("LOG_FILE", "   ")
    monkeypatch.setenv("LOCATORS_PATH", "")

    s = Settings()

    assert s.AUDIT_DIR == tmp_path / "reports" / "audit"
    assert s.LOG_FILE == tmp_path / "ui-resolver.log"
    assert s.LOCATORS_PATH is None


def test_relative_paths_are_absolutized(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("AUDIT_DIR", "out/audit")
    assert Settings().AUDIT_DIR == tmp_path / "out" / "audit"


@pytest.mark.parametrize(
    "field",
    ["DEFAULT_TIMEOUT_MS", "HEALER_TIMEOUT_MS", "ACTION_TIMEOUT_MS", "EXISTS_TIMEOUT_MS", "RETRY_POLL_MS"],
)
def test_zero_timeouts_rejected(field):
    with pytest.raises(ValidationError):
        Settings(**{field: 0})
