import json
import textwrap
from pathlib import Path

import pytest

from ui_resolver.core.errors import RegistrySourceError, SpecNotFoundError
from ui_resolver.core.registry import DEFAULT_REGISTRY_PATH, ElementSpec, Registry


def test_load_json_registry_with_defaults(make_registry, settings):
    reg = make_registry({
        "login.username": {"candidates": ["#user", "input[name='user']"]},
        "login.help": {"candidates": ["#help"], "required": False, "timeout": 1500},
    })

    spec = reg.spec_for("login.username")
    assert spec.candidates == ["#user", "input[name='user']"]
    assert spec.required is True
    assert spec.effective_timeout(settings) == settings.DEFAULT_TIMEOUT_MS
    assert reg.spec_for("login.help").effective_timeout(settings) == 1500
    assert sorted(reg.all_keys()) == ["login.help", "login.username"]


def test_legacy_selector_and_blank_candidates_normalized():
    spec = ElementSpec.model_validate({"key": "x", "selector": "#legacy"})
    assert spec.candidates == ["#legacy"]

    spec = ElementSpec.model_validate({"key": "y", "candidates": ["  ", "#a", ""]})
    assert spec.candidates == ["#a"]


def test_healer_timeout_falls_back_to_settings(settings):
    on = ElementSpec.model_validate({"key": "k", "candidates": ["#a"], "healer": {"enabled": True, "timeout": 300}})
    default = ElementSpec.model_validate({"key": "k", "candidates": ["#a"], "healer": {"enabled": True}})
    assert on.healer_timeout(settings) == 300
    assert default.healer_timeout(settings) == settings.HEALER_TIMEOUT_MS


def test_yaml_registry(tmp_path: Path, settings):
    fp = tmp_path / "locators.yaml"
    fp.write_text(
        textwrap.dedent(
            """
            Borrowers.firstName:
              candidates:
                - "input[formcontrolname='firstName']"
                - "role=textbox[name=/first name/i]"
              healer:
                enabled: true
            """
        ),
        encoding="utf-8",
    )
    spec = Registry(fp, settings=settings).spec_for("Borrowers.firstName")
    assert len(spec.candidates) == 2
    assert spec.healer is not None and spec.healer.enabled


def test_directory_merge_last_file_wins(tmp_path: Path, settings):
    (tmp_path / "a_base.json").write_text(json.dumps({
        "k.one": {"candidates": ["#one-old"]},
        "k.two": {"candidates": ["#two"]},
    }), encoding="utf-8")
    (tmp_path / "b_override.yaml").write_text("k.one:\n  candidates: ['#one-new']\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    reg = Registry(tmp_path, settings=settings)
    assert reg.spec_for("k.one").candidates == ["#one-new"]
    assert reg.spec_for("k.two").candidates == ["#two"]


def test_unknown_key_suggests_nearby(make_registry):
    reg = make_registry({
        "Borrowers.modal.firstName": {"candidates": ["#fn"]},
        "Coborrower.firstName": {"candidates": ["#cfn"]},
        "Borrowers.lastName": {"candidates": ["#ln"]},
    })
    with pytest.raises(SpecNotFoundError) as exc:
        reg.spec_for("Borrowers.firstName")
    assert "Borrowers.firstName" in str(exc.value)
    assert set(exc.value.suggestions) == {"Borrowers.modal.firstName", "Coborrower.firstName"}


def test_malformed_json_reports_excerpt(tmp_path: Path, settings):
    fp = tmp_path / "broken.json"
    fp.write_text('{"login.username": {"candidates": ["#user",]}}', encoding="utf-8")
    with pytest.raises(RegistrySourceError) as exc:
        Registry(fp, settings=settings).load()
    msg = str(exc.value)
    assert "Failed to parse locator registry JSON" in msg
    assert "--- around ---" in msg and '"#user"' in msg


def test_invalid_entry_lists_problems(make_registry):
    reg = make_registry({"bad.timeout": {"candidates": ["#a"], "timeout": -5}, "bad.shape": "nope"})
    with pytest.raises(RegistrySourceError) as exc:
        reg.load()
    assert "bad.timeout" in str(exc.value)
    assert "bad.shape" in str(exc.value)


def test_missing_source_names_every_way_to_configure(tmp_path: Path, settings):
    with pytest.raises(RegistrySourceError) as exc:
        Registry(tmp_path / "nope.json", settings=settings).load()
    msg = str(exc.value)
    assert "LOCATORS_PATH" in msg and "set_source_location" in msg


def test_cache_reload_and_source_switch(tmp_path: Path, settings):
    first = tmp_path / "first.json"
    first.write_text(json.dumps({"a": {"candidates": ["#a1"]}}), encoding="utf-8")
    second = tmp_path / "second.json"
    second.write_text(json.dumps({"b": {"candidates": ["#b"]}}), encoding="utf-8")

    reg = Registry(first, settings=settings)
    assert reg.load() is reg.load()

    first.write_text(json.dumps({"a": {"candidates": ["#a2"]}}), encoding="utf-8")
    assert reg.spec_for("a").candidates == ["#a1"]
    reg.reload()
    assert reg.spec_for("a").candidates == ["#a2"]

    assert reg.set_source_location(second) == second.resolve()
    assert reg.all_keys() == ["b"]


def test_source_precedence(tmp_path: Path, settings):
    env_path = tmp_path / "env.json"
    env_path.write_text(json.dumps({"env.key": {"candidates": ["#e"]}}), encoding="utf-8")

    assert Registry(settings=settings).source_location == DEFAULT_REGISTRY_PATH.resolve()

    env_settings = settings.model_copy(update={"LOCATORS_PATH": env_path})
    reg = Registry(settings=env_settings)
    assert reg.source_location == env_path.resolve()
    assert reg.resolve_source(tmp_path / "explicit.json") == (tmp_path / "explicit.json").resolve()


def test_bundled_registry_loads(settings):
    reg = Registry(DEFAULT_REGISTRY_PATH, settings=settings)
    assert "login.username" in reg.all_keys()
    assert all(spec.candidates for spec in reg.load().values())


@pytest.mark.parametrize("entry", [{"candidates": ["#a"], "timeout": 0}, {"candidates": ["#a"], "healer": {"timeout": 0}}])
def test_zero_timeout_rejected(make_registry, entry):
    reg = make_registry({"login.username": entry})
    with pytest.raises(RegistrySourceError) as exc:
        reg.load()
    assert "login.username" in str(exc.value)
