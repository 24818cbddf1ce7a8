import re

import pytest

from ui_resolver.selectors.locator import MIN_WAIT_MS, QuerySelector, RoleSelector, build_locator, parse_selector, wait_for_state


def test_plain_css_is_query_selector():
    sel = parse_selector("  #username ")
    assert sel == QuerySelector("#username")
    assert sel.describe() == "#username"


def test_role_without_name():
    assert parse_selector("role=button") == RoleSelector("button")


@pytest.mark.parametrize("raw", ['role=button[name="Submit"]', "role=button[name='Submit']"])
def test_role_with_literal_name(raw):
    sel = parse_selector(raw)
    assert isinstance(sel, RoleSelector)
    assert sel.role == "button"
    assert sel.name == "Submit"
    assert sel.describe() == 'role=button[name="Submit"]'


def test_role_with_pattern_and_flags():
    sel = parse_selector("role=textbox[name=/first name/i]")
    assert isinstance(sel.name, re.Pattern)
    assert sel.name.flags & re.IGNORECASE
    assert sel.name.search("First Name *")
    assert sel.describe() == "role=textbox[name=/first name/i]"


def test_describe_renders_pattern_flags():
    assert parse_selector("role=link[name=/^Help$/]").describe() == "role=link[name=/^Help$/]"
    assert parse_selector("role=tab[name=/a.b/si]").describe() == "role=tab[name=/a.b/is]"


def test_role_with_unrecognised_options_keeps_role_only():
    assert parse_selector("role=tab[selected=true]") == RoleSelector("tab")


def test_invalid_name_pattern_raises_value_error():
    with pytest.raises(ValueError, match="invalid name pattern"):
        parse_selector("role=button[name=/(unclosed/]")


def test_build_locator_narrows_to_first_unless_enumerating(page):
    page.add("li.tab", text="One")
    page.add("li.tab", text="Two")

    first = build_locator(page, parse_selector("li.tab"))
    every = build_locator(page, parse_selector("li.tab"), first=False)

    assert first.count() == 1
    assert every.all_text_contents() == ["One", "Two"]


def test_build_locator_role_matches_accessible_name(page):
    page.add_role("button", "Cancel")
    ok = page.add_role("button", "Submit")

    loc = build_locator(page, parse_selector('role=button[name="Submit"]'))
    loc.click()
    assert ok.clicks == 1


@pytest.mark.parametrize("timeout", [0, -20])
def test_wait_for_state_never_passes_unbounded_timeout(page, timeout):
    page.add("#user")
    wait_for_state(page.locator("#user"), "attached", timeout)
    assert page.wait_timeouts == [MIN_WAIT_MS]
