"""Tests for field eligibility, label extraction and snapshots."""

import pytest

from formation_agent.core.browser_interface import ElementInfo, FieldKind
from formation_agent.tools.field_extractor import FieldSnapshotExtractor, normalize_field_type


@pytest.fixture
def extractor():
    return FieldSnapshotExtractor()


@pytest.mark.asyncio
async def test_password_and_buttons_are_never_selectable(document, extractor):
    password = document.add_input(type="password", name="pw")
    hidden = document.add_input(type="hidden", name="token")
    submit = document.add_input(type="submit")
    for element in (password, hidden, submit):
        assert not extractor.is_selectable(await document.inspect(element))
        assert await extractor.extract(document, element) is None


@pytest.mark.asyncio
async def test_state_gates(document, extractor):
    disabled = document.add_input(name="a", disabled=True)
    read_only = document.add_input(name="b", readonly=True)
    hidden_attr = document.add_input(name="c", hidden=True)
    tiny = document.add_input(name="d")
    tiny.width = 5
    not_displayed = document.add_input(name="e")
    not_displayed.style["display"] = "none"
    detached = document.add_input(name="f")
    detached.detach()

    for element in (disabled, read_only, hidden_attr, tiny, not_displayed, detached):
        assert not extractor.is_selectable(await document.inspect(element)), element


@pytest.mark.asyncio
async def test_text_fields_and_selects_are_selectable(document, extractor):
    text = document.add_input(name="a")
    area = document.add_textarea(name="b")
    select = document.add_select([("x", "X")], name="c")
    div = document.create("div", text="not a field")
    for element in (text, area, select):
        assert extractor.is_selectable(await document.inspect(element))
    assert not extractor.is_selectable(await document.inspect(div))


@pytest.mark.asyncio
async def test_label_sources_in_order(document, extractor):
    document.add_label("  Email address ", for_="email")
    associated = document.add_input(id="email", name="mail", placeholder="you@example.com")

    wrapper = document.add_label("Phone ")
    wrapped = document.add_input(parent=wrapper, name="phone")

    placeholder_only = document.add_input(name="city", placeholder=" Your city ")
    name_only = document.add_input(name="zip")
    bare = document.add_input(type="search")

    assert extractor.extract_label(await document.inspect(associated)) == "Email address"
    assert extractor.extract_label(await document.inspect(wrapped)) == "Phone"
    assert extractor.extract_label(await document.inspect(placeholder_only)) == "Your city"
    assert extractor.extract_label(await document.inspect(name_only)) == "zip"
    assert extractor.extract_label(await document.inspect(bare)) == "input[search]"


@pytest.mark.asyncio
async def test_ancestor_label_excludes_select_option_text(document, extractor):
    wrapper = document.add_label("Country")
    select = document.add_select([("de", "Germany"), ("fr", "France")], parent=wrapper, name="country")
    assert extractor.extract_label(await document.inspect(select)) == "Country"


@pytest.mark.asyncio
async def test_snapshot_fields(document, extractor):
    document.add_label("Email", for_="email")
    element = document.add_input(
        type="email", id="email", name="email", value="bob@example.com", required=True, maxlength="80"
    )
    snapshot = await extractor.extract(document, element)

    assert snapshot.selector == 'input[name="email"]'
    assert snapshot.is_stable
    assert snapshot.value == "bob@example.com"
    assert snapshot.label == "Email"
    assert snapshot.type == "email"
    assert snapshot.is_required
    assert snapshot.max_length == 80
    assert snapshot.placeholder is None
    assert snapshot.kind is FieldKind.TEXT


@pytest.mark.asyncio
async def test_snapshot_of_select(document, extractor):
    select = document.add_select([("s", "Small"), ("l", "Large")], name="size", value="l")
    snapshot = await extractor.extract(document, select)
    assert snapshot.type == "select-one"
    assert snapshot.kind is FieldKind.SELECT
    assert snapshot.value == "l"


def test_normalize_field_type():
    assert normalize_field_type(ElementInfo(tag="input")) == "text"
    assert normalize_field_type(ElementInfo(tag="input", attributes={"type": "EMAIL"})) == "email"
    assert normalize_field_type(ElementInfo(tag="textarea")) == "textarea"
    assert normalize_field_type(ElementInfo(tag="select", multiple=True)) == "select-multiple"
    assert normalize_field_type(ElementInfo(tag="div")) == "text"
