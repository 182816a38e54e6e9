"""Tests for the Playwright-backed document adapter."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from formation_agent.core.browser_document import (
    DISPATCH_SCRIPT,
    INSPECT_SCRIPT,
    SET_STYLE_SCRIPT,
    SET_VALUE_SCRIPT,
    PlaywrightDocument,
    element_info_from_dict,
)
from formation_agent.core.browser_interface import FieldKind, OptionInfo


def make_page(url="https://a.com/form"):
    page = MagicMock()
    page.url = url
    page.query_selector_all = AsyncMock(return_value=["h1", "h2"])
    return page


def make_handle(result=None):
    handle = MagicMock()
    handle.evaluate = AsyncMock(return_value=result)
    return handle


def test_element_info_from_inspection_result():
    info = element_info_from_dict({
        "tag": "SELECT",
        "attributes": {"name": "country", "id": "c"},
        "value": "uk",
        "width": 180,
        "height": 20,
        "required": True,
        "max_length": None,
        "options": [["us", "United States"], ["uk", "United Kingdom"]],
        "associated_label": "Country",
        "form_index": 0,
    })

    assert info.tag == "select"
    assert info.kind is FieldKind.SELECT
    assert info.name == "country"
    assert info.options == (OptionInfo("us", "United States"), OptionInfo("uk", "United Kingdom"))
    assert (info.width, info.height) == (180.0, 20.0)
    assert info.required
    assert info.max_length is None
    assert info.is_connected
    assert info.form_index == 0


def test_element_info_defaults_for_sparse_result():
    info = element_info_from_dict({"tag": "input", "max_length": 20})
    assert info.value == ""
    assert info.max_length == 20
    assert info.options == ()
    assert info.width == 0.0


@pytest.mark.asyncio
async def test_reads_go_through_the_page():
    page = make_page()
    document = PlaywrightDocument(page)

    assert document.url == "https://a.com/form"
    assert await document.query_selector_all("input") == ["h1", "h2"]
    page.query_selector_all.assert_awaited_once_with("input")


@pytest.mark.asyncio
async def test_inspect_evaluates_once():
    handle = make_handle({"tag": "input", "attributes": {"type": "email", "name": "email"}, "value": "x"})
    document = PlaywrightDocument(make_page())

    info = await document.inspect(handle)

    handle.evaluate.assert_awaited_once_with(INSPECT_SCRIPT)
    assert info.input_type == "email"
    assert info.value == "x"


@pytest.mark.asyncio
async def test_writes_pass_arguments_to_scripts():
    handle = make_handle()
    document = PlaywrightDocument(make_page())

    await document.set_value(handle, "Ann")
    await document.dispatch_event(handle, "change")

    assert handle.evaluate.await_args_list[0].args == (SET_VALUE_SCRIPT, "Ann")
    assert handle.evaluate.await_args_list[1].args == (DISPATCH_SCRIPT, "change")


@pytest.mark.asyncio
async def test_set_style_returns_previous_value():
    document = PlaywrightDocument(make_page())

    handle = make_handle("1px dotted red")
    assert await document.set_style(handle, "outline", "2px solid green") == "1px dotted red"
    handle.evaluate.assert_awaited_once_with(SET_STYLE_SCRIPT, ["outline", "2px solid green"])

    assert await document.set_style(make_handle(None), "outline", "") == ""
