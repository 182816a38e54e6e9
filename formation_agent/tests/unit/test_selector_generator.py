"""Tests for selector generation."""

import unittest

import pytest

from formation_agent.core.browser_interface import ElementInfo
from formation_agent.core.memory_document import MemoryDocument
from formation_agent.tools.selector_generator import SelectorGenerator, is_css_identifier, quote_attribute_value


class TestSelectorGenerator(unittest.TestCase):
    """Preference order and output forms of SelectorGenerator.generate."""

    def setUp(self):
        self.generator = SelectorGenerator()

    def test_name_wins_and_is_stable(self):
        info = ElementInfo(tag="input", attributes={"name": "email", "id": "e1", "data-testid": "mail"})
        result = self.generator.generate(info)
        self.assertEqual(result.selector, 'input[name="email"]')
        self.assertTrue(result.is_stable)

    def test_test_id_before_id(self):
        info = ElementInfo(tag="input", attributes={"id": "e1", "data-cy": "mail"})
        result = self.generator.generate(info)
        self.assertEqual(result.selector, '[data-cy="mail"]')
        self.assertTrue(result.is_stable)

    def test_test_id_priority_follows_configuration(self):
        generator = SelectorGenerator(["data-qa", "data-testid"])
        info = ElementInfo(tag="input", attributes={"data-testid": "a", "data-qa": "b"})
        self.assertEqual(generator.generate(info).selector, '[data-qa="b"]')

    def test_id_is_volatile(self):
        result = self.generator.generate(ElementInfo(tag="input", attributes={"id": "email"}))
        self.assertEqual(result.selector, "#email")
        self.assertFalse(result.is_stable)

    def test_id_that_is_not_an_identifier_uses_attribute_form(self):
        result = self.generator.generate(ElementInfo(tag="input", attributes={"id": "1st-field"}))
        self.assertEqual(result.selector, '[id="1st-field"]')

    def test_class_with_type(self):
        info = ElementInfo(tag="input", attributes={"class": "field wide", "type": "text"})
        self.assertEqual(self.generator.generate(info).selector, 'input.field[type="text"]')

    def test_class_without_type_attribute(self):
        info = ElementInfo(tag="input", attributes={"class": "field"})
        self.assertEqual(self.generator.generate(info).selector, "input.field")

    def test_positional_fallback(self):
        info = ElementInfo(tag="textarea", attributes={"class": "notes"}, sibling_index=2)
        result = self.generator.generate(info)
        self.assertEqual(result.selector, "textarea:nth-of-type(2)")
        self.assertFalse(result.is_stable)

    def test_positional_fallback_for_detached_element(self):
        info = ElementInfo(tag="select", sibling_index=None)
        self.assertEqual(self.generator.generate(info).selector, "select:nth-of-type(1)")

    def test_deterministic(self):
        info = ElementInfo(tag="input", attributes={"class": "x", "type": "email"}, sibling_index=3)
        self.assertEqual(self.generator.generate(info), self.generator.generate(info))

    def test_quoting(self):
        self.assertEqual(quote_attribute_value('a"b\\c'), '"a\\"b\\\\c"')
        self.assertTrue(is_css_identifier("email-field"))
        self.assertFalse(is_css_identifier("2fa"))
        self.assertFalse(is_css_identifier(""))


@pytest.mark.asyncio
async def test_generated_selectors_resolve_to_their_element():
    document = MemoryDocument("https://a.com/")
    form = document.add_form()
    elements = [
        document.add_input(parent=form, type="text", name="first"),
        document.add_input(parent=form, type="text", data_testid="last"),
        document.add_input(parent=form, type="email", id="mail"),
        document.add_input(parent=form, type="tel", id="9phone"),
        document.add_input(parent=form, type="text", name='we"ird'),
        document.add_textarea(parent=form),
        document.add_textarea(parent=form),
    ]
    generator = SelectorGenerator()

    for element in elements:
        result = await generator.generate_for(document, element)
        matches = await document.query_selector_all(result.selector)
        assert matches == [element], result.selector
