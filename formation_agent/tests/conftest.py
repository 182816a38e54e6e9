"""Test configuration for pytest."""

import sys
from pathlib import Path

# Add the project root directory to Python path
project_root = str(Path(__file__).parent.parent.parent)
if project_root not in sys.path:
    sys.path.append(project_root)

# --- Pytest Fixtures ---

import pytest
import pytest_asyncio

from formation_agent.core.memory_document import MemoryDocument
from formation_agent.messaging.channel import LoopbackChannel
from formation_agent.storage.backends import InMemoryKeyValueStore


def build_contact_page(url: str = "https://a.com/") -> MemoryDocument:
    """A page with one form holding labelled name and email inputs."""
    document = MemoryDocument(url)
    form = document.add_form(id="contact")
    document.add_label("Name", parent=form, for_="name")
    document.add_input(parent=form, type="text", name="name", id="name")
    document.add_label("Email", parent=form, for_="email")
    document.add_input(parent=form, type="email", name="email", id="email")
    document.add_input(parent=form, type="password", name="password")
    document.add_input(parent=form, type="submit", value="Send")
    return document


@pytest.fixture
def document():
    return MemoryDocument("https://a.com/")


@pytest.fixture
def contact_page():
    return build_contact_page()


@pytest.fixture
def page_factory():
    """Builds the contact page at an arbitrary URL."""
    return build_contact_page


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest_asyncio.fixture
async def channels():
    """Connected page/background endpoints, closed after the test."""
    page_end, background_end = LoopbackChannel.pair()
    yield page_end, background_end
    page_end.close()
    background_end.close()
