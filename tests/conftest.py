"""Shared fixtures and in-memory browser fakes."""

from __future__ import annotations

import base64
from pathlib import Path

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from dayone_exporter import (
    BODY_TEXT_SCRIPT,
    CLICK_LINK_SCRIPT,
    FETCH_BLOB_SCRIPT,
    READ_BLOBS_SCRIPT,
    READ_LINKS_SCRIPT,
    BrowserSession,
    ExporterConfig,
)
from journal_models import Entry
from journal_state import StateStore


class FakeElement:
    """A DOM element matched by the literal selector strings it declares."""

    def __init__(self, text="", selectors=("button",), enabled=True, on_click=None):
        self.text = text
        self.selectors = set(selectors)
        self.enabled = enabled
        self.on_click = on_click
        self.clicks = 0
        self.value = None
        self.pressed = []

    def matches(self, selector):
        return any(part.strip() in self.selectors for part in selector.split(","))

    def click(self, page):
        self.clicks += 1
        if self.on_click is not None:
            self.on_click(page)


class FakeHandle:
    def __init__(self, page, element):
        self.page = page
        self.element = element

    def fill(self, value):
        self.element.value = value

    def press(self, key):
        self.element.pressed.append(key)


class FakeLocator:
    def __init__(self, page, elements):
        self.page = page
        self.elements = list(elements)

    def count(self):
        return len(self.elements)

    @property
    def first(self):
        return FakeLocator(self.page, self.elements[:1])

    def filter(self, has_text=None):
        if has_text is None:
            return self
        needle = has_text.lower()
        return FakeLocator(self.page, [el for el in self.elements if needle in el.text.lower()])

    def click(self, timeout=None):
        self.elements[0].click(self.page)

    def is_enabled(self):
        return self.elements[0].enabled

    def inner_text(self):
        return self.elements[0].text


class FakePage:
    def __init__(self, url="https://dayone.me/login"):
        self.url = url
        self.elements = []
        self.body_text = ""
        self.blobs = []
        self.links = []
        self.blob_data = {}
        self.waits = []
        self.visited = []
        self.clicked_links = []
        self.screenshots = []
        self.on_wait = None

    def add(self, *elements):
        self.elements.extend(elements)
        return elements[0] if len(elements) == 1 else elements

    def goto(self, url, **kwargs):
        self.visited.append(url)
        self.url = url

    def wait_for_load_state(self, state=None, timeout=None):
        return None

    def wait_for_timeout(self, ms):
        self.waits.append(ms)
        if self.on_wait is not None:
            self.on_wait(self)

    def wait_for_selector(self, selector, timeout=None):
        for element in self.elements:
            if element.matches(selector):
                return FakeHandle(self, element)
        raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    def locator(self, selector):
        return FakeLocator(self, [el for el in self.elements if el.matches(selector)])

    def evaluate(self, script, arg=None):
        if script == BODY_TEXT_SCRIPT:
            return self.body_text(self) if callable(self.body_text) else self.body_text
        if script == READ_BLOBS_SCRIPT:
            return list(self.blobs)
        if script == READ_LINKS_SCRIPT:
            return list(self.links)
        if script == FETCH_BLOB_SCRIPT:
            return base64.b64encode(self.blob_data[arg]).decode("ascii")
        if script == CLICK_LINK_SCRIPT:
            self.clicked_links.append(arg)
            return True
        raise AssertionError(f"Unexpected script: {script[:40]!r}")

    def screenshot(self, path, full_page=False):
        self.screenshots.append(path)
        Path(path).write_bytes(b"png")

    def content(self):
        return "<html><body></body></html>"


class FakeDownload:
    def __init__(self, content, suggested_filename="Blog_Public.zip", url="https://dayone.me/export"):
        self.content = content
        self.suggested_filename = suggested_filename
        self.url = url

    def failure(self):
        return None

    def save_as(self, path):
        Path(path).write_bytes(self.content)


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def session(fake_page):
    return BrowserSession(page=fake_page)


@pytest.fixture
def exporter_config(tmp_path):
    return ExporterConfig(
        download_dir=tmp_path / "downloads",
        timeout=1.0,
        locate_interval=0.5,
        post_login_wait=0,
        action_delay=0,
        artifact_max_ticks=3,
    )


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "data" / "journal-state.json"


@pytest.fixture
def store(state_path):
    return StateStore(state_path)


@pytest.fixture
def make_entry():
    def factory(uuid, modified="2024-01-01T10:00:00Z", title=None, **extra):
        return Entry(
            uuid=uuid,
            title=title if title is not None else f"Entry {uuid}",
            creation_date=extra.pop("creation_date", "2024-01-01T09:00:00Z"),
            modified_date=modified,
            **extra,
        )

    return factory
