"""Export a Day One journal through the Day One web app.

Day One offers no stable export API, so this module signs into the web app
with Playwright, selects a journal from the sidebar, walks the
Edit Journal -> Journal Settings -> Export Journal menu chain and recovers the
exported file. The file can arrive as a native browser download, as a blob
URL generated in the page, or as an ``a[download]`` link inserted into the
DOM; all three are watched on the same one-second tick and the first file
retrieved intact wins.

Controls are matched by their visible text across every interactive element
on the page rather than by class names, which change between app releases.

Usage from Python::

    config = ExporterConfig()
    with open_browser_session(config) as session:
        exporter = DayOneExporter(session, config, email, password)
        entries = exporter.acquire_entries("Blog Public")
"""

from __future__ import annotations

import base64
import binascii
import json
import math
import queue
import re
import shutil
import time
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Collection, Iterable, Iterator, List, Mapping, Optional, Sequence, Set

from loguru import logger
from playwright.sync_api import (  # type: ignore[import-not-found]
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
    Download,
    Locator,
    Page,
    sync_playwright,
)

from journal_models import Entry

LOGIN_URL = "https://dayone.me/login"
APP_URL = "https://dayone.me/"
DEFAULT_DOWNLOAD_DIR = Path("/tmp/dayone-downloads")

EMAIL_SELECTOR = "input[type='email'], input[name*='email'], input#email"
PASSWORD_SELECTOR = "input[type='password'], input[name*='password'], input#password"
SUBMIT_SELECTOR = (
    "button[type='submit'], input[type='submit'], "
    "button:has-text('Sign in'), button:has-text('Log in')"
)
INTERACTIVE_SELECTOR = "button, [role='button'], [role='menuitem'], a"
BUTTON_SELECTOR = "button, [role='button']"
LINK_SELECTOR = "a, [role='link']"
SIDEBAR_TOGGLE_SELECTOR = "button[aria-label='Toggle Journals Sidebar']"

EXPORT_MENU_STEPS = (
    ("edit_journal", "Edit Journal"),
    ("journal_settings", "Journal Settings"),
    ("export_journal", "Export Journal"),
)
EXPORT_JSON_LABEL = "Export journal JSON file"
INCLUDE_MEDIA_LABEL = "Include media"
WITHOUT_MEDIA_LABEL = "Export without media"
SYNC_LABEL = "Sync"
SYNC_REQUIRED_MARKERS = ("not yet been synced", "must be synced before")
SYNCING_MARKER = "Syncing"
SYNC_COMPLETE_MARKER = "Sync complete"
MAX_SYNC_ROUNDS = 2

EXPORT_FILE_SUFFIXES = (".json", ".zip")
EXPORT_BLOB_TYPES = ("zip", "json", "octet-stream")
ENTRY_COUNT_PATTERN = re.compile(r"(\d+)\s+Entries")

# Installed before any page script runs. Records every blob URL the app
# creates and every download link it inserts or clicks.
MONITOR_SCRIPT = """
(() => {
    window.__journalExportBlobs = [];
    window.__journalExportLinks = [];

    const originalCreateObjectURL = URL.createObjectURL;
    URL.createObjectURL = function (object) {
        const url = originalCreateObjectURL.call(this, object);
        window.__journalExportBlobs.push({
            url: url,
            size: (object && object.size) || 0,
            type: (object && object.type) || ''
        });
        return url;
    };

    const recordLink = (link) => {
        if (!link || link.tagName !== 'A' || !link.hasAttribute('download')) {
            return;
        }
        if (window.__journalExportLinks.some((item) => item.url === link.href)) {
            return;
        }
        window.__journalExportLinks.push({
            url: link.href,
            filename: link.getAttribute('download') || ''
        });
    };

    const originalClick = HTMLElement.prototype.click;
    HTMLElement.prototype.click = function () {
        recordLink(this);
        return originalClick.call(this);
    };

    const observer = new MutationObserver((mutations) => {
        mutations.forEach((mutation) => {
            if (mutation.type === 'attributes') {
                recordLink(mutation.target);
                return;
            }
            mutation.addedNodes.forEach((node) => {
                if (node.nodeType !== 1) {
                    return;
                }
                recordLink(node);
                if (node.querySelectorAll) {
                    node.querySelectorAll('a[download]').forEach(recordLink);
                }
            });
        });
    });
    observer.observe(document.documentElement, {
        childList: true,
        subtree: true,
        attributes: true,
        attributeFilter: ['href', 'download']
    });
})();
"""
BODY_TEXT_SCRIPT = "() => (document.body ? document.body.innerText : '')"
READ_BLOBS_SCRIPT = "() => window.__journalExportBlobs || []"
READ_LINKS_SCRIPT = "() => window.__journalExportLinks || []"
FETCH_BLOB_SCRIPT = """
async (url) => {
    const response = await fetch(url);
    const bytes = new Uint8Array(await response.arrayBuffer());
    let binary = '';
    const chunk = 0x8000;
    for (let i = 0; i < bytes.length; i += chunk) {
        binary += String.fromCharCode.apply(null, bytes.subarray(i, i + chunk));
    }
    return btoa(binary);
}
"""
CLICK_LINK_SCRIPT = """
(url) => {
    const link = Array.from(document.querySelectorAll('a[download]')).find((a) => a.href === url);
    if (!link) {
        return false;
    }
    link.click();
    return true;
}
"""


class ExportError(RuntimeError):
    """Base class for failures while exporting a journal."""


class AuthenticationError(ExportError):
    """Raised when the login form is missing or rejects the credentials."""


class JournalNotFoundError(ExportError):
    def __init__(self, journal_name: str) -> None:
        super().__init__(f"Could not find journal '{journal_name}' in the sidebar")
        self.journal_name = journal_name


class NavigationError(ExportError):
    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"{step}: {message}")
        self.step = step


class SyncTimeoutError(ExportError):
    def __init__(self, attempts: int, interval: float) -> None:
        super().__init__(
            f"Journal sync did not complete after {attempts} attempts "
            f"({attempts * interval:.0f} seconds)"
        )
        self.attempts = attempts


class ExportDialogError(ExportError):
    """Raised when neither media option is offered in the export dialog."""


class ArtifactNotFoundError(ExportError):
    """Raised when no export file could be recovered."""


class ExportFormatError(ExportError):
    """Raised when an export file is not a readable JSON document or archive."""


@dataclass
class ExporterConfig:
    login_url: str = LOGIN_URL
    app_url: str = APP_URL
    download_dir: Path = DEFAULT_DOWNLOAD_DIR
    debug_dir: Optional[Path] = None
    capture_debug: bool = True
    headless: bool = True
    executable_path: Optional[str] = None
    timeout: float = 10.0
    post_login_wait: float = 2.0
    action_delay: float = 1.0
    locate_interval: float = 0.5
    sync_poll_interval: float = 2.0
    sync_max_attempts: int = 60
    artifact_tick_interval: float = 1.0
    artifact_max_ticks: int = 30
    min_blob_size: int = 100_000
    recent_window: float = 60.0

    def resolved_debug_dir(self) -> Path:
        return self.debug_dir or (self.download_dir / "debug")


@dataclass
class BrowserSession:
    """The single page shared by every export in one workflow run."""

    page: Page
    downloads: List[Download] = field(default_factory=list)
    authenticated: bool = False
    exports: int = 0
    # URLs already offered by an earlier export; the page keeps them around.
    seen_urls: Set[str] = field(default_factory=set)
    # Files handed back by this session, in order.
    artifacts: List[Path] = field(default_factory=list)


@contextmanager
def open_browser_session(config: ExporterConfig) -> Iterator[BrowserSession]:
    """Launch Chromium for one workflow run and close it on every exit path."""

    config.download_dir.mkdir(parents=True, exist_ok=True)
    launch_options: dict = {
        "headless": config.headless,
        "args": ["--no-sandbox", "--disable-dev-shm-usage"],
    }
    if config.executable_path:
        launch_options["executable_path"] = config.executable_path

    with sync_playwright() as playwright:
        browser = playwright.chromium.launch(**launch_options)
        try:
            context = browser.new_context(
                accept_downloads=True,
                viewport={"width": 1366, "height": 768},
            )
            context.add_init_script(MONITOR_SCRIPT)
            page = context.new_page()
            session = BrowserSession(page=page)
            page.on("download", session.downloads.append)
            yield session
        finally:
            browser.close()


LocatorStrategy = Callable[[Page], Optional[Locator]]


def css_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def by_css(selector: str) -> LocatorStrategy:
    def locate(page: Page) -> Optional[Locator]:
        locator = page.locator(selector)
        return locator.first if locator.count() > 0 else None

    return locate


def by_text(text: str, selector: str = INTERACTIVE_SELECTOR) -> LocatorStrategy:
    def locate(page: Page) -> Optional[Locator]:
        locator = page.locator(selector).filter(has_text=text)
        return locator.first if locator.count() > 0 else None

    return locate


def journal_locator_strategies(journal_name: str) -> List[LocatorStrategy]:
    quoted = css_string(journal_name)
    return [
        by_css(f"span[title={quoted}], [title={quoted}], [aria-label={quoted}]"),
        by_text(journal_name, LINK_SELECTOR),
    ]


def menu_step_strategies(label: str) -> List[LocatorStrategy]:
    return [
        by_text(label),
        by_css(f"[aria-label={css_string(label)}]"),
    ]


def find_first(page: Page, strategies: Sequence[LocatorStrategy]) -> Optional[Locator]:
    """Evaluate ``strategies`` in order and return the first hit."""

    for strategy in strategies:
        try:
            found = strategy(page)
        except PlaywrightError as exc:
            logger.debug(f"Locator strategy failed: {exc}")
            continue
        if found is not None:
            return found
    return None


def wait_for_first(
    page: Page,
    strategies: Sequence[LocatorStrategy],
    timeout: float,
    interval: float = 0.5,
) -> Optional[Locator]:
    attempts = max(1, math.ceil(timeout / interval))
    for attempt in range(attempts):
        found = find_first(page, strategies)
        if found is not None:
            return found
        if attempt < attempts - 1:
            page.wait_for_timeout(int(interval * 1000))
    return None


def wait_for_page_ready(page: Page, timeout: float, extra_wait: float = 0.0) -> None:
    try:
        page.wait_for_load_state("networkidle", timeout=timeout * 1000)
    except PlaywrightTimeoutError:
        pass
    if extra_wait > 0:
        page.wait_for_timeout(int(extra_wait * 1000))


def page_text(page: Page) -> str:
    text = page.evaluate(BODY_TEXT_SCRIPT)
    return str(text or "")


def sanitize_filename(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", value.strip())
    return cleaned.strip("._-") or "export"


def save_debug_artifacts(page: Page, debug_dir: Path, slug: str, reason: str) -> None:
    """Write a screenshot and the page HTML; never raises."""

    try:
        debug_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.debug(f"Could not create debug directory {debug_dir}: {exc}")
        return
    stem = f"{sanitize_filename(slug)}_{sanitize_filename(reason)}"
    screenshot = debug_dir / f"{stem}.png"
    html_path = debug_dir / f"{stem}.html"
    try:
        page.screenshot(path=str(screenshot), full_page=True)
    except Exception as exc:
        logger.debug(f"Debug screenshot failed: {exc}")
    try:
        html_path.write_text(page.content(), encoding="utf-8")
    except Exception as exc:
        logger.debug(f"Debug HTML capture failed: {exc}")
    else:
        logger.info(f"Debug saved: {html_path}")


@dataclass(frozen=True)
class ArtifactCandidate:
    channel: str
    url: str = ""
    size: int = 0
    mime: str = ""
    filename: str = ""
    handle: Any = field(default=None, compare=False, repr=False)


class NativeDownloadChannel:
    name = "download"

    def __init__(self, session: BrowserSession) -> None:
        self.session = session

    def poll(self, page: Page) -> List[ArtifactCandidate]:
        candidates = []
        while self.session.downloads:
            download = self.session.downloads.pop(0)
            candidates.append(
                ArtifactCandidate(
                    channel=self.name,
                    url=download.url,
                    filename=download.suggested_filename,
                    handle=download,
                )
            )
        return candidates


class BlobUrlChannel:
    name = "blob"

    def __init__(self, seen: Optional[Set[str]] = None) -> None:
        self._seen = seen if seen is not None else set()

    def poll(self, page: Page) -> List[ArtifactCandidate]:
        candidates = []
        for item in page.evaluate(READ_BLOBS_SCRIPT) or []:
            url = item.get("url") if isinstance(item, dict) else None
            if not url or url in self._seen:
                continue
            self._seen.add(url)
            candidates.append(
                ArtifactCandidate(
                    channel=self.name,
                    url=url,
                    size=int(item.get("size") or 0),
                    mime=str(item.get("type") or ""),
                )
            )
        return candidates


class DownloadLinkChannel:
    name = "link"

    def __init__(self, seen: Optional[Set[str]] = None) -> None:
        self._seen = seen if seen is not None else set()

    def poll(self, page: Page) -> List[ArtifactCandidate]:
        candidates = []
        for item in page.evaluate(READ_LINKS_SCRIPT) or []:
            url = item.get("url") if isinstance(item, dict) else None
            if not url or url in self._seen:
                continue
            self._seen.add(url)
            candidates.append(
                ArtifactCandidate(
                    channel=self.name,
                    url=url,
                    filename=str(item.get("filename") or ""),
                )
            )
        return candidates


def accept_candidate(candidate: ArtifactCandidate, min_blob_size: int = 100_000) -> bool:
    """Blob URLs are also created for thumbnails; keep only export-like blobs."""

    if candidate.channel != BlobUrlChannel.name:
        return True
    mime = candidate.mime.lower()
    if any(kind in mime for kind in EXPORT_BLOB_TYPES):
        return True
    return candidate.size > min_blob_size


def sweep_download_locations(
    locations: Sequence[Path],
    target_dir: Path,
    since: float,
    exclude: Collection[Path] = (),
) -> Optional[Path]:
    """Return the newest export-like file modified after ``since``.

    Files in ``exclude`` were already handed out and are skipped. Files found
    outside ``target_dir`` are copied into it.
    """

    skipped = {path.resolve() for path in exclude}
    for location in locations:
        try:
            if not location.is_dir():
                continue
            files = [
                path
                for path in location.iterdir()
                if path.is_file()
                and path.suffix.lower() in EXPORT_FILE_SUFFIXES
                and "debug" not in path.name.lower()
                and path.stat().st_mtime >= since
                and path.resolve() not in skipped
            ]
        except OSError as exc:
            logger.debug(f"Could not check {location}: {exc}")
            continue
        if not files:
            continue
        newest = max(files, key=lambda path: path.stat().st_mtime)
        if newest.parent.resolve() == target_dir.resolve():
            return newest
        target_dir.mkdir(parents=True, exist_ok=True)
        destination = target_dir / newest.name
        shutil.copy2(newest, destination)
        logger.info(f"Found and copied export file from {location}: {newest.name}")
        return destination
    return None


def default_download_locations(download_dir: Path) -> List[Path]:
    return [
        download_dir,
        Path("/tmp"),
        Path.home() / "Downloads",
        Path.cwd(),
        Path("/var/tmp"),
    ]


class DayOneExporter:
    def __init__(
        self,
        session: BrowserSession,
        config: ExporterConfig,
        email: str,
        password: str,
    ) -> None:
        self.session = session
        self.config = config
        self.email = email
        self.password = password
        self._journal_name = ""
        self._requested_at: Optional[float] = None

    @property
    def page(self) -> Page:
        return self.session.page

    def _ms(self, seconds: float) -> int:
        return int(seconds * 1000)

    @contextmanager
    def _step(self, name: str) -> Iterator[None]:
        try:
            yield
        except (ExportError, PlaywrightError):
            if self.config.capture_debug:
                save_debug_artifacts(
                    self.page,
                    self.config.resolved_debug_dir(),
                    self._journal_name or "session",
                    name,
                )
            raise

    def export_journal(self, journal_name: str) -> Path:
        """Run the full export protocol and return the downloaded file."""

        self._journal_name = journal_name
        self._requested_at = None
        logger.info(f"Exporting {journal_name} journal...")
        try:
            if not self.session.authenticated:
                with self._step("authenticate"):
                    self.authenticate()
            elif self.session.exports:
                self.page.goto(self.config.app_url)
                wait_for_page_ready(self.page, self.config.timeout, self.config.action_delay)
            self.session.exports += 1

            with self._step("select_journal"):
                self.select_journal(journal_name)
            with self._step("open_export_dialog"):
                self.open_export_dialog()
            with self._step("request_export"):
                self.request_export()
            with self._step("confirm_media"):
                self.confirm_media_inclusion()
            with self._step("acquire_artifact"):
                artifact = self.acquire_artifact()
        except PlaywrightError as exc:
            raise ExportError(f"Browser error while exporting {journal_name}: {exc}") from exc

        logger.info(f"Export completed: {artifact}")
        return artifact

    def acquire_entries(self, journal_name: str) -> List[Entry]:
        return extract_and_parse_export(self.export_journal(journal_name), journal_name)

    def authenticate(self) -> None:
        page = self.page
        logger.info("Logging into Day One...")
        page.goto(self.config.login_url)
        wait_for_page_ready(page, self.config.timeout)

        try:
            email_input = page.wait_for_selector(EMAIL_SELECTOR, timeout=self._ms(self.config.timeout))
        except PlaywrightTimeoutError as exc:
            raise AuthenticationError("Could not find the email field on the login page.") from exc
        if email_input is None:
            raise AuthenticationError("Could not find the email field on the login page.")
        email_input.fill(self.email)

        try:
            password_input = page.wait_for_selector(PASSWORD_SELECTOR, timeout=self._ms(self.config.timeout))
        except PlaywrightTimeoutError as exc:
            raise AuthenticationError("Could not find the password field on the login page.") from exc
        if password_input is None:
            raise AuthenticationError("Could not find the password field on the login page.")
        password_input.fill(self.password)

        submit_locator = page.locator(SUBMIT_SELECTOR)
        if submit_locator.count() > 0:
            submit_locator.first.click(timeout=self._ms(self.config.timeout))
        else:
            password_input.press("Enter")

        wait_for_page_ready(page, self.config.timeout, self.config.post_login_wait)
        if "login" in page.url.lower():
            raise AuthenticationError("Login failed - check credentials")

        self.session.authenticated = True
        logger.info("Login successful")

    def select_journal(self, journal_name: str) -> None:
        page = self.page
        toggle = find_first(page, [by_css(SIDEBAR_TOGGLE_SELECTOR)])
        if toggle is None:
            logger.debug("Sidebar toggle not found or already open")
        else:
            try:
                toggle.click(timeout=self._ms(self.config.timeout))
                page.wait_for_timeout(self._ms(self.config.action_delay))
            except PlaywrightError as exc:
                logger.debug(f"Sidebar toggle click failed: {exc}")

        journal = wait_for_first(
            page,
            journal_locator_strategies(journal_name),
            self.config.timeout,
            self.config.locate_interval,
        )
        if journal is None:
            raise JournalNotFoundError(journal_name)
        journal.click(timeout=self._ms(self.config.timeout))
        wait_for_page_ready(page, self.config.timeout, self.config.action_delay)

        match = ENTRY_COUNT_PATTERN.search(page_text(page))
        if match:
            logger.info(f"Journal {journal_name} contains {match.group(1)} entries")
        else:
            logger.debug("Could not determine entry count, proceeding with export")

    def open_export_dialog(self) -> None:
        page = self.page
        for step, label in EXPORT_MENU_STEPS:
            control = wait_for_first(
                page,
                menu_step_strategies(label),
                self.config.timeout,
                self.config.locate_interval,
            )
            if control is None:
                raise NavigationError(step, f"Could not find '{label}'")
            try:
                control.click(timeout=self._ms(self.config.timeout))
            except PlaywrightTimeoutError as exc:
                raise NavigationError(step, f"'{label}' did not respond to a click") from exc
            page.wait_for_timeout(self._ms(self.config.action_delay))
            logger.debug(f"Clicked {label}")

    def request_export(self) -> None:
        """Click the JSON export control, syncing first if the app asks to.

        Sync rounds share one budget of ``sync_max_attempts`` polls.
        """

        page = self.page
        polls = 0
        for sync_round in range(MAX_SYNC_ROUNDS + 1):
            button = wait_for_first(
                page,
                [by_text(EXPORT_JSON_LABEL)],
                self.config.timeout,
                self.config.locate_interval,
            )
            if button is None:
                raise NavigationError("request_export", f"Could not find '{EXPORT_JSON_LABEL}'")
            # Downloads still queued belong to an earlier export.
            self.session.downloads.clear()
            if self._requested_at is None:
                self._requested_at = time.time()
            button.click(timeout=self._ms(self.config.timeout))
            page.wait_for_timeout(self._ms(self.config.action_delay))

            if not self.needs_sync():
                return
            remaining = self.config.sync_max_attempts - polls
            if sync_round == MAX_SYNC_ROUNDS or remaining <= 0:
                break
            logger.info("Journal needs to be synced before export")
            self.start_sync()
            try:
                polls += self.wait_for_sync(remaining)
            except SyncTimeoutError as exc:
                raise SyncTimeoutError(polls + exc.attempts, self.config.sync_poll_interval) from exc

        raise SyncTimeoutError(polls, self.config.sync_poll_interval)

    def needs_sync(self) -> bool:
        text = page_text(self.page)
        return any(marker in text for marker in SYNC_REQUIRED_MARKERS)

    def start_sync(self) -> None:
        control = find_first(self.page, [by_text(SYNC_LABEL, BUTTON_SELECTOR)])
        if control is None:
            logger.warning("Sync control not found; waiting for background sync")
            return
        try:
            control.click(timeout=self._ms(self.config.timeout))
        except PlaywrightError as exc:
            logger.warning(f"Sync control click failed: {exc}")

    def sync_finished(self) -> bool:
        text = page_text(self.page)
        if any(marker in text for marker in SYNC_REQUIRED_MARKERS):
            return False
        export_visible = EXPORT_JSON_LABEL in text or INCLUDE_MEDIA_LABEL in text
        if export_visible and (SYNCING_MARKER not in text or SYNC_COMPLETE_MARKER in text):
            return True
        button = find_first(self.page, [by_text(EXPORT_JSON_LABEL, BUTTON_SELECTOR)])
        try:
            return button is not None and button.is_enabled()
        except PlaywrightError:
            return False

    def wait_for_sync(self, max_attempts: Optional[int] = None) -> int:
        """Poll until the journal has synced; returns the attempts used."""

        attempts = max_attempts or self.config.sync_max_attempts
        for attempt in range(1, attempts + 1):
            self.page.wait_for_timeout(self._ms(self.config.sync_poll_interval))
            if self.sync_finished():
                logger.info(f"Journal sync completed after {attempt} attempts")
                return attempt
            logger.debug(f"Sync attempt {attempt}/{attempts}...")
        raise SyncTimeoutError(attempts, self.config.sync_poll_interval)

    def confirm_media_inclusion(self) -> bool:
        """Choose a media option; returns True when media is included."""

        control = wait_for_first(
            self.page,
            [by_text(INCLUDE_MEDIA_LABEL), by_text(WITHOUT_MEDIA_LABEL)],
            self.config.timeout,
            self.config.locate_interval,
        )
        if control is None:
            raise ExportDialogError("Could not find either Include media or Export without media button")
        include_media = INCLUDE_MEDIA_LABEL.lower() in (control.inner_text() or "").lower()
        control.click(timeout=self._ms(self.config.timeout))
        logger.info("Including media in export" if include_media else "Exporting without media")
        return include_media

    def acquire_artifact(self) -> Path:
        page = self.page
        started = time.time()
        seen = self.session.seen_urls
        channels = [NativeDownloadChannel(self.session), BlobUrlChannel(seen), DownloadLinkChannel(seen)]
        pending: "queue.Queue[ArtifactCandidate]" = queue.Queue()
        ticks = self.config.artifact_max_ticks

        for tick in range(1, ticks + 1):
            for channel in channels:
                try:
                    for candidate in channel.poll(page):
                        pending.put(candidate)
                except PlaywrightError as exc:
                    logger.debug(f"{channel.name} channel check failed: {exc}")

            while not pending.empty():
                candidate = pending.get_nowait()
                if not accept_candidate(candidate, self.config.min_blob_size):
                    logger.debug(f"Skipping {candidate.mime or 'unknown'} blob of {candidate.size} bytes")
                    continue
                try:
                    artifact = self.retrieve(candidate)
                except (PlaywrightError, OSError, ValueError) as exc:
                    logger.warning(f"Failed to retrieve {candidate.channel} candidate {candidate.url}: {exc}")
                    continue
                if artifact is not None:
                    logger.info(f"Export recovered via {candidate.channel}: {artifact}")
                    self.session.artifacts.append(artifact)
                    return artifact

            logger.debug(f"Artifact check {tick}/{ticks}...")
            if tick < ticks:
                page.wait_for_timeout(self._ms(self.config.artifact_tick_interval))

        logger.warning("No download detected; checking known download locations")
        since = self._requested_at
        if since is None:
            since = started - self.config.recent_window
        found = sweep_download_locations(
            default_download_locations(self.config.download_dir),
            self.config.download_dir,
            since,
            exclude=self.session.artifacts,
        )
        if found is not None:
            self.session.artifacts.append(found)
            return found
        raise ArtifactNotFoundError(
            "No export file found. The download may not have completed or may be in an unexpected location."
        )

    def retrieve(self, candidate: ArtifactCandidate) -> Optional[Path]:
        if candidate.channel == NativeDownloadChannel.name:
            return self._save_download(candidate)
        if candidate.url.startswith("blob:"):
            return self._save_blob(candidate)
        # Plain link: click it and let the download channel pick the file up.
        clicked = self.page.evaluate(CLICK_LINK_SCRIPT, candidate.url)
        logger.debug(f"Clicked download link {candidate.url}: {clicked}")
        return None

    def _save_download(self, candidate: ArtifactCandidate) -> Optional[Path]:
        download: Download = candidate.handle
        failure = download.failure()
        if failure:
            logger.warning(f"Download {candidate.url} failed: {failure}")
            return None
        name = sanitize_filename(candidate.filename or f"dayone-export-{int(time.time() * 1000)}.zip")
        destination = self.config.download_dir / name
        self.config.download_dir.mkdir(parents=True, exist_ok=True)
        download.save_as(str(destination))
        if not destination.exists() or destination.stat().st_size == 0:
            return None
        return destination

    def _save_blob(self, candidate: ArtifactCandidate) -> Optional[Path]:
        encoded = self.page.evaluate(FETCH_BLOB_SCRIPT, candidate.url)
        try:
            content = base64.b64decode(encoded or "", validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Blob {candidate.url} returned invalid data") from exc
        if not content:
            return None
        if candidate.size and len(content) != candidate.size:
            logger.warning(
                f"Blob {candidate.url} returned {len(content)} bytes, expected {candidate.size}"
            )
            return None

        if candidate.filename:
            name = sanitize_filename(candidate.filename)
        else:
            suffix = ".zip" if content[:2] == b"PK" else ".json"
            name = f"dayone-export-{int(time.time() * 1000)}{suffix}"
        destination = self.config.download_dir / name
        self.config.download_dir.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(content)
        return destination


def extract_and_parse_export(file_path: Path, journal_name: Optional[str] = None) -> List[Entry]:
    """Read entries from a Day One export archive or bare JSON document.

    Multi-journal exports tag each entry with its journal; when tags are
    present only entries whose journal contains ``journal_name`` are kept.
    """

    path = Path(file_path)
    try:
        if zipfile.is_zipfile(path):
            with zipfile.ZipFile(path) as archive:
                member = next(
                    (
                        name
                        for name in archive.namelist()
                        if name.lower().endswith(".json") and not name.startswith("__MACOSX")
                    ),
                    None,
                )
                if member is None:
                    raise ExportFormatError(f"No JSON file found in export archive {path}")
                raw = archive.read(member).decode("utf-8")
        else:
            raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
    except (OSError, zipfile.BadZipFile, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ExportFormatError(f"Could not read export {path}: {exc}") from exc

    if isinstance(data, Mapping):
        items = data.get("entries") or []
    elif isinstance(data, list):
        items = data
    else:
        raise ExportFormatError(f"Unexpected export layout in {path}")

    entries: List[Entry] = []
    for item in items:
        if not isinstance(item, Mapping) or not item.get("uuid"):
            logger.warning(f"Skipping export entry without uuid in {path.name}")
            continue
        entries.append(Entry.from_export(item))

    if journal_name and any(entry.journal for entry in entries):
        wanted = journal_name.lower()
        entries = [entry for entry in entries if entry.journal and wanted in entry.journal.lower()]

    logger.info(f"Found {len(entries)} entries in {journal_name or path.name}")
    return entries


def cleanup_downloads(artifacts: Iterable[Path]) -> int:
    """Delete the export files a session recovered; returns how many were removed.

    Nothing else in the download directory is touched.
    """

    removed = 0
    for path in dict.fromkeys(Path(item) for item in artifacts):
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        removed += 1
    return removed
