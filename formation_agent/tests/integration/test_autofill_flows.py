"""End-to-end autofill flows over an in-memory page, store and channel."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from formation_agent.core.autofill_executor import AutofillExecutor
from formation_agent.core.decision_engine import FormState
from formation_agent.core.form_orchestrator import FormOrchestrator
from formation_agent.core.memory_document import MemoryDocument
from formation_agent.core.models import ConfirmationAction, PolicyMode, SaveStatus, StorageKey
from formation_agent.messaging import message_types as mt
from formation_agent.messaging.notification_service import NotificationService
from formation_agent.messaging.notifier import LoggingNotifier
from formation_agent.storage.form_storage import FormStorage
from formation_agent.storage.site_policy import GlobalSaveMode, SitePolicyStore

ORIGIN = "https://a.com"
SIGNATURE = "fields_email|name"
STORAGE_KEY = "form_https://a.com/_fields_email|name"


def build_page(email_value=None, name_value=None, with_search_form=False):
    document = MemoryDocument("https://a.com/")
    form = document.add_form()
    document.add_label("Email", parent=form, for_="email")
    email = document.add_input(parent=form, type="email", name="email", id="email", value=email_value)
    document.add_label("Name", parent=form, for_="name")
    name = document.add_input(parent=form, type="text", name="name", id="name", value=name_value)
    document.add_input(parent=form, type="password", name="password")
    if with_search_form:
        search = document.add_form()
        document.add_input(parent=search, type="search", name="q")
    return document, email, name


def make_orchestrator(document, store, channel, notifier=None):
    return FormOrchestrator(
        document,
        store,
        channel,
        notifier=notifier or LoggingNotifier(),
        executor=AutofillExecutor(document, highlight_duration=0),
    )


def start_service(channel, store, prompt):
    service = NotificationService(channel, GlobalSaveMode(store), prompt)
    service.start()
    return service


async def store_form(store, values, autofill_mode=None, signature=SIGNATURE):
    await FormStorage(store).save(StorageKey(ORIGIN, "/", signature), values)
    if autofill_mode is not None:
        await SitePolicyStore(store).save(ORIGIN, signature, autofill_mode=autofill_mode)


async def wait_for(predicate, attempts: int = 200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_save_then_revisit_fills_both_fields(store, channels):
    page_end, _ = channels
    await SitePolicyStore(store).save(ORIGIN, SIGNATURE, save_mode=PolicyMode.ALWAYS, autofill_mode=PolicyMode.ALWAYS)
    await GlobalSaveMode(store).set(True)

    document, email, name = build_page()
    orchestrator = make_orchestrator(document, store, page_end)
    evaluations = await orchestrator.on_page_settled()
    assert [e.state for e in evaluations] == [FormState.CHECKED_NO_DATA]

    email.value = "a@b.com"
    name.value = "Ann"
    outcome = await orchestrator.on_form_submit(0)
    await orchestrator.teardown()

    assert outcome.status is SaveStatus.SAVED
    assert outcome.storage_key == STORAGE_KEY
    stored = await store.get([STORAGE_KEY])
    assert stored[STORAGE_KEY]["fields"] == {"email": "a@b.com", "name": "Ann"}
    assert not await GlobalSaveMode(store).is_enabled()

    revisit, email, name = build_page()
    orchestrator = make_orchestrator(revisit, store, page_end)
    [evaluation] = await orchestrator.on_page_settled()
    await orchestrator.teardown()

    assert evaluation.state is FormState.APPLIED
    assert evaluation.result.filled_count == 2
    assert evaluation.result.skipped_count == 0
    assert (email.value, name.value) == ("a@b.com", "Ann")


@pytest.mark.asyncio
async def test_prefilled_field_is_never_overwritten(store, channels):
    page_end, _ = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"}, PolicyMode.ALWAYS)
    document, email, name = build_page(name_value="Bob")

    orchestrator = make_orchestrator(document, store, page_end)
    [evaluation] = await orchestrator.on_page_settled()
    await orchestrator.teardown()

    assert evaluation.result.filled_count == 1
    assert email.value == "a@b.com"
    assert name.value == "Bob"


def build_login_and_signup_page(login_value="keep@x.com"):
    document = MemoryDocument("https://a.com/")
    login = document.add_form()
    login_email = document.add_input(parent=login, type="email", name="email", value=login_value)
    signup = document.add_form()
    signup_email = document.add_input(parent=signup, type="email", name="email")
    signup_name = document.add_input(parent=signup, type="text", name="name")
    return document, login_email, signup_email, signup_name


@pytest.mark.asyncio
async def test_shared_field_name_fills_only_the_matching_form(store, channels):
    page_end, _ = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"}, PolicyMode.ALWAYS)
    document, login_email, signup_email, signup_name = build_login_and_signup_page()

    orchestrator = make_orchestrator(document, store, page_end)
    login, signup = await orchestrator.on_page_settled()
    await orchestrator.teardown()

    assert login.state is FormState.CHECKED_NO_DATA
    assert signup.state is FormState.APPLIED
    assert signup.result.filled_count == 2
    assert login_email.value == "keep@x.com"
    assert (signup_email.value, signup_name.value) == ("a@b.com", "Ann")


@pytest.mark.asyncio
async def test_confirmed_fill_targets_the_prompted_form(store, channels):
    page_end, background_end = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"})
    start_service(background_end, store, AsyncMock(return_value=ConfirmationAction.PRIMARY))
    document, login_email, signup_email, signup_name = build_login_and_signup_page(login_value=None)

    orchestrator = make_orchestrator(document, store, page_end)
    _, signup = await orchestrator.on_page_settled()
    await orchestrator.wait_until_idle()
    await orchestrator.teardown()
    await background_end.drain()

    assert signup.state is FormState.APPLIED
    assert login_email.value == ""
    assert (signup_email.value, signup_name.value) == ("a@b.com", "Ann")


@pytest.mark.asyncio
async def test_second_evaluation_finds_nothing_to_fill(store, channels):
    page_end, _ = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"}, PolicyMode.ALWAYS)
    document, _, _ = build_page()
    orchestrator = make_orchestrator(document, store, page_end)

    [first] = await orchestrator.on_page_settled()
    [second] = await orchestrator.on_page_settled()
    await orchestrator.teardown()

    assert first.filled_count == 2
    assert second.state is FormState.SUPPRESSED
    assert second.filled_count == 0


@pytest.mark.asyncio
async def test_never_decision_sticks_without_another_prompt(store, channels):
    page_end, background_end = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"})
    prompt = AsyncMock(return_value=ConfirmationAction.NEVER)
    start_service(background_end, store, prompt)
    document, email, _ = build_page()
    orchestrator = make_orchestrator(document, store, page_end)

    [first] = await orchestrator.on_page_settled()
    assert first.state is FormState.QUEUED
    await orchestrator.wait_until_idle()
    await background_end.drain()

    assert first.state is FormState.SUPPRESSED
    assert first.action is ConfirmationAction.NEVER
    policy = await SitePolicyStore(store).get(ORIGIN, SIGNATURE)
    assert policy.autofill_mode is PolicyMode.NEVER
    assert policy.save_mode is PolicyMode.ASK

    [second] = await orchestrator.on_page_settled()
    await orchestrator.wait_until_idle()
    await orchestrator.teardown()

    assert second.state is FormState.SUPPRESSED
    assert second.reason == "autofill mode is never"
    assert prompt.await_count == 1
    assert email.value == ""


@pytest.mark.asyncio
async def test_approve_fills_and_decline_leaves_policy(store, channels):
    page_end, background_end = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"})
    prompt = AsyncMock(side_effect=[ConfirmationAction.DECLINE, ConfirmationAction.PRIMARY])
    start_service(background_end, store, prompt)
    document, email, name = build_page()
    orchestrator = make_orchestrator(document, store, page_end)

    [declined] = await orchestrator.on_page_settled()
    await orchestrator.wait_until_idle()
    assert declined.state is FormState.SUPPRESSED
    assert declined.reason == "user declined"
    assert email.value == ""
    assert (await SitePolicyStore(store).get(ORIGIN, SIGNATURE)).autofill_mode is PolicyMode.ASK

    [approved] = await orchestrator.on_page_settled()
    await orchestrator.wait_until_idle()
    await orchestrator.teardown()
    await background_end.drain()

    assert approved.state is FormState.APPLIED
    assert approved.history == [FormState.IDLE, FormState.CHECKED_HAS_DATA, FormState.QUEUED]
    assert (email.value, name.value) == ("a@b.com", "Ann")
    kind, message = prompt.await_args.args
    assert kind is mt.ConfirmationKind.AUTOFILL
    assert message["siteName"] == "a.com"
    assert message["previewFields"] == ["email", "name"]


@pytest.mark.asyncio
async def test_field_typed_while_prompt_open_is_kept(store, channels):
    page_end, background_end = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"})
    document, email, name = build_page()

    async def prompt(kind, message):
        name.value = "Typed"
        return ConfirmationAction.PRIMARY

    start_service(background_end, store, prompt)
    orchestrator = make_orchestrator(document, store, page_end)
    [evaluation] = await orchestrator.on_page_settled()
    await orchestrator.wait_until_idle()
    await orchestrator.teardown()
    await background_end.drain()

    assert evaluation.result.filled_count == 1
    assert (email.value, name.value) == ("a@b.com", "Typed")


@pytest.mark.asyncio
async def test_confirmations_are_shown_one_at_a_time(store, channels):
    page_end, background_end = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"})
    await store_form(store, {"q": "shoes"}, signature="fields_q")
    outstanding = 0
    peak = 0
    previews = []

    async def prompt(kind, message):
        nonlocal outstanding, peak
        outstanding += 1
        peak = max(peak, outstanding)
        previews.append(message["previewFields"])
        for _ in range(5):
            await asyncio.sleep(0)
        outstanding -= 1
        return ConfirmationAction.DECLINE

    start_service(background_end, store, prompt)
    document, _, _ = build_page(with_search_form=True)
    orchestrator = make_orchestrator(document, store, page_end)

    evaluations = await orchestrator.on_page_settled()
    assert [e.state for e in evaluations] == [FormState.QUEUED, FormState.QUEUED]
    await orchestrator.wait_until_idle()
    await orchestrator.teardown()
    await background_end.drain()

    assert peak == 1
    assert sorted(previews) == [["email", "name"], ["q"]]
    assert all(e.state is FormState.SUPPRESSED for e in evaluations)


@pytest.mark.asyncio
async def test_missing_receiver_declines_with_retry_hint(store, channels):
    page_end, _ = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"})
    notifier = LoggingNotifier()
    document, email, _ = build_page()
    orchestrator = make_orchestrator(document, store, page_end, notifier)

    [evaluation] = await orchestrator.on_page_settled()
    await orchestrator.wait_until_idle()
    await orchestrator.teardown()

    assert evaluation.state is FormState.SUPPRESSED
    assert evaluation.action is ConfirmationAction.DECLINE
    assert email.value == ""
    assert ("warning", "Could not show the autofill prompt. Reload the page to try again.") in notifier.messages


@pytest.mark.asyncio
async def test_never_autofill_policy_suppresses_without_round_trip(store, channels):
    page_end, background_end = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"}, PolicyMode.NEVER)
    requests = []
    background_end.add_listener(requests.append)
    document, _, _ = build_page()
    orchestrator = make_orchestrator(document, store, page_end)

    [evaluation] = await orchestrator.on_page_settled()
    await orchestrator.wait_until_idle()
    await asyncio.sleep(0)
    await orchestrator.teardown()

    assert evaluation.state is FormState.SUPPRESSED
    assert requests == []


@pytest.mark.asyncio
async def test_teardown_abandons_open_confirmation(store, channels):
    page_end, background_end = channels
    await store_form(store, {"email": "a@b.com", "name": "Ann"})
    prompt_open = asyncio.Event()

    async def prompt(kind, message):
        prompt_open.set()
        await asyncio.Event().wait()

    start_service(background_end, store, prompt)
    document, email, _ = build_page()
    orchestrator = make_orchestrator(document, store, page_end)

    [evaluation] = await orchestrator.on_page_settled()
    await asyncio.wait_for(prompt_open.wait(), timeout=1)
    assert len(orchestrator.bridge.pending_request_ids) == 1

    await orchestrator.teardown()

    assert orchestrator.bridge.pending_request_ids == []
    assert evaluation.state is not FormState.APPLIED
    assert email.value == ""


@pytest.mark.asyncio
async def test_save_mode_broadcast_reaches_page(store, channels):
    page_end, background_end = channels
    notifier = LoggingNotifier()
    service = start_service(background_end, store, AsyncMock())
    document, _, _ = build_page()
    orchestrator = make_orchestrator(document, store, page_end, notifier)

    await service.set_save_mode(True)
    await wait_for(lambda: orchestrator.save_mode_enabled is not None)
    await orchestrator.teardown()

    assert orchestrator.save_mode_enabled is True
    assert ("info", "Save mode on") in notifier.messages
    assert await GlobalSaveMode(store).is_enabled()
