"""Command-line entry point: inspect and manage stored form data, or visit a page."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from formation_agent.config import Config
from formation_agent.core.browser_manager import BrowserManager
from formation_agent.core.exceptions import StorageError
from formation_agent.core.form_orchestrator import FormOrchestrator
from formation_agent.core.models import ConfirmationAction, PolicyMode
from formation_agent.messaging import message_types as mt
from formation_agent.messaging.channel import LoopbackChannel
from formation_agent.messaging.notification_service import NotificationService
from formation_agent.storage.backends import JsonFileKeyValueStore
from formation_agent.storage.field_memory_store import FieldMemoryStore
from formation_agent.storage.form_storage import FORM_KEY_PREFIX, FormStorage
from formation_agent.storage.site_policy import GlobalSaveMode, SitePolicyStore
from formation_agent.tools.url_pattern import hostname_of

logger = logging.getLogger(__name__)

ANSWERS = {
    "y": ConfirmationAction.PRIMARY,
    "yes": ConfirmationAction.PRIMARY,
    mt.ACTION_SAVE: ConfirmationAction.PRIMARY,
    mt.ACTION_FILL: ConfirmationAction.PRIMARY,
    "n": ConfirmationAction.DECLINE,
    "no": ConfirmationAction.DECLINE,
    mt.ACTION_CANCEL: ConfirmationAction.DECLINE,
    mt.ACTION_NEVER: ConfirmationAction.NEVER,
}


def parse_answer(text: Optional[str]) -> ConfirmationAction:
    """Map a typed answer to a decision; anything unrecognized declines."""
    return ANSWERS.get((text or "").strip().lower(), ConfirmationAction.DECLINE)


def make_prompt(fixed_answer: Optional[str] = None):
    """Build the prompt used by the notification service.

    Args:
        fixed_answer: Answer every confirmation with this instead of asking

    Returns:
        Coroutine function suitable for NotificationService
    """
    async def prompt(kind: mt.ConfirmationKind, message: Dict[str, Any]) -> ConfirmationAction:
        if fixed_answer is not None:
            return parse_answer(fixed_answer)
        if kind is mt.ConfirmationKind.SAVE:
            values = message.get("formData", {}).get("values", {})
            question = f"Save {message.get('fieldCount')} field(s) on {message.get('siteName')} ({', '.join(values)})?"
        else:
            question = (
                f"Autofill {message.get('fieldCount')} field(s) on {message.get('siteName')} "
                f"({', '.join(message.get('previewFields', []))})?"
            )
        answer = await asyncio.to_thread(input, f"{question} [y/n/never] ")
        return parse_answer(answer)

    return prompt


class ConsoleNotifier:
    """Prints toasts to the terminal."""

    def notify(self, message: str, level: str = "info") -> None:
        print(f"[{level}] {message}")


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


async def list_records(store: JsonFileKeyValueStore) -> None:
    entries = await FormStorage(store).list_all()
    memories = await FieldMemoryStore(store).get_all()
    if not entries and not memories:
        print("No saved data")
        return
    for entry in entries:
        print(
            f"{entry.storage_key}  ({len(entry.data.fields)} fields, "
            f"save={entry.policy.save_mode.value}, autofill={entry.policy.autofill_mode.value})"
        )
    for memory in memories:
        print(f"{memory.id}  {memory.title}  {memory.url_pattern}  ({len(memory.fields)} fields, used {memory.use_count}x)")


async def delete_record(store: JsonFileKeyValueStore, key: str) -> bool:
    if key.startswith(FORM_KEY_PREFIX):
        await FormStorage(store).delete_key(key)
        return True
    return await FieldMemoryStore(store).delete(key)


async def clear_site(store: JsonFileKeyValueStore, origin: str) -> None:
    removed = await FormStorage(store).clear_site(origin)
    memories = await FieldMemoryStore(store).delete_by_site(hostname_of(origin))
    print(f"Removed {len(removed)} form record(s) and {memories} field memory(ies) for {origin}")


async def show_stats(store: JsonFileKeyValueStore) -> None:
    stats = await FieldMemoryStore(store).get_stats()
    stats["recently_used"] = [memory.to_dict() for memory in stats["recently_used"]]
    _print_json({"storage": await FormStorage(store).storage_info(), "field_memories": stats})


async def manage_policy(store: JsonFileKeyValueStore, args: argparse.Namespace) -> None:
    policies = SitePolicyStore(store)
    if args.policy_command == "set":
        policy = await policies.save(
            args.origin,
            args.signature,
            save_mode=PolicyMode(args.save) if args.save else None,
            autofill_mode=PolicyMode(args.autofill) if args.autofill else None,
        )
    elif args.policy_command == "reset":
        await policies.reset(args.origin, args.signature)
        policy = await policies.get(args.origin, args.signature)
    else:
        policy = await policies.get(args.origin, args.signature)
    _print_json(policy.to_dict())


async def manage_save_mode(store: JsonFileKeyValueStore, state: str) -> None:
    save_mode = GlobalSaveMode(store)
    if state in ("on", "off"):
        await save_mode.set(state == "on")
    print(f"Save mode is {'on' if await save_mode.is_enabled() else 'off'}")


async def visit(config: Config, store: JsonFileKeyValueStore, url: str, visible: bool, answer: Optional[str]) -> int:
    """
    Open a page, offer autofill, then offer to save when the user leaves it.

    Args:
        config: Loaded configuration
        store: Shared key-value store
        url: Page to open
        visible: Whether to show the browser window
        answer: Fixed answer for every confirmation, or None to ask on the terminal

    Returns:
        Process exit code
    """
    options = config.get_browser_options()
    browser_manager = BrowserManager(visible=visible or not options['headless'], timeout=options['timeout'])
    if not await browser_manager.initialize():
        return 1

    page_end, background_end = LoopbackChannel.pair()
    service = NotificationService(background_end, GlobalSaveMode(store), make_prompt(answer))
    service.start()
    orchestrator = None
    try:
        if not await browser_manager.navigate(url):
            return 1

        notifier = ConsoleNotifier()
        orchestrator = FormOrchestrator.from_config(browser_manager.get_document(), store, page_end, config, notifier)
        evaluations = await orchestrator.on_page_settled()
        await orchestrator.wait_until_idle()
        for evaluation in evaluations:
            logger.info(f"{evaluation.key}: {evaluation.state.value} {evaluation.reason}")

        if answer is None:
            await asyncio.to_thread(input, "Fill in the page, then press Enter to leave it... ")
        for outcome in await orchestrator.on_before_unload():
            print(f"{outcome.storage_key}: {outcome.status.value}")
        return 0
    finally:
        if orchestrator is not None:
            await orchestrator.teardown()
        service.stop()
        background_end.close()
        page_end.close()
        await browser_manager.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Remember and refill web form data.")
    parser.add_argument("-c", "--config", help="Path to a JSON or YAML configuration file.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List saved forms and field memories.")

    delete_parser = subparsers.add_parser("delete", help="Delete a saved form (by storage key) or a field memory (by id).")
    delete_parser.add_argument("key")

    clear_parser = subparsers.add_parser("clear-site", help="Delete everything stored for an origin.")
    clear_parser.add_argument("origin", help="Origin such as https://example.com")

    subparsers.add_parser("stats", help="Show storage statistics.")

    policy_parser = subparsers.add_parser("policy", help="Show or change a site policy.")
    policy_parser.add_argument("policy_command", choices=["get", "set", "reset"])
    policy_parser.add_argument("origin")
    policy_parser.add_argument("signature", help="Form signature, or memory_<id> for a field memory")
    modes = [mode.value for mode in PolicyMode]
    policy_parser.add_argument("--save", choices=modes, help="Save mode for 'set'.")
    policy_parser.add_argument("--autofill", choices=modes, help="Autofill mode for 'set'.")

    save_mode_parser = subparsers.add_parser("save-mode", help="Arm, disarm or show the global save mode.")
    save_mode_parser.add_argument("state", choices=["on", "off", "status"])

    visit_parser = subparsers.add_parser("visit", help="Open a page in a browser and run autofill and save.")
    visit_parser.add_argument("url")
    visit_parser.add_argument("--visible", action="store_true", help="Show the browser window.")
    visit_parser.add_argument(
        "--answer",
        choices=sorted({mt.ACTION_SAVE, mt.ACTION_FILL, mt.ACTION_CANCEL, mt.ACTION_NEVER}),
        help="Answer every confirmation with this action instead of prompting.",
    )
    return parser


async def run(args: argparse.Namespace, config: Config) -> int:
    store = JsonFileKeyValueStore(config.get_storage_path())
    if args.command == "list":
        await list_records(store)
    elif args.command == "delete":
        if not await delete_record(store, args.key):
            print(f"Nothing stored under {args.key}")
            return 1
    elif args.command == "clear-site":
        await clear_site(store, args.origin)
    elif args.command == "stats":
        await show_stats(store)
    elif args.command == "policy":
        await manage_policy(store, args)
    elif args.command == "save-mode":
        await manage_save_mode(store, args.state)
    elif args.command == "visit":
        return await visit(config, store, args.url, args.visible, args.answer)
    return 0


def main():
    """Main entry point for the CLI."""
    load_dotenv()
    args = build_parser().parse_args()

    config = Config(args.config)
    config.configure_logging()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        sys.exit(asyncio.run(run(args, config)))
    except StorageError as e:
        logger.error(f"Storage error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.critical(f"Command failed with unhandled exception: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
