#!/usr/bin/env python3
"""
EHR System Export Agent

Kernel app exposing a single action, ``export-report``. The action provisions
a stealth Kernel browser, lets a computer-use agent log into the EHR demo,
open the Reports page and click "Export CSV", then reports how long it took,
what the agent said last, and which file the browser downloaded.

Deploy:
    kernel deploy main.py --env OPENAI_API_KEY=...
    kernel invoke ehr-system export-report --payload '{"task": "..."}'

Run locally:
    python main.py --task "Open the reports page and export it" --verbose
"""

import asyncio
import json
import logging
import os
import time
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, TypedDict

import fire
import kernel
from kernel import AsyncKernel

import computers
from agent.cua import Agent
from agent.redact import sanitize_item
from agent.safety import auto_acknowledge
from ehr_config import load_config, load_env, setup_logging

load_env()
if not logging.getLogger().handlers:
    setup_logging()

logger = logging.getLogger(__name__)

if not os.getenv("OPENAI_API_KEY"):
    raise RuntimeError("OPENAI_API_KEY is not set")

CONFIG = load_config()

MODEL = CONFIG["model"]
DOWNLOAD_LISTEN_TIMEOUT_MS = CONFIG["download"]["listen_timeout_ms"]
DOWNLOAD_FALLBACK_SECONDS = CONFIG["download"]["fallback_timeout_s"]

DEFAULT_TASK = """
Go to https://ehr-system-six.vercel.app/login
Login with any email and password (e.g. user@example.com / password).
Navigate to the "Reports" page.
Find the "Export CSV" button and click it to download the report.
Wait for the download to start.
CRITICAL: Do not ask for confirmation. Perform all steps immediately.
"""


class ExportReportInput(TypedDict, total=False):
    task: str
    include_logs: bool


class ExportReportOutput(TypedDict, total=False):
    elapsed: float
    answer: Optional[str]
    download: Optional[str]
    logs: List[Dict[str, Any]]


app = kernel.App(CONFIG["app_name"])

_kernel_client: Optional[AsyncKernel] = None


def _get_kernel_client() -> AsyncKernel:
    """Lazily build the Kernel client (reads KERNEL_API_KEY)."""
    global _kernel_client
    if _kernel_client is None:
        _kernel_client = AsyncKernel()
    return _kernel_client


def _elapsed_since(start: float) -> float:
    return round(time.time() - start, 2)


def extract_answer(items: List[Dict[str, Any]]) -> Optional[str]:
    """
    Pull the final answer out of an agent run log.

    Only chat messages count: entries with a string role and a list of
    content parts. The last assistant message wins, and within it the last
    content part, which must carry a ``text`` field.
    """
    messages = [
        item for item in items
        if isinstance(item, dict)
        and item.get("type", "message") == "message"
        and isinstance(item.get("role"), str)
        and isinstance(item.get("content"), list)
    ]
    assistant = next((m for m in reversed(messages) if m["role"] == "assistant"), None)
    if assistant is None or not assistant["content"]:
        return None

    last_content = assistant["content"][-1]
    if isinstance(last_content, dict) and "text" in last_content:
        return last_content["text"]
    return None


def _build_conversation(task: str) -> List[Dict[str, Any]]:
    now = datetime.now(timezone.utc).isoformat()
    return [
        {
            "role": "system",
            "content": (
                f"You are an automated agent. Current date and time: {now}. "
                "You must complete the task fully without asking for permission."
            ),
        },
        {
            "type": "message",
            "role": "user",
            "content": [{"type": "input_text", "text": task}],
        },
    ]


async def _race_download(download_task: "asyncio.Task", fallback_seconds: float) -> Optional[str]:
    """Return the download if it lands within fallback_seconds, else None."""
    done, _ = await asyncio.wait({download_task}, timeout=fallback_seconds)
    if download_task in done:
        return download_task.result()
    return None


async def _cleanup(session_id: str, computer, download_task: Optional["asyncio.Task"]) -> None:
    """Stop the download listener, detach from the browser, delete the session."""
    if download_task is not None:
        if not download_task.done():
            download_task.cancel()
        await asyncio.gather(download_task, return_exceptions=True)

    if computer is not None:
        try:
            await computer.close()
        except Exception as e:
            logger.warning("Failed to close computer: %s", e)

    try:
        await _get_kernel_client().browsers.delete_by_id(session_id)
        logger.info("Deleted browser session %s", session_id)
    except Exception as e:
        logger.warning("Failed to delete browser session %s: %s", session_id, e)


async def export_report(ctx: kernel.KernelContext, payload: Optional[ExportReportInput] = None) -> ExportReportOutput:
    start = time.time()
    payload = payload or {}
    task = payload.get("task") or DEFAULT_TASK

    create_kwargs: Dict[str, Any] = {"stealth": True}
    invocation_id = getattr(ctx, "invocation_id", None)
    if invocation_id:
        create_kwargs["invocation_id"] = invocation_id

    kb = await _get_kernel_client().browsers.create(**create_kwargs)
    print(f"> Kernel browser live view url: {kb.browser_live_view_url}")

    computer = None
    download_task = None
    try:
        computer = await computers.create(
            "kernel",
            cdp_ws_url=kb.cdp_ws_url,
            width=CONFIG["display"]["width"],
            height=CONFIG["display"]["height"],
            download_dir=CONFIG["download"]["save_dir"],
        )

        agent = Agent(
            model=MODEL,
            computer=computer,
            tools=[],
            acknowledge_safety_check_callback=auto_acknowledge,
            screenshot_dir=CONFIG["agent"]["screenshot_dir"],
        )

        print("Starting download listener...")
        download_task = asyncio.create_task(computer.wait_for_download(DOWNLOAD_LISTEN_TIMEOUT_MS))

        logs = await agent.run_full_turn(
            _build_conversation(task),
            print_steps=CONFIG["agent"]["print_steps"],
            debug=CONFIG["agent"]["debug"],
            show_images=CONFIG["agent"]["show_images"],
        )

        download = await _race_download(download_task, DOWNLOAD_FALLBACK_SECONDS)
        if download:
            print(f"Download captured: {download}")
        else:
            print("No download captured within timeout.")

        result: ExportReportOutput = {
            "elapsed": _elapsed_since(start),
            "answer": extract_answer(logs),
            "download": download,
        }
        if payload.get("include_logs"):
            result["logs"] = [sanitize_item(item) for item in logs]
        return result

    except Exception:
        elapsed = _elapsed_since(start)
        logger.exception("Error in export-report")
        return {"elapsed": elapsed, "answer": None}

    finally:
        await _cleanup(kb.session_id, computer, download_task)


app.action("export-report")(export_report)


def main(task: str = None, include_logs: bool = False, verbose: bool = False):
    """
    Run the export-report action once from the command line.

    Args:
        task (str): Instructions for the agent. Defaults to the EHR export flow.
        include_logs (bool): Include the sanitized agent log in the output.
        verbose (bool): Enable debug logging.
    """
    setup_logging(verbose)

    payload: ExportReportInput = {"include_logs": include_logs}
    if task:
        payload["task"] = task

    ctx = SimpleNamespace(invocation_id=None)
    result = asyncio.run(export_report(ctx, payload))
    print(json.dumps(result, indent=2, ensure_ascii=False))


def _cli():
    fire.Fire(main)


if __name__ == "__main__":
    _cli()
