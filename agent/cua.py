"""
Computer-Use Agent

Drives a Computer through the OpenAI Responses API with the
``computer_use_preview`` tool. One call to ``run_full_turn`` keeps asking the
model for the next step, executes every computer/function call it emits, and
returns once the model answers with an assistant message.

Usage:
    from agent.cua import Agent

    agent = Agent(model="computer-use-preview", computer=computer, tools=[])
    items = await agent.run_full_turn([
        {"role": "user", "content": "Open example.com"},
    ])
"""

import base64
import json
import logging
import time
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

from openai import AsyncOpenAI

from agent.display import print_step
from agent.redact import redact_sensitive_text, sanitize_item
from agent.safety import check_blocklisted_url

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "computer-use-preview"


class AgentError(Exception):
    """Base class for errors raised while running a computer-use turn."""


class SafetyCheckError(AgentError):
    """Raised when the safety-check callback refuses a pending check."""


def _to_dict(item: Any) -> Any:
    """Convert an API object (pydantic model or namespace) into plain dicts."""
    if isinstance(item, dict):
        return item
    if hasattr(item, "model_dump"):
        return item.model_dump(exclude_none=True)
    if isinstance(item, SimpleNamespace):
        return {k: _to_dict(v) for k, v in vars(item).items() if v is not None}
    if isinstance(item, list):
        return [_to_dict(v) for v in item]
    return item


class Agent:
    """
    Computer-use agent bound to a single Computer.

    Function tools in ``tools`` are answered by calling the same-named method
    on the computer (e.g. a ``goto`` tool maps to ``computer.goto``).
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        computer=None,
        tools: Optional[List[Dict[str, Any]]] = None,
        acknowledge_safety_check_callback: Optional[Callable[[str], bool]] = None,
        client: Optional[AsyncOpenAI] = None,
        screenshot_dir: str = "screenshots",
    ):
        self.model = model
        self.computer = computer
        self.tools = list(tools or [])
        self.acknowledge_safety_check_callback = (
            acknowledge_safety_check_callback or (lambda message: False)
        )
        self._client = client
        self.screenshot_dir = Path(screenshot_dir)

        self.print_steps = True
        self.debug = False
        self.show_images = False

        if computer is not None:
            width, height = computer.dimensions
            self.tools = [
                {
                    "type": "computer_use_preview",
                    "display_width": width,
                    "display_height": height,
                    "environment": computer.environment,
                },
                *self.tools,
            ]

    @property
    def client(self) -> AsyncOpenAI:
        """Lazily build the OpenAI client from OPENAI_API_KEY."""
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    def _debug_print(self, label: str, payload: Any) -> None:
        if not self.debug:
            return
        if isinstance(payload, list):
            payload = [sanitize_item(item) for item in payload]
        dumped = json.dumps(payload, indent=2, default=str)
        logger.debug("%s:\n%s", label, redact_sensitive_text(dumped))

    def _save_screenshot(self, screenshot_b64: str) -> None:
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        path = self.screenshot_dir / f"step_{int(time.time() * 1000)}.png"
        path.write_bytes(base64.b64decode(screenshot_b64))
        logger.info("Screenshot saved to %s", path)

    async def _create_response(self, input_items: List[Dict[str, Any]]):
        self._debug_print("Responses API input", input_items)
        response = await self.client.responses.create(
            model=self.model,
            input=input_items,
            tools=self.tools,
            truncation="auto",
        )
        return response

    async def handle_item(self, item: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Handle one output item; return the items to send back to the model."""
        item_type = item.get("type")

        if self.print_steps:
            print_step(item)

        if item_type == "function_call":
            name = item["name"]
            try:
                args = json.loads(item.get("arguments") or "{}")
            except json.JSONDecodeError as e:
                logger.warning("Invalid JSON in function call %s: %s", name, e)
                args = {}

            method = getattr(self.computer, name, None)
            if callable(method):
                await method(**args)
            else:
                logger.warning("No computer method for function call: %s", name)

            return [{
                "type": "function_call_output",
                "call_id": item["call_id"],
                "output": "success",
            }]

        if item_type == "computer_call":
            action = dict(item["action"])
            action_type = action.pop("type")
            method = getattr(self.computer, action_type, None)
            if not callable(method):
                raise AgentError(f"Unsupported computer action: {action_type}")
            await method(**action)

            screenshot_b64 = await self.computer.screenshot()
            if self.show_images:
                self._save_screenshot(screenshot_b64)

            pending_checks = item.get("pending_safety_checks") or []
            for check in pending_checks:
                message = check.get("message", "")
                if not self.acknowledge_safety_check_callback(message):
                    raise SafetyCheckError(f"Safety check not acknowledged: {message}")

            call_output: Dict[str, Any] = {
                "type": "computer_call_output",
                "call_id": item["call_id"],
                "acknowledged_safety_checks": pending_checks,
                "output": {
                    "type": "input_image",
                    "image_url": f"data:image/png;base64,{screenshot_b64}",
                },
            }

            if self.computer.environment == "browser":
                current_url = await self.computer.get_current_url()
                check_blocklisted_url(current_url)
                call_output["output"]["current_url"] = current_url

            return [call_output]

        return []

    async def run_full_turn(
        self,
        input_items: List[Dict[str, Any]],
        print_steps: bool = True,
        debug: bool = False,
        show_images: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Run the model until it replies with an assistant message.

        Args:
            input_items: Conversation seed (system/user messages).
            print_steps: Print a one-line preview of every step.
            debug: Log every request with images and secrets scrubbed.
            show_images: Save each screenshot under screenshot_dir.

        Returns:
            Items produced during this turn, in order.
        """
        self.print_steps = print_steps
        self.debug = debug
        self.show_images = show_images

        new_items: List[Dict[str, Any]] = []

        while not new_items or new_items[-1].get("role") != "assistant":
            response = await self._create_response(list(input_items) + new_items)
            output = [_to_dict(item) for item in (getattr(response, "output", None) or [])]
            if not output:
                raise AgentError(f"No output from model: {response!r}")

            self._debug_print("Responses API output", output)
            new_items.extend(output)
            for item in output:
                new_items.extend(await self.handle_item(item))

        return new_items
