"""CLI presentation for computer-use steps.

Pure display functions with no Agent dependency. Used by Agent.handle_item
when print_steps is on.
"""

from typing import Any, Dict, Optional


def build_action_preview(action: Dict[str, Any], max_len: int = 40) -> str:
    """Build a one-line summary of a computer action, e.g. ``click(120, 48)``."""
    action_type = action.get("type", "?")

    if action_type in ("click", "double_click", "move", "scroll"):
        coords = f"{action.get('x')}, {action.get('y')}"
        if action_type == "scroll":
            coords += f", dx={action.get('scroll_x', 0)}, dy={action.get('scroll_y', 0)}"
        elif action_type == "click" and action.get("button", "left") != "left":
            coords += f", {action['button']}"
        return f"{action_type}({coords})"

    if action_type == "type":
        text = str(action.get("text", ""))
        if len(text) > max_len:
            text = text[:max_len - 3] + "..."
        return f'type("{text}")'

    if action_type == "keypress":
        return f"keypress({'+'.join(action.get('keys', []))})"

    if action_type == "drag":
        path = action.get("path", [])
        if path:
            start, end = path[0], path[-1]
            return f"drag(({start.get('x')}, {start.get('y')}) -> ({end.get('x')}, {end.get('y')}))"
        return "drag()"

    return f"{action_type}()"


def message_text(item: Dict[str, Any]) -> Optional[str]:
    """Concatenate the text parts of a message item, or None if it has none."""
    parts = [
        part.get("text")
        for part in item.get("content") or []
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    ]
    return "\n".join(parts) if parts else None


def print_step(item: Dict[str, Any]) -> None:
    """Print a single agent step in the CLI's emoji style."""
    item_type = item.get("type")
    if item_type == "message":
        text = message_text(item)
        if text:
            print(f"🤖 {text}")
    elif item_type == "computer_call":
        print(f"🖱️  {build_action_preview(item.get('action') or {})}")
    elif item_type == "function_call":
        print(f"📞 {item.get('name')}({item.get('arguments', '')})")
