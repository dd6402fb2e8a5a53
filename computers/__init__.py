"""
Computers Package

Backends the computer-use agent can drive. Each backend implements
computers.base.Computer; ``create`` builds one by name and opens it.

- kernel: Kernel-hosted remote Chromium, attached over CDP with Playwright
"""

import logging
from typing import Dict, Type

from computers.base import Computer
from computers.kernel import KernelComputer

logger = logging.getLogger(__name__)

COMPUTERS: Dict[str, Type[Computer]] = {
    "kernel": KernelComputer,
}


async def create(computer_type: str, **kwargs) -> Computer:
    """
    Build and open a computer.

    Args:
        computer_type: Registry key, e.g. "kernel".
        **kwargs: Backend constructor arguments (cdp_ws_url, width, ...).

    Returns:
        An opened Computer; the caller owns closing it.
    """
    try:
        computer_cls = COMPUTERS[computer_type]
    except KeyError:
        raise ValueError(
            f"Unknown computer type: {computer_type!r} (available: {', '.join(sorted(COMPUTERS))})"
        ) from None

    computer = computer_cls(**kwargs)
    try:
        await computer.open()
    except Exception:
        try:
            await computer.close()
        except Exception as e:
            logger.warning("Failed to close %s computer after open error: %s", computer_type, e)
        raise
    return computer


__all__ = ["COMPUTERS", "Computer", "KernelComputer", "create"]
