"""Slash command that forgets setup progress."""

from __future__ import annotations

import logging
from typing import List

from ..slash_commands import SlashCommand, SlashCommandContext
from ..state import setup_path
from .common import flow_context

logger = logging.getLogger("gatekeep.commands.reset")


def _handler(context: SlashCommandContext, _: List[str]) -> str:
    path = setup_path(flow_context(context).root)
    if not path.exists():
        return f"[reset] nothing to reset ({path} does not exist)."
    path.unlink()
    logger.info("Removed %s.", path)
    return f"[reset] removed {path}; the next /setup starts at S1."


COMMAND = SlashCommand(
    name="reset",
    description="Delete setup.json so the next run starts from the first step.",
    handler=_handler,
)
