"""Flag parsing shared by the setup, step and action commands."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from ..errors import ValidationError
from ..flow import Options
from ..state import Action

VALUE_FLAGS = {
    "--target": "target_path",
    "--repo": "repo_url",
    "--ref": "ref",
    "--subdir": "subdir",
    "--config": "config_path",
    "--bin": "binary_path",
    "--mode": "mode",
}
ACTION_VALUE_FLAGS = {
    "--action": "name",
    "--vectors": "vectors_path",
    "--watch": "watch_path",
}


def parse_options(args: Sequence[str], *, action: Optional[str] = None) -> Tuple[Options, List[str]]:
    """Parse ``args`` into ``Options``; return unrecognized positional words too."""

    options = Options()
    if action:
        options.action = Action(name=action)
    extras: List[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in VALUE_FLAGS or arg in ACTION_VALUE_FLAGS or arg in ("--client", "--max-fix-attempts"):
            if i + 1 >= len(args):
                raise ValidationError(f"{arg} requires a value")
            value = args[i + 1]
            i += 2
            if arg in VALUE_FLAGS:
                setattr(options, VALUE_FLAGS[arg], value)
            elif arg in ACTION_VALUE_FLAGS:
                setattr(options.action, ACTION_VALUE_FLAGS[arg], value)
            elif arg == "--client":
                options.clients.append(value)
            else:
                try:
                    options.max_fix_attempts = int(value)
                except ValueError:
                    raise ValidationError(f"--max-fix-attempts expects an integer, got '{value}'") from None
            continue
        if arg == "--all":
            options.all_clients = True
        elif arg == "--dry-run":
            options.action.fix_dry_run = True
        elif arg == "--apply":
            options.action.fix_apply = True
        elif arg == "--skip-selftest":
            options.skip_selftest = True
        elif arg.startswith("--"):
            raise ValidationError(f"unknown flag: {arg}")
        else:
            extras.append(arg)
        i += 1
    return options, extras


__all__ = ["parse_options"]
