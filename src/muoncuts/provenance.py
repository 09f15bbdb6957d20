"""Pass-number inference from dataset paths and database container keys."""

from __future__ import annotations

import re
from pathlib import PurePath

_PASS_PATTERN = re.compile(r"pass(\d+)", re.IGNORECASE)


def infer_pass_number(descriptor: str | PurePath | None) -> int | None:
    """Return N from the first `passN` token (e.g. `.../pass2_muon/AliESDs.root`).

    `None` means the descriptor carries no pass information.
    """
    if descriptor is None:
        return None
    match = _PASS_PATTERN.search(str(descriptor))
    if match is None:
        return None
    return int(match.group(1))
