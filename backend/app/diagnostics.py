from typing import Any


def dbg(enabled: bool, *args: Any) -> None:
    if enabled:
        print("[consent]", *args)
