"""Component naming.

A named type is registered under its bare name when that is free. On a
collision the name is qualified with the last segment of the defining
module (``app.billing.Invoice`` becomes ``BillingInvoice``), and if that
is taken too a numeric suffix starting at 2 is appended. Builtins have no
meaningful module and go straight to the suffix (``int2``).
"""

import re
from collections.abc import Container
from typing import Any

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_WORD_SEPARATORS = re.compile(r"[_\-\s.]+")


def sanitize_schema_name(name: str) -> str:
    """Replace characters not allowed in component names with ``_``."""
    return _INVALID_CHARS.sub("_", name)


def to_pascal_case(value: str) -> str:
    """``"user_accounts"`` -> ``"UserAccounts"``."""
    parts = _WORD_SEPARATORS.split(value)
    return "".join(part[:1].upper() + part[1:] for part in parts if part)


def unique_schema_name(
    tp: Any, taken: Container[str], *, name: str | None = None
) -> str:
    """First free component name for ``tp``.

    Args:
        tp: The type being registered.
        taken: Names already in use.
        name: Preferred bare name; ``tp.__name__`` by default.

    Returns:
        str: A name not present in ``taken``.
    """
    base = sanitize_schema_name(name or getattr(tp, "__name__", str(tp)))
    if base not in taken:
        return base

    module = getattr(tp, "__module__", None) or "builtins"
    if module != "builtins":
        prefix = to_pascal_case(module.rsplit(".", 1)[-1])
        qualified = sanitize_schema_name(prefix + base)
        if qualified not in taken:
            return qualified
        base = qualified

    suffix = 2
    while f"{base}{suffix}" in taken:
        suffix += 1
    return f"{base}{suffix}"
