"""
Confirmation Prompts — Operator approval before mutating state.

A prompt is any callable taking the message to show and returning
whether the operator confirmed. The CLI passes click.confirm; library
callers that pass nothing get always_confirm.
"""

from __future__ import annotations

from typing import Callable

ConfirmationPrompt = Callable[[str], bool]


def always_confirm(message: str) -> bool:
    return True
