#!/usr/bin/env python3
"""
Interactive local chat harness (no HTTP).

Usage:
  python3 scripts/chat_local.py [name]

What it does:
- Starts a consultation session through the same HandleChatTurnUseCase the API uses
- Prints each reply, the forced choices (if any) and the current dialogue step
- /photo <path> attaches an image to the next message, /end prints the CRM snapshot
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv()

from skinconsult.wiring.dependencies import (  # noqa: E402
    get_end_session_use_case,
    get_handle_chat_turn_use_case,
    get_session_store,
)


def _print_reply(text: str, choices: tuple[str, ...], step: str | None) -> None:
    print(f"\nbot> {text}")
    if choices:
        for index, choice in enumerate(choices):
            print(f"     {chr(ord('A') + index)}) {choice}")
    if step:
        print(f"     [step={step}]")


def _print_help() -> None:
    print("Commands: /photo <path>, /end, /quit, /help")


def main() -> int:
    user_name = sys.argv[1] if len(sys.argv) > 1 else "Giulia"
    use_case = get_handle_chat_turn_use_case()
    sessions = get_session_store()

    state, reply = use_case.start_session(user_name)
    session_id = state.session_id
    print(f"session_id: {session_id}")
    _print_help()
    _print_reply(reply.text, reply.choices, state.current_step.value)

    pending_image: bytes | None = None
    while True:
        try:
            line = input("\nyou> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return 0

        if not line:
            continue
        if line in ("/quit", "/exit"):
            return 0
        if line == "/help":
            _print_help()
            continue
        if line == "/end":
            snapshot = get_end_session_use_case().execute(session_id)
            print(f"\nsnapshot: answers={snapshot.answers} messages={snapshot.message_count}")
            return 0
        if line.startswith("/photo "):
            path = Path(line.split(" ", 1)[1]).expanduser()
            if not path.is_file():
                print(f"No such file: {path}")
                continue
            pending_image = path.read_bytes()
            print(f"Image attached: {path.name}")
            continue

        reply = use_case.handle_message(session_id, line, image=pending_image)
        pending_image = None
        current = sessions.get(session_id)
        _print_reply(reply.text, reply.choices, current.current_step.value if current else None)


if __name__ == "__main__":
    raise SystemExit(main())
