"""聊天。"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from automaple.infra.exceptions import StateProtocolError
from automaple.player.actions import Chat
from automaple.player.state import Chatting, ChatPhase, Idle
from automaple.player.transitions import next_action, transition_from_action
from automaple.timeout import Ended, Started, Timeout, Updated, next_timeout_lifecycle
from automaple.types import KeyKind

if TYPE_CHECKING:
    from automaple.player.state import PlayerEntity
    from automaple.resources import Resources

MAX_RETRY = 3
MAX_CONTENT_LENGTH = 100

OPENING_TIMEOUT = 10
TYPING_TIMEOUT = 2
"""相邻两次按键之间的 tick 数"""
COMPLETING_TIMEOUT = 10

_CHAR_KEYS: dict[str, KeyKind] = {
    " ": KeyKind.Space,
    ",": KeyKind.Comma,
    ".": KeyKind.Period,
    "/": KeyKind.Slash,
    ";": KeyKind.Semicolon,
    "'": KeyKind.Quote,
    "`": KeyKind.Tilde,
}


def _char_key(char: str) -> KeyKind | None:
    if char.isascii() and char.isalpha():
        return KeyKind(char.upper())
    if char.isascii() and char.isdigit():
        return KeyKind(char)
    return _CHAR_KEYS.get(char)


def chatting(content: str) -> Chatting:
    """把聊天内容转换为按键序列，无法输入的字符会被忽略。"""
    keys = []
    for char in content[:MAX_CONTENT_LENGTH]:
        key = _char_key(char)
        if key is None:
            logger.debug("聊天内容中的字符 {!r} 无法输入，已忽略", char)
            continue
        keys.append(key)
    return Chatting(keys=tuple(keys))


def update_chatting_state(resources: Resources, player: PlayerEntity) -> None:
    """打开聊天框、逐个输入按键、回车发送。"""
    state = player.state
    if not isinstance(state, Chatting):
        raise StateProtocolError("Chatting", state)

    match state.phase:
        case ChatPhase.opening:
            next_state = _update_opening(resources, state)
        case ChatPhase.typing:
            next_state = _update_typing(resources, state)
        case ChatPhase.completing:
            next_state = _update_completing(resources, state)

    if next_state is None:
        if isinstance(next_action(player.context), Chat):
            transition_from_action(player, Idle())
        else:
            player.state = Idle()
        return
    player.state = next_state


def _update_opening(resources: Resources, state: Chatting) -> Chatting:
    match next_timeout_lifecycle(state.timeout, OPENING_TIMEOUT):
        case Started(timeout):
            resources.input.send_key(KeyKind.Enter)
            return replace(state, timeout=timeout)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            if resources.detector_cloned().detect_chat_menu_opened():
                return replace(state, phase=ChatPhase.typing, timeout=Timeout())
            if state.retry_count < MAX_RETRY:
                return replace(state, timeout=Timeout(), retry_count=state.retry_count + 1)
            logger.warning("聊天框打不开")
            return replace(state, phase=ChatPhase.completing, timeout=Timeout())


def _update_typing(resources: Resources, state: Chatting) -> Chatting:
    if state.key_index >= len(state.keys):
        resources.input.send_key(KeyKind.Enter)
        return replace(state, phase=ChatPhase.completing, timeout=Timeout())

    match next_timeout_lifecycle(state.timeout, TYPING_TIMEOUT):
        case Started(timeout):
            resources.input.send_key(state.keys[state.key_index])
            return replace(state, timeout=timeout)
        case Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            return replace(state, timeout=Timeout(), key_index=state.key_index + 1)


def _update_completing(resources: Resources, state: Chatting) -> Chatting | None:
    match next_timeout_lifecycle(state.timeout, COMPLETING_TIMEOUT):
        case Started(timeout) | Updated(timeout):
            return replace(state, timeout=timeout)
        case Ended():
            detector = resources.detector
            if detector is not None and detector.detect_chat_menu_opened():
                resources.input.send_key(KeyKind.Esc)
            return None
