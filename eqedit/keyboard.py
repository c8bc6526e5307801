"""Keyboard input handling using curtsies-style tokens."""

from typing import Optional
from dataclasses import dataclass
from enum import Enum


class KeyType(Enum):
    """Types of key events."""
    REGULAR = "regular"
    ALT = "alt"
    CTRL = "ctrl"
    SPECIAL = "special"
    SHIFT_SPECIAL = "shift_special"  # Shift + arrow keys, Shift-Tab


@dataclass
class KeyEvent:
    """Represents a parsed keyboard event."""
    key_type: KeyType
    value: str  # The base key (e.g., 'a', 'left', 'tab')
    raw: str  # The raw key string from the input layer
    is_alt: bool = False
    is_ctrl: bool = False
    is_shift: bool = False
    is_sequence: bool = False


# Named keys the editor binds: cursor movement, container hops, deletion and help
EDITOR_KEYS = frozenset({
    'left', 'right', 'up', 'down', 'home', 'end', 'tab',
    'enter', 'backspace', 'delete', 'f1',
})

_ESCAPE = '\x1b'


def _ctrl_letter(letter: str, raw: str, is_sequence: bool = False) -> KeyEvent:
    # Ctrl-J and Ctrl-M are what the terminal sends for Enter
    if letter in ('j', 'm'):
        return KeyEvent(key_type=KeyType.SPECIAL, value='enter', raw=raw,
                        is_sequence=is_sequence)
    return KeyEvent(key_type=KeyType.CTRL, value=letter, raw=raw, is_ctrl=True)


class KeyboardHandler:
    """Turns curtsies key names into KeyEvents for the command registry."""

    def __init__(self, terminal_interface):
        self.terminal = terminal_interface

    def get_key_event(self, timeout: Optional[float] = None) -> Optional[KeyEvent]:
        key = self.terminal.get_key(timeout)
        if not key:
            return None
        return self.parse_key(key)

    def parse_key(self, key) -> KeyEvent:
        """Parse a key token into a KeyEvent.

        Args:
            key: curtsies key name such as '<Ctrl-f>' or a plain character

        Returns:
            Parsed KeyEvent. Named keys the editor does not bind come back
            as SPECIAL events under their lowercased name.
        """
        key_str = str(key)
        if key_str.startswith('<') and key_str.endswith('>') and len(key_str) > 2:
            return self._parse_token(key_str)
        return self._parse_character(key_str)

    def _parse_token(self, token: str) -> KeyEvent:
        # '<LEFT>', '<Ctrl-x>', '<Shift-TAB>', '<Esc+LEFT>'
        name = token[1:-1].lower().replace('+', '-')
        parts = name.split('-') if '-' in name[1:] else [name]
        mods = set(parts[:-1])
        base = parts[-1]
        if 'meta' in mods or 'esc' in mods:
            mods.add('alt')

        if base in ('space', 'spacebar', 'spc') and not mods:
            return KeyEvent(key_type=KeyType.REGULAR, value=' ', raw=' ')
        if 'ctrl' in mods and len(base) == 1:
            return _ctrl_letter(base, token, is_sequence=True)
        if 'alt' in mods and (base in EDITOR_KEYS or len(base) == 1):
            return KeyEvent(key_type=KeyType.ALT, value=base, raw=token, is_alt=True)
        if 'shift' in mods and base in EDITOR_KEYS:
            return KeyEvent(key_type=KeyType.SHIFT_SPECIAL, value=base, raw=token,
                            is_shift=True, is_sequence=True)
        if base in ('esc', 'escape'):
            return KeyEvent(key_type=KeyType.SPECIAL, value='escape', raw=_ESCAPE)
        return KeyEvent(key_type=KeyType.SPECIAL, value=base, raw=token, is_sequence=True)

    def _parse_character(self, key_str: str) -> KeyEvent:
        if key_str == '\t':
            return KeyEvent(key_type=KeyType.SPECIAL, value='tab', raw=key_str)
        if key_str == '\x7f':
            return KeyEvent(key_type=KeyType.SPECIAL, value='backspace', raw=key_str)
        if key_str == _ESCAPE:
            return KeyEvent(key_type=KeyType.SPECIAL, value='escape', raw=_ESCAPE)
        if len(key_str) == 1 and 1 <= ord(key_str) <= 26:
            return _ctrl_letter(chr(ord('a') + ord(key_str) - 1), key_str)
        return KeyEvent(key_type=KeyType.REGULAR, value=key_str, raw=key_str)
