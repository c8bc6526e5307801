"""Command pattern implementation for editor actions."""

from abc import ABC, abstractmethod
from typing import Dict, Tuple, Optional, TYPE_CHECKING
from .keyboard import KeyType
from .model import NodeType

if TYPE_CHECKING:
    from .editor import Editor
    from .keyboard import KeyEvent


class EditorCommand(ABC):
    """Base class for editor commands."""

    @abstractmethod
    def execute(self, editor: 'Editor', key_event: 'KeyEvent') -> bool:
        """Execute the command.

        Args:
            editor: Editor instance
            key_event: The key event that triggered this command

        Returns:
            True if the command modified the equation
        """
        pass


class MovementCommand(EditorCommand):
    """Base class for cursor movement commands."""

    def execute(self, editor: 'Editor', key_event: 'KeyEvent') -> bool:
        """Movement commands don't modify the equation."""
        self._move(editor, key_event)
        return False

    @abstractmethod
    def _move(self, editor: 'Editor', key_event: 'KeyEvent'):
        """Perform the movement."""
        pass


class LeftCommand(MovementCommand):
    def _move(self, editor, key_event):
        editor.session.move(-1)


class RightCommand(MovementCommand):
    def _move(self, editor, key_event):
        editor.session.move(1)


class HomeCommand(MovementCommand):
    def _move(self, editor, key_event):
        editor.session.move_to_start()


class EndCommand(MovementCommand):
    def _move(self, editor, key_event):
        editor.session.move_to_end()


class VerticalCommand(MovementCommand):
    """Move between sibling containers (numerator/denominator, scripts, ...)."""

    def __init__(self, key: str):
        self.key = key

    def _move(self, editor, key_event):
        editor.session.navigate_up_down(self.key)


class EditCommand(EditorCommand):
    """Base class for editing commands.

    The session records the undo entry for each edit, so commands only
    report whether anything changed.
    """

    def execute(self, editor: 'Editor', key_event: 'KeyEvent') -> bool:
        return bool(self._edit(editor, key_event))

    @abstractmethod
    def _edit(self, editor: 'Editor', key_event: 'KeyEvent'):
        """Perform the edit."""
        pass


class BackspaceCommand(EditCommand):
    def _edit(self, editor, key_event):
        return editor.session.backspace()


class DeleteCharCommand(EditCommand):
    def _edit(self, editor, key_event):
        return editor.session.delete()


class InsertTextCommand(EditCommand):
    def _edit(self, editor, key_event):
        char = key_event.value
        # Filter out control characters
        if not char or ord(char[0]) < 32:
            return False
        if char == '^':
            return editor.session.insert_script(superscript=True)
        if char == '_':
            return editor.session.insert_script(superscript=False, subscript=True)
        return editor.session.insert_text(char)


class InsertStructureCommand(EditCommand):
    """Insert a structural node with fixed properties and descend into it."""

    def __init__(self, kind: NodeType, **props):
        self.kind = kind
        self.props = props

    def _edit(self, editor, key_event):
        return editor.session.insert_structure(self.kind, **self.props)


class ToggleBoldCommand(EditCommand):
    def _edit(self, editor, key_event):
        had_selection = editor.session.selection.has_selection()
        enabled = editor.session.toggle_bold()
        editor.status_message = f"Bold {'on' if enabled else 'off'}"
        return had_selection


class ToggleUnderlineCommand(EditCommand):
    def _edit(self, editor, key_event):
        if not editor.session.selection.has_selection():
            editor.status_message = "No selection"
            return False
        editor.session.toggle_underline()
        return True


class CutCommand(EditCommand):
    def _edit(self, editor, key_event):
        if editor.session.cut():
            editor.status_message = "Selection cut"
            return True
        editor.status_message = "No selection"
        return False


class PasteCommand(EditCommand):
    def _edit(self, editor, key_event):
        return editor.session.paste()


class SystemCommand(EditorCommand):
    """Base class for system commands like quit, undo, help."""

    def execute(self, editor: 'Editor', key_event: 'KeyEvent') -> bool:
        """System commands don't modify the equation directly."""
        self._execute_system(editor, key_event)
        return False

    @abstractmethod
    def _execute_system(self, editor: 'Editor', key_event: 'KeyEvent'):
        """Perform the system action."""
        pass


class QuitCommand(SystemCommand):
    def _execute_system(self, editor, key_event):
        editor.running = False


class HelpCommand(SystemCommand):
    def _execute_system(self, editor, key_event):
        editor.status_message = ("^F frac  ^R sqrt  ^N root  ^P ( )  ^G sum  ^T int  "
                                 "^E d/dx  ^L matrix  \\ command  ^Q quit")


class CommandPromptCommand(SystemCommand):
    """Start typing a LaTeX command name such as \\alpha or \\sin."""

    def _execute_system(self, editor, key_event):
        editor.prompt_mode = 'command'
        editor.prompt_input = ""


class CopyCommand(SystemCommand):
    def _execute_system(self, editor, key_event):
        if editor.session.copy():
            editor.status_message = "Selection copied"
        else:
            editor.status_message = "No selection"


class UndoCommand(SystemCommand):
    def _execute_system(self, editor, key_event):
        if editor.session.undo():
            editor.status_message = "Undone"
        else:
            editor.status_message = "Nothing to undo"


class RedoCommand(SystemCommand):
    def _execute_system(self, editor, key_event):
        if editor.session.redo():
            editor.status_message = "Redone"
        else:
            editor.status_message = "Nothing to redo"


class SelectionMovementCommand(MovementCommand):
    """Base class for selection growing commands.

    The selection keeps its anchor; only the moving end follows the cursor.
    """

    def execute(self, editor: 'Editor', key_event: 'KeyEvent') -> bool:
        self._selection_move(editor, key_event)
        return False

    def _selection_move(self, editor, key_event):
        """Override this to implement specific movement."""
        pass

    def _move(self, editor, key_event):
        self._selection_move(editor, key_event)


class ShiftLeftCommand(SelectionMovementCommand):
    def _selection_move(self, editor, key_event):
        editor.session.extend_selection(-1)


class ShiftRightCommand(SelectionMovementCommand):
    def _selection_move(self, editor, key_event):
        editor.session.extend_selection(1)


class StructureLeftCommand(SelectionMovementCommand):
    def _selection_move(self, editor, key_event):
        editor.session.extend_selection_to_structure(-1)


class StructureRightCommand(SelectionMovementCommand):
    def _selection_move(self, editor, key_event):
        editor.session.extend_selection_to_structure(1)


class SelectParentCommand(SelectionMovementCommand):
    def _selection_move(self, editor, key_event):
        editor.session.selection.select_parent_structure()


class SelectAllCommand(SelectionMovementCommand):
    def _selection_move(self, editor, key_event):
        editor.session.select_all()


class CommandRegistry:
    """Registry for mapping key combinations to commands."""

    def __init__(self):
        self._commands: Dict[Tuple[KeyType, str], EditorCommand] = {}
        self._setup_default_commands()

    def _setup_default_commands(self):
        """Set up the default command mappings."""
        # Movement commands
        self.register((KeyType.SPECIAL, 'left'), LeftCommand())
        self.register((KeyType.SPECIAL, 'right'), RightCommand())
        self.register((KeyType.SPECIAL, 'home'), HomeCommand())
        self.register((KeyType.SPECIAL, 'end'), EndCommand())
        self.register((KeyType.SPECIAL, 'up'), VerticalCommand('up'))
        self.register((KeyType.SPECIAL, 'down'), VerticalCommand('down'))
        self.register((KeyType.SPECIAL, 'tab'), VerticalCommand('tab'))
        self.register((KeyType.SHIFT_SPECIAL, 'tab'), VerticalCommand('shift-tab'))

        # Selection commands
        self.register((KeyType.SHIFT_SPECIAL, 'left'), ShiftLeftCommand())
        self.register((KeyType.SHIFT_SPECIAL, 'right'), ShiftRightCommand())
        self.register((KeyType.ALT, 'left'), StructureLeftCommand())
        self.register((KeyType.ALT, 'right'), StructureRightCommand())
        self.register((KeyType.ALT, 'up'), SelectParentCommand())
        self.register((KeyType.CTRL, 'a'), SelectAllCommand())

        # Editing commands
        self.register((KeyType.SPECIAL, 'backspace'), BackspaceCommand())
        self.register((KeyType.SPECIAL, 'delete'), DeleteCharCommand())
        self.register((KeyType.CTRL, 'd'), DeleteCharCommand())
        self.register((KeyType.CTRL, 'b'), ToggleBoldCommand())
        self.register((KeyType.CTRL, 'u'), ToggleUnderlineCommand())
        self.register((KeyType.CTRL, 'x'), CutCommand())
        self.register((KeyType.CTRL, 'c'), CopyCommand())
        self.register((KeyType.CTRL, 'v'), PasteCommand())
        self.register((KeyType.CTRL, 'z'), UndoCommand())
        self.register((KeyType.CTRL, 'y'), RedoCommand())

        # Structures
        self.register((KeyType.CTRL, 'f'), InsertStructureCommand(NodeType.FRACTION))
        self.register((KeyType.CTRL, 'r'), InsertStructureCommand(NodeType.SQRT))
        self.register((KeyType.CTRL, 'n'), InsertStructureCommand(NodeType.NTHROOT))
        self.register((KeyType.CTRL, 'p'), InsertStructureCommand(NodeType.BRACKET))
        self.register((KeyType.CTRL, 'g'), InsertStructureCommand(NodeType.LARGE_OPERATOR))
        self.register((KeyType.CTRL, 't'), InsertStructureCommand(NodeType.INTEGRAL, has_limits=True))
        self.register((KeyType.CTRL, 'e'), InsertStructureCommand(NodeType.DERIVATIVE))
        self.register((KeyType.CTRL, 'l'), InsertStructureCommand(NodeType.MATRIX))
        self.register((KeyType.ALT, '/'), InsertStructureCommand(NodeType.BEVELLED_FRACTION))

        # System commands
        self.register((KeyType.REGULAR, '\\'), CommandPromptCommand())
        self.register((KeyType.CTRL, 'q'), QuitCommand())
        self.register((KeyType.SPECIAL, 'f1'), HelpCommand())

    def register(self, key: Tuple[KeyType, str], command: EditorCommand):
        """Register a command for a key combination."""
        self._commands[key] = command

    def get_command(self, key_type: KeyType, value: str) -> Optional[EditorCommand]:
        """Get the command for a key combination."""
        return self._commands.get((key_type, value))

    def execute(self, editor: 'Editor', key_event: 'KeyEvent') -> bool:
        """Execute the command for the given key event.

        Returns:
            True if the equation was modified
        """
        if key_event.is_alt:
            command = self.get_command(KeyType.ALT, key_event.value)
        else:
            command = self.get_command(key_event.key_type, key_event.value)

        if command:
            return command.execute(editor, key_event)

        # Handle regular text input
        if key_event.key_type == KeyType.REGULAR:
            return InsertTextCommand().execute(editor, key_event)

        return False
