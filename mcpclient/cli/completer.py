"""
MCP Client CLI Completer - prompt_toolkit completion for the shell.

Provides real-time dropdown suggestions for commands, tool names and
configured server names.
"""

from typing import Callable, Iterable, List, Optional

from prompt_toolkit.completion import Completer, Completion


# (command, description), used for dropdown display
COMMANDS = [
    ("connect", "Connect to an MCP server"),
    ("disconnect", "Close the current connection"),
    ("list-tools", "List available tools"),
    ("refresh-tools", "Re-fetch the tool list from the server"),
    ("describe-tool", "Show a tool's parameters"),
    ("invoke-tool", "Execute a tool"),
    ("status", "Show connection status"),
    ("show-default", "Show the saved default server"),
    ("remove-default", "Forget the saved default server"),
    ("show-config", "Print the config.yaml block for a server"),
    ("help", "Show help"),
    ("exit", "Exit the client"),
    ("quit", "Exit the client"),
]

TOOL_COMMANDS = ("describe-tool", "invoke-tool")


class McpClientCompleter(Completer):
    """Completer for the MCP client shell.

    - Command names with descriptions at the start of the line
    - Tool names after ``describe-tool`` / ``invoke-tool``
    - Configured server names after ``connect``
    """

    def __init__(
        self,
        tool_names_fn: Optional[Callable[[], Iterable[str]]] = None,
        server_names_fn: Optional[Callable[[], Iterable[str]]] = None,
    ):
        self._tool_names_fn = tool_names_fn
        self._server_names_fn = server_names_fn

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor.lstrip()
        words = text.split(" ")

        if len(words) == 1:
            for cmd, description in COMMANDS:
                if cmd.startswith(text.lower()):
                    yield Completion(
                        cmd,
                        start_position=-len(text),
                        display_meta=description,
                    )
            return

        if len(words) != 2:
            return

        command, prefix = words[0].lower(), words[1]
        if command in TOOL_COMMANDS:
            yield from self._complete_from(self._tool_names_fn, prefix, "tool")
        elif command == "connect":
            yield from self._complete_from(self._server_names_fn, prefix, "configured server")

    @staticmethod
    def _complete_from(source: Optional[Callable[[], Iterable[str]]], prefix: str, meta: str):
        if source is None:
            return
        seen: List[str] = []
        for name in source():
            if name.startswith(prefix) and name not in seen:
                seen.append(name)
                yield Completion(name, start_position=-len(prefix), display_meta=meta)
