"""
MCP Client CLI - Interactive shell for MCP servers.

Run `mcp-client` to start the shell, or pass a command to run it once:

    mcp-client --server weather invoke-tool getForecast city=Paris
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import click
from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, InMemoryHistory
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from mcpclient import __version__
from mcpclient.cli.completer import McpClientCompleter
from mcpclient.core.errors import InvalidParameterFormatError, McpClientError
from mcpclient.core.schema import ToolDescriptor
from mcpclient.core.session import McpSession
from mcpclient.state.store import DefaultServerStore
from mcpclient.validation.config import LOG_LEVELS, Config, ConfigError, ServerConfig

console = Console()
logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("exit", "quit", "q")
CONNECT_USAGE = "Usage: connect <name> [stdio] <command-or-jar> [args...] [--default]"


def configure_logging(level: str, log_file: Optional[str] = None) -> None:
    """Send log records to stderr through rich, and optionally to a file."""
    root = logging.getLogger("mcpclient")
    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    root.propagate = False

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(getattr(logging, level.upper()))
    root.addHandler(handler)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
        ))
        root.addHandler(file_handler)


def _unquote(token: str) -> str:
    if len(token) >= 2 and token[0] in "'\"" and token[-1] == token[0]:
        return token[1:-1]
    return token


def render_result(result: Any, out: Console) -> None:
    """Print a ``tools/call`` result: text parts as text, everything else as JSON."""
    if not isinstance(result, dict):
        out.print(json.dumps(result, indent=2, ensure_ascii=False))
        return

    if result.get("isError"):
        out.print("[red]Tool reported an error:[/red]")

    parts = result.get("content")
    if not isinstance(parts, list) or not parts:
        if "structuredContent" in result:
            out.print_json(data=result["structuredContent"])
        else:
            out.print_json(data=result)
        return

    for part in parts:
        if not isinstance(part, dict):
            out.print(str(part), markup=False)
        elif part.get("type") == "text":
            out.print(part.get("text", ""), markup=False, highlight=False)
        elif part.get("type") in ("image", "audio"):
            size = len(part.get("data", ""))
            label = f"{part['type']}: {part.get('mimeType', 'unknown')}, {size} base64 chars"
            out.print(f"[dim]\\[{escape(label)}][/dim]")
        elif part.get("type") == "resource" and isinstance(part.get("resource"), dict):
            resource = part["resource"]
            out.print(f"[dim]resource {escape(str(resource.get('uri', '')))}[/dim]")
            if "text" in resource:
                out.print(resource["text"], markup=False, highlight=False)
        else:
            out.print_json(data=part)


class McpClientREPL:
    """
    Interactive shell over one ``McpSession``.

    Every command maps onto a session operation; the shell only parses
    input and renders output. Errors from the session are printed and the
    loop keeps going.
    """

    def __init__(
        self,
        session: McpSession,
        config: Optional[Config] = None,
        store: Optional[DefaultServerStore] = None,
        out: Optional[Console] = None,
        ask: Optional[Callable[[str], str]] = None,
    ):
        self.session = session
        self.config = config or Config()
        self.store = store or DefaultServerStore()
        self.console = out or console
        self.coercer = session.coercer
        self._ask = ask or self._ask_console
        self._ctrlc_count = 0
        self._prompt_session: Optional[PromptSession] = None

        self._commands: Dict[str, Callable[[List[str]], bool]] = {
            "connect": self._cmd_connect,
            "disconnect": self._cmd_disconnect,
            "list-tools": self._cmd_list_tools,
            "refresh-tools": self._cmd_refresh_tools,
            "describe-tool": self._cmd_describe_tool,
            "invoke-tool": self._cmd_invoke_tool,
            "status": self._cmd_status,
            "show-default": self._cmd_show_default,
            "remove-default": self._cmd_remove_default,
            "show-config": self._cmd_show_config,
            "help": self._cmd_help,
            "?": self._cmd_help,
        }

    # ── Input ─────────────────────────────────────────────────────────────

    def _ask_console(self, text: str) -> str:
        return Prompt.ask(Text(text), default="", show_default=False, console=self.console)

    def _make_prompt_session(self) -> PromptSession:
        history_file = self.store.state_dir / "history"
        try:
            self.store.state_dir.mkdir(parents=True, exist_ok=True)
            history = FileHistory(str(history_file))
        except OSError as exc:
            logger.warning("Cannot use history file %s (%s); history will not be saved", history_file, exc)
            history = InMemoryHistory()
        completer = McpClientCompleter(
            tool_names_fn=self._tool_names,
            server_names_fn=self.config.server_names,
        )
        return PromptSession(history=history, completer=completer)

    def _tool_names(self) -> List[str]:
        if not self.session.is_connected:
            return []
        return [t.name for t in self.session.list_tools()]

    def _prompt_text(self) -> str:
        current = self.session.current
        if current is not None and self.session.is_connected:
            return f"mcp-client ({current.name})> "
        return "mcp-client> "

    # ── Dispatch ──────────────────────────────────────────────────────────

    def handle_line(self, line: str) -> bool:
        """Run one shell line. Returns True when the command succeeded."""
        try:
            tokens = self.coercer.tokenize(line.strip())
        except InvalidParameterFormatError as exc:
            self.console.print(f"[red]✗ {escape(str(exc))}[/red]")
            return False
        if not tokens:
            return True
        return self.dispatch(tokens[0], tokens[1:])

    def dispatch(self, command: str, args: Sequence[str]) -> bool:
        """Run one command with already-split arguments."""
        handler = self._commands.get(command.lower())
        if handler is None:
            self.console.print(f"[yellow]Unknown command: {escape(command)}[/yellow]")
            close = [c for c in self._commands if c.startswith(command.lower()[:3])]
            if close:
                self.console.print(f"[dim]Did you mean: {', '.join(close)}?[/dim]")
            else:
                self.console.print("[dim]Type 'help' for available commands[/dim]")
            return False
        try:
            return handler(list(args))
        except McpClientError as exc:
            self.console.print(f"[red]✗ {escape(str(exc))}[/red]")
            return False

    # ── Commands ──────────────────────────────────────────────────────────

    def _cmd_connect(self, args: List[str]) -> bool:
        args = [_unquote(a) for a in args]
        save_default = False
        if "--default" in args:
            args.remove("--default")
            save_default = True

        if not args:
            default = self.store.load()
            if default is None:
                self.console.print(CONNECT_USAGE, markup=False)
                self.console.print("[dim]No default server saved; connect with --default to save one.[/dim]")
                return False
            return self._connect(default.name, ServerConfig(command=default.command, args=default.args), False)

        name = args[0]
        if len(args) == 1:
            server = self.config.get_server(name)
            if server is None:
                self.console.print(f"[red]✗ No server named '{escape(name)}' in config.yaml[/red]")
                self.console.print(CONNECT_USAGE, markup=False)
                return False
            return self._connect(name, server, save_default)

        rest = args[1:]
        if rest[0] == "stdio":
            rest = rest[1:]
        # Bare "default" only counts straight after the target
        if len(rest) == 2 and rest[1] == "default":
            rest = rest[:1]
            save_default = True
        if not rest:
            self.console.print(CONNECT_USAGE, markup=False)
            self.console.print("[dim]Example: connect weather stdio /path/to/weather-server.jar[/dim]")
            return False
        return self._connect(name, ServerConfig.from_target(rest[0], rest[1:]), save_default)

    def _connect(self, name: str, server: ServerConfig, save_default: bool) -> bool:
        self.console.print(f"Connecting to MCP server: {escape(name)}")
        with self.console.status(f"[bold blue]Starting {escape(server.command)}...[/bold blue]", spinner="dots"):
            ok = self.session.connect(name, server.command, server.args, server.env)

        if not ok:
            self.console.print(f"[red]✗ Failed to connect to server: {escape(name)}[/red]")
            self.console.print(f"  [dim]{escape(str(self.session.last_error))}[/dim]")
            return False

        tools = self.session.list_tools()
        self.console.print(f"[green]✓ Connected to server: {escape(name)}[/green]")
        self.console.print(f"[green]✓ Discovered {len(tools)} tools[/green]")
        if save_default:
            self.store.save(name, server.command, server.args)
            self.console.print(f"[green]✓ Saved as default[/green] [dim]({self.store.path})[/dim]")
        return True

    def _cmd_disconnect(self, args: List[str]) -> bool:
        current = self.session.current
        if current is None:
            self.console.print("[dim]No active connection[/dim]")
            return True
        self.session.disconnect()
        self.console.print(f"[green]Disconnected from {escape(current.name)}[/green]")
        return True

    def _cmd_list_tools(self, args: List[str]) -> bool:
        tools = self.session.list_tools()
        self._print_tools(tools)
        return True

    def _cmd_refresh_tools(self, args: List[str]) -> bool:
        with self.console.status("[bold blue]Refreshing tools...[/bold blue]", spinner="dots"):
            tools = self.session.refresh_tools()
        self._print_tools(tools)
        return True

    def _print_tools(self, tools: List[ToolDescriptor]) -> None:
        server = self.session.current.name if self.session.current else "?"
        if not tools:
            self.console.print(f"[dim]No tools available from server: {server}[/dim]")
            return

        table = Table(title=f"Tools from {server}", show_header=True, header_style="bold")
        table.add_column("#", style="dim", width=4)
        table.add_column("Tool", style="cyan")
        table.add_column("Description", style="white")
        for i, tool in enumerate(tools, 1):
            table.add_row(str(i), tool.name, Text(tool.short_description))
        self.console.print(table)
        self.console.print("[dim]Use 'describe-tool <name>' for full parameter details[/dim]")

    def _cmd_describe_tool(self, args: List[str]) -> bool:
        if not args:
            self.console.print("Usage: describe-tool <tool-name>")
            return False
        tool = self.session.describe_tool(_unquote(args[0]))

        lines = [tool.full_schema_text(), "", "Usage examples:"]
        lines.extend(f"  {example}" for example in tool.usage_examples())
        self.console.print(Panel(Text("\n".join(lines)), title="Tool Details", border_style="blue"))
        return True

    def _cmd_invoke_tool(self, args: List[str]) -> bool:
        if not args:
            self.console.print("Usage: invoke-tool <tool-name> [parameters...]", markup=False)
            self.console.print("  Key-value pairs: invoke-tool mytool param1=value1 param2=value2")
            self.console.print("  JSON format:     invoke-tool mytool '{\"param1\":\"value1\"}'")
            self.console.print("  Interactive:     invoke-tool mytool (prompts for parameters)")
            return False

        tool = self.session.describe_tool(_unquote(args[0]))
        param_tokens = args[1:]

        if not param_tokens and tool.params:
            parameters = self._prompt_for_parameters(tool)
            if parameters is None:
                return False
        else:
            parameters = self.coercer.parse(param_tokens)

        self.console.print(f"Executing tool: [cyan]{escape(tool.name)}[/cyan]")
        if parameters:
            self.console.print(f"Parameters: {self.coercer.format_parameters(parameters)}", markup=False)

        with self.console.status("[bold blue]Running...[/bold blue]", spinner="dots"):
            result = self.session.call_tool(tool.raw_name, parameters)

        self.console.print()
        self.console.print("[bold]=== Tool Result ===[/bold]")
        render_result(result, self.console)
        return not (isinstance(result, dict) and result.get("isError"))

    def _prompt_for_parameters(self, tool: ToolDescriptor) -> Optional[Dict[str, Any]]:
        """Ask for each parameter in schema order. None means cancelled."""
        self.console.print(f"[bold]Parameters for {escape(tool.name)}[/bold] [dim](leave optional ones empty to skip)[/dim]")
        parameters: Dict[str, Any] = {}
        for param in tool.params:
            label = "required" if param.required else "optional"
            text = self._ask(f"{param.name} ({label}, {param.kind.value}): {param.description}").strip()
            if not text:
                if param.required:
                    self.console.print("[red]✗ Required parameter cannot be empty. Operation cancelled.[/red]")
                    return None
                continue
            parameters[param.name] = self.coercer.coerce(text, param.kind)
        return parameters

    def _cmd_status(self, args: List[str]) -> bool:
        status = self.session.status()
        table = Table(show_header=False, box=None)
        table.add_column(style="cyan")
        table.add_column()
        table.add_row("State", status.state.value)
        if status.server_name:
            info = status.server_info
            server_label = " ".join(str(v) for v in (info.get("name"), info.get("version")) if v)
            table.add_row("Server", status.server_name)
            table.add_row("Command", Text(status.command_line or ""))
            table.add_row("PID", str(status.pid))
            if server_label:
                table.add_row("Implementation", server_label)
            if status.protocol_version:
                table.add_row("Protocol", status.protocol_version)
            table.add_row("Tools", f"{status.tool_count}: {', '.join(status.tool_names) or 'none'}")
        if status.last_error:
            table.add_row("Last error", Text(status.last_error, style="red"))
        self.console.print(Panel(table, title="MCP Client Status", border_style="blue"))
        return True

    def _cmd_show_default(self, args: List[str]) -> bool:
        default = self.store.load()
        if default is None:
            self.console.print("[dim]No default server configuration found[/dim]")
            self.console.print("[dim]Save one with: connect <name> stdio <command-or-jar> --default[/dim]")
            return True
        self.console.print(f"[cyan]Name:[/cyan] {default.name}")
        self.console.print(f"[cyan]Command:[/cyan] {escape(default.command_line)}")
        self.console.print(f"[cyan]Saved:[/cyan] {default.saved_at.isoformat(timespec='seconds')}")
        self.console.print(f"[cyan]File:[/cyan] {self.store.path}")
        self.console.print("[dim]Connect with: connect   (no arguments)[/dim]")
        return True

    def _cmd_remove_default(self, args: List[str]) -> bool:
        default = self.store.load()
        if self.store.remove():
            name = default.name if default else "default server"
            self.console.print(f"[green]Removed default server: {name}[/green]")
        else:
            self.console.print("[dim]No default server to remove[/dim]")
        return True

    def _cmd_show_config(self, args: List[str]) -> bool:
        current = self.session.current
        if current is not None:
            name, command, cmd_args = current.name, current.command, current.args
        else:
            default = self.store.load()
            if default is None:
                self.console.print("[yellow]Connect to a server or save a default first[/yellow]")
                return False
            name, command, cmd_args = default.name, default.command, default.args

        snippet = Config.render_server_snippet(name, command, cmd_args)
        self.console.print("[dim]Add this to ~/.mcp-client/config.yaml or .mcp-client/config.yaml:[/dim]")
        self.console.print(Syntax(snippet, "yaml", theme="ansi_dark"))
        return True

    def _cmd_help(self, args: List[str]) -> bool:
        help_text = """
[bold]Commands:[/bold]
  connect <name> \\[stdio] <command-or-jar> \\[args...]       Launch and connect to a server
  connect <name> ... --default                        ...and save it as the default
  connect <name>                                      Connect to a server from config.yaml
  connect                                             Connect to the saved default
  disconnect                                          Close the current connection
  list-tools                                          List available tools
  refresh-tools                                       Re-fetch the tool list
  describe-tool <name>                                Show a tool's parameters
  invoke-tool <name> \\[params...]                        Execute a tool
  status                                              Connection status
  show-default / remove-default                       Manage the saved default server
  show-config                                         Print the config.yaml block for a server
  help                                                Show this help
  exit, quit, q                                       Exit

[bold]Parameter formats:[/bold]
  Key-value pairs: name=John age=25 admin=true note="42"
  JSON:            '{"name": "John", "tags": ["a", "b"]}'
  None:            prompts for each parameter in turn
"""
        self.console.print(Panel(help_text.strip(), title="MCP Client Help", border_style="blue"))
        return True

    # ── Loop ──────────────────────────────────────────────────────────────

    def _print_banner(self) -> None:
        self.console.print(f"[bold blue]Generic MCP Client[/bold blue] [cyan]v{__version__}[/cyan]")
        self.console.print("[dim]Type 'help' for commands, 'exit' to quit. Tab completes commands and tools.[/dim]")
        self.console.print()

    def run(self) -> None:
        """Run the interactive shell until exit, Ctrl+D or a double Ctrl+C."""
        self._print_banner()
        if self._prompt_session is None:
            self._prompt_session = self._make_prompt_session()

        while True:
            try:
                line = self._prompt_session.prompt(self._prompt_text()).strip()
                self._ctrlc_count = 0

                if not line:
                    continue
                if line.lower() in EXIT_COMMANDS:
                    break

                self.handle_line(line)
                self.console.print()

            except EOFError:
                # Ctrl+D
                break
            except KeyboardInterrupt:
                self._ctrlc_count += 1
                if self._ctrlc_count >= 2:
                    break
                self.console.print("[dim]Press Ctrl+C again to exit, or type a command.[/dim]")

        self.console.print("[dim]Goodbye.[/dim]")


def _auto_connect(repl: McpClientREPL, config: Config, server: Optional[str]) -> bool:
    if server:
        return repl.dispatch("connect", [server])
    if config.client.auto_connect_default and repl.store.exists():
        return repl.dispatch("connect", [])
    return True


@click.command(context_settings={"ignore_unknown_options": True})
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option(
    "--config", "-c", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file to use instead of .mcp-client/config.yaml",
)
@click.option("--server", "-s", help="Connect to this configured server at startup")
@click.option(
    "--log-level", "-l",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Log level for client and server logs (stderr)",
)
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
def cli(version: bool, config_path: Optional[Path], server: Optional[str],
        log_level: Optional[str], command: tuple) -> None:
    """
    Generic MCP client - connect to STDIO MCP servers and call their tools.

    Run without arguments to start the interactive shell.

    \b
    Examples:
        mcp-client                                       # interactive shell
        mcp-client -s weather list-tools                 # one command, then exit
        mcp-client -s weather invoke-tool echo msg=hi
    """
    if version:
        console.print(f"mcp-client v{__version__}")
        return

    try:
        config = Config.load(config_path)
        settings = config.client
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(2)

    configure_logging(log_level or settings.log_level, settings.log_file)

    session = McpSession(
        request_timeout=settings.request_timeout,
        connect_timeout=settings.connect_timeout,
        shutdown_grace=settings.shutdown_grace,
    )
    repl = McpClientREPL(session, config=config)

    try:
        connected = _auto_connect(repl, config, server)

        if command:
            if server and not connected:
                sys.exit(1)
            ok = repl.dispatch(command[0], list(command[1:]))
            sys.exit(0 if ok else 1)

        repl.run()
    finally:
        session.disconnect()


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
