import asyncio
import logging
import sys
from typing import List, Optional

import typer

from .config import load_config, set_dotenv_path
from .runner import TRANSPORTS, serve

PROG = "server-watch-mcp"
USAGE = f"Usage: {PROG} <command> [args...]"
EXAMPLE = f"Example: {PROG} npm run dev"

app = typer.Typer(add_completion=False)


def _configure_logging(level_name: str):
	level = getattr(logging, level_name.upper(), None)
	if not isinstance(level, int):
		level = logging.INFO
	logging.basicConfig(
		level=level,
		stream=sys.stderr,
		format=f"[{PROG}] %(message)s",
	)


def _print_usage():
	typer.echo(USAGE, err=True)
	typer.echo(EXAMPLE, err=True)


@app.command(context_settings={
	"allow_extra_args": True,
	"ignore_unknown_options": True,
	"allow_interspersed_args": False,
})
def run(
	command: Optional[List[str]] = typer.Argument(None, help="Command to supervise, followed by its arguments"),
	transport: str = typer.Option("http", "--transport", "-t", help="MCP transport: http (streamable HTTP + legacy SSE) or stdio"),
	port: Optional[int] = typer.Option(None, "--port", "-p", help="Port for the HTTP listeners (default: SERVER_WATCH_MCP_PORT or 8080)"),
	host: Optional[str] = typer.Option(None, "--host", help="Host to bind the HTTP listeners to"),
	buffer_size: Optional[int] = typer.Option(None, "--buffer-size", help="Maximum number of log lines kept in memory"),
	exit_with_child: bool = typer.Option(False, "--exit-with-child", help="Stop serving and exit with the child's exit code when it ends"),
	env: Optional[str] = typer.Option(None, "--env", help="Path to a .env file to load"),
):
	"""Run a command and expose its stdout/stderr to MCP clients."""
	if not command:
		_print_usage()
		raise typer.Exit(1)
	if transport not in TRANSPORTS:
		typer.echo(typer.style(f"Error: unknown transport '{transport}' (expected one of: {', '.join(TRANSPORTS)})", fg=typer.colors.RED), err=True)
		raise typer.Exit(2)

	if env:
		set_dotenv_path(env)
	cfg = load_config()
	if port is not None:
		cfg.port = port
	if host is not None:
		cfg.host = host
	if buffer_size is not None:
		cfg.buffer_size = buffer_size
	if cfg.buffer_size < 1:
		typer.echo(typer.style("Error: buffer size must be at least 1", fg=typer.colors.RED), err=True)
		raise typer.Exit(2)
	_configure_logging(cfg.log_level)

	code = asyncio.run(serve(command[0], command[1:], cfg, transport=transport, exit_with_child=exit_with_child))
	raise typer.Exit(code or 0)


def main():
	if len(sys.argv) == 1:
		_print_usage()
		sys.exit(1)
	try:
		app()
	except typer.Exit:
		raise
	except KeyboardInterrupt:
		sys.exit(130)
	except Exception as e:
		typer.echo(typer.style(
			f"Fatal error: {type(e).__name__}: {e}",
			fg=typer.colors.RED
		), err=True)
		sys.exit(1)

if __name__ == "__main__":
	main()
