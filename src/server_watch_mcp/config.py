# Configuration loading for server-watch-mcp

import os

from dotenv import find_dotenv, load_dotenv

# Lazy load dotenv - only when config is first accessed
_dotenv_loaded = False
_custom_dotenv_path = None

def _getenv(name, default):
	value = os.getenv(name)
	return value if value else default

class ServerWatchConfig:
	"""Loads configuration from environment variables and provides defaults."""
	def __init__(self):
		self.host = _getenv("SERVER_WATCH_MCP_HOST", "127.0.0.1")
		self.port = int(_getenv("SERVER_WATCH_MCP_PORT", "8080"))
		self.buffer_size = int(_getenv("SERVER_WATCH_MCP_BUFFER_SIZE", "5000"))
		self.log_level = _getenv("SERVER_WATCH_MCP_LOG_LEVEL", "INFO").upper()

def set_dotenv_path(path: str):
	"""Set a custom .env file path to load. Must be called before load_config()."""
	global _custom_dotenv_path, _dotenv_loaded
	_custom_dotenv_path = path
	_dotenv_loaded = False  # Reset to force reload with new path

def load_config() -> ServerWatchConfig:
	"""Return a config object with all settings loaded."""
	global _dotenv_loaded
	if not _dotenv_loaded:
		dotenv_path = os.getenv("DOTENV_PATH") or _custom_dotenv_path
		if dotenv_path:
			# Explicit env file values take precedence over the environment
			load_dotenv(dotenv_path, override=True)
		else:
			dotenv_path = find_dotenv(usecwd=True)
			if dotenv_path:
				load_dotenv(dotenv_path)
		_dotenv_loaded = True
	return ServerWatchConfig()
