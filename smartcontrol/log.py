"""
Console output for the SmartControl tools.

Library modules report through info/warn/debug; the CLI adds the
decorated helpers (success, waiting, section, ...). Raw UDP traffic goes
through send/recv and is only printed when payload display is on.
"""

import logging
import os
import platform
import sys
from typing import Optional, TextIO


def _supports_emoji() -> bool:
	"""Best guess whether the terminal renders emoji"""
	if platform.system() == "Windows":
		term_program = os.environ.get("TERM_PROGRAM", "")
		return "WindowsTerminal" in term_program or "WT_SESSION" in os.environ
	return os.environ.get("TERM", "").endswith("256color")


class _PlainFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:
		message = record.getMessage()
		if record.levelno >= logging.WARNING:
			return f"{_GL_WARN}{message}"
		return message


class _VerboseFormatter(_PlainFormatter):
	def format(self, record: logging.LogRecord) -> str:
		if record.levelno == logging.DEBUG:
			return f"[debug {record.threadName}] {record.getMessage()}"
		return super().format(record)


_logger = logging.getLogger("smartcontrol")
_logger.propagate = False

_state = {"indent": 0, "show_payloads": False, "max_payload": 512}

_GL_SUB = "- "
_GL_OK = "[ok] "
_GL_WAIT = "[..] "
_GL_RESULT = "-> "
_GL_CMD = ">> "
_GL_WARN = "[!] "
_GL_STOP = "[x] "


def configure(
	verbose: bool = False,
	show_payloads: bool = False,
	stream: Optional[TextIO] = None,
) -> None:
	"""Configure the global CLI logger.

	verbose=True  -> show debug lines tagged with the thread that wrote them
	show_payloads -> print raw UDP send/recv payloads (implied by verbose)
	"""
	_logger.setLevel(logging.DEBUG)
	_logger.handlers[:] = []

	handler = logging.StreamHandler(stream or sys.stderr)
	handler.setLevel(logging.DEBUG if verbose else logging.INFO)
	handler.setFormatter(_VerboseFormatter() if verbose else _PlainFormatter())
	_logger.addHandler(handler)

	_state["indent"] = 0
	_state["show_payloads"] = bool(show_payloads or verbose)
	_state["max_payload"] = 0 if verbose else 512

	global _GL_SUB, _GL_OK, _GL_WAIT, _GL_RESULT, _GL_CMD, _GL_WARN, _GL_STOP

	if _supports_emoji():
		_GL_SUB = "➖ "
		_GL_OK = "✅ "
		_GL_WAIT = "⏳ "
		_GL_RESULT = "➡️ "
		_GL_CMD = "⮞ "
		_GL_WARN = "⚠️ "
		_GL_STOP = "🚫 "


def _prefix(extra_indent: int) -> str:
	return " " * (_state["indent"] + max(0, int(extra_indent or 0)))


def _clip(payload: str) -> str:
	limit = _state["max_payload"]
	if limit and len(payload) > limit:
		return f"{payload[:limit]}... ({len(payload)} chars)"
	return payload


# Library-level reporting
def info(msg: str, *, extra_indent: int = 0) -> None:
	_logger.info(f"{_prefix(extra_indent)}{msg}")


def warn(msg: str, *, extra_indent: int = 0) -> None:
	_logger.warning(f"{_prefix(extra_indent)}{msg}")


def debug(msg: str, *, extra_indent: int = 0) -> None:
	_logger.debug(f"{_prefix(extra_indent)}{msg}")


def send(proto: str, payload: str, peer: Optional[str] = None) -> None:
	"""Outgoing datagram; ``peer`` is "ip:port" when known."""
	target = f" -> {peer}" if peer else ""
	if _state["show_payloads"]:
		print(f"{_prefix(0)}>> {proto}{target}: {_clip(payload)}")
	else:
		_logger.debug(f"{proto} send{target}: {payload}")


def recv(proto: str, payload: str, peer: Optional[str] = None) -> None:
	source = f" <- {peer}" if peer else ""
	if _state["show_payloads"]:
		print(f"{_prefix(0)}<< {proto}{source}: {_clip(payload)}")
	else:
		_logger.debug(f"{proto} recv{source}: {payload}")


# CLI decorations
def say(msg: str, *, extra_indent: int = 0) -> None:
	print(f"{_prefix(extra_indent)}{msg}")


def step(title: str, *, extra_indent: int = 0) -> None:
	print(f"{_prefix(extra_indent)}{_GL_SUB}{title}")


def section(title: str) -> None:
	"""Major section header"""
	bar = "─" * 60
	print(f"\n{bar}")
	print(" " + title.center(58))
	print(bar)
	_state["indent"] = 0


def subsection(title: str, *, extra_indent: int = 0) -> None:
	"""Subsection header; indents everything printed after it"""
	print(f"{_prefix(extra_indent)}{_GL_SUB}{title}")
	_state["indent"] = 2


def success(msg: str, *, extra_indent: int = 0) -> None:
	print(f"{_prefix(extra_indent)}{_GL_OK}{msg}")


def waiting(msg: str, *, extra_indent: int = 0) -> None:
	print(f"{_prefix(extra_indent)}{_GL_WAIT}{msg}")


def result(msg: str, *, extra_indent: int = 0) -> None:
	print(f"{_prefix(extra_indent)}{_GL_RESULT}{msg}")


def stop(msg: str, *, extra_indent: int = 0) -> None:
	print(f"{_prefix(extra_indent)}{_GL_STOP}{msg}")


def cmd(msg: str, *, extra_indent: int = 0) -> None:
	print(f"{_prefix(extra_indent)}{_GL_CMD}{msg}")
