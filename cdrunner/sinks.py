"""
Concrete deployment listeners: human readable console output and an NDJSON
event log.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

import click

from .ids import is_valid_run_id
from .listener import LoggingDeploymentListener

logger = logging.getLogger(__name__)


def get_cdrunner_home() -> Path:
    """
    Get the cdrunner home directory.

    Returns:
        Path: Directory from CDRUNNER_HOME, ".cdrunner" by default
    """
    home = os.environ.get("CDRUNNER_HOME", ".cdrunner")
    return Path(home).resolve()


def get_run_dir(run_id: str) -> Path:
    """
    Get the directory of a run, creating it if needed.

    Raises:
        ValueError: If run ID is invalid
    """
    if not is_valid_run_id(run_id):
        raise ValueError(f"Invalid run ID: {run_id}")

    run_dir = get_cdrunner_home() / "runs" / run_id
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


class EventTypes:
    MESSAGE = "MESSAGE"
    ERROR = "ERROR"
    BLOCK_OPENED = "BLOCK_OPENED"
    BLOCK_CLOSED = "BLOCK_CLOSED"
    PROGRESS = "PROGRESS"
    PROBLEM = "PROBLEM"
    PARAMETER = "PARAMETER"
    STATUS = "STATUS"


class ConsoleDeploymentListener(LoggingDeploymentListener):
    """
    Prints the deployment log for a person watching the run.

    Problems, output parameters and the final status text are also kept on
    the instance so the caller can act on them.
    """

    def __init__(self, runner_params: Dict[str, str], checkout_dir: Optional[str] = None,
                 echo: Callable[..., None] = click.echo):
        super().__init__(runner_params, checkout_dir)
        self._echo = echo
        self._blocks: List[str] = []
        self.problems: List[Tuple[int, str, str]] = []
        self.parameters: Dict[str, str] = {}
        self.status: Optional[str] = None

    def _indent(self) -> str:
        return "  " * len(self._blocks)

    def log(self, message: str) -> None:
        logger.info(message)
        self._echo(f"{self._indent()}{message}")

    def err(self, message: str) -> None:
        logger.error(message)
        self._echo(f"{self._indent()}{message}", err=True)

    def open(self, block: str) -> None:
        self._echo(f"{self._indent()}[{block}]")
        self._blocks.append(block)

    def close(self, block: str) -> None:
        if block in self._blocks:
            # drop the block and anything left open inside it
            del self._blocks[self._blocks.index(block):]

    def progress(self, message: str) -> None:
        logger.info(message)
        self._echo(f"{self._indent()}{message}")

    def problem(self, identity: int, type: str, description: str) -> None:
        self.problems.append((identity, type, description))
        self._echo(f"Problem [{type}]: {description}", err=True)

    def parameter(self, name: str, value: str) -> None:
        logger.debug(f"Setting {name}={value}")
        self.parameters[name] = value

    def status_text(self, text: str) -> None:
        self.status = text
        self._echo(text)


class EventLogDeploymentListener(LoggingDeploymentListener):
    """Appends every rendered event to an NDJSON file as {"ts", "type", "data"} records."""

    def __init__(self, path: Path, runner_params: Dict[str, str], checkout_dir: Optional[str] = None):
        super().__init__(runner_params, checkout_dir)
        self.path = Path(path)

    def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        event = {
            "ts": datetime.now().isoformat(),
            "type": event_type,
            "data": data
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as f:
            f.write(json.dumps(event) + "\n")
            f.flush()

    def log(self, message: str) -> None:
        self._emit(EventTypes.MESSAGE, {"text": message})

    def err(self, message: str) -> None:
        self._emit(EventTypes.ERROR, {"text": message})

    def open(self, block: str) -> None:
        self._emit(EventTypes.BLOCK_OPENED, {"name": block})

    def close(self, block: str) -> None:
        self._emit(EventTypes.BLOCK_CLOSED, {"name": block})

    def progress(self, message: str) -> None:
        self._emit(EventTypes.PROGRESS, {"text": message})

    def problem(self, identity: int, type: str, description: str) -> None:
        self._emit(EventTypes.PROBLEM, {"identity": identity, "type": type, "description": description})

    def parameter(self, name: str, value: str) -> None:
        self._emit(EventTypes.PARAMETER, {"name": name, "value": value})

    def status_text(self, text: str) -> None:
        self._emit(EventTypes.STATUS, {"text": text})


def read_events(path: Path) -> List[Dict[str, Any]]:
    """
    Read all events from an NDJSON event log.

    Args:
        path: Event log file

    Returns:
        List of events, empty if the file does not exist
    """
    path = Path(path)
    if not path.exists():
        return []

    events = []
    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue  # Skip malformed lines

    return events
