"""Interactive control console.

Reads one command per line and maps it onto FileIntakeProcessor's public
methods. Type ``help`` for the command list.
"""
from __future__ import annotations

import sys
from typing import Any, Dict, Optional, TextIO

from intake.errors import IntakeError
from intake.processor import FileIntakeProcessor

HELP = """Available commands:
  start             - start watching the input directory and scheduled exports
  stop              - stop watching and scheduled exports
  convert on|off    - toggle conversion to the canonical format
  archive on|off    - toggle archiving of processed files
  backup on|off     - toggle backups before processing
  process <path>    - process one file now
  export <format>   - run a manual export (csv, json, xml, excel)
  status            - show the current configuration
  quit              - stop everything and exit"""

TOGGLES = ("convert", "archive", "backup")


class ControlConsole:
    def __init__(
        self,
        processor: FileIntakeProcessor,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        schedule_options: Optional[Dict[str, Any]] = None,
        prompt: str = "command> ",
    ) -> None:
        self.processor = processor
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self.schedule_options = schedule_options or {}
        self.prompt = prompt

    def write(self, text: str) -> None:
        self.stdout.write(text + "\n")
        self.stdout.flush()

    def run(self) -> None:
        """Read commands until ``quit`` or end of input."""
        self.write("=== File intake processor ===")
        self.write("Type 'help' for the list of commands")
        while True:
            self.stdout.write(self.prompt)
            self.stdout.flush()
            line = self.stdin.readline()
            if not line:
                self.execute("quit")
                return
            if not self.execute(line):
                return

    def execute(self, line: str) -> bool:
        """Run one command. Returns False once the console should exit."""
        command = line.strip()
        if not command:
            return True
        verb, _, arg = command.partition(" ")
        verb = verb.lower()
        arg = arg.strip()

        try:
            if verb == "help":
                self.write(HELP)
            elif verb == "start":
                self.processor.start(**self.schedule_options)
                self.write("Watching and scheduled exports started")
            elif verb == "stop":
                self.processor.stop()
                self.write("Services stopped")
            elif verb in TOGGLES and arg.lower() in ("on", "off"):
                value = arg.lower() == "on"
                self.processor.set_flag(verb, value)
                self.write(f"{verb}: {arg.lower()}")
            elif verb == "convert" and arg.lower().startswith("json "):
                # also accept the "convert json on|off" phrasing
                return self.execute(f"convert {arg[5:]}")
            elif verb == "process" and arg:
                result = self.processor.process_file(arg)
                self.write(f"{result.path}: {result.status.value}")
            elif verb == "export" and arg:
                out = self.processor.manual_export(arg)
                self.write(f"Exported to {out}" if out else f"Export as {arg} failed")
            elif verb == "status":
                self.write("System status:")
                for key, value in self.processor.status().items():
                    self.write(f"  {key}: {value}")
            elif verb in ("quit", "exit"):
                self.write("Shutting down...")
                self.processor.stop()
                return False
            else:
                self.write("Unknown command. Type 'help' for the list of commands.")
        except (IntakeError, ValueError) as exc:
            self.write(f"Error: {exc}")
        return True
