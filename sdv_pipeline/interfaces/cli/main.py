#!/usr/bin/env python3
"""
SDV pipeline management tool

Every module in ``commands/`` that defines a ``Command`` class is a command.
"""

import argparse
import importlib
import sys
from pathlib import Path
from typing import Dict, List, Type

from .commands.base import BaseCommand


class CLIManager:
    def __init__(self):
        self.commands_dir = Path(__file__).parent / "commands"
        self.available_commands = self._discover_commands()

    def _discover_commands(self) -> Dict[str, Type[BaseCommand]]:
        """Discover every command module in the commands package"""
        commands = {}

        for file_path in sorted(self.commands_dir.glob("*.py")):
            if file_path.name.startswith("_") or file_path.stem == "base":
                continue

            module_name = file_path.stem
            try:
                module = importlib.import_module(f"{__package__}.commands.{module_name}")
            except ImportError as e:
                print(f"Warning: Could not load command '{module_name}': {e}")
                continue

            if hasattr(module, "Command"):
                commands[module_name] = module.Command

        return commands

    def list_commands(self):
        print("Available commands:")
        print("=" * 40)

        if not self.available_commands:
            print("No commands found.")
            return

        for name, command_class in self.available_commands.items():
            print(f"  {name:<20} {command_class.description}")

    def run_command(self, command_name: str, args: List[str]) -> int:
        if command_name not in self.available_commands:
            print(f"Unknown command: {command_name}")
            print("Use 'python manage.py help' to see available commands.")
            return 1

        command = self.available_commands[command_name]()
        try:
            result = command.run(args)
        except Exception as e:
            command.print_error(f"Error running command '{command_name}': {e}")
            return 1
        return result or 0


def main(argv: List[str] = None) -> int:
    parser = argparse.ArgumentParser(description="SDV pipeline management tool", add_help=False)
    parser.add_argument("command", nargs="?", help="Command to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the command")

    parsed = parser.parse_args(argv)
    cli_manager = CLIManager()

    if not parsed.command or parsed.command == "help":
        if parsed.args:
            command_name = parsed.args[0]
            if command_name in cli_manager.available_commands:
                cli_manager.available_commands[command_name]().help()
            else:
                print(f"Unknown command: {command_name}")
        else:
            print("SDV pipeline management tool")
            print("Usage: python manage.py <command> [args...]")
            print()
            cli_manager.list_commands()
            print()
            print("Use 'python manage.py help <command>' for help on a specific command.")
        return 0

    return cli_manager.run_command(parsed.command, parsed.args)


if __name__ == "__main__":
    sys.exit(main())
