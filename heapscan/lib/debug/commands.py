"""
Registration of the heap-* script commands with LLDB.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional


@dataclass
class CommandSpec:
    """One script command: its name, handler and help."""
    name: str
    handler: Callable
    help_short: str
    help_long: str = ""


class CommandRegistry:
    """Adds script commands to a debugger and remembers their help.

    `debugger` only needs `HandleCommand`, so the registry works with an
    SBDebugger or anything that records the command lines.
    """

    def __init__(self, debugger):
        self.debugger = debugger
        self._commands: Dict[str, CommandSpec] = {}

    def register(self, spec: CommandSpec):
        self._commands[spec.name] = spec
        handler_path = f"{spec.handler.__module__}.{spec.handler.__name__}"
        help_opt = f' -h "{spec.help_short}"' if spec.help_short else ""
        self.debugger.HandleCommand(f"command script add -f {handler_path}{help_opt} {spec.name}")

    def register_multi(self, specs: List[CommandSpec]):
        for spec in specs:
            self.register(spec)

    def help_text(self, name: Optional[str] = None) -> str:
        """Summary of every command, or the long help of one."""
        if name is not None:
            spec = self._commands.get(name)
            if spec is None:
                return f"Unknown command: {name}"
            return "\n".join(filter(None, [f"{spec.name} - {spec.help_short}", spec.help_long]))

        lines = ["Commands available:"]
        for spec in self._commands.values():
            lines.append(f"  {spec.name:22} - {spec.help_short}")
        return "\n".join(lines)
