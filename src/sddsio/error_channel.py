"""
Error Channel - LIFO stack of diagnostic messages
Engine operations push here when they fail so that tools can print
everything at exit.
"""

import sys
from typing import List, Optional, TextIO


class ErrorChannel:
    """Stack of error strings, drained by print_errors"""

    def __init__(self):
        self._messages: List[str] = []

    def set_error(self, message: str) -> None:
        """Push a message"""
        self._messages.append(message)

    push = set_error

    def __len__(self):
        return len(self._messages)

    def __bool__(self):
        return bool(self._messages)

    def number_of_errors(self) -> int:
        return len(self._messages)

    def drain(self) -> List[str]:
        """Remove and return all messages, most recent first"""
        messages = list(reversed(self._messages))
        self._messages.clear()
        return messages

    def clear(self) -> None:
        self._messages.clear()

    def print_errors(self, sink: Optional[TextIO] = None, exit_on: bool = False,
                     verbose: bool = True) -> None:
        """
        Drain the stack to a sink

        Args:
            sink: Text stream to write to (default stderr)
            exit_on: Terminate the process with status 1 after draining
            verbose: Print every message rather than only the most recent
        """
        sink = sink or sys.stderr
        messages = self.drain()
        if messages:
            sink.write("Error: " + messages[0] + "\n")
            if verbose:
                for message in messages[1:]:
                    sink.write("  " + message + "\n")
        sink.flush()
        if exit_on:
            sys.exit(1)
