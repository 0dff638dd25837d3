"""
Command Line Interface Module - Interactive SDDS browser
Open a file, look at its layout, step through pages and print rows.
"""

import cmd
import os
import shlex
from typing import List, Optional

from .dataset import Dataset
from .exceptions import SDDSError
from .logsetup import setup_logging
from .types.value import format_scalar


class SDDSBrowser(cmd.Cmd):
    """Interactive browser over one SDDS file at a time"""

    intro = """
    ╔══════════════════════════════════════╗
    ║      sddsio Browser                  ║
    ║      Self-Describing Data Sets       ║
    ║      Type 'help' for commands        ║
    ╚══════════════════════════════════════╝

      open <file>          read a file's header
      describe             show its columns, parameters and arrays
      page [n]             load the next page, or page n
      params               show the parameters of the current page
      print [cols] [-n N]  print rows of the current page
    """
    prompt = "sdds> "

    def __init__(self, stdout=None):
        super().__init__(stdout=stdout)
        self.dataset: Optional[Dataset] = None
        self.path = None
        self.max_rows = 20

    def _write(self, text: str = '') -> None:
        self.stdout.write(text + '\n')

    def do_quit(self, arg):
        """Exit the browser"""
        self._close()
        self._write("Goodbye!")
        return True

    def do_exit(self, arg):
        """Exit the browser"""
        return self.do_quit(arg)

    def do_EOF(self, arg):
        """Exit on Ctrl-D"""
        self._write()
        return self.do_quit(arg)

    def emptyline(self):
        pass

    def _close(self) -> None:
        if self.dataset is not None:
            self.dataset.terminate()
            self.dataset = None

    def do_open(self, arg):
        """open <file>: open an SDDS file for browsing"""
        path = arg.strip()
        if not path:
            self._write("Usage: open <file>")
            return
        if not os.path.exists(path):
            self._write(f"File not found: {path}")
            return
        self._close()
        dataset = Dataset()
        try:
            dataset.initialize_input(path)
        except SDDSError as e:
            self._write(f"Error opening {path}: {e}")
            dataset.context.error_channel.clear()
            return
        self.dataset = dataset
        self.path = path
        self.prompt = f"sdds({os.path.basename(path)})> "
        layout = dataset.layout
        self._write(f"Opened {path}: {len(layout.columns)} columns, "
                    f"{len(layout.parameters)} parameters, {len(layout.arrays)} arrays "
                    f"({layout.data_mode.mode_name})")

    def do_describe(self, arg):
        """describe: show the layout of the open file"""
        if not self._require_file():
            return
        self._write(self.dataset.layout.summary())

    def do_page(self, arg):
        """page [n]: read the next page, or skip forward to page n"""
        if not self._require_file():
            return
        target = None
        if arg.strip():
            try:
                target = int(arg)
            except ValueError:
                self._write("Usage: page [n]")
                return
            if target <= self.dataset.page_number:
                self._reopen()
        try:
            while True:
                page = self.dataset.read_page()
                if page <= 0 or target is None or page >= target:
                    break
        except SDDSError as e:
            self._write(f"Error: {e}")
            return
        if page == 0:
            self._write("No more pages")
        elif page < 0:
            self._write("Page could not be read:")
            for message in self.dataset.context.error_channel.drain():
                self._write(f"  {message}")
        else:
            self._write(f"Page {page}: {self.dataset.row_count} rows")

    def _reopen(self) -> None:
        dataset = Dataset(self.dataset.context)
        dataset.initialize_input(self.path)
        self._close()
        self.dataset = dataset

    def do_params(self, arg):
        """params: show parameter values of the current page"""
        if not self._require_page():
            return
        layout = self.dataset.layout
        if not len(layout.parameters):
            self._write("No parameters")
            return
        width = max(len(d.name) for d in layout.parameters)
        for definition in layout.parameters:
            value = self.dataset.get_parameter(definition.name)
            text = format_scalar(definition.type, value)
            units = f" {definition.units}" if definition.units else ""
            self._write(f"{definition.name:<{width}} = {text}{units}")

    def do_print(self, arg):
        """print [column ...] [-n rows]: print rows of the current page"""
        if not self._require_page():
            return
        try:
            words = shlex.split(arg)
        except ValueError as e:
            self._write(f"Error: {e}")
            return
        limit = self.max_rows
        if '-n' in words:
            i = words.index('-n')
            try:
                limit = int(words[i + 1])
            except (IndexError, ValueError):
                self._write("Usage: print [column ...] [-n rows]")
                return
            del words[i:i + 2]
        columns = words or self.dataset.get_column_names()
        missing = [c for c in columns if self.dataset.get_column_index(c) < 0]
        if missing:
            self._write(f"Unknown column(s): {', '.join(missing)}")
            return
        self._display_rows(columns, limit)

    def _display_rows(self, columns: List[str], limit: int) -> None:
        """Print rows in table format"""
        rows = self.dataset.row_count
        if not columns or not rows:
            self._write("Empty page")
            return
        shown = min(rows, limit)
        data = []
        for name in columns:
            definition = self.dataset.get_column_definition(name)
            values = self.dataset.borrow_internal_column(name)
            data.append([format_scalar(definition.type, values[i]) for i in range(shown)])

        col_widths = []
        for name, cells in zip(columns, data):
            col_widths.append(min(max([len(name)] + [len(c) for c in cells]), 50))

        self._write(" | ".join(f"{name:<{width}}" for name, width in zip(columns, col_widths)))
        self._write("-+-".join("-" * width for width in col_widths))
        for i in range(shown):
            self._write(" | ".join(f"{cells[i]:<{width}}" for cells, width in zip(data, col_widths)))
        if shown < rows:
            self._write(f"... {rows - shown} more row(s)")
        self._write(f"\n{rows} row(s) in page {self.dataset.page_number}")

    def _require_file(self) -> bool:
        if self.dataset is None:
            self._write("No file open. Use: open <file>")
            return False
        return True

    def _require_page(self) -> bool:
        if not self._require_file():
            return False
        if self.dataset.page_number == 0:
            self._write("No page loaded. Use: page")
            return False
        return True

    def default(self, line: str) -> None:
        self._write(f"Unknown command: {line.split()[0]}")


def main():
    setup_logging(program='sddsbrowse')
    browser = SDDSBrowser()
    try:
        browser.cmdloop()
    except KeyboardInterrupt:
        print("\nExiting...")


if __name__ == "__main__":
    main()
