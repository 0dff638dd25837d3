import io

import pytest

from sddsio.cli import SDDSBrowser


@pytest.fixture
def browser():
    return SDDSBrowser(stdout=io.StringIO())


def run(browser, line):
    """Run one command and return what it printed"""
    browser.stdout.seek(0)
    browser.stdout.truncate()
    browser.onecmd(line)
    return browser.stdout.getvalue()


def test_commands_need_a_file(browser, tmp_path):
    assert run(browser, 'describe') == "No file open. Use: open <file>\n"
    assert run(browser, 'open') == "Usage: open <file>\n"
    missing = tmp_path / "missing.sdds"
    assert run(browser, f'open {missing}') == f"File not found: {missing}\n"
    assert run(browser, 'frobnicate now') == "Unknown command: frobnicate\n"


def test_open_and_page_through(browser, two_page_file):
    output = run(browser, f'open {two_page_file}')
    assert output == f"Opened {two_page_file}: 1 columns, 1 parameters, 0 arrays (binary)\n"
    assert browser.prompt == "sdds(two_pages.sdds)> "
    assert 'x' in run(browser, 'describe')

    assert run(browser, 'params') == "No page loaded. Use: page\n"
    assert run(browser, 'page') == "Page 1: 3 rows\n"
    assert run(browser, 'params') == "P = v1\n"
    assert run(browser, 'page 2') == "Page 2: 3 rows\n"
    assert run(browser, 'params') == "P = v2\n"
    assert run(browser, 'page') == "No more pages\n"
    assert run(browser, 'page 1') == "Page 1: 3 rows\n"
    assert run(browser, 'page one') == "Usage: page [n]\n"


def test_print_rows(browser, two_page_file):
    run(browser, f'open {two_page_file}')
    run(browser, 'page')
    lines = run(browser, 'print').splitlines()
    assert lines[0] == "x  "
    assert lines[1] == "---"
    assert lines[2:5] == ["1.0", "2.0", "3.0"]
    assert lines[-1] == "3 row(s) in page 1"

    output = run(browser, 'print x -n 1')
    assert "... 2 more row(s)" in output
    assert run(browser, 'print y') == "Unknown column(s): y\n"
    assert run(browser, 'print -n') == "Usage: print [column ...] [-n rows]\n"


def test_quit(browser, two_page_file):
    run(browser, f'open {two_page_file}')
    assert browser.onecmd('quit') is True
    assert browser.stdout.getvalue().endswith("Goodbye!\n")
    assert browser.dataset is None
