import asyncio
import sys
from pathlib import Path

from readmac.readmac_errors import ReaderError, UnterminatedListError, UnterminatedStringError
from readmac.readmac_printer import Printer
from readmac.readmac_reader import Reader
from readmac.readmac_registry import extended_registry, load_readtable
from readmac.readmac_runtime import ScriptRunner

PROMPT = "> "
CONTINUE_PROMPT = ".. "

USAGE = "usage: readmac.py [--readtable TABLE.yaml] [SCRIPT]"


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


def print_side_effects(result):
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))


def parse_args(argv):
    """Return (readtable_path, script_path); either may be None."""
    readtable = script = None
    args = list(argv)
    while args:
        arg = args.pop(0)
        if arg == "--readtable":
            if not args:
                raise SystemExit(USAGE)
            readtable = args.pop(0)
        elif arg.startswith("-"):
            raise SystemExit(USAGE)
        else:
            script = arg
    return readtable, script


def make_runner(readtable=None) -> ScriptRunner:
    registry = extended_registry(rows=load_readtable(readtable)) if readtable else None
    return ScriptRunner(registry=registry)


def is_incomplete(reader: Reader, source: str) -> bool:
    """True when source stops inside an open list or string."""
    try:
        reader.read_all(source)
    except (UnterminatedListError, UnterminatedStringError):
        return True
    except ReaderError:
        # Reported when the entry is run
        return False
    return False


async def run_script_file(file_path: str, runner: ScriptRunner = None):
    """Run a script file non-interactively and exit with appropriate status."""
    runner = runner or make_runner()
    try:
        source = Path(file_path).read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = await runner.handle_script(source)
    print_side_effects(result)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)
    if result.value is not None:
        print(Printer().pformat(result.value))


async def read_entry(reader: Reader):
    """Read one REPL entry, prompting for more lines while a form is still open.

    Returns None when the user asked to leave.
    """
    lines = []
    while True:
        raw = await ainput(CONTINUE_PROMPT if lines else PROMPT)
        if raw == "":
            if lines:
                # End of input mid-form: run what we have and let it report.
                return "\n".join(lines)
            raise EOFError
        line = raw.rstrip("\n")
        if not lines:
            if not line.strip():
                continue
            if line.strip() == "exit":
                return None
        lines.append(line)
        source = "\n".join(lines)
        if not is_incomplete(reader, source):
            return source


async def main(argv=None):
    """Run a script file when provided, otherwise start the interactive REPL."""
    readtable, script = parse_args(sys.argv[1:] if argv is None else argv)
    runner = make_runner(readtable)
    if script:
        await run_script_file(script, runner)
        return

    print("readmac REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    printer = Printer()
    while True:
        try:
            source = await read_entry(runner.reader)
            if source is None:
                break

            result = await runner.handle_script(source)
            print_side_effects(result)
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue

            # Every evaluated form has a value; nil is printed like any other.
            print(printer.pformat(result.value))

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
