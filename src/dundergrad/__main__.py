import argparse
import logging
import pathlib
import sys

from dundergrad import compiler


def parse_version(text: str) -> tuple[int, int]:
    try:
        major, minor = map(int, text.split("."))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected MAJOR.MINOR, got {text!r}") from None
    return major, minor


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="dundergrad", description="Lower tensor operator expressions into method calls")
    parser.add_argument("files", nargs="+", type=pathlib.Path, help="python sources to compile")
    parser.add_argument("-o", "--out-dir", type=pathlib.Path, default=None, help="write lowered sources here")
    parser.add_argument("--target", type=parse_version, default=None, help="grammar version of the sources, e.g. 3.11")
    parser.add_argument("--optimize", type=int, default=-1, choices=(-1, 0, 1, 2))
    parser.add_argument("--run", action="store_true", help="execute the compiled files in order")
    parser.add_argument("--log-level", default=None, type=str.upper, choices=tuple(logging._nameToLevel))
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_arguments(argv)
    if args.log_level is not None:
        logging.getLogger("dundergrad").setLevel(args.log_level)

    options = compiler.CompilerOptions(out_dir=args.out_dir, target_version=args.target, optimize=args.optimize)
    result = compiler.compile_files(args.files, options)
    compiler.report_diagnostics(result.diagnostics)
    if result.emit_skipped:
        return 1

    if args.run:
        for compiled in result.results:
            exec(compiled.code, {"__name__": "__main__", "__file__": compiled.filename})
    return 0


if __name__ == "__main__":
    sys.exit(main())
