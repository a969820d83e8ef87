"""
Compilation driver: parse -> type check -> lower -> emit

Syntax errors (from parsing or from compiling the lowered tree) are turned into
`Diagnostic`s and skip emission for that file; the lowering pass itself never fails.
"""

from __future__ import annotations

import ast
import dataclasses
import itertools
import logging
import os
import pathlib
import sys
import types
from typing import Any, Iterable, TextIO

from dundergrad import lowering
from dundergrad.capabilities import TypeRegistry, default_registry
from dundergrad.errors import CompilationError

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class CompilerOptions:
    """
    out_dir:            directory lowered sources are written to (None: nothing written).
    target_version:     `(major, minor)` grammar the sources are parsed with (None: running interpreter).
    optimize:           optimization level passed to `compile`.
    registry:           types known ahead of the checked sources.
    """

    out_dir: pathlib.Path | None = None
    target_version: tuple[int, int] | None = None
    optimize: int = -1
    registry: TypeRegistry = dataclasses.field(default_factory=default_registry)


@dataclasses.dataclass(frozen=True, slots=True)
class Diagnostic:
    file: str
    line: int | None
    column: int | None
    message: str

    def __str__(self) -> str:
        if self.line is None:
            return f"{self.file}: {self.message}"
        return f"{self.file} ({self.line},{self.column}): {self.message}"

    @classmethod
    def from_syntax_error(cls, error: SyntaxError, filename: str) -> Diagnostic:
        return cls(filename, error.lineno, error.offset, error.msg)


@dataclasses.dataclass(slots=True)
class CompileResult:
    filename: str
    tree: ast.Module | None
    code: types.CodeType | None
    diagnostics: list[Diagnostic] = dataclasses.field(default_factory=list)

    @property
    def emit_skipped(self) -> bool:
        return self.code is None

    @property
    def source(self) -> str | None:
        return None if self.tree is None else ast.unparse(self.tree)


@dataclasses.dataclass(slots=True)
class EmitResult:
    results: list[CompileResult]
    emitted: list[pathlib.Path] = dataclasses.field(default_factory=list)

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return list(itertools.chain.from_iterable(r.diagnostics for r in self.results))

    @property
    def emit_skipped(self) -> bool:
        return any(r.emit_skipped for r in self.results)


def compile_source(source: str | bytes, filename: str = "<string>", options: CompilerOptions | None = None) -> CompileResult:
    options = CompilerOptions() if options is None else options
    try:
        tree = ast.parse(source, filename=filename, feature_version=options.target_version)
    except SyntaxError as error:
        return CompileResult(filename, None, None, [Diagnostic.from_syntax_error(error, filename)])
    except ValueError as error:  # undecodable bytes, null bytes
        return CompileResult(filename, None, None, [Diagnostic(filename, None, None, str(error))])
    lowered = lowering.lower(tree, options.registry)
    try:
        code = compile(lowered, filename, "exec", dont_inherit=True, optimize=options.optimize)
    except SyntaxError as error:
        return CompileResult(filename, lowered, None, [Diagnostic.from_syntax_error(error, filename)])
    return CompileResult(filename, lowered, code)


def compile_files(paths: Iterable[str | os.PathLike], options: CompilerOptions | None = None) -> EmitResult:
    options = CompilerOptions() if options is None else options
    emit_result = EmitResult([])
    for path in map(pathlib.Path, paths):
        try:
            source = path.read_bytes()  # NOTE: decoded by the parser, coding cookies included
        except OSError as error:
            emit_result.results.append(
                CompileResult(str(path), None, None, [Diagnostic(str(path), None, None, f"cannot read file: {error}")])
            )
            continue
        emit_result.results.append(result := compile_source(source, str(path), options))
        if not result.emit_skipped and options.out_dir is not None:
            emit_result.emitted.append(write_output(result, options.out_dir / path.name))
    return emit_result


def write_output(result: CompileResult, out_path: pathlib.Path) -> pathlib.Path:
    assert result.source is not None, f"nothing to emit for {result.filename=}"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(result.source + "\n", encoding="utf-8")
    logger.info("emitted %s -> %s", result.filename, out_path)
    return out_path


def report_diagnostics(diagnostics: Iterable[Diagnostic], stream: TextIO | None = None) -> None:
    stream = sys.stderr if stream is None else stream
    for diagnostic in diagnostics:
        print(diagnostic, file=stream)


def check_emit(result: CompileResult | EmitResult) -> None:
    if result.emit_skipped:
        raise CompilationError("Compilation failed:\n" + "\n".join(map(str, result.diagnostics)))


def execute(
    source: str,
    namespace: dict[str, Any] | None = None,
    filename: str = "<string>",
    options: CompilerOptions | None = None,
) -> dict[str, Any]:
    """Lower, compile and run `source` in `namespace`"""
    check_emit(result := compile_source(source, filename, options))
    namespace = {"__name__": "__dundergrad__"} if namespace is None else namespace
    exec(result.code, namespace)
    return namespace
