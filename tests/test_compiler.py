import io
import pathlib
import textwrap

import pytest

from dundergrad import __main__, compiler, errors

PROGRAM = textwrap.dedent(
    """
    from dundergrad import Tensor

    a = Tensor([[1, 2], [3, 4]])
    b = Tensor([[5, 6], [7, 8]])
    c = a * b * 2
    print(c.realize())
    """
)


def test_diagnostic_format() -> None:
    assert str(compiler.Diagnostic("m.py", 3, 7, "invalid syntax")) == "m.py (3,7): invalid syntax"
    assert str(compiler.Diagnostic("m.py", None, None, "cannot read file")) == "m.py: cannot read file"


def test_compile_source() -> None:
    result = compiler.compile_source(PROGRAM, "program.py")
    assert not result.emit_skipped
    assert not result.diagnostics
    assert "c = a.__mul__(b).__mul__(Tensor([[2]]))" in result.source
    assert result.code.co_filename == "program.py"


def test_syntax_error_skips_emit() -> None:
    result = compiler.compile_source("a = (1 +\n", "broken.py")
    assert result.emit_skipped
    assert result.source is None
    (diagnostic,) = result.diagnostics
    assert diagnostic.file == "broken.py"
    assert diagnostic.line == 1
    assert str(diagnostic).startswith("broken.py (1,")


def test_late_syntax_error_is_reported() -> None:
    # parses, but is rejected when compiled
    result = compiler.compile_source("def f():\n    pass\nreturn 1\n", "late.py")
    assert result.emit_skipped
    assert result.source is not None
    (diagnostic,) = result.diagnostics
    assert diagnostic.line == 3
    assert "'return' outside function" in diagnostic.message


def test_target_version() -> None:
    source = "match x:\n    case _:\n        pass\n"
    assert not compiler.compile_source(source).emit_skipped
    assert compiler.compile_source(source, options=compiler.CompilerOptions(target_version=(3, 8))).emit_skipped


def test_check_emit() -> None:
    compiler.check_emit(compiler.compile_source(PROGRAM))
    with pytest.raises(errors.CompilationError, match=r"broken\.py \(1,"):
        compiler.check_emit(compiler.compile_source("a = (1 +\n", "broken.py"))
    with pytest.raises(errors.DundergradError):
        compiler.execute("def (:\n")


def test_compile_files(tmp_path: pathlib.Path) -> None:
    (good := tmp_path / "good.py").write_text(PROGRAM)
    (bad := tmp_path / "bad.py").write_text("a = (1 +\n")
    missing = tmp_path / "missing.py"
    out_dir = tmp_path / "out"

    result = compiler.compile_files([good, bad, missing], compiler.CompilerOptions(out_dir=out_dir))

    assert result.emit_skipped
    assert [r.filename for r in result.results] == [str(good), str(bad), str(missing)]
    assert [d.file for d in result.diagnostics] == [str(bad), str(missing)]
    assert result.emitted == [out_dir / "good.py"]
    assert "a.__mul__(b).__mul__(Tensor([[2]]))" in (out_dir / "good.py").read_text()
    assert not (out_dir / "bad.py").exists()


def test_report_diagnostics() -> None:
    stream = io.StringIO()
    compiler.report_diagnostics(
        [compiler.Diagnostic("a.py", 1, 2, "first"), compiler.Diagnostic("b.py", 3, 4, "second")], stream
    )
    assert stream.getvalue() == "a.py (1,2): first\nb.py (3,4): second\n"


def test_execute_namespace() -> None:
    namespace = compiler.execute("from dundergrad import Tensor\nt = Tensor([[2]]) * 3\n", {"__name__": "scratch"})
    assert namespace["__name__"] == "scratch"
    assert namespace["t"].realize() == [[6.0]]


def test_cli_run(tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    (program := tmp_path / "program.py").write_text(PROGRAM)
    assert __main__.main([str(program), "--run", "--out-dir", str(tmp_path / "out")]) == 0
    assert capsys.readouterr().out.strip() == "[[38.0, 44.0], [86.0, 100.0]]"
    assert (tmp_path / "out" / "program.py").exists()


def test_cli_reports_failures(tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    (broken := tmp_path / "broken.py").write_text("a = (1 +\n")
    assert __main__.main([str(broken), "--run"]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err.startswith(f"{broken} (1,")


def test_cli_arguments() -> None:
    args = __main__.parse_arguments(["x.py", "--target", "3.10", "--log-level", "debug"])
    assert args.target == (3, 10)
    assert args.log_level == "DEBUG"
    with pytest.raises(SystemExit):
        __main__.parse_arguments(["x.py", "--target", "three"])


def test_undecodable_file_is_a_diagnostic(tmp_path: pathlib.Path) -> None:
    (binary := tmp_path / "binary.py").write_bytes(b"x = '\xff\xfe'\n")
    (latin := tmp_path / "latin.py").write_bytes(b"# -*- coding: latin-1 -*-\nname = '\xe9'\n")

    result = compiler.compile_files([binary, latin], compiler.CompilerOptions(out_dir=tmp_path / "out"))

    assert result.emit_skipped
    (diagnostic,) = result.diagnostics
    assert diagnostic.file == str(binary)
    assert not result.results[1].emit_skipped
    assert result.emitted == [tmp_path / "out" / "latin.py"]
    assert "name = 'é'" in (tmp_path / "out" / "latin.py").read_text(encoding="utf-8")
