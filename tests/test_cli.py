"""Tests for the typo command line."""

from pathlib import Path

from click.testing import CliRunner

from typo.cli import main

runner = CliRunner()

HEADER = ["!_TAG_FILE_FORMAT\t1", "!_TAG_FILE_SORTED\t0", "!_TAG_PROGRAM_NAME\ttypo"]


def read_lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines()


class TestArguments:
    """Tests for argument validation."""

    def test_no_input(self):
        """Should exit with a usage error when no input is given."""
        result = runner.invoke(main, [])
        assert result.exit_code == 2
        assert "no input filename given" in result.output

    def test_multiple_inputs(self, isolated_cwd):
        """Should refuse more than one input."""
        result = runner.invoke(main, ["a.rs", "b.rs"])
        assert result.exit_code == 2
        assert "multiple input found" in result.output

    def test_invalid_cfg(self, isolated_cwd):
        """Should reject malformed --cfg specs as usage errors."""
        (isolated_cwd / "lib.rs").write_text("fn f() {}\n")
        result = runner.invoke(main, ["lib.rs", "--cfg", "bad spec"])
        assert result.exit_code == 2
        assert "invalid --cfg argument" in result.output

    def test_no_output_requested(self, isolated_cwd):
        """Should only check the crate when no output is requested."""
        (isolated_cwd / "lib.rs").write_text("fn f() {}\n")
        result = runner.invoke(main, ["lib.rs"])
        assert result.exit_code == 0
        assert list(isolated_cwd.iterdir()) == [isolated_cwd / "lib.rs"]

    def test_invalid_config_file(self, isolated_cwd):
        """Should exit 1 on invalid configuration values."""
        (isolated_cwd / "lib.rs").write_text("fn f() {}\n")
        (isolated_cwd / ".typo.yaml").write_text("logging:\n  level: LOUD\n")
        result = runner.invoke(main, ["lib.rs"])
        assert result.exit_code == 1
        assert "invalid configuration" in result.output


class TestTags:
    """Tests for tag file output."""

    def test_writes_header_and_entries(self, isolated_cwd):
        """Should write the header, then macros, then definitions."""
        (isolated_cwd / "lib.rs").write_text(
            "fn first() {}\nmacro_rules! later { () => {} }\nstruct S { x: i32 }\n"
        )
        result = runner.invoke(main, ["lib.rs", "--tags", "tags"])
        assert result.exit_code == 0, result.output
        assert read_lines(isolated_cwd / "tags") == HEADER + [
            "later\tlib.rs\t/^macro_rules! later { () => {} }$/",
            "first\tlib.rs\t/^fn first() {}$/",
            "S\tlib.rs\t/^struct S { x: i32 }$/",
            "x\tlib.rs\t/^struct S { x: i32 }$/",
        ]

    def test_reads_stdin(self, isolated_cwd):
        """Should read `-` from stdin and name it <stdin>."""
        result = runner.invoke(main, ["-", "--tags", "tags"], input="fn foo() {}")
        assert result.exit_code == 0, result.output
        assert read_lines(isolated_cwd / "tags") == HEADER + ["foo\t<stdin>\t/^fn foo() {}$/"]

    def test_every_destination_is_written(self, isolated_cwd):
        """Should write identical content to each --tags path."""
        (isolated_cwd / "lib.rs").write_text("fn f() {}\n")
        result = runner.invoke(main, ["lib.rs", "--tags", "one", "--tags", "two"])
        assert result.exit_code == 0, result.output
        assert read_lines(isolated_cwd / "one") == read_lines(isolated_cwd / "two")
        assert len(read_lines(isolated_cwd / "one")) == 4

    def test_append_skips_header(self, isolated_cwd):
        """Should append entries without a header."""
        (isolated_cwd / "lib.rs").write_text("fn f() {}\n")
        (isolated_cwd / "tags").write_text("existing\tother.rs\t/^x$/\n")
        result = runner.invoke(main, ["lib.rs", "--tags", "tags", "--tags-append"])
        assert result.exit_code == 0, result.output
        assert read_lines(isolated_cwd / "tags") == [
            "existing\tother.rs\t/^x$/",
            "f\tlib.rs\t/^fn f() {}$/",
        ]

    def test_cfg_option(self, isolated_cwd):
        """Should honour --cfg when stripping items."""
        (isolated_cwd / "lib.rs").write_text("#[cfg(foo)]\nfn on() {}\n#[cfg(not(foo))]\nfn off() {}\n")
        result = runner.invoke(main, ["lib.rs", "--cfg", "foo", "--tags", "tags"])
        assert result.exit_code == 0, result.output
        assert read_lines(isolated_cwd / "tags")[3:] == ["on\tlib.rs\t/^fn on() {}$/"]

    def test_module_tag_skips_leading_comment(self, isolated_cwd):
        """Should tag an out-of-line module at its first line of code."""
        (isolated_cwd / "lib.rs").write_text("mod m;\n")
        (isolated_cwd / "m.rs").write_text("\n// helpers\nfn x() {}\n")
        result = runner.invoke(main, ["lib.rs", "--tags", "tags"])
        assert result.exit_code == 0, result.output
        assert read_lines(isolated_cwd / "tags")[3:] == [
            "m\tm.rs\t/^fn x() {}$/",
            "x\tm.rs\t/^fn x() {}$/",
        ]

    def test_program_name_from_config(self, isolated_cwd):
        """Should take the header program name from the config file."""
        (isolated_cwd / "lib.rs").write_text("fn f() {}\n")
        (isolated_cwd / "custom.yaml").write_text("tags:\n  program_name: rtags\n")
        result = runner.invoke(main, ["lib.rs", "--config", "custom.yaml", "--tags", "tags"])
        assert result.exit_code == 0, result.output
        assert read_lines(isolated_cwd / "tags")[2] == "!_TAG_PROGRAM_NAME\trtags"


class TestTables:
    """Tests for node-span and type table output."""

    def test_node_id_map_and_type_map(self, isolated_cwd):
        """Should write both tables for a single let binding."""
        result = runner.invoke(
            main,
            ["-", "--node-id-map", "nodes", "--type-map", "types"],
            input="let x = 5;",
        )
        assert result.exit_code == 0, result.output
        assert read_lines(isolated_cwd / "nodes") == [
            "<stdin>\t0\t10\t1",
            "<stdin>\t4\t5\t3",
            "<stdin>\t8\t9\t4",
        ]
        assert sorted(read_lines(isolated_cwd / "types")) == ["3\ti32", "4\ti32"]

    def test_long_method_chain(self, isolated_cwd):
        """Should index a method chain deeper than the recursion limit."""
        (isolated_cwd / "lib.rs").write_text("fn f() { let x = a" + ".b()" * 3000 + "; }\n")
        result = runner.invoke(
            main,
            ["lib.rs", "--tags", "tags", "--node-id-map", "nodes", "--type-map", "types"],
        )
        assert result.exit_code == 0, result.output
        assert read_lines(isolated_cwd / "tags")[3:] == [
            "f\tlib.rs\t/^fn f() { let x = a" + ".b()" * 3000 + "; }$/"
        ]
        assert len(read_lines(isolated_cwd / "nodes")) > 3000


class TestErrors:
    """Tests for fatal errors."""

    def test_parse_error_writes_nothing(self, isolated_cwd):
        """Should exit 1 and leave outputs untouched on syntax errors."""
        (isolated_cwd / "lib.rs").write_text("fn broken( {\n")
        result = runner.invoke(main, ["lib.rs", "--tags", "tags"])
        assert result.exit_code == 1
        assert "error: lib.rs:" in result.output
        assert not (isolated_cwd / "tags").exists()

    def test_missing_input(self, isolated_cwd):
        """Should exit 1 when the input cannot be read."""
        result = runner.invoke(main, ["absent.rs", "--tags", "tags"])
        assert result.exit_code == 1
        assert "error: couldn't read absent.rs" in result.output

    def test_missing_module(self, isolated_cwd):
        """Should exit 1 when a module file is missing."""
        (isolated_cwd / "lib.rs").write_text("mod gone;\n")
        result = runner.invoke(main, ["lib.rs", "--tags", "tags"])
        assert result.exit_code == 1
        assert "file not found for module `gone`" in result.output

    def test_unwritable_destination(self, isolated_cwd):
        """Should exit 1 when an output cannot be created."""
        (isolated_cwd / "lib.rs").write_text("fn f() {}\n")
        result = runner.invoke(main, ["lib.rs", "--tags", "missing-dir/tags"])
        assert result.exit_code == 1
        assert "error: couldn't open missing-dir/tags" in result.output

    def test_deep_nesting(self, isolated_cwd):
        """Should exit 1 with an error, not a traceback, on over-deep nesting."""
        (isolated_cwd / "lib.rs").write_text("fn f() { let x = " + "(" * 3000 + "1" + ")" * 3000 + "; }\n")
        result = runner.invoke(main, ["lib.rs", "--tags", "tags"])
        assert result.exit_code == 1
        assert "error: lib.rs: expressions nest too deeply" in result.output
        assert not (isolated_cwd / "tags").exists()
