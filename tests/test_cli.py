"""
Tests for the dwarfvar command line.
"""

import json

import pytest

from conftest import DATA_ADDRESS
from dwarfvar.cli import main


@pytest.fixture
def elf_path(tmp_path, sample_elf):
    path = tmp_path / 'sample.elf'
    path.write_bytes(sample_elf)
    return str(path)


def run(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


@pytest.mark.cli
def test_prints_value(elf_path, capsys):
    """Text output shows the type line, address and value."""
    assert run([elf_path, 'X', '--no-demangle']) == 0
    out = capsys.readouterr().out
    assert 'X: u32_t (unsigned, 4 bytes)' in out
    assert f'0x{DATA_ADDRESS:x}' in out
    assert 'value:   42' in out


@pytest.mark.cli
def test_json_report(elf_path, capsys):
    """--json prints a VariableReport."""
    assert run([elf_path, 'counter', '--as', 'i32', '--json', '--no-demangle']) == 0
    report = json.loads(capsys.readouterr().out)
    assert report['value'] == -5
    assert report['type']['kind'] == 'signed'
    assert report['address'] == DATA_ADDRESS + 4


@pytest.mark.cli
def test_error_exit_code(elf_path, capsys):
    """Lookup and conversion failures exit with 1 and a message on stderr."""
    assert run([elf_path, 'X', '--as', 'u8', '--no-demangle']) == 1
    assert 'Cannot read' in capsys.readouterr().err

    assert run([elf_path, 'missing', '--no-demangle']) == 1
    assert "No variable named 'missing'" in capsys.readouterr().err


@pytest.mark.cli
def test_strict_duplicates(elf_path, capsys):
    """--strict-duplicates turns a duplicate name into an error."""
    assert run([elf_path, 'counter', '--no-demangle']) == 0
    assert run([elf_path, 'counter', '--no-demangle', '--strict-duplicates']) == 1


@pytest.mark.cli
def test_list_names(elf_path, capsys):
    """--list prints every indexed variable name."""
    assert run([elf_path, '--list', '--json', '--no-demangle']) == 0
    listing = json.loads(capsys.readouterr().out)
    assert 'ns::inner' in listing['variables']


@pytest.mark.cli
def test_struct_hex_dump(elf_path, capsys):
    """Aggregates are printed as a hex dump of their bytes."""
    assert run([elf_path, 'origin', '--no-demangle']) == 0
    assert '01 02 03 04 05 06 07 08' in capsys.readouterr().out


@pytest.mark.cli
def test_memory_dump_option(elf_path, tmp_path, capsys):
    """--memory reads the value from a dump file instead of the binary."""
    dump = tmp_path / 'data.bin'
    dump.write_bytes((99).to_bytes(4, 'little'))
    argv = [elf_path, 'X', '--no-demangle', '--json', '--memory', str(dump),
            '--memory-base', hex(DATA_ADDRESS)]
    assert run(argv) == 0
    assert json.loads(capsys.readouterr().out)['value'] == 99


@pytest.mark.cli
def test_dump_tree(elf_path, capsys):
    """--dump prints the DIE tree."""
    assert run([elf_path, '--dump', '--dump-depth', '1', '--no-demangle']) == 0
    assert 'DW_TAG_compile_unit' in capsys.readouterr().out


@pytest.mark.cli
def test_name_required(elf_path):
    """Without NAME, --list or --dump the exit code is 2."""
    assert run([elf_path, '--no-demangle']) == 2


@pytest.mark.cli
def test_missing_memory_dump_is_reported(elf_path, tmp_path, capsys):
    """An unreadable --memory file ends with an error message, not a traceback."""
    argv = [elf_path, 'X', '--no-demangle', '--memory', str(tmp_path / 'absent.bin')]
    assert run(argv) == 1
    assert 'Cannot read memory dump' in capsys.readouterr().err
