"""Tests for the tree-sitter Solidity parser wrapper."""

import logging
import threading

import pytest

from solscan.errors import ParseError
from solscan.parser import (
    SolidityParser,
    collect_syntax_errors,
    create_parser,
    get_solidity_language,
    has_usable_ast,
    parse_bytes,
    parse_file,
)

VALID_SOURCE = b"""pragma solidity 0.8.24;

contract Vault {
    address owner;

    function withdraw() public {
        require(msg.sender == owner);
    }
}
"""

GARBAGE = b"@@@ !!! %%% ^^^ &&&"


def test_get_solidity_language_returns_language():
    """get_solidity_language() returns a tree-sitter Language object."""
    assert get_solidity_language()


def test_create_parser_returns_parser():
    parser = create_parser()
    assert parser is not None
    assert parser.language is not None


def test_parse_bytes_success(caplog):
    """Parsing valid Solidity succeeds and logs at debug level."""
    with caplog.at_level(logging.DEBUG):
        tree = parse_bytes(VALID_SOURCE, parser=create_parser())
    assert tree.root_node.type == "source_file"
    assert not tree.root_node.has_error
    assert "Parse succeeded" in caplog.text


def test_parse_bytes_without_parser():
    tree = parse_bytes(b"contract A {}")
    assert tree.root_node is not None


def test_parse_bytes_with_errors_returns_tree():
    """Malformed source still yields a tree, flagged has_error."""
    tree = parse_bytes(b"contract A { function f( { }")
    assert tree.root_node.has_error


def test_parse_file(tmp_path, caplog):
    sol = tmp_path / "Vault.sol"
    sol.write_bytes(VALID_SOURCE)
    with caplog.at_level(logging.INFO):
        tree = parse_file(sol)
    assert tree is not None
    assert "Parsed file" in caplog.text


def test_parse_file_missing(tmp_path, caplog):
    with caplog.at_level(logging.ERROR):
        assert parse_file(tmp_path / "missing.sol") is None
    assert "Failed to read file" in caplog.text


def test_collect_syntax_errors_valid_source():
    tree = parse_bytes(VALID_SOURCE)
    assert collect_syntax_errors(tree.root_node) == []


def test_collect_syntax_errors_reports_positions():
    source = b"contract A {\n    function f() public {\n        uint x = ;\n    }\n}\n"
    errors = collect_syntax_errors(parse_bytes(source).root_node)
    assert errors
    for error in errors:
        assert error.line >= 1
        assert error.column >= 0
        assert error.message


def test_has_usable_ast():
    assert has_usable_ast(parse_bytes(VALID_SOURCE).root_node)
    assert not has_usable_ast(parse_bytes(GARBAGE).root_node)


def test_tolerant_parse_valid():
    result = SolidityParser().parse(VALID_SOURCE.decode())
    assert result.ast is not None
    assert result.ast.type == "source_file"
    assert result.errors == []


def test_tolerant_parse_garbage_never_raises():
    result = SolidityParser().parse(GARBAGE.decode())
    assert result.ast is None
    assert len(result.errors) >= 1


def test_tolerant_parse_partial_errors_keeps_ast():
    source = "contract Good { function f() public {} }\ncontract Bad { function g( }\n"
    result = SolidityParser().parse(source)
    assert result.errors
    assert result.ast is not None


def test_strict_parse_raises_first_error():
    with pytest.raises(ParseError) as excinfo:
        SolidityParser().parse(GARBAGE.decode(), tolerant=False)
    assert excinfo.value.line >= 1
    assert excinfo.value.message


def test_strict_parse_valid_source():
    result = SolidityParser().parse(VALID_SOURCE.decode(), tolerant=False)
    assert result.ast is not None


def test_parser_usable_from_threads():
    parser = SolidityParser()
    results = []

    def work():
        results.append(parser.parse(VALID_SOURCE.decode()).errors)

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results == [[], [], [], []]
