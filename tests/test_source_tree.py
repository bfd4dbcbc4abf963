from pathlib import Path

import pytest
from pygments.token import Name, Operator, Punctuation, String, Whitespace

from jflex_to_kotlin import (
    CHAR,
    COMMENT,
    OPERATOR,
    STRING,
    TEXT_BLOCK,
    ConsistencyError,
    SourceTree,
    WriteAccessError,
    convert_string_literals,
    lex_java,
)

SAMPLE_LEXER = Path(__file__).parent / "fixtures" / "_SampleLexer.java"

SAMPLE_FIELDS = [
    "YYEOF", "ZZ_BUFFERSIZE", "ZZ_CMAP_PACKED", "ZZ_ACTION", "ZZ_ACTION_PACKED_0",
    "ZZ_ROWMAP_PACKED_0", "ZZ_ROWMAP", "ZZ_ERROR_MSG", "zzReader", "zzState", "zzBuffer",
]


def test_untouched_tree_renders_input() -> None:
    source = SAMPLE_LEXER.read_text(encoding='utf-8')
    assert SourceTree.from_text(source).text == source


def test_crlf_source_renders_unchanged() -> None:
    source = 'class A {\r\n  String s = "a" +\r\n    "b";\r\n}\r\n'
    assert SourceTree.from_text(source).text == source


def test_string_literal_is_one_node() -> None:
    nodes = lex_java('s = "a\\"b" + "c\\\\";')
    assert [n.text for n in nodes if n.kind == STRING] == ['"a\\"b"', '"c\\\\"']
    assert [n.value for n in nodes if n.kind == STRING] == ['a"b', 'c\\']


def test_char_literal_and_comments_are_not_strings() -> None:
    nodes = lex_java("char c = '\"'; // \"x\"\n")
    assert [n.kind for n in nodes if '"' in n.text] == [CHAR, COMMENT]


def test_text_block_is_not_a_string_literal() -> None:
    nodes = lex_java('String s = """\n  hi\n  """;')
    assert [n.kind for n in nodes if n.text.startswith('"')] == [TEXT_BLOCK]


class SplitTextBlockLexer:
    """Emits a text block the way lexers without text block support do."""

    TOKENS = [
        (Name, "t"), (Whitespace, " "), (Operator, "="), (Whitespace, " "),
        (String, '"'), (String, '"'),
        (String, '"'), (String, "\n  a\\0\n  "), (String, '"'),
        (String, '"'), (String, '"'),
        (Punctuation, ";"),
    ]

    def __init__(self, **options):
        pass

    def get_tokens_unprocessed(self, text):
        pos = 0
        for ttype, value in self.TOKENS:
            yield pos, ttype, value
            pos += len(value)


def test_split_text_block_is_merged(monkeypatch) -> None:
    monkeypatch.setattr("jflex_to_kotlin.JavaLexer", SplitTextBlockLexer)
    source = 't = """\n  a\\0\n  """;'
    nodes = lex_java(source)
    assert [n.kind for n in nodes if n.text.startswith('"')] == [TEXT_BLOCK]
    assert "".join(n.text for n in nodes) == source

    tree = SourceTree.from_text(source)
    assert convert_string_literals(tree) == 0
    assert tree.text == source


def test_operators_use_maximal_munch() -> None:
    nodes = lex_java("x += 1; y++ + z; a >>>= 2; b = c+-d;")
    assert [n.text for n in nodes if n.kind == OPERATOR] == ["+=", "++", "+", ">>>=", "=", "+", "-"]


def test_sample_lexer_class() -> None:
    tree = SourceTree.from_file(SAMPLE_LEXER)
    decl = tree.lexer_class()
    assert decl.name == "_SampleLexer"
    assert "public" in decl.modifiers
    assert tree.nodes[decl.body_start].text == "{"
    assert tree.nodes[decl.body_end].text == "}"


def test_sample_lexer_fields_in_order() -> None:
    tree = SourceTree.from_file(SAMPLE_LEXER)
    fields = tree.fields(tree.lexer_class())
    assert [f.name for f in fields] == SAMPLE_FIELDS


def test_field_text_includes_doc_comment() -> None:
    tree = SourceTree.from_file(SAMPLE_LEXER)
    by_name = {f.name: f for f in tree.fields(tree.lexer_class())}
    assert by_name["ZZ_ROWMAP"].text.startswith("/**\n   * Translates a state")
    assert by_name["ZZ_ROWMAP"].text.endswith("zzUnpackRowMap();")
    assert by_name["ZZ_ROWMAP_PACKED_0"].text.startswith("private static final String")
    # plain block comments stay outside the field
    assert by_name["ZZ_ERROR_MSG"].text.startswith("private")


def test_fields_skip_methods_annotations_and_generics() -> None:
    tree = SourceTree.from_text(
        "public class A {\n"
        "  @SuppressWarnings(\"unused\") private int x = 1;\n"
        "  @Override public String toString() { return \"\"; }\n"
        "  abstract void run();\n"
        "  static { init(); }\n"
        "  int[] a = {1, 2}, b;\n"
        "  Map<String, Integer> m;\n"
        "  Runnable r = () -> { go(); };\n"
        "  class Inner { int hidden; }\n"
        "}\n"
    )
    assert [f.name for f in tree.fields(tree.lexer_class())] == ["x", "a", "m", "r"]


def test_lexer_class_is_the_public_one() -> None:
    tree = SourceTree.from_text("class A { int x; }\npublic final class B { int y; }\ninterface C {}\n")
    assert [c.name for c in tree.classes()] == ["A", "B", "C"]
    assert tree.lexer_class().name == "B"


@pytest.mark.parametrize("source", [
    "class A {}\nclass B {}\n",
    "public class A {}\npublic class B {}\n",
])
def test_lexer_class_must_be_unique(source) -> None:
    with pytest.raises(ConsistencyError):
        SourceTree.from_text(source).lexer_class()


def test_mutation_requires_write_command() -> None:
    tree = SourceTree.from_text('String s = "a";')
    with pytest.raises(WriteAccessError):
        tree.replace(0, 1, [])
    with pytest.raises(WriteAccessError):
        tree.swap((0, 1), (2, 3))


def test_write_command_is_recorded_and_released() -> None:
    tree = SourceTree.from_text("int a; int b;")
    with tree.write_command("first"):
        tree.replace(0, 1, tree.create_expression("long"))
    assert tree.text == "long a; int b;"
    assert tree.history == ["first"]

    with pytest.raises(RuntimeError):
        with tree.write_command("failing"):
            raise RuntimeError("boom")
    assert tree.history == ["first"]

    # released after the failure
    with tree.write_command("second"):
        pass
    assert tree.history == ["first", "second"]


def test_nested_write_command_fails() -> None:
    tree = SourceTree.from_text("int a;")
    with tree.write_command("outer"):
        with pytest.raises(WriteAccessError):
            with tree.write_command("inner"):
                pass


def test_swap_keeps_nodes_between() -> None:
    tree = SourceTree.from_text("a b c d e")
    with tree.write_command("swap"):
        # nodes: a _ b _ c _ d _ e
        tree.swap((6, 9), (0, 3))
    assert tree.text == "d e c a b"


def test_swap_rejects_overlapping_ranges() -> None:
    tree = SourceTree.from_text("a b c d e")
    with tree.write_command("swap"):
        with pytest.raises(ValueError):
            tree.swap((0, 3), (2, 5))
