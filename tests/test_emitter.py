from sqcompiler import (
    AssemblyGenerator, Assign, BinaryOp, Literal, Square, Variable,
    collect_variables, emit, generate_assembly, parse,
)


def test_literal_and_variable():
    assert emit(Literal(42)) == "    mov eax, 42\n"
    assert emit(Variable("x")) == "    mov eax, [x]\n"


def test_subtraction_sequence():
    assert emit(parse("9 - 4")).splitlines() == [
        "    mov eax, 4",
        "    push eax",
        "    mov eax, 9",
        "    pop ebx",
        "    sub eax, ebx",
    ]


def test_operator_instructions():
    assert emit(parse("1 + 2")).endswith("    add eax, ebx\n")
    assert emit(parse("1 * 2")).endswith("    imul eax, ebx\n")
    assert emit(parse("1 / 2")).endswith("    cdq\n    idiv ebx\n")


def test_right_operand_emitted_before_left():
    left = Variable("lhs")
    right = Literal(77)
    for op in "+-*/":
        text = emit(BinaryOp(op, left, right))
        assert text.index(emit(right)) < text.index(emit(left))


def test_nested_ordering():
    text = emit(parse("a - b * c"))
    assert text.index("[b]") > text.index("[c]")
    assert text.index("[a]") > text.index("imul")


def test_square_and_assign():
    assert emit(parse("x = 5^")).splitlines() == [
        "    mov eax, 5",
        "    square eax",
        "    mov [x], eax",
    ]


def test_emission_does_not_need_values():
    # no arithmetic happens while emitting, so 1 / 0 is fine
    assert "idiv ebx" in emit(parse("1 / 0"))
    assert "[nowhere]" in emit(parse("nowhere"))


def test_collect_variables_order_and_uniqueness():
    assert collect_variables(parse("y = a + b * a^ - y")) == ["y", "a", "b"]
    assert collect_variables(Literal(1)) == []


def test_generator_declares_each_variable_once():
    gen = AssemblyGenerator()
    assert gen.header() == "section .data\n"
    assert gen.variable("x") == "x: dd 0\n"
    assert gen.variable("x") == ""
    assert gen.variables == ["x"]


def test_program_template_prints_display_variable():
    code = AssemblyGenerator().program("    mov eax, 1\n", display="x")
    assert "%macro square 1" in code
    assert "global _main" in code
    assert "    push dword [x]\n" in code
    assert code.index("    mov eax, 1\n") < code.index("call _printf")
    assert code.rstrip().endswith("_fmt: db 'Result: %d', 10, 0")


def test_full_listing_for_assignment():
    asm = generate_assembly(Assign("x", Square(Literal(5))))
    lines = asm.splitlines()
    assert lines[0] == "section .data"
    assert lines[1] == "x: dd 0"
    assert "    mov [x], eax" in lines
    assert "    push dword [x]" in lines


def test_full_listing_for_bare_expression_prints_accumulator():
    asm = generate_assembly(parse("a + b"))
    assert "a: dd 0\nb: dd 0\n" in asm
    assert "push dword [" not in asm
    assert asm.count("    push eax\n") == 3


def test_user_variable_named_fmt_does_not_clash_with_template():
    lines = generate_assembly(parse("fmt = 1")).splitlines()
    labels = [line.split(":")[0] for line in lines if ": d" in line]
    assert labels == ["fmt", "_fmt"]
    assert "    push dword _fmt" in lines
