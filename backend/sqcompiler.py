#!/usr/bin/env python3
"""
sqcompiler.py
Single-statement arithmetic compiler pipeline (lexer → recursive-descent parser
→ AST → direct evaluator + NASM-style x86 assembly emitter).

The language has integer literals, variables, + - * /, a postfix square
operator (`5^`) and one optional assignment (`x = 5 ^ 2`).
"""

import argparse
import logging
import re
import sys
from collections import namedtuple
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# values must fit the 32-bit registers the emitted code uses
INT_MIN = -2 ** 31
INT_MAX = 2 ** 31 - 1

# =====================================================
# ERRORS
# =====================================================
class CompileError(Exception):
    phase = "Compile"

    def __init__(self, msg, lineno=None):
        super().__init__(msg)
        self.msg = msg
        self.lineno = lineno

    def __str__(self):
        if self.lineno is not None:
            return f"{self.phase} error (line {self.lineno}): {self.msg}"
        return f"{self.phase} error: {self.msg}"

class LexError(CompileError):
    phase = "Lexical"

    def __init__(self, char, lineno=None):
        super().__init__(f"Invalid character {char!r}", lineno)
        self.char = char

class ParseError(CompileError):
    phase = "Syntax"

class EvalError(CompileError):
    phase = "Runtime"
    kind = "EvalError"

class UndefinedVariableError(EvalError):
    kind = "UndefinedVariable"

    def __init__(self, name):
        super().__init__(f"Undefined variable: {name}")
        self.name = name

class DivisionByZeroError(EvalError):
    kind = "DivisionByZero"

    def __init__(self):
        super().__init__("Division by zero")

class IntegerOverflowError(EvalError):
    kind = "IntegerOverflow"

    def __init__(self, value):
        super().__init__(f"Integer overflow: {value} does not fit in 32 bits")
        self.value = value

# =====================================================
# LEXER
# =====================================================
Token = namedtuple('Token', ['type', 'value', 'lineno'])

class Lexer:
    token_specification = [
        ("NUMBER",     r'[0-9]+'),
        ("IDENTIFIER", r'[A-Za-z][A-Za-z0-9]*'),
        ("PLUS",       r'\+'),
        ("MINUS",      r'-'),
        ("MULTIPLY",   r'\*'),
        ("DIVIDE",     r'/'),
        ("ASSIGN",     r'='),
        ("SQUARE",     r'\^'),
        ("SKIP",       r'[ \t]+'),
        ("NEWLINE",    r'\n'),
        ("MISMATCH",   r'.'),
    ]
    tok_regex = '|'.join(f'(?P<{n}>{p})' for n,p in token_specification)
    master_re = re.compile(tok_regex, re.DOTALL)

    def __init__(self, code):
        self.code = code
        self.lineno = 1
        self.tokens = []  # every token handed out so far, END at most once
        self._matches = self.master_re.finditer(code)
        self._done = False

    def next_token(self):
        if self._done:
            return Token('END', '', self.lineno)
        for mo in self._matches:
            kind = mo.lastgroup
            val = mo.group()
            if kind == "NEWLINE":
                self.lineno += 1
            elif kind == "SKIP":
                pass
            elif kind == "MISMATCH":
                logger.debug("Token: INVALID %s", val)
                raise LexError(val, self.lineno)
            else:
                logger.debug("Token: %s %s", kind, val)
                tok = Token(kind, val, self.lineno)
                self.tokens.append(tok)
                return tok
        self._done = True
        tok = Token('END', '', self.lineno)
        self.tokens.append(tok)
        return tok

    def __iter__(self):
        while True:
            tok = self.next_token()
            yield tok
            if tok.type == 'END':
                return

def tokenize(code):
    return list(Lexer(code))

# =====================================================
# AST NODES
# =====================================================
@dataclass(frozen=True)
class Node:
    pass

@dataclass(frozen=True)
class Literal(Node):
    value: int

@dataclass(frozen=True)
class Variable(Node):
    name: str

@dataclass(frozen=True)
class BinaryOp(Node):
    op: str          # '+' | '-' | '*' | '/'
    left: Node
    right: Node

@dataclass(frozen=True)
class Square(Node):
    operand: Node

@dataclass(frozen=True)
class Assign(Node):
    name: str
    value: Node

# =====================================================
# PARSER (recursive-descent, one statement)
# =====================================================
class Parser:
    def __init__(self, lexer):
        self.lexer = lexer
        self.lookahead = []

    def peek(self):
        return self.peek_n(0)

    def peek_n(self, n):
        # pull from the lexer only as far as needed
        while len(self.lookahead) <= n:
            self.lookahead.append(self.lexer.next_token())
        return self.lookahead[n]

    def advance(self):
        tok = self.peek()
        self.lookahead.pop(0)
        return tok

    def expect(self, ttype, msg=None):
        tok = self.peek()
        if tok.type == ttype:
            return self.advance()
        raise ParseError(msg or f"Expected token {ttype} but got {tok.type}", tok.lineno)

    def parse(self):
        node = self.statement()
        self.expect('END', f"unexpected trailing token {self.peek().type}")
        return node

    def statement(self):
        if self.peek().type == 'IDENTIFIER' and self.peek_n(1).type == 'ASSIGN':
            name = self.advance().value
            self.advance()  # ASSIGN
            return Assign(name, self.expression())
        return self.expression()

    def expression(self):
        node = self.term()
        while self.peek().type in ('PLUS', 'MINUS'):
            op = self.advance().value
            right = self.term()
            node = BinaryOp(op, node, right)
        return node

    def term(self):
        node = self.factor()
        while self.peek().type in ('MULTIPLY', 'DIVIDE'):
            op = self.advance().value
            right = self.factor()
            node = BinaryOp(op, node, right)
        return node

    def factor(self):
        tok = self.peek()
        if tok.type == 'NUMBER':
            self.advance()
            value = int(tok.value)
            if value > INT_MAX:
                raise ParseError(f"integer literal {tok.value} out of range", tok.lineno)
            node = Literal(value)
        elif tok.type == 'IDENTIFIER':
            self.advance()
            node = Variable(tok.value)
        else:
            raise ParseError(f"unexpected token {tok.type} in expression", tok.lineno)
        if self.peek().type == 'SQUARE':
            self.advance()
            node = Square(node)
        return node

def parse(code):
    return Parser(Lexer(code)).parse()

# =====================================================
# EVALUATOR
# =====================================================
class VariableStore:
    """Name -> last assigned value. Owned by the caller, never global."""

    def __init__(self, initial=None):
        self.values = {}
        for name, value in (initial or {}).items():
            self.set(name, value)

    def __contains__(self, name):
        return name in self.values

    def __len__(self):
        return len(self.values)

    def get(self, name):
        if name not in self.values:
            raise UndefinedVariableError(name)
        return self.values[name]

    def set(self, name, value):
        self.values[name] = check_range(value)

    def snapshot(self):
        return dict(self.values)

def check_range(value):
    if value < INT_MIN or value > INT_MAX:
        raise IntegerOverflowError(value)
    return value

def divide(a, b):
    if b == 0:
        raise DivisionByZeroError()
    # idiv truncates toward zero, Python's // floors
    q = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        q = -q
    return q

def evaluate(node, store):
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Variable):
        return store.get(node.name)
    if isinstance(node, BinaryOp):
        a = evaluate(node.left, store)
        b = evaluate(node.right, store)
        if node.op == '+':
            return check_range(a + b)
        if node.op == '-':
            return check_range(a - b)
        if node.op == '*':
            return check_range(a * b)
        if node.op == '/':
            return check_range(divide(a, b))
        raise EvalError(f"unknown binary op {node.op}")
    if isinstance(node, Square):
        v = evaluate(node.operand, store)
        return check_range(v * v)
    if isinstance(node, Assign):
        v = evaluate(node.value, store)
        store.set(node.name, v)
        return v
    raise TypeError(f"unknown node {type(node).__name__}")

# =====================================================
# ASSEMBLY EMISSION
# =====================================================
def emit_lines(node):
    if isinstance(node, Literal):
        return [f"    mov eax, {node.value}"]
    if isinstance(node, Variable):
        return [f"    mov eax, [{node.name}]"]
    if isinstance(node, BinaryOp):
        # right first: after the pop, eax holds left and ebx holds right
        code = emit_lines(node.right)
        code.append("    push eax")
        code += emit_lines(node.left)
        code.append("    pop ebx")
        if node.op == '+':
            code.append("    add eax, ebx")
        elif node.op == '-':
            code.append("    sub eax, ebx")
        elif node.op == '*':
            code.append("    imul eax, ebx")
        elif node.op == '/':
            code.append("    cdq")
            code.append("    idiv ebx")
        else:
            raise ValueError(f"unknown binary op {node.op}")
        return code
    if isinstance(node, Square):
        code = emit_lines(node.operand)
        code.append("    square eax")
        return code
    if isinstance(node, Assign):
        code = emit_lines(node.value)
        code.append(f"    mov [{node.name}], eax")
        return code
    raise TypeError(f"unknown node {type(node).__name__}")

def emit(node):
    return "\n".join(emit_lines(node)) + "\n"

def collect_variables(node, names=None):
    if names is None:
        names = []
    if isinstance(node, Variable):
        if node.name not in names:
            names.append(node.name)
    elif isinstance(node, Assign):
        if node.name not in names:
            names.append(node.name)
        collect_variables(node.value, names)
    elif isinstance(node, BinaryOp):
        collect_variables(node.left, names)
        collect_variables(node.right, names)
    elif isinstance(node, Square):
        collect_variables(node.operand, names)
    return names

class AssemblyGenerator:
    """Wraps emitted statement code in the data section and _main boilerplate."""

    def __init__(self):
        self.variables = []

    def header(self):
        return "section .data\n"

    def variable(self, name):
        if name in self.variables:
            return ""
        self.variables.append(name)
        return f"{name}: dd 0\n"

    def program(self, body, display=None):
        code = "; Square operation macro\n"
        code += "%macro square 1\n"
        code += "    mov ebx, %1\n"
        code += "    imul %1, ebx\n"
        code += "%endmacro\n\n"

        code += "section .text\n"
        code += "global _main\n"
        code += "extern _printf\n\n"

        code += "_main:\n"
        code += "    push ebp\n"
        code += "    mov ebp, esp\n"
        code += body
        code += "    push eax\n"
        if display is not None:
            code += f"    push dword [{display}]\n"
        else:
            code += "    push eax\n"
        code += "    push dword _fmt\n"
        code += "    call _printf\n"
        code += "    add esp, 8\n"
        code += "    pop eax\n"

        code += "    xor eax, eax\n"
        code += "    mov esp, ebp\n"
        code += "    pop ebp\n"
        code += "    ret\n\n"

        code += "section .data\n"
        code += "_fmt: db 'Result: %d', 10, 0\n"
        return code

def generate_assembly(node):
    gen = AssemblyGenerator()
    asm = gen.header()
    for name in collect_variables(node):
        asm += gen.variable(name)
    display = node.name if isinstance(node, Assign) else None
    asm += gen.program(emit(node), display)
    return asm

# =====================================================
# COMPILER DRIVER
# =====================================================
def compile_source(code, store=None):
    if store is None:
        store = VariableStore()

    result = {
        'tokens': [],
        'ast': None,
        'asm': [],
        'result': None,
        'errors': [],
        'variables': store.snapshot(),
    }

    # Lex + parse (the parser pulls tokens on demand)
    lexer = Lexer(code)
    try:
        ast = Parser(lexer).parse()
    except CompileError as e:
        logger.info("%s", e)
        result['tokens'] = list(lexer.tokens)
        result['errors'] = [str(e)]
        return result
    result['tokens'] = list(lexer.tokens)
    result['ast'] = ast

    # Emission never depends on evaluation succeeding
    result['asm'] = generate_assembly(ast).splitlines()

    try:
        result['result'] = evaluate(ast, store)
    except EvalError as e:
        logger.info("%s", e)
        result['errors'] = [str(e)]
    result['variables'] = store.snapshot()

    return result

# =====================================================
# COMMAND LINE
# =====================================================
TEST_PROGRAM = "x = 5 ^"

def main(argv=None):
    ap = argparse.ArgumentParser(description="Compile and evaluate one arithmetic statement.")
    ap.add_argument("source", nargs="?", default=TEST_PROGRAM, help="statement to compile")
    ap.add_argument("-o", "--output", default="output.asm", help="assembly output file")
    ap.add_argument("-v", "--verbose", action="store_true", help="trace tokens")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s: %(message)s")

    res = compile_source(args.source)
    if res['ast'] is None:
        for err in res['errors']:
            print(err, file=sys.stderr)
        return 1

    listing = "\n".join(res['asm']) + "\n"
    with open(args.output, "w", encoding="utf-8") as f:
        f.write(listing)

    print("Generated Assembly Code:")
    print("------------------------")
    print(listing, end="")
    print("------------------------")
    if res['errors']:
        for err in res['errors']:
            print(err, file=sys.stderr)
        return 1
    print(f"Result: {res['result']}")
    return 0

if __name__ == '__main__':
    sys.exit(main())
