"""Tests for the PL/0C compiler: emitted code and diagnostics."""

import pytest
from pl0c import CompileError, Compiler, Instruction, OpCode, compile_program
from pl0c.opcodes import MAX_LEVEL


def compile_clean(source):
    compiler = Compiler()
    code, error_count = compiler.compile(source)
    assert error_count == 0, [str(d) for d in compiler.diagnostics]
    return code


def compile_errors(source):
    """Compile source that should fail; return the diagnostic messages."""
    compiler = Compiler()
    code, error_count = compiler.compile(source)
    assert error_count == len(compiler.diagnostics)
    assert error_count > 0
    return [d.message for d in compiler.diagnostics]


def ops(code):
    return [instr.op for instr in code]


class TestBlockLayout:
    """Every block is jump, declarations, enter, body, return."""

    def test_empty_program(self):
        """The smallest program is a bare period."""
        code = compile_clean(".")
        assert code == [
            Instruction(OpCode.JUMP, 0, 1),
            Instruction(OpCode.ENTER, 0, 4),
            Instruction(OpCode.RET, 0, 0),
        ]

    def test_enter_reserves_frame_and_locals(self):
        """ENTER's count is the frame size plus the variable count."""
        code = compile_clean("var a, b, c; .")
        assert code[1] == Instruction(OpCode.ENTER, 0, 7)

    def test_constants_reserve_nothing(self):
        """Constants are folded into PUSH_CONST and take no slots."""
        code = compile_clean("const k = 42; var x; x := k.")
        assert code[1] == Instruction(OpCode.ENTER, 0, 5)
        assert code[2] == Instruction(OpCode.PUSH_CONST, 0, 42)

    def test_while_loop(self):
        """The loop exit jump is patched past the backward jump."""
        code = compile_clean("var x; begin x := 1; while x < 5 do x := x + 1 end.")
        assert code == [
            Instruction(OpCode.JUMP, 0, 1),
            Instruction(OpCode.ENTER, 0, 5),
            Instruction(OpCode.PUSH_CONST, 0, 1),
            Instruction(OpCode.PUSH_VAR, 0, 4),
            Instruction(OpCode.ASSIGN),
            Instruction(OpCode.PUSH_VAR, 0, 4),
            Instruction(OpCode.EVAL),
            Instruction(OpCode.PUSH_CONST, 0, 5),
            Instruction(OpCode.LT),
            Instruction(OpCode.JNEQ, 0, 17),
            Instruction(OpCode.PUSH_VAR, 0, 4),
            Instruction(OpCode.EVAL),
            Instruction(OpCode.PUSH_CONST, 0, 1),
            Instruction(OpCode.ADD),
            Instruction(OpCode.PUSH_VAR, 0, 4),
            Instruction(OpCode.ASSIGN),
            Instruction(OpCode.JUMP, 0, 5),
            Instruction(OpCode.RET, 0, 0),
        ]

    def test_if_without_else(self):
        """A false condition jumps to just after the then-branch."""
        code = compile_clean("var x; if 1 > 0 then x := 5.")
        assert code[5] == Instruction(OpCode.JNEQ, 0, 9)
        assert code[9] == Instruction(OpCode.RET, 0, 0)

    def test_if_else(self):
        """The then-branch jumps over the else-branch."""
        code = compile_clean("var x; if x = 0 then x := 1 else x := 2.")
        assert code[6] == Instruction(OpCode.JNEQ, 0, 11)
        assert code[10] == Instruction(OpCode.JUMP, 0, 14)
        assert code[11] == Instruction(OpCode.PUSH_CONST, 0, 2)
        assert len(code) == 15

    def test_repeat_jumps_back_to_body(self):
        """repeat ... until jumps to the body start while the condition is false."""
        code = compile_clean("var x; repeat x := x + 1 until x = 3.")
        assert code[-2] == Instruction(OpCode.JNEQ, 0, 2)
        assert code[-1] == Instruction(OpCode.RET, 0, 0)

    def test_procedure_body_is_skipped(self):
        """The main block's jump lands past nested procedure code."""
        code = compile_clean("var x; procedure p() x := 1; begin p() end.")
        assert code == [
            Instruction(OpCode.JUMP, 0, 7),
            Instruction(OpCode.JUMP, 0, 2),
            Instruction(OpCode.ENTER, 0, 4),
            Instruction(OpCode.PUSH_CONST, 0, 1),
            Instruction(OpCode.PUSH_VAR, 1, 4),
            Instruction(OpCode.ASSIGN),
            Instruction(OpCode.RET, 0, 0),
            Instruction(OpCode.ENTER, 0, 5),
            Instruction(OpCode.CALL, 0, 2),
            Instruction(OpCode.RET, 0, 0),
        ]

    def test_function_layout(self):
        """Parameters sit below the frame and the result goes to RET_VAL."""
        code = compile_clean("var r; function sq(n) sq := n * n; r := sq(7).")
        assert code[1:11] == [
            Instruction(OpCode.JUMP, 0, 2),
            Instruction(OpCode.ENTER, 0, 4),
            Instruction(OpCode.PUSH_VAR, 0, -1),
            Instruction(OpCode.EVAL),
            Instruction(OpCode.PUSH_VAR, 0, -1),
            Instruction(OpCode.EVAL),
            Instruction(OpCode.MUL),
            Instruction(OpCode.PUSH_VAR, 0, 3),
            Instruction(OpCode.ASSIGN),
            Instruction(OpCode.RETF, 0, 1),
        ]
        assert code[11:] == [
            Instruction(OpCode.ENTER, 0, 5),
            Instruction(OpCode.PUSH_CONST, 0, 7),
            Instruction(OpCode.CALL, 0, 2),
            Instruction(OpCode.PUSH_VAR, 0, 4),
            Instruction(OpCode.ASSIGN),
            Instruction(OpCode.RET, 0, 0),
        ]

    def test_parameter_offsets(self):
        """The first of n parameters is at -n, the last at -1."""
        code = compile_clean("var r; function f(a, b, c) f := a + b + c; r := f(1, 2, 3).")
        loads = [instr for instr in code if instr.op == OpCode.PUSH_VAR and instr.value < 0]
        assert [instr.value for instr in loads] == [-3, -2, -1]
        assert Instruction(OpCode.RETF, 0, 3) in code

    def test_static_chain_distance(self):
        """Variable and call levels are distances between declaration and use."""
        code = compile_clean(
            "var x;"
            " procedure a()"
            "   procedure b() x := 7;"
            "   b();"
            " a()."
        )
        assert code[5] == Instruction(OpCode.PUSH_VAR, 2, 4)
        assert code[9] == Instruction(OpCode.CALL, 0, 3)
        assert code[12] == Instruction(OpCode.CALL, 0, 8)

    def test_nested_block_calls_enclosing_subroutine(self):
        """Calls compiled before the entry is known go through the block's jump."""
        code = compile_clean("procedure p(n) procedure q() p(n - 1); q(); .")
        assert code[1] == Instruction(OpCode.JUMP, 0, 10)
        assert code[8] == Instruction(OpCode.CALL, 2, 1)
        assert code[11] == Instruction(OpCode.CALL, 0, 3)

    def test_recursive_call_level(self):
        """A function calling itself reaches its declaring frame one level out."""
        code = compile_clean(
            "var r;"
            " function fact(n)"
            "   if n <= 1 then fact := 1 else fact := n * fact(n - 1);"
            " r := fact(5)."
        )
        calls = [instr for instr in code if instr.op == OpCode.CALL]
        assert calls == [Instruction(OpCode.CALL, 1, 2), Instruction(OpCode.CALL, 0, 2)]


class TestExpressions:
    """Operator precedence and code shape."""

    def test_precedence(self):
        """Multiplying operators bind tighter than adding ones."""
        code = compile_clean("var x; x := 1 + 2 * 3.")
        assert ops(code[2:7]) == [OpCode.PUSH_CONST, OpCode.PUSH_CONST, OpCode.PUSH_CONST, OpCode.MUL, OpCode.ADD]

    def test_left_associative(self):
        code = compile_clean("var x; x := 8 - 4 - 2.")
        assert ops(code[2:7]) == [OpCode.PUSH_CONST, OpCode.PUSH_CONST, OpCode.SUB, OpCode.PUSH_CONST, OpCode.SUB]

    def test_leading_minus_negates_first_term(self):
        """A sign applies to the whole first term."""
        code = compile_clean("var x; x := -2 * 3 + 1.")
        assert ops(code[2:9]) == [
            OpCode.PUSH_CONST, OpCode.PUSH_CONST, OpCode.MUL, OpCode.NEG,
            OpCode.PUSH_CONST, OpCode.ADD, OpCode.PUSH_VAR,
        ]

    def test_leading_plus_is_ignored(self):
        code = compile_clean("var x; x := +2.")
        assert ops(code[2:5]) == [OpCode.PUSH_CONST, OpCode.PUSH_VAR, OpCode.ASSIGN]

    def test_prefix_operators(self):
        code = compile_clean("var x; x := !~x.")
        assert ops(code[2:6]) == [OpCode.PUSH_VAR, OpCode.EVAL, OpCode.COMP, OpCode.NOT]

    @pytest.mark.parametrize(
        "operator,opcode",
        [
            ("+", OpCode.ADD), ("-", OpCode.SUB), ("|", OpCode.BOR), ("^", OpCode.BXOR),
            ("*", OpCode.MUL), ("/", OpCode.DIV), ("%", OpCode.REM), ("&", OpCode.BAND),
            ("<<", OpCode.LSHIFT), (">>", OpCode.RSHIFT),
        ],
    )
    def test_arithmetic_operators(self, operator, opcode):
        code = compile_clean(f"var x; x := 6 {operator} 3.")
        assert code[4] == Instruction(opcode)

    @pytest.mark.parametrize(
        "operator,opcode",
        [
            ("=", OpCode.EQU), ("==", OpCode.EQU), ("!=", OpCode.NEQ), ("<>", OpCode.NEQ),
            ("<", OpCode.LT), ("<=", OpCode.LTE), (">", OpCode.GT), (">=", OpCode.GTE),
        ],
    )
    def test_relational_operators(self, operator, opcode):
        code = compile_clean(f"var x; if x {operator} 3 then x := 0.")
        assert code[5] == Instruction(opcode)

    def test_logical_operators(self):
        """&& binds tighter than ||."""
        code = compile_clean("var x; if x = 1 || x = 2 && x = 3 then x := 0.")
        logical = [op for op in ops(code) if op in (OpCode.LOR, OpCode.LAND)]
        assert logical == [OpCode.LAND, OpCode.LOR]

    def test_odd(self):
        """odd masks the low bit."""
        code = compile_clean("var x; if odd x then x := 1.")
        assert code[2:7] == [
            Instruction(OpCode.PUSH_VAR, 0, 4),
            Instruction(OpCode.EVAL),
            Instruction(OpCode.PUSH_CONST, 0, 1),
            Instruction(OpCode.BAND),
            Instruction(OpCode.JNEQ, 0, 10),
        ]

    def test_parenthesised_condition(self):
        code = compile_clean("var x; x := (1 < 2) + 1.")
        assert ops(code[2:7]) == [OpCode.PUSH_CONST, OpCode.PUSH_CONST, OpCode.LT, OpCode.PUSH_CONST, OpCode.ADD]

    def test_largest_literal(self):
        code = compile_clean("var x; x := 2147483647.")
        assert code[2] == Instruction(OpCode.PUSH_CONST, 0, 2147483647)


class TestCompilerState:
    """Globals, reuse and the raising entry point."""

    def test_globals(self):
        """Main program variables are recorded with their stack addresses."""
        compiler = Compiler()
        compiler.compile("var a, b; procedure p() var c; ; .")
        assert compiler.globals == {"a": 4, "b": 5}

    def test_symbols_purged_after_compile(self):
        """Every level is purged when its block ends."""
        compiler = Compiler()
        compiler.compile("const k = 1; var a; procedure p(x) var y; ; .")
        assert len(compiler.symbols) == 0

    def test_compiler_is_reusable(self):
        """compile() starts a fresh session each time."""
        compiler = Compiler()
        compiler.compile("x := 1.")
        assert compiler.error_count == 1
        code, error_count = compiler.compile("var y; y := 2.")
        assert error_count == 0
        assert compiler.diagnostics == []
        assert compiler.globals == {"y": 4}
        assert code[0] == Instruction(OpCode.JUMP, 0, 1)

    def test_compile_program(self):
        """compile_program returns the code of a valid program."""
        assert compile_program(".") == compile_clean(".")

    def test_compile_program_raises(self):
        """compile_program raises CompileError carrying the diagnostics."""
        with pytest.raises(CompileError) as exc_info:
            compile_program("x := 1.")
        error = exc_info.value
        assert len(error.diagnostics) == 1
        assert error.diagnostics[0].line == 1
        assert str(error) == "CompileError: 1 error; first: undefined identifier 'x' near line 1"


class TestDiagnostics:
    """Errors are reported and compilation carries on."""

    def test_undefined_identifier(self):
        assert compile_errors("x := 1.") == ["undefined identifier 'x'"]

    def test_undefined_in_expression(self):
        assert compile_errors("var x; x := y + 1.") == ["undefined identifier 'y'"]

    def test_undefined_procedure(self):
        assert compile_errors("p().") == ["undefined identifier 'p'"]

    def test_redefinition(self):
        assert compile_errors("var x, x; .") == ["'x' is already defined"]

    def test_redefinition_across_kinds(self):
        assert compile_errors("const x = 1; var x; .") == ["'x' is already defined"]

    def test_shadowing_is_allowed(self):
        """The same name may be declared again at a deeper level."""
        compile_clean("var x; procedure p() var x; x := 1; p().")

    def test_assign_to_constant(self):
        assert compile_errors("const c = 1; c := 2.") == ["cannot assign to constant 'c'"]

    def test_assign_to_procedure(self):
        assert compile_errors("procedure p() ; p := 2.") == ["cannot assign to procedure 'p'"]

    def test_assign_to_function_outside_body(self):
        assert compile_errors("function f() f := 1; f := 2.") == [
            "cannot assign to function 'f' outside its body"
        ]

    def test_assign_to_function_from_nested_block(self):
        """A nested procedure may set its enclosing function's result."""
        code = compile_clean(
            "var r;"
            " function f()"
            "   procedure set() f := 9;"
            "   set();"
            " r := f()."
        )
        assert Instruction(OpCode.PUSH_VAR, 1, 3) in code

    def test_equals_instead_of_assign(self):
        """'=' is reported but still compiled as an assignment."""
        compiler = Compiler()
        code, error_count = compiler.compile("var x; x = 1.")
        assert error_count == 1
        assert compiler.diagnostics[0].message == "expected ':=' but found '='"
        assert Instruction(OpCode.ASSIGN) in code

    def test_identifier_alone(self):
        assert compile_errors("var x; x.") == ["expected ':=' or '(' after 'x'"]

    def test_wrong_argument_count(self):
        assert compile_errors("procedure p(a) ; p().") == ["'p' expects 1 argument, got 0"]
        assert compile_errors("var r; function f(a, b) f := a; r := f(1).") == [
            "'f' expects 2 arguments, got 1"
        ]

    def test_function_called_as_procedure(self):
        assert compile_errors("function f() f := 1; f().") == ["function 'f' called as a procedure"]

    def test_variable_called(self):
        assert compile_errors("var x; x().") == ["'x' is not a procedure"]

    def test_procedure_in_expression(self):
        assert compile_errors("var x; procedure p() ; x := p().") == ["procedure 'p' used in an expression"]

    def test_duplicate_parameter(self):
        assert compile_errors("procedure p(a, a) ; .") == ["duplicate parameter 'a'"]

    def test_real_literal(self):
        assert compile_errors("var x; x := 1.5.") == ["real number 1.5 is not supported"]

    def test_literal_out_of_range(self):
        assert compile_errors("var x; x := 2147483648.") == ["integer literal 2147483648 is out of range"]

    def test_unknown_character(self):
        assert compile_errors("var x; x := 1 $.") == ["unexpected character '$'"]

    def test_non_ascii_digit(self):
        assert compile_errors("var x; x := 2².") == ["unexpected character '²'"]

    def test_unterminated_comment(self):
        messages = compile_errors("var x; /* oops")
        assert messages[0] == "unterminated comment starting on line 1"
        assert messages[1] == "expected '.' but found end of file"

    def test_missing_period(self):
        assert compile_errors("var x; x := 1") == ["expected '.' but found end of file"]

    def test_text_after_program(self):
        assert compile_errors(". x") == ["unexpected identifier 'x' after the end of the program"]

    def test_bad_factor(self):
        assert compile_errors("var x; begin x := end.") == [
            "expected identifier, number or '(' but found 'end'"
        ]

    def test_missing_semicolon_keeps_going(self):
        """A missing ';' between statements is reported once."""
        compiler = Compiler()
        code, error_count = compiler.compile("var x; begin x := 1 x := 2 end.")
        assert error_count == 1
        assert compiler.diagnostics[0].message == "expected ';' but found identifier 'x'"
        assert ops(code).count(OpCode.ASSIGN) == 2

    def test_missing_then(self):
        assert compile_errors("var x; if x = 1 x := 2.") == ["expected 'then' but found identifier 'x'"]

    def test_several_errors_with_lines(self):
        """All errors are collected, each with the line it was found on."""
        compiler = Compiler()
        _, error_count = compiler.compile("begin\n  a := 1;\n  b := 2\nend.")
        assert error_count == 2
        assert [(d.message, d.line) for d in compiler.diagnostics] == [
            ("undefined identifier 'a'", 2),
            ("undefined identifier 'b'", 3),
        ]
        assert str(compiler.diagnostics[1]) == "undefined identifier 'b' near line 3"


class TestNesting:
    """Static levels must fit in an instruction's level field."""

    @staticmethod
    def nested(depth):
        return "procedure p() " * depth + ";" * depth + "."

    def test_deepest_allowed(self):
        compile_clean(self.nested(MAX_LEVEL))

    def test_too_deep(self):
        assert compile_errors(self.nested(MAX_LEVEL + 1)) == [f"blocks nested deeper than {MAX_LEVEL} levels"]

    def test_deeply_nested_expression(self):
        """Nesting deeper than the parser can recurse is a diagnostic."""
        source = "var x; x := " + "(" * 1000 + "1" + ")" * 1000 + "."
        assert compile_errors(source) == ["program nested too deeply"]

    def test_deeply_nested_statements(self):
        source = "begin " * 1000 + "end " * 1000 + "."
        assert compile_errors(source) == ["program nested too deeply"]

    def test_usable_after_nesting_error(self):
        compiler = Compiler()
        compiler.compile("var x; x := " + "(" * 1000 + "1" + ")" * 1000 + ".")
        code, error_count = compiler.compile("var x; x := (((1))).")
        assert error_count == 0
        assert code[2] == Instruction(OpCode.PUSH_CONST, 0, 1)
