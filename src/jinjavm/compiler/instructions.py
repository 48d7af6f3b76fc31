"""Instruction set of the jinjavm virtual machine.

An ``Instruction`` is an ``(op, arg)`` pair. Most opcodes take no argument
or a single one (a name, a count, a jump target, a constant); the few that
need more carry a tuple:

    ================  ======================================
    APPLY_FILTER      ``(name, arg_count, local_id)``
    PERFORM_TEST      ``(name, arg_count, local_id)``
    CALL_FUNCTION     ``(name, arg_count)``
    CALL_METHOD       ``(name, arg_count)``
    BUILD_MACRO       ``(name, offset, flags)``
    ================  ======================================

``Instructions`` holds the flat instruction list of one template (or one
block) together with sparse line and span tables used to attach source
locations to runtime errors.
"""

from __future__ import annotations

from bisect import bisect_right
from enum import Enum, IntFlag, auto
from typing import TYPE_CHECKING, Any, NamedTuple

if TYPE_CHECKING:
    from jinjavm._types import Span

# Filters and tests get a small integer id per template for the VM cache.
MAX_LOCALS = 50
LOCAL_ID_NONE = 255


class LoopFlags(IntFlag):
    WITH_LOOP_VAR = 1
    RECURSIVE = 2


class MacroFlags(IntFlag):
    CALLER = 2


class CaptureMode(Enum):
    CAPTURE = "capture"
    DISCARD = "discard"


class Op(Enum):
    """Opcodes.

    Stack effects are written ``before -> after`` with the top on the right.
    """

    EMIT_RAW = auto()  # write the constant string
    STORE_LOCAL = auto()  # v ->
    LOOKUP = auto()  # -> v
    GET_ATTR = auto()  # obj -> v
    GET_ITEM = auto()  # obj key -> v
    SLICE = auto()  # obj start stop step -> v
    LOAD_CONST = auto()  # -> v
    BUILD_MAP = auto()  # k1 v1 ... kn vn -> map
    BUILD_KWARGS = auto()  # k1 v1 ... kn vn -> kwargs
    BUILD_LIST = auto()  # v1 ... vn -> list
    UNPACK_LIST = auto()  # seq -> vn ... v1
    LIST_APPEND = auto()  # list v -> list
    ADD = auto()
    SUB = auto()
    MUL = auto()
    DIV = auto()
    INT_DIV = auto()
    REM = auto()
    POW = auto()
    NEG = auto()
    EQ = auto()
    NE = auto()
    GT = auto()
    GTE = auto()
    LT = auto()
    LTE = auto()
    NOT = auto()
    STRING_CONCAT = auto()
    IN = auto()
    APPLY_FILTER = auto()  # v args... -> v
    PERFORM_TEST = auto()  # v args... -> bool
    EMIT = auto()  # v ->
    PUSH_LOOP = auto()  # iterable ->
    PUSH_WITH = auto()
    ITERATE = auto()  # -> item, or jump when exhausted
    PUSH_DID_NOT_ITERATE = auto()  # -> bool
    POP_FRAME = auto()
    JUMP = auto()
    JUMP_IF_FALSE = auto()  # v ->
    JUMP_IF_FALSE_OR_POP = auto()
    JUMP_IF_TRUE_OR_POP = auto()
    PUSH_AUTO_ESCAPE = auto()  # v ->
    POP_AUTO_ESCAPE = auto()
    BEGIN_CAPTURE = auto()
    END_CAPTURE = auto()  # -> str
    CALL_FUNCTION = auto()  # args... -> v
    CALL_METHOD = auto()  # obj args... -> v
    CALL_OBJECT = auto()  # callee args... -> v
    DUP_TOP = auto()
    DISCARD_TOP = auto()
    FAST_SUPER = auto()
    FAST_RECURSE = auto()  # iterable ->
    CALL_BLOCK = auto()
    LOAD_BLOCKS = auto()  # name ->
    INCLUDE = auto()  # name ->
    EXPORT_LOCALS = auto()  # -> map
    BUILD_MACRO = auto()  # closure arg_names -> macro
    RETURN = auto()
    IS_UNDEFINED = auto()  # v -> bool
    ENCLOSE = auto()
    GET_CLOSURE = auto()  # -> closure


# Opcodes whose argument is a jump target, patched by the code generator.
JUMP_OPS = frozenset(
    {
        Op.JUMP,
        Op.JUMP_IF_FALSE,
        Op.JUMP_IF_FALSE_OR_POP,
        Op.JUMP_IF_TRUE_OR_POP,
        Op.ITERATE,
    }
)


class Instruction(NamedTuple):
    op: Op
    arg: Any = None

    def __repr__(self) -> str:
        name = self.op.name.title().replace("_", "")
        if self.arg is None:
            return name
        return f"{name}({self.arg!r})"


class Instructions:
    """Compiled instruction list of one template or block.

    Line and span records are sparse: a record applies from its first
    instruction up to the next record. Consecutive instructions on the same
    line share one line record.

    Example:
        >>> insts = Instructions("hello.txt", "Hello {{ name }}")
        >>> insts.add_with_line(Instruction(Op.EMIT_RAW, "Hello "), 1)
        0
        >>> insts.get_line(0)
        1
    """

    __slots__ = ("instructions", "line_infos", "name", "source", "span_infos")

    def __init__(self, name: str, source: str):
        self.name = name
        self.source = source
        self.instructions: list[Instruction] = []
        self.line_infos: list[tuple[int, int]] = []
        self.span_infos: list[tuple[int, Span | None]] = []

    def __len__(self) -> int:
        return len(self.instructions)

    def __getitem__(self, idx: int) -> Instruction:
        return self.instructions[idx]

    def __iter__(self):
        return iter(self.instructions)

    def add(self, instr: Instruction) -> int:
        """Append an instruction and return its index."""
        self.instructions.append(instr)
        return len(self.instructions) - 1

    def _add_line_record(self, idx: int, line: int) -> None:
        if self.line_infos and self.line_infos[-1][1] == line:
            return
        self.line_infos.append((idx, line))

    def add_with_line(self, instr: Instruction, line: int) -> int:
        idx = self.add(instr)
        self._add_line_record(idx, line)
        # A spanned instruction followed by an unspanned one ends the span.
        if self.span_infos and self.span_infos[-1][1] is not None:
            self.span_infos.append((idx, None))
        return idx

    def add_with_span(self, instr: Instruction, span: Span) -> int:
        idx = self.add(instr)
        self._add_line_record(idx, span.start_line)
        if not self.span_infos or self.span_infos[-1][1] != span:
            self.span_infos.append((idx, span))
        return idx

    def set_jump_target(self, idx: int, target: int) -> None:
        """Patch the jump target of the jump instruction at ``idx``."""
        instr = self.instructions[idx]
        assert instr.op in JUMP_OPS, instr
        self.instructions[idx] = Instruction(instr.op, target)

    def get_line(self, idx: int) -> int | None:
        """Source line of the instruction at ``idx``."""
        pos = bisect_right(self.line_infos, idx, key=lambda info: info[0]) - 1
        if pos < 0:
            return None
        return self.line_infos[pos][1]

    def get_span(self, idx: int) -> Span | None:
        """Source span of the instruction at ``idx``, when one was recorded."""
        pos = bisect_right(self.span_infos, idx, key=lambda info: info[0]) - 1
        if pos < 0:
            return None
        return self.span_infos[pos][1]

    def dump(self) -> str:
        """One instruction per line, with its index and line number."""
        lines = []
        for idx, instr in enumerate(self.instructions):
            lines.append(f"{idx:>5}  {instr!r:<40} [line {self.get_line(idx)}]")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"<Instructions {self.name!r} ({len(self.instructions)} instructions)>"
