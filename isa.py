"""ISA: opcodes, addressing modes, instruction decoding and machine faults."""

from __future__ import annotations

from enum import IntEnum


class OpCode(IntEnum):
    """Keeps opcodes of all instructions."""

    ADD = 1  # dst = a + b
    MULTIPLY = 2  # dst = a * b
    INPUT = 3  # dst = pending input
    OUTPUT = 4  # emit a
    JUMP_IF_TRUE = 5  # a != 0 -> ip = b
    JUMP_IF_FALSE = 6  # a == 0 -> ip = b
    LESS_THAN = 7  # dst = a < b
    EQUALS = 8  # dst = a == b
    HALT = 99


PARAM_COUNTS: dict[OpCode, int] = {
    OpCode.ADD: 3,
    OpCode.MULTIPLY: 3,
    OpCode.INPUT: 1,
    OpCode.OUTPUT: 1,
    OpCode.JUMP_IF_TRUE: 2,
    OpCode.JUMP_IF_FALSE: 2,
    OpCode.LESS_THAN: 3,
    OpCode.EQUALS: 3,
    OpCode.HALT: 0,
}


class Mode(IntEnum):
    """Parameter addressing modes."""

    POSITION = 0  # raw is a memory index
    IMMEDIATE = 1  # raw is the value itself


# Instruction word layout (decimal):
#   word % 100        : opcode
#   word // 100       : mode digits, least significant digit = first parameter
OPCODE_BASE = 100
MODE_BASE = 10


class MachineError(RuntimeError):
    """Base class for fatal execution-time faults."""

    pass


class UnknownOpcodeError(MachineError):
    """Raised when an instruction word does not decode to a known opcode."""

    def __init__(self, opcode: int, ip: int) -> None:
        super().__init__(f"unknown instruction {opcode} at position {ip}")
        self.opcode = opcode
        self.ip = ip


class UnknownModeError(MachineError):
    """Raised when a mode digit is neither position nor immediate."""

    def __init__(self, mode: int) -> None:
        super().__init__(f"unknown argument mode: {mode}")
        self.mode = mode


class ImmediateWriteError(MachineError):
    """Raised when an instruction tries to write through an immediate operand."""

    pass


class MissingInputError(MachineError):
    """Raised when an INPUT instruction runs with an empty input slot."""

    pass


class MemoryAccessError(MachineError):
    """Raised on reads or writes outside of program memory."""

    pass


class MachineFaultedError(MachineError):
    """Raised when execution is requested from a machine that already faulted."""

    pass


def param_count(opcode: OpCode) -> int:
    """Return number of parameters taken by `opcode`."""
    return PARAM_COUNTS[opcode]


def decode_instr(word: int, ip: int = 0) -> tuple[OpCode, list[int]]:
    """Split an instruction word into its opcode and per-parameter mode digits.

    Division truncates toward zero, so a negative word never decodes to a
    known opcode. Mode digits are returned unvalidated, one per parameter.
    Raises UnknownOpcodeError (naming `ip`) for unrecognised opcodes.
    """
    word = int(word)
    if word < 0:
        raise UnknownOpcodeError(-(-word % OPCODE_BASE), ip)
    modes, op = divmod(word, OPCODE_BASE)
    try:
        opcode = OpCode(op)
    except ValueError as e:
        raise UnknownOpcodeError(op, ip) from e

    digits: list[int] = []
    for _ in range(PARAM_COUNTS[opcode]):
        modes, mode = divmod(modes, MODE_BASE)
        digits.append(mode)
    return opcode, digits


def mnemonic(opcode: OpCode, modes: list[int], raw_args: list[int]) -> str:
    """Get instruction mnemonic, immediates as `#n` and positions as `[n]`."""
    parts = [opcode.name]
    for mode, raw in zip(modes, raw_args):
        parts.append(f"#{raw}" if mode == Mode.IMMEDIATE else f"[{raw}]")
    return " ".join(parts)
