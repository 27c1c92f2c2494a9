"""Machine (memory + instruction pointer + I/O slots) and CLI wrapper.

Provides the fetch-decode-exec loop in its two execution modes (run to
completion, run until the next output), the gravity-assist and diagnostic
routines built on top of them, and logging initialization.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Iterable, Iterator
from enum import Enum, IntEnum
from typing import Any

from config import ConfigError, load_config
from isa import (
    ImmediateWriteError,
    MachineError,
    MachineFaultedError,
    MemoryAccessError,
    MissingInputError,
    Mode,
    OpCode,
    UnknownModeError,
    decode_instr,
    mnemonic,
)
from parser import ProgramParseError, load_program, parse_program

LOGFILE = "machine.log"


def init_logging(logfile: str = LOGFILE, debug: bool = False, console: bool = False) -> None:
    """Configure root logger to write to `logfile`.

    If debug=True set DEBUG level. If console=True also echo logs to stdout.
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    lvl = logging.DEBUG if debug else logging.CRITICAL
    root.setLevel(lvl)

    if debug:
        file_fmt = "%(levelname)s %(name)s:%(filename)s:%(lineno)d %(message)s"
    else:
        file_fmt = "%(levelname)-5s %(message)s"

    fh = logging.FileHandler(logfile, mode="w", encoding="utf-8")
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter(file_fmt))
    root.addHandler(fh)

    if debug and console:
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(lvl)
        ch.setFormatter(logging.Formatter("%(levelname)5s %(message)s"))
        root.addHandler(ch)


class Memory:
    """Program memory: a fixed-size list of signed integer cells.

    Cells and addresses must be ints; the size is fixed at construction.
    """

    _cells: list[int]

    def __init__(self, cells: Iterable[int]) -> None:
        """Copy `cells` into a new memory."""
        self._cells = [_require_int(c, "cell value") for c in cells]

    def __len__(self) -> int:
        return len(self._cells)

    def _check(self, addr: int) -> int:
        _require_int(addr, "memory address")
        if addr < 0 or addr >= len(self._cells):
            err = f"memory access out of range: {addr} (size {len(self._cells)})"
            raise MemoryAccessError(err)
        return addr

    def read_word(self, addr: int) -> int:
        """Read one cell. Raises MemoryAccessError for out-of-range reads."""
        return self._cells[self._check(addr)]

    def write_word(self, addr: int, value: int) -> None:
        """Write one cell. Raises MemoryAccessError for out-of-range writes."""
        self._cells[self._check(addr)] = _require_int(value, "cell value")

    def read_block(self, start: int, count: int) -> list[int]:
        """Read `count` consecutive cells starting at `start`."""
        if count == 0:
            return []
        self._check(start)
        self._check(start + count - 1)
        return self._cells[start : start + count]

    def snapshot(self) -> list[int]:
        return list(self._cells)


def _require_int(value: Any, what: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        err = f"{what} must be an int, got {value!r}"
        raise TypeError(err)
    return value


class Param:
    """A single instruction parameter resolved against memory.

    Position-mode parameters are dereferenced at resolution time, so all
    reads of a step observe memory as it was before that step's write.
    """

    __slots__ = ("mode", "raw", "value")

    def __init__(self, mode: int, raw: int, memory: Memory) -> None:
        if mode == Mode.POSITION:
            self.value = memory.read_word(raw)
        elif mode == Mode.IMMEDIATE:
            self.value = raw
        else:
            raise UnknownModeError(mode)
        self.mode = Mode(mode)
        self.raw = raw

    def read(self) -> int:
        return self.value

    def target(self) -> int:
        """Return the cell this parameter names as a write destination."""
        if self.mode == Mode.IMMEDIATE:
            err = "cannot write to immediate operand"
            raise ImmediateWriteError(err)
        return self.raw


class Outcome(IntEnum):
    """What a single step asks the run loop to do next."""

    MOVE = 0  # continue at next_ip
    OUTPUT = 1  # value emitted, continue at next_ip
    HALT = 2


class State(Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    HALTED = "halted"
    FAULTED = "faulted"


StepResult = tuple[Outcome, "int | None", int]


class Machine:
    """Sequential machine executing a program held in its own memory.

    The machine is mutated in place by every step. Use `clone` to explore
    several executions from the same starting program.
    """

    memory: Memory
    ip: int
    input: int | None
    output: int | None
    state: State
    steps: int
    lenient_log: bool

    def __init__(self, memory: Iterable[int], lenient_log: bool = False) -> None:
        """Create a machine at ip 0 with empty input and output slots."""
        self.memory = Memory(memory)
        self.ip = 0
        self.input = None
        self.output = None
        self.state = State.RUNNING
        self.steps = 0
        # skip per-step trace lines (large searches)
        self.lenient_log = bool(lenient_log)

    @classmethod
    def from_source(cls, text: str, lenient_log: bool = False) -> Machine:
        """Parse comma-separated program text. Raises ProgramParseError."""
        return cls(parse_program(text), lenient_log=lenient_log)

    def clone(self) -> Machine:
        """Return an independent copy of memory, ip, slots and state."""
        other = Machine(self.memory.snapshot(), lenient_log=self.lenient_log)
        other.ip = self.ip
        other.input = self.input
        other.output = self.output
        other.state = self.state
        other.steps = self.steps
        return other

    def read(self, pos: int) -> int:
        return self.memory.read_word(pos)

    def write(self, pos: int, value: int) -> None:
        self.memory.write_word(pos, value)

    def snapshot(self) -> list[int]:
        return self.memory.snapshot()

    def _log_step(self, opcode: OpCode, modes: list[int], raw_args: list[int]) -> None:
        if self.lenient_log or not logging.getLogger().isEnabledFor(logging.DEBUG):
            return
        logging.debug(
            "STATE: %-10s STEP: %5d IP: %5d INPUT: %s OUTPUT: %s\tINSTR: %s",
            self.state.name,
            self.steps,
            self.ip,
            self.input,
            self.output,
            mnemonic(opcode, modes, raw_args),
        )

    def step(self) -> StepResult:
        """Fetch, decode and execute the instruction at ip.

        Does not move ip; the returned next_ip is applied by the run loops.
        """
        ip = self.ip
        opcode, modes = decode_instr(self.memory.read_word(ip), ip)
        raw_args = self.memory.read_block(ip + 1, len(modes))
        args = [Param(mode, raw, self.memory) for mode, raw in zip(modes, raw_args)]
        self._log_step(opcode, modes, raw_args)
        return self.exec(opcode, args)

    def exec(self, opcode: OpCode, args: list[Param]) -> StepResult:  # noqa: C901
        """Apply one decoded instruction to memory."""
        mem = self.memory
        next_ip = self.ip + 1 + len(args)

        if opcode == OpCode.ADD:
            mem.write_word(args[2].target(), args[0].read() + args[1].read())
            return Outcome.MOVE, None, next_ip
        if opcode == OpCode.MULTIPLY:
            mem.write_word(args[2].target(), args[0].read() * args[1].read())
            return Outcome.MOVE, None, next_ip
        if opcode == OpCode.INPUT:
            if self.input is None:
                err = f"missing input at position {self.ip}"
                raise MissingInputError(err)
            mem.write_word(args[0].target(), self.input)
            return Outcome.MOVE, None, next_ip
        if opcode == OpCode.OUTPUT:
            return Outcome.OUTPUT, args[0].read(), next_ip
        if opcode == OpCode.JUMP_IF_TRUE:
            if args[0].read() != 0:
                return Outcome.MOVE, None, args[1].read()
            return Outcome.MOVE, None, next_ip
        if opcode == OpCode.JUMP_IF_FALSE:
            if args[0].read() == 0:
                return Outcome.MOVE, None, args[1].read()
            return Outcome.MOVE, None, next_ip
        if opcode == OpCode.LESS_THAN:
            mem.write_word(args[2].target(), 1 if args[0].read() < args[1].read() else 0)
            return Outcome.MOVE, None, next_ip
        if opcode == OpCode.EQUALS:
            mem.write_word(args[2].target(), 1 if args[0].read() == args[1].read() else 0)
            return Outcome.MOVE, None, next_ip
        # HALT keeps ip on the halt instruction
        return Outcome.HALT, None, self.ip

    def _step_checked(self) -> StepResult:
        try:
            result = self.step()
        except MachineError as e:
            self.state = State.FAULTED
            logging.debug("Fault at ip %d after %d steps: %s", self.ip, self.steps, e)
            raise
        self.steps += 1
        return result

    def _enter(self) -> None:
        if self.state == State.FAULTED:
            err = f"machine faulted at position {self.ip}; discard it"
            raise MachineFaultedError(err)
        self.state = State.RUNNING

    def run(self) -> int | None:
        """Run until halt and return the last output (None if there was none)."""
        self._enter()
        while True:
            outcome, value, next_ip = self._step_checked()
            if outcome == Outcome.HALT:
                break
            if outcome == Outcome.OUTPUT:
                self.output = value
                logging.debug("Output %s at ip %d", value, self.ip)
            self.ip = next_ip
        self.state = State.HALTED
        logging.debug("HALT encountered at ip %d after %d steps", self.ip, self.steps)
        return self.output

    def run_with_input(self, value: int) -> int | None:
        self.input = int(value)
        return self.run()

    def run_until_output(self) -> int | None:
        """Run until the next output and return it, or None once halted.

        The machine stays resumable after an output; calling again continues
        from the following instruction.
        """
        self._enter()
        while True:
            outcome, value, next_ip = self._step_checked()
            if outcome == Outcome.HALT:
                self.state = State.HALTED
                logging.debug("HALT encountered at ip %d after %d steps", self.ip, self.steps)
                return None
            self.ip = next_ip
            if outcome == Outcome.OUTPUT:
                self.output = value
                self.state = State.SUSPENDED
                logging.debug("Suspended with output %s, resume at ip %d", value, self.ip)
                return value

    def outputs(self) -> Iterator[int]:
        """Yield every output until the machine halts."""
        while True:
            value = self.run_until_output()
            if value is None:
                return
            yield value


# ---------- routines ----------
class DiagnosticError(RuntimeError):
    """Raised when a diagnostic program reports a failing self-test."""

    pass


def run_noun_verb(machine: Machine, noun: int, verb: int) -> int:
    """Run a clone with `noun`/`verb` poked at positions 1 and 2; return position 0."""
    trial = machine.clone()
    trial.write(1, noun)
    trial.write(2, verb)
    trial.run()
    return trial.read(0)


def find_noun_verb(machine: Machine, target: int, limit: int = 100) -> int:
    """Search noun/verb pairs below `limit`; return 100 * noun + verb for `target`.

    Raises LookupError if no pair produces `target`.
    """
    for noun in range(limit):
        for verb in range(limit):
            if run_noun_verb(machine, noun, verb) == target:
                logging.debug("noun %d verb %d produce %d", noun, verb, target)
                return 100 * noun + verb
    err = f"no noun/verb pair below {limit} produces {target}"
    raise LookupError(err)


def run_diagnostic(machine: Machine, system_id: int) -> int:
    """Run a diagnostic program on a clone and return its final code.

    Every output before the last one is a self-test result and must be 0.
    """
    trial = machine.clone()
    trial.input = int(system_id)
    last: int | None = None
    for index, value in enumerate(trial.outputs()):
        if last is not None and last != 0:
            err = f"self-test failed: output {index - 1} was {last}"
            raise DiagnosticError(err)
        last = value
    if last is None:
        err = "diagnostic program produced no output"
        raise DiagnosticError(err)
    return last


# ---------- CLI ----------
MODES = ("run", "stream", "noun-verb", "search", "diagnostic")


def _execute(mode: str, machine: Machine, cfg: dict[str, Any]) -> list[str]:
    """Run `machine` in `mode` and return the lines to print."""
    if mode == "stream":
        machine.input = cfg["input"]
        lines = [str(v) for v in machine.outputs()]
        lines.append(f"STEPS: {machine.steps}")
        return lines
    if mode == "noun-verb":
        return [str(run_noun_verb(machine, cfg["noun"], cfg["verb"]))]
    if mode == "search":
        return [str(find_noun_verb(machine, cfg["target"], cfg["search_limit"]))]
    if mode == "diagnostic":
        system_id = cfg["input"] if cfg["input"] is not None else 1
        return [str(run_diagnostic(machine, system_id))]

    if cfg["input"] is not None:
        out = machine.run_with_input(cfg["input"])
    else:
        out = machine.run()
    return ["none" if out is None else str(out), f"STEPS: {machine.steps}"]


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        description="Integer-program machine runner. Accepts a file holding one comma-separated program."
    )
    ap.add_argument("program", help="program file (comma-separated integers).")
    ap.add_argument("--mode", choices=MODES, default="run", help="execution mode (default: run)")
    ap.add_argument("--input", type=int, default=None, help="value placed in the input slot")
    ap.add_argument("--noun", type=int, default=None, help="value poked at position 1 (noun-verb mode)")
    ap.add_argument("--verb", type=int, default=None, help="value poked at position 2 (noun-verb mode)")
    ap.add_argument("--target", type=int, default=None, help="value searched for at position 0 (search mode)")
    ap.add_argument("--config", help="path to yaml config", default=None)

    help_debug = "enable debug logging to logfile (per-step trace)."
    help_logfile = "path to machine log"
    help_console = "also echo logs to console (only when --debug)"
    ap.add_argument("--debug", action="store_true", help=help_debug)
    ap.add_argument("--logfile", default=LOGFILE, help=help_logfile)
    ap.add_argument("--console", action="store_true", help=help_console)
    args = ap.parse_args(argv)

    init_logging(logfile=args.logfile, debug=args.debug, console=args.console)

    try:
        cfg = load_config(args.config)
        overrides = {k: getattr(args, k) for k in ("input", "noun", "verb", "target")}
        cfg = load_config({**cfg, **{k: v for k, v in overrides.items() if v is not None}})
    except ConfigError as e:
        print("Bad config:", e)
        return 2

    try:
        memory = load_program(args.program)
    except FileNotFoundError as e:
        print(e)
        return 2
    except ProgramParseError as e:
        print("Bad program:", e)
        return 2

    machine = Machine(memory, lenient_log=cfg["lenient_log"])
    try:
        lines = _execute(args.mode, machine, cfg)
    except MachineError as e:
        print("Machine fault:", e)
        return 1
    except (DiagnosticError, LookupError) as e:
        print(e)
        return 1

    for line in lines:
        sys.stdout.write(line)
        sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
