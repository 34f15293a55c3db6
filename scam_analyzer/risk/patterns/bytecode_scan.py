"""
Opcode signature scanning over raw bytecode.

Splits bytecode into instructions (skipping PUSH immediates so data bytes are
never mistaken for opcodes) and offers lookups used by the detectors. Nothing
here executes or interprets the code.

File: scam_analyzer/risk/patterns/bytecode_scan.py
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from ...shared.constants import OPCODE_PUSH1, OPCODE_PUSH20, OPCODE_PUSH32


@dataclass(frozen=True)
class Instruction:
    """One opcode with its position and any PUSH immediate."""
    position: int
    opcode: int
    immediate: bytes = b''

    @property
    def is_push(self) -> bool:
        return OPCODE_PUSH1 <= self.opcode <= OPCODE_PUSH32

    @property
    def is_push20(self) -> bool:
        return self.opcode == OPCODE_PUSH20 and len(self.immediate) == 20

    @property
    def pushed_address(self) -> Optional[str]:
        return '0x' + self.immediate.hex() if self.is_push20 else None


def iter_instructions(code: bytes) -> Iterator[Instruction]:
    """Linear sweep over the code; truncated trailing immediates are kept short."""
    position = 0
    length = len(code)
    while position < length:
        opcode = code[position]
        if OPCODE_PUSH1 <= opcode <= OPCODE_PUSH32:
            size = opcode - OPCODE_PUSH1 + 1
            immediate = code[position + 1:position + 1 + size]
            yield Instruction(position, opcode, immediate)
            position += 1 + size
        else:
            yield Instruction(position, opcode)
            position += 1


def disassemble(code: bytes) -> List[Instruction]:
    return list(iter_instructions(code))


def find_preceding_push20(
    instructions: Sequence[Instruction],
    index: int,
    lookback: int,
) -> Optional[Instruction]:
    """Nearest PUSH20 within lookback instructions before instructions[index]."""
    for offset in range(1, lookback + 1):
        candidate_index = index - offset
        if candidate_index < 0:
            break
        candidate = instructions[candidate_index]
        if candidate.is_push20:
            return candidate
    return None


def contains_opcode(instructions: Sequence[Instruction], opcodes) -> bool:
    return any(instruction.opcode in opcodes for instruction in instructions)
