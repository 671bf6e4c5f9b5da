import pytest

from strdeob.errors import ModuleFormatError
from strdeob.instruction import Instruction, Opcode, to_int32


def test_to_int32_wraps_both_directions() -> None:
    assert to_int32(0x7FFFFFFF) == 0x7FFFFFFF
    assert to_int32(0x80000000) == -0x80000000
    assert to_int32(0xFFFFFFFF) == -1
    assert to_int32(-1) == -1
    assert to_int32(0x1_0000_0005) == 5


def test_from_dict_recognises_constant_loads() -> None:
    assert Instruction.from_dict({"op": "ldc.i4", "operand": 1234}).operand == 1234
    short = Instruction.from_dict({"op": "ldc.i4.3"})
    assert short.opcode is Opcode.LOAD_CONST_INT
    assert short.operand == 3
    assert Instruction.from_dict({"op": "ldc.i4.m1"}).operand == -1
    assert Instruction.from_dict({"op": "LDC.I4.S", "operand": 7}).is_load_int


def test_from_dict_keeps_other_mnemonics() -> None:
    instruction = Instruction.from_dict({"op": "xor"})
    assert instruction.opcode is Opcode.OTHER
    assert instruction.mnemonic == "xor"
    field_load = Instruction.from_dict({"op": "ldsfld", "operand": "<Module>::data"})
    assert field_load.operand == "<Module>::data"


def test_from_dict_rejects_malformed_entries() -> None:
    with pytest.raises(ModuleFormatError):
        Instruction.from_dict({"operand": 3})
    with pytest.raises(ModuleFormatError):
        Instruction.from_dict({"op": "ldc.i4", "operand": "12"})
    with pytest.raises(ModuleFormatError):
        Instruction.from_dict({"op": "ldc.i4", "operand": 0x80000000})
    with pytest.raises(ModuleFormatError):
        Instruction.from_dict({"op": "call", "operand": 5})
    with pytest.raises(ModuleFormatError):
        Instruction.from_dict({"op": "ldstr"})


def test_indirect_call_has_no_operand() -> None:
    instruction = Instruction.from_dict({"op": "call"})
    assert instruction.is_call
    assert instruction.operand is None
    assert instruction.to_dict() == {"op": "call"}


def test_rewrite_updates_mnemonic_and_operand() -> None:
    instruction = Instruction(Opcode.CALL, "A::Decode")
    instruction.rewrite(Opcode.LOAD_STRING, "hello")
    assert instruction.opcode is Opcode.LOAD_STRING
    assert instruction.to_dict() == {"op": "ldstr", "operand": "hello"}
    assert instruction.format(3) == "0003: ldstr 'hello'"

    instruction.rewrite(Opcode.NOP)
    assert instruction.operand is None
    assert instruction.format() == "nop"


def test_other_requires_mnemonic() -> None:
    with pytest.raises(ValueError):
        Instruction(Opcode.OTHER)
    with pytest.raises(ValueError):
        Instruction(Opcode.NOP).rewrite(Opcode.OTHER)


@pytest.mark.parametrize("operand", [128, -129, 5000])
def test_short_form_load_rejects_values_outside_a_byte(operand: int) -> None:
    with pytest.raises(ModuleFormatError):
        Instruction.from_dict({"op": "ldc.i4.s", "operand": operand})
    assert Instruction.from_dict({"op": "ldc.i4.s", "operand": -128}).operand == -128
