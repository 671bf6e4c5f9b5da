from strdeob.instruction import Instruction
from strdeob.module import Module, Routine, StaticSlot
from strdeob.signatures import (
    DecoderSignature,
    DecoderSignatureMatcher,
    LinearOp,
    TransformShape,
    classify_body,
)


def _body(*entries: dict) -> list:
    return [Instruction.from_dict(entry) for entry in entries]


def _routine(name: str, body=None, *, params=("int32",), returns="string") -> Routine:
    return Routine(name, name.split("::")[0], tuple(params), returns, body)


def _module(*routines: Routine) -> Module:
    slots = [StaticSlot("<Module>::data", "<Module>", b"\x05\x00\x00\x00hello")]
    return Module("sample", routines, slots)


def test_linear_op_wraps_to_int32() -> None:
    assert LinearOp.XOR.apply(0x1234, 0x1200) == 0x34
    assert LinearOp.ADD.apply(0x7FFFFFFF, 1) == -0x80000000
    assert LinearOp.SUB.apply(5, 9) == -4
    assert LinearOp.MUL.apply(0x40000000, 4) == 0
    assert LinearOp.from_mnemonic("add.ovf") is LinearOp.ADD
    assert LinearOp.from_mnemonic("shl") is None


def test_classifies_linear_decoder() -> None:
    decoder = _routine(
        "Strings::Get",
        _body(
            {"op": "ldarg.0"},
            {"op": "ldc.i4", "operand": 0x5A5A},
            {"op": "xor"},
            {"op": "call", "operand": "Strings::Inner"},
            {"op": "ret"},
        ),
    )
    signature = classify_body(_module(decoder), decoder)
    assert signature.shape is TransformShape.LINEAR
    assert signature.operator is LinearOp.XOR
    assert signature.constant == 0x5A5A
    assert signature.exact
    assert signature.transform(0x5A5A ^ 9) == 9


def test_linear_requires_argument_before_operator() -> None:
    decoder = _routine(
        "Strings::Get",
        _body(
            {"op": "ldc.i4", "operand": 3},
            {"op": "ldc.i4", "operand": 4},
            {"op": "mul"},
            {"op": "ret"},
        ),
    )
    assert classify_body(_module(decoder), decoder).shape is TransformShape.UNKNOWN

    no_argument = _routine(
        "Strings::Other",
        _body({"op": "ldc.i4", "operand": 3}, {"op": "ldloc.0"}, {"op": "add"}, {"op": "ret"}),
    )
    assert classify_body(_module(no_argument), no_argument).shape is TransformShape.UNKNOWN


def test_classifies_table_decoder() -> None:
    decoder = _routine(
        "Strings::Get",
        _body(
            {"op": "call", "operand": "System.Text.Encoding::get_UTF8"},
            {"op": "ldsfld", "operand": "<Module>::data"},
            {"op": "ldarg.0"},
            {"op": "ldc.i4.4"},
            {"op": "add"},
            {"op": "call", "operand": "System.Text.Encoding::GetString"},
            {"op": "ret"},
        ),
    )
    signature = classify_body(_module(decoder), decoder)
    assert signature.shape is TransformShape.TABLE
    assert signature.table_slot == "<Module>::data"
    assert signature.operator is None
    assert signature.transform(7) is None


def test_field_load_without_decode_call_is_not_table() -> None:
    decoder = _routine(
        "Strings::Get",
        _body({"op": "ldsfld", "operand": "<Module>::data"}, {"op": "ldarg.0"}, {"op": "ldelem.u1"}, {"op": "ret"}),
        returns="int32",
    )
    signature = classify_body(_module(decoder), decoder)
    assert signature.shape is TransformShape.UNKNOWN
    assert not signature.exact
    assert not signature.is_confirmed


def test_matcher_builds_superset_pool() -> None:
    exact = _routine("Strings::Get", None)
    untyped = _routine("Strings::Obj", _body({"op": "ldarg.0"}, {"op": "ret"}), returns="object")
    two_args = _routine("Strings::Pair", None, params=("int32", "int32"))
    text_arg = _routine("Strings::Text", None, params=("string",))
    pool = DecoderSignatureMatcher().match(_module(exact, untyped, two_args, text_arg))

    assert set(pool) == {"Strings::Get", "Strings::Obj"}
    assert pool["Strings::Get"] == DecoderSignature("Strings::Get", exact=True)
    assert pool["Strings::Get"].is_confirmed
    assert pool["Strings::Obj"].shape is TransformShape.UNKNOWN
    assert not pool["Strings::Obj"].is_confirmed


def test_nops_are_ignored_while_classifying() -> None:
    decoder = _routine(
        "Strings::Get",
        _body(
            {"op": "nop"},
            {"op": "ldarg.0"},
            {"op": "nop"},
            {"op": "ldc.i4", "operand": 3},
            {"op": "mul"},
            {"op": "ret"},
        ),
        returns="object",
    )
    signature = classify_body(_module(decoder), decoder)
    assert signature.is_linear
    assert signature.is_confirmed
    assert "linear mul 0x3" in signature.describe()
