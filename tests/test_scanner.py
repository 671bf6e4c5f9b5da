from strdeob.config import EngineOptions
from strdeob.instruction import Instruction
from strdeob.module import Module, Routine
from strdeob.scanner import CallSite, CallSiteScanner
from strdeob.signatures import DecoderSignature, LinearOp, TransformShape

DECODER = "Strings::Get"


def _body(*entries: dict) -> list:
    return [Instruction.from_dict(entry) for entry in entries]


def _module(body: list, *extra: Routine) -> Module:
    routines = [
        Routine(DECODER, "Strings", ("int32",), "string", None),
        Routine("Program::Main", "Program", (), "void", body),
        *extra,
    ]
    return Module("sample", routines)


def _pool() -> dict:
    return {DECODER: DecoderSignature(DECODER, exact=True)}


def test_scanner_finds_adjacent_pairs() -> None:
    body = _body(
        {"op": "ldc.i4", "operand": 5000},
        {"op": "call", "operand": DECODER},
        {"op": "call", "operand": "Console::WriteLine"},
        {"op": "ldc.i4", "operand": 6000},
        {"op": "call", "operand": DECODER},
    )
    module = _module(body)
    sites = list(CallSiteScanner(module, _pool()).scan(module.routine("Program::Main")))
    assert [(site.load_index, site.call_index, site.constant) for site in sites] == [
        (0, 1, 5000),
        (3, 4, 6000),
    ]
    assert sites[0].target == DECODER
    assert sites[0].signature.exact


def test_scanner_looks_back_within_window() -> None:
    body = _body(
        {"op": "ldc.i4", "operand": 4242},
        {"op": "dup"},
        {"op": "pop"},
        {"op": "nop"},
        {"op": "nop"},
        {"op": "call", "operand": DECODER},
        {"op": "ldc.i4", "operand": 777},
        {"op": "nop"},
        {"op": "nop"},
        {"op": "nop"},
        {"op": "nop"},
        {"op": "nop"},
        {"op": "call", "operand": DECODER},
    )
    module = _module(body)
    sites = list(CallSiteScanner(module, _pool()).scan(module.routine("Program::Main")))
    assert len(sites) == 1
    assert (sites[0].load_index, sites[0].call_index) == (0, 5)


def test_window_is_configurable() -> None:
    body = _body(
        {"op": "ldc.i4", "operand": 4242},
        {"op": "dup"},
        {"op": "pop"},
        {"op": "call", "operand": DECODER},
    )
    module = _module(body)
    scanner = CallSiteScanner(module, _pool(), EngineOptions(lookback_window=2))
    assert list(scanner.scan(module.routine("Program::Main"))) == []


def test_constant_is_associated_with_one_call_only() -> None:
    body = _body(
        {"op": "ldc.i4", "operand": 4242},
        {"op": "call", "operand": DECODER},
        {"op": "call", "operand": DECODER},
    )
    module = _module(body)
    sites = list(CallSiteScanner(module, _pool()).scan(module.routine("Program::Main")))
    assert [site.call_index for site in sites] == [1]


def test_calls_outside_pool_are_ignored() -> None:
    helper = Routine("Util::Twice", "Util", ("int32",), "int32", _body({"op": "ret"}))
    body = _body({"op": "ldc.i4", "operand": 5000}, {"op": "call", "operand": "Util::Twice"})
    module = _module(body, helper)
    sites = list(CallSiteScanner(module, _pool()).scan(module.routine("Program::Main")))
    assert sites == []


def test_fallback_mode_accepts_single_argument_routines() -> None:
    module = Module(
        "sample",
        [
            Routine("Hidden::Resolve", "Hidden", ("object",), "object", None),
            Routine("Hidden::Log", "Hidden", ("object",), "void", None),
            Routine(
                "Program::Main",
                "Program",
                (),
                "void",
                _body(
                    {"op": "ldc.i4", "operand": 5000},
                    {"op": "call", "operand": "Hidden::Resolve"},
                    {"op": "ldc.i4", "operand": 6000},
                    {"op": "call", "operand": "Hidden::Log"},
                    {"op": "ldc.i4", "operand": 7000},
                    {"op": "call", "operand": "External::Thing"},
                ),
            ),
        ],
    )
    scanner = CallSiteScanner(module, {})
    assert scanner.fallback
    sites = list(scanner.scan(module.routine("Program::Main")))
    assert [site.target for site in sites] == ["Hidden::Resolve"]
    assert sites[0].signature is None


def test_indirect_call_yields_ambiguous_site() -> None:
    body = _body({"op": "ldc.i4", "operand": 5000}, {"op": "call"})
    module = _module(body)
    sites = list(CallSiteScanner(module, _pool()).scan(module.routine("Program::Main")))
    assert len(sites) == 1
    assert sites[0].is_ambiguous
    assert "<indirect>" in sites[0].describe()


def test_short_population_depends_on_decoder_evidence() -> None:
    confirmed = DecoderSignature(DECODER, exact=True)
    linear = DecoderSignature(DECODER, TransformShape.LINEAR, operator=LinearOp.ADD, constant=4)
    unknown = DecoderSignature(DECODER)
    assert not CallSite("r", 0, 1, 12, DECODER, confirmed).is_short(1000)
    assert not CallSite("r", 0, 1, 12, DECODER, linear).is_short(1000)
    assert CallSite("r", 0, 1, 12, DECODER, unknown).is_short(1000)
    assert CallSite("r", 0, 1, -999, DECODER, None).is_short(1000)
    assert not CallSite("r", 0, 1, 1000, DECODER, unknown).is_short(1000)


def test_survey_lists_large_constants_for_any_target() -> None:
    body = _body(
        {"op": "ldc.i4", "operand": 12},
        {"op": "call", "operand": "Util::Small"},
        {"op": "ldc.i4", "operand": -20000},
        {"op": "call", "operand": "Util::Large"},
    )
    module = _module(body)
    sites = list(CallSiteScanner(module, {}).survey(module.routine("Program::Main"), minimum=1000))
    assert [(site.constant, site.target) for site in sites] == [(-20000, "Util::Large")]


def test_routine_without_body_yields_nothing() -> None:
    module = _module([])
    assert list(CallSiteScanner(module, _pool()).scan(module.routine(DECODER))) == []
