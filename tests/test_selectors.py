"""Tests for selector compilation and evaluation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from device_alloc.core import AttributeValue, Device, SelectorCompileError
from device_alloc.selectors import MATCH_ALL, EvaluationResult, bindings_for, compile_selector

FIXTURES = Path(__file__).parent / "fixtures"

CORPUS = yaml.safe_load((FIXTURES / "selectors.yaml").read_text(encoding="utf-8"))["selectors"]

GPU = Device(
    name="gpu-0",
    driver="gpu.example.com",
    device_type="gpu",
    attributes={
        "model.gpu.example.com": "a100",
        "memory.gpu.example.com": AttributeValue.quantity("40Gi"),
        "driver.gpu.example.com": AttributeValue.version("1.4.0"),
        "tags.gpu.example.com": ["fast", "nvlink"],
        "mig.gpu.example.com": True,
        "cores.cpu.example.com": 64,
    },
)
BARE = Device(name="nic-0", driver="nic.example.com")
MISTYPED = Device(
    name="odd-0",
    driver="odd.example.com",
    attributes={
        "model.gpu.example.com": 7,
        "memory.gpu.example.com": "lots",
        "driver.gpu.example.com": True,
        "tags.gpu.example.com": "fast",
    },
)


def _matches(expression: str, device: Device) -> bool:
    return compile_selector(expression).matches(bindings_for(device))


@pytest.mark.parametrize("expression", CORPUS)
@pytest.mark.parametrize("device", [GPU, BARE, MISTYPED], ids=["gpu", "bare", "mistyped"])
def test_corpus_compiles_and_never_errors(expression: str, device: Device) -> None:
    """Every corpus selector should compile and evaluate without runtime error."""

    result = compile_selector(expression).evaluate(bindings_for(device))

    assert result.error is None
    assert isinstance(result.matched, bool)


def test_string_literals_and_comments() -> None:
    """Operators inside strings stay literal; escapes, raw and triple quotes parse."""

    assert _matches('"x && !y" == \'x && !y\'', BARE)
    assert _matches(r'"a\tb" == "a\x09b" && "\u00e9" == "\351"', BARE)
    assert _matches(r'r"\d+" == "\\d+"', BARE)
    assert _matches('"""two\nlines""".contains("\\n") // trailing comment', BARE)
    assert _matches("0x10 == 16 && 3u == 3 && 1.5e1 == 15.0", BARE)


def test_empty_selector_matches_everything() -> None:
    """Empty text should compile to the match-all program."""

    assert compile_selector("") is MATCH_ALL
    assert compile_selector("   ").matches(bindings_for(BARE))


def test_typed_maps_and_members() -> None:
    """Typed attribute maps and device members should resolve."""

    assert _matches('device.driverName == "gpu.example.com"', GPU)
    assert _matches('device.deviceType == "gpu"', GPU)
    assert _matches('device.stringAttributes["model.gpu.example.com"] == "a100"', GPU)
    assert _matches(
        'device.quantityAttributes["memory.gpu.example.com"].isGreaterThan(quantity("32Gi"))', GPU
    )
    assert _matches('device.versionAttributes["driver.gpu.example.com"].isGreaterThan(semver("1.2.0"))', GPU)
    assert _matches('device.stringsliceAttributes["tags.gpu.example.com"].contains("nvlink")', GPU)
    assert _matches('device.boolAttributes["mig.gpu.example.com"]', GPU)
    assert not _matches('device.stringAttributes["model.gpu.example.com"] == "a100"', BARE)
    assert _matches('device.intAttributes["missing.gpu.example.com"] == 0', GPU)


def test_type_mismatch_excludes_device() -> None:
    """A runtime type mismatch should exclude the device, not raise."""

    program = compile_selector('device.attributes["model.gpu.example.com"] > 3')

    result = program.evaluate(bindings_for(GPU))

    assert not result.matched
    assert result.error is not None
    assert not program.matches(bindings_for(GPU))


def test_or_absorbs_errors_when_another_operand_decides() -> None:
    """Logical operators should tolerate errors when the result is decided."""

    assert _matches('device.attributes["model.gpu.example.com"] > 3 || true', GPU)
    assert _matches('true || device.attributes["model.gpu.example.com"] > 3', GPU)
    assert not _matches('device.attributes["model.gpu.example.com"] > 3 && false', GPU)
    assert compile_selector('device.attributes["model.gpu.example.com"] > 3 || false').evaluate(
        bindings_for(GPU)
    ).error


def test_arithmetic_and_functions() -> None:
    """Integer arithmetic truncates and helper functions behave like CEL."""

    assert _matches("7 / 2 == 3", BARE)
    assert _matches("-7 / 2 == -3", BARE)
    assert _matches("7 % 3 == 1", BARE)
    assert _matches('size("abc") == 3', BARE)
    assert _matches('string(12) == "12"', BARE)
    assert _matches('int(quantity("2k")) == 2000', BARE)
    assert _matches('isQuantity("10Gi") && !isSemver("1.0")', BARE)
    assert _matches('semver("1.2.3").compareTo(semver("1.2.4")) == -1', BARE)


def test_non_bool_result_excludes_device() -> None:
    """A selector that evaluates to a non-bool should not match."""

    result = compile_selector('device.driverName').evaluate(bindings_for(GPU))

    assert not result.matched
    assert "must evaluate to bool" in result.error


@pytest.mark.parametrize(
    "expression, message",
    [
        ("device.driverName ==", "syntax error"),
        ("device.color == 1", "device has no member 'color'"),
        ("cluster == 1", "undeclared reference"),
        ('frobnicate("x")', "undeclared function"),
        ('device.driverName.frob()', "undeclared method"),
        ('size("a", "b") == 1', "takes 1 argument"),
        ("device == 1", "must be followed by a member"),
        ("[x for x in device.attributes]", "syntax error"),
        ('device.driverName == "a" "b"', "syntax error: unexpected"),
        ("device.driverName # 1", "unexpected character '#'"),
        ('device.driverName == "a" &&', "unexpected end of expression"),
        ("has(device)", "invalid argument to has"),
        ("device.attributes.exists(1, true)", "expects an identifier"),
        ("device.attributes.all(k)", "takes 2 arguments"),
        ("x.exists(x, true)", "undeclared reference to 'x'"),
        ("[1].exists(x, x > 0) && x == 1", "undeclared reference to 'x'"),
        (r'device.driverName.matches("(a)\\1")', "invalid regular expression"),
        (r'device.driverName == "\q"', "invalid string literal"),
    ],
)
def test_compile_errors(expression: str, message: str) -> None:
    """Unsupported or ill-typed syntax should fail compilation with a path."""

    with pytest.raises(SelectorCompileError, match=message) as excinfo:
        compile_selector(expression, path="claim.requests[0].requirements[0].device.selector")

    assert excinfo.value.path == "claim.requests[0].requirements[0].device.selector"
    assert excinfo.value.expression == expression


def test_compilation_is_cached() -> None:
    """Compiling the same text twice should return the same program."""

    expression = 'device.driverName == "cached.example.com"'

    assert compile_selector(expression) is compile_selector(expression)


def test_chained_comparison_is_a_runtime_type_error() -> None:
    """``1 < 2 < 3`` compares a bool with an int and excludes the device."""

    result = compile_selector("1 < 2 < 3").evaluate(bindings_for(BARE))

    assert not result.matched
    assert "no ordering between bool and number" in result.error


def test_ternary_evaluates_only_the_chosen_branch() -> None:
    """The conditional operator should pick a branch and skip the other."""

    assert _matches('device.intAttributes["cores.cpu.example.com"] > 1 ? true : false', GPU)
    assert not _matches('device.intAttributes["cores.cpu.example.com"] > 1 ? true : false', BARE)
    assert _matches('device.deviceType == "gpu" ? true : device.attributes["x"] > 1', GPU)
    assert _matches('false ? 1 : true ? 2 == 2 : false', BARE)
    result = compile_selector('"gpu" ? true : false').evaluate(bindings_for(GPU))
    assert result.error == "expected bool, got string"


def test_comprehension_macros() -> None:
    """``all``, ``exists``, ``exists_one``, ``filter`` and ``map`` bind an iteration variable."""

    tags = 'device.stringsliceAttributes["tags.gpu.example.com"]'

    assert _matches(f'{tags}.exists(t, t == "fast")', GPU)
    assert not _matches(f'{tags}.exists(t, t == "fast")', BARE)
    assert not _matches(f'{tags}.exists(t, t == "fast")', MISTYPED)
    assert _matches(f'{tags}.all(t, t.size() >= 4)', GPU)
    assert _matches(f'{tags}.all(t, t == "slow")', BARE)
    assert _matches(f'{tags}.exists_one(t, t.startsWith("nv"))', GPU)
    assert _matches(f'{tags}.filter(t, t != "fast") == ["nvlink"]', GPU)
    assert _matches(f'{tags}.map(t, t.upperAscii()) == ["FAST", "NVLINK"]', GPU)
    assert _matches(f'{tags}.map(t, t != "fast", size(t)) == [6]', GPU)
    assert _matches('device.boolAttributes.all(name, device.boolAttributes[name])', GPU)
    assert _matches('[1, 2, 3].exists(n, n > 2) && ![1, 2].exists(n, n > 2)', BARE)


def test_exists_absorbs_errors_when_decided() -> None:
    """A true element decides ``exists`` even if another element errors."""

    assert _matches('[1, "a"].exists(v, v > 0)', BARE)
    assert _matches('["a", 1].exists(v, v > 0)', BARE)
    assert compile_selector('["a"].exists(v, v > 0)').evaluate(bindings_for(BARE)).error


def test_has_macro_tests_presence() -> None:
    """``has`` should test map keys and set device fields without erroring."""

    assert not _matches("has(device.attributes.foo)", GPU)
    assert _matches("!has(device.attributes.foo) && has(device.driverName)", GPU)
    assert _matches("has(device.deviceType)", GPU)
    assert not _matches("has(device.deviceType)", BARE)
    assert _matches('has({"a": 1}.a) && !has({"a": 1}.b)', BARE)
    assert compile_selector('has(device.driverName.foo)').evaluate(bindings_for(GPU)).error


def test_map_literals_and_field_selection() -> None:
    """Map literals support indexing and selection; duplicate keys are an error."""

    assert _matches('{"a": 1, "b": 2}.b == 2 && {"a": 1}["a"] == 1', BARE)
    assert _matches('"a" in {"a": true} && {}.size() == 0', BARE)
    assert compile_selector('{"a": 1, "a": 2}.a == 1').evaluate(bindings_for(BARE)).error


def test_matches_uses_linear_time_regular_expressions() -> None:
    """A nested-quantifier pattern should not backtrack on a long near-miss."""

    device = Device(
        name="str-0",
        driver="str.example.com",
        attributes={"s.example.com": "a" * 64 + "b"},
    )
    program = compile_selector('device.stringAttributes["s.example.com"].matches("^(a+)+$")')

    result = program.evaluate(bindings_for(device))

    assert result == EvaluationResult(matched=False)
    assert _matches('device.stringAttributes["s.example.com"].matches("^(a+)+b$")', device)
    assert _matches('matches(device.driverName, "^str[.]")', device)


def test_invalid_runtime_pattern_excludes_device() -> None:
    """A pattern built at evaluation time that RE2 rejects should exclude the device."""

    program = compile_selector('device.driverName.matches(device.driverName + "(")')

    result = program.evaluate(bindings_for(GPU))

    assert not result.matched
    assert result.error
