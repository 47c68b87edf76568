import pytest

from halgen.core.ir_builder import build_model
from halgen.core.matcher import (
    access_sufficient,
    apply_supertraits,
    match_capabilities,
    match_contract,
    role_quality,
)
from halgen.core.model import AccessMode, BitField, Register, WriteAction
from halgen.interfaces.capability import (
    CapabilityContract,
    MatchResult,
    MatchStatus,
    OperationKind,
    OperationRequirement,
)


def _op(name, kind, role, **kwargs):
    return OperationRequirement(name=name, kind=OperationKind(kind), role=role, **kwargs)


def _contract(contract_id, *ops, **kwargs):
    return CapabilityContract(
        id=contract_id, trait=f"demo::{contract_id}", operations=ops, **kwargs
    )


def _model(*registers):
    return build_model({"name": "P", "base_address": 0x4000_0000, "registers": list(registers)})


class TestRoleQuality:
    def test_exact_compatible_and_foreign_roles(self):
        op = _op("set_high", "set", "output", compatible_roles=("enable",))

        assert role_quality(BitField("A", 0, 1, role="output"), op) == 0
        assert role_quality(BitField("A", 0, 1, role="enable"), op) == 1
        assert role_quality(BitField("A", 0, 1, role="duty"), op) is None

    def test_untagged_fields_need_opt_in(self):
        untagged = BitField("A", 0, 1)

        assert role_quality(untagged, _op("x", "set", "output")) is None
        assert role_quality(untagged, _op("x", "set", "output", allow_untagged=True)) == 2


class TestAccessSufficient:
    def _reg(self, access=AccessMode.READ_WRITE, **field_kwargs):
        field = BitField("F", 0, 1, **field_kwargs)
        return Register("R", 0, 32, access, fields=(field,)), field

    def test_read_only_field_cannot_be_set(self):
        reg, field = self._reg(AccessMode.READ_ONLY)

        assert not access_sufficient(reg, field, OperationKind.SET)
        assert access_sufficient(reg, field, OperationKind.READ)
        assert access_sufficient(reg, field, OperationKind.MAX_VALUE)

    def test_write_only_field_cannot_be_read(self):
        reg, field = self._reg(AccessMode.WRITE_ONLY)

        assert access_sufficient(reg, field, OperationKind.WRITE_VALUE)
        assert not access_sufficient(reg, field, OperationKind.READ)
        assert not access_sufficient(reg, field, OperationKind.TOGGLE)

    def test_action_fields_only_do_their_action(self):
        reg, field = self._reg(AccessMode.WRITE_ONLY, write_action=WriteAction.SET)

        assert access_sufficient(reg, field, OperationKind.SET)
        assert not access_sufficient(reg, field, OperationKind.CLEAR)
        assert not access_sufficient(reg, field, OperationKind.WRITE_VALUE)

    def test_write_one_to_clear_implies_clear_action(self):
        reg, field = self._reg(AccessMode.WRITE_ONE_TO_CLEAR)

        assert access_sufficient(reg, field, OperationKind.CLEAR)
        assert not access_sufficient(reg, field, OperationKind.SET)
        assert access_sufficient(reg, field, OperationKind.READ)

    def test_write_action_needs_a_writable_field(self):
        reg, field = self._reg(AccessMode.READ_ONLY, write_action=WriteAction.SET)

        assert not access_sufficient(reg, field, OperationKind.SET)
        assert access_sufficient(reg, field, OperationKind.READ)

    @pytest.mark.parametrize("kind", ["set", "clear", "write-value"])
    def test_write_once_cannot_drive_repeated_writes(self, kind):
        reg, field = self._reg(AccessMode.READ_WRITE_ONCE)

        assert not access_sufficient(reg, field, OperationKind(kind))


class TestMatchContract:
    """Test matching single contracts."""

    def test_enable_bit_fully_implements_output(self, enable_bit_description, registry):
        model = build_model(enable_bit_description)

        result = match_contract(model, registry.get("digital-output"))

        assert result.status is MatchStatus.FULL
        assert [(b.operation, b.register, b.field) for b in result.bindings] == [
            ("set_low", "CTRL", "enable"),
            ("set_high", "CTRL", "enable"),
        ]
        assert not any(b.exact_role for b in result.bindings)

    def test_set_clear_pair_binds_both_registers(self, set_clear_description, registry):
        model = build_model(set_clear_description)

        result = match_contract(model, registry.get("digital-output"))

        assert result.status is MatchStatus.FULL
        assert result.binding_for("set_high").register == "SET"
        assert result.binding_for("set_low").register == "CLEAR"
        assert result.registers() == ("CLEAR", "SET")

    def test_read_only_role_field_does_not_match(self, read_only_set_description, registry):
        model = build_model(read_only_set_description)

        result = match_contract(model, registry.get("digital-output"))

        assert result.status is MatchStatus.NONE
        assert result.bindings == ()
        assert any("STATUS.latched is read-only" in reason for reason in result.unmet)

    def test_adding_clear_register_gives_partial(self, read_only_set_description, registry):
        read_only_set_description["registers"].append(
            {
                "name": "CLEAR",
                "offset": 0x4,
                "access": "write-only",
                "fields": [{"name": "latched_clear", "bit_offset": 0, "role": "clear"}],
            }
        )
        model = build_model(read_only_set_description)

        result = match_contract(model, registry.get("digital-output"))

        assert result.status is MatchStatus.PARTIAL
        assert result.binding_for("set_low").register == "CLEAR"
        assert result.binding_for("set_high") is None
        assert len(result.unmet) == 1

    def test_partial_spi_reports_missing_role(self, uart_description, registry):
        model = build_model(uart_description)

        result = match_contract(model, registry.get("spi-bus"))

        assert result.status is MatchStatus.PARTIAL
        assert result.unmet == ("idle: no field with role 'busy'",)

    def test_width_bounds_are_reported(self, registry):
        model = _model(
            {
                "name": "CCR",
                "offset": 0,
                "fields": [{"name": "CCR", "bit_offset": 0, "bit_width": 32, "role": "duty"}],
            }
        )

        result = match_contract(model, registry.get("pwm-duty"))

        assert result.status is MatchStatus.NONE
        assert "32 bits wide" in result.unmet[0]

    def test_exact_role_beats_declaration_order(self):
        contract = _contract("reader", _op("get", "read", "input", compatible_roles=("level",)))
        model = _model(
            {
                "name": "R",
                "offset": 0,
                "fields": [
                    {"name": "LVL", "bit_offset": 0, "role": "level"},
                    {"name": "IN", "bit_offset": 1, "role": "input"},
                ],
            }
        )

        result = match_contract(model, contract)

        assert result.bindings[0].field == "IN"
        assert result.bindings[0].exact_role

    def test_ties_break_by_declaration_order(self):
        contract = _contract("reader", _op("get", "read", "input"))
        model = _model(
            {"name": "B", "offset": 4, "fields": [{"name": "X", "bit_offset": 3, "role": "input"}]},
            {"name": "A", "offset": 0, "fields": [{"name": "Y", "bit_offset": 0, "role": "input"}]},
        )

        result = match_contract(model, contract)

        assert (result.bindings[0].register, result.bindings[0].field) == ("B", "X")

    def test_untagged_match_ranks_below_roles(self):
        contract = _contract(
            "writer", _op("put", "write-value", "data", min_width=8, allow_untagged=True)
        )
        model = _model(
            {
                "name": "R",
                "offset": 0,
                "fields": [
                    {"name": "RAW", "bit_offset": 0, "bit_width": 8},
                    {"name": "DATA", "bit_offset": 8, "bit_width": 8, "role": "data"},
                ],
            }
        )

        assert match_contract(model, contract).bindings[0].field == "DATA"

    def test_untagged_fields_ignored_without_opt_in(self, uart_description, registry):
        model = build_model(uart_description)

        # CR.UE is a plain read-write bit with no role
        assert match_contract(model, registry.get("digital-output")).status is MatchStatus.NONE

    def test_same_signal_prefers_most_operations(self):
        contract = _contract(
            "pin",
            _op("low", "clear", "output", compatible_roles=("clear",)),
            _op("high", "set", "output", compatible_roles=("set",)),
            same_signal=True,
        )
        model = _model(
            {
                "name": "SET",
                "offset": 0,
                "access": "write-only",
                "fields": [
                    {"name": "A", "bit_offset": 0, "role": "set", "write_action": "set"},
                    {"name": "B", "bit_offset": 1, "role": "set", "write_action": "set"},
                ],
            },
            {
                "name": "CLR",
                "offset": 4,
                "access": "write-only",
                "fields": [
                    {
                        "name": "B_CLR",
                        "bit_offset": 1,
                        "role": "clear",
                        "write_action": "clear",
                        "signal": "B",
                    },
                ],
            },
        )

        result = match_contract(model, contract)

        assert result.status is MatchStatus.FULL
        assert {b.field for b in result.bindings} == {"B", "B_CLR"}


class TestMatchCapabilities:
    """Test matching the whole registry."""

    def test_results_in_contract_order(self, uart_description, registry):
        results = match_capabilities(build_model(uart_description), registry)

        assert list(results) == registry.list_contracts()
        assert results["serial-write"].is_full
        assert results["serial-read"].is_full
        assert results["digital-input"].status is MatchStatus.NONE

    def test_stateful_output_on_enable_bit(self, enable_bit_description, registry):
        results = match_capabilities(build_model(enable_bit_description), registry)

        assert results["digital-output"].is_full
        assert results["stateful-output"].is_full

    def test_stateful_output_reads_the_driven_signal(self, registry):
        # SET/CLR drive p0 and a separate read-write bit drives p1
        model = _model(
            {
                "name": "SET",
                "offset": 0x0,
                "access": "write-only",
                "fields": [
                    {
                        "name": "p0_set",
                        "bit_offset": 0,
                        "role": "output",
                        "write_action": "set",
                        "signal": "p0",
                    }
                ],
            },
            {
                "name": "CLR",
                "offset": 0x4,
                "access": "write-only",
                "fields": [
                    {
                        "name": "p0_clr",
                        "bit_offset": 0,
                        "role": "output",
                        "write_action": "clear",
                        "signal": "p0",
                    }
                ],
            },
            {
                "name": "OUT",
                "offset": 0x8,
                "fields": [{"name": "p1", "bit_offset": 1, "role": "output"}],
            },
        )

        results = match_capabilities(model, registry)

        assert results["digital-output"].is_full
        assert results["digital-output"].registers() == ("CLR", "SET")
        stateful = results["stateful-output"]
        assert not stateful.is_full
        assert stateful.bindings == ()
        assert all("signal 'p0'" in reason for reason in stateful.unmet)

    def test_stateful_output_follows_parent_signal(self, registry):
        # the write-once bit is readable but cannot drive the pin
        model = _model(
            {
                "name": "OUT",
                "offset": 0x0,
                "fields": [
                    {
                        "name": "lock",
                        "bit_offset": 0,
                        "role": "output",
                        "access": "read-write-once",
                    },
                    {"name": "p1", "bit_offset": 1, "role": "output"},
                ],
            }
        )

        results = match_capabilities(model, registry)

        driven = {b.field for b in results["digital-output"].bindings}
        observed = {b.field for b in results["stateful-output"].bindings}
        assert driven == observed == {"p1"}
        assert results["stateful-output"].is_full

    def test_deterministic(self, uart_description, registry):
        first = match_capabilities(build_model(uart_description), registry)
        second = match_capabilities(build_model(uart_description), registry)

        assert first == second

    def test_adding_fields_never_lowers_status(self, enable_bit_description, registry):
        before = match_capabilities(build_model(enable_bit_description), registry)
        enable_bit_description["registers"][0]["fields"].append(
            {"name": "level_in", "bit_offset": 1, "role": "input", "access": "read-only"}
        )

        after = match_capabilities(build_model(enable_bit_description), registry)

        for contract_id, result in before.items():
            assert after[contract_id].status.rank >= result.status.rank
        assert after["digital-input"].is_full


class TestSupertraits:
    def test_full_child_of_partial_parent_is_downgraded(self):
        parent = _contract("parent", _op("a", "set", "output"), _op("b", "read", "input"))
        child = _contract("child", _op("c", "set", "output"), supertraits=("parent",))
        results = {
            "parent": MatchResult("parent", MatchStatus.PARTIAL, unmet=("b: missing",)),
            "child": MatchResult("child", MatchStatus.FULL),
        }

        resolved = apply_supertraits([parent, child], results)

        assert resolved["child"].status is MatchStatus.PARTIAL
        assert resolved["child"].unmet == ("supertrait parent is not fully supported",)
        assert resolved["parent"] == results["parent"]

    def test_idempotent(self):
        parent = _contract("parent", _op("a", "set", "output"))
        child = _contract("child", _op("c", "set", "output"), supertraits=("parent",))
        results = {
            "parent": MatchResult("parent", MatchStatus.NONE, unmet=("a: missing",)),
            "child": MatchResult("child", MatchStatus.FULL),
        }

        once = apply_supertraits([parent, child], results)
        twice = apply_supertraits([parent, child], once)

        assert once == twice

    def test_unknown_parent(self):
        child = _contract("child", _op("c", "set", "output"), supertraits=("ghost",))

        resolved = apply_supertraits([child], {"child": MatchResult("child", MatchStatus.FULL)})

        assert resolved["child"].unmet == ("supertrait ghost is not a known contract",)

    def test_stateful_output_needs_digital_output(self, registry):
        # a readable level bit that cannot be driven
        model = _model(
            {
                "name": "R",
                "offset": 0,
                "access": "read-only",
                "fields": [{"name": "LVL", "bit_offset": 0, "role": "enable"}],
            }
        )

        results = match_capabilities(model, registry)

        assert results["digital-output"].status is MatchStatus.NONE
        assert results["stateful-output"].status is MatchStatus.PARTIAL
        assert "supertrait digital-output is not fully supported" in results[
            "stateful-output"
        ].unmet
