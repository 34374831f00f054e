import math

import pytest

from conftest import make_context, satisfied, set_values
from wdnopt.core.build.validate import ConfigurationError
from wdnopt.core.form.templates import (
    constraint_check_valve,
    constraint_des_pipe,
    constraint_flow_conservation,
    constraint_link,
    constraint_node_directionality,
    constraint_pipe,
    constraint_prv,
    constraint_pump,
    constraint_reservoir_head,
    constraint_shutoff_valve,
    constraint_tank_head,
    constraint_tank_state,
    constraint_valve,
)

EPS = 6.31465679e-6


def _all(cons):
    return all(satisfied(c) for c in cons)


# ============================================================
# Nodes
# ============================================================

class TestFlowConservation:
    def test_two_node_scenario(self, two_node):
        ctx = make_context(two_node)
        constraint_flow_conservation(ctx, "A")
        constraint_flow_conservation(ctx, "B")
        [at_b] = ctx.constraints("flow_conservation", "B")
        [at_a] = ctx.constraints("flow_conservation", "A")

        set_values(ctx.var["q"], {"p1": 10.0})
        set_values(ctx.var["q_reservoir"], {"R": 10.0})
        assert satisfied(at_b)
        assert satisfied(at_a)

        set_values(ctx.var["q"], {"p1": 9.0})
        assert not satisfied(at_b)

    def test_tank_outflow_supplies_node(self, tank_network):
        ctx = make_context(tank_network)
        constraint_flow_conservation(ctx, "T")
        set_values(ctx.var["q"], {"p1": 0.05})
        set_values(ctx.var["q_tank"], {"T1": 0.05})
        assert _all(ctx.constraints("flow_conservation", "T"))

    def test_dispatchable_demand(self, chain):
        chain["demand"]["d2"] = {"node": "C", "dispatchable": True, "demand_min": 0.0, "demand_max": 0.05}
        ctx = make_context(chain)
        constraint_flow_conservation(ctx, "C")
        set_values(ctx.var["q"], {"p2": 0.13})
        set_values(ctx.var["q_demand"], {"d2": 0.03})
        assert _all(ctx.constraints("flow_conservation", "C"))

    def test_isolated_node_without_demand_is_skipped(self, chain, caplog):
        chain["node"]["Z"] = {"elevation": 0.0}
        ctx = make_context(chain)
        constraint_flow_conservation(ctx, "Z")
        assert ctx.constraints("flow_conservation", "Z") == []
        assert "isolated" in caplog.text

    def test_isolated_node_with_demand_raises(self, chain):
        chain["node"]["Z"] = {"elevation": 0.0}
        chain["demand"]["dz"] = {"node": "Z", "flow_rate": 0.01}
        ctx = make_context(chain)
        with pytest.raises(ConfigurationError):
            constraint_flow_conservation(ctx, "Z")


class TestNodeDirectionality:
    def test_undirected_adds_nothing(self, chain):
        ctx = make_context(chain, "nc")
        for i in ("A", "B", "C"):
            constraint_node_directionality(ctx, i)
        assert ctx.count("node_directionality") == 0

    def test_interior_source_and_sink(self, chain):
        ctx = make_context(chain, "oa")
        for i in ("A", "B", "C"):
            constraint_node_directionality(ctx, i)
        assert ctx.count("node_directionality") == 3

        y = ctx.var["y"]
        set_values(y, {"p1": 1, "p2": 1})
        assert _all(ctx.constraints("node_directionality", "B"))
        assert _all(ctx.constraints("node_directionality", "A"))
        assert _all(ctx.constraints("node_directionality", "C"))

        set_values(y, {"p2": 0})
        assert not _all(ctx.constraints("node_directionality", "B"))
        assert not _all(ctx.constraints("node_directionality", "C"))

    def test_demand_node_with_tank_is_not_a_sink(self, tank_network):
        tank_network["demand"]["dT"] = {"node": "T", "flow_rate": 0.01}
        ctx = make_context(tank_network, "crd")
        constraint_node_directionality(ctx, "T")
        assert ctx.constraints("node_directionality", "T") == []


# ============================================================
# Devices
# ============================================================

class TestCheckValve:
    def _ctx(self, chain):
        chain["pipe"]["p1"]["has_check_valve"] = True
        ctx = make_context(chain)
        constraint_check_valve(ctx, "p1")
        return ctx

    def test_closed_forces_zero_flow(self, chain):
        ctx = self._ctx(chain)
        flow_ub, flow_lb = ctx.constraints("check_valve", "p1")[:2]
        set_values(ctx.var["z_check_valve"], {"p1": 0})

        set_values(ctx.var["q"], {"p1": 0.0})
        assert satisfied(flow_ub) and satisfied(flow_lb)
        set_values(ctx.var["q"], {"p1": 1e-3})
        assert not satisfied(flow_ub)

    def test_open_excludes_flows_below_epsilon(self, chain):
        ctx = self._ctx(chain)
        flow_ub, flow_lb = ctx.constraints("check_valve", "p1")[:2]
        set_values(ctx.var["z_check_valve"], {"p1": 1})

        set_values(ctx.var["q"], {"p1": 0.5 * EPS})
        assert not satisfied(flow_lb)
        set_values(ctx.var["q"], {"p1": EPS})
        assert satisfied(flow_lb)
        set_values(ctx.var["q"], {"p1": 0.05})
        assert satisfied(flow_ub) and satisfied(flow_lb)

    def test_open_valve_follows_head_loss(self, chain):
        ctx = self._ctx(chain)
        link = ctx.ref.link("p1")
        loss = link.length * ctx.ref.resistance["p1"][0] * 0.05 ** ctx.ref.alpha

        set_values(ctx.var["z_check_valve"], {"p1": 1})
        set_values(ctx.var["q"], {"p1": 0.05})
        set_values(ctx.var["h"], {"A": 100.0, "B": 100.0 - loss})
        assert _all(ctx.constraints("check_valve", "p1"))
        assert _all(ctx.constraints("head_loss", "p1"))

        set_values(ctx.var["h"], {"B": 100.0 - 2.0 * loss})
        assert not _all(ctx.constraints("head_loss", "p1"))


class TestShutoffValve:
    def _ctx(self, chain):
        chain["pipe"]["p2"]["has_shutoff_valve"] = True
        ctx = make_context(chain)
        constraint_shutoff_valve(ctx, "p2")
        return ctx

    def _state(self, ctx, z, yp, yn, q):
        set_values(ctx.var["z_shutoff_valve"], {"p2": z})
        set_values(ctx.var["yp_shutoff_valve"], {"p2": yp})
        set_values(ctx.var["yn_shutoff_valve"], {"p2": yn})
        set_values(ctx.var["q"], {"p2": q})
        return _all(ctx.constraints("shutoff_valve", "p2"))

    def test_closed(self, chain):
        ctx = self._ctx(chain)
        assert self._state(ctx, 0, 0, 0, 0.0)
        assert not self._state(ctx, 0, 0, 0, 0.01)

    def test_open_forward(self, chain):
        ctx = self._ctx(chain)
        assert self._state(ctx, 1, 1, 0, 0.05)
        assert not self._state(ctx, 1, 1, 0, 0.0)
        assert not self._state(ctx, 1, 1, 0, -0.05)

    def test_open_backward(self, chain):
        ctx = self._ctx(chain)
        assert self._state(ctx, 1, 0, 1, -0.05)
        assert not self._state(ctx, 1, 0, 1, -0.5 * EPS)

    def test_direction_must_match_status(self, chain):
        ctx = self._ctx(chain)
        assert not self._state(ctx, 0, 1, 0, 0.05)


@pytest.mark.parametrize("formulation", ["oa", "crd"])
class TestDirectedValveHeadLoss:
    def _loss(self, ctx, q):
        return 500.0 * ctx.ref.resistance["p2"][0] * q ** ctx.ref.alpha

    def test_open_check_valve_head_drop_is_bounded(self, chain, formulation):
        chain["pipe"]["p2"]["has_check_valve"] = True
        ctx = make_context(chain, formulation)
        constraint_check_valve(ctx, "p2")

        set_values(ctx.var["z_check_valve"], {"p2": 1})
        set_values(ctx.var["y"], {"p2": 1})
        set_values(ctx.var["qp"], {"p2": 0.01})
        set_values(ctx.var["qn"], {"p2": 0.0})
        set_values(ctx.var["h"], {"B": 100.0, "C": 100.0 - self._loss(ctx, 0.01)})
        assert _all(ctx.constraints("check_valve", "p2"))
        assert _all(ctx.constraints("head_loss", "p2"))

        set_values(ctx.var["h"], {"C": 40.0})
        assert not _all(ctx.constraints("head_loss", "p2"))

    def test_closed_check_valve_releases_head_drop(self, chain, formulation):
        chain["pipe"]["p2"]["has_check_valve"] = True
        ctx = make_context(chain, formulation)
        constraint_check_valve(ctx, "p2")

        set_values(ctx.var["z_check_valve"], {"p2": 0})
        set_values(ctx.var["y"], {"p2": 1})
        set_values(ctx.var["qp"], {"p2": 0.0})
        set_values(ctx.var["qn"], {"p2": 0.0})
        set_values(ctx.var["h"], {"B": 100.0, "C": 40.0})
        assert _all(ctx.constraints("head_loss", "p2"))

    def test_open_backward_shutoff_valve_head_rise_is_bounded(self, chain, formulation):
        chain["pipe"]["p2"]["has_shutoff_valve"] = True
        ctx = make_context(chain, formulation)
        constraint_shutoff_valve(ctx, "p2")

        set_values(ctx.var["z_shutoff_valve"], {"p2": 1})
        set_values(ctx.var["yp_shutoff_valve"], {"p2": 0})
        set_values(ctx.var["yn_shutoff_valve"], {"p2": 1})
        set_values(ctx.var["y"], {"p2": 0})
        set_values(ctx.var["qp"], {"p2": 0.0})
        set_values(ctx.var["qn"], {"p2": 0.01})
        set_values(ctx.var["h"], {"B": 40.0, "C": 40.0 + self._loss(ctx, 0.01)})
        assert _all(ctx.constraints("head_loss", "p2"))

        set_values(ctx.var["h"], {"C": 100.0})
        assert not _all(ctx.constraints("head_loss", "p2"))


class TestDesignPipe:
    def _ctx(self, chain, formulation="nc"):
        chain["pipe"]["p1"]["diameters"] = [
            {"diameter": 0.1, "cost": 1.0},
            {"diameter": 0.2, "cost": 2.0},
            {"diameter": 0.4, "cost": 4.0},
        ]
        ctx = make_context(chain, formulation)
        constraint_des_pipe(ctx, "p1")
        return ctx

    def test_selected_candidate_carries_the_flow(self, chain):
        ctx = self._ctx(chain)
        set_values(ctx.var["x_res"], {("p1", 0): 0, ("p1", 1): 1, ("p1", 2): 0})
        set_values(ctx.var["q_des"], {("p1", 0): 0.0, ("p1", 1): 0.05, ("p1", 2): 0.0})

        assert _all(ctx.constraints("resistance_selection", "p1"))
        assert ctx.flow("p1")() == pytest.approx(0.05)

    def test_unselected_candidate_must_be_idle(self, chain):
        ctx = self._ctx(chain)
        set_values(ctx.var["x_res"], {("p1", 0): 0, ("p1", 1): 1, ("p1", 2): 0})
        set_values(ctx.var["q_des"], {("p1", 0): 0.01, ("p1", 1): 0.04, ("p1", 2): 0.0})
        assert not _all(ctx.constraints("resistance_selection", "p1"))

    def test_exactly_one_selection(self, chain):
        ctx = self._ctx(chain)
        set_values(ctx.var["x_res"], {("p1", 0): 1, ("p1", 1): 1, ("p1", 2): 0})
        set_values(ctx.var["q_des"], {("p1", 0): 0.0, ("p1", 1): 0.0, ("p1", 2): 0.0})
        assert not satisfied(ctx.constraints("resistance_selection", "p1")[0])

    def test_head_loss_uses_selected_resistance(self, chain):
        ctx = self._ctx(chain)
        r = ctx.ref.resistance["p1"][1]
        loss = 500.0 * r * 0.05 ** ctx.ref.alpha
        set_values(ctx.var["q_des"], {("p1", 0): 0.0, ("p1", 1): 0.05, ("p1", 2): 0.0})
        set_values(ctx.var["h"], {"A": 100.0, "B": 100.0 - loss})
        assert _all(ctx.constraints("head_loss", "p1"))

    def test_outer_approximation_is_valid(self, chain):
        ctx = self._ctx(chain, "oa")
        r = ctx.ref.resistance["p1"][2]
        loss = 500.0 * r * 0.08 ** ctx.ref.alpha
        set_values(ctx.var["x_res"], {("p1", 0): 0, ("p1", 1): 0, ("p1", 2): 1})
        set_values(ctx.var["y"], {"p1": 1})
        set_values(ctx.var["qp_des"], {("p1", 0): 0.0, ("p1", 1): 0.0, ("p1", 2): 0.08})
        set_values(ctx.var["qn_des"], {("p1", 0): 0.0, ("p1", 1): 0.0, ("p1", 2): 0.0})
        set_values(ctx.var["dhp"], {"p1": loss})
        set_values(ctx.var["dhn"], {"p1": 0.0})
        set_values(ctx.var["h"], {"A": 100.0, "B": 100.0 - loss})

        for category in ("flow_direction", "resistance_selection", "head_loss"):
            assert _all(ctx.constraints(category, "p1")), category


class TestPipeFormulations:
    @pytest.mark.parametrize("formulation", ["oa", "crd"])
    def test_true_head_loss_satisfies_directed_laws(self, chain, formulation):
        ctx = make_context(chain, formulation)
        constraint_pipe(ctx, "p2")
        loss = 500.0 * ctx.ref.resistance["p2"][0] * 0.06 ** ctx.ref.alpha

        set_values(ctx.var["y"], {"p2": 1})
        set_values(ctx.var["qp"], {"p2": 0.06})
        set_values(ctx.var["qn"], {"p2": 0.0})
        set_values(ctx.var["dhp"], {"p2": loss})
        set_values(ctx.var["dhn"], {"p2": 0.0})
        set_values(ctx.var["h"], {"B": 80.0, "C": 80.0 - loss})

        assert _all(ctx.constraints("flow_direction", "p2"))
        assert _all(ctx.constraints("head_loss", "p2"))

        # half the true loss is cut off
        set_values(ctx.var["dhp"], {"p2": 0.5 * loss})
        set_values(ctx.var["h"], {"C": 80.0 - 0.5 * loss})
        assert not _all(ctx.constraints("head_loss", "p2"))

    def test_backward_flow(self, chain):
        ctx = make_context(chain, "oa")
        constraint_pipe(ctx, "p2")
        loss = 500.0 * ctx.ref.resistance["p2"][0] * 0.04 ** ctx.ref.alpha

        set_values(ctx.var["y"], {"p2": 0})
        set_values(ctx.var["qp"], {"p2": 0.0})
        set_values(ctx.var["qn"], {"p2": 0.04})
        set_values(ctx.var["dhp"], {"p2": 0.0})
        set_values(ctx.var["dhn"], {"p2": loss})
        set_values(ctx.var["h"], {"B": 50.0, "C": 50.0 + loss})

        assert _all(ctx.constraints("flow_direction", "p2"))
        assert _all(ctx.constraints("head_loss", "p2"))
        assert ctx.flow("p2")() == pytest.approx(-0.04)

    def test_nonconvex_equality(self, chain):
        ctx = make_context(chain, "nc")
        constraint_pipe(ctx, "p2")
        loss = 500.0 * ctx.ref.resistance["p2"][0] * 0.03 ** ctx.ref.alpha
        set_values(ctx.var["q"], {"p2": -0.03})
        set_values(ctx.var["h"], {"B": 50.0, "C": 50.0 + loss})
        assert _all(ctx.constraints("head_loss", "p2"))


class TestPump:
    def test_on(self, pumped):
        ctx = make_context(pumped)
        constraint_pump(ctx, "pu1")
        set_values(ctx.var["z_pump"], {"pu1": 1})
        set_values(ctx.var["q"], {"pu1": 0.05})
        set_values(ctx.var["g"], {"pu1": 35.0})
        set_values(ctx.var["h"], {"A": 10.0, "B": 45.0})
        assert _all(ctx.constraints("pump", "pu1"))
        assert all(satisfied(c, tol=1e-6) for c in ctx.constraints("head_gain", "pu1"))

    def test_off(self, pumped):
        ctx = make_context(pumped)
        constraint_pump(ctx, "pu1")
        set_values(ctx.var["z_pump"], {"pu1": 0})
        set_values(ctx.var["q"], {"pu1": 0.0})
        set_values(ctx.var["g"], {"pu1": 0.0})
        set_values(ctx.var["h"], {"A": 10.0, "B": 30.0})
        assert _all(ctx.constraints("pump", "pu1"))
        assert _all(ctx.constraints("head_gain", "pu1"))

        set_values(ctx.var["g"], {"pu1": 5.0})
        assert not _all(ctx.constraints("pump", "pu1"))

    @pytest.mark.parametrize("formulation", ["oa", "crd"])
    def test_directed_gain_is_an_upper_bound(self, pumped, formulation):
        ctx = make_context(pumped, formulation)
        constraint_pump(ctx, "pu1")
        curve = ctx.ref.pump_curve["pu1"]
        gain = float(curve.gain([0.03])[0])

        set_values(ctx.var["z_pump"], {"pu1": 1})
        set_values(ctx.var["y"], {"pu1": 1})
        set_values(ctx.var["qp"], {"pu1": 0.03})
        set_values(ctx.var["qn"], {"pu1": 0.0})
        set_values(ctx.var["g"], {"pu1": gain})
        assert all(satisfied(c, tol=1e-6) for c in ctx.constraints("head_gain", "pu1"))

        set_values(ctx.var["g"], {"pu1": gain + 1.0})
        assert not _all(ctx.constraints("head_gain", "pu1"))

    def test_indicator_domains(self, pumped):
        assert make_context(pumped, "nc").status("pu1").is_binary()
        assert make_context(pumped, "oa").status("pu1").is_binary()
        assert not make_context(pumped, "crd").status("pu1").is_binary()


class TestPressureReducingValve:
    def _ctx(self, chain):
        chain["pipe"].pop("p2")
        chain["valve"] = {"v1": {"node_fr": "B", "node_to": "C", "valve_type": "prv", "setting": 30.0}}
        ctx = make_context(chain)
        constraint_prv(ctx, "v1")
        return ctx

    def test_active_pins_downstream_head(self, chain):
        ctx = self._ctx(chain)
        set_values(ctx.var["z_pressure_reducing_valve"], {"v1": 1})
        set_values(ctx.var["q"], {"v1": 0.05})
        set_values(ctx.var["h"], {"B": 80.0, "C": 70.0})
        assert _all(ctx.constraints("pressure_reducing_valve", "v1"))

        set_values(ctx.var["h"], {"C": 65.0})
        assert not _all(ctx.constraints("pressure_reducing_valve", "v1"))

    def test_inactive_blocks_flow(self, chain):
        ctx = self._ctx(chain)
        set_values(ctx.var["z_pressure_reducing_valve"], {"v1": 0})
        set_values(ctx.var["q"], {"v1": 0.0})
        set_values(ctx.var["h"], {"B": 80.0, "C": 50.0})
        assert _all(ctx.constraints("pressure_reducing_valve", "v1"))

        set_values(ctx.var["q"], {"v1": 0.01})
        assert not _all(ctx.constraints("pressure_reducing_valve", "v1"))


class TestValve:
    def test_open_and_closed(self, chain):
        chain["pipe"].pop("p2")
        chain["valve"] = {"v1": {"node_fr": "B", "node_to": "C"}}
        ctx = make_context(chain)
        constraint_valve(ctx, "v1")
        cons = ctx.constraints("valve", "v1")

        set_values(ctx.var["z_valve"], {"v1": 1})
        set_values(ctx.var["q"], {"v1": 0.05})
        set_values(ctx.var["h"], {"B": 70.0, "C": 70.0})
        assert _all(cons)
        set_values(ctx.var["h"], {"C": 60.0})
        assert not _all(cons)

        set_values(ctx.var["z_valve"], {"v1": 0})
        assert not _all(cons)
        set_values(ctx.var["q"], {"v1": 0.0})
        assert _all(cons)


# ============================================================
# Components and registry
# ============================================================

class TestComponents:
    def test_reservoir_head(self, two_node):
        ctx = make_context(two_node)
        constraint_reservoir_head(ctx, "R")
        set_values(ctx.var["h"], {"A": 100.0})
        assert _all(ctx.constraints("reservoir_head", "R"))

    def test_tank_head_and_initial_volume(self, tank_network):
        ctx = make_context(tank_network)
        area = 0.25 * math.pi * 100.0
        constraint_tank_head(ctx, "T1")
        constraint_tank_state(ctx, "T1")

        set_values(ctx.var["V"], {"T1": 3.0 * area})
        set_values(ctx.var["h"], {"T": 53.0})
        assert _all(ctx.constraints("tank_head", "T1"))
        assert _all(ctx.constraints("tank_state", "T1"))

    def test_tank_state_needs_time_step(self, tank_network):
        tank_network.pop("time_step")
        ctx = make_context(tank_network)
        with pytest.raises(ConfigurationError):
            constraint_tank_state(ctx, "T1")

    def test_dispatchable_tank_has_free_volume(self, tank_network):
        ctx = make_context(tank_network, tank_mode="relaxed")
        constraint_tank_state(ctx, "T1")
        assert ctx.constraints("tank_state", "T1") == []


class TestRegistry:
    def test_template_is_idempotent(self, chain):
        ctx = make_context(chain, "oa")
        constraint_link(ctx, "p2")
        before = {cat: ctx.count(cat) for cat in ctx.con}
        size = len(ctx.block.component("head_loss"))

        constraint_link(ctx, "p2")
        assert {cat: ctx.count(cat) for cat in ctx.con} == before
        assert len(ctx.block.component("head_loss")) == size

    def test_reregistering_fewer_entries_drops_the_rest(self, chain):
        ctx = make_context(chain)
        h = ctx.var["h"]
        ctx.register("extra", "B", [h["B"] >= 0.0, h["B"] <= 90.0])
        ctx.register("extra", "B", [h["B"] >= 1.0])
        assert ctx.count("extra") == 1
        assert len(ctx.block.component("extra")) == 1

    def test_trivially_false_expression(self, chain):
        ctx = make_context(chain)
        with pytest.raises(ConfigurationError):
            ctx.register("extra", "B", [False])
