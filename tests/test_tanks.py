import pytest

from wdnopt.core.build.tanks import apply_tank_mode
from wdnopt.core.models.network import MultiNetwork, Network


def _dispatchable(net):
    return [t.dispatchable for t in net.tanks.values()]


class TestTankModes:
    def test_with_tanks_sets_every_tank(self, tank_network):
        tank_network["tank"]["T2"] = dict(tank_network["tank"]["T1"], node="J")
        net = Network.from_dict(tank_network)

        relaxed = net.with_tanks(True)
        assert _dispatchable(relaxed) == [True, True]
        assert _dispatchable(net) == [False, False]

    def test_single_network_modes(self, tank_network):
        net = Network.from_dict(tank_network)
        assert apply_tank_mode(net, "as_given") is net
        assert _dispatchable(apply_tank_mode(net, "relaxed")) == [True]
        assert _dispatchable(apply_tank_mode(net.with_tanks(True), "fixed")) == [False]
        assert _dispatchable(apply_tank_mode(net, "start_dispatchable")) == [True]

    def test_start_dispatchable_only_touches_first_index(self, multinetwork_tank):
        multi = MultiNetwork.from_dict(multinetwork_tank)
        out = apply_tank_mode(multi, "start_dispatchable")
        assert _dispatchable(out["1"]) == [True]
        assert _dispatchable(out["2"]) == [False]
        assert _dispatchable(multi["1"]) == [False]

    def test_unknown_mode(self, tank_network):
        with pytest.raises(ValueError):
            apply_tank_mode(Network.from_dict(tank_network), "drained")
