from __future__ import annotations

import copy

from babelsim import store
from babelsim.models import SIMD_TAG, BurntOut, Destroyed, GameState, Idle, ProcessorState
from babelsim.store import (
    DaemonAlreadyInstalledError,
    InstructionAlreadyUnlockedError,
    InsufficientCreditsError,
    InvalidItemError,
    NoMatchingProcessorsError,
    ProcessorHealthyError,
    ProcessorSelectionRequiredError,
    PurchaseError,
    UpgradeAtCapError,
    purchase_item,
)


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def _state(credits: int = 10_000) -> GameState:
    s = GameState(credits=credits)
    store.ensure_purchase_counters(s)
    return s


def _idx(action: str) -> int:
    i = store.store_index_for(action)
    assert i is not None
    return i


def _expect(exc: type, fn, *args) -> PurchaseError:
    try:
        fn(*args)
    except exc as e:
        return e
    raise AssertionError(f"expected {exc.__name__}")


def test_catalog_matches_price_list() -> None:
    names = [i.name for i in store.STORE_ITEMS]
    _assert(len(names) == 10, "ten catalog entries")
    _assert(names[0] == "Clock Tuning" and store.STORE_ITEMS[0].base_cost == 120, "clock tuning first at 120")
    simd = store.STORE_ITEMS[_idx(store.UNLOCK_INSTRUCTION_SET)]
    _assert(simd.max_purchases == 1 and simd.tag == SIMD_TAG, "microcode is a one-off SIMD unlock")


def test_repeat_purchases_escalate_price() -> None:
    s = _state()
    i = _idx(store.INCREASE_SPEED)
    _assert(store.item_cost(s, i) == 120, "first purchase at base cost")
    msgs = purchase_item(s, i)
    _assert(s.credits == 10_000 - 120, "credits debited")
    _assert(abs(s.processors[0].speed - 1.05) < 1e-9, "speed upgraded")
    _assert(msgs[-1] == "Purchased Clock Tuning (-120 cr)", f"purchase message, got {msgs[-1]}")
    _assert(store.item_cost(s, i) == 165, "second purchase adds one step")


def test_failed_purchase_changes_nothing() -> None:
    s = _state(credits=50)
    s.processors[0].status = BurntOut()
    before = copy.deepcopy(s)
    for index, proc in [
        (_idx(store.INCREASE_SPEED), None),
        (_idx(store.UPGRADE_COOLING), 0),
        (_idx(store.REPLACE_PROCESSOR), 0),
        (_idx(store.INSTALL_DAEMON_FIRMWARE), 0),
    ]:
        _expect(InsufficientCreditsError, purchase_item, s, index, proc)
        _assert(s == before, f"state mutated by failed purchase of item {index}")

    e = _expect(InsufficientCreditsError, purchase_item, s, _idx(store.INCREASE_SPEED))
    _assert("requires 120" in str(e), f"message names the cost: {e}")


def test_instruction_set_unlocks_once() -> None:
    s = _state()
    i = _idx(store.UNLOCK_INSTRUCTION_SET)
    purchase_item(s, i)
    _assert(s.is_instruction_unlocked(SIMD_TAG), "tag unlocked")
    _assert(all(p.supports(SIMD_TAG) for p in s.processors), "fleet gains the instruction")
    e = _expect(InstructionAlreadyUnlockedError, purchase_item, s, i)
    _assert("already unlocked" in str(e), f"unexpected message: {e}")
    _assert(store.item_cost(s, i) is None, "no price once unlocked")


def test_per_processor_items_need_a_selection() -> None:
    s = _state()
    for action in (store.UPGRADE_COOLING, store.UPGRADE_HARDENING, store.INSTALL_DAEMON_FIRMWARE, store.REPLACE_PROCESSOR):
        _expect(ProcessorSelectionRequiredError, purchase_item, s, _idx(action), None)
        _expect(ProcessorSelectionRequiredError, purchase_item, s, _idx(action), 7)
    _expect(InvalidItemError, purchase_item, s, 99)


def test_cooling_upgrades_stop_at_cap() -> None:
    s = _state()
    i = _idx(store.UPGRADE_COOLING)
    costs = []
    for _ in range(3):
        costs.append(store.item_cost(s, i, 0))
        purchase_item(s, i, 0)
    _assert(costs == [90, 125, 160], f"cooling price follows level, got {costs}")
    _assert(s.processors[0].cooling_level == 3, "cooling at cap")
    _expect(UpgradeAtCapError, purchase_item, s, i, 0)


def test_hardening_cap() -> None:
    s = _state()
    i = _idx(store.UPGRADE_HARDENING)
    for _ in range(3):
        purchase_item(s, i, 0)
    _expect(UpgradeAtCapError, purchase_item, s, i, 0)


def test_daemon_firmware_eases_penalty_once() -> None:
    s = _state()
    i = _idx(store.INSTALL_DAEMON_FIRMWARE)
    purchase_item(s, i, 0)
    p = s.processors[0]
    _assert(p.daemon_unlocked, "firmware unlocks automation")
    _assert(p.daemon_penalty.quality == -3, "quality penalty eased to -3")
    _assert(abs(p.daemon_penalty.time_multiplier - 1.08) < 1e-9, "time multiplier eased by 0.02")
    _expect(DaemonAlreadyInstalledError, purchase_item, s, i, 0)


def test_thermal_paste_and_storage() -> None:
    s = _state()
    purchase_item(s, _idx(store.APPLY_THERMAL_PASTE))
    _assert(s.thermal_paste_timer_ms == 18_000, "paste lasts one day")
    purchase_item(s, _idx(store.EXPAND_STORAGE))
    _assert(s.storage.capacity == 200, "storage expanded by 80")


def test_replace_selected_unit_costs_service_rate() -> None:
    s = _state(credits=100)
    p = s.processors[0]
    p.status = BurntOut()
    p.wear = 0.7
    i = _idx(store.REPLACE_PROCESSOR)
    _assert(store.item_cost(s, i, 0) == 63, "180 * 0.35")
    purchase_item(s, i, 0)
    _assert(s.credits == 37, f"63 credits charged, left {s.credits}")
    _assert(isinstance(p.status, Idle) and p.wear == 0.0, "unit restored")
    _assert(s.store_purchases[i] == 0, "replacements are not counted as purchases")
    _expect(ProcessorHealthyError, purchase_item, s, i, 0)


def test_replace_model_fleet() -> None:
    s = _state()
    s.processors.append(ProcessorState.starter())
    s.processors.append(ProcessorState(name="Other"))
    s.processors[0].status = BurntOut()
    s.processors[1].status = Destroyed()
    s.processors[2].status = BurntOut()
    i = _idx(store.REPLACE_MODEL)
    _assert(store.item_cost(s, i, 0) == 126, "two units of the model at 63 each")
    msgs = purchase_item(s, i, 0)
    _assert(s.processors[0].is_idle() and s.processors[1].is_idle(), "whole model restored")
    _assert(isinstance(s.processors[2].status, BurntOut), "other models untouched")
    _assert(any("Replaced 2 units" in m for m in msgs), f"fleet message missing: {msgs}")
    _expect(NoMatchingProcessorsError, purchase_item, s, i, 0)


def main() -> None:
    tests = [
        test_catalog_matches_price_list,
        test_repeat_purchases_escalate_price,
        test_failed_purchase_changes_nothing,
        test_instruction_set_unlocks_once,
        test_per_processor_items_need_a_selection,
        test_cooling_upgrades_stop_at_cap,
        test_hardening_cap,
        test_daemon_firmware_eases_penalty_once,
        test_thermal_paste_and_storage,
        test_replace_selected_unit_costs_service_rate,
        test_replace_model_fleet,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
